"""Roomhub realtime room coordinator.

Multiplexes WebSocket connections into named chat and game rooms, keeps room
existence and chat history in DuckDB, and fans events out to room members.
"""
