"""Room lifecycle, membership, message routing and broadcast."""
