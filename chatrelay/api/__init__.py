"""HTTP surface of the relay service."""
