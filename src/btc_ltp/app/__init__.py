"""HTTP surface of the LTP service."""
