"""Application exception hierarchy."""
