"""Logging, request timing and rate limiting."""
