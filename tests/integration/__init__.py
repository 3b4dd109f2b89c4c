"""Integration tests that need a running Redis server."""
