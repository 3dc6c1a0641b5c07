"""Concurrent, throttle-aware message fetching from Microsoft Graph."""

__version__ = "0.1.0"
