"""Integration event and sync health monitoring service."""

__version__ = "1.0.0"
