"""Cached async providers with refresh, expiration and dependency injection."""

__version__ = "0.1.0"
__all__ = ["cache", "disposal", "hooks", "injection", "provider", "refresh", "shared", "types"]