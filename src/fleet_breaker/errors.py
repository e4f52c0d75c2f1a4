"""Shared error types for fleet_breaker."""


class TransientError(RuntimeError):
    """Generic transient dependency failure."""
