"""
Exception taxonomy shared by the clients, caches and the scheduler.
"""

from typing import Any, Dict, Optional


class HolderRewardsError(Exception):
    """Base class for every error raised by this package"""
    pass


class UpstreamError(HolderRewardsError):
    """An upstream (RPC, market data or action service) request failed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class TransientUpstreamError(UpstreamError):
    """Retryable: rate limit, 5xx, timeout, connection blip."""
    pass


class FatalUpstreamError(UpstreamError):
    """Non-retryable: malformed request, auth failure, business-rule rejection."""
    pass


class HolderSnapshotError(HolderRewardsError):
    pass


class MarketDataError(HolderRewardsError):
    pass


class ConfigurationError(HolderRewardsError):
    """Required identifiers or credentials are absent or invalid."""
    pass


class EmptyResultError(HolderRewardsError):
    """Nothing to distribute this cycle (no shares, empty pool)."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or {}
