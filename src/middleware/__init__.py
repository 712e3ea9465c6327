"""Middleware components for the ad-ops admin service.

Provides:
- Request ID tracking
- Logging context enrichment
"""

from .correlation import (
    RequestIdFilter,
    RequestIdMiddleware,
    configure_logging,
    get_request_id,
    set_request_id,
)

__all__ = [
    "RequestIdFilter",
    "RequestIdMiddleware",
    "configure_logging",
    "get_request_id",
    "set_request_id",
]
