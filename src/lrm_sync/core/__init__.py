"""Remote sync API client."""

from .client import SyncApiClient

__all__ = ["SyncApiClient"]
