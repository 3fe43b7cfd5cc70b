"""Services for syncing buyer accounts and business logic."""

from buyersync.services.buyers_data import BuyersDataService, get_buyers_data_service
from buyersync.services.proxy_client import ProxyClient
from buyersync.services.sync_engine import IncrementalSyncEngine

__all__ = [
    "BuyersDataService",
    "IncrementalSyncEngine",
    "ProxyClient",
    "get_buyers_data_service",
]
