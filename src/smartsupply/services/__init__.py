from smartsupply.services.fulfillment_coordinator import FulfillmentCoordinator
from smartsupply.services.inventory_ledger import InventoryLedger
from smartsupply.services.notifications import NotificationCenter
from smartsupply.services.product_catalog import ProductCatalog
from smartsupply.services.snapshot_store import InMemorySnapshotStore, S3SnapshotStore
from smartsupply.services.stock_auditor import StockAuditor

__all__ = [
    "FulfillmentCoordinator",
    "InMemorySnapshotStore",
    "InventoryLedger",
    "NotificationCenter",
    "ProductCatalog",
    "S3SnapshotStore",
    "StockAuditor",
]
