"""Ortak test yardımcıları."""

from datetime import datetime, timedelta, timezone

import pytest

from smartsupply.services.fulfillment_coordinator import FulfillmentCoordinator
from smartsupply.services.product_catalog import ProductCatalog


class FakeClock:
    """Elle ilerletilebilen saat."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def catalog() -> ProductCatalog:
    catalog = ProductCatalog()
    catalog.create("laptop", "Laptop", "1200.00", "electronics", "SUP-001")
    catalog.create("phone", "Smartphone", "800.00", "electronics", "SUP-001")
    catalog.create("tablet", "Tablet", "450.00", "electronics", "SUP-002")
    catalog.create("desk", "Office Desk", "300.00", "furniture", "SUP-003")
    return catalog


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def coordinator(catalog, clock) -> FulfillmentCoordinator:
    coordinator = FulfillmentCoordinator(catalog, clock=clock)
    warehouse = coordinator.register_ledger("WH-001", "warehouse")
    warehouse.add_stock("laptop", 50)
    warehouse.add_stock("phone", 100)
    warehouse.add_stock("tablet", 75)
    coordinator.register_ledger("STORE-001", "store")
    return coordinator
