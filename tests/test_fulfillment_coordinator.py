"""Fulfillment Coordinator unit testleri."""

import threading
from decimal import Decimal

import pytest

from smartsupply.config import CoreConfig
from smartsupply.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ReturnWindowClosedError,
    ValidationError,
)
from smartsupply.models.supply import OrderOptions, OrderStatus
from smartsupply.services.fulfillment_coordinator import FulfillmentCoordinator
from smartsupply.services.snapshot_store import InMemorySnapshotStore


def _place_store_order(coordinator, items=None, **options):
    """STORE-001'in WH-001'den verdiği sipariş."""
    return coordinator.place_order(
        items or {"laptop": 2, "phone": 5},
        placed_by="STORE-001",
        fulfiller="WH-001",
        options=OrderOptions(**options),
    )


def _advance(coordinator, order, *statuses):
    for status in statuses:
        coordinator.transition(order.order_id, status)
    return order


class TestPlaceOrder:
    def test_place_order_commits_no_stock(self, coordinator):
        order = _place_store_order(coordinator)
        assert order.status == OrderStatus.PLACED
        assert order.order_id.startswith("ORD-")
        assert order.source_location_id == "WH-001"
        assert order.destination_location_id == "STORE-001"
        assert coordinator.ledger("WH-001").get_stock("laptop") == 50

    def test_explicit_order_id(self, coordinator):
        order = _place_store_order(coordinator, order_id="ORD-42")
        assert coordinator.get_order("ORD-42") is order

    def test_duplicate_order_id_rejected(self, coordinator):
        _place_store_order(coordinator, order_id="ORD-42")
        with pytest.raises(ValidationError):
            _place_store_order(coordinator, order_id="ORD-42")

    def test_unknown_explicit_location_rejected(self, coordinator):
        with pytest.raises(ValidationError):
            _place_store_order(coordinator, ship_from="WH-404")

    def test_default_priority_from_config(self, catalog, clock):
        coordinator = FulfillmentCoordinator(catalog, config=CoreConfig(default_priority=5), clock=clock)
        order = coordinator.place_order({"laptop": 1}, placed_by="STORE-001")
        assert order.priority == 5

    def test_unknown_order_raises_not_found(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.get_order("ORD-YOK")

    def test_orders_sorted_by_priority(self, coordinator, clock):
        low = _place_store_order(coordinator, priority=4)
        clock.advance(minutes=1)
        urgent = _place_store_order(coordinator, urgent=True)
        clock.advance(minutes=1)
        normal = _place_store_order(coordinator)
        assert coordinator.orders() == [urgent, normal, low]

        coordinator.transition(normal.order_id, "cancelled")
        assert coordinator.orders("placed") == [urgent, low]


class TestShipment:
    def test_ship_and_deliver_moves_stock(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, OrderStatus.PROCESSING, OrderStatus.SHIPPED)

        warehouse = coordinator.ledger("WH-001")
        assert warehouse.get_stock("laptop") == 48
        assert warehouse.get_stock("phone") == 95
        assert warehouse.get_reserved("laptop") == 0
        assert order.shipped_at is not None

        coordinator.transition(order.order_id, OrderStatus.DELIVERED)
        store = coordinator.ledger("STORE-001")
        assert store.get_stock("laptop") == 2
        assert store.get_stock("phone") == 5
        assert order.delivery_date is not None

    def test_multi_line_shipment_is_atomic(self, coordinator):
        order = _place_store_order(coordinator, items={"laptop": 2, "phone": 5, "tablet": 80})
        coordinator.transition(order.order_id, "processing")

        with pytest.raises(InsufficientStockError) as exc_info:
            coordinator.transition(order.order_id, "shipped")

        assert [(s.product_id, s.required, s.available) for s in exc_info.value.shortages] == [
            ("tablet", 80, 75)
        ]
        warehouse = coordinator.ledger("WH-001")
        assert warehouse.get_stock("laptop") == 50
        assert warehouse.get_stock("phone") == 100
        assert warehouse.get_stock("tablet") == 75
        assert all(warehouse.get_reserved(p) == 0 for p in ("laptop", "phone", "tablet"))
        assert order.status == OrderStatus.PROCESSING
        assert order.shipped_at is None

    def test_all_shortages_reported(self, coordinator):
        order = _place_store_order(coordinator, items={"laptop": 60, "phone": 5, "tablet": 80})
        coordinator.transition(order.order_id, "processing")
        with pytest.raises(InsufficientStockError) as exc_info:
            coordinator.transition(order.order_id, "shipped")
        assert {s.product_id for s in exc_info.value.shortages} == {"laptop", "tablet"}

    def test_missing_source_ledger_rejected(self, coordinator):
        order = coordinator.place_order({"laptop": 1}, placed_by="STORE-001", fulfiller="SUP-001")
        coordinator.transition(order.order_id, "processing")
        with pytest.raises(ValidationError):
            coordinator.transition(order.order_id, "shipped")
        assert order.status == OrderStatus.PROCESSING

    def test_direct_sale_leaves_the_system(self, coordinator):
        coordinator.ledger("STORE-001").add_stock("phone", 3)
        order = coordinator.place_order({"phone": 2}, placed_by="STORE-001")
        assert order.destination_location_id is None

        _advance(coordinator, order, "processing", "shipped", "delivered")
        assert coordinator.ledger("STORE-001").get_stock("phone") == 1

    def test_concurrent_shipments_never_oversell(self, coordinator):
        orders = [_place_store_order(coordinator, items={"laptop": 10}) for _ in range(8)]
        for order in orders:
            coordinator.transition(order.order_id, "processing")

        barrier = threading.Barrier(len(orders))
        outcomes = []

        def ship(order_id):
            barrier.wait()
            try:
                coordinator.transition(order_id, "shipped")
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("short")

        threads = [threading.Thread(target=ship, args=(o.order_id,)) for o in orders]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 5
        assert outcomes.count("short") == 3
        assert coordinator.ledger("WH-001").get_stock("laptop") == 0


class TestTransitions:
    def test_undefined_transition_rejected(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "delivered")
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(order.order_id, "processing")
        assert order.status == OrderStatus.DELIVERED

    def test_placed_cannot_ship_directly(self, coordinator):
        order = _place_store_order(coordinator)
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(order.order_id, "shipped")

    def test_unknown_status_string_rejected(self, coordinator):
        order = _place_store_order(coordinator)
        with pytest.raises(ValidationError):
            coordinator.transition(order.order_id, "in_transit")

    def test_cancel_before_shipping_has_no_stock_effect(self, coordinator):
        order = _place_store_order(coordinator)
        coordinator.transition(order.order_id, "cancelled")

        history = coordinator.ledger("WH-001").history(order_id=order.order_id)
        assert history == []
        records = coordinator.transition_history(order.order_id)
        assert len(records) == 1
        assert records[0].inventory_effects == []

    def test_cancelled_order_is_terminal(self, coordinator):
        order = _place_store_order(coordinator)
        coordinator.transition(order.order_id, "cancelled")
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(order.order_id, "processing")

    def test_transition_records_effects(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped")
        record = coordinator.transition_history(order.order_id)[-1]
        assert record.from_status == OrderStatus.PROCESSING
        assert record.to_status == OrderStatus.SHIPPED
        assert {(e["product_id"], e["change"]) for e in record.inventory_effects} == {
            ("laptop", -2), ("phone", -5)
        }

    def test_total_frozen_on_delivery(self, coordinator, catalog):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "delivered")
        catalog.update_price("laptop", "10.00")
        assert order.total_amount == Decimal("6400.00")
        assert order.calculate_total() == Decimal("4020.00")


class TestCancelAfterShipment:
    def test_cancel_after_shipment_does_not_restock(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "cancelled")
        assert coordinator.ledger("WH-001").get_stock("laptop") == 48

    def test_restock_cancelled_order_once(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "cancelled")

        coordinator.restock_cancelled_order(order.order_id)
        warehouse = coordinator.ledger("WH-001")
        assert warehouse.get_stock("laptop") == 50
        assert warehouse.get_stock("phone") == 100
        assert order.restocked is True

        with pytest.raises(InvalidStateError):
            coordinator.restock_cancelled_order(order.order_id)
        assert warehouse.get_stock("laptop") == 50

    def test_restock_requires_shipped_cancellation(self, coordinator):
        order = _place_store_order(coordinator)
        coordinator.transition(order.order_id, "cancelled")
        with pytest.raises(InvalidStateError):
            coordinator.restock_cancelled_order(order.order_id)


class TestReturns:
    def test_return_within_window(self, coordinator, clock):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "delivered")
        clock.advance(days=10)

        coordinator.transition(order.order_id, "returned")
        assert order.status == OrderStatus.RETURNED
        assert coordinator.ledger("STORE-001").get_stock("laptop") == 0
        assert coordinator.ledger("WH-001").get_stock("laptop") == 50

    def test_return_outside_window(self, coordinator, clock):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "delivered")
        clock.advance(days=31)

        with pytest.raises(ReturnWindowClosedError):
            coordinator.transition(order.order_id, "returned")
        assert order.status == OrderStatus.DELIVERED
        assert coordinator.ledger("STORE-001").get_stock("laptop") == 2

    def test_return_window_from_config(self, catalog, clock):
        coordinator = FulfillmentCoordinator(catalog, config=CoreConfig(return_window_days=0), clock=clock)
        coordinator.register_ledger("STORE-001", "store").add_stock("desk", 1)
        order = coordinator.place_order({"desk": 1}, placed_by="STORE-001")
        _advance(coordinator, order, "processing", "shipped", "delivered")
        clock.advance(seconds=1)
        with pytest.raises(ReturnWindowClosedError):
            coordinator.transition(order.order_id, "returned")

    def test_custom_return_policy(self, catalog, clock):
        coordinator = FulfillmentCoordinator(catalog, return_policy=lambda order, now: False, clock=clock)
        coordinator.register_ledger("STORE-001", "store").add_stock("desk", 1)
        order = coordinator.place_order({"desk": 1}, placed_by="STORE-001")
        _advance(coordinator, order, "processing", "shipped", "delivered")
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(order.order_id, "returned")

    def test_return_fails_when_goods_already_sold(self, coordinator):
        order = _place_store_order(coordinator)
        _advance(coordinator, order, "processing", "shipped", "delivered")
        coordinator.ledger("STORE-001").remove_stock("laptop", 2)

        with pytest.raises(InsufficientStockError):
            coordinator.transition(order.order_id, "returned")
        assert coordinator.ledger("STORE-001").get_stock("phone") == 5
        assert coordinator.ledger("WH-001").get_stock("laptop") == 48


class TestTransferStock:
    def test_transfer_moves_stock(self, coordinator):
        result = coordinator.transfer_stock("WH-001", "STORE-001", "tablet", 25)
        assert result["source_stock_after"] == 50
        assert result["target_stock_after"] == 25

    def test_transfer_insufficient_changes_nothing(self, coordinator):
        with pytest.raises(InsufficientStockError):
            coordinator.transfer_stock("WH-001", "STORE-001", "tablet", 100)
        assert coordinator.ledger("WH-001").get_stock("tablet") == 75
        assert coordinator.ledger("STORE-001").get_stock("tablet") == 0

    def test_transfer_to_same_location_rejected(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.transfer_stock("WH-001", "WH-001", "tablet", 1)

    def test_transfer_to_unknown_location(self, coordinator):
        with pytest.raises(NotFoundError):
            coordinator.transfer_stock("WH-001", "WH-404", "tablet", 1)


class TestLedgerRegistry:
    def test_duplicate_ledger_rejected(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.register_ledger("WH-001")

    def test_low_stock_report(self, coordinator):
        coordinator.ledger("WH-001").set_reorder_threshold("laptop", 10)
        coordinator.ledger("WH-001").remove_stock("laptop", 45)
        assert coordinator.low_stock_report("WH-001") == {"laptop"}
        assert coordinator.snapshot("WH-001")["laptop"].stock == 5


class TestPersistence:
    def test_save_and_load(self, coordinator, clock):
        order = _place_store_order(coordinator, order_id="ORD-1")
        _advance(coordinator, order, "processing", "shipped")
        store = InMemorySnapshotStore()
        coordinator.save(store)

        restored = FulfillmentCoordinator.load(store, clock=clock)
        assert restored.ledger("WH-001").get_stock("laptop") == 48
        restored_order = restored.get_order("ORD-1")
        assert restored_order.status == OrderStatus.SHIPPED

        restored.transition("ORD-1", "delivered")
        assert restored.ledger("STORE-001").get_stock("phone") == 5

    def test_load_from_empty_store(self):
        assert FulfillmentCoordinator.load(InMemorySnapshotStore()) is None

    def test_unsupported_version_rejected(self):
        with pytest.raises(ValidationError):
            FulfillmentCoordinator.from_state({"version": 99})
