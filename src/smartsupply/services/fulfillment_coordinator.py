"""Fulfillment Coordinator - sipariş durum makinesi ve stok koordinasyonu.

- Sipariş oluşturur (PLACED, stok ayrılmaz)
- Durum geçişlerini tabloya göre doğrular
- Geçişe bağlı stok etkisini durum değişikliğiyle atomik uygular
- Hata durumunda uygulanmış kısmi etkileri geri alır
- Lokasyonlar arası atomik stok transferi yapar
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from smartsupply.config import CoreConfig
from smartsupply.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ReturnWindowClosedError,
    ValidationError,
)
from smartsupply.models.order import Order
from smartsupply.models.supply import (
    LocationType,
    OrderOptions,
    OrderStatus,
    StockPosition,
    TransitionRecord,
    utcnow,
)
from smartsupply.services.inventory_ledger import InventoryLedger
from smartsupply.services.notifications import NotificationCenter
from smartsupply.services.product_catalog import ProductCatalog

logger = logging.getLogger(__name__)

ReturnPolicy = Callable[[Order, datetime], bool]

# Durum makinesi: izin verilen geçişler
TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

SNAPSHOT_VERSION = 1


class FulfillmentCoordinator:
    """Siparişlerin ve stok defterlerinin tek yetkili değiştiricisi."""

    def __init__(
        self,
        catalog: ProductCatalog,
        config: Optional[CoreConfig] = None,
        notifications: Optional[NotificationCenter] = None,
        return_policy: Optional[ReturnPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.config = config or CoreConfig()
        self.notifications = notifications
        self._return_policy = return_policy or self._within_return_window
        self._clock = clock
        self._ledgers: dict[str, InventoryLedger] = {}
        self._orders: dict[str, Order] = {}
        self._records: list[TransitionRecord] = []
        self._lock = threading.RLock()

    # --- Lokasyonlar ---

    def register_ledger(
        self, location_id: str, location_type: Union[LocationType, str] = LocationType.WAREHOUSE
    ) -> InventoryLedger:
        with self._lock:
            if location_id in self._ledgers:
                raise ValidationError(f"Lokasyon zaten kayıtlı: {location_id}")
            ledger = InventoryLedger(location_id, self.catalog, location_type)
            self._ledgers[location_id] = ledger
        logger.info("Stok defteri kaydedildi: %s (%s)", location_id, ledger.location_type.value)
        return ledger

    def ledger(self, location_id: str) -> InventoryLedger:
        with self._lock:
            ledger = self._ledgers.get(location_id)
        if ledger is None:
            raise NotFoundError("Lokasyon", location_id)
        return ledger

    def ledgers(self) -> list[InventoryLedger]:
        with self._lock:
            return list(self._ledgers.values())

    def snapshot(self, location_id: str) -> dict[str, StockPosition]:
        return self.ledger(location_id).snapshot()

    def low_stock_report(self, location_id: str) -> set[str]:
        return self.ledger(location_id).low_stock_report()

    # --- Sipariş oluşturma ---

    def place_order(
        self,
        items: Mapping[str, int],
        placed_by: str,
        fulfiller: Optional[str] = None,
        options: Optional[OrderOptions] = None,
    ) -> Order:
        """PLACED durumunda sipariş oluşturur. Bu aşamada stok ayrılmaz.

        Stok lokasyonları verilmezse taraf kimlikleri lokasyon kimliği olarak
        kullanılır: ürün tedarikçiden (yoksa siparişi verenin mağazasından) çıkar,
        tedarikçi varsa siparişi verenin lokasyonuna girer.
        """
        options = options or OrderOptions()
        order_id = options.order_id or f"ORD-{uuid.uuid4().hex[:8].upper()}"

        for explicit in (options.ship_from, options.ship_to):
            if explicit is not None and self._optional_ledger(explicit) is None:
                raise ValidationError(f"Bilinmeyen lokasyon: {explicit}")

        source = options.ship_from or fulfiller or placed_by
        if options.ship_to is not None:
            destination = options.ship_to
        else:
            destination = placed_by if fulfiller else None

        priority = options.priority if options.priority is not None else self.config.default_priority

        with self._lock:
            if order_id in self._orders:
                raise ValidationError(f"Sipariş zaten mevcut: {order_id}")
            order = Order(
                order_id=order_id,
                placed_by_party_id=placed_by,
                catalog=self.catalog,
                items=items,
                fulfilling_party_id=fulfiller,
                priority=priority,
                urgent=options.urgent,
                shipping_address=options.shipping_address,
                notes=options.notes,
                source_location_id=source,
                destination_location_id=destination,
                created_at=self._clock(),
            )
            self._orders[order_id] = order

        logger.info(
            "Sipariş oluşturuldu: %s (%s -> %s, %d kalem)",
            order_id, placed_by, fulfiller or "-", len(order.items),
        )
        self._notify_order(order, "Sipariş oluşturuldu")
        return order

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError("Sipariş", order_id)
        return order

    def orders(self, status: Optional[OrderStatus] = None) -> list[Order]:
        """Siparişleri öncelik, sonra oluşturulma zamanına göre sıralı döndürür."""
        with self._lock:
            orders = list(self._orders.values())
        if status is not None:
            wanted = _to_status(status)
            orders = [o for o in orders if o.status == wanted]
        return sorted(orders, key=lambda o: (o.priority, o.created_at))

    # --- Durum geçişleri ---

    def transition(self, order_id: str, target_status: Union[OrderStatus, str]) -> Order:
        """Siparişi hedef duruma taşır ve stok etkisini atomik olarak uygular."""
        target = _to_status(target_status)
        order = self.get_order(order_id)

        with order._lock:
            current = order.status
            if target not in TRANSITIONS[current]:
                logger.warning("Geçersiz geçiş reddedildi: %s %s -> %s", order_id, current.value, target.value)
                raise InvalidTransitionError(current, target)

            with ExitStack() as stack:
                for ledger in self._involved_ledgers(order, target):
                    stack.enter_context(ledger.locked())

                now = self._clock()
                effects = self._apply_effects(order, current, target, now)
                order._apply_status(target, now)

            record = TransitionRecord(
                record_id=str(uuid.uuid4()),
                order_id=order_id,
                from_status=current,
                to_status=target,
                inventory_effects=effects,
                timestamp=now,
            )
            with self._lock:
                self._records.append(record)

        logger.info(
            "Sipariş %s durumu güncellendi: %s -> %s (%d stok etkisi)",
            order_id, current.value, target.value, len(effects),
        )
        self._notify_order(order, f"{current.description} -> {target.description}")
        if target == OrderStatus.SHIPPED:
            self._notify_low_stock(order.source_location_id)
        return order

    def transition_history(self, order_id: Optional[str] = None) -> list[TransitionRecord]:
        with self._lock:
            records = list(self._records)
        if order_id:
            records = [r for r in records if r.order_id == order_id]
        return records

    def _apply_effects(
        self, order: Order, current: OrderStatus, target: OrderStatus, now: datetime
    ) -> list[dict]:
        if target == OrderStatus.SHIPPED:
            source = self._require_ledger(order.source_location_id, order)
            return self._withdraw(source, order, "shipment")

        if target == OrderStatus.DELIVERED:
            destination = self._optional_ledger(order.destination_location_id)
            if destination is None:
                return []
            return self._deposit(destination, order, "delivery")

        if target == OrderStatus.CANCELLED:
            if current == OrderStatus.SHIPPED:
                # Gönderilmiş stok otomatik iade edilmez; restock_cancelled_order ile teslim alınır
                logger.info("Gönderim sonrası iptal: %s için stok iadesi ayrı işlem gerektirir", order.order_id)
            return []

        if target == OrderStatus.RETURNED:
            if not self._return_policy(order, now):
                raise ReturnWindowClosedError(current, target)
            effects: list[dict] = []
            receiving = self._optional_ledger(order.destination_location_id)
            if receiving is not None:
                effects = self._withdraw(receiving, order, "return")
            origin = self._optional_ledger(order.source_location_id)
            if origin is not None:
                try:
                    effects += self._deposit(origin, order, "return")
                except Exception:
                    if receiving is not None:
                        self._undo(receiving, effects, order.order_id)
                    raise
            return effects

        return []

    # --- Stok etkileri ---

    def _withdraw(self, ledger: InventoryLedger, order: Order, reason: str) -> list[dict]:
        """Tüm kalemleri ya birlikte düşer ya da hiç düşmez.

        Önce her kalem rezerve edilir; eksik kalem varsa yapılan rezervasyonlar
        geri bırakılır ve tüm eksikler tek hata ile bildirilir.
        """
        items = order.items
        reserved: list[tuple[str, int]] = []
        shortages = []
        for product_id, quantity in items.items():
            try:
                ledger.reserve(product_id, quantity, triggered_by=reason, order_id=order.order_id)
                reserved.append((product_id, quantity))
            except InsufficientStockError as e:
                shortages.extend(e.shortages)

        if shortages:
            for product_id, quantity in reversed(reserved):
                ledger.release(product_id, quantity, triggered_by=f"{reason}_rollback", order_id=order.order_id)
            logger.warning(
                "Stok çıkışı geri alındı: sipariş %s, %s, %d eksik kalem",
                order.order_id, ledger.location_id, len(shortages),
            )
            raise InsufficientStockError(shortages)

        effects: list[dict] = []
        try:
            for product_id, quantity in reserved:
                ledger.commit(product_id, quantity, triggered_by=reason, order_id=order.order_id)
                effects.append(_effect(ledger, product_id, -quantity))
        except Exception as e:
            logger.error("Stok çıkışı rollback: sipariş %s: %s", order.order_id, e)
            self._undo(ledger, effects, order.order_id)
            committed = {effect["product_id"] for effect in effects}
            for product_id, quantity in reserved:
                if product_id not in committed and ledger.get_reserved(product_id) >= quantity:
                    ledger.release(product_id, quantity, triggered_by=f"{reason}_rollback", order_id=order.order_id)
            raise
        return effects

    def _deposit(self, ledger: InventoryLedger, order: Order, reason: str) -> list[dict]:
        effects: list[dict] = []
        try:
            for product_id, quantity in order.items.items():
                ledger.add_stock(product_id, quantity, triggered_by=reason, order_id=order.order_id)
                effects.append(_effect(ledger, product_id, quantity))
        except Exception as e:
            logger.error("Stok girişi rollback: sipariş %s: %s", order.order_id, e)
            self._undo(ledger, effects, order.order_id)
            raise
        return effects

    def _undo(self, ledger: InventoryLedger, effects: Iterable[dict], order_id: str) -> None:
        for effect in reversed(list(effects)):
            if effect["location_id"] != ledger.location_id:
                continue
            change = effect["change"]
            if change < 0:
                ledger.add_stock(effect["product_id"], -change, triggered_by="rollback", order_id=order_id)
            else:
                ledger.remove_stock(effect["product_id"], change, triggered_by="rollback", order_id=order_id)

    # --- Açık teslim alma ve transfer ---

    def restock_cancelled_order(self, order_id: str) -> Order:
        """Gönderildikten sonra iptal edilen siparişin stoğunu çıkış lokasyonuna geri alır.

        Yalnızca bir kez yapılabilir.
        """
        order = self.get_order(order_id)
        with order._lock:
            if order.status != OrderStatus.CANCELLED or order.shipped_at is None or order.restocked:
                raise InvalidStateError(order_id, order.status, "restock")
            origin = self._require_ledger(order.source_location_id, order)
            with origin.locked():
                self._deposit(origin, order, "restock")
                order._mark_restocked()
        logger.info("İptal edilen sipariş stoğa geri alındı: %s -> %s", order_id, origin.location_id)
        return order

    def transfer_stock(
        self,
        source_location_id: str,
        target_location_id: str,
        product_id: str,
        quantity: int,
        triggered_by: str = "transfer",
    ) -> dict[str, Any]:
        """İki lokasyon arasında atomik stok transferi. Toplam stok korunur."""
        if source_location_id == target_location_id:
            raise ValidationError("Kaynak ve hedef lokasyon aynı olamaz")
        source = self.ledger(source_location_id)
        target = self.ledger(target_location_id)

        with ExitStack() as stack:
            for ledger in sorted((source, target), key=lambda l: l.location_id):
                stack.enter_context(ledger.locked())

            source_after = source.remove_stock(product_id, quantity, triggered_by=triggered_by)
            try:
                target_after = target.add_stock(product_id, quantity, triggered_by=triggered_by)
            except Exception as e:
                logger.error("Transfer rollback: %s -> %s %s: %s", source_location_id, target_location_id, product_id, e)
                source.add_stock(product_id, quantity, triggered_by="rollback")
                raise

        logger.info(
            "Transfer tamamlandı: %s -> %s, %s x%d",
            source_location_id, target_location_id, product_id, quantity,
        )
        self._notify_low_stock(source_location_id)
        return {
            "source_location_id": source_location_id,
            "target_location_id": target_location_id,
            "product_id": product_id,
            "quantity": quantity,
            "source_stock_after": source_after,
            "target_stock_after": target_after,
        }

    # --- Kalıcılık ---

    def export_state(self) -> dict[str, Any]:
        """Defterlerin ve siparişlerin düz sözlük görünümü."""
        with self._lock:
            ledgers = list(self._ledgers.values())
            orders = list(self._orders.values())
        return {
            "version": SNAPSHOT_VERSION,
            "products": self.catalog.to_dict(),
            "ledgers": [ledger.to_dict() for ledger in ledgers],
            "orders": [order.to_dict() for order in orders],
        }

    def save(self, store: Any) -> dict[str, Any]:
        state = self.export_state()
        store.save(state)
        logger.info("Snapshot kaydedildi: %d lokasyon, %d sipariş", len(state["ledgers"]), len(state["orders"]))
        return state

    @classmethod
    def from_state(cls, state: Mapping[str, Any], **kwargs: Any) -> "FulfillmentCoordinator":
        version = state.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValidationError(f"Desteklenmeyen snapshot sürümü: {version}")
        catalog = ProductCatalog.from_dict(state.get("products", []))
        coordinator = cls(catalog, **kwargs)
        for data in state.get("ledgers", []):
            ledger = InventoryLedger.from_dict(data, catalog)
            coordinator._ledgers[ledger.location_id] = ledger
        for data in state.get("orders", []):
            order = Order.from_dict(data, catalog)
            coordinator._orders[order.order_id] = order
        return coordinator

    @classmethod
    def load(cls, store: Any, **kwargs: Any) -> Optional["FulfillmentCoordinator"]:
        state = store.load()
        if state is None:
            return None
        return cls.from_state(state, **kwargs)

    # --- Yardımcılar ---

    def _within_return_window(self, order: Order, now: datetime) -> bool:
        if order.delivery_date is None:
            return False
        return now - order.delivery_date <= timedelta(days=self.config.return_window_days)

    def _involved_ledgers(self, order: Order, target: OrderStatus) -> list[InventoryLedger]:
        if target == OrderStatus.SHIPPED:
            ids = [order.source_location_id]
        elif target == OrderStatus.DELIVERED:
            ids = [order.destination_location_id]
        elif target == OrderStatus.RETURNED:
            ids = [order.destination_location_id, order.source_location_id]
        else:
            return []
        ledgers = {l.location_id: l for l in map(self._optional_ledger, ids) if l is not None}
        # Kilitlenme olmaması için kilitler hep aynı sırada alınır
        return [ledgers[k] for k in sorted(ledgers)]

    def _optional_ledger(self, location_id: Optional[str]) -> Optional[InventoryLedger]:
        if location_id is None:
            return None
        with self._lock:
            return self._ledgers.get(location_id)

    def _require_ledger(self, location_id: Optional[str], order: Order) -> InventoryLedger:
        ledger = self._optional_ledger(location_id)
        if ledger is None:
            raise ValidationError(
                f"Sipariş {order.order_id} için çıkış lokasyonunun stok defteri yok: {location_id}"
            )
        return ledger

    def _notify_order(self, order: Order, message: str) -> None:
        if self.notifications is not None:
            self.notifications.publish_order_update(order, message)

    def _notify_low_stock(self, location_id: Optional[str]) -> None:
        if self.notifications is None or location_id is None:
            return
        ledger = self._optional_ledger(location_id)
        if ledger is None:
            return
        low = ledger.check_low_stock()
        if low:
            positions = ledger.snapshot()
            self.notifications.publish_low_stock(location_id, {pid: positions[pid] for pid in low})


def _to_status(value: Union[OrderStatus, str]) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).lower())
    except ValueError:
        raise ValidationError(f"Bilinmeyen sipariş durumu: {value!r}") from None


def _effect(ledger: InventoryLedger, product_id: str, change: int) -> dict:
    return {"location_id": ledger.location_id, "product_id": product_id, "change": change}
