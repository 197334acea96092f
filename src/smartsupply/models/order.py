"""Sipariş - kalemler, öncelik ve durum kaydı.

Durum ve teslim tarihi yalnızca FulfillmentCoordinator tarafından
değiştirilir. Kalemler sadece PLACED durumunda düzenlenebilir.
"""

from __future__ import annotations

import threading
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol

from smartsupply.exceptions import InvalidStateError, NotFoundError, ValidationError
from smartsupply.models.supply import OrderStatus, Product, check_quantity, utcnow


class ProductLookup(Protocol):
    def get(self, product_id: str) -> Product: ...


class Order:
    """Bir satın alma/satış siparişi."""

    def __init__(
        self,
        order_id: str,
        placed_by_party_id: str,
        catalog: ProductLookup,
        items: Mapping[str, int],
        fulfilling_party_id: Optional[str] = None,
        priority: int = 3,
        urgent: bool = False,
        shipping_address: Optional[str] = None,
        notes: Optional[str] = None,
        source_location_id: Optional[str] = None,
        destination_location_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        if not order_id:
            raise ValidationError("Sipariş kimliği boş olamaz")
        if not placed_by_party_id:
            raise ValidationError("Siparişi veren taraf boş olamaz")
        if not items:
            raise ValidationError("Sipariş en az bir kalem içermeli")

        self._lock = threading.RLock()
        self._catalog = catalog
        self.order_id = order_id
        self.placed_by_party_id = placed_by_party_id
        self.fulfilling_party_id = fulfilling_party_id
        self.source_location_id = source_location_id
        self.destination_location_id = destination_location_id
        self.shipping_address = shipping_address
        self.notes = notes
        self.created_at = created_at or utcnow()

        self._items: dict[str, int] = {}
        for product_id, quantity in items.items():
            self._check_orderable(product_id)
            self._items[product_id] = self._items.get(product_id, 0) + check_quantity(quantity)

        self._status = OrderStatus.PLACED
        self._shipped_at: Optional[datetime] = None
        self._delivery_date: Optional[datetime] = None
        self._frozen_total: Optional[Decimal] = None
        self._restocked = False
        self._status_history: list[tuple[OrderStatus, datetime]] = [
            (OrderStatus.PLACED, self.created_at)
        ]

        self._priority = 3
        self._requested_priority = 3
        self._urgent = False
        self.set_priority(priority)
        self.set_urgent(urgent)

    # --- Salt okunur görünümler ---

    @property
    def status(self) -> OrderStatus:
        return self._status

    @property
    def items(self) -> dict[str, int]:
        with self._lock:
            return dict(self._items)

    @property
    def shipped_at(self) -> Optional[datetime]:
        return self._shipped_at

    @property
    def delivery_date(self) -> Optional[datetime]:
        return self._delivery_date

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def urgent(self) -> bool:
        return self._urgent

    @property
    def restocked(self) -> bool:
        return self._restocked

    @property
    def status_history(self) -> list[tuple[OrderStatus, datetime]]:
        return list(self._status_history)

    @property
    def is_editable(self) -> bool:
        return self._status == OrderStatus.PLACED

    # --- Tutar hesaplama ---

    def calculate_total(self) -> Decimal:
        """Kalemlerin güncel birim fiyatlarla toplamını hesaplar."""
        with self._lock:
            total = Decimal("0")
            for product_id, quantity in self._items.items():
                total += self._catalog.get(product_id).unit_price * quantity
            return total

    @property
    def total_amount(self) -> Decimal:
        """Açık siparişte güncel toplam, kapanmış siparişte dondurulan toplam."""
        if self._frozen_total is not None:
            return self._frozen_total
        return self.calculate_total()

    # --- Kalem düzenleme (yalnızca PLACED) ---

    def add_item(self, product_id: str, quantity: int) -> None:
        with self._lock:
            self._require_editable("add_item")
            check_quantity(quantity)
            self._check_orderable(product_id)
            self._items[product_id] = self._items.get(product_id, 0) + quantity

    def remove_item(self, product_id: str) -> None:
        with self._lock:
            self._require_editable("remove_item")
            if product_id not in self._items:
                raise ValidationError(f"Ürün siparişte yok: {product_id}")
            if len(self._items) == 1:
                raise ValidationError("Siparişin son kalemi silinemez")
            del self._items[product_id]

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Kalem miktarını değiştirir; 0 verilirse kalem silinir."""
        with self._lock:
            self._require_editable("update_quantity")
            if quantity == 0 and not isinstance(quantity, bool):
                self.remove_item(product_id)
                return
            check_quantity(quantity)
            if product_id not in self._items:
                raise ValidationError(f"Ürün siparişte yok: {product_id}")
            self._items[product_id] = quantity

    def set_priority(self, priority: int) -> None:
        with self._lock:
            if self._status.is_final:
                raise InvalidStateError(self.order_id, self._status, "set_priority")
            if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
                raise ValidationError(f"Öncelik 1-5 arasında olmalı: {priority!r}")
            self._requested_priority = priority
            self._priority = 1 if self._urgent else priority

    def set_urgent(self, urgent: bool) -> None:
        with self._lock:
            if self._status.is_final:
                raise InvalidStateError(self.order_id, self._status, "set_urgent")
            self._urgent = bool(urgent)
            self._priority = 1 if self._urgent else self._requested_priority

    # --- Koordinatör tarafından kullanılır ---

    def _apply_status(self, new_status: OrderStatus, at: datetime) -> None:
        if new_status == OrderStatus.SHIPPED:
            self._shipped_at = at
        elif new_status == OrderStatus.DELIVERED:
            self._delivery_date = at
        if new_status.is_final and self._frozen_total is None:
            self._frozen_total = self.calculate_total()
        self._status = new_status
        self._status_history.append((new_status, at))

    def _mark_restocked(self) -> None:
        self._restocked = True

    def _require_editable(self, action: str) -> None:
        if not self.is_editable:
            raise InvalidStateError(self.order_id, self._status, action)

    def _check_orderable(self, product_id: str) -> None:
        try:
            product = self._catalog.get(product_id)
        except NotFoundError:
            raise ValidationError(f"Bilinmeyen ürün: {product_id}") from None
        if not product.active:
            raise ValidationError(f"Ürün aktif değil: {product_id}")

    # --- Snapshot desteği ---

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "order_id": self.order_id,
                "placed_by_party_id": self.placed_by_party_id,
                "fulfilling_party_id": self.fulfilling_party_id,
                "source_location_id": self.source_location_id,
                "destination_location_id": self.destination_location_id,
                "items": [[pid, qty] for pid, qty in self._items.items()],
                "status": self._status.value,
                "priority": self._priority,
                "requested_priority": self._requested_priority,
                "urgent": self._urgent,
                "shipping_address": self.shipping_address,
                "notes": self.notes,
                "created_at": self.created_at.isoformat(),
                "shipped_at": _iso(self._shipped_at),
                "delivery_date": _iso(self._delivery_date),
                "frozen_total": None if self._frozen_total is None else str(self._frozen_total),
                "restocked": self._restocked,
                "status_history": [[s.value, t.isoformat()] for s, t in self._status_history],
            }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], catalog: ProductLookup) -> "Order":
        """Snapshot'tan siparişi yeniden kurar. Ürün aktiflik kontrolü yapılmaz."""
        order = cls.__new__(cls)
        order._lock = threading.RLock()
        order._catalog = catalog
        order.order_id = data["order_id"]
        order.placed_by_party_id = data["placed_by_party_id"]
        order.fulfilling_party_id = data.get("fulfilling_party_id")
        order.source_location_id = data.get("source_location_id")
        order.destination_location_id = data.get("destination_location_id")
        order.shipping_address = data.get("shipping_address")
        order.notes = data.get("notes")
        order.created_at = datetime.fromisoformat(data["created_at"])
        order._items = {}
        for product_id, quantity in data["items"]:
            try:
                catalog.get(product_id)
            except NotFoundError:
                raise ValidationError(f"Snapshot katalogda olmayan ürün içeriyor: {product_id}") from None
            order._items[product_id] = check_quantity(quantity)
        if not order._items:
            raise ValidationError(f"Snapshot boş sipariş içeriyor: {order.order_id}")
        order._status = OrderStatus(data["status"])
        order._urgent = bool(data.get("urgent", False))
        order._requested_priority = int(data.get("requested_priority", data.get("priority", 3)))
        if not 1 <= order._requested_priority <= 5:
            raise ValidationError(f"Snapshot geçersiz öncelik içeriyor: {order._requested_priority}")
        order._priority = 1 if order._urgent else order._requested_priority
        order._shipped_at = _parse(data.get("shipped_at"))
        order._delivery_date = _parse(data.get("delivery_date"))
        frozen = data.get("frozen_total")
        order._frozen_total = None if frozen is None else Decimal(frozen)
        order._restocked = bool(data.get("restocked", False))
        order._status_history = [
            (OrderStatus(s), datetime.fromisoformat(t)) for s, t in data.get("status_history", [])
        ]
        return order

    def __repr__(self) -> str:
        return (
            f"Order(id={self.order_id!r}, items={len(self._items)}, "
            f"status={self._status.value}, priority={self._priority})"
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
