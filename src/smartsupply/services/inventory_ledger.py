"""Inventory Ledger - lokasyon bazında stok defteri.

- Ürün bazında fiziksel stok, rezervasyon ve yeniden sipariş eşiği tutar
- Negatif stok yasaktır: ihlal eden işlem reddedilir, kırpılmaz
- Rezervasyon, fiziksel stoğa dokunmadan satılabilir miktarı düşürür
- Her değişiklik StockMovement olarak geçmişe yazılır
- Tüm oku-kontrol et-yaz dizileri lokasyon kilidi altında seri hale getirilir
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional, Union

from smartsupply.exceptions import InsufficientStockError, NotFoundError, StockShortage, ValidationError
from smartsupply.models.order import ProductLookup
from smartsupply.models.supply import (
    LocationType,
    MovementType,
    StockMovement,
    StockPosition,
    check_quantity,
    utcnow,
)

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Tek bir lokasyonun (depo veya mağaza) stok defteri."""

    def __init__(
        self,
        location_id: str,
        catalog: ProductLookup,
        location_type: Union[LocationType, str] = LocationType.WAREHOUSE,
    ):
        if not location_id:
            raise ValidationError("Lokasyon kimliği boş olamaz")
        self.location_id = location_id
        try:
            self.location_type = LocationType(location_type)
        except ValueError:
            raise ValidationError(f"Bilinmeyen lokasyon tipi: {location_type!r}") from None
        self._catalog = catalog
        # {product_id: adet}
        self._stock: dict[str, int] = {}
        self._reserved: dict[str, int] = {}
        self._thresholds: dict[str, int] = {}
        self._history: list[StockMovement] = []
        self._lock = threading.RLock()
        self.last_updated: datetime = utcnow()

    @contextmanager
    def locked(self) -> Iterator["InventoryLedger"]:
        """Birden fazla işlemi tek bir atomik blokta çalıştırmak için lokasyon kilidi."""
        with self._lock:
            yield self

    # --- Okuma ---

    def get_stock(self, product_id: str) -> int:
        with self._lock:
            return self._stock.get(product_id, 0)

    def get_reserved(self, product_id: str) -> int:
        with self._lock:
            return self._reserved.get(product_id, 0)

    def available(self, product_id: str) -> int:
        """Satılabilir miktar: fiziksel stok - rezervasyon."""
        with self._lock:
            return self._stock.get(product_id, 0) - self._reserved.get(product_id, 0)

    def is_in_stock(self, product_id: str, quantity: int) -> bool:
        check_quantity(quantity)
        return self.available(product_id) >= quantity

    def get_reorder_threshold(self, product_id: str) -> int:
        with self._lock:
            return self._thresholds.get(product_id, 0)

    # --- Stok değişiklikleri ---

    def add_stock(
        self,
        product_id: str,
        quantity: int,
        triggered_by: str = "manual",
        order_id: Optional[str] = None,
    ) -> int:
        """Stok ekler ve yeni stok miktarını döndürür. Tekrarlı çağrılar birikir."""
        check_quantity(quantity)
        self._catalog.get(product_id)
        with self._lock:
            before = self._stock.get(product_id, 0)
            self._stock[product_id] = before + quantity
            self._record(MovementType.ADD, product_id, quantity, before, triggered_by, order_id)
            return self._stock[product_id]

    def remove_stock(
        self,
        product_id: str,
        quantity: int,
        triggered_by: str = "manual",
        order_id: Optional[str] = None,
    ) -> int:
        """Stok düşer ve yeni stok miktarını döndürür.

        Rezerve edilmiş stok düşülemez; istenen miktar satılabilir miktarı
        aşarsa InsufficientStockError fırlatılır ve stok değişmez.
        """
        check_quantity(quantity)
        with self._lock:
            self._require_available(product_id, quantity)
            before = self._stock.get(product_id, 0)
            self._stock[product_id] = before - quantity
            self._record(MovementType.REMOVE, product_id, quantity, before, triggered_by, order_id)
            return self._stock[product_id]

    def reserve(
        self,
        product_id: str,
        quantity: int,
        triggered_by: str = "manual",
        order_id: Optional[str] = None,
    ) -> int:
        """Fiziksel stoğa dokunmadan rezervasyon yapar; toplam rezervasyonu döndürür."""
        check_quantity(quantity)
        with self._lock:
            self._require_available(product_id, quantity)
            self._reserved[product_id] = self._reserved.get(product_id, 0) + quantity
            before = self._stock.get(product_id, 0)
            self._record(MovementType.RESERVE, product_id, quantity, before, triggered_by, order_id)
            return self._reserved[product_id]

    def release(
        self,
        product_id: str,
        quantity: int,
        triggered_by: str = "manual",
        order_id: Optional[str] = None,
    ) -> int:
        """Rezervasyonu serbest bırakır; kalan rezervasyonu döndürür."""
        check_quantity(quantity)
        with self._lock:
            reserved = self._reserved.get(product_id, 0)
            if quantity > reserved:
                raise ValidationError(
                    f"Serbest bırakılacak miktar rezervasyonu aşıyor: "
                    f"{self.location_id}/{product_id} rezerve={reserved}, istenen={quantity}"
                )
            self._set_reserved(product_id, reserved - quantity)
            before = self._stock.get(product_id, 0)
            self._record(MovementType.RELEASE, product_id, quantity, before, triggered_by, order_id)
            return reserved - quantity

    def commit(
        self,
        product_id: str,
        quantity: int,
        triggered_by: str = "manual",
        order_id: Optional[str] = None,
    ) -> int:
        """Rezervasyonu fiziksel çıkışa çevirir; yeni stok miktarını döndürür."""
        check_quantity(quantity)
        with self._lock:
            reserved = self._reserved.get(product_id, 0)
            if quantity > reserved:
                raise ValidationError(
                    f"Kesinleştirilecek miktar rezervasyonu aşıyor: "
                    f"{self.location_id}/{product_id} rezerve={reserved}, istenen={quantity}"
                )
            before = self._stock.get(product_id, 0)
            self._set_reserved(product_id, reserved - quantity)
            self._stock[product_id] = before - quantity
            self._record(MovementType.COMMIT, product_id, quantity, before, triggered_by, order_id)
            return self._stock[product_id]

    # --- Yeniden sipariş eşikleri ---

    def set_reorder_threshold(self, product_id: str, threshold: int) -> None:
        _check_threshold(threshold)
        self._catalog.get(product_id)
        with self._lock:
            self._thresholds[product_id] = threshold
            self.last_updated = utcnow()

    def check_low_stock(self) -> set[str]:
        """Stoğu eşiğe eşit veya altında olan tüm ürünleri döndürür."""
        with self._lock:
            tracked = set(self._stock) | set(self._thresholds)
            return {
                product_id
                for product_id in tracked
                if self._stock.get(product_id, 0) <= self._thresholds.get(product_id, 0)
            }

    def low_stock_report(self) -> set[str]:
        return self.check_low_stock()

    # --- Raporlama görünümleri ---

    def value_of(self) -> Decimal:
        """Stok değeri; her zaman katalogdaki güncel fiyat kullanılır."""
        with self._lock:
            stock = dict(self._stock)
        total = Decimal("0")
        for product_id, quantity in stock.items():
            if quantity:
                total += self._catalog.get(product_id).unit_price * quantity
        return total

    def snapshot(self) -> dict[str, StockPosition]:
        """Raporlama/analitik için salt okunur görünüm: {product_id: (stok, eşik)}."""
        with self._lock:
            tracked = list(self._stock) + [p for p in self._thresholds if p not in self._stock]
            return {
                product_id: StockPosition(
                    stock=self._stock.get(product_id, 0),
                    threshold=self._thresholds.get(product_id, 0),
                )
                for product_id in tracked
            }

    def products_by_category(self, category: str) -> dict[str, int]:
        with self._lock:
            stock = dict(self._stock)
        return {
            product_id: quantity
            for product_id, quantity in stock.items()
            if self._catalog.get(product_id).category == category
        }

    def history(
        self, product_id: Optional[str] = None, order_id: Optional[str] = None
    ) -> list[StockMovement]:
        """Stok hareket geçmişini filtreli olarak döndürür."""
        with self._lock:
            entries = list(self._history)
        if product_id:
            entries = [e for e in entries if e.product_id == product_id]
        if order_id:
            entries = [e for e in entries if e.order_id == order_id]
        return entries

    # --- Yardımcılar ---

    def _require_available(self, product_id: str, quantity: int) -> None:
        available = self._stock.get(product_id, 0) - self._reserved.get(product_id, 0)
        if quantity > available:
            logger.warning(
                "Yetersiz stok: %s/%s istenen=%d, mevcut=%d",
                self.location_id, product_id, quantity, available,
            )
            raise InsufficientStockError(
                [StockShortage(product_id, self.location_id, quantity, available)]
            )

    def _require_known(self, product_id: str) -> None:
        try:
            self._catalog.get(product_id)
        except NotFoundError:
            raise ValidationError(f"Snapshot katalogda olmayan ürün içeriyor: {product_id}") from None

    def _set_reserved(self, product_id: str, quantity: int) -> None:
        if quantity:
            self._reserved[product_id] = quantity
        else:
            self._reserved.pop(product_id, None)

    def _record(
        self,
        movement_type: MovementType,
        product_id: str,
        quantity: int,
        stock_before: int,
        triggered_by: str,
        order_id: Optional[str],
    ) -> None:
        movement = StockMovement(
            entry_id=str(uuid.uuid4()),
            location_id=self.location_id,
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            stock_before=stock_before,
            stock_after=self._stock.get(product_id, 0),
            reserved_after=self._reserved.get(product_id, 0),
            triggered_by=triggered_by,
            order_id=order_id,
        )
        self._history.append(movement)
        self.last_updated = movement.timestamp
        logger.info(
            "Stok hareketi [%s] %s/%s x%d: %d -> %d",
            movement_type.value, self.location_id, product_id, quantity,
            stock_before, movement.stock_after,
        )

    # --- Snapshot desteği ---

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "location_id": self.location_id,
                "location_type": self.location_type.value,
                "stock": dict(self._stock),
                "reserved": dict(self._reserved),
                "thresholds": dict(self._thresholds),
                "last_updated": self.last_updated.isoformat(),
            }

    @classmethod
    def from_dict(cls, data: dict, catalog: ProductLookup) -> "InventoryLedger":
        ledger = cls(data["location_id"], catalog, data.get("location_type", LocationType.WAREHOUSE))
        stock = data.get("stock", {})
        reserved = data.get("reserved", {})
        thresholds = data.get("thresholds", {})
        for product_id in {*stock, *reserved, *thresholds}:
            ledger._require_known(product_id)
        for product_id, quantity in stock.items():
            if int(quantity) < 0:
                raise ValidationError(f"Snapshot negatif stok içeriyor: {product_id}={quantity}")
            ledger._stock[product_id] = int(quantity)
        for product_id, quantity in reserved.items():
            if not 0 <= int(quantity) <= ledger._stock.get(product_id, 0):
                raise ValidationError(f"Snapshot geçersiz rezervasyon içeriyor: {product_id}={quantity}")
            ledger._set_reserved(product_id, int(quantity))
        for product_id, threshold in thresholds.items():
            ledger._thresholds[product_id] = _check_threshold(threshold)
        if data.get("last_updated"):
            ledger.last_updated = datetime.fromisoformat(data["last_updated"])
        return ledger

    def __repr__(self) -> str:
        return (
            f"InventoryLedger(location={self.location_id!r}, type={self.location_type.value}, "
            f"products={len(self._stock)})"
        )


def _check_threshold(threshold: int) -> int:
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ValidationError(f"Eşik tam sayı olmalı: {threshold!r}")
    if threshold < 0:
        raise ValidationError(f"Eşik değeri negatif olamaz: {threshold}")
    return threshold
