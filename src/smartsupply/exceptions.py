"""Çekirdek hata sınıfları.

Tüm hatalar SmartSupplyError'dan türer. Kütüphane kodu hata fırlatır,
yalnızca MCP sınırı bunları yanıt sözlüğüne çevirir.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class SmartSupplyError(Exception):
    """Tüm çekirdek hatalarının temel sınıfı."""


class ValidationError(SmartSupplyError):
    """Geçersiz girdi (pozitif olmayan miktar/fiyat vb.). Hiçbir değişiklik uygulanmaz."""


class NotFoundError(SmartSupplyError):
    """Bilinmeyen ürün, sipariş veya lokasyon."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} bulunamadı: {key}")


@dataclass(frozen=True)
class StockShortage:
    product_id: str
    location_id: str
    required: int
    available: int


class InsufficientStockError(SmartSupplyError):
    """Yetersiz stok. Ürün bazında istenen ve mevcut miktarları taşır."""

    def __init__(self, shortages: list[StockShortage]):
        if not shortages:
            raise ValueError("En az bir eksik kalem gerekli")
        self.shortages = list(shortages)
        details = ", ".join(
            f"{s.location_id}/{s.product_id} istenen={s.required}, mevcut={s.available}"
            for s in self.shortages
        )
        super().__init__(f"Yetersiz stok: {details}")

    @property
    def required(self) -> int:
        return self.shortages[0].required

    @property
    def available(self) -> int:
        return self.shortages[0].available

    @property
    def product_id(self) -> str:
        return self.shortages[0].product_id


class InvalidTransitionError(SmartSupplyError):
    """Durum makinesinde tanımlı olmayan geçiş."""

    def __init__(self, from_status: Any, to_status: Any, reason: Optional[str] = None):
        self.from_status = from_status
        self.to_status = to_status
        message = f"Geçersiz durum geçişi: {_status_name(from_status)} -> {_status_name(to_status)}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ReturnWindowClosedError(InvalidTransitionError):
    """Delivered -> Returned geçişi iade penceresi dışında istendi."""

    def __init__(self, from_status: Any, to_status: Any):
        super().__init__(from_status, to_status, reason="iade süresi dolmuş")


class InvalidStateError(SmartSupplyError):
    """Düzenlenemez durumdaki siparişi değiştirme girişimi."""

    def __init__(self, order_id: str, status: Any, action: str):
        self.order_id = order_id
        self.status = status
        self.action = action
        super().__init__(
            f"Sipariş {order_id} {_status_name(status)} durumunda, '{action}' yapılamaz"
        )


def _status_name(status: Any) -> str:
    return getattr(status, "name", str(status))
