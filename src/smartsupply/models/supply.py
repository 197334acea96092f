"""Ürün, taraf, stok ve sipariş yaşam döngüsü veri modelleri."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from smartsupply.exceptions import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PLACED = "placed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def is_final(self) -> bool:
        """Toplam tutarın dondurulduğu durumlar."""
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED)


_STATUS_DESCRIPTIONS = {
    OrderStatus.PLACED: "Order has been placed",
    OrderStatus.PROCESSING: "Order is being processed",
    OrderStatus.SHIPPED: "Order has been shipped",
    OrderStatus.DELIVERED: "Order has been delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
    OrderStatus.RETURNED: "Order has been returned",
}


class LocationType(str, Enum):
    WAREHOUSE = "warehouse"
    STORE = "store"


class MovementType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    RESERVE = "reserve"
    RELEASE = "release"
    COMMIT = "commit"


class Capability(str, Enum):
    PLACE_ORDERS = "place_orders"
    FULFILL_ORDERS = "fulfill_orders"
    MANAGE_STOCK = "manage_stock"
    MANAGE_CATALOG = "manage_catalog"
    RECEIVE_SHIPMENTS = "receive_shipments"
    RECEIVE_LOW_STOCK_ALERTS = "receive_low_stock_alerts"


class PartyRole(str, Enum):
    ADMIN = "admin"
    SUPPLIER = "supplier"
    WAREHOUSE_MANAGER = "warehouse_manager"
    RETAILER = "retailer"

    @property
    def access_level(self) -> int:
        return _ACCESS_LEVELS[self]

    @property
    def default_capabilities(self) -> frozenset[Capability]:
        return _ROLE_CAPABILITIES[self]


_ACCESS_LEVELS = {
    PartyRole.ADMIN: 4,
    PartyRole.SUPPLIER: 3,
    PartyRole.WAREHOUSE_MANAGER: 2,
    PartyRole.RETAILER: 1,
}

_ROLE_CAPABILITIES = {
    PartyRole.ADMIN: frozenset(Capability),
    PartyRole.SUPPLIER: frozenset({Capability.FULFILL_ORDERS, Capability.MANAGE_CATALOG}),
    PartyRole.WAREHOUSE_MANAGER: frozenset({
        Capability.FULFILL_ORDERS,
        Capability.MANAGE_STOCK,
        Capability.RECEIVE_SHIPMENTS,
        Capability.RECEIVE_LOW_STOCK_ALERTS,
    }),
    PartyRole.RETAILER: frozenset({
        Capability.PLACE_ORDERS,
        Capability.MANAGE_STOCK,
        Capability.RECEIVE_SHIPMENTS,
        Capability.RECEIVE_LOW_STOCK_ALERTS,
    }),
}


@dataclass(eq=False)
class Product:
    """Ticarete konu ürün. Kimlik yalnızca product_id'dir."""

    product_id: str
    name: str
    unit_price: Decimal
    category: str
    supplier_id: Optional[str] = None
    description: str = ""
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "product_id" and "product_id" in self.__dict__:
            raise AttributeError("product_id değiştirilemez")
        if name == "unit_price":
            value = to_price(value)
        super().__setattr__(name, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Product):
            return NotImplemented
        return self.product_id == other.product_id

    def __hash__(self) -> int:
        return hash(self.product_id)


@dataclass
class Party:
    """Sistemdeki aktör (tedarikçi, depo, perakendeci, yönetici)."""

    party_id: str
    name: str
    role: PartyRole
    location_id: Optional[str] = None
    extra_capabilities: frozenset[Capability] = frozenset()

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.role.default_capabilities | self.extra_capabilities

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class StockPosition:
    stock: int
    threshold: int


@dataclass
class StockMovement:
    entry_id: str
    location_id: str
    product_id: str
    movement_type: MovementType
    quantity: int
    stock_before: int
    stock_after: int
    reserved_after: int
    triggered_by: str
    order_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def change_amount(self) -> int:
        return self.stock_after - self.stock_before


@dataclass
class OrderOptions:
    """Sipariş oluştururken tanınan isteğe bağlı alanlar."""

    order_id: Optional[str] = None
    priority: Optional[int] = None
    urgent: bool = False
    shipping_address: Optional[str] = None
    notes: Optional[str] = None
    # Stok lokasyonları; verilmezse taraf kimliklerinden türetilir
    ship_from: Optional[str] = None
    ship_to: Optional[str] = None


@dataclass
class TransitionRecord:
    record_id: str
    order_id: str
    from_status: OrderStatus
    to_status: OrderStatus
    inventory_effects: list[dict] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)


def check_quantity(quantity: Any, what: str = "Miktar") -> int:
    """Pozitif tam sayı miktarı doğrular; değilse ValidationError fırlatır."""
    # bool, int'in alt sınıfı olduğu için ayrıca reddedilir
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{what} tam sayı olmalı: {quantity!r}")
    if quantity <= 0:
        raise ValidationError(f"{what} pozitif olmalı: {quantity}")
    return quantity


def to_price(value: Any) -> Decimal:
    """Fiyatı Decimal'e çevirir; pozitif değilse ValidationError fırlatır."""
    if isinstance(value, bool):
        raise ValidationError(f"Geçersiz fiyat: {value!r}")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Geçersiz fiyat: {value!r}") from None
    if not price.is_finite() or price <= 0:
        raise ValidationError(f"Fiyat pozitif olmalı: {value}")
    return price
