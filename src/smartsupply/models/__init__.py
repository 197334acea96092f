from smartsupply.models.order import Order
from smartsupply.models.supply import (
    Capability,
    LocationType,
    MovementType,
    OrderOptions,
    OrderStatus,
    Party,
    PartyRole,
    Product,
    StockMovement,
    StockPosition,
    TransitionRecord,
)

__all__ = [
    "Capability",
    "LocationType",
    "MovementType",
    "Order",
    "OrderOptions",
    "OrderStatus",
    "Party",
    "PartyRole",
    "Product",
    "StockMovement",
    "StockPosition",
    "TransitionRecord",
]
