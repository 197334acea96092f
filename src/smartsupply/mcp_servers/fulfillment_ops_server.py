"""
Fulfillment Operations MCP Server

Exposes order placement, status transitions and ledger views as MCP tools.
State lives in one in-memory FulfillmentCoordinator; when
SMARTSUPPLY_SNAPSHOT_BUCKET is set it is loaded from and saved to S3.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.types import TextContent, Tool

from smartsupply.config import CoreConfig, configure_logging
from smartsupply.exceptions import InsufficientStockError, SmartSupplyError, ValidationError
from smartsupply.models.order import Order
from smartsupply.models.supply import OrderOptions, Product
from smartsupply.services.fulfillment_coordinator import FulfillmentCoordinator
from smartsupply.services.product_catalog import ProductCatalog
from smartsupply.services.snapshot_store import S3SnapshotStore

logger = logging.getLogger(__name__)

app = Server("fulfillment-ops")

MUTATING_TOOLS = {
    "create_product", "update_price", "register_location",
    "place_order", "transition_order", "add_stock", "remove_stock",
    "transfer_stock", "restock_cancelled_order",
}

_coordinator: Optional[FulfillmentCoordinator] = None
_store: Optional[S3SnapshotStore] = None


def _to_json(obj):
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(_to_json(i) for i in obj)
    if isinstance(obj, dict):
        return {k: _to_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_json(i) for i in obj]
    return obj


def _result(data):
    return [TextContent(type="text", text=json.dumps(_to_json(data), indent=2, ensure_ascii=False))]


def _order_view(order: Order) -> Dict:
    return {
        "order_id": order.order_id,
        "status": order.status.value,
        "items": order.items,
        "placed_by": order.placed_by_party_id,
        "fulfiller": order.fulfilling_party_id,
        "ship_from": order.source_location_id,
        "ship_to": order.destination_location_id,
        "priority": order.priority,
        "urgent": order.urgent,
        "total_amount": order.total_amount,
        "created_at": order.created_at,
        "shipped_at": order.shipped_at,
        "delivery_date": order.delivery_date,
    }


def _product_view(product: Product) -> Dict:
    return {
        "product_id": product.product_id,
        "name": product.name,
        "unit_price": product.unit_price,
        "category": product.category,
        "supplier_id": product.supplier_id,
        "active": product.active,
    }


TOOLS: List[Tool] = [
    Tool(name="create_product", description="Register a product in the catalog",
         inputSchema={"type": "object", "properties": {
             "product_id": {"type": "string"}, "name": {"type": "string"},
             "price": {"type": "string"}, "category": {"type": "string"}, "supplier_id": {"type": "string"}
         }, "required": ["product_id", "name", "price", "category"]}),
    Tool(name="update_price", description="Change a product's unit price (open orders follow the new price)",
         inputSchema={"type": "object", "properties": {
             "product_id": {"type": "string"}, "price": {"type": "string"}
         }, "required": ["product_id", "price"]}),
    Tool(name="register_location", description="Create an inventory ledger for a warehouse or store",
         inputSchema={"type": "object", "properties": {
             "location_id": {"type": "string"},
             "location_type": {"type": "string", "enum": ["warehouse", "store"], "default": "warehouse"}
         }, "required": ["location_id"]}),
    Tool(name="place_order", description="Place a new order in Placed state (no stock is committed)",
         inputSchema={"type": "object", "properties": {
             "items": {"type": "object", "additionalProperties": {"type": "integer", "minimum": 1}},
             "placed_by": {"type": "string"}, "fulfiller": {"type": "string"},
             "priority": {"type": "integer", "minimum": 1, "maximum": 5}, "urgent": {"type": "boolean"},
             "ship_from": {"type": "string"}, "ship_to": {"type": "string"},
             "shipping_address": {"type": "string"}, "notes": {"type": "string"}
         }, "required": ["items", "placed_by"]}),
    Tool(name="transition_order", description="Move an order to a new status with its stock effect",
         inputSchema={"type": "object", "properties": {
             "order_id": {"type": "string"},
             "target_status": {"type": "string", "enum": ["processing", "shipped", "delivered", "cancelled", "returned"]}
         }, "required": ["order_id", "target_status"]}),
    Tool(name="get_order", description="Get an order with its current total",
         inputSchema={"type": "object", "properties": {"order_id": {"type": "string"}}, "required": ["order_id"]}),
    Tool(name="ledger_snapshot", description="Stock and reorder threshold per product at a location",
         inputSchema={"type": "object", "properties": {"location_id": {"type": "string"}}, "required": ["location_id"]}),
    Tool(name="low_stock_report", description="Products at or below their reorder threshold at a location",
         inputSchema={"type": "object", "properties": {"location_id": {"type": "string"}}, "required": ["location_id"]}),
    Tool(name="add_stock", description="Manual stock receipt at a location",
         inputSchema={"type": "object", "properties": {
             "location_id": {"type": "string"}, "product_id": {"type": "string"},
             "quantity": {"type": "integer", "minimum": 1}
         }, "required": ["location_id", "product_id", "quantity"]}),
    Tool(name="remove_stock", description="Manual stock removal (stock-take adjustment)",
         inputSchema={"type": "object", "properties": {
             "location_id": {"type": "string"}, "product_id": {"type": "string"},
             "quantity": {"type": "integer", "minimum": 1}
         }, "required": ["location_id", "product_id", "quantity"]}),
    Tool(name="transfer_stock", description="Atomic stock transfer between two locations",
         inputSchema={"type": "object", "properties": {
             "source_location_id": {"type": "string"}, "target_location_id": {"type": "string"},
             "product_id": {"type": "string"}, "quantity": {"type": "integer", "minimum": 1}
         }, "required": ["source_location_id", "target_location_id", "product_id", "quantity"]}),
    Tool(name="restock_cancelled_order", description="Receive stock of an order cancelled after shipment back at its origin",
         inputSchema={"type": "object", "properties": {"order_id": {"type": "string"}}, "required": ["order_id"]}),
]

REQUIRED_ARGUMENTS = {tool.name: tool.inputSchema.get("required", []) for tool in TOOLS}


@app.list_tools()
async def list_tools() -> List[Tool]:
    return TOOLS


def handle_tool(coordinator: FulfillmentCoordinator, name: str, arguments: Dict[str, Any]) -> Dict:
    """Tool çağrısını koordinatöre yönlendirir; çekirdek hatalarını yanıt sözlüğüne çevirir."""
    handlers = {
        "create_product": lambda a: _product_view(coordinator.catalog.create(
            a["product_id"], a["name"], a["price"], a["category"], a.get("supplier_id")
        )),
        "update_price": lambda a: _product_view(coordinator.catalog.update_price(a["product_id"], a["price"])),
        "register_location": lambda a: {
            "location_id": coordinator.register_ledger(a["location_id"], a.get("location_type", "warehouse")).location_id
        },
        "place_order": lambda a: _order_view(coordinator.place_order(
            a["items"], a["placed_by"], a.get("fulfiller"),
            OrderOptions(
                priority=a.get("priority"), urgent=a.get("urgent", False),
                ship_from=a.get("ship_from"), ship_to=a.get("ship_to"),
                shipping_address=a.get("shipping_address"), notes=a.get("notes"),
            ),
        )),
        "transition_order": lambda a: _order_view(coordinator.transition(a["order_id"], a["target_status"])),
        "get_order": lambda a: _order_view(coordinator.get_order(a["order_id"])),
        "ledger_snapshot": lambda a: {
            pid: {"stock": pos.stock, "threshold": pos.threshold}
            for pid, pos in coordinator.snapshot(a["location_id"]).items()
        },
        "low_stock_report": lambda a: sorted(coordinator.low_stock_report(a["location_id"])),
        "add_stock": lambda a: {"stock": coordinator.ledger(a["location_id"]).add_stock(a["product_id"], a["quantity"])},
        "remove_stock": lambda a: {"stock": coordinator.ledger(a["location_id"]).remove_stock(a["product_id"], a["quantity"])},
        "transfer_stock": lambda a: coordinator.transfer_stock(
            a["source_location_id"], a["target_location_id"], a["product_id"], a["quantity"]
        ),
        "restock_cancelled_order": lambda a: _order_view(coordinator.restock_cancelled_order(a["order_id"])),
    }
    handler = handlers.get(name)
    if not handler:
        raise ValueError(f"Unknown tool: {name}")

    missing = [param for param in REQUIRED_ARGUMENTS[name] if param not in arguments]
    try:
        if missing:
            raise ValidationError(f"Eksik parametre: {', '.join(missing)}")
        return {"success": True, "data": handler(arguments)}
    except SmartSupplyError as e:
        error = e

    logger.warning("Tool hatası [%s]: %s", name, error)
    response = {"success": False, "error": str(error), "error_type": type(error).__name__}
    if isinstance(error, InsufficientStockError):
        response["shortages"] = [
            {"product_id": s.product_id, "location_id": s.location_id,
             "required": s.required, "available": s.available}
            for s in error.shortages
        ]
    return response


def build_coordinator(config: CoreConfig) -> FulfillmentCoordinator:
    """S3 snapshot tanımlıysa oradan yükler, yoksa boş koordinatör oluşturur."""
    global _store
    if config.snapshot_bucket:
        _store = S3SnapshotStore.from_config(config)
        loaded = FulfillmentCoordinator.load(_store, config=config)
        if loaded is not None:
            return loaded
    return FulfillmentCoordinator(ProductCatalog(), config=config)


def get_coordinator() -> FulfillmentCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = build_coordinator(CoreConfig.from_env())
    return _coordinator


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> List[TextContent]:
    coordinator = get_coordinator()
    response = handle_tool(coordinator, name, arguments)
    if response["success"] and name in MUTATING_TOOLS and _store is not None:
        coordinator.save(_store)
    return _result(response)


if __name__ == "__main__":
    import asyncio
    from mcp.server.stdio import stdio_server

    async def run():
        config = CoreConfig.from_env()
        configure_logging(config.log_level)
        async with stdio_server() as (read, write):
            await app.run(read, write, app.create_initialization_options())

    asyncio.run(run())
