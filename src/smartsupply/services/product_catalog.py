"""Ürün kataloğu - ürün kimliği ve güncel fiyat kaynağı."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Optional

from smartsupply.exceptions import NotFoundError, ValidationError
from smartsupply.models.supply import Product, to_price

logger = logging.getLogger(__name__)


class ProductCatalog:
    """Ürünleri kimlikleriyle saklar. Ürünler silinmez, sadece pasifleştirilir."""

    def __init__(self) -> None:
        self._products: dict[str, Product] = {}
        self._lock = threading.RLock()

    def create(
        self,
        product_id: str,
        name: str,
        price: Any,
        category: str,
        supplier_id: Optional[str] = None,
        description: str = "",
    ) -> Product:
        if not product_id:
            raise ValidationError("Ürün kimliği boş olamaz")
        unit_price = to_price(price)

        with self._lock:
            if product_id in self._products:
                raise ValidationError(f"Ürün zaten kayıtlı: {product_id}")
            product = Product(
                product_id=product_id,
                name=name,
                unit_price=unit_price,
                category=category,
                supplier_id=supplier_id,
                description=description,
            )
            self._products[product_id] = product

        logger.info("Ürün oluşturuldu: %s (%s, fiyat=%s)", product_id, name, unit_price)
        return product

    def get(self, product_id: str) -> Product:
        with self._lock:
            product = self._products.get(product_id)
        if product is None:
            raise NotFoundError("Ürün", product_id)
        return product

    def update_price(self, product_id: str, new_price: Any) -> Product:
        """Fiyatı günceller. Açık siparişler yeni fiyatı bir sonraki okumada görür."""
        unit_price = to_price(new_price)
        with self._lock:
            product = self.get(product_id)
            old_price = product.unit_price
            product.unit_price = unit_price
        logger.info("Fiyat güncellendi: %s %s -> %s", product_id, old_price, unit_price)
        return product

    def update_category(self, product_id: str, category: str) -> Product:
        if not category:
            raise ValidationError("Kategori boş olamaz")
        with self._lock:
            product = self.get(product_id)
            product.category = category
        return product

    def deactivate(self, product_id: str) -> Product:
        with self._lock:
            product = self.get(product_id)
            product.active = False
        logger.info("Ürün pasifleştirildi: %s", product_id)
        return product

    def list_products(self, active_only: bool = False) -> list[Product]:
        with self._lock:
            products = list(self._products.values())
        if active_only:
            products = [p for p in products if p.active]
        return products

    def __contains__(self, product_id: object) -> bool:
        with self._lock:
            return product_id in self._products

    def __len__(self) -> int:
        with self._lock:
            return len(self._products)

    # --- Snapshot desteği ---

    def to_dict(self) -> list[dict]:
        with self._lock:
            return [
                {
                    "product_id": p.product_id,
                    "name": p.name,
                    "unit_price": str(p.unit_price),
                    "category": p.category,
                    "supplier_id": p.supplier_id,
                    "description": p.description,
                    "active": p.active,
                    "created_at": p.created_at.isoformat(),
                }
                for p in self._products.values()
            ]

    @classmethod
    def from_dict(cls, data: list[dict]) -> "ProductCatalog":
        catalog = cls()
        for item in data:
            product = Product(
                product_id=item["product_id"],
                name=item["name"],
                unit_price=to_price(item["unit_price"]),
                category=item["category"],
                supplier_id=item.get("supplier_id"),
                description=item.get("description", ""),
                active=bool(item.get("active", True)),
                created_at=datetime.fromisoformat(item["created_at"]),
            )
            catalog._products[product.product_id] = product
        return catalog
