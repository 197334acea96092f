"""Stok Tutarlılığı Denetimi - defter değişmezlerinin doğrulanması.

- Negatif stok kontrolü
- Rezervasyonun fiziksel stoğu aşmadığı kontrolü
- Transfer öncesi/sonrası stok korunumu
- Beklenen toplamlarla günlük mutabakat
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from smartsupply.models.supply import utcnow
from smartsupply.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


@dataclass
class AuditResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class StockAuditor:
    """Stok defterleri üzerinde değişmez denetimleri yapar."""

    def __init__(self) -> None:
        # Beklenen toplam stok: {product_id: toplam}
        self._expected_totals: dict[str, int] = {}

    def check_ledgers(self, ledgers: Iterable[InventoryLedger]) -> AuditResult:
        """Negatif stok ve fazla rezervasyon olmadığını doğrular."""
        errors = []
        warnings = []
        for ledger in ledgers:
            with ledger.locked():
                for product_id, position in ledger.snapshot().items():
                    reserved = ledger.get_reserved(product_id)
                    if position.stock < 0:
                        errors.append(
                            f"Negatif stok tespit edildi: {ledger.location_id}/{product_id} = {position.stock}"
                        )
                    if reserved > position.stock:
                        errors.append(
                            f"Rezervasyon stoğu aşıyor: {ledger.location_id}/{product_id} "
                            f"rezerve={reserved}, stok={position.stock}"
                        )
                    elif reserved:
                        warnings.append(
                            f"Açık rezervasyon: {ledger.location_id}/{product_id} rezerve={reserved}"
                        )

        if errors:
            logger.error("Stok denetimi başarısız: %d hata", len(errors))
        return AuditResult(is_valid=not errors, errors=errors, warnings=warnings)

    def verify_stock_conservation(
        self,
        product_id: str,
        stock_before: dict[str, int],
        stock_after: dict[str, int],
    ) -> AuditResult:
        """Lokasyon bazlı iki stok görünümünde ürün toplamının korunduğunu doğrular."""
        total_before = sum(stock_before.values())
        total_after = sum(stock_after.values())
        errors = []
        if total_before != total_after:
            errors.append(
                f"Stok korunumu ihlali: {product_id} "
                f"önceki toplam={total_before}, sonraki toplam={total_after}"
            )
        return AuditResult(is_valid=not errors, errors=errors)

    def stock_by_location(self, ledgers: Iterable[InventoryLedger], product_id: str) -> dict[str, int]:
        return {ledger.location_id: ledger.get_stock(product_id) for ledger in ledgers}

    def register_total_stock(self, product_id: str, total: int) -> None:
        """Bir ürünün tüm lokasyonlardaki beklenen toplamını kaydeder."""
        self._expected_totals[product_id] = total

    def reconcile_totals(self, ledgers: Iterable[InventoryLedger]) -> dict:
        """Kayıtlı toplamları defterlerdeki gerçek toplamlarla karşılaştırır."""
        actual_totals: dict[str, int] = {}
        for ledger in ledgers:
            for product_id, position in ledger.snapshot().items():
                actual_totals[product_id] = actual_totals.get(product_id, 0) + position.stock

        details: dict[str, dict] = {}
        discrepancies = []
        for product_id, expected in self._expected_totals.items():
            actual = actual_totals.get(product_id, 0)
            details[product_id] = {"expected": expected, "actual": actual, "match": actual == expected}
            if actual != expected:
                discrepancies.append({
                    "product_id": product_id,
                    "expected": expected,
                    "actual": actual,
                    "difference": actual - expected,
                })

        return {
            "verification_date": utcnow().isoformat(),
            "total_products_checked": len(self._expected_totals),
            "discrepancies_found": len(discrepancies),
            "discrepancies": discrepancies,
            "all_valid": not discrepancies,
            "details": details,
        }
