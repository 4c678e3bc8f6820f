"""
Read-side shapes for documents owned by other parts of the system.

Categories, products and suppliers are maintained elsewhere; the ledger
only looks them up to validate references before a saga starts.
"""
from __future__ import annotations

from dataclasses import dataclass

from .base import KIND_CATEGORY, KIND_PRODUCT, KIND_SUPPLIER, require_kind


CATEGORY_INCOME = "income"
CATEGORY_EXPENSE = "expense"


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    type: str
    parent_id: str | None = None

    @classmethod
    def from_document(cls, doc: dict) -> "Category":
        require_kind(doc, KIND_CATEGORY)
        return cls(
            id=doc["_id"],
            name=doc.get("name") or "",
            type=doc.get("type"),
            parent_id=doc.get("parentId"),
        )


@dataclass(frozen=True)
class Product:
    id: str
    sku: str
    name: str
    minimum_stock_level: int = 0
    units_of_measure: tuple = ()

    @property
    def default_price_tiers(self) -> dict | None:
        if not self.units_of_measure:
            return None
        return self.units_of_measure[0].get("priceTiers")

    @classmethod
    def from_document(cls, doc: dict) -> "Product":
        require_kind(doc, KIND_PRODUCT)
        return cls(
            id=doc["_id"],
            sku=doc.get("sku") or "",
            name=doc.get("name") or "",
            minimum_stock_level=doc.get("minimumStockLevel") or 0,
            units_of_measure=tuple(doc.get("unitsOfMeasure") or ()),
        )


@dataclass(frozen=True)
class Supplier:
    id: str
    name: str
    email: str | None = None
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_document(cls, doc: dict) -> "Supplier":
        require_kind(doc, KIND_SUPPLIER)
        return cls(
            id=doc["_id"],
            name=doc.get("name") or "",
            email=doc.get("email"),
            status=doc.get("status") or "active",
        )
