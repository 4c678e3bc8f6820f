from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .base import (
    KIND_BATCH,
    KIND_INVENTORY_ITEM,
    KIND_STOCK,
    Actor,
    audit_fields,
    audit_kwargs,
    non_negative,
    require_kind,
)


# Largest gap (minor units) allowed between totalValue and
# averageCost * quantityOnHand on a persisted stock record.
STOCK_VALUE_EPSILON = 1


class StockMovement(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class StockReferenceType(str, Enum):
    BATCH = "batch"
    SALE = "sale"
    PURCHASE = "purchase"
    DAMAGE = "damage"
    RETURN = "return"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"
    MANUFACTURING = "manufacturing"
    OPENING_STOCK = "opening_stock"


class BatchStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    RECALLED = "recalled"
    DEPLETED = "depleted"


@dataclass(frozen=True)
class StockAdjustment:
    """Audit sub-document stamped on Stock by every movement."""
    type: StockMovement
    quantity: int
    reason: str
    adjusted_by: Actor
    adjusted_at: str
    unit_cost: int | None = None
    reference_id: str | None = None
    reference_type: str | None = None
    location: str | None = None
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", StockMovement(self.type))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "quantity": self.quantity,
            "unitCost": self.unit_cost,
            "reason": self.reason,
            "referenceId": self.reference_id,
            "referenceType": self.reference_type,
            "location": self.location,
            "notes": self.notes,
            "adjustedBy": self.adjusted_by.to_dict(),
            "adjustedAt": self.adjusted_at,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "StockAdjustment | None":
        if not data:
            return None
        return cls(
            type=data["type"],
            quantity=data["quantity"],
            unit_cost=data.get("unitCost"),
            reason=data.get("reason") or "",
            reference_id=data.get("referenceId"),
            reference_type=data.get("referenceType"),
            location=data.get("location"),
            notes=data.get("notes"),
            adjusted_by=Actor.from_dict(data.get("adjustedBy")) or Actor(user_id="unknown"),
            adjusted_at=data.get("adjustedAt"),
        )


@dataclass(frozen=True)
class Stock:
    """
    Running stock ledger for one (tenant, product).

    INVARIANTS:
    - quantity_available == quantity_on_hand - quantity_reserved
    - total_value == round(average_cost * quantity_on_hand), within
      STOCK_VALUE_EPSILON

    Money (total_value, last_purchase_cost) is in integer minor units;
    average_cost is the unrounded per-unit quotient.
    """
    id: str
    product_id: str
    quantity_on_hand: int = 0
    quantity_reserved: int = 0
    quantity_available: int = 0
    average_cost: float = 0.0
    last_purchase_cost: int | None = None
    total_value: int = 0
    last_adjustment: StockAdjustment | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        if self.quantity_available != self.quantity_on_hand - self.quantity_reserved:
            raise ValueError(
                f"stock {self.id}: quantity_available {self.quantity_available} != "
                f"on_hand {self.quantity_on_hand} - reserved {self.quantity_reserved}"
            )
        non_negative("total_value", self.total_value)
        if abs(self.total_value - self.average_cost * self.quantity_on_hand) > STOCK_VALUE_EPSILON:
            raise ValueError(
                f"stock {self.id}: total_value {self.total_value} does not match "
                f"average_cost {self.average_cost} * quantity_on_hand {self.quantity_on_hand}"
            )

    @property
    def is_persisted(self) -> bool:
        return self.rev is not None

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_STOCK,
            "productId": self.product_id,
            "quantityOnHand": self.quantity_on_hand,
            "quantityReserved": self.quantity_reserved,
            "quantityAvailable": self.quantity_available,
            "averageCost": self.average_cost,
            "lastPurchaseCost": self.last_purchase_cost,
            "totalValue": self.total_value,
            "lastAdjustment": self.last_adjustment.to_dict() if self.last_adjustment else None,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Stock":
        require_kind(doc, KIND_STOCK)
        on_hand = doc.get("quantityOnHand") or 0
        reserved = doc.get("quantityReserved") or 0
        return cls(
            id=doc["_id"],
            product_id=doc["productId"],
            quantity_on_hand=on_hand,
            quantity_reserved=reserved,
            quantity_available=doc.get("quantityAvailable", on_hand - reserved),
            average_cost=doc.get("averageCost") or 0.0,
            last_purchase_cost=doc.get("lastPurchaseCost"),
            total_value=doc.get("totalValue") or 0,
            last_adjustment=StockAdjustment.from_dict(doc.get("lastAdjustment")),
            **audit_kwargs(doc),
        )

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "quantityOnHand": self.quantity_on_hand,
            "quantityReserved": self.quantity_reserved,
            "quantityAvailable": self.quantity_available,
            "averageCost": self.average_cost,
            "lastPurchaseCost": self.last_purchase_cost,
            "totalValue": self.total_value,
        }


@dataclass(frozen=True)
class Batch:
    """
    A received lot of one product. batch_number is unique per product
    (enforced by the batch service before the write).
    """
    id: str
    product_id: str
    batch_number: str
    quantity_received: int
    quantity_available: int
    purchase_cost: int
    total_cost: int
    product_sku: str | None = None
    supplier_batch_number: str | None = None
    quantity_sold: int = 0
    quantity_damaged: int = 0
    quantity_reserved: int = 0
    price_tiers: dict | None = None
    price_override: bool = False
    manufacture_date: str | None = None
    expiry_date: str | None = None
    received_date: str | None = None
    supplier_id: str | None = None
    purchase_id: str | None = None
    location: str = "default"
    status: BatchStatus = BatchStatus.ACTIVE
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "status", BatchStatus(self.status))
        if not self.batch_number:
            raise ValueError("batch_number is required")
        for name in ("quantity_received", "quantity_available", "quantity_sold",
                     "quantity_damaged", "purchase_cost", "total_cost"):
            non_negative(name, getattr(self, name))
        if self.quantity_available > self.quantity_received:
            raise ValueError("quantity_available cannot exceed quantity_received")

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_BATCH,
            "productId": self.product_id,
            "productSku": self.product_sku,
            "batchNumber": self.batch_number,
            "supplierBatchNumber": self.supplier_batch_number,
            "quantityReceived": self.quantity_received,
            "quantityAvailable": self.quantity_available,
            "quantitySold": self.quantity_sold,
            "quantityDamaged": self.quantity_damaged,
            "quantityReserved": self.quantity_reserved,
            "purchaseCost": self.purchase_cost,
            "totalCost": self.total_cost,
            "priceTiers": self.price_tiers,
            "priceOverride": self.price_override,
            "manufactureDate": self.manufacture_date,
            "expiryDate": self.expiry_date,
            "receivedDate": self.received_date,
            "supplierId": self.supplier_id,
            "purchaseId": self.purchase_id,
            "location": self.location,
            "status": self.status.value,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Batch":
        require_kind(doc, KIND_BATCH)
        return cls(
            id=doc["_id"],
            product_id=doc["productId"],
            product_sku=doc.get("productSku"),
            batch_number=doc["batchNumber"],
            supplier_batch_number=doc.get("supplierBatchNumber"),
            quantity_received=doc["quantityReceived"],
            quantity_available=doc["quantityAvailable"],
            quantity_sold=doc.get("quantitySold", 0),
            quantity_damaged=doc.get("quantityDamaged", 0),
            quantity_reserved=doc.get("quantityReserved", 0),
            purchase_cost=doc["purchaseCost"],
            total_cost=doc["totalCost"],
            price_tiers=doc.get("priceTiers"),
            price_override=doc.get("priceOverride", False),
            manufacture_date=doc.get("manufactureDate"),
            expiry_date=doc.get("expiryDate"),
            received_date=doc.get("receivedDate"),
            supplier_id=doc.get("supplierId"),
            purchase_id=doc.get("purchaseId"),
            location=doc.get("location") or "default",
            status=doc.get("status", BatchStatus.ACTIVE.value),
            **audit_kwargs(doc),
        )


class InventoryItemStatus(str, Enum):
    IN_STOCK = "in_stock"
    SOLD = "sold"
    DAMAGED = "damaged"
    RETURNED = "returned"
    RESERVED = "reserved"
    IN_TRANSIT = "in_transit"


class InventoryItemCondition(str, Enum):
    NEW = "new"
    REFURBISHED = "refurbished"
    USED = "used"
    DAMAGED = "damaged"


@dataclass(frozen=True)
class InventoryItem:
    """
    One serial-numbered unit of a product. serial_number is unique per tenant
    (enforced by the inventory item service before the write).
    """
    id: str
    product_id: str
    serial_number: str
    batch_id: str | None = None
    status: InventoryItemStatus = InventoryItemStatus.IN_STOCK
    condition: InventoryItemCondition = InventoryItemCondition.NEW
    location: str | None = None
    purchase_id: str | None = None
    supplier_id: str | None = None
    sale_id: str | None = None
    warranty_expiry_date: str | None = None
    warranty_id: str | None = None
    notes: str | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "status", InventoryItemStatus(self.status))
        object.__setattr__(self, "condition", InventoryItemCondition(self.condition))
        if not self.serial_number:
            raise ValueError("serial_number is required")

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_INVENTORY_ITEM,
            "productId": self.product_id,
            "serialNumber": self.serial_number,
            "batchId": self.batch_id,
            "status": self.status.value,
            "condition": self.condition.value,
            "location": self.location,
            "purchaseId": self.purchase_id,
            "supplierId": self.supplier_id,
            "saleId": self.sale_id,
            "warrantyExpiryDate": self.warranty_expiry_date,
            "warrantyId": self.warranty_id,
            "notes": self.notes,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "InventoryItem":
        require_kind(doc, KIND_INVENTORY_ITEM)
        return cls(
            id=doc["_id"],
            product_id=doc["productId"],
            serial_number=doc["serialNumber"],
            batch_id=doc.get("batchId"),
            status=doc.get("status", InventoryItemStatus.IN_STOCK.value),
            condition=doc.get("condition", InventoryItemCondition.NEW.value),
            location=doc.get("location"),
            purchase_id=doc.get("purchaseId"),
            supplier_id=doc.get("supplierId"),
            sale_id=doc.get("saleId"),
            warranty_expiry_date=doc.get("warrantyExpiryDate"),
            warranty_id=doc.get("warrantyId"),
            notes=doc.get("notes"),
            **audit_kwargs(doc),
        )
