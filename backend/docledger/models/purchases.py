from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from .base import (
    KIND_OPENING_STOCK,
    KIND_PURCHASE,
    KIND_RECEIVING,
    Actor,
    audit_fields,
    audit_kwargs,
    non_negative,
    require_kind,
)


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"              # Being created, not yet sent
    PENDING = "pending"          # Sent to supplier, awaiting delivery
    PARTIAL = "partial"          # Partially received
    COMPLETED = "completed"      # Fully received
    CANCELLED = "cancelled"      # Cancelled before completion
    OVERDELIVERED = "overdelivered"  # Never entered: over-delivery is rejected


PURCHASE_ORDER_TRANSITIONS: dict[PurchaseOrderStatus, frozenset[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: frozenset({PurchaseOrderStatus.PENDING, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.PENDING: frozenset({
        PurchaseOrderStatus.PARTIAL,
        PurchaseOrderStatus.COMPLETED,
        PurchaseOrderStatus.CANCELLED,
    }),
    PurchaseOrderStatus.PARTIAL: frozenset({PurchaseOrderStatus.COMPLETED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.COMPLETED: frozenset(),
    PurchaseOrderStatus.CANCELLED: frozenset(),
    PurchaseOrderStatus.OVERDELIVERED: frozenset(),
}

RECEIVABLE_STATUSES = {PurchaseOrderStatus.PENDING, PurchaseOrderStatus.PARTIAL}


def can_transition(current: PurchaseOrderStatus, target: PurchaseOrderStatus) -> bool:
    return PurchaseOrderStatus(target) in PURCHASE_ORDER_TRANSITIONS[PurchaseOrderStatus(current)]


@dataclass(frozen=True)
class PurchaseOrderItem:
    """One ordered line. INVARIANT: 0 <= quantity_received <= quantity_ordered."""
    product_id: str
    sku: str
    product_name: str
    quantity_ordered: int
    unit_cost: int
    quantity_received: int = 0
    notes: str | None = None

    def __post_init__(self):
        if self.quantity_ordered <= 0:
            raise ValueError("quantity_ordered must be positive")
        non_negative("unit_cost", self.unit_cost)
        non_negative("quantity_received", self.quantity_received)
        if self.quantity_received > self.quantity_ordered:
            raise ValueError(
                f"{self.sku}: quantity_received {self.quantity_received} exceeds "
                f"quantity_ordered {self.quantity_ordered}"
            )

    @property
    def line_total(self) -> int:
        return self.quantity_ordered * self.unit_cost

    @property
    def remaining(self) -> int:
        return self.quantity_ordered - self.quantity_received

    @property
    def is_fully_received(self) -> bool:
        return self.quantity_received >= self.quantity_ordered

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "sku": self.sku,
            "productName": self.product_name,
            "quantityOrdered": self.quantity_ordered,
            "quantityReceived": self.quantity_received,
            "unitCost": self.unit_cost,
            "lineTotal": self.line_total,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseOrderItem":
        return cls(
            product_id=data["productId"],
            sku=data.get("sku") or "",
            product_name=data.get("productName") or "",
            quantity_ordered=data["quantityOrdered"],
            quantity_received=data.get("quantityReceived", 0),
            unit_cost=data.get("unitCost", 0),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class PurchaseOrder:
    id: str
    po_number: str
    status: PurchaseOrderStatus
    supplier_id: str
    supplier_name: str
    currency: str
    items: tuple[PurchaseOrderItem, ...]
    order_date: str
    supplier_email: str | None = None
    tax_amount: int = 0
    shipping_cost: int = 0
    discount_amount: int = 0
    expected_delivery_date: str | None = None
    actual_delivery_date: str | None = None
    receiving_ids: tuple[str, ...] = ()
    notes: str | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "status", PurchaseOrderStatus(self.status))
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "receiving_ids", tuple(self.receiving_ids))
        if not self.items:
            raise ValueError("purchase order needs at least one item")
        for name in ("tax_amount", "shipping_cost", "discount_amount"):
            non_negative(name, getattr(self, name))

    @property
    def subtotal(self) -> int:
        return sum(item.line_total for item in self.items)

    @property
    def total_amount(self) -> int:
        return self.subtotal + self.tax_amount + self.shipping_cost - self.discount_amount

    def find_item(self, product_id: str) -> PurchaseOrderItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def status_after_receipt(self) -> PurchaseOrderStatus:
        """completed when every line is fully received, partial when any line has stock."""
        if all(item.is_fully_received for item in self.items):
            return PurchaseOrderStatus.COMPLETED
        if any(item.quantity_received > 0 for item in self.items):
            return PurchaseOrderStatus.PARTIAL
        return self.status

    def with_items(self, items) -> "PurchaseOrder":
        return replace(self, items=tuple(items))

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_PURCHASE,
            "poNumber": self.po_number,
            "status": self.status.value,
            "supplierId": self.supplier_id,
            "supplierName": self.supplier_name,
            "supplierEmail": self.supplier_email,
            "currency": self.currency,
            "subtotal": self.subtotal,
            "taxAmount": self.tax_amount,
            "shippingCost": self.shipping_cost,
            "discountAmount": self.discount_amount,
            "totalAmount": self.total_amount,
            "items": [item.to_dict() for item in self.items],
            "orderDate": self.order_date,
            "expectedDeliveryDate": self.expected_delivery_date,
            "actualDeliveryDate": self.actual_delivery_date,
            "receivingIds": list(self.receiving_ids),
            "notes": self.notes,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "PurchaseOrder":
        require_kind(doc, KIND_PURCHASE)
        return cls(
            id=doc["_id"],
            po_number=doc["poNumber"],
            status=doc["status"],
            supplier_id=doc["supplierId"],
            supplier_name=doc.get("supplierName") or "",
            supplier_email=doc.get("supplierEmail"),
            currency=doc["currency"],
            items=tuple(PurchaseOrderItem.from_dict(i) for i in doc.get("items") or []),
            order_date=doc["orderDate"],
            tax_amount=doc.get("taxAmount", 0),
            shipping_cost=doc.get("shippingCost", 0),
            discount_amount=doc.get("discountAmount", 0),
            expected_delivery_date=doc.get("expectedDeliveryDate"),
            actual_delivery_date=doc.get("actualDeliveryDate"),
            receiving_ids=tuple(doc.get("receivingIds") or ()),
            notes=doc.get("notes"),
            **audit_kwargs(doc),
        )


@dataclass(frozen=True)
class ReceivingItem:
    product_id: str
    quantity_receiving: int
    unit_cost: int
    sku: str | None = None
    product_name: str | None = None
    batch_number: str | None = None
    batch_id: str | None = None
    expiry_date: str | None = None
    notes: str | None = None

    def __post_init__(self):
        non_negative("quantity_receiving", self.quantity_receiving)
        non_negative("unit_cost", self.unit_cost)

    @property
    def total_cost(self) -> int:
        return self.quantity_receiving * self.unit_cost

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "sku": self.sku,
            "productName": self.product_name,
            "quantityReceiving": self.quantity_receiving,
            "unitCost": self.unit_cost,
            "totalCost": self.total_cost,
            "batchNumber": self.batch_number,
            "batchId": self.batch_id,
            "expiryDate": self.expiry_date,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReceivingItem":
        return cls(
            product_id=data["productId"],
            sku=data.get("sku"),
            product_name=data.get("productName"),
            quantity_receiving=data["quantityReceiving"],
            unit_cost=data.get("unitCost", 0),
            batch_number=data.get("batchNumber"),
            batch_id=data.get("batchId"),
            expiry_date=data.get("expiryDate"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class ReceivingRecord:
    """Immutable snapshot of one receiving event against a purchase order."""
    id: str
    receiving_number: str
    purchase_id: str
    po_number: str
    supplier_id: str
    items: tuple[ReceivingItem, ...]
    received_date: str
    notes: str | None = None
    discrepancy_notes: str | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity_receiving for item in self.items)

    @property
    def total_cost(self) -> int:
        return sum(item.total_cost for item in self.items)

    @property
    def batch_ids(self) -> list[str]:
        return [item.batch_id for item in self.items if item.batch_id]

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_RECEIVING,
            "receivingNumber": self.receiving_number,
            "purchaseId": self.purchase_id,
            "poNumber": self.po_number,
            "supplierId": self.supplier_id,
            "items": [item.to_dict() for item in self.items],
            "receivedDate": self.received_date,
            "totalQuantity": self.total_quantity,
            "totalCost": self.total_cost,
            "batchIds": self.batch_ids,
            "notes": self.notes,
            "discrepancyNotes": self.discrepancy_notes,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "ReceivingRecord":
        require_kind(doc, KIND_RECEIVING)
        return cls(
            id=doc["_id"],
            receiving_number=doc["receivingNumber"],
            purchase_id=doc["purchaseId"],
            po_number=doc.get("poNumber") or "",
            supplier_id=doc.get("supplierId") or "",
            items=tuple(ReceivingItem.from_dict(i) for i in doc.get("items") or []),
            received_date=doc["receivedDate"],
            notes=doc.get("notes"),
            discrepancy_notes=doc.get("discrepancyNotes"),
            **audit_kwargs(doc),
        )


class OpeningStockItemType(str, Enum):
    REGULAR = "regular"        # No batch or serial tracking
    BATCHED = "batched"        # Batch tracking
    SERIALIZED = "serialized"  # One inventory item per serial number


@dataclass(frozen=True)
class OpeningStockItem:
    product_id: str
    sku: str
    product_name: str
    quantity: int
    unit_cost: int
    type: OpeningStockItemType
    location: str
    batch_number: str | None = None
    expiry_date: str | None = None
    manufacture_date: str | None = None
    serial_numbers: tuple[str, ...] = ()
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "type", OpeningStockItemType(self.type))
        object.__setattr__(self, "serial_numbers", tuple(self.serial_numbers))

    @property
    def total_cost(self) -> int:
        return self.quantity * self.unit_cost

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "sku": self.sku,
            "productName": self.product_name,
            "quantity": self.quantity,
            "unitCost": self.unit_cost,
            "totalCost": self.total_cost,
            "type": self.type.value,
            "location": self.location,
            "batchNumber": self.batch_number,
            "expiryDate": self.expiry_date,
            "manufactureDate": self.manufacture_date,
            "serialNumbers": list(self.serial_numbers) or None,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OpeningStockItem":
        return cls(
            product_id=data["productId"],
            sku=data.get("sku") or "",
            product_name=data.get("productName") or "",
            quantity=data["quantity"],
            unit_cost=data["unitCost"],
            type=data["type"],
            location=data.get("location") or "default",
            batch_number=data.get("batchNumber"),
            expiry_date=data.get("expiryDate"),
            manufacture_date=data.get("manufactureDate"),
            serial_numbers=tuple(data.get("serialNumbers") or ()),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class OpeningStockEntry:
    id: str
    entry_number: str
    entry_date: str
    items: tuple[OpeningStockItem, ...]
    batch_ids: tuple[str, ...] = ()
    serial_ids: tuple[str, ...] = ()
    status: str = "completed"
    notes: str | None = None
    rev: str | None = None
    created_at: str | None = None
    created_by: Actor | None = None
    updated_at: str | None = None
    updated_by: Actor | None = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "batch_ids", tuple(self.batch_ids))
        object.__setattr__(self, "serial_ids", tuple(self.serial_ids))

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_cost(self) -> int:
        return sum(item.total_cost for item in self.items)

    def to_document(self) -> dict:
        doc = {
            "_id": self.id,
            "kind": KIND_OPENING_STOCK,
            "entryNumber": self.entry_number,
            "entryDate": self.entry_date,
            "items": [item.to_dict() for item in self.items],
            "totalQuantity": self.total_quantity,
            "totalCost": self.total_cost,
            "batchIds": list(self.batch_ids),
            "serialIds": list(self.serial_ids),
            "status": self.status,
            "notes": self.notes,
        }
        doc.update(audit_fields(self))
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "OpeningStockEntry":
        require_kind(doc, KIND_OPENING_STOCK)
        return cls(
            id=doc["_id"],
            entry_number=doc["entryNumber"],
            entry_date=doc["entryDate"],
            items=tuple(OpeningStockItem.from_dict(i) for i in doc.get("items") or []),
            batch_ids=tuple(doc.get("batchIds") or ()),
            serial_ids=tuple(doc.get("serialIds") or ()),
            status=doc.get("status", "completed"),
            notes=doc.get("notes"),
            **audit_kwargs(doc),
        )
