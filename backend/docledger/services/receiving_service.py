# Overview: Service-layer operations for receiving; batched/unbatched intake, PO receipts, opening stock.

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from flask import current_app, has_app_context

from ..models import (
    Actor,
    Batch,
    InventoryItem,
    OpeningStockEntry,
    OpeningStockItem,
    OpeningStockItemType,
    Product,
    PurchaseOrder,
    PurchaseOrderStatus,
    ReceivingItem,
    ReceivingRecord,
    Stock,
)
from ..models.base import (
    KIND_OPENING_STOCK,
    KIND_PRODUCT,
    KIND_PURCHASE,
    KIND_RECEIVING,
    coerce_actor,
    document_id,
    local_part,
    new_local_id,
    stamped,
)
from ..models.purchases import RECEIVABLE_STATUSES, can_transition
from ..time_utils import now_iso
from . import audit_service, batch_service, catalog_service, inventory_item_service, purchase_service, stock_service
from .document_service import next_document_number
from .document_store import DocumentNotFoundError, DocumentStore, get_document, get_store
from .errors import ConflictError, InvalidStatusTransitionError, NotFoundError, ValidationError
from .saga import Saga
"""
Receiving Invariants

- Every line is validated (product exists, quantities, costs, batch number
  free, PO line present, no over-delivery) before the first write.
- Batched line: write the batch, then post stock-in. Serialized line (one
  serial number per unit): write one inventory item per serial, then post
  stock-in. Other lines: post stock-in only. Each write is a saga step, so a failure anywhere in the
  request deletes the batches it created and restores each stock document to
  its pre-request snapshot.
- Purchase receipts write the PO once, after all lines, then the
  ReceivingRecord. Both are compensated like the lines.
"""

logger = logging.getLogger(__name__)

RECEIVING_PREFIX = "RCV"
OPENING_STOCK_PREFIX = "OS"


@dataclass(frozen=True)
class ReceiveLine:
    """
    One line of an intake request. A batch_number makes it a batched line;
    serial_numbers (one per unit) make it a serialized line. A line can be both.
    """
    product_id: str
    quantity: int
    unit_cost: int | None = None
    batch_number: str | None = None
    supplier_batch_number: str | None = None
    expiry_date: str | None = None
    manufacture_date: str | None = None
    location: str | None = None
    notes: str | None = None
    serial_numbers: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "serial_numbers", tuple(self.serial_numbers or ()))

    @property
    def is_batched(self) -> bool:
        return bool(self.batch_number)

    @property
    def is_serialized(self) -> bool:
        return bool(self.serial_numbers)


@dataclass(frozen=True)
class ReceivedLine:
    line: ReceiveLine
    product: Product
    stock: Stock
    batch: Batch | None = None
    items: tuple[InventoryItem, ...] = ()


@dataclass(frozen=True)
class ReceiveResult:
    lines: tuple[ReceivedLine, ...]

    @property
    def batches(self) -> list[Batch]:
        return [r.batch for r in self.lines if r.batch is not None]

    @property
    def inventory_items(self) -> list[InventoryItem]:
        return [item for r in self.lines for item in r.items]

    @property
    def stock(self) -> dict[str, Stock]:
        """Final stock per product id (later lines win)."""
        return {r.product.id: r.stock for r in self.lines}


@dataclass(frozen=True)
class PurchaseReceipt:
    purchase_order: PurchaseOrder
    receiving_record: ReceivingRecord
    received: ReceiveResult


@dataclass(frozen=True)
class _Prepared:
    line: ReceiveLine
    product: Product
    unit_cost: int
    location: str
    batch: Batch | None
    items: tuple[InventoryItem, ...] = ()


def _default_location() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_LOCATION", "default")
    return "default"


def _prepare(
    tenant_id: str,
    actor: Actor,
    lines: list[ReceiveLine],
    *,
    store: DocumentStore,
    error_prefix: str,
    supplier_id: str | None = None,
    purchase_id: str | None = None,
) -> list[_Prepared]:
    """Validate every line and build the batches and inventory items to create. Writes nothing."""
    if not lines:
        raise ValidationError(f"{error_prefix}.items_required")

    prepared = []
    seen_batches: set[tuple[str, str]] = set()
    seen_serials: set[str] = set()
    for line in lines:
        product = catalog_service.get_product(tenant_id, line.product_id, store=store)
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError(f"{error_prefix}.invalid_quantity", sku=product.sku, quantity=line.quantity)
        if line.unit_cost is None or isinstance(line.unit_cost, bool) or not isinstance(line.unit_cost, int) \
                or line.unit_cost < 0:
            raise ValidationError(f"{error_prefix}.invalid_cost", sku=product.sku, unitCost=line.unit_cost)

        location = line.location or _default_location()
        batch = None
        if line.is_batched:
            key = (product.id, line.batch_number)
            if key in seen_batches:
                raise ConflictError("batch.already_exists", batchNumber=line.batch_number)
            seen_batches.add(key)
            batch = batch_service.prepare_batch(
                tenant_id,
                actor,
                product,
                line.batch_number,
                line.quantity,
                line.unit_cost,
                supplier_batch_number=line.supplier_batch_number,
                manufacture_date=line.manufacture_date,
                expiry_date=line.expiry_date,
                supplier_id=supplier_id,
                purchase_id=purchase_id,
                location=location,
                store=store,
            )

        items = []
        if line.is_serialized:
            if len(line.serial_numbers) != line.quantity:
                raise ValidationError(
                    f"{error_prefix}.serial_quantity_mismatch",
                    sku=product.sku,
                    expected=line.quantity,
                    provided=len(line.serial_numbers),
                )
            for serial_number in line.serial_numbers:
                if serial_number in seen_serials:
                    raise ConflictError("inventory_item.serial_exists", serialNumber=serial_number)
                seen_serials.add(serial_number)
                items.append(inventory_item_service.prepare_item(
                    tenant_id,
                    actor,
                    product,
                    serial_number,
                    batch_id=batch.id if batch else None,
                    location=location,
                    purchase_id=purchase_id,
                    supplier_id=supplier_id,
                    notes=line.notes,
                    store=store,
                ))
        prepared.append(_Prepared(line=line, product=product, unit_cost=line.unit_cost,
                                  location=location, batch=batch, items=tuple(items)))
    return prepared


def _receive_into(
    saga: Saga,
    tenant_id: str,
    actor: Actor,
    prepared: list[_Prepared],
    *,
    reason: str,
    reference_id: str | None,
    reference_type: str | None,
    store: DocumentStore,
) -> ReceiveResult:
    """Register every line's writes on `saga`, in request order."""
    received = []
    for index, item in enumerate(prepared, start=1):
        batch = None
        ref_id, ref_type = reference_id, reference_type
        if item.batch is not None:
            batch = batch_service.post_batch(saga, item.batch, store=store)
            if ref_id is None:
                ref_id, ref_type = batch.id, "batch"
        items = tuple(inventory_item_service.post_item(saga, it, store=store) for it in item.items)

        adjustment = stock_service.build_adjustment(
            actor,
            type="in",
            quantity=item.line.quantity,
            unit_cost=item.unit_cost,
            reason=reason,
            reference_id=ref_id,
            reference_type=ref_type,
            location=item.location,
            notes=item.line.notes,
        )
        stock = stock_service.post_movement(
            saga, tenant_id, actor, item.product.id, adjustment,
            store=store,
            step=f"stock:{index}:{item.product.sku or local_part(item.product.id)}",
        )
        received.append(ReceivedLine(line=item.line, product=item.product, stock=stock, batch=batch, items=items))
    return ReceiveResult(lines=tuple(received))


def receive(
    tenant_id: str,
    actor: Actor | str,
    lines: list[ReceiveLine],
    *,
    reason: str = "Stock received",
    reference_id: str | None = None,
    reference_type: str | None = None,
    store: DocumentStore | None = None,
) -> ReceiveResult:
    """
    Take stock in, batched or not, as one saga.

    Raises OperationFailedError("receiving.receive_failed") after unwinding
    if any write fails.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    prepared = _prepare(tenant_id, actor, lines, store=store, error_prefix="receiving")

    with Saga("receiving.receive", failure_key="receiving.receive_failed") as saga:
        result = _receive_into(
            saga, tenant_id, actor, prepared,
            reason=reason,
            reference_id=reference_id,
            reference_type=reference_type,
            store=store,
        )

    audit_service.record(
        tenant_id, actor, "stock.receive", "stock", None,
        {
            "lines": len(prepared),
            "batchIds": [b.id for b in result.batches],
            "serialIds": [i.id for i in result.inventory_items],
            "referenceId": reference_id,
            "referenceType": reference_type,
        },
        store=store,
    )
    return result


def _reconcile_lines(po: PurchaseOrder, lines: list[ReceiveLine], tenant_id: str) -> tuple[PurchaseOrder, list[ReceiveLine]]:
    """
    Apply requested quantities to the PO lines, rejecting unknown products and
    over-delivery. Lines without a unit cost take the PO line's cost.
    """
    received = {item.product_id: item.quantity_received for item in po.items}
    costed = []
    for line in lines:
        product_id = document_id(tenant_id, KIND_PRODUCT, line.product_id)
        po_item = po.find_item(product_id)
        if po_item is None:
            raise ValidationError("purchase.item_not_in_order", productId=line.product_id)
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError("purchase.invalid_quantity", sku=po_item.sku, quantity=line.quantity)
        if received[product_id] + line.quantity > po_item.quantity_ordered:
            raise ValidationError(
                "purchase.over_delivery",
                sku=po_item.sku,
                ordered=po_item.quantity_ordered,
                received=received[product_id],
                receiving=line.quantity,
            )
        received[product_id] += line.quantity
        if line.unit_cost is None:
            line = replace(line, unit_cost=po_item.unit_cost)
        costed.append(line)

    items = [replace(item, quantity_received=received[item.product_id]) for item in po.items]
    return po.with_items(items), costed


def receive_purchase_order(
    tenant_id: str,
    actor: Actor | str,
    purchase_id: str,
    lines: list[ReceiveLine],
    *,
    received_date: str | None = None,
    notes: str | None = None,
    discrepancy_notes: str | None = None,
    store: DocumentStore | None = None,
) -> PurchaseReceipt:
    """
    Receive goods against a pending or partial purchase order.

    One saga covers the line intake, the PO update (quantities, status,
    receivingIds, actualDeliveryDate) and the ReceivingRecord. Failure
    restores all of it and raises OperationFailedError("purchase.receive_failed").
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    po = purchase_service.get_purchase_order(tenant_id, purchase_id, store=store)
    if po.status not in RECEIVABLE_STATUSES:
        raise ValidationError("purchase.not_receivable", status=po.status.value)

    reconciled, costed = _reconcile_lines(po, lines, tenant_id)
    new_status = reconciled.status_after_receipt()
    if new_status != po.status and not can_transition(po.status, new_status):
        raise InvalidStatusTransitionError("purchase.invalid_status_transition", po.status.value, new_status.value)
    prepared = _prepare(
        tenant_id, actor, costed,
        store=store,
        error_prefix="purchase",
        supplier_id=po.supplier_id,
        purchase_id=po.id,
    )

    receiving_number = next_document_number(tenant_id, RECEIVING_PREFIX, store=store)
    now = now_iso()
    received_date = received_date or now
    record_id = document_id(tenant_id, KIND_RECEIVING, new_local_id())

    with Saga("purchase.receive", failure_key="purchase.receive_failed", purchaseId=po.id) as saga:
        result = _receive_into(
            saga, tenant_id, actor, prepared,
            reason=f"Purchase {po.po_number} received",
            reference_id=po.id,
            reference_type="purchase",
            store=store,
        )

        updated = stamped(
            replace(
                reconciled,
                status=new_status,
                receiving_ids=po.receiving_ids + (record_id,),
                actual_delivery_date=received_date,
            ),
            actor,
            now,
        )
        written = saga.run(
            "purchase",
            lambda: store.insert(updated.to_document()),
            lambda w: store.insert(replace(po, rev=w.rev).to_document()),
        )
        updated = replace(updated, rev=written.rev)

        record = stamped(
            ReceivingRecord(
                id=record_id,
                receiving_number=receiving_number,
                purchase_id=po.id,
                po_number=po.po_number,
                supplier_id=po.supplier_id,
                items=[
                    ReceivingItem(
                        product_id=r.product.id,
                        sku=r.product.sku,
                        product_name=r.product.name,
                        quantity_receiving=r.line.quantity,
                        unit_cost=r.line.unit_cost,
                        batch_number=r.line.batch_number,
                        batch_id=r.batch.id if r.batch else None,
                        expiry_date=r.line.expiry_date,
                        notes=r.line.notes,
                    )
                    for r in result.lines
                ],
                received_date=received_date,
                notes=notes,
                discrepancy_notes=discrepancy_notes,
            ),
            actor,
            now,
        )
        written = saga.run(
            "receiving_record",
            lambda: store.insert(record.to_document()),
            lambda w: store.destroy(w.id, w.rev),
        )
        record = replace(record, rev=written.rev)

    audit_service.record(
        tenant_id, actor, "purchase.receive", "purchase", po.id,
        {
            "poNumber": po.po_number,
            "receivingNumber": receiving_number,
            "totalQuantity": record.total_quantity,
            "status": new_status.value,
        },
        store=store,
    )
    if new_status == PurchaseOrderStatus.COMPLETED:
        logger.info("purchase order %s fully received", po.po_number)
    return PurchaseReceipt(purchase_order=updated, receiving_record=record, received=result)


def get_receiving_record(tenant_id: str, record_id: str, *, store: DocumentStore | None = None) -> ReceivingRecord:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_RECEIVING, document_id(tenant_id, KIND_RECEIVING, record_id))
    except DocumentNotFoundError:
        raise NotFoundError("receiving.not_found", id=record_id)
    return ReceivingRecord.from_document(doc)


def list_receiving_records(
    tenant_id: str,
    purchase_id: str | None = None,
    *,
    store: DocumentStore | None = None,
) -> list[ReceivingRecord]:
    store = store or get_store()
    selector: dict = {"kind": KIND_RECEIVING}
    if purchase_id:
        selector["purchaseId"] = document_id(tenant_id, KIND_PURCHASE, purchase_id)
    docs = store.find(tenant_id, selector, sort=[{"receivedDate": "desc"}])
    return [ReceivingRecord.from_document(d) for d in docs]


def _opening_stock_type(item: _Prepared) -> OpeningStockItemType:
    if item.items:
        return OpeningStockItemType.SERIALIZED
    if item.batch is not None:
        return OpeningStockItemType.BATCHED
    return OpeningStockItemType.REGULAR


def create_opening_stock(
    tenant_id: str,
    actor: Actor | str,
    entry_date: str,
    lines: list[ReceiveLine],
    *,
    notes: str | None = None,
    store: DocumentStore | None = None,
) -> OpeningStockEntry:
    """
    Record initial stock levels (regular, batched or serialized) with an
    OS-YYYYMMDD-NNN entry.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    if not entry_date:
        raise ValidationError("opening_stock.entry_date_required")
    prepared = _prepare(tenant_id, actor, lines, store=store, error_prefix="opening_stock")

    entry_number = next_document_number(tenant_id, OPENING_STOCK_PREFIX, store=store)
    now = now_iso()

    with Saga("opening_stock.create", failure_key="opening_stock.create_failed", entryNumber=entry_number) as saga:
        result = _receive_into(
            saga, tenant_id, actor, prepared,
            reason=f"Opening stock entry {entry_number}",
            reference_id=entry_number,
            reference_type="opening_stock",
            store=store,
        )
        entry = stamped(
            OpeningStockEntry(
                id=document_id(tenant_id, KIND_OPENING_STOCK, new_local_id()),
                entry_number=entry_number,
                entry_date=entry_date,
                items=[
                    OpeningStockItem(
                        product_id=item.product.id,
                        sku=item.product.sku,
                        product_name=item.product.name,
                        quantity=item.line.quantity,
                        unit_cost=item.unit_cost,
                        type=_opening_stock_type(item),
                        location=item.location,
                        batch_number=item.line.batch_number,
                        expiry_date=item.line.expiry_date,
                        manufacture_date=item.line.manufacture_date,
                        serial_numbers=item.line.serial_numbers,
                        notes=item.line.notes,
                    )
                    for item in prepared
                ],
                batch_ids=[b.id for b in result.batches],
                serial_ids=[i.id for i in result.inventory_items],
                notes=notes,
            ),
            actor,
            now,
        )
        written = saga.run(
            "opening_stock",
            lambda: store.insert(entry.to_document()),
            lambda w: store.destroy(w.id, w.rev),
        )
        entry = replace(entry, rev=written.rev)

    audit_service.record(
        tenant_id, actor, "opening_stock.create", "opening_stock", entry.id,
        {
            "entryNumber": entry_number,
            "itemCount": len(entry.items),
            "serialCount": len(entry.serial_ids),
            "totalQuantity": entry.total_quantity,
            "totalCost": entry.total_cost,
        },
        store=store,
    )
    return entry


def get_opening_stock(tenant_id: str, entry_id: str, *, store: DocumentStore | None = None) -> OpeningStockEntry:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_OPENING_STOCK, document_id(tenant_id, KIND_OPENING_STOCK, entry_id))
    except DocumentNotFoundError:
        raise NotFoundError("opening_stock.not_found", id=entry_id)
    return OpeningStockEntry.from_document(doc)


def list_opening_stock(tenant_id: str, *, store: DocumentStore | None = None) -> list[OpeningStockEntry]:
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_OPENING_STOCK}, sort=[{"entryDate": "desc"}])
    return [OpeningStockEntry.from_document(d) for d in docs]
