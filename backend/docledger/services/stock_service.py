# Overview: Service-layer operations for the stock ledger; costing-engine writes with snapshot restore.

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from flask import current_app, has_app_context

from ..models import Actor, Product, Stock, StockAdjustment, StockMovement, StockReferenceType
from ..models.base import KIND_PRODUCT, KIND_STOCK, coerce_actor, document_id, local_part, stamped
from ..time_utils import now_iso
from . import audit_service, catalog_service
from .costing import apply_movement
from .document_store import DocumentNotFoundError, DocumentStore, WriteResult, get_store
from .errors import ValidationError
from .saga import Saga
"""
Stock Ledger Invariants

- One stock document per (tenant, product), id `{tenant}:stock:{productLocalId}`,
  created lazily by the first movement.
- Every movement goes through services.costing, so totalValue tracks
  averageCost * quantityOnHand and quantityAvailable tracks
  quantityOnHand - quantityReserved.
- Each movement is one revision-checked write. Inside a larger saga the first
  write of a document is paired with a restore of its pre-saga snapshot.
"""

logger = logging.getLogger(__name__)


@dataclass
class _Touched:
    """Pre-saga snapshot of a stock document and the last revision the saga wrote."""
    snapshot: Stock
    written: WriteResult


def stock_id_for(tenant_id: str, product_id: str) -> str:
    return document_id(tenant_id, KIND_STOCK, local_part(product_id))


def _empty_stock(tenant_id: str, product_id: str) -> Stock:
    return Stock(
        id=stock_id_for(tenant_id, product_id),
        product_id=document_id(tenant_id, KIND_PRODUCT, product_id),
    )


def get_current_level(tenant_id: str, product_id: str, *, store: DocumentStore | None = None) -> Stock:
    """Current stock for a product; an unsaved zero record when none exists yet."""
    store = store or get_store()
    try:
        return Stock.from_document(store.get(stock_id_for(tenant_id, product_id)))
    except DocumentNotFoundError:
        return _empty_stock(tenant_id, product_id)


def restore_stock(snapshot: Stock, written: WriteResult, *, store: DocumentStore | None = None) -> None:
    """
    Put a stock document back to `snapshot`.

    `written` is the last revision the undone movements produced; if the
    document moved on since, the restore conflicts instead of clobbering it.
    A snapshot that was never persisted is undone by deleting the document.
    """
    store = store or get_store()
    if not snapshot.is_persisted:
        store.destroy(written.id, written.rev)
        return
    store.insert(replace(snapshot, rev=written.rev).to_document())


def post_movement(
    saga: Saga,
    tenant_id: str,
    actor: Actor,
    product_id: str,
    adjustment: StockAdjustment,
    *,
    store: DocumentStore,
    step: str | None = None,
) -> Stock:
    """
    Apply one movement as a saga step.

    The first movement of a stock document in `saga` registers the
    compensation that restores the document's pre-saga snapshot. Later
    movements of the same document only advance the revision that restore
    must present, so the whole request unwinds with one revision-checked write.
    """
    stock_id = stock_id_for(tenant_id, product_id)
    first = stock_id not in saga.touched

    def _forward():
        before = get_current_level(tenant_id, product_id, store=store)
        after = stamped(apply_movement(before, adjustment), actor, adjustment.adjusted_at)
        result = store.insert(after.to_document())
        if first:
            saga.touched[stock_id] = _Touched(snapshot=before, written=result)
        else:
            saga.touched[stock_id].written = result
        return replace(after, rev=result.rev)

    def _undo(_after):
        touched = saga.touched[stock_id]
        restore_stock(touched.snapshot, touched.written, store=store)

    return saga.run(step or f"stock:{local_part(product_id)}", _forward, _undo if first else None)


def build_adjustment(
    actor: Actor,
    *,
    type: str,
    quantity: int,
    reason: str,
    unit_cost: int | None = None,
    reference_id: str | None = None,
    reference_type: str | None = None,
    location: str | None = None,
    notes: str | None = None,
) -> StockAdjustment:
    """Validate movement inputs and build the lastAdjustment record."""
    try:
        movement = StockMovement(type)
    except ValueError:
        raise ValidationError("stock.invalid_type", type=type)
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("stock.invalid_quantity", quantity=quantity)
    if unit_cost is not None and (not isinstance(unit_cost, int) or unit_cost < 0):
        raise ValidationError("stock.invalid_unit_cost", unitCost=unit_cost)
    if reference_type is not None:
        try:
            reference_type = StockReferenceType(reference_type).value
        except ValueError:
            raise ValidationError("stock.invalid_reference_type", referenceType=reference_type)
    return StockAdjustment(
        type=movement,
        quantity=quantity,
        unit_cost=unit_cost,
        reason=reason or "",
        reference_id=reference_id,
        reference_type=reference_type,
        location=location,
        notes=notes,
        adjusted_by=actor,
        adjusted_at=now_iso(),
    )


def adjust_stock(
    tenant_id: str,
    actor: Actor | str,
    product_id: str,
    quantity: int,
    type: str,
    reason: str,
    *,
    unit_cost: int | None = None,
    reference_id: str | None = None,
    reference_type: str | None = None,
    location: str | None = None,
    notes: str | None = None,
    store: DocumentStore | None = None,
) -> Stock:
    """
    Record one stock movement (in / out / exact adjustment) for a product.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    adjustment = build_adjustment(
        actor,
        type=type,
        quantity=quantity,
        reason=reason,
        unit_cost=unit_cost,
        reference_id=reference_id,
        reference_type=reference_type,
        location=location,
        notes=notes,
    )
    product = catalog_service.get_product(tenant_id, product_id, store=store)

    with Saga("stock.adjust", failure_key="stock.adjust_failed") as saga:
        stock = post_movement(saga, tenant_id, actor, product.id, adjustment, store=store)

    audit_service.record(
        tenant_id,
        actor,
        "stock.adjust",
        "stock",
        product.id,
        {
            "type": adjustment.type.value,
            "quantity": quantity,
            "reason": reason,
            "referenceId": reference_id,
            "referenceType": adjustment.reference_type,
        },
        store=store,
    )
    return stock


def all_stock(tenant_id: str, *, store: DocumentStore | None = None) -> list[Stock]:
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_STOCK}, sort=["productId"])
    return [Stock.from_document(d) for d in docs]


def stock_by_location(tenant_id: str, location: str, *, store: DocumentStore | None = None) -> list[Stock]:
    """Stock whose most recent movement happened at `location`."""
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_STOCK, "lastAdjustment.location": location})
    return [Stock.from_document(d) for d in docs]


def low_stock_products(tenant_id: str, *, store: DocumentStore | None = None) -> list[dict]:
    """Products with a minimum level whose available quantity has fallen below it."""
    store = store or get_store()
    products = [
        Product.from_document(d)
        for d in store.find(tenant_id, {"kind": KIND_PRODUCT, "minimumStockLevel": {"$gt": 0}}, sort=["sku"])
    ]
    levels = {s.product_id: s for s in all_stock(tenant_id, store=store)}

    low = []
    for product in products:
        stock = levels.get(product.id)
        current = stock.quantity_available if stock else 0
        if current < product.minimum_stock_level:
            low.append({
                "productId": product.id,
                "sku": product.sku,
                "name": product.name,
                "currentStock": current,
                "minimumLevel": product.minimum_stock_level,
                "shortfall": product.minimum_stock_level - current,
            })
    return low


def verify_stock(tenant_id: str, *, tolerance: int | None = None, store: DocumentStore | None = None) -> list[dict]:
    """
    Check every stock document of a tenant against the ledger invariants.

    Works on raw documents so that a record the model would refuse to load is
    still reported instead of aborting the scan.
    """
    store = store or get_store()
    if tolerance is None:
        tolerance = current_app.config.get("STOCK_VALUE_TOLERANCE", 1) if has_app_context() else 1

    offenders = []
    for doc in store.find(tenant_id, {"kind": KIND_STOCK}, sort=["productId"]):
        problems = []
        on_hand = doc.get("quantityOnHand") or 0
        reserved = doc.get("quantityReserved") or 0
        available = doc.get("quantityAvailable")
        total_value = doc.get("totalValue") or 0
        average_cost = doc.get("averageCost") or 0

        if available != on_hand - reserved:
            problems.append(f"quantityAvailable {available} != {on_hand} - {reserved}")
        if total_value < 0:
            problems.append(f"totalValue {total_value} is negative")
        drift = abs(total_value - average_cost * on_hand)
        if drift > tolerance:
            problems.append(f"totalValue {total_value} drifts {drift:.2f} from averageCost * quantityOnHand")

        if problems:
            logger.warning("stock %s violates invariants: %s", doc["_id"], "; ".join(problems))
            offenders.append({"id": doc["_id"], "productId": doc.get("productId"), "problems": problems})
    return offenders
