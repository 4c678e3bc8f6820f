# Overview: Service-layer operations for batches; batch creation and batched stock intake.

from __future__ import annotations

import logging
from datetime import timedelta

from ..models import Actor, Batch, BatchStatus, Product, Stock
from ..models.base import KIND_BATCH, KIND_PRODUCT, coerce_actor, document_id, new_local_id, stamped
from ..time_utils import now_iso, to_utc_z, utcnow
from . import audit_service, catalog_service, stock_service
from .document_store import DocumentNotFoundError, DocumentStore, get_document, get_store
from .errors import ConflictError, NotFoundError, ValidationError
from .saga import Saga

logger = logging.getLogger(__name__)


def _check_amount(key: str, name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(key, **{name: value})


def ensure_unique_batch_number(
    tenant_id: str,
    product_id: str,
    batch_number: str,
    *,
    store: DocumentStore,
) -> None:
    """Batch numbers are unique per product."""
    existing = store.find(
        tenant_id,
        {"kind": KIND_BATCH, "productId": product_id, "batchNumber": batch_number},
        limit=1,
    )
    if existing:
        raise ConflictError("batch.already_exists", batchNumber=batch_number)


def prepare_batch(
    tenant_id: str,
    actor: Actor,
    product: Product,
    batch_number: str,
    quantity: int,
    purchase_cost: int,
    *,
    supplier_batch_number: str | None = None,
    price_tiers: dict | None = None,
    price_override: bool = False,
    manufacture_date: str | None = None,
    expiry_date: str | None = None,
    supplier_id: str | None = None,
    purchase_id: str | None = None,
    location: str = "default",
    store: DocumentStore,
) -> Batch:
    """
    Validate and build (but do not write) a new batch record.
    """
    if not batch_number:
        raise ValidationError("batch.number_required")
    _check_amount("batch.invalid_quantity", "quantity", quantity)
    _check_amount("batch.invalid_cost", "purchaseCost", purchase_cost)
    ensure_unique_batch_number(tenant_id, product.id, batch_number, store=store)

    if not price_override and product.default_price_tiers is not None:
        price_tiers = product.default_price_tiers

    now = now_iso()
    batch = Batch(
        id=document_id(tenant_id, KIND_BATCH, new_local_id()),
        product_id=product.id,
        product_sku=product.sku,
        batch_number=batch_number,
        supplier_batch_number=supplier_batch_number,
        quantity_received=quantity,
        quantity_available=quantity,
        purchase_cost=purchase_cost,
        total_cost=purchase_cost * quantity,
        price_tiers=price_tiers,
        price_override=price_override,
        manufacture_date=manufacture_date,
        expiry_date=expiry_date,
        received_date=now,
        supplier_id=supplier_id,
        purchase_id=purchase_id,
        location=location or "default",
    )
    return stamped(batch, actor, now)


def post_batch(saga: Saga, batch: Batch, *, store: DocumentStore) -> Batch:
    """Write a prepared batch as a saga step; the compensation deletes it."""
    result = saga.run(
        f"batch:{batch.batch_number}",
        lambda: store.insert(batch.to_document()),
        lambda written: store.destroy(written.id, written.rev),
    )
    return Batch.from_document({**batch.to_document(), "_rev": result.rev})


def create_batch(
    tenant_id: str,
    actor: Actor | str,
    product_id: str,
    batch_number: str,
    quantity: int,
    purchase_cost: int,
    *,
    store: DocumentStore | None = None,
    **options,
) -> Batch:
    """
    Register a batch without posting stock.

    Options are the optional Batch fields accepted by prepare_batch().
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    product = catalog_service.get_product(tenant_id, product_id, store=store)
    batch = prepare_batch(tenant_id, actor, product, batch_number, quantity, purchase_cost, store=store, **options)

    with Saga("batch.create", failure_key="batch.create_failed") as saga:
        batch = post_batch(saga, batch, store=store)

    audit_service.record(
        tenant_id, actor, "batch.create", "batch", batch.id,
        {"batchNumber": batch_number, "quantity": quantity},
        store=store,
    )
    return batch


def receive_batch(
    tenant_id: str,
    actor: Actor | str,
    product_id: str,
    batch_number: str,
    quantity: int,
    purchase_cost: int,
    *,
    reason: str = "Batch received",
    store: DocumentStore | None = None,
    **options,
) -> tuple[Batch, Stock]:
    """
    Create a batch and post it to the stock ledger in one saga.

    If the stock write fails the batch is deleted again and
    OperationFailedError("batch.receive_failed") is raised.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    product = catalog_service.get_product(tenant_id, product_id, store=store)
    batch = prepare_batch(tenant_id, actor, product, batch_number, quantity, purchase_cost, store=store, **options)
    adjustment = stock_service.build_adjustment(
        actor,
        type="in",
        quantity=quantity,
        unit_cost=purchase_cost,
        reason=reason,
        reference_id=batch.id,
        reference_type="batch",
        location=batch.location,
    )

    with Saga("batch.receive", failure_key="batch.receive_failed", batchNumber=batch_number) as saga:
        batch = post_batch(saga, batch, store=store)
        stock = stock_service.post_movement(saga, tenant_id, actor, product.id, adjustment, store=store)

    audit_service.record(
        tenant_id, actor, "batch.create", "batch", batch.id,
        {"batchNumber": batch_number, "quantity": quantity, "stockPosted": True},
        store=store,
    )
    return batch, stock


def get_batch(tenant_id: str, batch_id: str, *, store: DocumentStore | None = None) -> Batch:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_BATCH, document_id(tenant_id, KIND_BATCH, batch_id))
    except DocumentNotFoundError:
        raise NotFoundError("batch.not_found", id=batch_id)
    return Batch.from_document(doc)


def find_batch_by_number(
    tenant_id: str,
    product_id: str,
    batch_number: str,
    *,
    store: DocumentStore | None = None,
) -> Batch:
    store = store or get_store()
    docs = store.find(
        tenant_id,
        {
            "kind": KIND_BATCH,
            "productId": document_id(tenant_id, KIND_PRODUCT, product_id),
            "batchNumber": batch_number,
        },
        limit=1,
    )
    if not docs:
        raise NotFoundError("batch.not_found", batchNumber=batch_number)
    return Batch.from_document(docs[0])


def list_batches(tenant_id: str, product_id: str | None = None, *, store: DocumentStore | None = None) -> list[Batch]:
    store = store or get_store()
    selector: dict = {"kind": KIND_BATCH}
    if product_id:
        selector["productId"] = document_id(tenant_id, KIND_PRODUCT, product_id)
    docs = store.find(tenant_id, selector, sort=[{"receivedDate": "asc"}])
    return [Batch.from_document(d) for d in docs]


def _by_expiry(batches: list[Batch]) -> list[Batch]:
    # Earliest expiry first; batches that never expire go last.
    return sorted(batches, key=lambda b: (b.expiry_date is None, b.expiry_date or ""))


def find_available(tenant_id: str, product_id: str, *, store: DocumentStore | None = None) -> list[Batch]:
    """Active batches of a product that still have stock, FIFO by expiry."""
    store = store or get_store()
    docs = store.find(
        tenant_id,
        {
            "kind": KIND_BATCH,
            "productId": document_id(tenant_id, KIND_PRODUCT, product_id),
            "status": BatchStatus.ACTIVE.value,
            "quantityAvailable": {"$gt": 0},
        },
    )
    return _by_expiry([Batch.from_document(d) for d in docs])


def find_expiring(tenant_id: str, within_days: int = 30, *, store: DocumentStore | None = None) -> list[Batch]:
    """Active, non-empty batches expiring between now and `within_days` from now."""
    store = store or get_store()
    now = utcnow()
    docs = store.find(
        tenant_id,
        {
            "kind": KIND_BATCH,
            "status": BatchStatus.ACTIVE.value,
            "quantityAvailable": {"$gt": 0},
            "expiryDate": {
                "$gte": to_utc_z(now),
                "$lte": to_utc_z(now + timedelta(days=within_days)),
            },
        },
    )
    return _by_expiry([Batch.from_document(d) for d in docs])
