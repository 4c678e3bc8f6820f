# Overview: Service-layer operations for serialized inventory items.

from __future__ import annotations

import logging
from dataclasses import replace

from ..models import Actor, InventoryItem, InventoryItemCondition, InventoryItemStatus, Product
from ..models.base import KIND_BATCH, KIND_INVENTORY_ITEM, KIND_PRODUCT, coerce_actor, document_id, new_local_id, stamped
from ..time_utils import now_iso
from . import audit_service, batch_service, catalog_service
from .document_store import DocumentNotFoundError, DocumentStore, get_document, get_store
from .errors import ConflictError, NotFoundError, ValidationError
from .saga import Saga
"""
Inventory Item Invariants

- Serial numbers are unique per tenant, across products.
- Items are created already in stock; quantities on the stock ledger are not
  touched here. Intake flows that post stock for serialized lines register
  the item writes on their own saga (see receiving_service).
"""

logger = logging.getLogger(__name__)


def _status(value) -> InventoryItemStatus:
    try:
        return InventoryItemStatus(value)
    except ValueError:
        raise ValidationError("inventory_item.invalid_status", status=value)


def _condition(value) -> InventoryItemCondition:
    try:
        return InventoryItemCondition(value)
    except ValueError:
        raise ValidationError("inventory_item.invalid_condition", condition=value)


def ensure_unique_serial(tenant_id: str, serial_number: str, *, store: DocumentStore) -> None:
    existing = store.find(tenant_id, {"kind": KIND_INVENTORY_ITEM, "serialNumber": serial_number}, limit=1)
    if existing:
        raise ConflictError("inventory_item.serial_exists", serialNumber=serial_number)


def prepare_item(
    tenant_id: str,
    actor: Actor,
    product: Product,
    serial_number: str,
    *,
    batch_id: str | None = None,
    status: str = InventoryItemStatus.IN_STOCK.value,
    condition: str = InventoryItemCondition.NEW.value,
    location: str | None = None,
    purchase_id: str | None = None,
    supplier_id: str | None = None,
    warranty_expiry_date: str | None = None,
    warranty_id: str | None = None,
    notes: str | None = None,
    store: DocumentStore,
) -> InventoryItem:
    """Validate and build (but do not write) a new inventory item."""
    if not serial_number:
        raise ValidationError("inventory_item.serial_required")
    ensure_unique_serial(tenant_id, serial_number, store=store)

    item = InventoryItem(
        id=document_id(tenant_id, KIND_INVENTORY_ITEM, new_local_id()),
        product_id=product.id,
        serial_number=serial_number,
        batch_id=batch_id,
        status=_status(status),
        condition=_condition(condition),
        location=location,
        purchase_id=purchase_id,
        supplier_id=supplier_id,
        warranty_expiry_date=warranty_expiry_date,
        warranty_id=warranty_id,
        notes=notes,
    )
    return stamped(item, actor, now_iso())


def post_item(saga: Saga, item: InventoryItem, *, store: DocumentStore) -> InventoryItem:
    """Write a prepared item as a saga step; the compensation deletes it."""
    result = saga.run(
        f"serial:{item.serial_number}",
        lambda: store.insert(item.to_document()),
        lambda written: store.destroy(written.id, written.rev),
    )
    return replace(item, rev=result.rev)


def create_item(
    tenant_id: str,
    actor: Actor | str,
    product_id: str,
    serial_number: str,
    *,
    batch_id: str | None = None,
    store: DocumentStore | None = None,
    **options,
) -> InventoryItem:
    """
    Register one serial-numbered unit.

    The product (and batch, when given) must exist. Options are the optional
    fields accepted by prepare_item().
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    product = catalog_service.get_product(tenant_id, product_id, store=store)
    if batch_id:
        batch_id = batch_service.get_batch(tenant_id, batch_id, store=store).id
    item = prepare_item(tenant_id, actor, product, serial_number, batch_id=batch_id, store=store, **options)

    with Saga("inventory_item.create", failure_key="inventory_item.create_failed") as saga:
        item = post_item(saga, item, store=store)

    audit_service.record(
        tenant_id, actor, "inventory_item.create", "inventory_item", item.id,
        {"serialNumber": serial_number, "productId": product.id, "status": item.status.value},
        store=store,
    )
    return item


def untracked_in_batch(tenant_id: str, batch_id: str, *, store: DocumentStore | None = None) -> int:
    """Units still available in a batch that have no inventory item yet."""
    store = store or get_store()
    batch = batch_service.get_batch(tenant_id, batch_id, store=store)
    serialized = store.find(tenant_id, {"kind": KIND_INVENTORY_ITEM, "batchId": batch.id})
    return batch.quantity_available - len(serialized)


def get_item(tenant_id: str, item_id: str, *, store: DocumentStore | None = None) -> InventoryItem:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_INVENTORY_ITEM, document_id(tenant_id, KIND_INVENTORY_ITEM, item_id))
    except DocumentNotFoundError:
        raise NotFoundError("inventory_item.not_found", id=item_id)
    return InventoryItem.from_document(doc)


def find_by_serial(tenant_id: str, serial_number: str, *, store: DocumentStore | None = None) -> InventoryItem:
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_INVENTORY_ITEM, "serialNumber": serial_number}, limit=1)
    if not docs:
        raise NotFoundError("inventory_item.not_found_by_serial", serialNumber=serial_number)
    return InventoryItem.from_document(docs[0])


def find_available_by_product(
    tenant_id: str,
    product_id: str,
    *,
    store: DocumentStore | None = None,
) -> list[InventoryItem]:
    return list_items(tenant_id, product_id=product_id, status=InventoryItemStatus.IN_STOCK.value, store=store)


def list_items(
    tenant_id: str,
    *,
    product_id: str | None = None,
    status: str | None = None,
    batch_id: str | None = None,
    store: DocumentStore | None = None,
) -> list[InventoryItem]:
    store = store or get_store()
    selector: dict = {"kind": KIND_INVENTORY_ITEM}
    if product_id:
        selector["productId"] = document_id(tenant_id, KIND_PRODUCT, product_id)
    if status:
        selector["status"] = _status(status).value
    if batch_id:
        selector["batchId"] = document_id(tenant_id, KIND_BATCH, batch_id)
    docs = store.find(tenant_id, selector, sort=["serialNumber"])
    return [InventoryItem.from_document(d) for d in docs]


def update_item(
    tenant_id: str,
    actor: Actor | str,
    item_id: str,
    *,
    status: str | None = None,
    condition: str | None = None,
    location: str | None = None,
    sale_id: str | None = None,
    warranty_expiry_date: str | None = None,
    warranty_id: str | None = None,
    notes: str | None = None,
    store: DocumentStore | None = None,
) -> InventoryItem:
    """Change the mutable fields of an item. Product and serial number are fixed."""
    store = store or get_store()
    actor = coerce_actor(actor)
    item = get_item(tenant_id, item_id, store=store)

    changes: dict = {}
    if status is not None:
        changes["status"] = _status(status)
    if condition is not None:
        changes["condition"] = _condition(condition)
    for name, value in (("location", location), ("sale_id", sale_id),
                        ("warranty_expiry_date", warranty_expiry_date),
                        ("warranty_id", warranty_id), ("notes", notes)):
        if value is not None:
            changes[name] = value

    updated = stamped(replace(item, **changes), actor, now_iso())
    with Saga("inventory_item.update", failure_key="inventory_item.update_failed") as saga:
        result = saga.run("inventory_item", lambda: store.insert(updated.to_document()))
    updated = replace(updated, rev=result.rev)

    audit_service.record(
        tenant_id, actor, "inventory_item.update", "inventory_item", item.id,
        {
            "serialNumber": item.serial_number,
            "changes": {k: getattr(v, "value", v) for k, v in changes.items()},
        },
        store=store,
    )
    return updated
