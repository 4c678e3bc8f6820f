# Overview: Service-layer operations for purchase orders; creation, draft edits and status changes.

from __future__ import annotations

from dataclasses import replace

from ..models import Actor, PurchaseOrder, PurchaseOrderItem, PurchaseOrderStatus
from ..models.base import KIND_PURCHASE, KIND_SUPPLIER, coerce_actor, document_id, new_local_id, stamped
from ..models.purchases import can_transition
from ..time_utils import now_iso, parse_iso_datetime, utcnow
from . import audit_service, catalog_service
from .document_service import next_document_number
from .document_store import DocumentNotFoundError, DocumentStore, get_document, get_store
from .errors import InvalidStatusTransitionError, NotFoundError, ValidationError
from .saga import Saga
"""
Purchase Order Lifecycle

    draft -> pending -> partial -> completed
    pending -> completed
    draft / pending / partial -> cancelled

- completed and cancelled are terminal. overdelivered is a recorded value
  only: receiving more than ordered is rejected, never stored.
- Only draft orders may be edited. Received quantities change only through
  receiving_service.
- Each write is a single revision-checked document write.
"""

PO_PREFIX = "PO"


def _validated_items(tenant_id: str, items: list[dict], store: DocumentStore) -> list[PurchaseOrderItem]:
    if not items:
        raise ValidationError("purchase.items_required")
    validated = []
    for item in items:
        product = catalog_service.get_product(tenant_id, item.get("product_id"), store=store)
        quantity = item.get("quantity_ordered")
        unit_cost = item.get("unit_cost")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("purchase.invalid_quantity", sku=product.sku)
        if isinstance(unit_cost, bool) or not isinstance(unit_cost, int) or unit_cost < 0:
            raise ValidationError("purchase.invalid_price", sku=product.sku)
        validated.append(PurchaseOrderItem(
            product_id=product.id,
            sku=product.sku,
            product_name=product.name,
            quantity_ordered=quantity,
            unit_cost=unit_cost,
            notes=item.get("notes"),
        ))
    return validated


def _validate_expected_delivery(value: str | None) -> None:
    if not value:
        return
    try:
        when = parse_iso_datetime(value)
    except ValueError:
        raise ValidationError("purchase.invalid_expected_delivery_date", value=value)
    if when.date() < utcnow().date():
        raise ValidationError("purchase.expected_delivery_date_past")


def _validate_charges(**charges) -> None:
    for name, value in charges.items():
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValidationError("purchase.invalid_amount", field=name)


def _save(saga_name: str, failure_key: str, po: PurchaseOrder, store: DocumentStore) -> PurchaseOrder:
    with Saga(saga_name, failure_key=failure_key) as saga:
        result = saga.run("purchase", lambda: store.insert(po.to_document()))
    return replace(po, rev=result.rev)


def create_purchase_order(
    tenant_id: str,
    actor: Actor | str,
    supplier_id: str,
    items: list[dict],
    currency: str,
    *,
    tax_amount: int = 0,
    shipping_cost: int = 0,
    discount_amount: int = 0,
    expected_delivery_date: str | None = None,
    notes: str | None = None,
    store: DocumentStore | None = None,
) -> PurchaseOrder:
    """
    Create a draft purchase order.

    `items` are dicts with product_id, quantity_ordered, unit_cost and
    optional notes.
    """
    store = store or get_store()
    actor = coerce_actor(actor)
    supplier = catalog_service.get_supplier(tenant_id, supplier_id, require_active=True, store=store)
    validated = _validated_items(tenant_id, items, store)
    _validate_expected_delivery(expected_delivery_date)
    _validate_charges(tax_amount=tax_amount, shipping_cost=shipping_cost, discount_amount=discount_amount)
    if not currency:
        raise ValidationError("purchase.currency_required")

    po_number = next_document_number(tenant_id, PO_PREFIX, store=store)
    now = now_iso()
    po = stamped(
        PurchaseOrder(
            id=document_id(tenant_id, KIND_PURCHASE, new_local_id()),
            po_number=po_number,
            status=PurchaseOrderStatus.DRAFT,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            supplier_email=supplier.email,
            currency=currency,
            items=validated,
            order_date=now,
            tax_amount=tax_amount,
            shipping_cost=shipping_cost,
            discount_amount=discount_amount,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
        ),
        actor,
        now,
    )
    po = _save("purchase.create", "purchase.create_failed", po, store)

    audit_service.record(
        tenant_id, actor, "purchase.create", "purchase", po.id,
        {
            "poNumber": po_number,
            "supplierName": supplier.name,
            "totalAmount": po.total_amount,
            "itemCount": len(validated),
        },
        store=store,
    )
    return po


def get_purchase_order(tenant_id: str, purchase_id: str, *, store: DocumentStore | None = None) -> PurchaseOrder:
    store = store or get_store()
    try:
        doc = get_document(store, tenant_id, KIND_PURCHASE, document_id(tenant_id, KIND_PURCHASE, purchase_id))
    except DocumentNotFoundError:
        raise NotFoundError("purchase.not_found", purchaseId=purchase_id)
    return PurchaseOrder.from_document(doc)


def find_by_number(tenant_id: str, po_number: str, *, store: DocumentStore | None = None) -> PurchaseOrder:
    store = store or get_store()
    docs = store.find(tenant_id, {"kind": KIND_PURCHASE, "poNumber": po_number}, limit=1)
    if not docs:
        raise NotFoundError("purchase.not_found", poNumber=po_number)
    return PurchaseOrder.from_document(docs[0])


def list_purchase_orders(
    tenant_id: str,
    *,
    status: str | None = None,
    supplier_id: str | None = None,
    store: DocumentStore | None = None,
) -> list[PurchaseOrder]:
    """Purchase orders, newest first."""
    store = store or get_store()
    selector: dict = {"kind": KIND_PURCHASE}
    if status:
        try:
            selector["status"] = PurchaseOrderStatus(status).value
        except ValueError:
            raise ValidationError("purchase.invalid_status", status=status)
    if supplier_id:
        selector["supplierId"] = document_id(tenant_id, KIND_SUPPLIER, supplier_id)
    docs = store.find(tenant_id, selector, sort=[{"orderDate": "desc"}])
    return [PurchaseOrder.from_document(d) for d in docs]


def update_purchase_order(
    tenant_id: str,
    actor: Actor | str,
    purchase_id: str,
    *,
    supplier_id: str | None = None,
    items: list[dict] | None = None,
    currency: str | None = None,
    tax_amount: int | None = None,
    shipping_cost: int | None = None,
    discount_amount: int | None = None,
    expected_delivery_date: str | None = None,
    notes: str | None = None,
    store: DocumentStore | None = None,
) -> PurchaseOrder:
    """Edit a draft order. Totals are derived from the items on every write."""
    store = store or get_store()
    actor = coerce_actor(actor)
    po = get_purchase_order(tenant_id, purchase_id, store=store)
    if po.status != PurchaseOrderStatus.DRAFT:
        raise ValidationError("purchase.cannot_update_non_draft", status=po.status.value)

    changes: dict = {}
    if supplier_id:
        supplier = catalog_service.get_supplier(tenant_id, supplier_id, require_active=True, store=store)
        changes.update(supplier_id=supplier.id, supplier_name=supplier.name, supplier_email=supplier.email)
    if items is not None:
        changes["items"] = _validated_items(tenant_id, items, store)
    if expected_delivery_date:
        _validate_expected_delivery(expected_delivery_date)
        changes["expected_delivery_date"] = expected_delivery_date
    _validate_charges(tax_amount=tax_amount, shipping_cost=shipping_cost, discount_amount=discount_amount)
    for name, value in (("currency", currency), ("tax_amount", tax_amount), ("shipping_cost", shipping_cost),
                        ("discount_amount", discount_amount), ("notes", notes)):
        if value is not None:
            changes[name] = value

    po = _save("purchase.update", "purchase.update_failed", stamped(replace(po, **changes), actor, now_iso()), store)

    audit_service.record(
        tenant_id, actor, "purchase.update", "purchase", po.id,
        {"poNumber": po.po_number, "fields": sorted(changes)},
        store=store,
    )
    return po


def change_status(
    tenant_id: str,
    actor: Actor | str,
    purchase_id: str,
    status: str,
    *,
    reason: str | None = None,
    store: DocumentStore | None = None,
) -> PurchaseOrder:
    """Move an order along the lifecycle table; anything else is rejected."""
    store = store or get_store()
    actor = coerce_actor(actor)
    try:
        target = PurchaseOrderStatus(status)
    except ValueError:
        raise ValidationError("purchase.invalid_status", status=status)

    po = get_purchase_order(tenant_id, purchase_id, store=store)
    if not can_transition(po.status, target):
        raise InvalidStatusTransitionError(
            "purchase.invalid_status_transition", po.status.value, target.value
        )

    previous = po.status
    po = _save(
        "purchase.status_change",
        "purchase.status_change_failed",
        stamped(replace(po, status=target), actor, now_iso()),
        store,
    )

    audit_service.record(
        tenant_id, actor, "purchase.status_change", "purchase", po.id,
        {"poNumber": po.po_number, "from": previous.value, "to": target.value, "reason": reason},
        store=store,
    )
    return po
