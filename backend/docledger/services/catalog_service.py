# Overview: Read-only lookups of categories, products and suppliers used to validate references.

from __future__ import annotations

from ..models import Category, Product, Supplier
from ..models.base import KIND_CATEGORY, KIND_PRODUCT, KIND_SUPPLIER, document_id
from .document_store import DocumentNotFoundError, DocumentStore, get_document, get_store
from .errors import NotFoundError, ValidationError


def _load(store: DocumentStore, tenant_id: str, kind: str, local_or_id: str) -> dict | None:
    if not local_or_id:
        return None
    doc_id = document_id(tenant_id, kind, local_or_id)
    try:
        return get_document(store, tenant_id, kind, doc_id)
    except DocumentNotFoundError:
        return None


def get_category(
    tenant_id: str,
    category_id: str,
    *,
    expected_type: str | None = None,
    store: DocumentStore | None = None,
) -> Category:
    """
    Look up a category, optionally requiring it to be of `expected_type`
    (income for deposits, expense for withdrawals and transfers).
    """
    store = store or get_store()
    doc = _load(store, tenant_id, KIND_CATEGORY, category_id)
    if doc is None:
        raise NotFoundError("account.category_invalid", categoryId=category_id)
    category = Category.from_document(doc)
    if expected_type and category.type != expected_type:
        raise ValidationError(
            "account.category_type_mismatch",
            categoryId=category.id,
            expected=expected_type,
            actual=category.type,
        )
    return category


def get_product(tenant_id: str, product_id: str, *, store: DocumentStore | None = None) -> Product:
    store = store or get_store()
    doc = _load(store, tenant_id, KIND_PRODUCT, product_id)
    if doc is None:
        raise NotFoundError("product.not_found", productId=product_id)
    return Product.from_document(doc)


def get_supplier(
    tenant_id: str,
    supplier_id: str,
    *,
    require_active: bool = False,
    store: DocumentStore | None = None,
) -> Supplier:
    store = store or get_store()
    doc = _load(store, tenant_id, KIND_SUPPLIER, supplier_id)
    if doc is None:
        raise NotFoundError("supplier.not_found", supplierId=supplier_id)
    supplier = Supplier.from_document(doc)
    if require_active and not supplier.is_active:
        raise ValidationError("purchase.supplier_not_active", supplierId=supplier.id)
    return supplier
