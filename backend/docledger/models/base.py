# Overview: Shared helpers for document-backed records: ids, actors, audit stamps.

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from typing import Any


# Document kinds (second segment of every document id)
KIND_ACCOUNT = "account"
KIND_TRANSACTION = "transaction"
KIND_CATEGORY = "category"
KIND_PRODUCT = "product"
KIND_SUPPLIER = "supplier"
KIND_STOCK = "stock"
KIND_BATCH = "batch"
KIND_PURCHASE = "purchase"
KIND_RECEIVING = "receiving"
KIND_OPENING_STOCK = "opening-stock"
KIND_INVENTORY_ITEM = "inventory-item"
KIND_SEQUENCE = "sequence"
KIND_LOG = "log"


def document_id(tenant_id: str, kind: str, local_id: str) -> str:
    """
    Build the canonical `{tenant}:{kind}:{localId}` id.

    Already-qualified ids are passed through unchanged; callers that accept
    ids from outside must still check the partition (see
    document_store.get_document).
    """
    if not tenant_id:
        raise ValueError("tenant_id is required")
    if not local_id:
        raise ValueError("local_id is required")
    if ":" in local_id:
        return local_id
    return f"{tenant_id}:{kind}:{local_id}"


def split_document_id(doc_id: str) -> tuple[str, str, str]:
    """Return (tenant, kind, local_id). Raises ValueError on malformed ids."""
    parts = doc_id.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"malformed document id: {doc_id!r}")
    return parts[0], parts[1], parts[2]


def new_local_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Actor:
    """Who performed a write. Stored on every document as createdBy/updatedBy."""
    user_id: str
    name: str | None = None
    role: str | None = None

    def __post_init__(self):
        if not self.user_id:
            raise ValueError("actor user_id is required")

    def to_dict(self) -> dict:
        return {"userId": self.user_id, "name": self.name, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Actor | None":
        if not data:
            return None
        return cls(user_id=data["userId"], name=data.get("name"), role=data.get("role"))


def coerce_actor(actor: Actor | str) -> Actor:
    if isinstance(actor, Actor):
        return actor
    return Actor(user_id=str(actor))


def audit_fields(record: Any) -> dict:
    """createdAt/createdBy/updatedAt/updatedBy (+ _rev) for to_document()."""
    doc = {
        "createdAt": record.created_at,
        "createdBy": record.created_by.to_dict() if record.created_by else None,
        "updatedAt": record.updated_at,
        "updatedBy": record.updated_by.to_dict() if record.updated_by else None,
    }
    if record.rev:
        doc["_rev"] = record.rev
    return doc


def audit_kwargs(doc: dict) -> dict:
    """Inverse of audit_fields() for from_document()."""
    return {
        "rev": doc.get("_rev"),
        "created_at": doc.get("createdAt"),
        "created_by": Actor.from_dict(doc.get("createdBy")),
        "updated_at": doc.get("updatedAt"),
        "updated_by": Actor.from_dict(doc.get("updatedBy")),
    }


def require_kind(doc: dict, kind: str) -> None:
    if doc.get("kind") != kind:
        raise ValueError(f"document {doc.get('_id')!r} is not a {kind}")


def non_negative(name: str, value: int | float) -> None:
    if value is None or value < 0:
        raise ValueError(f"{name} must be >= 0 (got {value!r})")


def stamped(record: Any, actor: Actor, at: str) -> Any:
    """Copy of `record` with updatedAt/updatedBy set (and createdAt/createdBy on first write)."""
    return replace(
        record,
        created_at=record.created_at or at,
        created_by=record.created_by or actor,
        updated_at=at,
        updated_by=actor,
    )


def local_part(doc_id: str) -> str:
    """Last segment of a qualified id; plain ids are returned unchanged."""
    if ":" not in doc_id:
        return doc_id
    return split_document_id(doc_id)[2]
