# Overview: Service-layer operations for document numbering; per-day counters with optimistic retry.

from __future__ import annotations

from datetime import datetime

from flask import current_app, has_app_context

from ..models import document_id
from ..models.base import KIND_SEQUENCE
from ..time_utils import date_stamp, now_iso
from .concurrency import run_with_retry
from .document_store import DocumentNotFoundError, DocumentStore, get_store


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _sequence_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("DOCUMENT_SEQUENCE_RETRIES", 3))
    return 3


def next_document_number(
    tenant_id: str,
    prefix: str,
    *,
    on: datetime | None = None,
    pad: int = 3,
    store: DocumentStore | None = None,
) -> str:
    """
    Allocate the next `PREFIX-YYYYMMDD-NNN` number for a tenant.

    One counter document per (tenant, prefix, day). Two writers racing on the
    same counter collide on its revision; the loser re-reads and retries.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    if not prefix:
        raise DocumentSequenceError("prefix is required")

    store = store or get_store()
    day = date_stamp(on)
    counter_id = document_id(tenant_id, KIND_SEQUENCE, f"{prefix}-{day}")

    def _op() -> int:
        try:
            doc = store.get(counter_id)
        except DocumentNotFoundError:
            doc = {"_id": counter_id, "kind": KIND_SEQUENCE, "prefix": prefix, "day": day, "value": 0}
        doc["value"] = int(doc.get("value") or 0) + 1
        doc["updatedAt"] = now_iso()
        store.insert(doc)
        return doc["value"]

    value = run_with_retry(_op, attempts=_sequence_attempts())
    return f"{prefix}-{day}-{str(value).zfill(pad)}"
