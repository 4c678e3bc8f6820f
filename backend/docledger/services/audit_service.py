# Overview: Service-layer operations for the audit log; fire-and-forget action records.

from __future__ import annotations

import logging

from ..models import AuditLogEntry, document_id, new_local_id
from ..models.base import KIND_LOG, Actor, coerce_actor
from ..time_utils import now_iso
from .document_store import DocumentStore, DocumentStoreError, get_store
"""
Audit Log Invariants

- Append-only: entries are never updated or deleted.
- No domain/business logic in the log itself.
- Recording is best effort. A failed write is logged and swallowed so the
  business operation that triggered it is never aborted by its audit trail.
"""

logger = logging.getLogger(__name__)


def record(
    tenant_id: str,
    actor: Actor | str,
    action: str,
    resource: str,
    resource_id: str | None = None,
    meta: dict | None = None,
    *,
    store: DocumentStore | None = None,
) -> AuditLogEntry | None:
    """
    Append an audit entry. Returns None when the write failed.
    """
    store = store or get_store()
    entry = AuditLogEntry(
        id=document_id(tenant_id, KIND_LOG, new_local_id()),
        action=action,
        resource=resource,
        resource_id=resource_id,
        actor=coerce_actor(actor),
        meta=dict(meta or {}),
        created_at=now_iso(),
    )
    try:
        store.insert(entry.to_document())
    except (DocumentStoreError, ValueError, TypeError) as exc:
        logger.warning("failed to record %s on %s %s: %s", action, resource, resource_id, exc)
        return None
    return entry


def list_logs(
    tenant_id: str,
    *,
    action: str | None = None,
    resource: str | None = None,
    user_id: str | None = None,
    limit: int | None = None,
    skip: int = 0,
    store: DocumentStore | None = None,
) -> list[AuditLogEntry]:
    """List audit entries for a tenant, newest first."""
    store = store or get_store()
    selector: dict = {"kind": KIND_LOG}
    if action:
        selector["action"] = action
    if resource:
        selector["resource"] = resource
    if user_id:
        selector["actor.userId"] = user_id

    docs = store.find(tenant_id, selector, sort=[{"createdAt": "desc"}], limit=limit, skip=skip)
    return [AuditLogEntry.from_document(d) for d in docs]
