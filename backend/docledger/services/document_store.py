# Overview: Document store adapter; single-document atomic writes with revision checks.

"""
Document Store Adapter

CONTRACT:
- get(id) -> doc                  (DocumentNotFoundError)
- insert(doc) -> WriteResult      create when doc has no _rev, update otherwise
                                  (DocumentConflictError on stale/colliding rev)
- destroy(id, rev)                (DocumentNotFoundError / DocumentConflictError)
- find(tenant, selector, ...)     partition-scoped query

ATOMICITY: every call commits on its own. Nothing here spans two documents;
callers that need multi-document consistency build it with services.saga.

Documents are plain dicts carrying `_id`, `_rev` and a `kind` discriminator.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy import delete, func, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Document
from ..models.base import split_document_id

logger = logging.getLogger(__name__)

_MISSING = object()


class DocumentStoreError(Exception):
    """Raised when the underlying database fails a store operation."""
    pass


class DocumentNotFoundError(DocumentStoreError):
    """Raised when a document id does not exist."""
    pass


class DocumentConflictError(DocumentStoreError):
    """Raised when a write presents a stale revision or collides with an existing id."""
    pass


@dataclass(frozen=True)
class WriteResult:
    id: str
    rev: str


def _next_rev(current: str | None) -> str:
    generation = 0
    if current:
        try:
            generation = int(current.split("-", 1)[0])
        except ValueError:
            raise DocumentConflictError(f"malformed revision {current!r}")
    return f"{generation + 1}-{uuid.uuid4().hex}"


def _resolve(doc: dict, path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(value: Any, op: str, operand: Any) -> bool:
    if op == "$exists":
        return (value is not _MISSING) == bool(operand)
    if value is _MISSING:
        value = None
    if op == "$eq":
        return value == operand
    if op == "$ne":
        return value != operand
    if op == "$in":
        return value in operand
    if op == "$regex":
        return isinstance(value, str) and re.search(operand, value) is not None
    if value is None or operand is None:
        return False
    try:
        if op == "$gt":
            return value > operand
        if op == "$gte":
            return value >= operand
        if op == "$lt":
            return value < operand
        if op == "$lte":
            return value <= operand
    except TypeError:
        return False
    raise ValueError(f"unsupported selector operator {op!r}")


def matches(doc: dict, selector: dict | None) -> bool:
    """Evaluate a Mango-style selector (equality or {$op: value}) against a document."""
    for path, condition in (selector or {}).items():
        value = _resolve(doc, path)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


def _sort_docs(docs: list[dict], sort: Iterable | None) -> list[dict]:
    """
    Sort by [{"field": "asc"|"desc"}, ...] (or bare field names, ascending).
    Missing values sort first ascending, last descending.
    """
    keys = []
    for spec in sort or ():
        if isinstance(spec, str):
            keys.append((spec, "asc"))
        else:
            keys.extend(spec.items())
    for field_name, direction in reversed(keys):
        def key(d, f=field_name):
            v = _resolve(d, f)
            missing = v is _MISSING or v is None
            return (not missing, None if missing else v)
        docs = sorted(docs, key=key, reverse=(direction == "desc"))
    return docs


class DocumentStore:
    """Adapter over the `documents` table for one SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    def get(self, doc_id: str) -> dict:
        try:
            row = self.session.get(Document, doc_id, populate_existing=True)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DocumentStoreError(f"get {doc_id} failed") from exc
        if row is None:
            raise DocumentNotFoundError(doc_id)
        return row.to_dict()

    def insert(self, doc: dict) -> WriteResult:
        doc_id = doc.get("_id")
        if not doc_id:
            raise ValueError("document _id is required")
        tenant_id, kind, _ = split_document_id(doc_id)
        body = {k: v for k, v in doc.items() if k not in ("_id", "_rev")}
        if body.setdefault("kind", kind) != kind:
            raise ValueError(f"document kind {body['kind']!r} does not match id {doc_id!r}")

        expected_rev = doc.get("_rev")
        new_rev = _next_rev(expected_rev)
        try:
            if expected_rev is None:
                self.session.execute(
                    insert(Document).values(
                        id=doc_id,
                        partition=tenant_id,
                        kind=kind,
                        rev=new_rev,
                        body=body,
                    )
                )
            else:
                result = self.session.execute(
                    update(Document)
                    .where(Document.id == doc_id, Document.rev == expected_rev)
                    .values(rev=new_rev, body=body, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    self.session.rollback()
                    raise DocumentConflictError(f"{doc_id}: revision {expected_rev} is not current")
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DocumentConflictError(f"{doc_id} already exists") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DocumentStoreError(f"insert {doc_id} failed") from exc

        logger.debug("wrote %s rev=%s", doc_id, new_rev)
        return WriteResult(id=doc_id, rev=new_rev)

    def destroy(self, doc_id: str, rev: str) -> None:
        try:
            result = self.session.execute(
                delete(Document).where(Document.id == doc_id, Document.rev == rev)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.session.rollback()
                if self.session.get(Document, doc_id, populate_existing=True) is None:
                    raise DocumentNotFoundError(doc_id)
                raise DocumentConflictError(f"{doc_id}: revision {rev} is not current")
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DocumentStoreError(f"destroy {doc_id} failed") from exc
        logger.debug("destroyed %s rev=%s", doc_id, rev)

    def find(
        self,
        tenant_id: str,
        selector: dict | None = None,
        *,
        sort: Iterable | None = None,
        limit: int | None = None,
        skip: int = 0,
    ) -> list[dict]:
        selector = dict(selector or {})
        kind = selector.pop("kind", None)
        try:
            query = self.session.query(Document).filter(Document.partition == tenant_id)
            if isinstance(kind, str):
                query = query.filter(Document.kind == kind)
            elif kind is not None:
                selector["kind"] = kind
            rows = query.populate_existing().all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DocumentStoreError(f"find in {tenant_id} failed") from exc

        docs = [row.to_dict() for row in rows]
        docs = [d for d in docs if matches(d, selector)]
        docs = _sort_docs(docs, sort)
        if skip:
            docs = docs[skip:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    def count_by_kind(self, tenant_id: str | None = None) -> dict[str, int]:
        query = self.session.query(Document.kind, func.count(Document.id))
        if tenant_id:
            query = query.filter(Document.partition == tenant_id)
        return {kind: count for kind, count in query.group_by(Document.kind).all()}


def get_store() -> DocumentStore:
    """Store bound to the Flask-SQLAlchemy session of the current app context."""
    return DocumentStore(db.session)


def get_document(store: DocumentStore, tenant_id: str, kind: str, doc_id: str) -> dict:
    """
    Fetch a document that must belong to `tenant_id` and be of `kind`.

    A qualified id from another partition or of another kind is reported as
    not found rather than leaking its existence.
    """
    try:
        tenant, doc_kind, _ = split_document_id(doc_id)
    except ValueError:
        raise DocumentNotFoundError(doc_id)
    if tenant != tenant_id or doc_kind != kind:
        raise DocumentNotFoundError(doc_id)
    doc = store.get(doc_id)
    if doc.get("kind") != kind:
        raise DocumentNotFoundError(doc_id)
    return doc
