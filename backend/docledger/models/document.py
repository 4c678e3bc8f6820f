from __future__ import annotations

import copy

from ..extensions import db


class Document(db.Model):
    """
    One JSON document in the tenant-partitioned keyspace.

    ID FORMAT: `{tenant}:{kind}:{localId}`. The first segment is the partition
    and the second the kind; both are copied into their own columns so
    partition-scoped queries can filter without parsing the JSON body.

    CONCURRENCY: `rev` is an opaque revision token ("{n}-{hex}"). Every write
    replaces it; an update that presents a stale revision is rejected by the
    store adapter. There is no multi-row transaction API on top of this table.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.Index("ix_documents_partition_kind", "partition", "kind"),
    )

    id = db.Column(db.String(255), primary_key=True)
    partition = db.Column(db.String(120), nullable=False, index=True)
    kind = db.Column(db.String(64), nullable=False)
    rev = db.Column(db.String(64), nullable=False)
    body = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Document id={self.id!r} rev={self.rev!r}>"

    def to_dict(self) -> dict:
        doc = copy.deepcopy(self.body or {})
        doc["_id"] = self.id
        doc["_rev"] = self.rev
        return doc

