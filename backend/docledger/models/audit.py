from __future__ import annotations

from dataclasses import dataclass, field

from .base import KIND_LOG, Actor, require_kind


@dataclass(frozen=True)
class AuditLogEntry:
    """Append-only record of a business action. Never updated or deleted."""
    id: str
    action: str
    resource: str
    actor: Actor
    created_at: str
    resource_id: str | None = None
    meta: dict = field(default_factory=dict)

    def to_document(self) -> dict:
        return {
            "_id": self.id,
            "kind": KIND_LOG,
            "action": self.action,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "actor": self.actor.to_dict(),
            "meta": self.meta or None,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "AuditLogEntry":
        require_kind(doc, KIND_LOG)
        return cls(
            id=doc["_id"],
            action=doc["action"],
            resource=doc["resource"],
            resource_id=doc.get("resourceId"),
            actor=Actor.from_dict(doc.get("actor")) or Actor(user_id="unknown"),
            meta=doc.get("meta") or {},
            created_at=doc["createdAt"],
        )
