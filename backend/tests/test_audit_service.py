# Overview: Pytest coverage for the audit log.

import pytest

from conftest import OTHER_TENANT, kind_is
from docledger.models import Actor
from docledger.services import audit_service


class TestRecord:
    def test_writes_entry(self, store, actor):
        entry = audit_service.record("t1", actor, "account.deposit", "account", "t1:account:a", {"amount": 5})

        assert entry is not None
        doc = store.get(entry.id)
        assert doc["kind"] == "log"
        assert doc["actor"]["userId"] == "u1"
        assert doc["meta"] == {"amount": 5}

    def test_accepts_plain_user_id(self, store):
        entry = audit_service.record("t1", "u9", "stock.adjust", "stock")
        assert entry.actor == Actor(user_id="u9")

    def test_failure_returns_none(self, store, actor, fail_writes):
        fail_writes(kind_is("log"))

        assert audit_service.record("t1", actor, "stock.adjust", "stock") is None
        assert audit_service.list_logs("t1") == []


class TestList:
    @pytest.fixture
    def logs(self, store, actor, monkeypatch):
        stamps = iter(f"2026-03-01T10:00:0{i}.000Z" for i in range(9))
        monkeypatch.setattr(audit_service, "now_iso", lambda: next(stamps))
        other = Actor(user_id="u2", name="Clerk", role="clerk")
        audit_service.record("t1", actor, "account.deposit", "account", "t1:account:a")
        audit_service.record("t1", other, "account.withdraw", "account", "t1:account:a")
        audit_service.record("t1", actor, "stock.adjust", "stock", "t1:stock:widget")
        audit_service.record(OTHER_TENANT, actor, "stock.adjust", "stock", "t2:stock:widget")

    def test_newest_first(self, logs):
        entries = audit_service.list_logs("t1")
        assert [e.action for e in entries] == ["stock.adjust", "account.withdraw", "account.deposit"]

    def test_filters(self, logs):
        assert [e.action for e in audit_service.list_logs("t1", resource="account", user_id="u2")] == [
            "account.withdraw",
        ]
        assert len(audit_service.list_logs("t1", action="stock.adjust")) == 1
        assert len(audit_service.list_logs(OTHER_TENANT)) == 1

    def test_paging(self, logs):
        assert [e.action for e in audit_service.list_logs("t1", limit=1, skip=1)] == ["account.withdraw"]
