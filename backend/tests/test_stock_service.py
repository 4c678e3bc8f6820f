# Overview: Pytest coverage for the stock ledger service.

import pytest

from conftest import kind_is
from docledger.services import audit_service, stock_service
from docledger.services.document_store import DocumentStoreError
from docledger.services.errors import NotFoundError, OperationFailedError, ValidationError
from docledger.services.saga import Saga


class TestAdjustStock:
    def test_empty_level(self, tenant):
        stock = stock_service.get_current_level(tenant, "widget")

        assert stock.id == "t1:stock:widget"
        assert stock.product_id == "t1:product:widget"
        assert stock.quantity_on_hand == 0
        assert not stock.is_persisted

    def test_stock_in_creates_ledger(self, tenant, actor):
        stock = stock_service.adjust_stock(
            tenant, actor, "widget", 100, "in", "initial count",
            unit_cost=25, location="main",
        )

        assert stock.is_persisted
        stored = stock_service.get_current_level(tenant, "widget")
        assert stored.quantity_on_hand == 100
        assert stored.average_cost == 25
        assert stored.total_value == 2500
        assert stored.last_adjustment.location == "main"
        assert stored.last_adjustment.adjusted_by.user_id == "u1"

    def test_movements_accumulate(self, tenant, actor):
        stock_service.adjust_stock(tenant, actor, "widget", 100, "in", "receipt", unit_cost=25)
        stock_service.adjust_stock(tenant, actor, "widget", 40, "out", "sale", reference_type="sale")
        stock = stock_service.adjust_stock(tenant, actor, "widget", 50, "adjustment", "count")

        assert stock.quantity_on_hand == 50
        assert stock.total_value == 1250
        assert stock.last_adjustment.type.value == "adjustment"

    def test_audited(self, tenant, actor):
        stock_service.adjust_stock(tenant, actor, "widget", 5, "in", "receipt", unit_cost=1)

        logs = audit_service.list_logs(tenant, action="stock.adjust")
        assert len(logs) == 1
        assert logs[0].meta["quantity"] == 5

    def test_unknown_product(self, tenant, actor):
        with pytest.raises(NotFoundError) as exc_info:
            stock_service.adjust_stock(tenant, actor, "missing", 1, "in", "x", unit_cost=1)
        assert exc_info.value.key == "product.not_found"

    def test_other_tenant_product_is_unknown(self, tenant, actor):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(tenant, actor, "t2:product:widget", 1, "in", "x", unit_cost=1)

    @pytest.mark.parametrize("quantity,type,key", [
        (-1, "in", "stock.invalid_quantity"),
        (1, "sideways", "stock.invalid_type"),
    ])
    def test_invalid_input(self, tenant, actor, quantity, type, key):
        with pytest.raises(ValidationError) as exc_info:
            stock_service.adjust_stock(tenant, actor, "widget", quantity, type, "x")
        assert exc_info.value.key == key

    def test_invalid_reference_type(self, tenant, actor):
        with pytest.raises(ValidationError) as exc_info:
            stock_service.adjust_stock(tenant, actor, "widget", 1, "in", "x", reference_type="gift")
        assert exc_info.value.key == "stock.invalid_reference_type"

    def test_write_failure(self, tenant, actor, fail_writes):
        stock_service.adjust_stock(tenant, actor, "widget", 10, "in", "receipt", unit_cost=3)
        fail_writes(kind_is("stock"))

        with pytest.raises(OperationFailedError) as exc_info:
            stock_service.adjust_stock(tenant, actor, "widget", 5, "in", "receipt", unit_cost=3)

        assert exc_info.value.key == "stock.adjust_failed"
        assert stock_service.get_current_level(tenant, "widget").quantity_on_hand == 10


class TestRestoreStock:
    def test_restores_snapshot(self, tenant, actor, store):
        before = stock_service.adjust_stock(tenant, actor, "widget", 10, "in", "receipt", unit_cost=3)
        after = stock_service.adjust_stock(tenant, actor, "widget", 4, "out", "sale")

        from docledger.services.document_store import WriteResult
        stock_service.restore_stock(before, WriteResult(id=after.id, rev=after.rev), store=store)

        restored = stock_service.get_current_level(tenant, "widget")
        assert restored.quantity_on_hand == 10
        assert restored.total_value == 30


class TestPostMovement:
    def _movement(self, actor, quantity, unit_cost):
        return stock_service.build_adjustment(actor, type="in", quantity=quantity, unit_cost=unit_cost, reason="receipt")

    def test_repeated_document_unwinds_to_first_snapshot(self, tenant, actor, store):
        stock_service.adjust_stock(tenant, actor, "widget", 5, "in", "count", unit_cost=20)

        saga = Saga("test.repeat", failure_key="test.failed")
        with pytest.raises(OperationFailedError) as exc_info:
            with saga:
                stock_service.post_movement(saga, tenant, actor, "t1:product:widget", self._movement(actor, 10, 25), store=store)
                stock_service.post_movement(saga, tenant, actor, "t1:product:widget", self._movement(actor, 10, 25), store=store)
                raise DocumentStoreError("later step failed")

        assert exc_info.value.fully_compensated
        stock = stock_service.get_current_level(tenant, "widget")
        assert stock.quantity_on_hand == 5
        assert stock.total_value == 100

    def test_repeated_new_document_is_deleted(self, tenant, actor, store):
        saga = Saga("test.repeat", failure_key="test.failed")
        with pytest.raises(OperationFailedError) as exc_info:
            with saga:
                stock_service.post_movement(saga, tenant, actor, "t1:product:widget", self._movement(actor, 10, 25), store=store)
                stock_service.post_movement(saga, tenant, actor, "t1:product:widget", self._movement(actor, 3, 25), store=store)
                raise DocumentStoreError("later step failed")

        assert exc_info.value.fully_compensated
        assert not stock_service.get_current_level(tenant, "widget").is_persisted


class TestQueries:
    def test_low_stock(self, tenant, actor):
        stock_service.adjust_stock(tenant, actor, "widget", 4, "in", "receipt", unit_cost=1)
        stock_service.adjust_stock(tenant, actor, "gadget", 1, "in", "receipt", unit_cost=1)

        low = stock_service.low_stock_products(tenant)

        assert [item["sku"] for item in low] == ["WID-1"]
        assert low[0]["shortfall"] == 6

    def test_low_stock_without_ledger(self, tenant):
        low = stock_service.low_stock_products(tenant)
        assert low[0]["currentStock"] == 0

    def test_by_location(self, tenant, actor):
        stock_service.adjust_stock(tenant, actor, "widget", 4, "in", "r", unit_cost=1, location="main")
        stock_service.adjust_stock(tenant, actor, "gadget", 4, "in", "r", unit_cost=1, location="annex")

        assert [s.product_id for s in stock_service.stock_by_location(tenant, "main")] == ["t1:product:widget"]
        assert len(stock_service.all_stock(tenant)) == 2

    def test_verify(self, tenant, actor, store):
        stock_service.adjust_stock(tenant, actor, "widget", 3, "in", "r", unit_cost=7)
        assert stock_service.verify_stock(tenant) == []

        doc = store.get("t1:stock:widget")
        doc["totalValue"] = 999
        store.insert(doc)

        offenders = stock_service.verify_stock(tenant, tolerance=1)
        assert [o["id"] for o in offenders] == ["t1:stock:widget"]
        assert "totalValue" in offenders[0]["problems"][0]
