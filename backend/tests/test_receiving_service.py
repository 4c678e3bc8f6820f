# Overview: Pytest coverage for receiving, purchase receipts and opening stock.

"""
Receiving Tests

- Validation (unknown product, over-delivery, non-receivable PO) happens
  before any write.
- A failure anywhere in a receipt unwinds batches, stock and the PO.
"""

import re

import pytest

from conftest import id_is, kind_is
from docledger.services import batch_service, inventory_item_service, purchase_service, receiving_service, stock_service
from docledger.services.errors import ConflictError, NotFoundError, OperationFailedError, ValidationError
from docledger.services.receiving_service import ReceiveLine

ITEMS = [
    {"product_id": "widget", "quantity_ordered": 10, "unit_cost": 25},
    {"product_id": "gadget", "quantity_ordered": 5, "unit_cost": 100},
]


@pytest.fixture
def pending_po(tenant, actor):
    po = purchase_service.create_purchase_order(tenant, actor, "acme", ITEMS, "TZS")
    return purchase_service.change_status(tenant, actor, po.id, "pending")


def _line(po, product_id):
    return po.find_item(f"t1:product:{product_id}")


class TestReceive:
    def test_batched_and_unbatched(self, tenant, actor):
        result = receiving_service.receive(tenant, actor, [
            ReceiveLine(product_id="widget", quantity=10, unit_cost=25, batch_number="W-1"),
            ReceiveLine(product_id="gadget", quantity=4, unit_cost=100),
        ])

        assert [b.batch_number for b in result.batches] == ["W-1"]
        assert result.stock["t1:product:widget"].total_value == 250
        assert stock_service.get_current_level(tenant, "gadget").quantity_on_hand == 4

    def test_same_product_twice(self, tenant, actor):
        result = receiving_service.receive(tenant, actor, [
            ReceiveLine(product_id="widget", quantity=10, unit_cost=10),
            ReceiveLine(product_id="widget", quantity=10, unit_cost=20),
        ])

        stock = result.stock["t1:product:widget"]
        assert stock.quantity_on_hand == 20
        assert stock.average_cost == 15

    def test_later_failure_restores_earlier_lines(self, tenant, actor, fail_writes):
        stock_service.adjust_stock(tenant, actor, "gadget", 2, "in", "existing", unit_cost=50)
        fail_writes(kind_is("stock"), skip=2, times=1)

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.receive(tenant, actor, [
                ReceiveLine(product_id="widget", quantity=10, unit_cost=25, batch_number="W-1"),
                ReceiveLine(product_id="gadget", quantity=3, unit_cost=50),
                ReceiveLine(product_id="widget", quantity=1, unit_cost=25),
            ])

        assert exc_info.value.key == "receiving.receive_failed"
        assert exc_info.value.fully_compensated
        assert not stock_service.get_current_level(tenant, "widget").is_persisted
        gadget = stock_service.get_current_level(tenant, "gadget")
        assert gadget.quantity_on_hand == 2
        assert gadget.total_value == 100
        assert batch_service.list_batches(tenant) == []

    def test_repeated_product_unwinds_to_pre_request_level(self, tenant, actor, fail_writes):
        stock_service.adjust_stock(tenant, actor, "widget", 5, "in", "count", unit_cost=20)
        fail_writes(id_is("t1:stock:gadget"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.receive(tenant, actor, [
                ReceiveLine(product_id="widget", quantity=10, unit_cost=25, batch_number="W-1"),
                ReceiveLine(product_id="widget", quantity=10, unit_cost=25, batch_number="W-2"),
                ReceiveLine(product_id="gadget", quantity=3, unit_cost=50),
            ])

        assert exc_info.value.fully_compensated
        widget = stock_service.get_current_level(tenant, "widget")
        assert widget.quantity_on_hand == 5
        assert widget.total_value == 100
        assert batch_service.list_batches(tenant) == []

    def test_repeated_new_product_leaves_no_ledger(self, tenant, actor, fail_writes):
        fail_writes(id_is("t1:stock:gadget"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.receive(tenant, actor, [
                ReceiveLine(product_id="widget", quantity=5, unit_cost=10),
                ReceiveLine(product_id="widget", quantity=5, unit_cost=10),
                ReceiveLine(product_id="gadget", quantity=1, unit_cost=10),
            ])

        assert exc_info.value.fully_compensated
        assert not stock_service.get_current_level(tenant, "widget").is_persisted

    def test_duplicate_batch_in_request(self, tenant, actor, store):
        with pytest.raises(ConflictError):
            receiving_service.receive(tenant, actor, [
                ReceiveLine(product_id="widget", quantity=1, unit_cost=1, batch_number="W-1"),
                ReceiveLine(product_id="widget", quantity=1, unit_cost=1, batch_number="W-1"),
            ])
        assert "stock" not in store.count_by_kind(tenant)

    def test_missing_cost(self, tenant, actor):
        with pytest.raises(ValidationError) as exc_info:
            receiving_service.receive(tenant, actor, [ReceiveLine(product_id="widget", quantity=1)])
        assert exc_info.value.key == "receiving.invalid_cost"


class TestReceivePurchaseOrder:
    def test_partial(self, tenant, actor, pending_po):
        receipt = receiving_service.receive_purchase_order(
            tenant, actor, pending_po.id, [ReceiveLine(product_id="widget", quantity=8)],
        )

        po = purchase_service.get_purchase_order(tenant, pending_po.id)
        assert po.status.value == "partial"
        assert _line(po, "widget").quantity_received == 8
        assert po.receiving_ids == (receipt.receiving_record.id,)
        assert po.actual_delivery_date is not None

        record = receiving_service.get_receiving_record(tenant, receipt.receiving_record.id)
        assert re.match(r"^RCV-\d{8}-001$", record.receiving_number)
        assert record.purchase_id == po.id
        assert record.total_quantity == 8
        assert record.total_cost == 200

        stock = stock_service.get_current_level(tenant, "widget")
        assert stock.quantity_on_hand == 8
        assert stock.average_cost == 25
        assert stock.last_adjustment.reference_type == "purchase"

    def test_over_delivery_rejected_before_writes(self, tenant, actor, pending_po):
        receiving_service.receive_purchase_order(
            tenant, actor, pending_po.id, [ReceiveLine(product_id="widget", quantity=8)],
        )

        with pytest.raises(ValidationError) as exc_info:
            receiving_service.receive_purchase_order(
                tenant, actor, pending_po.id, [ReceiveLine(product_id="widget", quantity=5)],
            )

        assert exc_info.value.key == "purchase.over_delivery"
        po = purchase_service.get_purchase_order(tenant, pending_po.id)
        assert _line(po, "widget").quantity_received == 8
        assert stock_service.get_current_level(tenant, "widget").quantity_on_hand == 8
        assert len(receiving_service.list_receiving_records(tenant, po.id)) == 1

    def test_over_delivery_across_lines_of_one_request(self, tenant, actor, pending_po):
        with pytest.raises(ValidationError):
            receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
                ReceiveLine(product_id="widget", quantity=6),
                ReceiveLine(product_id="widget", quantity=6),
            ])

    def test_completes(self, tenant, actor, pending_po):
        receiving_service.receive_purchase_order(
            tenant, actor, pending_po.id, [ReceiveLine(product_id="widget", quantity=4)],
        )
        receipt = receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
            ReceiveLine(product_id="widget", quantity=6),
            ReceiveLine(product_id="gadget", quantity=5, unit_cost=90),
        ])

        assert receipt.purchase_order.status.value == "completed"
        assert len(receipt.purchase_order.receiving_ids) == 2
        assert receipt.receiving_record.receiving_number.endswith("-002")
        assert stock_service.get_current_level(tenant, "gadget").average_cost == 90

    def test_batched_lines_reference_purchase(self, tenant, actor, pending_po):
        receipt = receiving_service.receive_purchase_order(
            tenant, actor, pending_po.id,
            [ReceiveLine(product_id="widget", quantity=10, batch_number="PO-W-1", expiry_date="2031-01-01")],
        )

        batch = batch_service.find_batch_by_number(tenant, "widget", "PO-W-1")
        assert batch.purchase_id == pending_po.id
        assert batch.supplier_id == "t1:supplier:acme"
        assert receipt.receiving_record.batch_ids == [batch.id]

    def test_draft_not_receivable(self, tenant, actor):
        po = purchase_service.create_purchase_order(tenant, actor, "acme", ITEMS, "TZS")
        with pytest.raises(ValidationError) as exc_info:
            receiving_service.receive_purchase_order(
                tenant, actor, po.id, [ReceiveLine(product_id="widget", quantity=1)],
            )
        assert exc_info.value.key == "purchase.not_receivable"

    def test_item_not_in_order(self, tenant, actor, store):
        po = purchase_service.create_purchase_order(
            tenant, actor, "acme", [{"product_id": "widget", "quantity_ordered": 1, "unit_cost": 1}], "TZS",
        )
        purchase_service.change_status(tenant, actor, po.id, "pending")

        with pytest.raises(ValidationError) as exc_info:
            receiving_service.receive_purchase_order(
                tenant, actor, po.id, [ReceiveLine(product_id="gadget", quantity=1)],
            )
        assert exc_info.value.key == "purchase.item_not_in_order"

    def test_unknown_purchase(self, tenant, actor):
        with pytest.raises(NotFoundError):
            receiving_service.receive_purchase_order(
                tenant, actor, "missing", [ReceiveLine(product_id="widget", quantity=1)],
            )

    def test_record_failure_unwinds_everything(self, tenant, actor, pending_po, fail_writes):
        fail_writes(kind_is("receiving"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
                ReceiveLine(product_id="widget", quantity=10, batch_number="W-1"),
                ReceiveLine(product_id="gadget", quantity=2),
            ])

        err = exc_info.value
        assert err.key == "purchase.receive_failed"
        assert err.fully_compensated

        po = purchase_service.get_purchase_order(tenant, pending_po.id)
        assert po.status.value == "pending"
        assert all(item.quantity_received == 0 for item in po.items)
        assert po.receiving_ids == ()
        assert batch_service.list_batches(tenant) == []
        assert not stock_service.get_current_level(tenant, "widget").is_persisted
        assert not stock_service.get_current_level(tenant, "gadget").is_persisted

    def test_repeated_product_record_failure(self, tenant, actor, pending_po, fail_writes):
        fail_writes(kind_is("receiving"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
                ReceiveLine(product_id="widget", quantity=4, batch_number="W-1"),
                ReceiveLine(product_id="widget", quantity=6, batch_number="W-2"),
            ])

        assert exc_info.value.fully_compensated
        assert not stock_service.get_current_level(tenant, "widget").is_persisted
        assert batch_service.list_batches(tenant) == []
        po = purchase_service.get_purchase_order(tenant, pending_po.id)
        assert po.status.value == "pending"
        assert _line(po, "widget").quantity_received == 0

    def test_serialized_lines_reference_purchase(self, tenant, actor, pending_po):
        receipt = receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
            ReceiveLine(product_id="gadget", quantity=2, serial_numbers=["G-1", "G-2"]),
        ])

        units = receipt.received.inventory_items
        assert [u.serial_number for u in units] == ["G-1", "G-2"]
        assert {u.purchase_id for u in units} == {pending_po.id}
        assert {u.supplier_id for u in units} == {"t1:supplier:acme"}

    def test_serial_mismatch_uses_purchase_key(self, tenant, actor, pending_po):
        with pytest.raises(ValidationError) as exc_info:
            receiving_service.receive_purchase_order(tenant, actor, pending_po.id, [
                ReceiveLine(product_id="gadget", quantity=2, serial_numbers=["G-1"]),
            ])
        assert exc_info.value.key == "purchase.serial_quantity_mismatch"

    def test_purchase_write_failure(self, tenant, actor, pending_po, fail_writes):
        fail_writes(kind_is("purchase"))

        with pytest.raises(OperationFailedError):
            receiving_service.receive_purchase_order(
                tenant, actor, pending_po.id, [ReceiveLine(product_id="widget", quantity=3)],
            )

        assert stock_service.get_current_level(tenant, "widget").quantity_on_hand == 0
        assert receiving_service.list_receiving_records(tenant) == []


class TestOpeningStock:
    def test_regular_and_batched(self, tenant, actor):
        entry = receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
            ReceiveLine(product_id="widget", quantity=20, unit_cost=30),
            ReceiveLine(product_id="gadget", quantity=3, unit_cost=100, batch_number="OPEN-1", location="annex"),
        ], notes="go-live")

        assert re.match(r"^OS-\d{8}-001$", entry.entry_number)
        assert [i.type.value for i in entry.items] == ["regular", "batched"]
        assert len(entry.batch_ids) == 1
        assert entry.total_quantity == 23
        assert entry.total_cost == 900

        widget = stock_service.get_current_level(tenant, "widget")
        assert widget.quantity_on_hand == 20
        assert widget.last_adjustment.reference_type == "opening_stock"
        assert widget.last_adjustment.reference_id == entry.entry_number
        assert widget.last_adjustment.location == "default"

        assert receiving_service.get_opening_stock(tenant, entry.id).entry_number == entry.entry_number
        assert [e.id for e in receiving_service.list_opening_stock(tenant)] == [entry.id]

    def test_entry_failure_unwinds(self, tenant, actor, fail_writes):
        fail_writes(kind_is("opening-stock"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="widget", quantity=20, unit_cost=30, batch_number="OPEN-1"),
            ])

        assert exc_info.value.key == "opening_stock.create_failed"
        assert batch_service.list_batches(tenant) == []
        assert not stock_service.get_current_level(tenant, "widget").is_persisted
        assert receiving_service.list_opening_stock(tenant) == []

    def test_serialized(self, tenant, actor):
        entry = receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
            ReceiveLine(product_id="gadget", quantity=2, unit_cost=100, serial_numbers=["G-1", "G-2"]),
        ])

        item = entry.items[0]
        assert item.type.value == "serialized"
        assert item.serial_numbers == ("G-1", "G-2")
        assert len(entry.serial_ids) == 2

        units = inventory_item_service.find_available_by_product(tenant, "gadget")
        assert sorted(u.id for u in units) == sorted(entry.serial_ids)
        assert {u.location for u in units} == {"default"}
        assert stock_service.get_current_level(tenant, "gadget").quantity_on_hand == 2

        stored = receiving_service.get_opening_stock(tenant, entry.id)
        assert stored.items[0].serial_numbers == ("G-1", "G-2")
        assert stored.serial_ids == entry.serial_ids

    def test_serialized_batch_links_items(self, tenant, actor):
        entry = receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
            ReceiveLine(product_id="gadget", quantity=1, unit_cost=100, batch_number="G-B1", serial_numbers=["G-1"]),
        ])

        assert entry.items[0].type.value == "serialized"
        assert inventory_item_service.find_by_serial(tenant, "G-1").batch_id == entry.batch_ids[0]

    def test_serial_count_must_match_quantity(self, tenant, actor, store):
        with pytest.raises(ValidationError) as exc_info:
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="gadget", quantity=3, unit_cost=100, serial_numbers=["G-1", "G-2"]),
            ])

        assert exc_info.value.key == "opening_stock.serial_quantity_mismatch"
        assert exc_info.value.vars == {"sku": "GAD-1", "expected": 3, "provided": 2}
        assert "inventory-item" not in store.count_by_kind(tenant)

    def test_existing_serial_rejected(self, tenant, actor):
        inventory_item_service.create_item(tenant, actor, "widget", "G-1")

        with pytest.raises(ConflictError) as exc_info:
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="gadget", quantity=1, unit_cost=100, serial_numbers=["G-1"]),
            ])
        assert exc_info.value.key == "inventory_item.serial_exists"

    def test_duplicate_serial_in_request(self, tenant, actor):
        with pytest.raises(ConflictError):
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="gadget", quantity=1, unit_cost=100, serial_numbers=["G-1"]),
                ReceiveLine(product_id="widget", quantity=1, unit_cost=100, serial_numbers=["G-1"]),
            ])

    def test_serialized_failure_unwinds(self, tenant, actor, fail_writes):
        fail_writes(kind_is("stock"))

        with pytest.raises(OperationFailedError) as exc_info:
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="gadget", quantity=2, unit_cost=100, serial_numbers=["G-1", "G-2"]),
            ])

        assert exc_info.value.key == "opening_stock.create_failed"
        assert exc_info.value.fully_compensated
        assert inventory_item_service.list_items(tenant) == []
        assert receiving_service.list_opening_stock(tenant) == []

    def test_serial_write_failure_unwinds_earlier_units(self, tenant, actor, fail_writes):
        fail_writes(kind_is("inventory-item"), skip=1)

        with pytest.raises(OperationFailedError):
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [
                ReceiveLine(product_id="gadget", quantity=2, unit_cost=100, serial_numbers=["G-1", "G-2"]),
            ])

        assert inventory_item_service.list_items(tenant) == []
        assert not stock_service.get_current_level(tenant, "gadget").is_persisted

    def test_missing_entry(self, tenant):
        with pytest.raises(NotFoundError):
            receiving_service.get_opening_stock(tenant, "missing")

    def test_requires_items(self, tenant, actor):
        with pytest.raises(ValidationError) as exc_info:
            receiving_service.create_opening_stock(tenant, actor, "2026-01-01", [])
        assert exc_info.value.key == "opening_stock.items_required"
