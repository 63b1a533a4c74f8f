"""
Order engine tests.

Verifies:
- Totals are GST-inclusive and rounded half-up
- Stock moves with sales, purchases and item amendments
- Party balance and ledger entries stay in step (debit/credit symmetry)
- Payment status transitions post offsetting entries
- Bill snapshot follows the current order lines
- Nothing is written when creation fails part-way
"""

from decimal import Decimal

import pytest

from attarhouse.models import Order, OrderItem, Party, Transaction, StockRecord, PartyItemPrice
from attarhouse.models.parties import LEDGER_DEBIT, LEDGER_CREDIT
from attarhouse.services import order_service, ledger_service
from attarhouse.services.order_service import (
    WARN_ITEM_NOT_IN_ORDER,
    WARN_LEDGER_ENTRY_MISSING,
    WARN_STOCK_NEGATIVE,
    WARN_STOCK_RECORD_MISSING,
    compute_total,
)
from attarhouse.services.settings_service import OrderSettings
from attarhouse.validation import (
    NotFoundError,
    ValidationError,
    parse_order_create,
    parse_order_update,
)


def _create(party, order_type, items, order_date="2026-01-15", settings=None):
    request = parse_order_create({
        "party_id": party.id,
        "order_date": order_date,
        "type": order_type,
        "items": items,
    })
    return order_service.create_order(request, settings=settings)


def _amend(order_id, *, status="pending", payment_status="unpaid", **extra):
    payload = {"status": status, "payment_status": payment_status, **extra}
    return order_service.amend_order(order_id, parse_order_update(payload))


def _entries(party):
    return (
        Transaction.query.filter_by(party_id=party.id)
        .order_by(Transaction.id.asc())
        .all()
    )


# =============================================================================
# TOTALS
# =============================================================================


class TestComputeTotal:

    @pytest.mark.parametrize(
        "subtotal,rate,expected",
        [
            ("250", "18", "295.00"),
            ("1000", "18", "1180.00"),
            ("0", "18", "0.00"),
            ("99.99", "0", "99.99"),
            ("10.05", "5", "10.55"),  # 10.5525 rounds half-up
            ("0.10", "12.5", "0.11"),  # 0.1125
        ],
    )
    def test_rounds_half_up_to_cents(self, subtotal, rate, expected):
        assert compute_total(Decimal(subtotal), Decimal(rate)) == Decimal(expected)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateOrder:

    def test_end_to_end_sale(self, db_session, gst_18, customer, product_a, attar_b, stock_of):
        result = _create(customer, "sale", [
            {"product_id": product_a.id, "quantity": 2, "unit_price": 100},
            {"attar_id": attar_b.id, "quantity": 1, "unit_price": 50},
        ])
        order = result.order

        assert result.warnings == []
        assert order.total_amount == Decimal("295.00")
        assert order.status == "pending"
        assert order.payment_status == "unpaid"
        assert order.gst_rate == Decimal("18")
        assert len(order.items) == 2

        party = db_session.get(Party, customer.id)
        assert party.balance == Decimal("295.00")

        entries = _entries(customer)
        assert len(entries) == 1
        assert entries[0].type == LEDGER_DEBIT
        assert entries[0].amount == Decimal("295.00")
        assert entries[0].description == f"Sale Order #{order.id}"
        assert entries[0].order_id == order.id
        assert order.ledger_transaction_id == entries[0].id

        assert stock_of(product_a) == 18
        assert stock_of(attar_b) == 9

    def test_sale_reduces_stock(self, db_session, customer, product_a, stock_of):
        _create(customer, "sale", [{"product_id": product_a.id, "quantity": 5, "unit_price": 100}])
        assert stock_of(product_a) == 15

    def test_purchase_creates_missing_stock_record(self, db_session, supplier, gift_set, stock_of):
        assert stock_of(gift_set) is None

        result = _create(supplier, "purchase", [
            {"product_set_id": gift_set.id, "quantity": 3, "unit_price": 200},
        ])

        assert result.warnings == []
        assert stock_of(gift_set) == 3

    def test_purchase_adds_to_existing_stock(self, db_session, supplier, attar_b, stock_of):
        _create(supplier, "purchase", [{"attar_id": attar_b.id, "quantity": 4, "unit_price": 40}])
        assert stock_of(attar_b) == 14

    def test_sale_and_purchase_balance_symmetry(self, db_session, gst_18, customer, supplier, product_a):
        line = [{"product_id": product_a.id, "quantity": 10, "unit_price": 100}]

        sale = _create(customer, "sale", line).order
        purchase = _create(supplier, "purchase", line).order

        assert sale.total_amount == Decimal("1180.00")
        assert purchase.total_amount == Decimal("1180.00")

        assert db_session.get(Party, customer.id).balance == Decimal("1180.00")
        assert db_session.get(Party, supplier.id).balance == Decimal("-1180.00")

        [sale_entry] = _entries(customer)
        [purchase_entry] = _entries(supplier)
        assert (sale_entry.type, sale_entry.amount) == (LEDGER_DEBIT, Decimal("1180.00"))
        assert (purchase_entry.type, purchase_entry.amount) == (LEDGER_CREDIT, Decimal("1180.00"))
        assert purchase_entry.description == f"Purchase Order #{purchase.id}"

    def test_sale_below_zero_is_allowed_with_warning(self, db_session, customer, product_a, stock_of):
        result = _create(customer, "sale", [{"product_id": product_a.id, "quantity": 25, "unit_price": 100}])

        assert stock_of(product_a) == -5
        [warning] = result.warnings
        assert warning["code"] == WARN_STOCK_NEGATIVE
        assert warning["quantity"] == -5
        assert warning["item"]["product_id"] == product_a.id

    def test_sale_without_stock_record_warns_and_creates_nothing(self, db_session, customer, gift_set, stock_of):
        result = _create(customer, "sale", [{"product_set_id": gift_set.id, "quantity": 2, "unit_price": 500}])

        assert stock_of(gift_set) is None
        assert [w["code"] for w in result.warnings] == [WARN_STOCK_RECORD_MISSING]
        # The order itself still goes through
        assert Order.query.count() == 1

    def test_missing_unit_price_uses_party_then_cost_price(self, db_session, gst_18, customer, product_a, attar_b):
        db_session.add(PartyItemPrice(
            party_id=customer.id, item_kind=attar_b.item_kind, item_id=attar_b.id, price=Decimal("45.00"),
        ))
        db_session.commit()

        order = _create(customer, "sale", [
            {"product_id": product_a.id, "quantity": 2},
            {"attar_id": attar_b.id, "quantity": 1},
        ]).order

        prices = {(oi.item_kind, oi.item_id): oi.unit_price for oi in order.items}
        assert prices[("product", product_a.id)] == Decimal("100.00")
        assert prices[("attar", attar_b.id)] == Decimal("45.00")
        # 245 * 1.18
        assert order.total_amount == Decimal("289.10")

    def test_gst_rate_read_from_settings(self, db_session, customer, product_a):
        from attarhouse.services import settings_service
        settings_service.set_setting(settings_service.GST_RATE_KEY, "12")
        db_session.commit()

        order = _create(customer, "sale", [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}]).order

        assert order.total_amount == Decimal("112.00")
        assert order.gst_rate == Decimal("12")

    def test_explicit_settings_override_stored_rate(self, db_session, gst_18, customer, product_a):
        order = _create(
            customer, "sale",
            [{"product_id": product_a.id, "quantity": 1, "unit_price": 100}],
            settings=OrderSettings(gst_rate=Decimal("5")),
        ).order
        assert order.total_amount == Decimal("105.00")

    def test_zero_total_posts_no_ledger_entry(self, db_session, customer, product_a):
        order = _create(customer, "sale", [{"product_id": product_a.id, "quantity": 1, "unit_price": 0}]).order

        assert order.total_amount == Decimal("0.00")
        assert order.ledger_transaction_id is None
        assert _entries(customer) == []

    def test_bill_snapshot_written_on_create(self, db_session, customer, product_a, attar_b):
        order = _create(customer, "sale", [
            {"product_id": product_a.id, "quantity": 2, "unit_price": 100},
            {"attar_id": attar_b.id, "quantity": 3, "unit_price": "12.50"},
        ]).order

        bill = order.bill_details
        assert bill["party_name"] == "Noor Fragrances"
        assert bill["party_phone"] == "9000000001"
        assert bill["party_address"] == "12 Market Road"
        assert bill["party_email"] == "noor@example.com"
        assert bill["items"] == [
            {"name": "Product A", "sku": "PRD-A", "quantity": 2, "unit_price": "100.00",
             "total_price": "200.00", "type": "product"},
            {"name": "Attar B", "sku": "ATR-B", "quantity": 3, "unit_price": "12.50",
             "total_price": "37.50", "type": "attar"},
        ]

    def test_timestamp_order_date_truncated_to_date(self, db_session, customer, product_a):
        order = _create(
            customer, "sale",
            [{"product_id": product_a.id, "quantity": 1, "unit_price": 10}],
            order_date="2026-03-04T10:30:00Z",
        ).order
        assert order.order_date.isoformat() == "2026-03-04"


class TestCreateOrderRejects:

    def test_unknown_party(self, db_session, product_a, stock_of):
        request = parse_order_create({
            "party_id": 987654,
            "order_date": "2026-01-15",
            "type": "sale",
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": 10}],
        })
        with pytest.raises(ValidationError):
            order_service.create_order(request)

        assert Order.query.count() == 0
        assert stock_of(product_a) == 20

    def test_unknown_catalog_item(self, db_session, customer, product_a, stock_of):
        with pytest.raises(ValidationError) as excinfo:
            _create(customer, "sale", [
                {"product_id": product_a.id, "quantity": 1, "unit_price": 10},
                {"attar_id": 987654, "quantity": 1, "unit_price": 10},
            ])

        assert excinfo.value.details == {"items": ["attar:987654"]}
        assert Order.query.count() == 0
        assert stock_of(product_a) == 20
        assert db_session.get(Party, customer.id).balance == 0

    def test_failure_mid_transaction_leaves_no_trace(self, db_session, monkeypatch, customer, product_a, stock_of):
        def boom(**kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(order_service, "post_entry", boom)

        with pytest.raises(RuntimeError):
            _create(customer, "sale", [{"product_id": product_a.id, "quantity": 5, "unit_price": 100}])

        assert Order.query.count() == 0
        assert OrderItem.query.count() == 0
        assert Transaction.query.count() == 0
        assert stock_of(product_a) == 20
        assert db_session.get(Party, customer.id).balance == 0


# =============================================================================
# AMEND: ITEMS
# =============================================================================


class TestAmendItems:

    @pytest.fixture
    def sale(self, db_session, gst_18, customer, product_a):
        # stock 20 -> 15, total 590.00
        return _create(customer, "sale", [{"product_id": product_a.id, "quantity": 5, "unit_price": 100}]).order

    def test_increase_quantity_takes_more_stock(self, sale, product_a, stock_of):
        item_id = sale.items[0].id
        _amend(sale.id, items=[{"id": item_id, "quantity": 8, "unit_price": 100}])
        assert stock_of(product_a) == 12

    def test_decrease_quantity_returns_stock(self, sale, product_a, stock_of):
        item_id = sale.items[0].id
        _amend(sale.id, items=[{"id": item_id, "quantity": 2, "unit_price": 100}])
        assert stock_of(product_a) == 18

    def test_price_only_change_leaves_stock(self, sale, product_a, stock_of):
        item_id = sale.items[0].id
        _amend(sale.id, items=[{"id": item_id, "quantity": 5, "unit_price": 120}])
        assert stock_of(product_a) == 15

    def test_total_balance_and_origin_entry_follow_amendment(self, db_session, sale, customer):
        item_id = sale.items[0].id
        result = _amend(sale.id, items=[{"id": item_id, "quantity": 8, "unit_price": 100}])

        assert result.warnings == []
        assert result.order.total_amount == Decimal("944.00")
        assert db_session.get(Party, customer.id).balance == Decimal("944.00")

        # Corrected in place, not appended
        [entry] = _entries(customer)
        assert entry.amount == Decimal("944.00")
        assert entry.id == result.order.ledger_transaction_id

    def test_bill_snapshot_matches_lines(self, db_session, gst_18, customer, product_a, attar_b):
        order = _create(customer, "sale", [
            {"product_id": product_a.id, "quantity": 2, "unit_price": 100},
            {"attar_id": attar_b.id, "quantity": 1, "unit_price": 50},
        ]).order
        attar_line = [oi for oi in order.items if oi.item_kind == "attar"][0]

        order = _amend(order.id, items=[{"id": attar_line.id, "quantity": 4, "unit_price": "55.25"}]).order

        bill_items = order.bill_details["items"]
        assert len(bill_items) == len(order.items)
        for line, row in zip(order.items, bill_items):
            assert row["quantity"] == line.quantity
            assert Decimal(row["total_price"]) == line.unit_price * line.quantity
        assert bill_items[1]["total_price"] == "221.00"
        # (200 + 221) * 1.18
        assert order.total_amount == Decimal("496.78")

    def test_item_from_another_order_is_skipped(self, db_session, sale, customer, product_a, attar_b, stock_of):
        other = _create(customer, "sale", [{"attar_id": attar_b.id, "quantity": 1, "unit_price": 50}]).order
        foreign_id = other.items[0].id

        result = _amend(sale.id, items=[{"id": foreign_id, "quantity": 7, "unit_price": 50}])

        assert [w["code"] for w in result.warnings] == [WARN_ITEM_NOT_IN_ORDER]
        assert result.warnings[0]["order_item_id"] == foreign_id
        assert db_session.get(OrderItem, foreign_id).quantity == 1
        assert stock_of(attar_b) == 9
        assert stock_of(product_a) == 15
        assert result.order.total_amount == Decimal("590.00")

    def test_mixed_owned_and_foreign_items(self, db_session, sale, customer, attar_b, product_a, stock_of):
        other = _create(customer, "sale", [{"attar_id": attar_b.id, "quantity": 1, "unit_price": 50}]).order

        result = _amend(sale.id, items=[
            {"id": sale.items[0].id, "quantity": 6, "unit_price": 100},
            {"id": other.items[0].id, "quantity": 9, "unit_price": 50},
        ])

        assert [w["code"] for w in result.warnings] == [WARN_ITEM_NOT_IN_ORDER]
        assert stock_of(product_a) == 14
        assert result.order.total_amount == Decimal("708.00")

    def test_unknown_item_id_rejected(self, db_session, sale, product_a, stock_of):
        with pytest.raises(ValidationError) as excinfo:
            _amend(sale.id, items=[{"id": 987654, "quantity": 1, "unit_price": 1}])
        assert excinfo.value.details == {"ids": [987654]}
        assert stock_of(product_a) == 15

    def test_unknown_order_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            _amend(987654)

    def test_purchase_amendment_moves_stock_up(self, db_session, gst_18, supplier, gift_set, stock_of):
        order = _create(supplier, "purchase", [
            {"product_set_id": gift_set.id, "quantity": 3, "unit_price": 200},
        ]).order
        assert db_session.get(Party, supplier.id).balance == Decimal("-708.00")

        _amend(order.id, items=[{"id": order.items[0].id, "quantity": 5, "unit_price": 200}])

        assert stock_of(gift_set) == 5
        assert db_session.get(Party, supplier.id).balance == Decimal("-1180.00")
        [entry] = _entries(supplier)
        assert entry.type == LEDGER_CREDIT
        assert entry.amount == Decimal("1180.00")

    def test_purchase_amendment_moves_stock_down(self, db_session, gst_18, supplier, attar_b, stock_of):
        # stock 10 -> 14, total 188.80
        order = _create(supplier, "purchase", [{"attar_id": attar_b.id, "quantity": 4, "unit_price": 40}]).order
        assert stock_of(attar_b) == 14

        result = _amend(order.id, items=[{"id": order.items[0].id, "quantity": 1, "unit_price": 40}])

        assert result.warnings == []
        assert stock_of(attar_b) == 11
        assert result.order.total_amount == Decimal("47.20")
        [entry] = _entries(supplier)
        assert (entry.type, entry.amount) == (LEDGER_CREDIT, Decimal("47.20"))
        assert db_session.get(Party, supplier.id).balance == Decimal("-47.20")

    def test_legacy_order_entry_found_by_description(self, db_session, sale, customer):
        sale.ledger_transaction_id = None
        db_session.commit()

        result = _amend(sale.id, items=[{"id": sale.items[0].id, "quantity": 2, "unit_price": 100}])

        [entry] = _entries(customer)
        assert result.warnings == []
        assert entry.amount == Decimal("236.00")
        assert result.order.ledger_transaction_id == entry.id

    def test_missing_origin_entry_is_posted_again(self, db_session, sale, customer):
        entry = db_session.get(Transaction, sale.ledger_transaction_id)
        sale.ledger_transaction_id = None
        db_session.delete(entry)
        db_session.commit()

        result = _amend(sale.id, items=[{"id": sale.items[0].id, "quantity": 6, "unit_price": 100}])

        assert [w["code"] for w in result.warnings] == [WARN_LEDGER_ENTRY_MISSING]
        [posted] = _entries(customer)
        assert (posted.type, posted.amount) == (LEDGER_DEBIT, Decimal("708.00"))
        assert result.order.ledger_transaction_id == posted.id
        # The 590 that lost its entry stays visible to reconciliation; no new drift is added
        assert db_session.get(Party, customer.id).balance == Decimal("1298.00")
        [mismatch] = ledger_service.reconcile_balances()
        assert mismatch["difference"] == "590.00"

    def test_zero_total_order_gets_entry_when_priced(self, db_session, gst_18, customer, product_a):
        order = _create(customer, "sale", [{"product_id": product_a.id, "quantity": 1, "unit_price": 0}]).order
        assert order.ledger_transaction_id is None

        result = _amend(order.id, items=[{"id": order.items[0].id, "quantity": 1, "unit_price": 100}])

        assert result.warnings == []
        assert result.order.total_amount == Decimal("118.00")
        [entry] = _entries(customer)
        assert (entry.type, entry.amount) == (LEDGER_DEBIT, Decimal("118.00"))
        assert entry.description == f"Sale Order #{order.id}"
        assert result.order.ledger_transaction_id == entry.id
        assert db_session.get(Party, customer.id).balance == Decimal("118.00")
        assert ledger_service.reconcile_balances() == []

        # A later amendment corrects that entry instead of posting another
        _amend(order.id, items=[{"id": order.items[0].id, "quantity": 2, "unit_price": 100}])
        [entry] = _entries(customer)
        assert entry.amount == Decimal("236.00")
        assert ledger_service.reconcile_balances() == []


# =============================================================================
# AMEND: STATUS / PAYMENT
# =============================================================================


class TestAmendPayment:

    @pytest.fixture
    def sale(self, db_session, gst_18, customer, product_a):
        # total 1180.00
        return _create(customer, "sale", [{"product_id": product_a.id, "quantity": 10, "unit_price": 100}]).order

    def test_paid_then_unpaid_round_trip(self, db_session, sale, customer):
        before = db_session.get(Party, customer.id).balance

        _amend(sale.id, payment_status="paid")
        assert db_session.get(Party, customer.id).balance == before - Decimal("1180.00")

        _amend(sale.id, payment_status="unpaid")
        assert db_session.get(Party, customer.id).balance == before

        entries = _entries(customer)
        assert len(entries) == 3
        received, reverted = entries[1], entries[2]
        assert (received.type, received.amount) == (LEDGER_CREDIT, Decimal("1180.00"))
        assert received.description == f"Payment Received for Order #{sale.id}"
        assert (reverted.type, reverted.amount) == (LEDGER_DEBIT, Decimal("1180.00"))
        assert reverted.description == f"Payment Reverted for Order #{sale.id}"

    def test_repeating_paid_posts_once(self, db_session, sale, customer):
        _amend(sale.id, payment_status="paid")
        _amend(sale.id, payment_status="paid", status="completed")

        assert len(_entries(customer)) == 2
        assert db_session.get(Party, customer.id).balance == Decimal("0.00")

    def test_partial_is_not_paid(self, db_session, sale, customer):
        _amend(sale.id, payment_status="partial")
        assert len(_entries(customer)) == 1
        assert db_session.get(Party, customer.id).balance == Decimal("1180.00")

    def test_purchase_payment_made(self, db_session, gst_18, supplier, product_a):
        order = _create(supplier, "purchase", [{"product_id": product_a.id, "quantity": 10, "unit_price": 100}]).order

        _amend(order.id, payment_status="paid")

        entries = _entries(supplier)
        assert entries[-1].type == LEDGER_DEBIT
        assert entries[-1].description == f"Payment Made for Order #{order.id}"
        assert db_session.get(Party, supplier.id).balance == Decimal("0.00")

    def test_purchase_payment_reverted(self, db_session, gst_18, supplier, product_a):
        order = _create(supplier, "purchase", [{"product_id": product_a.id, "quantity": 10, "unit_price": 100}]).order

        _amend(order.id, payment_status="paid")
        _amend(order.id, payment_status="unpaid")

        entries = _entries(supplier)
        assert len(entries) == 3
        reverted = entries[-1]
        assert (reverted.type, reverted.amount) == (LEDGER_CREDIT, Decimal("1180.00"))
        assert reverted.description == f"Payment Reverted for Order #{order.id}"
        assert db_session.get(Party, supplier.id).balance == Decimal("-1180.00")

    def test_payment_uses_amended_total(self, db_session, sale, customer):
        result = _amend(
            sale.id,
            payment_status="paid",
            items=[{"id": sale.items[0].id, "quantity": 5, "unit_price": 100}],
        )

        assert result.order.total_amount == Decimal("590.00")
        assert _entries(customer)[-1].amount == Decimal("590.00")
        assert db_session.get(Party, customer.id).balance == Decimal("0.00")

    def test_status_and_message(self, db_session, sale):
        order = _amend(sale.id, status="completed", payment_status="unpaid", message="Delivered").order
        assert order.status == "completed"
        assert order.message == "Delivered"

        # Omitted message keeps the stored one
        order = _amend(sale.id, status="cancelled").order
        assert order.status == "cancelled"
        assert order.message == "Delivered"

        order = _amend(sale.id, message=None).order
        assert order.message is None

    def test_ledger_still_reconciles(self, db_session, sale):
        _amend(sale.id, payment_status="paid", items=[{"id": sale.items[0].id, "quantity": 7, "unit_price": 90}])
        _amend(sale.id, payment_status="unpaid")
        assert ledger_service.reconcile_balances() == []


# =============================================================================
# READ
# =============================================================================


class TestOrderDetail:

    def test_lines_carry_catalog_item(self, db_session, customer, product_a):
        order = _create(customer, "sale", [{"product_id": product_a.id, "quantity": 1, "unit_price": 10}]).order

        detail = order_service.order_detail(order_service.get_order(order.id))

        assert detail["party"]["name"] == "Noor Fragrances"
        [line] = detail["items"]
        assert line["product_id"] == product_a.id
        assert line["item"] == {"kind": "product", "id": product_a.id, "name": "Product A", "sku": "PRD-A"}

    def test_get_missing_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.get_order(987654)

    def test_stock_record_counts_match_ledger_of_moves(self, db_session, customer, supplier, product_a, stock_of):
        _create(customer, "sale", [{"product_id": product_a.id, "quantity": 4, "unit_price": 10}])
        _create(supplier, "purchase", [{"product_id": product_a.id, "quantity": 9, "unit_price": 5}])
        assert stock_of(product_a) == 25
        assert StockRecord.query.count() == 1
