# Overview: Pytest coverage for invoice creation, payment rules and all-or-nothing persistence.

"""
Invoice Transaction Coordinator Tests

Covers:
- tax-inclusive totals persisted on header, items and tax lines
- stock deduction on COMPLETED, none on HELD
- payment rules (CASH tendered/change, non-cash)
- validation before any write (no invoice number consumed)
- rollback of header + items + movements when anything fails mid-transaction
- sale-time snapshots survive catalogue edits
"""

import pytest
from sqlalchemy.exc import OperationalError

from conftest import cart
from tillcore.errors import InsufficientStock, NotFound, TransactionFailure, ValidationFailure
from tillcore.extensions import db
from tillcore.models import Invoice, InvoiceItem, InvoiceSequence, InvoiceTaxLine, Product, StockMovement
from tillcore.services import invoice_service, products_service, tax_slab_service
from tillcore.time_utils import utcnow


def _stock(product_id: int) -> int:
    return db.session.get(Product, product_id, populate_existing=True).current_stock


def _out_movements(product_id: int) -> list:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, movement_type="OUT")
        .order_by(StockMovement.id)
        .all()
    )


class TestCreateCompletedInvoice:
    def test_two_at_118_with_gst_18(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 2)))

        assert invoice.invoice_number == "INV-000001"
        assert invoice.status == "COMPLETED"
        assert invoice.subtotal_cents == 23600
        assert invoice.discount_amount_cents == 0
        assert invoice.tax_amount_cents == 3600
        assert invoice.total_cents == 23600
        assert [(t.tax_name, t.amount_cents) for t in invoice.tax_lines] == [("CGST", 1800), ("SGST", 1800)]

        item = invoice.items[0]
        assert item.line_number == 1
        assert item.product_name == "Assam Tea 250g"
        assert item.sku == "TEA-250"
        assert item.quantity == 2
        assert item.unit_price_cents == 11800
        assert item.tax_rate_bps == 1800
        assert item.tax_amount_cents == 3600
        assert item.line_total_cents == 23600

        (movement,) = _out_movements(tea.id)
        assert movement.quantity == 2
        assert movement.previous_stock == 10
        assert movement.new_stock == 8
        assert movement.reference == "INV-000001"
        assert movement.notes == "Sale - Assam Tea 250g"
        assert movement.created_by == 7
        assert _stock(tea.id) == 8

    def test_ten_percent_discount(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(
            ctx_a, cart((tea, 2), discount_type="PERCENTAGE", discount_value=1000)
        )

        assert invoice.discount_amount_cents == 2360
        assert invoice.total_cents == 21240
        assert invoice.tax_amount_cents == 3240
        assert invoice.items[0].tax_amount_cents == 3240
        assert {t.tax_name: t.amount_cents for t in invoice.tax_lines} == {"CGST": 1620, "SGST": 1620}

    def test_mixed_cart_totals_add_up(self, db_session, ctx_a, tea, rice, milk):
        invoice = invoice_service.create_invoice(
            ctx_a, cart((tea, 1), (rice, 1), (milk, 3), discount_type="FIXED", discount_value=999)
        )

        assert invoice.subtotal_cents == 11800 + 10500 + 15000
        assert invoice.total_cents == invoice.subtotal_cents - 999
        assert sum(i.tax_amount_cents for i in invoice.items) == invoice.tax_amount_cents
        assert sum(t.amount_cents for t in invoice.tax_lines) == invoice.tax_amount_cents
        assert [i.line_number for i in invoice.items] == [1, 2, 3]
        assert invoice.items[2].tax_amount_cents == 0

    def test_repeated_product_lines_deduct_separately(self, db_session, ctx_a, tea):
        invoice_service.create_invoice(ctx_a, cart((tea, 2), (tea, 3)))

        movements = _out_movements(tea.id)
        assert [(m.previous_stock, m.new_stock) for m in movements] == [(10, 8), (8, 5)]
        assert _stock(tea.id) == 5

    def test_open_line_without_product_has_no_stock_effect(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, {
            "items": [
                {"product_id": tea.id, "quantity": 1},
                {"product_name": "Gift wrap", "unit_price_cents": 2000, "quantity": 1},
            ],
        })

        assert invoice.items[1].product_id is None
        assert invoice.items[1].tax_amount_cents == 0
        assert invoice.total_cents == 13800
        assert db_session.query(StockMovement).filter_by(movement_type="OUT").count() == 1

    def test_numbers_increase_per_tenant(self, db_session, ctx_a, tea):
        first = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        second = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        assert (first.invoice_number, second.invoice_number) == ("INV-000001", "INV-000002")


class TestPaymentRules:
    def test_cash_tendered_defaults_to_total(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        assert invoice.payment_method == "CASH"
        assert invoice.amount_tendered_cents == 11800
        assert invoice.change_given_cents == 0

    def test_cash_change_is_computed(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 2), amount_tendered_cents=25000))
        assert invoice.change_given_cents == 1400

    def test_cash_short_tender_rejected_without_consuming_a_number(self, db_session, ctx_a, tea):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, cart((tea, 2), amount_tendered_cents=20000))

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceSequence).count() == 0
        assert _stock(tea.id) == 10

    def test_non_cash_records_no_tender(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 1), payment_method="UPI"))
        assert invoice.payment_method == "UPI"
        assert invoice.amount_tendered_cents is None
        assert invoice.change_given_cents is None

    def test_unknown_payment_method_rejected(self, db_session, ctx_a, tea):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, cart((tea, 1), payment_method="CHEQUE"))


class TestValidationBeforeWrites:
    @pytest.mark.parametrize("payload", [
        {},
        {"items": []},
        {"items": "tea"},
    ])
    def test_empty_cart(self, db_session, ctx_a, payload):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, payload)
        assert db_session.query(InvoiceSequence).count() == 0

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True])
    def test_bad_quantity(self, db_session, ctx_a, tea, quantity):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, {"items": [{"product_id": tea.id, "quantity": quantity}]})

    def test_unknown_status(self, db_session, ctx_a, tea):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, cart((tea, 1), status="CANCELLED"))

    def test_inactive_product(self, db_session, ctx_a, tea):
        products_service.deactivate_product(ctx_a, tea.id)
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, cart((tea, 1)))

    def test_open_line_needs_positive_price(self, db_session, ctx_a):
        with pytest.raises(ValidationFailure):
            invoice_service.create_invoice(ctx_a, {
                "items": [{"product_name": "Free sample", "unit_price_cents": 0, "quantity": 1}],
            })

    def test_other_tenants_product_is_not_found(self, db_session, ctx_a, biscuits_b):
        with pytest.raises(NotFound):
            invoice_service.create_invoice(ctx_a, cart((biscuits_b, 1)))

    def test_insufficient_stock_leaves_everything_untouched(self, db_session, ctx_a, rice):
        with pytest.raises(InsufficientStock) as exc_info:
            invoice_service.create_invoice(ctx_a, cart((rice, 6)))

        assert exc_info.value.details == {
            "product_id": rice.id,
            "product_name": "Basmati Rice 1kg",
            "requested": 6,
            "available": 5,
        }
        assert _stock(rice.id) == 5
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceSequence).count() == 0

    def test_insufficient_stock_counts_repeated_lines_together(self, db_session, ctx_a, rice):
        with pytest.raises(InsufficientStock):
            invoice_service.create_invoice(ctx_a, cart((rice, 3), (rice, 3)))
        assert _stock(rice.id) == 5


class TestAtomicity:
    def test_failure_before_stock_deduction_rolls_back_everything(self, db_session, ctx_a, tea, monkeypatch):
        def fail_deduction(*args, **kwargs):
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

        monkeypatch.setattr(invoice_service, "deduct_stock", fail_deduction)

        with pytest.raises(TransactionFailure) as exc_info:
            invoice_service.create_invoice(ctx_a, cart((tea, 2)))

        assert exc_info.value.details == {"invoice_number": "INV-000001"}
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(InvoiceTaxLine).count() == 0
        assert _out_movements(tea.id) == []
        assert _stock(tea.id) == 10

    def test_failed_invoice_leaves_a_gap_in_numbering(self, db_session, ctx_a, tea, monkeypatch):
        def fail_deduction(*args, **kwargs):
            raise OperationalError("UPDATE products", {}, Exception("disk I/O error"))

        monkeypatch.setattr(invoice_service, "deduct_stock", fail_deduction)
        with pytest.raises(TransactionFailure):
            invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        monkeypatch.undo()

        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        assert invoice.invoice_number == "INV-000002"

    def test_second_line_short_rolls_back_first_deduction(self, db_session, ctx_a, tea, rice, monkeypatch):
        """The conditional UPDATE rejects rice after tea was already deducted."""
        monkeypatch.setattr(invoice_service, "_check_stock", lambda ctx, cart: None)

        with pytest.raises(InsufficientStock):
            invoice_service.create_invoice(ctx_a, cart((tea, 2), (rice, 6)))

        assert _stock(tea.id) == 10
        assert _stock(rice.id) == 5
        assert db_session.query(StockMovement).filter_by(movement_type="OUT").count() == 0
        assert db_session.query(Invoice).count() == 0


class TestHeldInvoices:
    def test_held_invoice_has_no_stock_effect(self, db_session, ctx_a, tea):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 4), status="HELD", customer_name="Asha"))

        assert invoice.status == "HELD"
        assert invoice.customer_name == "Asha"
        assert invoice.total_cents == 47200
        assert invoice.amount_tendered_cents is None
        assert _out_movements(tea.id) == []
        assert _stock(tea.id) == 10

    def test_held_stock_can_still_be_sold_elsewhere(self, db_session, ctx_a, rice):
        """Holding does not reserve: another terminal can sell the same units."""
        invoice_service.create_invoice(ctx_a, cart((rice, 5), status="HELD"))
        sold = invoice_service.create_invoice(ctx_a, cart((rice, 5)))

        assert sold.status == "COMPLETED"
        assert _stock(rice.id) == 0


class TestSnapshots:
    def test_catalogue_edits_do_not_change_history(self, db_session, ctx_a, tea, slabs_a):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        invoice_id = invoice.id

        products_service.update_product(ctx_a, tea.id, {"name": "Tea (new pack)", "price_cents": 15000})
        tax_slab_service.save_tax_slab(
            ctx_a,
            {"rate_bps": 2800, "component1_rate_bps": 1400, "component2_rate_bps": 1400},
            slab_id=slabs_a["GST 18%"].id,
        )
        db_session.expire_all()

        snapshot = invoice_service.get_invoice_with_items(ctx_a, invoice_id)
        item = snapshot["items"][0]
        assert item["product_name"] == "Assam Tea 250g"
        assert item["unit_price_cents"] == 11800
        assert item["tax_rate_bps"] == 1800
        assert snapshot["invoice"]["tax_amount_cents"] == 1800
        assert snapshot["tax_lines"] == [
            {"tax_name": "CGST", "amount_cents": 900},
            {"tax_name": "SGST", "amount_cents": 900},
        ]


class TestPreviewAndQueries:
    def test_preview_matches_created_invoice_and_writes_nothing(self, db_session, ctx_a, tea, rice):
        payload = cart((tea, 2), (rice, 1), discount_type="PERCENTAGE", discount_value=1000)
        preview = invoice_service.preview_cart(ctx_a, payload)

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceSequence).count() == 0

        invoice = invoice_service.create_invoice(ctx_a, payload)
        assert preview["total_cents"] == invoice.total_cents
        assert preview["tax_amount_cents"] == invoice.tax_amount_cents
        assert preview["tax_breakdown"] == [t.to_dict() for t in invoice.tax_lines]
        assert [line["tax_amount_cents"] for line in preview["lines"]] == [
            i.tax_amount_cents for i in invoice.items
        ]

    def test_preview_does_not_check_stock(self, db_session, ctx_a, rice):
        preview = invoice_service.preview_cart(ctx_a, cart((rice, 50)))
        assert preview["subtotal_cents"] == 50 * 10500

    def test_list_invoices_filters(self, db_session, ctx_a, tea):
        invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        invoice_service.create_invoice(ctx_a, cart((tea, 1), status="HELD"))

        assert len(invoice_service.list_invoices(ctx_a)) == 2
        assert [i.status for i in invoice_service.list_invoices(ctx_a, status="HELD")] == ["HELD"]
        assert len(invoice_service.list_invoices(ctx_a, on_date=utcnow().date())) == 2

    def test_get_invoice_by_number(self, db_session, ctx_a, tea):
        created = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        assert invoice_service.get_invoice_by_number(ctx_a, "INV-000001").id == created.id
        with pytest.raises(NotFound):
            invoice_service.get_invoice_by_number(ctx_a, "INV-999999")
