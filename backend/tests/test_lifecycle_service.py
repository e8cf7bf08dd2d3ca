"""
Invoice Lifecycle Tests

HELD -> CANCELLED, COMPLETED -> CANCELLED, CANCELLED is terminal.
Resuming a held invoice cancels it and returns a cart; the cart is checked
out as a brand new invoice.
"""

import pytest

from conftest import cart
from tillcore.errors import InvalidTransition, NotFound
from tillcore.extensions import db
from tillcore.models import Invoice, Product, StockMovement
from tillcore.services import invoice_service, lifecycle_service, products_service
from tillcore.services.lifecycle_service import can_transition


class TestTransitionTable:
    @pytest.mark.parametrize("current,target,allowed", [
        ("HELD", "CANCELLED", True),
        ("COMPLETED", "CANCELLED", True),
        ("HELD", "COMPLETED", False),
        ("CANCELLED", "HELD", False),
        ("CANCELLED", "COMPLETED", False),
        ("COMPLETED", "HELD", False),
    ])
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestCancel:
    def test_cancel_held(self, db_session, ctx_a, tea):
        held = invoice_service.create_invoice(ctx_a, cart((tea, 1), status="HELD"))

        result = lifecycle_service.cancel_invoice(ctx_a, held.id, reason="Customer left")

        assert result.invoice.status == "CANCELLED"
        assert result.invoice.cancel_reason == "Customer left"
        assert result.invoice.cancelled_by == 7
        assert result.invoice.cancelled_at is not None
        assert result.stock_reversed is False

    def test_cancel_completed_keeps_stock_deducted(self, db_session, ctx_a, tea):
        sold = invoice_service.create_invoice(ctx_a, cart((tea, 3)))

        result = lifecycle_service.cancel_invoice(ctx_a, sold.id)

        assert result.to_dict()["stock_reversed"] is False
        assert db.session.get(Product, tea.id, populate_existing=True).current_stock == 7
        assert db_session.query(StockMovement).filter_by(product_id=tea.id, movement_type="IN").count() == 1

    def test_cancel_leaves_amounts_untouched(self, db_session, ctx_a, tea):
        sold = invoice_service.create_invoice(ctx_a, cart((tea, 2)))
        before = invoice_service.invoice_snapshot(sold)

        lifecycle_service.cancel_invoice(ctx_a, sold.id)
        after = invoice_service.get_invoice_with_items(ctx_a, sold.id)

        assert after["items"] == before["items"]
        assert after["tax_lines"] == before["tax_lines"]
        assert after["invoice"]["total_cents"] == before["invoice"]["total_cents"]
        assert after["invoice"]["invoice_number"] == before["invoice"]["invoice_number"]

    def test_cancelled_is_terminal(self, db_session, ctx_a, tea):
        sold = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        lifecycle_service.cancel_invoice(ctx_a, sold.id)

        with pytest.raises(InvalidTransition):
            lifecycle_service.cancel_invoice(ctx_a, sold.id)

    def test_cancel_other_tenants_invoice(self, db_session, ctx_a, ctx_b, biscuits_b):
        theirs = invoice_service.create_invoice(ctx_b, cart((biscuits_b, 1)))

        with pytest.raises(NotFound):
            lifecycle_service.cancel_invoice(ctx_a, theirs.id)
        assert db.session.get(Invoice, theirs.id, populate_existing=True).status == "COMPLETED"


class TestHeldAndResume:
    def test_list_held_only_returns_held(self, db_session, ctx_a, tea):
        invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        held = invoice_service.create_invoice(ctx_a, cart((tea, 2), status="HELD"))

        assert [i.id for i in lifecycle_service.list_held_invoices(ctx_a)] == [held.id]

    def test_resume_returns_cart_and_cancels_source(self, db_session, ctx_a, tea, rice):
        held = invoice_service.create_invoice(ctx_a, cart(
            (tea, 2), (rice, 1),
            status="HELD",
            customer_name="Ravi",
            discount_type="PERCENTAGE",
            discount_value=500,
            notes="Pick up at 5",
        ))

        resumed = lifecycle_service.resume_held_invoice(ctx_a, held.id)

        assert resumed.source_invoice_number == "INV-000001"
        assert [(l["product_id"], l["quantity"]) for l in resumed.lines] == [(tea.id, 2), (rice.id, 1)]
        assert resumed.skipped == []
        payload = resumed.to_cart_payload()
        assert payload["customer_name"] == "Ravi"
        assert payload["discount_type"] == "PERCENTAGE"
        assert payload["discount_value"] == 500
        assert payload["notes"] == "Pick up at 5"

        source = db.session.get(Invoice, held.id, populate_existing=True)
        assert source.status == "CANCELLED"
        assert source.cancel_reason == lifecycle_service.RESUMED_REASON

    def test_resumed_cart_checks_out_with_new_number(self, db_session, ctx_a, tea):
        held = invoice_service.create_invoice(ctx_a, cart((tea, 2), status="HELD"))
        resumed = lifecycle_service.resume_held_invoice(ctx_a, held.id)

        sold = invoice_service.create_invoice(ctx_a, resumed.to_cart_payload())

        assert sold.status == "COMPLETED"
        assert sold.invoice_number == "INV-000002"
        assert sold.total_cents == 23600
        assert db.session.get(Product, tea.id, populate_existing=True).current_stock == 8

    def test_resume_uses_current_prices(self, db_session, ctx_a, tea):
        held = invoice_service.create_invoice(ctx_a, cart((tea, 1), status="HELD"))
        products_service.update_product(ctx_a, tea.id, {"price_cents": 12500})

        resumed = lifecycle_service.resume_held_invoice(ctx_a, held.id)

        line = resumed.lines[0]
        assert line["unit_price_cents"] == 12500
        assert line["held_unit_price_cents"] == 11800

    def test_resume_skips_deactivated_products(self, db_session, ctx_a, tea, rice):
        held = invoice_service.create_invoice(ctx_a, cart((tea, 1), (rice, 2), status="HELD"))
        products_service.deactivate_product(ctx_a, rice.id)

        resumed = lifecycle_service.resume_held_invoice(ctx_a, held.id)

        assert [l["product_id"] for l in resumed.lines] == [tea.id]
        assert resumed.skipped == [{
            "product_id": rice.id,
            "product_name": "Basmati Rice 1kg",
            "quantity": 2,
            "reason": "inactive",
        }]

    def test_resume_keeps_open_lines(self, db_session, ctx_a):
        held = invoice_service.create_invoice(ctx_a, {
            "status": "HELD",
            "items": [{"product_name": "Delivery", "unit_price_cents": 4000, "quantity": 1}],
        })

        payload = lifecycle_service.resume_held_invoice(ctx_a, held.id).to_cart_payload()

        assert payload["items"] == [{
            "product_name": "Delivery",
            "unit_price_cents": 4000,
            "tax_slab_id": None,
            "quantity": 1,
        }]

    def test_only_held_can_be_resumed(self, db_session, ctx_a, tea):
        sold = invoice_service.create_invoice(ctx_a, cart((tea, 1)))

        with pytest.raises(InvalidTransition):
            lifecycle_service.resume_held_invoice(ctx_a, sold.id)
        assert db.session.get(Invoice, sold.id, populate_existing=True).status == "COMPLETED"

    def test_resume_twice_fails(self, db_session, ctx_a, tea):
        held = invoice_service.create_invoice(ctx_a, cart((tea, 1), status="HELD"))
        lifecycle_service.resume_held_invoice(ctx_a, held.id)

        with pytest.raises(InvalidTransition):
            lifecycle_service.resume_held_invoice(ctx_a, held.id)
