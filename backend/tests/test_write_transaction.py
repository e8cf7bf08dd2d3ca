"""
Write Transaction Tests (SQLite)

Every engine write opens with BEGIN IMMEDIATE on SQLite:
- a checkout, a manual movement, a cancel and a product create all succeed
- the opening-stock path of create_product takes the write lock itself
- caller changes still pending in the session are refused, never committed
"""

import pytest
from sqlalchemy import event

from conftest import cart
from tillcore.errors import TransactionFailure
from tillcore.extensions import db
from tillcore.models import Invoice, Product, StockMovement
from tillcore.services import invoice_service, lifecycle_service, products_service
from tillcore.services.concurrency import begin_write_transaction
from tillcore.services.sequence_service import next_invoice_number
from tillcore.services.stock_ledger_service import adjust_stock, list_stock_movements


@pytest.fixture
def statements(app):
    """SQL sent to the database while the test runs."""
    seen = []

    def record(conn, cursor, statement, parameters, context, executemany):
        seen.append(statement.strip().upper())

    event.listen(db.engine, "before_cursor_execute", record)
    yield seen
    event.remove(db.engine, "before_cursor_execute", record)


def _stock(product_id: int) -> int:
    return db.session.get(Product, product_id, populate_existing=True).current_stock


class TestDefaultSqlite:
    def test_engine_is_sqlite(self, db_session):
        assert db.engine.dialect.name == "sqlite"

    def test_two_teas_sale(self, db_session, ctx_a, tea, statements):
        invoice = invoice_service.create_invoice(ctx_a, cart((tea, 2)))

        assert "BEGIN IMMEDIATE" in statements
        assert invoice.invoice_number == "INV-000001"
        assert (invoice.subtotal_cents, invoice.tax_amount_cents, invoice.total_cents) == (20000, 3600, 23600)
        assert _stock(tea.id) == 8
        assert list_stock_movements(ctx_a, product_id=tea.id)[0].new_stock == 8

    def test_manual_movement(self, db_session, ctx_a, tea, statements):
        adjust_stock(ctx_a, product_id=tea.id, movement_type="IN", quantity=1)

        assert "BEGIN IMMEDIATE" in statements
        assert _stock(tea.id) == 11

    def test_cancel_and_resume(self, db_session, ctx_a, tea):
        sold = invoice_service.create_invoice(ctx_a, cart((tea, 1)))
        held = invoice_service.create_invoice(ctx_a, cart((tea, 1), status="HELD"))

        assert lifecycle_service.cancel_invoice(ctx_a, sold.id).invoice.status == "CANCELLED"
        assert lifecycle_service.resume_held_invoice(ctx_a, held.id).lines

    def test_open_read_transaction_is_not_an_obstacle(self, db_session, ctx_a, tea):
        products_service.list_products(ctx_a)
        assert db.session().in_transaction()

        adjust_stock(ctx_a, product_id=tea.id, movement_type="OUT", quantity=1)
        assert _stock(tea.id) == 9


class TestOpeningStockTakesWriteLock:
    def test_create_product_begins_immediate(self, db_session, ctx_a, slabs_a, monkeypatch, statements):
        calls = []

        def counting_begin():
            calls.append(True)
            begin_write_transaction()

        monkeypatch.setattr(products_service, "begin_write_transaction", counting_begin)

        p = products_service.create_product(ctx_a, {
            "sku": "SOAP-1",
            "name": "Soap",
            "price_cents": 4500,
            "tax_slab_id": slabs_a["GST 18%"].id,
            "current_stock": 4,
        })

        assert calls == [True]
        assert "BEGIN IMMEDIATE" in statements
        (movement,) = list_stock_movements(ctx_a, product_id=p.id)
        assert (movement.movement_type, movement.new_stock) == ("IN", 4)


class TestPendingChanges:
    def test_refused_and_not_committed(self, db_session, ctx_a, tea, rice):
        tea_id, rice_id = tea.id, rice.id
        tea.name = "Renamed But Not Saved"

        with pytest.raises(TransactionFailure) as exc:
            adjust_stock(ctx_a, product_id=rice_id, movement_type="OUT", quantity=1)
        assert exc.value.details["dirty"] == 1
        db_session.rollback()

        assert db.session.get(Product, tea_id, populate_existing=True).name == "Assam Tea 250g"
        assert _stock(rice_id) == 5
        assert len(list_stock_movements(ctx_a, product_id=rice_id)) == 1

    def test_checkout_refuses_pending_rename(self, db_session, ctx_a, tea, rice):
        tea_id, payload = tea.id, cart((rice, 1))
        tea.name = "Renamed But Not Saved"

        with pytest.raises(TransactionFailure):
            invoice_service.create_invoice(ctx_a, payload)
        db_session.rollback()

        assert db.session.get(Product, tea_id, populate_existing=True).name == "Assam Tea 250g"
        assert db_session.query(Invoice).count() == 0
        assert invoice_service.create_invoice(ctx_a, cart((rice, 1))).invoice_number == "INV-000001"

    def test_sequence_commit_does_not_carry_pending_changes(self, db_session, ctx_a, tea):
        tea_id = tea.id
        tea.name = "Renamed But Not Saved"

        with pytest.raises(TransactionFailure):
            next_invoice_number(ctx_a.tenant_id)
        db_session.rollback()

        assert db.session.get(Product, tea_id, populate_existing=True).name == "Assam Tea 250g"
        assert next_invoice_number(ctx_a.tenant_id) == "INV-000001"

    def test_pending_new_row_refused(self, db_session, ctx_a, tea):
        db_session.add(Product(tenant_id=ctx_a.tenant_id, name="Ghost", price_cents=100))

        with pytest.raises(TransactionFailure):
            begin_write_transaction()
        db_session.rollback()

        assert db_session.query(Product).filter_by(name="Ghost").count() == 0

    def test_checkout_after_refusal_still_works(self, db_session, ctx_a, tea):
        tea_id = tea.id
        tea.name = "Renamed But Not Saved"
        with pytest.raises(TransactionFailure):
            adjust_stock(ctx_a, product_id=tea_id, movement_type="IN", quantity=1)

        invoice_service.create_invoice(ctx_a, cart((tea, 1)))

        assert db_session.query(Invoice).count() == 1
        assert db_session.query(StockMovement).filter_by(product_id=tea.id).count() == 2
