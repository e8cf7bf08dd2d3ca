# Overview: Invoice status machine - hold, resume and cancel.

"""
Invoice Lifecycle Service

================================================================================
PURPOSE: The only place an invoice's status changes after it is written
================================================================================

STATE MACHINE:
    (new) -> COMPLETED        via invoice_service.create_invoice
    (new) -> HELD             via invoice_service.create_invoice
    HELD      -> CANCELLED    cancel, or resume into a new cart
    COMPLETED -> CANCELLED    cancel (stock is NOT returned)
    CANCELLED -> (nothing)    terminal

RULES:
1. HELD -> COMPLETED does not exist. Resuming a held invoice cancels it and
   hands the items back as a cart; checkout then creates a NEW invoice with a
   NEW number.
2. Cancelling a COMPLETED invoice only flips the status. Stock deducted at
   sale time stays deducted; callers get stock_reversed=False so they can
   tell the operator to record a manual IN movement if goods came back.
3. Amounts, items and tax lines are never touched here.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..context import RequestContext
from ..errors import EngineError, InvalidTransition, NotFound, TransactionFailure
from ..extensions import db
from ..models import Invoice, Product
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update


ALLOWED_TRANSITIONS = {
    "HELD": {"CANCELLED"},
    "COMPLETED": {"CANCELLED"},
    "CANCELLED": set(),
}

RESUMED_REASON = "Resumed into cart"


def can_transition(current_status: str, target_status: str) -> bool:
    return target_status in ALLOWED_TRANSITIONS.get(current_status, set())


@dataclass
class CancelResult:
    invoice: Invoice
    stock_reversed: bool = False

    def to_dict(self) -> dict:
        return {"invoice": self.invoice.to_dict(), "stock_reversed": self.stock_reversed}


@dataclass
class ResumedCart:
    """
    Cart rebuilt from a held invoice.

    lines use CURRENT catalogue prices. Items whose product was deleted or
    deactivated since the hold are listed in skipped instead.
    """
    source_invoice_id: int
    source_invoice_number: str
    customer_name: str | None
    discount_type: str
    discount_value: int
    notes: str | None
    lines: list[dict] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)

    def to_cart_payload(self) -> dict:
        """Body that can be posted straight back to /api/invoices."""
        items = []
        for line in self.lines:
            if line["product_id"] is not None:
                items.append({"product_id": line["product_id"], "quantity": line["quantity"]})
            else:
                items.append({
                    "product_name": line["product_name"],
                    "unit_price_cents": line["unit_price_cents"],
                    "tax_slab_id": line["tax_slab_id"],
                    "quantity": line["quantity"],
                })
        return {
            "customer_name": self.customer_name,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "notes": self.notes,
            "items": items,
        }

    def to_dict(self) -> dict:
        return {
            "source_invoice_id": self.source_invoice_id,
            "source_invoice_number": self.source_invoice_number,
            "customer_name": self.customer_name,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "notes": self.notes,
            "lines": self.lines,
            "skipped": self.skipped,
            "cart": self.to_cart_payload(),
        }


def _locked_invoice(ctx: RequestContext, invoice_id: int) -> Invoice:
    query = db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=ctx.tenant_id)
    invoice = lock_for_update(query).populate_existing().first()
    if invoice is None:
        raise NotFound("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def _mark_cancelled(ctx: RequestContext, invoice: Invoice, reason: str | None) -> None:
    if not can_transition(invoice.status, "CANCELLED"):
        raise InvalidTransition(
            f"Cannot cancel invoice {invoice.invoice_number} in status {invoice.status}",
            details={"invoice_id": invoice.id, "status": invoice.status},
        )
    invoice.status = "CANCELLED"
    invoice.cancelled_by = ctx.actor_id
    invoice.cancelled_at = utcnow()
    invoice.cancel_reason = reason
    db.session.flush()


def _rebuild_lines(ctx: RequestContext, invoice: Invoice) -> tuple[list[dict], list[dict]]:
    lines: list[dict] = []
    skipped: list[dict] = []
    for item in invoice.items:
        if item.product_id is None:
            lines.append({
                "product_id": None,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "tax_slab_id": item.tax_slab_id,
            })
            continue

        product = (
            db.session.query(Product)
            .filter_by(id=item.product_id, tenant_id=ctx.tenant_id)
            .first()
        )
        if product is None or not product.is_active:
            skipped.append({
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "reason": "inactive" if product is not None else "missing",
            })
            continue

        lines.append({
            "product_id": product.id,
            "product_name": product.name,
            "sku": product.sku,
            "quantity": item.quantity,
            "unit_price_cents": product.price_cents,
            "held_unit_price_cents": item.unit_price_cents,
            "tax_slab_id": product.tax_slab_id,
            "current_stock": product.current_stock,
        })
    return lines, skipped


def list_held_invoices(ctx: RequestContext, limit: int = 100) -> list[Invoice]:
    return (
        db.session.query(Invoice)
        .filter_by(tenant_id=ctx.tenant_id, status="HELD")
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .limit(limit)
        .all()
    )


def cancel_invoice(ctx: RequestContext, invoice_id: int, reason: str | None = None) -> CancelResult:
    """
    HELD/COMPLETED -> CANCELLED.

    Raises InvalidTransition for an already-cancelled invoice.
    """
    try:
        begin_write_transaction()
        invoice = _locked_invoice(ctx, invoice_id)
        previous_status = invoice.status
        _mark_cancelled(ctx, invoice, reason)
        db.session.commit()
    except EngineError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Cancel failed for invoice %s", invoice_id)
        raise TransactionFailure("Failed to cancel invoice") from exc

    current_app.logger.info(
        "Invoice %s cancelled (was %s) by actor %s",
        invoice.invoice_number, previous_status, ctx.actor_id,
    )
    return CancelResult(invoice=invoice, stock_reversed=False)


def resume_held_invoice(ctx: RequestContext, invoice_id: int) -> ResumedCart:
    """
    Cancel a HELD invoice and return its items as a fresh cart.

    The held invoice's number is not reused.
    """
    try:
        begin_write_transaction()
        invoice = _locked_invoice(ctx, invoice_id)
        if invoice.status != "HELD":
            raise InvalidTransition(
                f"Only HELD invoices can be resumed; {invoice.invoice_number} is {invoice.status}",
                details={"invoice_id": invoice.id, "status": invoice.status},
            )
        lines, skipped = _rebuild_lines(ctx, invoice)
        resumed = ResumedCart(
            source_invoice_id=invoice.id,
            source_invoice_number=invoice.invoice_number,
            customer_name=invoice.customer_name,
            discount_type=invoice.discount_type,
            discount_value=invoice.discount_value,
            notes=invoice.notes,
            lines=lines,
            skipped=skipped,
        )
        _mark_cancelled(ctx, invoice, RESUMED_REASON)
        db.session.commit()
    except EngineError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Resume failed for invoice %s", invoice_id)
        raise TransactionFailure("Failed to resume held invoice") from exc

    current_app.logger.info(
        "Held invoice %s resumed into cart (%s lines, %s skipped)",
        resumed.source_invoice_number, len(lines), len(skipped),
    )
    return resumed
