# Overview: Read-only sales reports over COMPLETED invoices.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from ..context import RequestContext
from ..errors import ValidationFailure
from ..extensions import db
from ..models import PAYMENT_METHODS, Invoice, InvoiceItem, InvoiceTaxLine
from ..time_utils import day_bounds


def _window(date_from: date, date_to: date | None) -> tuple[datetime, datetime]:
    date_to = date_to or date_from
    if date_to < date_from:
        raise ValidationFailure("date_to must not be before date_from")
    return day_bounds(date_from, date_to)


def _completed(ctx: RequestContext, start: datetime, end: datetime):
    return (
        Invoice.tenant_id == ctx.tenant_id,
        Invoice.status == "COMPLETED",
        Invoice.created_at >= start,
        Invoice.created_at < end,
    )


def sales_summary(ctx: RequestContext, date_from: date, date_to: date | None = None) -> dict:
    """
    Revenue, invoice count, tax, discount and average order value, plus
    per-payment-method totals. HELD and CANCELLED invoices are excluded.
    """
    start, end = _window(date_from, date_to)
    filters = _completed(ctx, start, end)

    revenue, count, tax, discount = db.session.query(
        func.coalesce(func.sum(Invoice.total_cents), 0),
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.tax_amount_cents), 0),
        func.coalesce(func.sum(Invoice.discount_amount_cents), 0),
    ).filter(*filters).one()

    by_method = {m: {"total_cents": 0, "count": 0} for m in PAYMENT_METHODS}
    rows = (
        db.session.query(
            Invoice.payment_method,
            func.coalesce(func.sum(Invoice.total_cents), 0),
            func.count(Invoice.id),
        )
        .filter(*filters)
        .group_by(Invoice.payment_method)
        .all()
    )
    for method, total, n in rows:
        by_method[method] = {"total_cents": int(total), "count": int(n)}

    return {
        "date_from": date_from.isoformat(),
        "date_to": (date_to or date_from).isoformat(),
        "total_revenue_cents": int(revenue),
        "total_invoices": int(count),
        "total_tax_cents": int(tax),
        "total_discount_cents": int(discount),
        "average_order_cents": int(revenue) // int(count) if count else 0,
        "by_payment_method": by_method,
    }


def product_sales(ctx: RequestContext, date_from: date, date_to: date | None = None) -> list[dict]:
    """Quantity, gross line revenue and tax per sold item name, best sellers first."""
    start, end = _window(date_from, date_to)
    revenue = func.sum(InvoiceItem.line_total_cents)
    rows = (
        db.session.query(
            InvoiceItem.product_name,
            InvoiceItem.sku,
            func.sum(InvoiceItem.quantity),
            revenue,
            func.sum(InvoiceItem.tax_amount_cents),
        )
        .join(Invoice, InvoiceItem.invoice_id == Invoice.id)
        .filter(*_completed(ctx, start, end))
        .group_by(InvoiceItem.product_name, InvoiceItem.sku)
        .order_by(revenue.desc())
        .all()
    )
    return [
        {
            "product_name": name,
            "sku": sku,
            "quantity_sold": int(qty or 0),
            "revenue_cents": int(rev or 0),
            "tax_collected_cents": int(tax or 0),
        }
        for name, sku, qty, rev, tax in rows
    ]


def tax_collection(ctx: RequestContext, date_from: date, date_to: date | None = None) -> list[dict]:
    """Frozen tax lines summed per component name (CGST, SGST, VAT Standard...)."""
    start, end = _window(date_from, date_to)
    rows = (
        db.session.query(
            InvoiceTaxLine.tax_name,
            func.sum(InvoiceTaxLine.amount_cents),
            func.count(func.distinct(InvoiceTaxLine.invoice_id)),
        )
        .join(Invoice, InvoiceTaxLine.invoice_id == Invoice.id)
        .filter(*_completed(ctx, start, end))
        .group_by(InvoiceTaxLine.tax_name)
        .order_by(InvoiceTaxLine.tax_name.asc())
        .all()
    )
    return [
        {"tax_name": name, "tax_collected_cents": int(amount or 0), "invoice_count": int(n)}
        for name, amount, n in rows
    ]
