# Overview: Invoice Transaction Coordinator - cart -> numbered, persisted invoice with stock effects.

"""
Invoice creation (all-or-nothing)

    1. validate the cart against the tenant's catalogue      (no writes)
    2. advisory stock check for COMPLETED carts               (no writes)
    3. allocate invoice number                                (own commit, may leak)
    4. BEGIN
         insert invoice header, items, tax lines
         COMPLETED only: one OUT movement per product line,
                         reference = invoice number
       COMMIT  -- or ROLLBACK of everything in step 4

HELD invoices skip the stock step entirely: a parked cart reserves nothing,
so two terminals can still sell the same units a held order contains.

Item fields (name, price, slab, rate, tax share) are snapshots taken here and
never recomputed. Totals come from tax_engine.compute_cart_totals, the same
function the cart preview uses.

Nothing here is retried. ValidationFailure / InsufficientStock / NotFound are
raised as-is; datastore errors during step 4 become TransactionFailure after
the rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..context import RequestContext
from ..errors import EngineError, InsufficientStock, NotFound, TransactionFailure, ValidationFailure
from ..extensions import db
from ..models import (
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
    Invoice,
    InvoiceItem,
    InvoiceTaxLine,
    Product,
    TaxSlab,
)
from ..time_utils import day_bounds
from .concurrency import begin_write_transaction, release_read_transaction
from .sequence_service import next_invoice_number
from .stock_ledger_service import deduct_stock
from .tax_engine import CartLine, CartTotals, compute_cart_totals


CREATABLE_STATUSES = ("COMPLETED", "HELD")
MAX_LINE_QUANTITY = 1_000_000


@dataclass
class PreparedLine:
    product_id: int | None
    product_name: str
    sku: str | None
    quantity: int
    unit_price_cents: int
    tax_slab: TaxSlab | None

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def tax_rate_bps(self) -> int:
        return self.tax_slab.rate_bps if self.tax_slab else 0

    def to_cart_line(self) -> CartLine:
        return CartLine(
            line_total_cents=self.line_total_cents,
            rates=self.tax_slab.to_rates() if self.tax_slab else None,
        )


@dataclass
class PreparedCart:
    lines: list[PreparedLine]
    discount_type: str
    discount_value: int
    totals: CartTotals
    customer_name: str | None = None
    notes: str | None = None
    payment_method: str = "CASH"
    amount_tendered_cents: int | None = None
    product_quantities: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = self.totals.to_dict()
        data["discount_type"] = self.discount_type
        data["discount_value"] = self.discount_value
        data["lines"] = [
            {
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "tax_rate_bps": line.tax_rate_bps,
                "tax_amount_cents": tax,
                "line_total_cents": line.line_total_cents,
            }
            for line, tax in zip(self.lines, self.totals.line_tax_cents)
        ]
        return data


def _require_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailure(f"{name} must be an integer")
    return value


def _optional_text(value, name: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailure(f"{name} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationFailure(f"{name} exceeds max length {max_length}")
    return value or None


def _load_slab(ctx: RequestContext, slab_id) -> TaxSlab | None:
    if slab_id is None:
        return None
    slab = db.session.query(TaxSlab).filter_by(id=_require_int(slab_id, "tax_slab_id"), tenant_id=ctx.tenant_id).first()
    if slab is None:
        raise ValidationFailure("Tax slab not found", details={"tax_slab_id": slab_id})
    return slab


def _prepare_line(ctx: RequestContext, index: int, raw) -> PreparedLine:
    if not isinstance(raw, dict):
        raise ValidationFailure(f"items[{index}] must be an object")

    quantity = _require_int(raw.get("quantity"), f"items[{index}].quantity")
    if quantity <= 0 or quantity > MAX_LINE_QUANTITY:
        raise ValidationFailure(f"items[{index}].quantity must be between 1 and {MAX_LINE_QUANTITY}")

    product_id = raw.get("product_id")
    if product_id is not None:
        product = (
            db.session.query(Product)
            .filter_by(id=_require_int(product_id, f"items[{index}].product_id"), tenant_id=ctx.tenant_id)
            .first()
        )
        if product is None:
            raise NotFound("Product not found", details={"product_id": product_id})
        if not product.is_active:
            raise ValidationFailure(f"{product.name} is inactive", details={"product_id": product.id})
        if product.price_cents is None or product.price_cents <= 0:
            raise ValidationFailure(f"{product.name} has no valid price", details={"product_id": product.id})
        return PreparedLine(
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            tax_slab=_load_slab(ctx, product.tax_slab_id),
        )

    # Open line with no catalogue product (no stock effect)
    name = _optional_text(raw.get("product_name"), f"items[{index}].product_name", 255)
    if not name:
        raise ValidationFailure(f"items[{index}] needs product_id or product_name")
    price = _require_int(raw.get("unit_price_cents"), f"items[{index}].unit_price_cents")
    if price <= 0:
        raise ValidationFailure(f"items[{index}].unit_price_cents must be > 0")
    return PreparedLine(
        product_id=None,
        product_name=name,
        sku=None,
        quantity=quantity,
        unit_price_cents=price,
        tax_slab=_load_slab(ctx, raw.get("tax_slab_id")),
    )


def prepare_cart(ctx: RequestContext, payload: dict) -> PreparedCart:
    """Validate a cart payload against the catalogue and price it. Read-only."""
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationFailure("Cart is empty")

    lines = [_prepare_line(ctx, i, raw) for i, raw in enumerate(raw_items)]

    discount_type = payload.get("discount_type") or "FIXED"
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationFailure("discount_type must be FIXED or PERCENTAGE")
    discount_value = payload.get("discount_value")
    discount_value = 0 if discount_value is None else _require_int(discount_value, "discount_value")

    totals = compute_cart_totals(
        [line.to_cart_line() for line in lines],
        discount_type=discount_type,
        discount_value=discount_value,
    )

    payment_method = payload.get("payment_method") or "CASH"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailure(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    tendered = payload.get("amount_tendered_cents")
    if tendered is not None:
        tendered = _require_int(tendered, "amount_tendered_cents")
        if tendered < 0:
            raise ValidationFailure("amount_tendered_cents cannot be negative")

    quantities: dict[int, int] = {}
    for line in lines:
        if line.product_id is not None:
            quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity

    return PreparedCart(
        lines=lines,
        discount_type=discount_type,
        discount_value=discount_value,
        totals=totals,
        customer_name=_optional_text(payload.get("customer_name"), "customer_name", 255),
        notes=_optional_text(payload.get("notes"), "notes", 2000),
        payment_method=payment_method,
        amount_tendered_cents=tendered,
        product_quantities=quantities,
    )


def preview_cart(ctx: RequestContext, payload: dict) -> dict:
    """Live cart totals; identical math to what create_invoice persists."""
    return prepare_cart(ctx, payload).to_dict()


def _settle_payment(cart: PreparedCart) -> tuple[int | None, int | None]:
    """Tendered/change for CASH; tendered defaults to the exact total."""
    if cart.payment_method != "CASH":
        return None, None
    total = cart.totals.total_cents
    tendered = total if cart.amount_tendered_cents is None else cart.amount_tendered_cents
    if tendered < total:
        raise ValidationFailure(
            "Amount tendered is less than total",
            details={"amount_tendered_cents": tendered, "total_cents": total},
        )
    return tendered, tendered - total


def _check_stock(ctx: RequestContext, cart: PreparedCart) -> None:
    """
    Advisory pre-check so an obviously short cart does not burn a number.
    The conditional UPDATE in the stock ledger is what actually guarantees it.
    """
    for product_id, quantity in cart.product_quantities.items():
        product = db.session.get(Product, product_id)
        if product.current_stock < quantity:
            raise InsufficientStock(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=product.current_stock,
            )


def _write_invoice(ctx: RequestContext, cart: PreparedCart, status: str, invoice_number: str) -> Invoice:
    tendered, change = _settle_payment(cart) if status == "COMPLETED" else (None, None)
    totals = cart.totals

    invoice = Invoice(
        tenant_id=ctx.tenant_id,
        invoice_number=invoice_number,
        customer_name=cart.customer_name,
        subtotal_cents=totals.subtotal_cents,
        discount_type=cart.discount_type,
        discount_value=cart.discount_value,
        discount_amount_cents=totals.discount_amount_cents,
        tax_amount_cents=totals.tax_amount_cents,
        total_cents=totals.total_cents,
        payment_method=cart.payment_method,
        amount_tendered_cents=tendered,
        change_given_cents=change,
        status=status,
        notes=cart.notes,
        created_by=ctx.actor_id,
    )
    db.session.add(invoice)
    db.session.flush()

    for number, (line, tax_cents) in enumerate(zip(cart.lines, totals.line_tax_cents), start=1):
        db.session.add(InvoiceItem(
            invoice_id=invoice.id,
            line_number=number,
            product_id=line.product_id,
            product_name=line.product_name,
            sku=line.sku,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            tax_slab_id=line.tax_slab.id if line.tax_slab else None,
            tax_rate_bps=line.tax_rate_bps,
            tax_amount_cents=tax_cents,
            line_total_cents=line.line_total_cents,
        ))

    for order, entry in enumerate(totals.breakdown):
        db.session.add(InvoiceTaxLine(
            invoice_id=invoice.id,
            tax_name=entry.tax_name,
            amount_cents=entry.amount_cents,
            sort_order=order,
        ))
    db.session.flush()
    return invoice


def _deduct_for_invoice(ctx: RequestContext, cart: PreparedCart, invoice_number: str) -> None:
    for line in cart.lines:
        if line.product_id is None:
            continue
        deduct_stock(
            ctx,
            product_id=line.product_id,
            quantity=line.quantity,
            reference=invoice_number,
            notes=f"Sale - {line.product_name}",
        )


def create_invoice(ctx: RequestContext, payload: dict) -> Invoice:
    """
    Turn a cart into a persisted invoice (status COMPLETED or HELD).

    Payload:
        items: [{product_id, quantity} | {product_name, unit_price_cents, quantity, tax_slab_id?}]
        status, customer_name, notes, discount_type, discount_value,
        payment_method, amount_tendered_cents
    """
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid JSON payload")
    status = payload.get("status") or "COMPLETED"
    if status not in CREATABLE_STATUSES:
        raise ValidationFailure("status must be COMPLETED or HELD")

    release_read_transaction()
    cart = prepare_cart(ctx, payload)
    if status == "COMPLETED":
        _settle_payment(cart)
        _check_stock(ctx, cart)

    invoice_number = next_invoice_number(ctx.tenant_id)

    try:
        begin_write_transaction()
        invoice = _write_invoice(ctx, cart, status, invoice_number)
        if status == "COMPLETED":
            _deduct_for_invoice(ctx, cart, invoice_number)
        db.session.commit()
    except EngineError:
        db.session.rollback()
        current_app.logger.info("Invoice %s rolled back (number left unused)", invoice_number)
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Invoice %s failed and was rolled back", invoice_number)
        raise TransactionFailure(
            "Failed to create invoice; nothing was saved",
            details={"invoice_number": invoice_number},
        ) from exc
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Invoice %s created: status=%s total_cents=%s tenant=%s",
        invoice.invoice_number, invoice.status, invoice.total_cents, ctx.tenant_id,
    )
    return invoice


def get_invoice(ctx: RequestContext, invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=ctx.tenant_id).first()
    if invoice is None:
        raise NotFound("Invoice not found", details={"invoice_id": invoice_id})
    return invoice


def get_invoice_by_number(ctx: RequestContext, invoice_number: str) -> Invoice:
    invoice = (
        db.session.query(Invoice)
        .filter_by(invoice_number=invoice_number, tenant_id=ctx.tenant_id)
        .first()
    )
    if invoice is None:
        raise NotFound("Invoice not found", details={"invoice_number": invoice_number})
    return invoice


def invoice_snapshot(invoice: Invoice) -> dict:
    """Read-only invoice + ordered items + frozen tax lines, for receipts/printing."""
    return {
        "invoice": invoice.to_dict(),
        "items": [item.to_dict() for item in invoice.items],
        "tax_lines": [line.to_dict() for line in invoice.tax_lines],
    }


def get_invoice_with_items(ctx: RequestContext, invoice_id: int) -> dict:
    return invoice_snapshot(get_invoice(ctx, invoice_id))


def list_invoices(
    ctx: RequestContext,
    *,
    status: str | None = None,
    on_date: date | None = None,
    limit: int = 50,
) -> list[Invoice]:
    query = db.session.query(Invoice).filter_by(tenant_id=ctx.tenant_id)
    if status:
        query = query.filter_by(status=status)
    if on_date:
        start, end = day_bounds(on_date)
        query = query.filter(Invoice.created_at >= start, Invoice.created_at < end)
    return query.order_by(Invoice.id.desc()).limit(limit).all()
