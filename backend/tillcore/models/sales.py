from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


INVOICE_STATUSES = ("COMPLETED", "HELD", "CANCELLED")
DISCOUNT_TYPES = ("FIXED", "PERCENTAGE")
PAYMENT_METHODS = ("CASH", "UPI", "CARD")


class Invoice(db.Model):
    """
    Invoice header.

    WHY: An invoice is written once, together with its items, tax lines and
    (for COMPLETED) its stock movements, in one transaction. Afterwards only
    the status (and cancel audit fields) may change, through
    lifecycle_service. Invoices are never deleted.

    INVARIANT: total_cents = subtotal_cents - discount_amount_cents.
    Tax is embedded in prices; tax_amount_cents is informational.

    discount_value is cents for FIXED and basis points for PERCENTAGE.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
        # Composite index for tenant-scoped queries by status and date
        db.Index("ix_invoices_tenant_status_created", "tenant_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Human-readable invoice number (e.g., "INV-000123"), never reused
    invoice_number = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_type = db.Column(db.String(16), nullable=False, default="FIXED")
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    # Payment (tendered/change recorded for CASH only)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_given_cents = db.Column(db.Integer, nullable=True)

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # Cancel audit trail
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant", backref=db.backref("invoices", lazy=True))
    items = db.relationship(
        "InvoiceItem",
        backref="invoice",
        lazy=True,
        order_by="InvoiceItem.line_number",
    )
    tax_lines = db.relationship(
        "InvoiceTaxLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceTaxLine.sort_order",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_amount_cents": self.discount_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_given_cents": self.change_given_cents,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }


class InvoiceItem(db.Model):
    """
    Sale-time snapshot of one cart line.

    Name, price, tax slab id and tax rate are copied from the catalogue when
    the invoice is written and are never recomputed. tax_amount_cents is the
    line's share of tax after the invoice discount; line_total_cents is
    quantity * unit_price_cents (before discount).
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    tax_slab_id = db.Column(db.Integer, nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_slab_id": self.tax_slab_id,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount_cents": self.tax_amount_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceTaxLine(db.Model):
    """Frozen tax breakdown (per component name) written with the invoice."""
    __tablename__ = "invoice_tax_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    tax_name = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "tax_name": self.tax_name,
            "amount_cents": self.amount_cents,
        }


class InvoiceSequence(db.Model):
    """
    Atomic per-tenant invoice counter.

    WHY: Concurrent terminals of the same tenant must never receive the same
    invoice number. Only sequence_service touches this table, and only via a
    single upsert-with-return statement.
    """
    __tablename__ = "invoice_sequences"

    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), primary_key=True)
    last_sequence = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
