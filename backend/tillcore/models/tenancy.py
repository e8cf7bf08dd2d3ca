from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DEFAULT_COUNTRY = "India"


class Tenant(db.Model):
    """
    Multi-tenant root: every shop is a Tenant.

    WHY: Shared-database multi-tenancy with strict isolation. Tax slabs,
    products, invoices, stock movements and the invoice sequence all carry
    tenant_id and every query is filtered by it. No data crosses tenants.

    The business-profile fields the sales engine consumes live here:
    - invoice_prefix: prepended to the zero-padded invoice sequence
      (NULL/blank -> Config.DEFAULT_INVOICE_PREFIX)
    - currency_code / currency_symbol: display only, amounts are cents
    - country: selects which tax-slab set applies
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    invoice_prefix = db.Column(db.String(16), nullable=True)
    currency_code = db.Column(db.String(8), nullable=False, default="INR")
    currency_symbol = db.Column(db.String(8), nullable=False, default="₹")
    country = db.Column(db.String(64), nullable=False, default=DEFAULT_COUNTRY)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "invoice_prefix": self.invoice_prefix,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
            "country": self.country,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
