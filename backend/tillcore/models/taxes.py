from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class TaxSlab(db.Model):
    """
    Tax-inclusive rate definition for a tenant + country.

    Rates are basis points (1800 = 18%). A slab may split into up to two named
    components (CGST 900 + SGST 900) which must sum to rate_bps.

    DEFAULT: at most one is_default slab per (tenant_id, country). Enforced by
    tax_slab_service clearing the others on save, not by a constraint.

    Invoice items copy rate_bps at sale time; editing a slab never changes
    historical invoices.
    """
    __tablename__ = "tax_slabs"
    __table_args__ = (
        db.Index("ix_tax_slabs_tenant_country", "tenant_id", "country"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    country = db.Column(db.String(64), nullable=False)

    name = db.Column(db.String(64), nullable=False)
    tax_type = db.Column(db.String(32), nullable=True)
    rate_bps = db.Column(db.Integer, nullable=False, default=0)

    component1_name = db.Column(db.String(32), nullable=True)
    component1_rate_bps = db.Column(db.Integer, nullable=True)
    component2_name = db.Column(db.String(32), nullable=True)
    component2_rate_bps = db.Column(db.Integer, nullable=True)

    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("tax_slabs", lazy=True))

    def __repr__(self) -> str:
        return f"<TaxSlab id={self.id} name={self.name!r} rate_bps={self.rate_bps}>"

    def to_rates(self):
        """Snapshot for the pure tax engine."""
        from ..services.tax_engine import TaxComponent, TaxRates

        components = []
        for name, rate in (
            (self.component1_name, self.component1_rate_bps),
            (self.component2_name, self.component2_rate_bps),
        ):
            if name and rate:
                components.append(TaxComponent(name=name, rate_bps=rate))
        return TaxRates(
            slab_id=self.id,
            name=self.name,
            rate_bps=self.rate_bps,
            components=tuple(components),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "country": self.country,
            "name": self.name,
            "tax_type": self.tax_type,
            "rate_bps": self.rate_bps,
            "component1_name": self.component1_name,
            "component1_rate_bps": self.component1_rate_bps,
            "component2_name": self.component2_name,
            "component2_rate_bps": self.component2_rate_bps,
            "description": self.description,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
