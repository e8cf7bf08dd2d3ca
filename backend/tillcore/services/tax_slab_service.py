# Overview: Tenant/country tax slab catalogue and per-country defaults.

"""
Tax Slab Service

Slabs are per (tenant, country). At most one slab per (tenant, country) is the
default; saving a slab with is_default=True clears the flag on the others in
the same transaction.

Rates are basis points. Components (CGST/SGST) must add up to the slab rate;
a slab with no components is reported under its own name.

Editing a slab affects future invoices only. Items snapshot the rate.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..context import RequestContext
from ..errors import NotFound, TransactionFailure, ValidationFailure
from ..extensions import db
from ..models import TaxSlab, Tenant
from ..validation import enforce_rules_tax_slab


def _gst(rate_pct: int, sort_order: int, **extra) -> dict:
    half = rate_pct * 50
    return {
        "name": f"GST {rate_pct}%",
        "tax_type": "CGST+SGST",
        "rate_bps": rate_pct * 100,
        "component1_name": "CGST",
        "component1_rate_bps": half,
        "component2_name": "SGST",
        "component2_rate_bps": half,
        "sort_order": sort_order,
        **extra,
    }


DEFAULT_TAX_SLABS: dict[str, list[dict]] = {
    "India": [
        {"name": "GST 0% (Exempt)", "tax_type": "GST", "rate_bps": 0, "description": "Tax-exempt items", "sort_order": 1},
        _gst(5, 2),
        _gst(12, 3),
        _gst(18, 4, is_default=True, description="Standard GST rate"),
        _gst(28, 5),
        {"name": "IGST 18%", "tax_type": "IGST", "rate_bps": 1800, "description": "Inter-state GST", "sort_order": 6},
    ],
    "United States": [
        {"name": "No Tax", "tax_type": "Sales Tax", "rate_bps": 0, "sort_order": 1},
        {"name": "Sales Tax", "tax_type": "Sales Tax", "rate_bps": 700, "is_default": True,
         "description": "State sales tax (adjust rate for your state)", "sort_order": 2},
    ],
    "United Kingdom": [
        {"name": "VAT Zero", "tax_type": "VAT", "rate_bps": 0, "description": "Zero-rated items", "sort_order": 1},
        {"name": "VAT Reduced", "tax_type": "VAT", "rate_bps": 500, "description": "Reduced rate items", "sort_order": 2},
        {"name": "VAT Standard", "tax_type": "VAT", "rate_bps": 2000, "is_default": True,
         "description": "Standard VAT rate", "sort_order": 3},
    ],
    "Canada": [
        {"name": "No Tax", "tax_type": "GST", "rate_bps": 0, "sort_order": 1},
        {"name": "GST", "tax_type": "GST", "rate_bps": 500, "is_default": True, "description": "Federal GST", "sort_order": 2},
        {"name": "HST 13%", "tax_type": "HST", "rate_bps": 1300, "description": "Ontario HST", "sort_order": 3},
        {"name": "HST 15%", "tax_type": "HST", "rate_bps": 1500, "description": "Atlantic provinces HST", "sort_order": 4},
    ],
    "Australia": [
        {"name": "GST-Free", "tax_type": "GST", "rate_bps": 0, "description": "Tax-free items", "sort_order": 1},
        {"name": "GST", "tax_type": "GST", "rate_bps": 1000, "is_default": True,
         "description": "Goods and Services Tax", "sort_order": 2},
    ],
}

FALLBACK_TAX_SLABS = [
    {"name": "No Tax", "tax_type": "Tax", "rate_bps": 0, "is_default": True, "sort_order": 1},
]

SLAB_FIELDS = (
    "name", "tax_type", "rate_bps",
    "component1_name", "component1_rate_bps",
    "component2_name", "component2_rate_bps",
    "description", "is_active", "is_default", "sort_order", "country",
)


def _tenant_country(ctx: RequestContext, country: str | None) -> str:
    if country:
        return country
    tenant = db.session.get(Tenant, ctx.tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", details={"tenant_id": ctx.tenant_id})
    return tenant.country


def list_tax_slabs(ctx: RequestContext, country: str | None = None, *, active_only: bool = False) -> list[TaxSlab]:
    query = db.session.query(TaxSlab).filter_by(tenant_id=ctx.tenant_id)
    if country:
        query = query.filter_by(country=country)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(TaxSlab.country.asc(), TaxSlab.sort_order.asc(), TaxSlab.rate_bps.asc()).all()


def get_tax_slab(ctx: RequestContext, slab_id: int) -> TaxSlab:
    slab = db.session.query(TaxSlab).filter_by(id=slab_id, tenant_id=ctx.tenant_id).first()
    if slab is None:
        raise NotFound("Tax slab not found", details={"tax_slab_id": slab_id})
    return slab


def get_default_tax_slab(ctx: RequestContext, country: str | None = None) -> TaxSlab | None:
    return (
        db.session.query(TaxSlab)
        .filter_by(tenant_id=ctx.tenant_id, country=_tenant_country(ctx, country), is_default=True, is_active=True)
        .first()
    )


def _check_slab(slab: TaxSlab) -> None:
    """Whole-row check after the patch is applied."""
    enforce_rules_tax_slab({k: getattr(slab, k) for k in SLAB_FIELDS})
    if slab.is_default and not slab.is_active:
        raise ValidationFailure("An inactive tax slab cannot be the default")


def _clear_other_defaults(ctx: RequestContext, slab: TaxSlab) -> None:
    others = (
        db.session.query(TaxSlab)
        .filter(
            TaxSlab.tenant_id == ctx.tenant_id,
            TaxSlab.country == slab.country,
            TaxSlab.is_default.is_(True),
        )
    )
    others = others.filter(TaxSlab.id != slab.id)
    for other in others.all():
        other.is_default = False


def save_tax_slab(ctx: RequestContext, patch: dict, slab_id: int | None = None) -> TaxSlab:
    """
    Create (slab_id=None) or update a tax slab from a validated patch.

    country defaults to the tenant's country on create.
    """
    if slab_id is None:
        slab = TaxSlab(tenant_id=ctx.tenant_id, country=_tenant_country(ctx, patch.get("country")))
        db.session.add(slab)
    else:
        slab = get_tax_slab(ctx, slab_id)

    for key, value in patch.items():
        if key not in SLAB_FIELDS:
            continue
        if key == "country" and not value:
            continue
        setattr(slab, key, value)

    if slab.is_active is None:
        slab.is_active = True
    if slab.is_default is None:
        slab.is_default = False
    if slab.rate_bps is None:
        slab.rate_bps = 0
    if slab.sort_order is None:
        slab.sort_order = 0

    try:
        _check_slab(slab)
        db.session.flush()  # assigns slab.id before clearing the others
        if slab.is_default:
            _clear_other_defaults(ctx, slab)
        db.session.commit()
    except ValidationFailure:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Saving tax slab failed (tenant %s)", ctx.tenant_id)
        raise TransactionFailure("Failed to save tax slab") from exc

    current_app.logger.info(
        "Tax slab %s saved: %s %s bps default=%s (tenant %s)",
        slab.id, slab.name, slab.rate_bps, slab.is_default, ctx.tenant_id,
    )
    return slab


def ensure_default_tax_slabs(ctx: RequestContext, country: str | None = None) -> list[TaxSlab]:
    """
    Seed the country's standard slabs if the tenant has none for it.

    Idempotent: returns [] when slabs already exist.
    """
    country = _tenant_country(ctx, country)
    exists = db.session.query(TaxSlab.id).filter_by(tenant_id=ctx.tenant_id, country=country).first()
    if exists:
        return []

    created = []
    for row in DEFAULT_TAX_SLABS.get(country, FALLBACK_TAX_SLABS):
        slab = TaxSlab(tenant_id=ctx.tenant_id, country=country, is_active=True, is_default=False)
        for key, value in row.items():
            setattr(slab, key, value)
        db.session.add(slab)
        created.append(slab)
    db.session.commit()

    current_app.logger.info("Seeded %s tax slabs for %s (tenant %s)", len(created), country, ctx.tenant_id)
    return created
