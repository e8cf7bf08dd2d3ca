"""
Multi-Tenant Service: Tenant Validation and Provisioning

WHY: Every engine operation runs for exactly one tenant. Routes and CLI
commands resolve the caller's tenant here before building a RequestContext;
an unknown or deactivated tenant never reaches a service.

SECURITY INVARIANTS:
1. Every request carries a tenant id (X-Tenant-Id header or --tenant option)
2. The tenant must exist and be active
3. Services filter every query on ctx.tenant_id
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import EngineError
from ..extensions import db
from ..models import Tenant
from ..validation import ConflictError


class TenantAccessError(EngineError):
    """Raised when the tenant context is missing, unknown or inactive."""

    code = "unauthorized"
    http_status = 401


def validate_tenant_active(tenant_id: int) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises:
        TenantAccessError if tenant doesn't exist or is inactive
    """
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise TenantAccessError("Tenant not found")
    if not tenant.is_active:
        raise TenantAccessError("Tenant is not active")
    return tenant


def list_tenants(active_only: bool = False) -> list[Tenant]:
    query = db.session.query(Tenant)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Tenant.id.asc()).all()


def create_tenant(
    *,
    name: str,
    code: str | None = None,
    invoice_prefix: str | None = None,
    country: str | None = None,
    currency_code: str | None = None,
    currency_symbol: str | None = None,
) -> Tenant:
    tenant = Tenant(name=name.strip(), code=code, invoice_prefix=invoice_prefix)
    if country:
        tenant.country = country
    if currency_code:
        tenant.currency_code = currency_code
    if currency_symbol:
        tenant.currency_symbol = currency_symbol

    db.session.add(tenant)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Tenant code already exists", details={"code": code})

    current_app.logger.info("Tenant %s created (%s)", tenant.id, tenant.name)
    return tenant
