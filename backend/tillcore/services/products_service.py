# Overview: Tenant-scoped product catalogue; opening stock goes through the stock ledger.

"""
Products Service with Multi-Tenant Support

MULTI-TENANT: Every product operation is filtered on ctx.tenant_id.

STOCK: current_stock is NOT a mutable field here. Opening stock given on
create is recorded as an IN movement in the same transaction as the product
row; later changes go through stock_ledger_service.adjust_stock.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..context import RequestContext
from ..errors import EngineError, TransactionFailure, ValidationFailure
from ..extensions import db
from ..models import Product, TaxSlab
from ..validation import ConflictError
from .concurrency import begin_write_transaction
from .stock_ledger_service import adjust_stock, get_product

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "price_cents", "tax_slab_id", "min_stock_level", "is_active",
}
OPENING_STOCK_REFERENCE = "Opening stock"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_slab_in_tenant(ctx: RequestContext, slab_id: int | None) -> None:
    if slab_id is None:
        return
    found = db.session.query(TaxSlab.id).filter_by(id=slab_id, tenant_id=ctx.tenant_id).first()
    if found is None:
        raise ValidationFailure("Tax slab not found", details={"tax_slab_id": slab_id})


def _require_unique_sku(ctx: RequestContext, sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product.id).filter(Product.tenant_id == ctx.tenant_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this tenant.", details={"sku": sku})


def list_products(
    ctx: RequestContext,
    *,
    active_only: bool = False,
    search: str | None = None,
) -> list[Product]:
    query = db.session.query(Product).filter(Product.tenant_id == ctx.tenant_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def low_stock_products(ctx: RequestContext) -> list[Product]:
    """Active products at or below their minimum stock level."""
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == ctx.tenant_id,
            Product.is_active.is_(True),
            Product.current_stock <= Product.min_stock_level,
        )
        .order_by(Product.current_stock.asc(), Product.name.asc())
        .all()
    )


def create_product(ctx: RequestContext, patch: dict) -> Product:
    """
    Create a product from a validated patch.

    patch may carry current_stock as the opening quantity.

    Raises:
        ConflictError: If SKU already exists in the tenant
        ValidationFailure: If tax_slab_id is not one of the tenant's slabs
    """
    opening_stock = patch.get("current_stock") or 0
    _require_slab_in_tenant(ctx, patch.get("tax_slab_id"))
    _require_unique_sku(ctx, patch.get("sku"))

    try:
        begin_write_transaction()
        p = Product(tenant_id=ctx.tenant_id, current_stock=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger row

        if opening_stock > 0:
            adjust_stock(
                ctx,
                product_id=p.id,
                movement_type="IN",
                quantity=opening_stock,
                reference=OPENING_STOCK_REFERENCE,
                commit=False,
            )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists for this tenant.", details={"sku": patch.get("sku")})
    except EngineError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Creating product failed (tenant %s)", ctx.tenant_id)
        raise TransactionFailure("Failed to create product") from exc

    current_app.logger.info("Product %s created: sku=%s name=%s (tenant %s)", p.id, p.sku, p.name, ctx.tenant_id)
    return p


def update_product(ctx: RequestContext, product_id: int, patch: dict) -> Product:
    """
    Update catalogue fields. Stock cannot be set here.

    Raises:
        NotFound: If the product is not in the tenant
        ConflictError: If new SKU already exists in the tenant
        TransactionFailure: If the commit fails (e.g. a concurrent version bump)
    """
    if "current_stock" in patch:
        raise ValidationFailure("current_stock cannot be edited; record a stock movement instead")

    p = get_product(ctx, product_id)
    if "sku" in patch and patch["sku"] != p.sku:
        _require_unique_sku(ctx, patch["sku"], exclude_id=p.id)
    if "tax_slab_id" in patch:
        _require_slab_in_tenant(ctx, patch["tax_slab_id"])

    apply_product_patch(p, patch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists for this tenant.", details={"sku": patch.get("sku")})
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Updating product %s failed", product_id)
        raise TransactionFailure("Failed to update product") from exc

    current_app.logger.info("Product %s updated: %s", p.id, ", ".join(sorted(patch.keys())))
    return p


def deactivate_product(ctx: RequestContext, product_id: int) -> Product:
    """Soft-delete only: invoice items keep pointing at the row."""
    p = get_product(ctx, product_id)
    if p.is_active:
        p.is_active = False
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Deactivating product %s failed", product_id)
            raise TransactionFailure("Failed to deactivate product") from exc
        current_app.logger.info("Product %s deactivated (tenant %s)", p.id, ctx.tenant_id)
    return p
