# Overview: Stock ledger - the only writer of Product.current_stock.

"""
Stock Ledger Invariants (authoritative)

- Product.current_stock is changed ONLY here, and every change appends exactly
  one StockMovement in the same DB transaction.
- IN / OUT are applied as a relative delta by the database:

      UPDATE products SET current_stock = current_stock - :q
      WHERE id = :id AND tenant_id = :t AND current_stock >= :q
      RETURNING current_stock

  No row returned for OUT -> InsufficientStock. Two concurrent sales of the
  last unit cannot both succeed; stock never goes negative.
- ADJUSTMENT sets an absolute count (>= 0) under a row lock; previous_stock is
  what the row held immediately before.
- StockMovement rows are append-only (see db_guards).
- adjust_stock(commit=True) is its own transaction (manual adjustment);
  commit=False joins the caller's transaction (invoice completion) and leaves
  commit/rollback to the caller.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..context import RequestContext
from ..errors import EngineError, InsufficientStock, NotFound, TransactionFailure, ValidationFailure
from ..extensions import db
from ..models import MOVEMENT_TYPES, Product, StockMovement
from .concurrency import begin_write_transaction, lock_for_update


def get_product(ctx: RequestContext, product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id, tenant_id=ctx.tenant_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    product = query.first()
    if product is None:
        raise NotFound("Product not found", details={"product_id": product_id})
    return product


def _validate_movement(movement_type: str, quantity) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationFailure(
            f"movement_type must be one of {', '.join(MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationFailure("quantity must be an integer")
    if movement_type == "ADJUSTMENT":
        if quantity < 0:
            raise ValidationFailure("ADJUSTMENT quantity is the new absolute stock and cannot be negative")
    elif quantity <= 0:
        raise ValidationFailure(f"quantity must be > 0 for {movement_type}")


def _current_stock(ctx: RequestContext, product_id: int) -> int | None:
    return db.session.execute(
        select(Product.current_stock).where(
            Product.id == product_id,
            Product.tenant_id == ctx.tenant_id,
        )
    ).scalar_one_or_none()


def _apply_delta(ctx: RequestContext, product: Product, delta: int) -> tuple[int, int]:
    stmt = update(Product).where(
        Product.id == product.id,
        Product.tenant_id == ctx.tenant_id,
    )
    if delta < 0:
        stmt = stmt.where(Product.current_stock >= -delta)
    stmt = stmt.values(
        current_stock=Product.current_stock + delta,
        version_id=Product.version_id + 1,
    ).returning(Product.current_stock)

    new_stock = db.session.execute(stmt).scalar_one_or_none()
    if new_stock is None:
        available = _current_stock(ctx, product.id)
        current_app.logger.warning(
            "Rejected stock deduction: tenant=%s product=%s requested=%s available=%s",
            ctx.tenant_id, product.id, -delta, available,
        )
        raise InsufficientStock(
            product_id=product.id,
            product_name=product.name,
            requested=-delta,
            available=available,
        )
    return new_stock - delta, new_stock


def _apply_absolute(ctx: RequestContext, product: Product, quantity: int) -> tuple[int, int]:
    previous_stock = product.current_stock
    db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.tenant_id == ctx.tenant_id)
        .values(current_stock=quantity, version_id=Product.version_id + 1)
    )
    return previous_stock, quantity


def _record(
    ctx: RequestContext,
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference: str | None,
    notes: str | None,
) -> StockMovement:
    _validate_movement(movement_type, quantity)

    if movement_type == "ADJUSTMENT":
        product = get_product(ctx, product_id, lock=True)
        previous_stock, new_stock = _apply_absolute(ctx, product, quantity)
    else:
        product = get_product(ctx, product_id)
        delta = quantity if movement_type == "IN" else -quantity
        previous_stock, new_stock = _apply_delta(ctx, product, delta)

    movement = StockMovement(
        tenant_id=ctx.tenant_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference=reference,
        notes=notes,
        created_by=ctx.actor_id,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def adjust_stock(
    ctx: RequestContext,
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reference: str | None = None,
    notes: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Apply one IN / OUT / ADJUSTMENT movement to a product.

    commit=True: standalone transaction, rolled back as a whole on failure.
    commit=False: participates in the caller's open transaction.
    """
    if not commit:
        return _record(
            ctx,
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            notes=notes,
        )

    _validate_movement(movement_type, quantity)
    try:
        begin_write_transaction()
        movement = _record(
            ctx,
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            notes=notes,
        )
        db.session.commit()
    except EngineError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Stock adjustment failed for product %s", product_id)
        raise TransactionFailure("Stock adjustment failed and was rolled back") from exc

    current_app.logger.info(
        "Stock %s for product %s: %s -> %s (tenant %s)",
        movement.movement_type, movement.product_id, movement.previous_stock,
        movement.new_stock, ctx.tenant_id,
    )
    return movement


def deduct_stock(
    ctx: RequestContext,
    *,
    product_id: int,
    quantity: int,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """OUT movement inside the caller's transaction (invoice completion)."""
    return adjust_stock(
        ctx,
        product_id=product_id,
        movement_type="OUT",
        quantity=quantity,
        reference=reference,
        notes=notes,
        commit=False,
    )


def list_stock_movements(
    ctx: RequestContext,
    *,
    product_id: int | None = None,
    limit: int = 50,
) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter_by(tenant_id=ctx.tenant_id)
    if product_id is not None:
        query = query.filter_by(product_id=product_id)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def latest_movement(ctx: RequestContext, product_id: int) -> StockMovement | None:
    return (
        db.session.query(StockMovement)
        .filter_by(tenant_id=ctx.tenant_id, product_id=product_id)
        .order_by(StockMovement.id.desc())
        .first()
    )


def verify_ledger(ctx: RequestContext) -> list[dict]:
    """
    Products whose current_stock disagrees with their newest movement.

    Products with no movements are expected to hold zero stock.
    """
    mismatches = []
    products = db.session.query(Product).filter_by(tenant_id=ctx.tenant_id).order_by(Product.id).all()
    for product in products:
        last = latest_movement(ctx, product.id)
        expected = last.new_stock if last else 0
        if product.current_stock != expected:
            mismatches.append({
                "product_id": product.id,
                "current_stock": product.current_stock,
                "ledger_stock": expected,
            })
    return mismatches
