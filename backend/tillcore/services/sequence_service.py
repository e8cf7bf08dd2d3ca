# Overview: Per-tenant atomic invoice number allocation.

"""
Sequence Generator

next_invoice_number() performs ONE indivisible statement per call:

    INSERT INTO invoice_sequences (tenant_id, last_sequence) VALUES (:t, 1)
    ON CONFLICT (tenant_id) DO UPDATE
        SET last_sequence = invoice_sequences.last_sequence + 1
    RETURNING last_sequence

and commits it immediately, on its own, before the caller starts writing the
invoice. Consequences:
- two concurrent callers for one tenant can never read the same value
- a number, once handed out, is never reused; if the invoice that asked for
  it later rolls back, the sequence simply has a gap
- tenants never share a counter

Only lock contention (OperationalError) is retried; when the retries run out
the caller gets SequenceConflict.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError

from ..errors import NotFound, SequenceConflict
from ..extensions import db
from ..models import InvoiceSequence, Tenant
from .concurrency import release_read_transaction, run_with_retry


_UPSERT_DIALECTS = {"sqlite", "postgresql"}


def resolve_invoice_prefix(tenant: Tenant) -> str:
    prefix = (tenant.invoice_prefix or "").strip()
    return prefix or current_app.config.get("DEFAULT_INVOICE_PREFIX", "INV-")


def format_invoice_number(prefix: str, sequence: int, pad: int = 6) -> str:
    return f"{prefix}{sequence:0{pad}d}"


def _upsert_increment(tenant_id: int) -> int:
    table = InvoiceSequence.__table__
    if db.engine.dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert

    stmt = (
        insert(table)
        .values(tenant_id=tenant_id, last_sequence=1)
        .on_conflict_do_update(
            index_elements=[table.c.tenant_id],
            set_={
                "last_sequence": table.c.last_sequence + 1,
                "updated_at": func.now(),
            },
        )
        .returning(table.c.last_sequence)
    )
    return db.session.execute(stmt).scalar_one()


def _update_then_insert(tenant_id: int) -> int:
    """Portable path for dialects without upsert: increment, else create."""
    table = InvoiceSequence.__table__
    stmt = (
        update(table)
        .where(table.c.tenant_id == tenant_id)
        .values(last_sequence=table.c.last_sequence + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.execute(table.insert().values(tenant_id=tenant_id, last_sequence=1))
            return 1
        except IntegrityError:
            # Lost the creation race; the row exists now
            db.session.execute(stmt)
    return db.session.execute(
        db.select(table.c.last_sequence).where(table.c.tenant_id == tenant_id)
    ).scalar_one()


def allocate_sequence(tenant_id: int) -> int:
    """Atomically bump the tenant's counter and return the new value (committed)."""
    def _op() -> int:
        if db.engine.dialect.name in _UPSERT_DIALECTS:
            value = _upsert_increment(tenant_id)
        else:
            value = _update_then_insert(tenant_id)
        db.session.commit()
        return value

    config = current_app.config
    try:
        return run_with_retry(
            _op,
            attempts=config.get("SEQUENCE_RETRY_ATTEMPTS", 3),
            backoff_base=config.get("SEQUENCE_RETRY_BACKOFF", 0.05),
        )
    except OperationalError as exc:
        current_app.logger.warning("Invoice sequence allocation failed for tenant %s: %s", tenant_id, exc)
        raise SequenceConflict(
            "Could not allocate an invoice number, please retry",
            details={"tenant_id": tenant_id},
        ) from exc


def next_invoice_number(tenant_id: int) -> str:
    """
    Allocate the tenant's next invoice number, e.g. "INV-000042".

    Commits on its own. The session must hold no pending changes (they
    would ride along with the counter), so it is checked first.
    """
    release_read_transaction()
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found", details={"tenant_id": tenant_id})
    prefix = resolve_invoice_prefix(tenant)

    sequence = allocate_sequence(tenant_id)
    pad = current_app.config.get("INVOICE_NUMBER_PAD", 6)
    return format_invoice_number(prefix, sequence, pad)
