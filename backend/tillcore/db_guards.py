# Overview: ORM listeners that keep ledger and invoice history append-only.

"""
ORM-Level Immutability Enforcement

SQLAlchemy fires mapper events before an UPDATE/DELETE reaches the database:

    session.flush()
         |
         v
    [before_update] --> _block_*_update() --> ImmutableRecordError
    [before_delete] --> _block_*_delete() --> ImmutableRecordError
         |
         v
    SQL sent to database (only if checks pass)

PROTECTED ENTITIES

Entity          | Rule
----------------|--------------------------------------------------------
StockMovement   | never updated, never deleted
InvoiceItem     | never updated, never deleted
InvoiceTaxLine  | never updated, never deleted
Invoice         | never deleted; only status and cancel audit fields change

Core-level statements (bulk UPDATE/DELETE) are not seen by these listeners.
The stock ledger's conditional UPDATE only touches products.
"""

from __future__ import annotations

from flask import current_app, has_app_context
from sqlalchemy import event, inspect

from .errors import ImmutableRecordError
from .models import Invoice, InvoiceItem, InvoiceTaxLine, StockMovement


INVOICE_MUTABLE_FIELDS = {
    "status",
    "cancelled_by",
    "cancelled_at",
    "cancel_reason",
    "updated_at",
    "version_id",
}

APPEND_ONLY_MODELS = (StockMovement, InvoiceItem, InvoiceTaxLine)


def _violation(target, operation: str, field: str | None = None) -> ImmutableRecordError:
    entity = type(target).__name__
    if has_app_context():
        current_app.logger.error(
            "Blocked %s of %s id=%s field=%s", operation, entity, getattr(target, "id", None), field,
        )
    reason = f"{entity} records are append-only"
    if field:
        reason = f"Cannot modify field '{field}' on {entity}"
    return ImmutableRecordError(
        reason,
        details={"entity": entity, "id": getattr(target, "id", None), "operation": operation},
    )


def _block_append_only_update(mapper, connection, target):
    raise _violation(target, "UPDATE")


def _block_delete(mapper, connection, target):
    raise _violation(target, "DELETE")


def _check_invoice_update(mapper, connection, target):
    """Amounts, number, items and payment are frozen once written."""
    state = inspect(target)
    for prop in mapper.column_attrs:
        if prop.key in INVOICE_MUTABLE_FIELDS:
            continue
        if state.attrs[prop.key].history.has_changes():
            raise _violation(target, "UPDATE", prop.key)


_LISTENERS = (
    [(model, "before_update", _block_append_only_update) for model in APPEND_ONLY_MODELS]
    + [(model, "before_delete", _block_delete) for model in APPEND_ONLY_MODELS]
    + [
        (Invoice, "before_update", _check_invoice_update),
        (Invoice, "before_delete", _block_delete),
    ]
)


def register_immutability_listeners() -> None:
    """Idempotent; create_app calls it once per process."""
    for target, name, fn in _LISTENERS:
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
