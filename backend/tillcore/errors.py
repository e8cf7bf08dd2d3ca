# Overview: Engine error taxonomy shared by services, routes and CLI.

"""
Sales engine errors.

Every failure the engine reports is one of these. Services raise them,
routes turn them into JSON (see ``EngineError.to_dict``), nothing swallows
them and nothing retries them except the sequence allocator.

    ValidationFailure   malformed cart / payload, rejected before any write
    InsufficientStock   a product cannot cover the requested quantity
    NotFound            id does not exist in the caller's tenant
    InvalidTransition   invoice status machine violation
    SequenceConflict    sequence allocation exhausted its retries
    TransactionFailure  datastore failure during an atomic commit (rolled back)
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class. ``message`` is safe to show to an operator."""

    code = "error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationFailure(EngineError):
    code = "validation_failed"
    http_status = 400


class InsufficientStock(EngineError):
    code = "insufficient_stock"
    http_status = 409

    def __init__(
        self,
        *,
        product_id: int,
        product_name: str | None,
        requested: int,
        available: int | None,
    ):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NotFound(EngineError):
    code = "not_found"
    http_status = 404


class InvalidTransition(EngineError):
    code = "conflict"
    http_status = 409


class SequenceConflict(EngineError):
    code = "conflict"
    http_status = 409


class TransactionFailure(EngineError):
    code = "transaction_failed"
    http_status = 500


class ImmutableRecordError(EngineError):
    """Raised by ORM listeners when an append-only record is modified."""

    code = "immutable_record"
    http_status = 409
