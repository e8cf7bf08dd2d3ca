# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""
Invoice API routes.

MULTI-TENANT: Every route runs under @require_context and passes g.ctx to the
services; another tenant's invoice id answers 404.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_context, error_response, unexpected_error_response
from ..errors import EngineError, ValidationFailure
from ..models import INVOICE_STATUSES
from ..services import invoice_service, lifecycle_service
from ..time_utils import parse_iso_date


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

MAX_LIST_LIMIT = 200


@invoices_bp.post("/preview")
@require_context
def preview_cart_route():
    """Live totals for a cart. Writes nothing."""
    try:
        totals = invoice_service.preview_cart(g.ctx, request.get_json(silent=True))
        return jsonify(totals), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("preview cart")


@invoices_bp.post("")
@require_context
def create_invoice_route():
    """
    Create an invoice from a cart.

    Body: items, status (COMPLETED | HELD), customer_name, notes,
          discount_type, discount_value, payment_method, amount_tendered_cents
    """
    try:
        invoice = invoice_service.create_invoice(g.ctx, request.get_json(silent=True))
        return jsonify(invoice_service.invoice_snapshot(invoice)), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("create invoice")


@invoices_bp.get("")
@require_context
def list_invoices_route():
    """Query params: status, date (YYYY-MM-DD), limit."""
    try:
        status = request.args.get("status") or None
        if status and status not in INVOICE_STATUSES:
            raise ValidationFailure(f"status must be one of {', '.join(INVOICE_STATUSES)}")
        try:
            on_date = parse_iso_date(request.args.get("date"))
        except ValueError:
            raise ValidationFailure("date must be YYYY-MM-DD")
        limit = min(max(request.args.get("limit", 50, type=int), 1), MAX_LIST_LIMIT)

        invoices = invoice_service.list_invoices(g.ctx, status=status, on_date=on_date, limit=limit)
        return jsonify({"items": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("list invoices")


@invoices_bp.get("/held")
@require_context
def list_held_route():
    """Query params: limit (1-200, default 100)."""
    try:
        raw_limit = request.args.get("limit", "100")
        if not raw_limit.isdigit() or not 1 <= int(raw_limit) <= MAX_LIST_LIMIT:
            raise ValidationFailure(f"limit must be an integer between 1 and {MAX_LIST_LIMIT}")
        held = lifecycle_service.list_held_invoices(g.ctx, limit=int(raw_limit))
        return jsonify({"items": [i.to_dict() for i in held], "count": len(held)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("list held invoices")


@invoices_bp.get("/<int:invoice_id>")
@require_context
def get_invoice_route(invoice_id: int):
    try:
        return jsonify(invoice_service.get_invoice_with_items(g.ctx, invoice_id)), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("load invoice")


@invoices_bp.post("/<int:invoice_id>/resume")
@require_context
def resume_invoice_route(invoice_id: int):
    """HELD -> CANCELLED; returns the cart to check out again."""
    try:
        resumed = lifecycle_service.resume_held_invoice(g.ctx, invoice_id)
        return jsonify(resumed.to_dict()), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("resume invoice")


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_context
def cancel_invoice_route(invoice_id: int):
    """
    Cancel a HELD or COMPLETED invoice.

    Stock is not returned; the response says so with stock_reversed=false.
    """
    try:
        data = request.get_json(silent=True) or {}
        reason = data.get("reason")
        if reason is not None and not isinstance(reason, str):
            raise ValidationFailure("reason must be a string")
        result = lifecycle_service.cancel_invoice(g.ctx, invoice_id, reason=(reason or "").strip()[:255] or None)
        return jsonify(result.to_dict()), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("cancel invoice")
