# Overview: Flask API routes for manual stock movements and the stock ledger.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_context, error_response, unexpected_error_response
from ..errors import EngineError
from ..models import MOVEMENT_TYPES, StockMovement
from ..services import stock_ledger_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_stock_adjustment


STOCK_ADJUSTMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "movement_type", "quantity", "reference", "notes"},
    required_on_create={"product_id", "movement_type", "quantity"},
    choices={"movement_type": MOVEMENT_TYPES},
)

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/adjustments")
@require_context
def create_adjustment_route():
    """
    Record a manual stock movement.

    Body: product_id, movement_type (IN | OUT | ADJUSTMENT), quantity,
          reference, notes. ADJUSTMENT quantity is the new absolute count.
    """
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=request.get_json(silent=True),
            policy=STOCK_ADJUSTMENT_POLICY,
            partial=False,
        )
        enforce_rules_stock_adjustment(patch)
        movement = stock_ledger_service.adjust_stock(
            g.ctx,
            product_id=patch["product_id"],
            movement_type=patch["movement_type"],
            quantity=patch["quantity"],
            reference=patch.get("reference"),
            notes=patch.get("notes"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("record stock movement")


@stock_bp.get("/movements")
@require_context
def list_movements_route():
    """Query params: product_id, limit (newest first)."""
    try:
        product_id = request.args.get("product_id", type=int)
        limit = min(max(request.args.get("limit", 50, type=int), 1), 500)
        movements = stock_ledger_service.list_stock_movements(g.ctx, product_id=product_id, limit=limit)
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("list stock movements")
