# Overview: Flask API routes for sales reports.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_context, error_response, unexpected_error_response
from ..errors import EngineError, ValidationFailure
from ..services import reporting_service
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_range():
    """from (required) and to (optional), both YYYY-MM-DD."""
    try:
        date_from = parse_iso_date(request.args.get("from"))
        date_to = parse_iso_date(request.args.get("to"))
    except ValueError:
        raise ValidationFailure("from/to must be YYYY-MM-DD")
    if date_from is None:
        raise ValidationFailure("from is required")
    return date_from, date_to


@reports_bp.get("/sales-summary")
@require_context
def sales_summary_route():
    try:
        date_from, date_to = _date_range()
        return jsonify(reporting_service.sales_summary(g.ctx, date_from, date_to)), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("build sales summary")


@reports_bp.get("/product-sales")
@require_context
def product_sales_route():
    try:
        date_from, date_to = _date_range()
        rows = reporting_service.product_sales(g.ctx, date_from, date_to)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("build product sales report")


@reports_bp.get("/tax-collection")
@require_context
def tax_collection_route():
    try:
        date_from, date_to = _date_range()
        rows = reporting_service.tax_collection(g.ctx, date_from, date_to)
        return jsonify({"items": rows, "count": len(rows)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("build tax collection report")
