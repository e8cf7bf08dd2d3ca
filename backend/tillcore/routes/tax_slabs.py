# Overview: Flask API routes for the tenant's tax slabs.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_context, error_response, unexpected_error_response
from ..errors import EngineError
from ..models import TaxSlab
from ..services import tax_slab_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_tax_slab


TAX_SLAB_POLICY = ModelValidationPolicy(
    writable_fields=set(tax_slab_service.SLAB_FIELDS),
    required_on_create={"name", "rate_bps"},
)

tax_slabs_bp = Blueprint("tax_slabs", __name__, url_prefix="/api/tax-slabs")


@tax_slabs_bp.get("")
@require_context
def list_tax_slabs_route():
    """Query params: country, active_only."""
    try:
        active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
        slabs = tax_slab_service.list_tax_slabs(
            g.ctx,
            country=request.args.get("country") or None,
            active_only=active_only,
        )
        return jsonify({"items": [s.to_dict() for s in slabs], "count": len(slabs)}), 200
    except Exception:
        return unexpected_error_response("list tax slabs")


@tax_slabs_bp.post("")
@require_context
def create_tax_slab_route():
    try:
        patch = validate_payload(
            model=TaxSlab,
            payload=request.get_json(silent=True),
            policy=TAX_SLAB_POLICY,
            partial=False,
        )
        enforce_rules_tax_slab(patch)
        slab = tax_slab_service.save_tax_slab(g.ctx, patch)
        return jsonify(slab.to_dict()), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("create tax slab")


@tax_slabs_bp.put("/<int:slab_id>")
@require_context
def update_tax_slab_route(slab_id: int):
    try:
        patch = validate_payload(
            model=TaxSlab,
            payload=request.get_json(silent=True),
            policy=TAX_SLAB_POLICY,
            partial=True,
        )
        slab = tax_slab_service.save_tax_slab(g.ctx, patch, slab_id=slab_id)
        return jsonify(slab.to_dict()), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("update tax slab")


@tax_slabs_bp.post("/seed-defaults")
@require_context
def seed_defaults_route():
    """Seed the standard slabs for a country (defaults to the tenant's). Idempotent."""
    try:
        data = request.get_json(silent=True) or {}
        created = tax_slab_service.ensure_default_tax_slabs(g.ctx, country=data.get("country"))
        return jsonify({"created": [s.to_dict() for s in created], "count": len(created)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("seed tax slabs")
