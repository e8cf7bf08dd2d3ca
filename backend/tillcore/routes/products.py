# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalogue routes.

MULTI-TENANT: All product operations are scoped to g.ctx.tenant_id.
current_stock is accepted on create only (opening stock, recorded as an IN
movement); afterwards use /api/stock/adjustments.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_context, error_response, unexpected_error_response
from ..errors import EngineError
from ..models import Product
from ..services import products_service
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "price_cents", "tax_slab_id",
        "current_stock", "min_stock_level", "is_active",
    },
    required_on_create={"name", "price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_context
def list_products_route():
    """Query params: active_only (bool), q (name/sku search)."""
    try:
        active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
        items = products_service.list_products(g.ctx, active_only=active_only, search=request.args.get("q"))
        return jsonify({"items": [p.to_dict() for p in items], "count": len(items)}), 200
    except Exception:
        return unexpected_error_response("list products")


@products_bp.get("/low-stock")
@require_context
def low_stock_route():
    try:
        items = products_service.low_stock_products(g.ctx)
        return jsonify({"items": [p.to_dict() for p in items], "count": len(items)}), 200
    except Exception:
        return unexpected_error_response("list low-stock products")


@products_bp.post("")
@require_context
def create_product_route():
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_product(patch)
        product = products_service.create_product(g.ctx, patch)
        return jsonify(product.to_dict()), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("create product")


@products_bp.patch("/<int:product_id>")
@require_context
def update_product_route(product_id: int):
    try:
        patch = validate_payload(
            model=Product,
            payload=request.get_json(silent=True),
            policy=PRODUCT_UPDATE_POLICY,
            partial=True,
        )
        enforce_rules_product(patch)
        product = products_service.update_product(g.ctx, product_id, patch)
        return jsonify(product.to_dict()), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("update product")


@products_bp.delete("/<int:product_id>")
@require_context
def deactivate_product_route(product_id: int):
    """Soft delete (is_active=false)."""
    try:
        product = products_service.deactivate_product(g.ctx, product_id)
        return jsonify(product.to_dict()), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return unexpected_error_response("deactivate product")
