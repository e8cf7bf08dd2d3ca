# Overview: Request-context decorator and JSON error responses for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .context import DEFAULT_ROLE, RequestContext
from .errors import EngineError
from .services.tenant_service import TenantAccessError, validate_tenant_active


TENANT_HEADER = "X-Tenant-Id"
ACTOR_HEADER = "X-Actor-Id"
ROLE_HEADER = "X-Actor-Role"


def error_response(exc: EngineError):
    """Engine error -> (json body, status)."""
    return jsonify(exc.to_dict()), exc.http_status


def unexpected_error_response(action: str):
    current_app.logger.exception("Unexpected failure while %s", action)
    return jsonify({
        "error": "transaction_failed",
        "message": f"Failed to {action}",
        "details": {},
    }), 500


def _unauthorized(message: str):
    return error_response(TenantAccessError(message))


def require_context(f):
    """
    Establish tenant context for the request.

    MULTI-TENANT: Sets g.ctx (RequestContext) from headers:
    - X-Tenant-Id: REQUIRED, must name an active tenant
    - X-Actor-Id: optional integer, recorded as created_by/cancelled_by
    - X-Actor-Role: optional, defaults to cashier

    Returns 401 if the tenant header is missing, malformed, unknown or
    inactive. Authentication itself happens upstream of this service.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_tenant = (request.headers.get(TENANT_HEADER) or "").strip()
        if not raw_tenant:
            return _unauthorized("Tenant context required")
        try:
            tenant_id = int(raw_tenant)
        except ValueError:
            return _unauthorized("Invalid tenant id")

        raw_actor = (request.headers.get(ACTOR_HEADER) or "").strip()
        actor_id = None
        if raw_actor:
            try:
                actor_id = int(raw_actor)
            except ValueError:
                return _unauthorized("Invalid actor id")

        try:
            validate_tenant_active(tenant_id)
        except TenantAccessError as e:
            current_app.logger.warning("Rejected request for tenant %s: %s", tenant_id, e.message)
            return error_response(e)

        g.ctx = RequestContext(
            tenant_id=tenant_id,
            actor_id=actor_id,
            role=(request.headers.get(ROLE_HEADER) or DEFAULT_ROLE).strip().lower(),
        )
        return f(*args, **kwargs)

    return decorated_function
