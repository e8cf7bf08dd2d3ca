# Overview: Explicit per-call tenant/actor context passed into every engine operation.

from __future__ import annotations

from dataclasses import dataclass


DEFAULT_ROLE = "cashier"


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting, and for which tenant.

    MULTI-TENANT: every service query filters on ``tenant_id``. There is no
    ambient session; routes build one of these per request (see
    ``decorators.require_context``) and the CLI builds one per command.
    """
    tenant_id: int
    actor_id: int | None = None
    role: str = DEFAULT_ROLE
