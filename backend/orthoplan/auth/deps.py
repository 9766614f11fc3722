"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_request_context      → verify token, load principal, read clinic header
  require_app_access(app)  → principal must hold a grant for `app`
  require_permission(a, r) → principal must hold (a, r), wildcards honoured
  require_super_admin      → super-admins only
  require_scope(resource)  → ScopeFilter for Patient-derived queries

Order on every planner/portal endpoint: context → app gate → permission →
scope. Routers declare the app gate in `APIRouter(dependencies=...)` and
routes declare the permission in `dependencies=[...]`; FastAPI resolves
those before the endpoint's own parameters, so each check short-circuits
the next.
"""

import logging

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from orthoplan.auth.context import RequestContext, build_request_context
from orthoplan.auth.permissions import ScopeFilter, authorize, has_app_access, scope_filter
from orthoplan.auth.principal import Action, Resource
from orthoplan.config import settings
from orthoplan.database import get_db
from orthoplan.middleware.exceptions import Forbidden
from orthoplan.services.scoping import validate_active_clinic

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


# ── Core context dependency ─────────────────────────────────

async def get_request_context(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> RequestContext:
    return await build_request_context(
        db, token, request.headers.get(settings.clinic_header)
    )


# ── Gates ───────────────────────────────────────────────────

def require_app_access(app_name: str):
    """Dependency factory: principal must hold a grant for `app_name`.

    Usage:
        router = APIRouter(dependencies=[Depends(require_app_access("planner"))])
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not has_app_access(ctx.principal, app_name):
            logger.info("Principal %s denied application %s", ctx.principal.id, app_name)
            raise Forbidden(f"No access to application '{app_name}'")
        return ctx

    return _check


def require_permission(action: Action, resource: Resource):
    """Dependency factory: principal must hold (action, resource).

    Usage:
        @router.get("/", dependencies=[Depends(require_permission(Action.READ, Resource.PATIENT))])
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not authorize(ctx.principal, action, resource):
            logger.info(
                "Principal %s denied %s on %s",
                ctx.principal.id, action.value, resource.value,
            )
            raise Forbidden()
        return ctx

    return _check


async def require_super_admin(
    ctx: RequestContext = Depends(get_request_context),
) -> RequestContext:
    if not ctx.principal.is_super_admin:
        raise Forbidden("Super admin access required")
    return ctx


# ── Scope ───────────────────────────────────────────────────

def require_scope(resource: Resource):
    """Dependency factory: resolve and validate the data scope for `resource`.

    No clinic selected → MissingClinicContext (400).
    Clinic outside the tenant, or not a member → Forbidden (403).
    """
    async def _resolve(
        ctx: RequestContext = Depends(get_request_context),
        db: AsyncSession = Depends(get_db),
    ) -> ScopeFilter:
        scope = scope_filter(ctx.principal, resource, ctx.active_clinic_id)
        await validate_active_clinic(db, ctx.principal, scope.clinic_id)
        return scope

    return _resolve
