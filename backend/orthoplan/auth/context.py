"""Request context builder.

Turns a bearer token plus the optional clinic-selector header into an
immutable RequestContext:

  1. Decode the JWT (signature + expiry). Failure → Unauthenticated.
  2. Load the user with every app grant, its role and the role's
     permissions in one statement. Missing user → PrincipalNotFound.
  3. Record the selected clinic as-is. Membership is NOT checked here;
     it is enforced where data is fetched (orthoplan.services.scoping).

Nothing is cached between requests: a grant revoked by an admin is gone
on the very next request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from orthoplan.auth.jwt import decode_token
from orthoplan.auth.principal import AppGrant, Capability, Principal
from orthoplan.middleware.exceptions import PrincipalNotFound, Unauthenticated
from orthoplan.models.access import Role, UserAppAccess
from orthoplan.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    principal: Principal
    active_clinic_id: str | None = None

    @property
    def tenant_id(self) -> str:
        return self.principal.tenant_id


def _to_principal(user: User) -> Principal:
    grants = []
    for access in user.app_access:
        # Dangling rows (deleted role / application) grant nothing
        if access.role is None or access.application is None:
            continue
        capabilities = frozenset(
            cap
            for cap in (
                Capability.parse(p.action, p.resource) for p in access.role.permissions
            )
            if cap is not None
        )
        grants.append(
            AppGrant(
                application=access.application.name,
                role=access.role.name,
                capabilities=capabilities,
            )
        )

    return Principal(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        name=user.name,
        is_super_admin=bool(user.is_super_admin),
        can_transfer_patient=bool(user.can_transfer_patient),
        grants=tuple(sorted(grants, key=lambda g: g.application)),
    )


async def load_principal(db: AsyncSession, user_id: str) -> Principal | None:
    """Fetch a user and all of its grants. Returns None if the user is gone."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(
            joinedload(User.app_access).joinedload(UserAppAccess.application),
            joinedload(User.app_access)
            .joinedload(UserAppAccess.role)
            .joinedload(Role.permissions),
        )
        .execution_options(populate_existing=True)
    )
    user = result.unique().scalar_one_or_none()
    if user is None:
        return None
    return _to_principal(user)


async def build_request_context(
    db: AsyncSession,
    token: str | None,
    clinic_header: str | None = None,
) -> RequestContext:
    if not token:
        raise Unauthenticated("Not authenticated")

    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        logger.warning("Rejected invalid or expired access token")
        raise Unauthenticated()

    principal = await load_principal(db, user_id)
    if principal is None:
        logger.warning("Token subject %s no longer exists", user_id)
        raise PrincipalNotFound()

    # Token minted for another tenant (user moved since issuance)
    if payload.get("tenant_id") != principal.tenant_id:
        logger.warning("Token tenant mismatch for user %s", user_id)
        raise Unauthenticated()

    active_clinic_id = (clinic_header or "").strip() or None
    return RequestContext(principal=principal, active_clinic_id=active_clinic_id)
