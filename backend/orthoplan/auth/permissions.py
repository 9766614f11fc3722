"""Authorization resolver.

Pure functions over an already-loaded Principal. No I/O happens here, so
every check is cheap and can run any number of times per request.

Rules:
  1. A super-admin is allowed everything within its own tenant.
  2. Otherwise every grant the principal holds is scanned, regardless of
     which application it was given for. A role granted for "portal"
     therefore also satisfies checks made while serving "planner".
  3. A permission (a, r) satisfies a check (action, resource) when
     a in {action, manage} and r in {resource, all}.
  4. Anything missing or unrecognised counts as "no permission", never as
     an error.
"""

from __future__ import annotations

from dataclasses import dataclass

from orthoplan.auth.principal import (
    Action,
    Principal,
    Resource,
    parse_action,
    parse_resource,
)
from orthoplan.middleware.exceptions import MissingClinicContext


# ── Permission check ────────────────────────────────────────

def authorize(
    principal: Principal | None,
    action: Action | str,
    resource: Resource | str,
) -> bool:
    """Return True if the principal may perform `action` on `resource`."""
    if principal is None:
        return False
    if principal.is_super_admin:
        return True

    wanted_action = parse_action(action)
    wanted_resource = parse_resource(resource)
    if wanted_action is None or wanted_resource is None:
        return False

    return any(
        capability.allows(wanted_action, wanted_resource)
        for grant in principal.grants
        for capability in grant.capabilities
    )


# Inline helper name used by handlers for conditional logic
has_permission = authorize


def has_app_access(principal: Principal | None, app_name: str) -> bool:
    """Coarse gate: does the principal hold any grant for `app_name`?"""
    if principal is None:
        return False
    if principal.is_super_admin:
        return True
    return any(grant.application == app_name for grant in principal.grants)


# ── Data scoping ────────────────────────────────────────────

@dataclass(frozen=True)
class ScopeFilter:
    """Predicate every Patient-derived query must apply.

    owner_id is None when the principal may see every record in the
    tenant + clinic; otherwise only records it owns are visible.
    """

    tenant_id: str
    clinic_id: str
    owner_id: str | None = None

    def admits(self, tenant_id: str, clinic_id: str, owner_id: str) -> bool:
        if tenant_id != self.tenant_id or clinic_id != self.clinic_id:
            return False
        return self.owner_id is None or owner_id == self.owner_id


def scope_filter(
    principal: Principal,
    resource: Resource | str,
    active_clinic_id: str | None,
) -> ScopeFilter:
    """Compute the tenant/clinic/owner filter for `resource`.

    The tenant always comes from the principal, never from the request.
    Raises MissingClinicContext when no clinic is selected; callers must
    not fall back to "all clinics".
    """
    if not active_clinic_id:
        raise MissingClinicContext()

    if principal.is_super_admin or authorize(principal, Action.MANAGE, resource):
        return ScopeFilter(tenant_id=principal.tenant_id, clinic_id=active_clinic_id)

    return ScopeFilter(
        tenant_id=principal.tenant_id,
        clinic_id=active_clinic_id,
        owner_id=principal.id,
    )
