"""Typed view of a principal and the permissions it holds.

Permission naming: an (action, resource) pair.
  Actions:    read, write, delete, manage   (manage matches any action)
  Resources:  patient, planning, contract, treatment, clinic, user, role,
              all                            (all matches any resource)

Everything here is immutable: a Principal is built once per request from a
fresh database read and threaded explicitly to whoever needs it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Action(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    MANAGE = "manage"  # wildcard


class Resource(str, enum.Enum):
    PATIENT = "patient"
    PLANNING = "planning"
    CONTRACT = "contract"
    TREATMENT = "treatment"
    CLINIC = "clinic"
    USER = "user"
    ROLE = "role"
    ALL = "all"  # wildcard


def parse_action(value: str | Action | None) -> Action | None:
    if isinstance(value, Action):
        return value
    try:
        return Action(value)
    except ValueError:
        return None


def parse_resource(value: str | Resource | None) -> Resource | None:
    if isinstance(value, Resource):
        return value
    try:
        return Resource(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class Capability:
    """One (action, resource) permission, possibly wildcarded."""

    action: Action
    resource: Resource

    @classmethod
    def parse(cls, action: str, resource: str) -> Capability | None:
        """Build from stored strings. Unknown values yield None (no permission)."""
        parsed_action = parse_action(action)
        parsed_resource = parse_resource(resource)
        if parsed_action is None or parsed_resource is None:
            return None
        return cls(parsed_action, parsed_resource)

    def allows(self, action: Action, resource: Resource) -> bool:
        return (
            self.action in (action, Action.MANAGE)
            and self.resource in (resource, Resource.ALL)
        )

    def __str__(self) -> str:
        return f"{self.action.value}:{self.resource.value}"


@dataclass(frozen=True)
class AppGrant:
    """A user's role for one application, with the role's permissions."""

    application: str
    role: str
    capabilities: frozenset[Capability] = frozenset()


@dataclass(frozen=True)
class Principal:
    id: str
    tenant_id: str
    email: str
    name: str
    is_super_admin: bool = False
    can_transfer_patient: bool = False
    grants: tuple[AppGrant, ...] = field(default_factory=tuple)

    @property
    def applications(self) -> frozenset[str]:
        return frozenset(g.application for g in self.grants)
