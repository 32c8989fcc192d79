"""Actors, capabilities and participant policy.

Roles are resolved once per session into an ``Actor``; services never compare
role strings. The access predicate for every workflow row is

    actor.is_service or actor.id in {assignment.customer_id, assignment.provider_id}

Non-participants are told the row does not exist (``NotFoundError``). A
participant acting outside their role gets ``AuthorizationDenied``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from jobflow.errors import AuthorizationDenied, NotFoundError

SERVICE_ACTOR_ID = "service"


class Role(str, Enum):
    """Account capabilities."""

    CUSTOMER = "customer"
    PROVIDER = "provider"


# Account type strings used by the profile system.
_ACCOUNT_TYPE_ROLES = {
    "customer": frozenset({Role.CUSTOMER}),
    "tradie": frozenset({Role.PROVIDER}),
    "provider": frozenset({Role.PROVIDER}),
    "dual": frozenset({Role.CUSTOMER, Role.PROVIDER}),
}


@dataclass(frozen=True)
class Actor:
    """The identity performing an operation."""

    id: str
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    is_service: bool = False

    def __post_init__(self):
        if not self.id:
            raise ValueError("Actor id is required")

    def has_role(self, role: Role) -> bool:
        return self.is_service or role in self.roles

    @classmethod
    def service(cls) -> "Actor":
        """The trusted service identity (webhooks, background workers)."""
        return cls(id=SERVICE_ACTOR_ID, roles=frozenset(Role), is_service=True)

    @classmethod
    def from_account_type(cls, actor_id: str, account_type: Optional[str]) -> "Actor":
        """Resolve roles from a profile account type (customer / tradie / dual)."""
        roles = _ACCOUNT_TYPE_ROLES.get((account_type or "").lower(), frozenset())
        return cls(id=actor_id, roles=roles)

    @classmethod
    def with_roles(cls, actor_id: str, roles: Iterable[str]) -> "Actor":
        resolved = set()
        for r in roles:
            try:
                resolved.add(Role(r))
            except ValueError:
                continue
        return cls(id=actor_id, roles=frozenset(resolved))


def is_participant(actor: Actor, customer_id: str, provider_id: Optional[str]) -> bool:
    """The access predicate."""
    if actor.is_service:
        return True
    return actor.id == customer_id or (provider_id is not None and actor.id == provider_id)


def is_customer_of(actor: Actor, assignment) -> bool:
    return not actor.is_service and actor.id == assignment.customer_id


def is_provider_of(actor: Actor, assignment) -> bool:
    return not actor.is_service and actor.id == assignment.provider_id


def require_participant(actor: Actor, assignment, what: str = "Assignment") -> None:
    if not is_participant(actor, assignment.customer_id, assignment.provider_id):
        raise NotFoundError(f"{what} not found")


def require_customer(actor: Actor, assignment, action: str) -> None:
    """Only the job's customer may perform ``action``."""
    require_participant(actor, assignment)
    if not actor.has_role(Role.CUSTOMER) or not is_customer_of(actor, assignment):
        raise AuthorizationDenied(f"Only the customer can {action}")


def require_provider(actor: Actor, assignment, action: str) -> None:
    """Only the assigned provider may perform ``action``."""
    require_participant(actor, assignment)
    if not actor.has_role(Role.PROVIDER) or not is_provider_of(actor, assignment):
        raise AuthorizationDenied(f"Only the assigned provider can {action}")
