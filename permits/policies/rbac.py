#permits/policies/rbac.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Mapping, Optional

from permits.core.exceptions import AuthorizationError


class Capability(str, Enum):
    CAN_CREATE_APPLICATION = "CAN_CREATE_APPLICATION"
    CAN_ASSESS = "CAN_ASSESS"
    CAN_APPROVE = "CAN_APPROVE"
    CAN_RECORD_PAYMENT = "CAN_RECORD_PAYMENT"
    CAN_ISSUE = "CAN_ISSUE"
    CAN_RELEASE = "CAN_RELEASE"
    CAN_DELETE_ANY = "CAN_DELETE_ANY"
    # passes every capability check (never a state check)
    CAN_BYPASS = "CAN_BYPASS"


@dataclass(frozen=True)
class Principal:
    user_id: str
    roles: FrozenSet[str]
    display_name: str
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @property
    def actor_id(self) -> uuid.UUID:
        return uuid.UUID(self.user_id)

    @property
    def is_superuser(self) -> bool:
        return Capability.CAN_BYPASS in self.capabilities

    def has(self, capability: Capability) -> bool:
        return self.is_superuser or capability in self.capabilities

    def has_any(self, *capabilities: Capability) -> bool:
        return any(self.has(c) for c in capabilities)


def capabilities_for_roles(
    roles: Iterable[str],
    role_capabilities: Mapping[str, Iterable[str]],
) -> FrozenSet[Capability]:
    """
    Map configured role names to capabilities. Unknown role or capability
    names are ignored (a role with no mapping grants nothing).
    """
    caps = set()
    for role in roles:
        for name in role_capabilities.get(role, ()):
            try:
                caps.add(Capability(name))
            except ValueError:
                continue
    return frozenset(caps)


def roles_with_capability(
    capability: Capability,
    role_capabilities: Mapping[str, Iterable[str]],
) -> List[str]:
    out = []
    for role, names in role_capabilities.items():
        names = set(names)
        if capability.value in names or Capability.CAN_BYPASS.value in names:
            out.append(role)
    return out


def build_principal(
    user_id: str,
    roles: Iterable[str],
    display_name: str,
    role_capabilities: Optional[Mapping[str, Iterable[str]]] = None,
) -> Principal:
    if role_capabilities is None:
        from permits.core.config import get_settings

        role_capabilities = get_settings().role_capabilities
    role_set = frozenset(roles)
    return Principal(
        user_id=str(user_id),
        roles=role_set,
        display_name=display_name,
        capabilities=capabilities_for_roles(role_set, role_capabilities),
    )


def require_capability(principal: Principal, *capabilities: Capability) -> None:
    """
    Passes when the principal holds ANY of the given capabilities.
    """
    if principal.has_any(*capabilities):
        return
    wanted = " or ".join(c.value for c in capabilities)
    raise AuthorizationError(
        f"User {principal.user_id} lacks capability {wanted}.",
        details={"user_id": principal.user_id, "required": [c.value for c in capabilities]},
    )

