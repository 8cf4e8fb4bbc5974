from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    GUEST = "GUEST"
    MEMBER = "MEMBER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


# Least to most privileged.
_ROLE_ORDER: tuple[Role, ...] = (
    Role.GUEST,
    Role.MEMBER,
    Role.MANAGER,
    Role.ADMIN,
    Role.OWNER,
)
_RANK_BY_ROLE = {role: index for index, role in enumerate(_ROLE_ORDER)}


def rank(role: Role) -> int:
    return _RANK_BY_ROLE[Role(role)]


def at_least(role: Role, other: Role) -> bool:
    return rank(role) >= rank(other)


def parse_role(value: object, default: Role = Role.MEMBER) -> Role:
    normalized_value = str(value or "").strip().upper()
    try:
        return Role(normalized_value)
    except ValueError:
        return default
