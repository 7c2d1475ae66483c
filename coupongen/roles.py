"""Principal roles and their hierarchy.

superadmin ⊇ admin ⊇ store. A superadmin is not bound to any tenant; admin
and store principals always belong to exactly one.
"""

from __future__ import annotations

from typing import Literal, cast

Role = Literal["superadmin", "admin", "store"]

ROLES: tuple[Role, ...] = ("superadmin", "admin", "store")

# Higher rank satisfies every lower requirement
ROLE_RANK: dict[Role, int] = {
    "store": 1,
    "admin": 2,
    "superadmin": 3,
}


def is_role(value: object) -> bool:
    return isinstance(value, str) and value in ROLE_RANK


def to_role(value: str) -> Role:
    v = (value or "").strip().lower()
    if v not in ROLE_RANK:
        raise ValueError(f"unknown role: {value!r}")
    return cast(Role, v)


def satisfies(actual: Role, required: Role) -> bool:
    return ROLE_RANK[actual] >= ROLE_RANK[required]


__all__ = ["Role", "ROLES", "ROLE_RANK", "is_role", "to_role", "satisfies"]
