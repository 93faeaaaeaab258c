"""Caller identity and pluggable authorization policies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Caller:
    """An authenticated caller as resolved by the Identity gateway."""

    user_id: str
    email: str
    name: str
    role: str | None = None


class DisputeResolverPolicy(Protocol):
    """Decides who may resolve disputes."""

    name: str

    def can_resolve(self, caller: Caller) -> bool:
        """Return True if the caller may resolve disputes."""
        ...


class AdminRolePolicy:
    """Only callers carrying the configured role may resolve disputes."""

    name = "admin_role"

    def __init__(self, admin_role: str) -> None:
        self._admin_role = admin_role

    def can_resolve(self, caller: Caller) -> bool:
        return caller.role == self._admin_role


class AnyAuthenticatedPolicy:
    """Every authenticated caller may resolve disputes."""

    name = "any_authenticated"

    def can_resolve(self, caller: Caller) -> bool:
        _ = caller
        return True


def build_resolver_policy(policy_name: str, admin_role: str) -> DisputeResolverPolicy:
    """Instantiate the dispute resolver policy named in configuration."""
    if policy_name == AdminRolePolicy.name:
        return AdminRolePolicy(admin_role)
    if policy_name == AnyAuthenticatedPolicy.name:
        return AnyAuthenticatedPolicy()
    msg = f"Unknown dispute resolver policy: {policy_name}"
    raise ValueError(msg)
