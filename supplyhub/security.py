"""Shared security helpers and decorators for view protection."""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Iterable, Tuple

from flask import abort
from flask_login import current_user

from supplyhub.extensions import login_manager


@dataclass(frozen=True)
class Actor:
    """Identity a service call acts on behalf of."""

    id: int | None
    name: str
    email: str
    roles: Tuple[str, ...] = ()

    def has_any_role(self, role_names: Iterable[str]) -> bool:
        return any(name in self.roles for name in role_names)

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            id=user.id,
            name=user.name or user.email,
            email=user.email,
            roles=tuple(user.role_names),
        )


def current_actor() -> Actor:
    return Actor.from_user(current_user)


def _normalize_roles(role_names: Iterable[str]) -> Tuple[str, ...]:
    unique: list[str] = []
    seen: set[str] = set()
    for name in role_names:
        if not name or name in seen:
            continue
        unique.append(name)
        seen.add(name)
    return tuple(unique)


def require_roles(*role_names: str, approved: bool = False):
    """Decorator ensuring the active user has any of the provided roles.

    With ``approved=True`` the account must also have been approved by an
    administrator.
    """

    normalized_roles = _normalize_roles(role_names)

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()

            if normalized_roles and not current_user.has_any_role(normalized_roles):
                abort(403)

            if approved and not current_user.is_approved:
                abort(403, description="Your account is awaiting approval.")

            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def require_approved(view_func):
    """Any signed-in user whose account has been approved."""

    return require_roles(approved=True)(view_func)


def require_admin(view_func):
    """Decorator specialized for the administrator role."""

    return require_roles("admin", approved=True)(view_func)
