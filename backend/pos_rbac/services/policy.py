from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Set
from flask import current_app, has_app_context, g, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select
from pos_rbac.models.authz import User, Role, RolePermission, Permission
from pos_rbac.config.settings import DEFAULT_ADMIN_ROLE_NAMES
from pos_rbac.constants.permissions import WILDCARD_PERMISSION, MANAGE_ROLES, MANAGE_USERS
from pos_rbac import get_db


@dataclass(frozen=True)
class AuthContext:
    """Caller identity resolved once per request and passed into services."""
    user_id: int
    role_id: Optional[int] = None
    role_name: Optional[str] = None
    is_super_admin: bool = False
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def can(self, name: str) -> bool:
        return self.is_super_admin or has_permission(name, self.permissions)

    def can_any(self, *names: str) -> bool:
        return any(self.can(n) for n in names)

    @property
    def is_admin(self) -> bool:
        # Screen level bypass: super admin or either of the management permissions
        return self.is_super_admin or self.can_any(MANAGE_ROLES, MANAGE_USERS)


def has_permission(name: str, permissions: Iterable[str]) -> bool:
    """Flat membership test; unknown names are simply not granted."""
    perms = permissions if isinstance(permissions, (set, frozenset)) else set(permissions)
    return name in perms or WILDCARD_PERMISSION in perms


def load_permissions_for_role(role_id: Optional[int]) -> Set[str]:
    if not role_id:
        return set()
    session = get_db()
    rows = session.execute(
        select(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role_id)
    ).scalars().all()
    return set(rows)


def admin_role_names():
    if has_app_context():
        return tuple(current_app.config.get('RBAC_ADMIN_ROLE_NAMES', DEFAULT_ADMIN_ROLE_NAMES))
    return DEFAULT_ADMIN_ROLE_NAMES


def is_super_admin_role(role: Optional[Role]) -> bool:
    if role is None:
        return False
    return bool(role.is_super_admin) or role.name in admin_role_names()


def build_context(user_id: int) -> Optional[AuthContext]:
    """Rebuild the caller context from the database; None if the user is gone."""
    session = get_db()
    user = session.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if not user:
        return None
    role = user.role
    return AuthContext(
        user_id=user.id,
        role_id=role.id if role else None,
        role_name=role.name if role else None,
        is_super_admin=is_super_admin_role(role),
        permissions=frozenset(load_permissions_for_role(role.id if role else None)),
    )


def context_for_role(role: Role, user_id: int = 0) -> AuthContext:
    """Context for a role without a concrete user (previews, scripts, tests)."""
    return AuthContext(
        user_id=user_id,
        role_id=role.id,
        role_name=role.name,
        is_super_admin=is_super_admin_role(role),
        permissions=frozenset(load_permissions_for_role(role.id)),
    )


def current_context() -> AuthContext:
    """Context of the authenticated caller, built at most once per request."""
    ctx = g.get('auth_context')
    if ctx is None:
        ident = get_jwt_identity()
        ctx = build_context(int(ident)) if ident is not None else None
        if ctx is None:
            abort(401, description='unknown user')
        g.auth_context = ctx
    return ctx
