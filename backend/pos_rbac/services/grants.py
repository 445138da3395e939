from __future__ import annotations
"""Grant / revoke operations on the role permission matrix.

Two flavours are offered for every operation:

* ``toggle_*`` flips the current state (the behaviour of the matrix screen
  checkboxes). Two concurrent flips on the same pair can cancel each other out.
* ``set_*`` takes the target state explicitly and is idempotent, so a
  duplicated request leaves the same final state.

A category is a free text label on ``Permission.category``; NULL counts as
``General``. Bulk category operations run in one transaction and are all or
nothing.
"""
import logging
from typing import Any, Dict, List
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from pos_rbac import get_db
from pos_rbac.errors import NotFoundError, ValidationError, PersistenceError
from pos_rbac.models.authz import Role, Permission, RolePermission, DEFAULT_CATEGORY
from pos_rbac.services.audit import add_activity
from pos_rbac.services.policy import AuthContext
from pos_rbac.utils.validation import clean_text

logger = logging.getLogger(__name__)


def _role(session, role_id: int) -> Role:
    role = session.execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if not role:
        raise NotFoundError('Role not found')
    return role


def _permission(session, permission_id: Any) -> Permission:
    try:
        pid = int(permission_id)
    except (TypeError, ValueError):
        raise ValidationError(['Invalid permission ID'])
    if pid <= 0:
        raise ValidationError(['Invalid permission ID'])
    perm = session.execute(select(Permission).where(Permission.id == pid)).scalar_one_or_none()
    if not perm:
        raise NotFoundError('Permission not found')
    return perm


def has_grant(role_id: int, permission_id: int) -> bool:
    session = get_db()
    row = session.execute(
        select(RolePermission.id).where(RolePermission.role_id == role_id, RolePermission.permission_id == permission_id)
    ).first()
    return row is not None


def category_permission_ids(category: str) -> List[int]:
    session = get_db()
    return session.execute(
        select(Permission.id)
        .where(func.coalesce(Permission.category, DEFAULT_CATEGORY) == category)
        .order_by(Permission.id)
    ).scalars().all()


def _granted_ids(session, role_id: int, perm_ids: List[int]) -> List[int]:
    return session.execute(
        select(RolePermission.permission_id)
        .where(RolePermission.role_id == role_id, RolePermission.permission_id.in_(perm_ids))
    ).scalars().all()


def _write_grant(ctx: AuthContext, session, role: Role, perm: Permission, granted: bool):
    if granted:
        session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    else:
        session.execute(
            delete(RolePermission).where(RolePermission.role_id == role.id, RolePermission.permission_id == perm.id)
        )
    verb = 'Granted' if granted else 'Revoked'
    add_activity(
        ctx.user_id, f"{verb} permission '{perm.name}' for role '{role.name}'",
        'ROLE.PERM.GRANT' if granted else 'ROLE.PERM.REVOKE', 'Role', role.id,
        {
            'role_id': role.id,
            'role_name': role.name,
            'permission_id': perm.id,
            'permission_name': perm.name,
            'action': 'granted' if granted else 'revoked',
        },
    )
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Updating grant role=%s permission=%s failed', role.id, perm.id)
        raise PersistenceError('Error updating permission')
    session.expire(role, ['permissions'])


def toggle_permission(ctx: AuthContext, role_id: int, permission_id: Any) -> Dict[str, Any]:
    """Flip one grant: revoke when present, grant when absent."""
    session = get_db()
    role = _role(session, role_id)
    perm = _permission(session, permission_id)
    granted = not has_grant(role.id, perm.id)
    _write_grant(ctx, session, role, perm, granted)
    return {'granted': granted, 'message': 'Permission granted' if granted else 'Permission revoked'}


def set_grant(ctx: AuthContext, role_id: int, permission_id: Any, granted: bool) -> Dict[str, Any]:
    """Move one grant to ``granted``; a no-op (and no log row) when already there."""
    session = get_db()
    role = _role(session, role_id)
    perm = _permission(session, permission_id)
    previous = has_grant(role.id, perm.id)
    granted = bool(granted)
    if previous != granted:
        _write_grant(ctx, session, role, perm, granted)
    return {
        'previous': previous,
        'granted': granted,
        'changed': previous != granted,
        'message': 'Permission granted' if granted else 'Permission revoked',
    }


def _replace_category(ctx: AuthContext, session, role: Role, category: str, perm_ids: List[int], granted: bool):
    try:
        session.execute(
            delete(RolePermission).where(RolePermission.role_id == role.id, RolePermission.permission_id.in_(perm_ids))
        )
        if granted:
            for pid in perm_ids:
                session.add(RolePermission(role_id=role.id, permission_id=pid))
        verb = 'Granted' if granted else 'Revoked'
        add_activity(
            ctx.user_id, f"{verb} all permissions in category '{category}'",
            'ROLE.CATEGORY.GRANT' if granted else 'ROLE.CATEGORY.REVOKE', 'Role', role.id,
            {
                'role_id': role.id,
                'role_name': role.name,
                'category': category,
                'permissions_count': len(perm_ids),
                'action': 'granted_all' if granted else 'revoked_all',
            },
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Category %r update for role %s failed', category, role.id)
        raise PersistenceError('Error updating category permissions')
    session.expire(role, ['permissions'])


def _category_ids(category: Any) -> List[int]:
    category = clean_text(category)
    if not category:
        raise ValidationError(['Invalid category'])
    perm_ids = category_permission_ids(category)
    if not perm_ids:
        raise NotFoundError('No permissions found in this category')
    return perm_ids


def toggle_category(ctx: AuthContext, role_id: int, category: Any) -> Dict[str, Any]:
    """Revoke the whole category when fully granted, otherwise grant all of it.

    A partially granted category is never flipped item by item; it always ends
    up fully granted.
    """
    session = get_db()
    role = _role(session, role_id)
    perm_ids = _category_ids(category)
    category = clean_text(category)
    existing = _granted_ids(session, role.id, perm_ids)
    granted = len(existing) != len(perm_ids)
    _replace_category(ctx, session, role, category, perm_ids, granted)
    return {
        'granted': granted,
        'permissions_count': len(perm_ids),
        'message': 'All permissions in category granted' if granted else 'All permissions in category revoked',
    }


def set_category_grant(ctx: AuthContext, role_id: int, category: Any, granted: bool) -> Dict[str, Any]:
    session = get_db()
    role = _role(session, role_id)
    perm_ids = _category_ids(category)
    category = clean_text(category)
    existing = set(_granted_ids(session, role.id, perm_ids))
    granted = bool(granted)
    target = set(perm_ids) if granted else set()
    changed = existing != target
    if changed:
        _replace_category(ctx, session, role, category, perm_ids, granted)
    return {
        'previous_count': len(existing),
        'granted': granted,
        'changed': changed,
        'permissions_count': len(perm_ids),
        'message': 'All permissions in category granted' if granted else 'All permissions in category revoked',
    }
