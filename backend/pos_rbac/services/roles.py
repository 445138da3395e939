from __future__ import annotations
"""Role create / edit / delete and the read models behind the role screens.

Create and edit validate everything first and collect the problems into one
``ValidationError``; nothing is written unless the whole request is valid.
Writes happen in a single transaction together with their activity log row.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from flask import current_app, has_app_context
from pos_rbac import get_db
from pos_rbac.config.settings import DEFAULT_PROTECTED_ROLE_NAMES
from pos_rbac.errors import ValidationError, NotFoundError, ConflictError, PersistenceError, RBACError
from pos_rbac.models.authz import Role, Permission, RolePermission, RoleMenuAccess, User
from pos_rbac.services.audit import add_activity
from pos_rbac.services.menu import normalize_menu_access, validate_section_ids, get_role_menu_access
from pos_rbac.services.policy import AuthContext, is_super_admin_role
from pos_rbac.utils.validation import validate_role_name, validate_redirect_url, coerce_ids, clean_text

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URL = '/dashboard'


def role_json(role: Role) -> Dict[str, Any]:
    return {
        'id': role.id,
        'name': role.name,
        'description': role.description or '',
        'redirect_url': role.redirect_url or DEFAULT_REDIRECT_URL,
        'is_super_admin': is_super_admin_role(role),
        'created_at': role.created_at.isoformat() if role.created_at else None,
        'updated_at': role.updated_at.isoformat() if role.updated_at else None,
    }


def get_role(role_id: int) -> Role:
    session = get_db()
    role = session.execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if not role:
        raise NotFoundError('Role not found')
    return role


def _protected_role_names():
    if has_app_context():
        return tuple(current_app.config.get('RBAC_PROTECTED_ROLE_NAMES', DEFAULT_PROTECTED_ROLE_NAMES))
    return DEFAULT_PROTECTED_ROLE_NAMES


def _check_name(session, name: str, exclude_id: Optional[int] = None) -> List[str]:
    errors = validate_role_name(name)
    if errors:
        return errors
    q = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        q = q.where(Role.id != exclude_id)
    if session.execute(q).first():
        return ['A role with this name already exists']
    return []


def _check_permission_ids(session, raw_ids: Iterable[Any], errors: List[str]) -> List[int]:
    ids, id_errors = coerce_ids(raw_ids, 'permission')
    if id_errors:
        errors.extend(id_errors)
        return []
    if not ids:
        errors.append('At least one permission must be selected')
        return []
    found = session.execute(select(Permission.id).where(Permission.id.in_(ids))).scalars().all()
    if len(found) != len(ids):
        errors.append('Some selected permissions are invalid')
    return ids


def _check_redirect_url(url: Optional[str], errors: List[str]) -> str:
    url = clean_text(url)
    if not url:
        return DEFAULT_REDIRECT_URL
    errors.extend(validate_redirect_url(url))
    return url


def create_role(
    ctx: AuthContext,
    name: str,
    description: Optional[str] = None,
    permission_ids: Iterable[Any] = (),
    menu_access: Optional[Dict[Any, Any]] = None,
    redirect_url: Optional[str] = None,
) -> Role:
    session = get_db()
    name = clean_text(name)
    errors = _check_name(session, name)
    url = _check_redirect_url(redirect_url, errors)
    ids = _check_permission_ids(session, permission_ids, errors)
    access, access_errors = normalize_menu_access(menu_access)
    errors.extend(access_errors)
    if access and not access_errors:
        errors.extend(validate_section_ids(access.keys()))
    if errors:
        raise ValidationError(errors)

    try:
        role = Role(name=name, description=clean_text(description), redirect_url=url)
        session.add(role)
        session.flush()  # to get id
        for pid in ids:
            session.add(RolePermission(role_id=role.id, permission_id=pid))
        for section_id, (visible, priority) in access.items():
            session.add(RoleMenuAccess(role_id=role.id, menu_section_id=section_id, is_visible=visible, is_priority=priority))
        add_activity(
            ctx.user_id, f'Created new role: {name}', 'ROLE.CREATE', 'Role', role.id,
            {'role_id': role.id, 'role_name': name, 'permissions_count': len(ids), 'permissions': ids},
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Creating role %r failed', name)
        raise PersistenceError('Error creating role')
    logger.info('Role %s (%s) created by user %s with %d permissions', role.id, name, ctx.user_id, len(ids))
    return role


def update_role(
    ctx: AuthContext,
    role_id: int,
    name: str,
    description: Optional[str] = None,
    permission_ids: Iterable[Any] = (),
    redirect_url: Optional[str] = None,
) -> Role:
    """Update role fields and replace its whole grant set. Menu access is edited elsewhere."""
    session = get_db()
    role = get_role(role_id)
    name = clean_text(name)
    errors = _check_name(session, name, exclude_id=role.id)
    url = _check_redirect_url(redirect_url if redirect_url is not None else role.redirect_url, errors)
    ids = _check_permission_ids(session, permission_ids, errors)
    if errors:
        raise ValidationError(errors)

    old_name = role.name
    try:
        role.name = name
        role.description = clean_text(description)
        role.redirect_url = url
        session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
        for pid in ids:
            session.add(RolePermission(role_id=role.id, permission_id=pid))
        add_activity(
            ctx.user_id, f'Updated role: {old_name}', 'ROLE.UPDATE', 'Role', role.id,
            {'role_id': role.id, 'old_name': old_name, 'new_name': name, 'permissions_count': len(ids), 'permissions': ids},
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Updating role %s failed', role_id)
        raise PersistenceError('Error updating role')
    session.expire(role, ['permissions'])
    return role


def delete_role(ctx: AuthContext, role_id: int) -> Dict[str, Any]:
    session = get_db()
    role = get_role(role_id)
    if is_super_admin_role(role) or role.name.lower() in _protected_role_names():
        raise RBACError(f'Cannot delete critical system role: {role.name}')
    user_count = session.execute(select(func.count(User.id)).where(User.role_id == role.id)).scalar_one()
    if user_count > 0:
        raise ConflictError('Cannot delete role that has users assigned to it. Please reassign or remove users first.')

    snapshot = {'deleted_role_id': role.id, 'role_name': role.name, 'role_description': role.description or ''}
    try:
        session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
        session.execute(delete(RoleMenuAccess).where(RoleMenuAccess.role_id == role.id))
        session.execute(delete(Role).where(Role.id == role.id))
        add_activity(ctx.user_id, f'Deleted role: {snapshot["role_name"]}', 'ROLE.DELETE', 'Role', role_id, snapshot)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Deleting role %s failed', role_id)
        raise PersistenceError('Error deleting role')
    return snapshot


def _count_by_role(session, column, role_column) -> Dict[int, int]:
    rows = session.execute(select(role_column, func.count(func.distinct(column))).group_by(role_column)).all()
    return {rid: cnt for rid, cnt in rows if rid is not None}


def list_roles() -> List[Dict[str, Any]]:
    session = get_db()
    perm_counts = _count_by_role(session, RolePermission.permission_id, RolePermission.role_id)
    user_counts = _count_by_role(session, User.id, User.role_id)
    out = []
    for role in session.execute(select(Role).order_by(Role.name.asc())).scalars():
        data = role_json(role)
        data['permission_count'] = perm_counts.get(role.id, 0)
        data['user_count'] = user_counts.get(role.id, 0)
        out.append(data)
    return out


def role_stats() -> Dict[str, int]:
    session = get_db()
    return {
        'total_roles': session.execute(select(func.count(Role.id))).scalar_one(),
        'total_permissions': session.execute(select(func.count(Permission.id))).scalar_one(),
        'users_with_roles': session.execute(select(func.count(User.id)).where(User.role_id.is_not(None))).scalar_one(),
    }


def get_role_detail(role_id: int) -> Dict[str, Any]:
    session = get_db()
    role = get_role(role_id)
    perms = session.execute(
        select(Permission)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .where(RolePermission.role_id == role.id)
        .order_by(Permission.category, Permission.name)
    ).scalars().all()
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for p in perms:
        grouped.setdefault(p.category_label, []).append({'id': p.id, 'name': p.name, 'description': p.description or ''})
    users = session.execute(select(User).where(User.role_id == role.id).order_by(User.username)).scalars().all()
    data = role_json(role)
    data.update({
        'permission_count': len(perms),
        'permissions': grouped,
        'user_count': len(users),
        'users': [
            {
                'id': u.id,
                'username': u.username,
                'first_name': u.first_name,
                'last_name': u.last_name,
                'email': u.email,
                'status': u.status,
                'last_login': u.last_login.isoformat() if u.last_login else None,
            } for u in users
        ],
        'menu_access': {str(k): v for k, v in get_role_menu_access(role.id).items()},
    })
    return data
