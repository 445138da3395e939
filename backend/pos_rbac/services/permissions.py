from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from pos_rbac import get_db
from pos_rbac.errors import ValidationError, NotFoundError, ConflictError, PersistenceError
from pos_rbac.models.authz import Permission, RolePermission, Role, DEFAULT_CATEGORY
from pos_rbac.utils.validation import validate_permission_name, clean_text

logger = logging.getLogger(__name__)


def permission_json(p: Permission) -> Dict[str, Any]:
    return {'id': p.id, 'name': p.name, 'description': p.description or '', 'category': p.category_label}


def get_permission(permission_id: int) -> Permission:
    session = get_db()
    perm = session.execute(select(Permission).where(Permission.id == permission_id)).scalar_one_or_none()
    if not perm:
        raise NotFoundError('Permission not found')
    return perm


def _fields(data: Dict[str, Any], session, exclude_id: Optional[int] = None) -> Dict[str, str]:
    name = clean_text(data.get('name'))
    errors = validate_permission_name(name)
    if not errors:
        q = select(Permission.id).where(Permission.name == name)
        if exclude_id is not None:
            q = q.where(Permission.id != exclude_id)
        if session.execute(q).first():
            errors.append('A permission with this name already exists')
    if errors:
        raise ValidationError(errors)
    return {
        'name': name,
        'description': clean_text(data.get('description')),
        'category': clean_text(data.get('category')) or DEFAULT_CATEGORY,
    }


def create_permission(data: Dict[str, Any]) -> Permission:
    session = get_db()
    perm = Permission(**_fields(data, session))
    session.add(perm)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Creating permission %r failed', perm.name)
        raise PersistenceError('Error creating permission')
    return perm


def update_permission(permission_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    session = get_db()
    perm = get_permission(permission_id)
    fields = _fields(data, session, exclude_id=perm.id)
    old_name = perm.name
    for k, v in fields.items():
        setattr(perm, k, v)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Updating permission %s failed', permission_id)
        raise PersistenceError('Error updating permission')
    data = permission_json(perm)
    data['old_name'] = old_name
    return data


def delete_permission(permission_id: int) -> Dict[str, Any]:
    session = get_db()
    perm = get_permission(permission_id)
    usage = session.execute(
        select(func.count(RolePermission.id)).where(RolePermission.permission_id == perm.id)
    ).scalar_one()
    if usage > 0:
        raise ConflictError(f"Cannot delete permission - it's currently assigned to {usage} role(s)")
    snapshot = permission_json(perm)
    try:
        session.delete(perm)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Deleting permission %s failed', permission_id)
        raise PersistenceError('Error deleting permission')
    return snapshot


def list_permissions_grouped() -> Dict[str, Any]:
    """Every permission with the roles using it, grouped by category."""
    session = get_db()
    usage: Dict[int, List[str]] = {}
    for pid, role_name in session.execute(
        select(RolePermission.permission_id, Role.name).join(Role, Role.id == RolePermission.role_id).order_by(Role.name)
    ).all():
        usage.setdefault(pid, []).append(role_name)
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    perms = session.execute(
        select(Permission).order_by(func.coalesce(Permission.category, DEFAULT_CATEGORY), Permission.name)
    ).scalars().all()
    for p in perms:
        data = permission_json(p)
        data['roles_using'] = usage.get(p.id, [])
        data['roles_using_count'] = len(data['roles_using'])
        grouped.setdefault(p.category_label, []).append(data)
    return {'categories': grouped, 'total': len(perms)}


def permission_matrix(role_id: int) -> Dict[str, Any]:
    """All permissions with an ``is_granted`` flag for one role, plus per category stats."""
    session = get_db()
    role = session.execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if not role:
        raise NotFoundError('Role not found')
    granted = set(session.execute(
        select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
    ).scalars().all())
    perms = session.execute(
        select(Permission).order_by(func.coalesce(Permission.category, DEFAULT_CATEGORY), Permission.name)
    ).scalars().all()
    categories: Dict[str, Dict[str, Any]] = {}
    for p in perms:
        bucket = categories.setdefault(p.category_label, {'permissions': [], 'total': 0, 'granted': 0})
        data = permission_json(p)
        data['is_granted'] = p.id in granted
        bucket['permissions'].append(data)
        bucket['total'] += 1
        if data['is_granted']:
            bucket['granted'] += 1
    return {
        'role': {'id': role.id, 'name': role.name},
        'categories': categories,
        'total': len(perms),
        'granted': len(granted),
    }
