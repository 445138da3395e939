from __future__ import annotations
"""Menu sections and per-role menu visibility.

Visibility is resolved at read time: a super admin role sees every active
section; any other role sees a section only when it has an access row with
``is_visible`` set. Sections without a row are hidden.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from pos_rbac import get_db
from pos_rbac.errors import ValidationError, NotFoundError, PersistenceError
from pos_rbac.models.authz import MenuSection, RoleMenuAccess, Role
from pos_rbac.services.audit import add_activity
from pos_rbac.services.policy import AuthContext, is_super_admin_role
from pos_rbac.utils.validation import validate_section_key, clean_text, parse_flag

logger = logging.getLogger(__name__)


def normalize_menu_access(raw: Optional[Dict[Any, Any]]) -> Tuple[Dict[int, Tuple[bool, bool]], List[str]]:
    """Map ``{section_id: {visible, priority}}`` to ``{int_id: (visible, priority)}``.

    Priority is cleared when the section is not visible.
    """
    if not raw:
        return {}, []
    if not isinstance(raw, dict):
        return {}, ['Menu access must be an object keyed by section id']
    out: Dict[int, Tuple[bool, bool]] = {}
    for key, flags in raw.items():
        try:
            section_id = int(key)
        except (TypeError, ValueError):
            return {}, [f'Invalid menu section id: {key!r}']
        flags = flags if isinstance(flags, dict) else {}
        visible = parse_flag(flags.get('visible'))
        priority = visible and parse_flag(flags.get('priority'))
        out[section_id] = (visible, priority)
    return out, []


def validate_section_ids(section_ids: Iterable[int]) -> List[str]:
    ids = list(section_ids)
    if not ids:
        return []
    session = get_db()
    found = session.execute(select(MenuSection.id).where(MenuSection.id.in_(ids))).scalars().all()
    if len(found) != len(set(ids)):
        return ['Some selected menu sections are invalid']
    return []


def section_json(s: MenuSection) -> Dict[str, Any]:
    return {
        'id': s.id,
        'section_key': s.section_key,
        'section_name': s.section_name,
        'section_icon': s.section_icon,
        'section_description': s.section_description or '',
        'sort_order': s.sort_order,
        'is_active': bool(s.is_active),
    }


def list_sections(active_only: bool = True) -> List[MenuSection]:
    session = get_db()
    q = select(MenuSection)
    if active_only:
        q = q.where(MenuSection.is_active.is_(True))
    return session.execute(q.order_by(MenuSection.sort_order, MenuSection.section_name)).scalars().all()


def get_section(section_id: int) -> MenuSection:
    session = get_db()
    section = session.execute(select(MenuSection).where(MenuSection.id == section_id)).scalar_one_or_none()
    if not section:
        raise NotFoundError('Menu section not found')
    return section


def _section_fields(data: Dict[str, Any], session, exclude_id: Optional[int] = None):
    key = clean_text(data.get('section_key'))
    name = clean_text(data.get('section_name'))
    errors = validate_section_key(key)
    if not name:
        errors.append('Section name is required')
    try:
        sort_order = int(data.get('sort_order') or 0)
    except (TypeError, ValueError):
        errors.append('Sort order must be a number')
        sort_order = 0
    if not errors:
        q = select(MenuSection.id).where(MenuSection.section_key == key)
        if exclude_id is not None:
            q = q.where(MenuSection.id != exclude_id)
        if session.execute(q).first():
            errors.append('A section with this key already exists')
    if errors:
        raise ValidationError(errors)
    return {
        'section_key': key,
        'section_name': name,
        'section_description': clean_text(data.get('section_description')),
        'section_icon': clean_text(data.get('section_icon')) or None,
        'sort_order': sort_order,
    }


def create_section(data: Dict[str, Any]) -> MenuSection:
    session = get_db()
    fields = _section_fields(data, session)
    section = MenuSection(is_active=True, **fields)
    session.add(section)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Creating menu section %r failed', fields['section_key'])
        raise PersistenceError('Error creating menu section')
    return section


def update_section(section_id: int, data: Dict[str, Any]) -> MenuSection:
    session = get_db()
    section = get_section(section_id)
    fields = _section_fields(data, session, exclude_id=section.id)
    for k, v in fields.items():
        setattr(section, k, v)
    if 'is_active' in data:
        section.is_active = parse_flag(data['is_active'])
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Updating menu section %s failed', section_id)
        raise PersistenceError('Error updating menu section')
    return section


def delete_section(section_id: int) -> Dict[str, Any]:
    session = get_db()
    section = get_section(section_id)
    snapshot = section_json(section)
    try:
        session.execute(delete(RoleMenuAccess).where(RoleMenuAccess.menu_section_id == section.id))
        session.execute(delete(MenuSection).where(MenuSection.id == section.id))
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Deleting menu section %s failed', section_id)
        raise PersistenceError('Error deleting menu section')
    return snapshot


def assignable_roles() -> List[Role]:
    """Roles whose menu access can be edited; super admins always see everything."""
    session = get_db()
    roles = session.execute(select(Role).order_by(Role.name)).scalars().all()
    return [r for r in roles if not is_super_admin_role(r)]


def get_role_menu_access(role_id: int) -> Dict[int, Dict[str, bool]]:
    session = get_db()
    rows = session.execute(select(RoleMenuAccess).where(RoleMenuAccess.role_id == role_id)).scalars().all()
    return {r.menu_section_id: {'visible': bool(r.is_visible), 'priority': bool(r.is_priority)} for r in rows}


def assign_menu(ctx: AuthContext, role_id: int, assignments: Optional[Dict[Any, Any]]) -> Dict[int, Dict[str, bool]]:
    """Replace the full menu access set of a role.

    Sections omitted from ``assignments`` lose their row and resolve to hidden.
    """
    session = get_db()
    role = session.execute(select(Role).where(Role.id == role_id)).scalar_one_or_none()
    if not role:
        raise NotFoundError('Role not found')
    if is_super_admin_role(role):
        raise ValidationError([f'Menu access for administrator role {role.name} is implicit and cannot be assigned'])
    access, errors = normalize_menu_access(assignments)
    if not errors:
        errors = validate_section_ids(access.keys())
    if errors:
        raise ValidationError(errors)

    try:
        session.execute(delete(RoleMenuAccess).where(RoleMenuAccess.role_id == role.id))
        for section_id, (visible, priority) in access.items():
            session.add(RoleMenuAccess(role_id=role.id, menu_section_id=section_id, is_visible=visible, is_priority=priority))
        add_activity(
            ctx.user_id, f"Updated menu access for role '{role.name}'", 'MENU.ASSIGN', 'Role', role.id,
            {'role_id': role.id, 'role_name': role.name, 'sections_count': len(access),
             'visible_sections': sorted(sid for sid, (vis, _) in access.items() if vis)},
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception('Menu assignment for role %s failed', role_id)
        raise PersistenceError('Error updating menu assignments')
    session.expire(role, ['menu_access'])
    return get_role_menu_access(role.id)


def effective_menu(role: Optional[Role]) -> List[Dict[str, Any]]:
    """Active sections visible to ``role`` in navigation order."""
    if role is None:
        return []
    access = get_role_menu_access(role.id)
    admin = is_super_admin_role(role)
    out = []
    for section in list_sections(active_only=True):
        flags = access.get(section.id)
        if not admin and not (flags and flags['visible']):
            continue
        data = section_json(section)
        data['is_priority'] = bool(flags and flags['priority'])
        out.append(data)
    return out


def is_section_visible(role: Optional[Role], section_key: str) -> bool:
    return any(s['section_key'] == section_key for s in effective_menu(role))
