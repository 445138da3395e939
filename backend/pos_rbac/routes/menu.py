from flask import Blueprint, request
from pos_rbac.constants.permissions import (
    MANAGE_ROLES, ASSIGN_MENU_ROLES, MANAGE_MENU_SECTIONS, CREATE_MENU_SECTIONS,
    EDIT_MENU_SECTIONS, DELETE_MENU_SECTIONS,
)
from pos_rbac.decorators.auth import require_any_permission, require_login
from pos_rbac.decorators.audit import audit_log
from pos_rbac.services import menu as menu_service
from pos_rbac.services.policy import current_context
from pos_rbac.services.roles import get_role
from pos_rbac.utils.validation import parse_flag

menu_bp = Blueprint('menu', __name__)

SECTION_READERS = (MANAGE_MENU_SECTIONS, CREATE_MENU_SECTIONS, EDIT_MENU_SECTIONS, DELETE_MENU_SECTIONS)


@menu_bp.get('/me')
@require_login
def my_menu():
    ctx = current_context()
    role = get_role(ctx.role_id) if ctx.role_id else None
    return {'role_id': ctx.role_id, 'sections': menu_service.effective_menu(role)}


# --- Sections ---

@menu_bp.get('/sections')
@require_any_permission(*SECTION_READERS)
def list_sections():
    active_only = parse_flag(request.args.get('active_only', '0'))
    return {'data': [menu_service.section_json(s) for s in menu_service.list_sections(active_only=active_only)]}


@menu_bp.post('/sections')
@require_any_permission(MANAGE_MENU_SECTIONS, CREATE_MENU_SECTIONS)
@audit_log('MENU.SECTION.CREATE', 'Created menu section: {section_key}', entity='MenuSection', entity_id_key='id',
           detail_keys=['section_key', 'section_name'])
def create_section():
    section = menu_service.create_section(request.json or {})
    return menu_service.section_json(section), 201


@menu_bp.put('/sections/<int:section_id>')
@require_any_permission(MANAGE_MENU_SECTIONS, EDIT_MENU_SECTIONS)
@audit_log('MENU.SECTION.UPDATE', 'Updated menu section: {section_key}', entity='MenuSection', entity_id_key='id',
           detail_keys=['section_key', 'section_name', 'is_active'])
def update_section(section_id: int):
    section = menu_service.update_section(section_id, request.json or {})
    return menu_service.section_json(section)


@menu_bp.delete('/sections/<int:section_id>')
@require_any_permission(MANAGE_MENU_SECTIONS, DELETE_MENU_SECTIONS)
@audit_log('MENU.SECTION.DELETE', 'Deleted menu section: {section_key}', entity='MenuSection', entity_id_key='id',
           detail_keys=['section_key'])
def delete_section(section_id: int):
    snapshot = menu_service.delete_section(section_id)
    snapshot['status'] = 'deleted'
    return snapshot


# --- Role assignment ---

@menu_bp.get('/assignments')
@require_any_permission(MANAGE_ROLES, ASSIGN_MENU_ROLES)
def assignment_screen():
    """Roles that can be assigned plus the active sections, optionally with one role's current rows."""
    payload = {
        'roles': [{'id': r.id, 'name': r.name, 'description': r.description or ''} for r in menu_service.assignable_roles()],
        'sections': [menu_service.section_json(s) for s in menu_service.list_sections(active_only=True)],
    }
    role_id = request.args.get('role_id', type=int)
    if role_id:
        payload['role_id'] = role_id
        payload['assignments'] = {str(k): v for k, v in menu_service.get_role_menu_access(role_id).items()}
    return payload


@menu_bp.put('/roles/<int:role_id>')
@require_any_permission(MANAGE_ROLES, ASSIGN_MENU_ROLES)
def assign_menu(role_id: int):
    data = request.json or {}
    assignments = menu_service.assign_menu(current_context(), role_id, data.get('menu_assignments') or {})
    return {
        'role_id': role_id,
        'assignments': {str(k): v for k, v in assignments.items()},
        'message': 'Menu assignments updated successfully',
    }


@menu_bp.get('/roles/<int:role_id>')
@require_any_permission(MANAGE_ROLES, ASSIGN_MENU_ROLES)
def role_menu(role_id: int):
    role = get_role(role_id)
    return {'role_id': role.id, 'sections': menu_service.effective_menu(role)}
