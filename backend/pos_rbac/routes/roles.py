from flask import Blueprint, request
from pos_rbac.constants.permissions import MANAGE_ROLES
from pos_rbac.decorators.auth import require_permissions
from pos_rbac.errors import RBACError
from pos_rbac.services import roles as role_service
from pos_rbac.services import grants as grant_service
from pos_rbac.services.permissions import permission_matrix
from pos_rbac.services.policy import current_context
from pos_rbac.utils.validation import parse_flag

roles_bp = Blueprint('roles', __name__)


@roles_bp.get('')
@require_permissions(MANAGE_ROLES)
def list_roles():
    return {'data': role_service.list_roles(), 'stats': role_service.role_stats()}


@roles_bp.post('')
@require_permissions(MANAGE_ROLES)
def create_role():
    data = request.json or {}
    role = role_service.create_role(
        current_context(),
        data.get('name'),
        description=data.get('description'),
        permission_ids=data.get('permission_ids') or [],
        menu_access=data.get('menu_access'),
        redirect_url=data.get('redirect_url'),
    )
    return role_service.get_role_detail(role.id), 201


@roles_bp.get('/<int:role_id>')
@require_permissions(MANAGE_ROLES)
def view_role(role_id: int):
    return role_service.get_role_detail(role_id)


@roles_bp.put('/<int:role_id>')
@require_permissions(MANAGE_ROLES)
def edit_role(role_id: int):
    data = request.json or {}
    role = role_service.update_role(
        current_context(),
        role_id,
        data.get('name'),
        description=data.get('description'),
        permission_ids=data.get('permission_ids') or [],
        redirect_url=data.get('redirect_url'),
    )
    return role_service.get_role_detail(role.id)


@roles_bp.delete('/<int:role_id>')
@require_permissions(MANAGE_ROLES)
def delete_role(role_id: int):
    snapshot = role_service.delete_role(current_context(), role_id)
    return {'success': True, 'message': f"Role '{snapshot['role_name']}' deleted", 'role_id': role_id}


@roles_bp.get('/<int:role_id>/permissions')
@require_permissions(MANAGE_ROLES)
def role_permission_matrix(role_id: int):
    return permission_matrix(role_id)


@roles_bp.post('/<int:role_id>/permissions/toggle')
@require_permissions(MANAGE_ROLES)
def toggle(role_id: int):
    """Matrix screen endpoint; always answers ``{success, granted?, message}``.

    With ``granted`` in the body the target state is applied instead of a flip.
    """
    data = request.get_json(silent=True) or request.form.to_dict()
    action = data.get('action') or ''
    target = data.get('granted')
    ctx = current_context()
    try:
        if action == 'toggle_permission':
            if target is None:
                result = grant_service.toggle_permission(ctx, role_id, data.get('permission_id'))
            else:
                result = grant_service.set_grant(ctx, role_id, data.get('permission_id'), parse_flag(target))
        elif action == 'toggle_category':
            if target is None:
                result = grant_service.toggle_category(ctx, role_id, data.get('category'))
            else:
                result = grant_service.set_category_grant(ctx, role_id, data.get('category'), parse_flag(target))
        else:
            return {'success': False, 'message': 'Invalid action'}, 400
    except RBACError as e:
        return {'success': False, 'message': e.message}, e.status_code
    result['success'] = True
    return result
