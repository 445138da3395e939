from flask import Blueprint, request
from pos_rbac import get_db
from pos_rbac.constants.permissions import MANAGE_ROLES
from pos_rbac.decorators.auth import require_permissions
from pos_rbac.decorators.audit import audit_log
from pos_rbac.models.authz import Permission, DEFAULT_CATEGORY
from pos_rbac.services import permissions as perm_service
from pos_rbac.utils.filters import apply_filters
from pos_rbac.utils.listing import apply_pagination, handle_conditional, make_cached_list_response
from sqlalchemy import func

perms_bp = Blueprint('permissions', __name__)


@perms_bp.get('')
@require_permissions(MANAGE_ROLES)
def list_permissions():
    session = get_db()
    q = session.query(Permission)
    filter_specs = {
        'category': {'op': lambda qu, v: qu.filter(func.coalesce(Permission.category, DEFAULT_CATEGORY) == v)},
        'name': {'op': lambda qu, v: qu.filter(Permission.name.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, filter_specs, request.args)
    paged_q, total, limit, offset = apply_pagination(q.order_by(Permission.id.asc()))
    rows = paged_q.all()
    data = [perm_service.permission_json(p) for p in rows]
    latest_ts = max((p.updated_at for p in rows if p.updated_at), default=None)
    resp, etag = make_cached_list_response(data, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    return resp


@perms_bp.get('/grouped')
@require_permissions(MANAGE_ROLES)
def grouped_permissions():
    return perm_service.list_permissions_grouped()


@perms_bp.post('')
@require_permissions(MANAGE_ROLES)
@audit_log('PERMISSION.CREATE', 'Created permission: {name}', entity='Permission', entity_id_key='id',
           detail_keys=['name', 'category'])
def create_permission():
    perm = perm_service.create_permission(request.json or {})
    return perm_service.permission_json(perm), 201


@perms_bp.put('/<int:permission_id>')
@require_permissions(MANAGE_ROLES)
@audit_log('PERMISSION.UPDATE', 'Updated permission: {old_name} → {name}', entity='Permission',
           entity_id_key='id', detail_keys=['old_name', 'name', 'category'])
def update_permission(permission_id: int):
    return perm_service.update_permission(permission_id, request.json or {})


@perms_bp.delete('/<int:permission_id>')
@require_permissions(MANAGE_ROLES)
@audit_log('PERMISSION.DELETE', 'Deleted permission: {name}', entity='Permission', entity_id_arg='permission_id',
           detail_keys=['name'])
def delete_permission(permission_id: int):
    snapshot = perm_service.delete_permission(permission_id)
    snapshot['status'] = 'deleted'
    return snapshot
