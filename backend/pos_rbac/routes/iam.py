from datetime import datetime, timezone
from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token
from sqlalchemy import select, or_
from pos_rbac.models.authz import User
from pos_rbac.models.audit import ActivityLog
from pos_rbac import get_db
from pos_rbac.constants.permissions import MANAGE_ROLES
from pos_rbac.services.policy import current_context, build_context
from pos_rbac.services.menu import effective_menu
from pos_rbac.services.roles import DEFAULT_REDIRECT_URL
from pos_rbac.utils.listing import apply_pagination, handle_conditional, make_cached_list_response
from pos_rbac.utils.filters import apply_filters
from pos_rbac.decorators.auth import require_permissions, require_login

iam_bp = Blueprint('iam', __name__)


@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    login_name = data.get('username') or data.get('email')
    password = data.get('password')
    if not login_name or not password:
        abort(400, description='username & password required')
    session = get_db()
    user = session.execute(
        select(User)
        .where(or_(User.username == login_name, User.email == login_name))
        .order_by((User.username == login_name).desc(), User.id)
    ).scalars().first()
    if not user or not user.verify_password(password):
        abort(401, description='invalid credentials')
    if user.status != 'active':
        abort(403, description='account disabled')
    user.last_login = datetime.now(timezone.utc)
    session.commit()
    # Only the identity goes in the token; role and permissions are reloaded per request
    token = create_access_token(identity=str(user.id))
    role = user.role
    return {
        'access_token': token,
        'redirect_url': (role.redirect_url if role else None) or DEFAULT_REDIRECT_URL,
    }


@iam_bp.get('/auth/me')
@require_login
def me():
    ctx = current_context()
    session = get_db()
    user = session.execute(select(User).where(User.id == ctx.user_id)).scalar_one()
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'role_id': ctx.role_id,
        'role_name': ctx.role_name,
        'is_super_admin': ctx.is_super_admin,
        'is_admin': ctx.is_admin,
        'permissions': sorted(ctx.permissions),
        'menu': effective_menu(user.role),
    }


@iam_bp.get('/users/<int:user_id>/permissions')
@require_permissions(MANAGE_ROLES)
def user_permissions(user_id: int):
    ctx = build_context(user_id)
    if ctx is None:
        abort(404)
    return {
        'user_id': ctx.user_id,
        'role_id': ctx.role_id,
        'role_name': ctx.role_name,
        'is_super_admin': ctx.is_super_admin,
        'permissions': sorted(ctx.permissions),
    }


# --- Activity Log Listing ---
@iam_bp.get('/activity')
@require_permissions(MANAGE_ROLES)
def list_activity():
    session = get_db()
    q = session.query(ActivityLog)
    filter_specs = {
        'user_id': {'coerce': int, 'op': lambda qu, v: qu.filter(ActivityLog.user_id == v)},
        'action_code': {'op': lambda qu, v: qu.filter(ActivityLog.action_code == v)},
        'entity': {'op': lambda qu, v: qu.filter(ActivityLog.entity == v)},
        'entity_id': {'op': lambda qu, v: qu.filter(ActivityLog.entity_id == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    paged_q, total, limit, offset = apply_pagination(q.order_by(ActivityLog.id.desc()))
    rows = paged_q.all()
    data = [
        {
            'id': r.id,
            'user_id': r.user_id,
            'action': r.action,
            'action_code': r.action_code,
            'entity': r.entity,
            'entity_id': r.entity_id,
            'details': r.details,
            'created_at': r.created_at.isoformat() if r.created_at else None
        } for r in rows
    ]
    # Newest row first, so its timestamp invalidates the ETag when new logs arrive
    latest_ts = rows[0].created_at if rows else None
    resp, etag = make_cached_list_response(data, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    return resp
