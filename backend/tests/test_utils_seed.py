"""Test seeding utilities to reduce duplication.

These helpers create permissions, roles, users and menu sections directly through
the session so each test starts from a known grant set.
"""
from typing import Dict, Iterable, Optional
from pos_rbac import get_db
from pos_rbac.models.authz import User, Role, Permission, RolePermission, MenuSection, DEFAULT_CATEGORY
from pos_rbac.services.policy import AuthContext


def ensure_permissions(names: Iterable[str], category: str = DEFAULT_CATEGORY) -> Dict[str, Permission]:
    """Ensure each permission name exists; return dict name->Permission."""
    session = get_db()
    out: Dict[str, Permission] = {}
    for name in names:
        obj = session.query(Permission).filter_by(name=name).one_or_none()
        if not obj:
            obj = Permission(name=name, description=name.replace('_', ' '), category=category)
            session.add(obj); session.flush()
        out[name] = obj
    session.commit()
    return out


def ensure_role(name: str, perm_names: Iterable[str] = (), is_super_admin: bool = False,
                redirect_url: Optional[str] = None) -> Role:
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    perms = ensure_permissions(perm_names) if perm_names else {}
    if not role:
        role = Role(name=name, description=f'{name} role', is_super_admin=is_super_admin, redirect_url=redirect_url)
        session.add(role); session.flush()
    # attach any missing permissions
    existing_perm_ids = {rp.permission_id for rp in session.query(RolePermission).filter_by(role_id=role.id)}
    for p in perms.values():
        if p.id not in existing_perm_ids:
            session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return role


def ensure_user(username: str, role: Optional[Role] = None, password: str = 'pw', status: str = 'active') -> User:
    session = get_db()
    u = session.query(User).filter_by(username=username).one_or_none()
    if not u:
        u = User(username=username, email=f'{username}@example.com', password_hash='', status=status,
                 role_id=role.id if role else None)
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_sections(*keys: str) -> Dict[str, MenuSection]:
    """Active menu sections in the given order (sort_order follows argument position)."""
    session = get_db()
    out: Dict[str, MenuSection] = {}
    for order, key in enumerate(keys, start=1):
        s = session.query(MenuSection).filter_by(section_key=key).one_or_none()
        if not s:
            s = MenuSection(section_key=key, section_name=key.replace('_', ' ').title(), sort_order=order, is_active=True)
            session.add(s); session.flush()
        out[key] = s
    session.commit()
    return out


def granted_names(role_id: int):
    session = get_db()
    rows = (
        session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == role_id)
        .all()
    )
    return {r[0] for r in rows}


def actor(user_id: int = 1) -> AuthContext:
    return AuthContext(user_id=user_id, role_name='Tester', permissions=frozenset({'manage_roles'}))


def login(client, username: str, password: str = 'pw') -> Dict[str, str]:
    resp = client.post('/iam/auth/login', json={'username': username, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return {'Authorization': f"Bearer {resp.get_json()['access_token']}"}


def manager_headers(client, username: str = 'manager', perm_names: Iterable[str] = ('manage_roles',)) -> Dict[str, str]:
    """Login as a user whose role holds ``perm_names`` (manage_roles by default)."""
    role = ensure_role(f'{username} role', perm_names)
    ensure_user(username, role)
    return login(client, username)


__all__ = [
    'ensure_permissions', 'ensure_role', 'ensure_user', 'ensure_sections', 'granted_names', 'actor', 'login',
    'manager_headers',
]
