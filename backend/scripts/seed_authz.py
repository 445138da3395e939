#!/usr/bin/env python
"""Idempotent seed script for permissions, roles, menu sections and the first admin.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from pos_rbac import create_app, get_db  # type: ignore
from pos_rbac.models.authz import Base, Permission, Role, RolePermission, User, MenuSection, RoleMenuAccess
import pos_rbac.models.audit  # noqa: F401  registers activity_logs
from pos_rbac.constants.permissions import (
    DEFAULT_PERMISSIONS, ROLE_PRESETS, SUPER_ADMIN_ROLE, WILDCARD_PERMISSION,
    DEFAULT_MENU_SECTIONS, CASHIER_MENU,
)


def ensure_permissions(session):
    existing = {p.name for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for category, perms in DEFAULT_PERMISSIONS.items():
        for name, description in perms:
            if name not in existing:
                session.add(Permission(name=name, description=description, category=category))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(
                name=role_name,
                description='Full access to the system' if role_name == SUPER_ADMIN_ROLE else f'{role_name} role',
                is_super_admin=role_name == SUPER_ADMIN_ROLE,
            )
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()

    all_perms = {p.name: p for p in session.execute(select(Permission)).scalars()}
    for role_name, names in ROLE_PRESETS.items():
        role = existing_roles[role_name]
        # Wildcard expands to every permission currently in the catalog
        desired = set(all_perms) if WILDCARD_PERMISSION in names else set(names)
        current = {rp.permission.name for rp in role.permissions}
        for name in sorted(desired - current):
            if name not in all_perms:
                print(f"[WARN] Missing permission referenced by role {role_name}: {name}")
                continue
            session.add(RolePermission(role=role, permission=all_perms[name]))
    return created


def ensure_menu_sections(session):
    existing = {s.section_key: s for s in session.execute(select(MenuSection)).scalars()}
    created = 0
    for key, name, icon, order in DEFAULT_MENU_SECTIONS:
        if key not in existing:
            section = MenuSection(section_key=key, section_name=name, section_icon=icon, sort_order=order, is_active=True)
            session.add(section)
            existing[key] = section
            created += 1
    session.flush()
    cashier = session.execute(select(Role).where(Role.name == 'Cashier')).scalar_one_or_none()
    if cashier and not session.execute(select(RoleMenuAccess.id).where(RoleMenuAccess.role_id == cashier.id)).first():
        for key, flags in CASHIER_MENU.items():
            session.add(RoleMenuAccess(
                role_id=cashier.id, menu_section_id=existing[key].id,
                is_visible=flags['visible'], is_priority=flags['visible'] and flags['priority'],
            ))
    return created


def ensure_initial_admin(session):
    admin_role = session.execute(select(Role).where(Role.name == SUPER_ADMIN_ROLE)).scalar_one_or_none()
    if not admin_role:
        print('[WARN] Admin role missing; skipping admin user creation')
        return
    username = os.getenv('SEED_ADMIN_USERNAME', 'admin')
    existing_admin = session.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not existing_admin:
        user = User(username=username, email=os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com'), role_id=admin_role.id, password_hash='')
        user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
        session.add(user)
        print(f"[INFO] Created initial admin user {username} with temporary password.")


def print_role_summary(session):
    rows = []
    for role in session.execute(select(Role).order_by(Role.name)).scalars().all():
        perms = sorted(rp.permission.name for rp in role.permissions)
        rows.append((role.name, len(perms), perms[:8]))
    if not rows:
        print("[INFO] No roles present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles and menu sections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('permissions'):
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            Base.metadata.create_all(engine)
        try:
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            created_s = ensure_menu_sections(session)
            ensure_initial_admin(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions: {created_p}, Roles: {created_r}, Sections: {created_s}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Roles created: {created_r}, Sections created: {created_s}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
