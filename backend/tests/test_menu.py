import pytest
from pos_rbac import get_db
from pos_rbac.errors import ValidationError, NotFoundError
from pos_rbac.models.authz import RoleMenuAccess, MenuSection
from pos_rbac.models.audit import ActivityLog
from pos_rbac.services import menu
from tests.test_utils_seed import ensure_role, ensure_sections, actor


def test_normalize_menu_access_clears_priority_when_hidden():
    access, errors = menu.normalize_menu_access({
        '1': {'visible': True, 'priority': True},
        '2': {'visible': False, 'priority': True},
        3: {'visible': 'on'},
        '4': {},
    })
    assert errors == []
    assert access == {1: (True, True), 2: (False, False), 3: (True, False), 4: (False, False)}


def test_normalize_menu_access_rejects_bad_keys():
    access, errors = menu.normalize_menu_access({'sales': {'visible': True}})
    assert access == {}
    assert errors == ["Invalid menu section id: 'sales'"]
    assert menu.normalize_menu_access(None) == ({}, [])


def test_assign_menu_is_full_replace():
    s = ensure_sections('dashboard', 'sales', 'reports')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(), role.id, {
        s['dashboard'].id: {'visible': True},
        s['sales'].id: {'visible': True, 'priority': True},
    })
    result = menu.assign_menu(actor(), role.id, {str(s['reports'].id): {'visible': True}})
    assert result == {s['reports'].id: {'visible': True, 'priority': False}}
    rows = get_db().query(RoleMenuAccess).filter_by(role_id=role.id).all()
    assert [r.menu_section_id for r in rows] == [s['reports'].id]
    assert [sec['section_key'] for sec in menu.effective_menu(role)] == ['reports']


def test_assign_menu_empty_hides_everything():
    s = ensure_sections('dashboard')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(), role.id, {s['dashboard'].id: {'visible': True}})
    assert menu.assign_menu(actor(), role.id, {}) == {}
    assert menu.effective_menu(role) == []


def test_assign_menu_activity_row():
    s = ensure_sections('dashboard', 'sales')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(5), role.id, {s['dashboard'].id: {'visible': True}, s['sales'].id: {'visible': False}})
    log = get_db().query(ActivityLog).filter_by(action_code='MENU.ASSIGN').one()
    assert log.user_id == 5
    assert log.action == "Updated menu access for role 'Cashier'"
    assert log.details['sections_count'] == 2
    assert log.details['visible_sections'] == [s['dashboard'].id]


def test_assign_menu_rejects_super_admin_and_bad_input():
    s = ensure_sections('dashboard')
    admin = ensure_role('Admin', is_super_admin=True)
    with pytest.raises(ValidationError):
        menu.assign_menu(actor(), admin.id, {s['dashboard'].id: {'visible': True}})
    role = ensure_role('Cashier')
    with pytest.raises(ValidationError) as exc:
        menu.assign_menu(actor(), role.id, {9999: {'visible': True}})
    assert exc.value.errors == ['Some selected menu sections are invalid']
    with pytest.raises(NotFoundError):
        menu.assign_menu(actor(), 9999, {})
    assert get_db().query(RoleMenuAccess).count() == 0


def test_effective_menu_order_visibility_and_priority():
    s = ensure_sections('dashboard', 'sales', 'inventory', 'reports')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(), role.id, {
        s['reports'].id: {'visible': True},
        s['sales'].id: {'visible': True, 'priority': True},
        s['inventory'].id: {'visible': False},
    })
    items = menu.effective_menu(role)
    assert [i['section_key'] for i in items] == ['sales', 'reports']
    assert [i['is_priority'] for i in items] == [True, False]
    assert menu.is_section_visible(role, 'sales')
    assert not menu.is_section_visible(role, 'inventory')
    # no row at all means hidden
    assert not menu.is_section_visible(role, 'dashboard')


def test_effective_menu_skips_inactive_sections():
    s = ensure_sections('dashboard', 'sales')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(), role.id, {s['dashboard'].id: {'visible': True}, s['sales'].id: {'visible': True}})
    menu.update_section(s['sales'].id, {'section_key': 'sales', 'section_name': 'Sales', 'is_active': False})
    assert [i['section_key'] for i in menu.effective_menu(role)] == ['dashboard']


def test_super_admin_sees_all_active_sections():
    ensure_sections('dashboard', 'sales', 'admin')
    admin = ensure_role('Admin', is_super_admin=True)
    assert [i['section_key'] for i in menu.effective_menu(admin)] == ['dashboard', 'sales', 'admin']
    assert menu.effective_menu(None) == []


def test_assignable_roles_excludes_admins():
    ensure_role('Admin', is_super_admin=True)
    ensure_role('Administrator')
    ensure_role('Cashier')
    assert [r.name for r in menu.assignable_roles()] == ['Cashier']


def test_section_crud():
    section = menu.create_section({'section_key': 'stock_take', 'section_name': 'Stock Take', 'sort_order': '7'})
    assert section.sort_order == 7
    assert section.is_active
    with pytest.raises(ValidationError) as exc:
        menu.create_section({'section_key': 'stock_take', 'section_name': 'Again'})
    assert exc.value.errors == ['A section with this key already exists']
    with pytest.raises(ValidationError) as exc:
        menu.create_section({'section_key': 'Bad-Key', 'section_name': ''})
    assert exc.value.errors == [
        'Section key must contain only lowercase letters and underscores',
        'Section name is required',
    ]
    updated = menu.update_section(section.id, {'section_key': 'stock_take', 'section_name': 'Stocktake'})
    assert updated.section_name == 'Stocktake'


def test_delete_section_removes_access_rows():
    s = ensure_sections('dashboard', 'sales')
    role = ensure_role('Cashier')
    menu.assign_menu(actor(), role.id, {s['dashboard'].id: {'visible': True}, s['sales'].id: {'visible': True}})
    snapshot = menu.delete_section(s['sales'].id)
    assert snapshot['section_key'] == 'sales'
    session = get_db()
    assert session.query(MenuSection).count() == 1
    assert [r.menu_section_id for r in session.query(RoleMenuAccess).filter_by(role_id=role.id)] == [s['dashboard'].id]
    with pytest.raises(NotFoundError):
        menu.get_section(s['sales'].id)
