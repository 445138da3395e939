from pos_rbac import get_db
from pos_rbac.models.audit import ActivityLog
from tests.test_utils_seed import ensure_role, ensure_user, ensure_sections, login, manager_headers


def test_assignment_screen_and_full_replace(client):
    s = ensure_sections('dashboard', 'sales', 'reports')
    cashier = ensure_role('Cashier', ['process_sales'])
    ensure_role('Admin', is_super_admin=True)
    headers = manager_headers(client, 'assigner', ['assign_menu_roles'])

    screen = client.get(f'/menu/assignments?role_id={cashier.id}', headers=headers).get_json()
    names = [r['name'] for r in screen['roles']]
    assert 'Admin' not in names and 'Cashier' in names
    assert [sec['section_key'] for sec in screen['sections']] == ['dashboard', 'sales', 'reports']
    assert screen['assignments'] == {}

    resp = client.put(f'/menu/roles/{cashier.id}', json={'menu_assignments': {
        str(s['dashboard'].id): {'visible': True},
        str(s['sales'].id): {'visible': True, 'priority': True},
    }}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['message'] == 'Menu assignments updated successfully'

    resp = client.put(f'/menu/roles/{cashier.id}', json={'menu_assignments': {
        str(s['sales'].id): {'visible': True, 'priority': False},
    }}, headers=headers)
    assert resp.get_json()['assignments'] == {str(s['sales'].id): {'visible': True, 'priority': False}}

    ensure_user('cash1', cashier)
    mine = client.get('/menu/me', headers=login(client, 'cash1')).get_json()
    assert [m['section_key'] for m in mine['sections']] == ['sales']

    codes = [r.action_code for r in get_db().query(ActivityLog)]
    assert codes == ['MENU.ASSIGN', 'MENU.ASSIGN']


def test_assign_menu_to_admin_rejected(client):
    s = ensure_sections('dashboard')
    admin = ensure_role('Admin', is_super_admin=True)
    headers = manager_headers(client)
    resp = client.put(f'/menu/roles/{admin.id}', json={'menu_assignments': {str(s['dashboard'].id): {'visible': True}}},
                      headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['errors'] == [
        'Menu access for administrator role Admin is implicit and cannot be assigned'
    ]
    preview = client.get(f'/menu/roles/{admin.id}', headers=headers).get_json()
    assert [m['section_key'] for m in preview['sections']] == ['dashboard']


def test_section_endpoints(client):
    headers = manager_headers(client, 'sections', ['create_menu_sections', 'edit_menu_sections'])
    created = client.post('/menu/sections', json={
        'section_key': 'stock_take', 'section_name': 'Stock Take', 'section_icon': 'bi-clipboard', 'sort_order': 9,
    }, headers=headers)
    assert created.status_code == 201
    section = created.get_json()
    assert section['section_icon'] == 'bi-clipboard'

    updated = client.put(f"/menu/sections/{section['id']}", json={
        'section_key': 'stock_take', 'section_name': 'Stocktake', 'is_active': False,
    }, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()['is_active'] is False

    active = client.get('/menu/sections?active_only=1', headers=headers).get_json()
    assert active['data'] == []
    everything = client.get('/menu/sections', headers=headers).get_json()
    assert [s['section_name'] for s in everything['data']] == ['Stocktake']

    # delete needs its own permission
    assert client.delete(f"/menu/sections/{section['id']}", headers=headers).status_code == 403
    deleter = manager_headers(client, 'deleter', ['delete_menu_sections'])
    deleted = client.delete(f"/menu/sections/{section['id']}", headers=deleter)
    assert deleted.status_code == 200
    assert deleted.get_json()['status'] == 'deleted'

    codes = sorted(r.action_code for r in get_db().query(ActivityLog))
    assert codes == ['MENU.SECTION.CREATE', 'MENU.SECTION.DELETE', 'MENU.SECTION.UPDATE']
