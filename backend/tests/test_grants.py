import pytest
from sqlalchemy import update
from pos_rbac import get_db
from pos_rbac.errors import ValidationError, NotFoundError
from pos_rbac.models.authz import Permission, RolePermission
from pos_rbac.models.audit import ActivityLog
from pos_rbac.services import grants
from tests.test_utils_seed import ensure_permissions, ensure_role, granted_names, actor


def _codes():
    return [r.action_code for r in get_db().query(ActivityLog).order_by(ActivityLog.id)]


def test_toggle_permission_flips_state():
    perm = ensure_permissions(['process_sales'], category='Sales')['process_sales']
    role = ensure_role('Cashier')
    for n in range(1, 6):
        result = grants.toggle_permission(actor(), role.id, perm.id)
        # odd number of toggles ends granted, even ends revoked
        assert result['granted'] is (n % 2 == 1)
        assert grants.has_grant(role.id, perm.id) is (n % 2 == 1)
    assert _codes() == ['ROLE.PERM.GRANT', 'ROLE.PERM.REVOKE'] * 2 + ['ROLE.PERM.GRANT']


def test_toggle_permission_messages_and_activity():
    perm = ensure_permissions(['process_sales'], category='Sales')['process_sales']
    role = ensure_role('Cashier')
    assert grants.toggle_permission(actor(3), role.id, perm.id) == {'granted': True, 'message': 'Permission granted'}
    assert grants.toggle_permission(actor(3), role.id, str(perm.id)) == {'granted': False, 'message': 'Permission revoked'}
    logs = get_db().query(ActivityLog).order_by(ActivityLog.id).all()
    assert logs[0].action == "Granted permission 'process_sales' for role 'Cashier'"
    assert logs[1].action == "Revoked permission 'process_sales' for role 'Cashier'"
    assert logs[1].details['action'] == 'revoked'
    assert all(log.user_id == 3 for log in logs)


def test_toggle_leaves_other_grants_alone():
    perms = ensure_permissions(['perm_a', 'perm_b'])
    role = ensure_role('Mixed', ['perm_a'])
    grants.toggle_permission(actor(), role.id, perms['perm_b'].id)
    assert granted_names(role.id) == {'perm_a', 'perm_b'}
    grants.toggle_permission(actor(), role.id, perms['perm_a'].id)
    assert granted_names(role.id) == {'perm_b'}


@pytest.mark.parametrize('bad_id', ['abc', None, 0, -4])
def test_toggle_permission_invalid_id(bad_id):
    role = ensure_role('Cashier')
    with pytest.raises(ValidationError) as exc:
        grants.toggle_permission(actor(), role.id, bad_id)
    assert exc.value.message == 'Invalid permission ID'


def test_toggle_permission_missing_targets():
    perm = ensure_permissions(['perm_a'])['perm_a']
    role = ensure_role('Cashier')
    with pytest.raises(NotFoundError) as exc:
        grants.toggle_permission(actor(), role.id, 9999)
    assert exc.value.message == 'Permission not found'
    with pytest.raises(NotFoundError) as exc:
        grants.toggle_permission(actor(), 9999, perm.id)
    assert exc.value.message == 'Role not found'
    assert _codes() == []


def test_set_grant_is_idempotent():
    perm = ensure_permissions(['perm_a'])['perm_a']
    role = ensure_role('Cashier')
    first = grants.set_grant(actor(), role.id, perm.id, True)
    second = grants.set_grant(actor(), role.id, perm.id, True)
    assert first['changed'] and not first['previous']
    assert not second['changed'] and second['previous']
    assert get_db().query(RolePermission).filter_by(role_id=role.id).count() == 1
    assert _codes() == ['ROLE.PERM.GRANT']
    grants.set_grant(actor(), role.id, perm.id, False)
    grants.set_grant(actor(), role.id, perm.id, False)
    assert not grants.has_grant(role.id, perm.id)
    assert _codes() == ['ROLE.PERM.GRANT', 'ROLE.PERM.REVOKE']


def test_toggle_category_all_or_nothing():
    ensure_permissions(['manage_sales', 'process_sales'], category='Sales')
    ensure_permissions(['manage_products'], category='Inventory')
    role = ensure_role('Cashier', ['manage_products'])

    granted = grants.toggle_category(actor(), role.id, 'Sales')
    assert granted == {'granted': True, 'permissions_count': 2, 'message': 'All permissions in category granted'}
    assert granted_names(role.id) == {'manage_products', 'manage_sales', 'process_sales'}

    revoked = grants.toggle_category(actor(), role.id, 'Sales')
    assert revoked['granted'] is False
    assert granted_names(role.id) == {'manage_products'}

    # from empty it grants again, never a no-op
    assert grants.toggle_category(actor(), role.id, 'Sales')['granted'] is True
    assert granted_names(role.id) == {'manage_products', 'manage_sales', 'process_sales'}
    assert _codes() == ['ROLE.CATEGORY.GRANT', 'ROLE.CATEGORY.REVOKE', 'ROLE.CATEGORY.GRANT']


def test_toggle_category_partial_becomes_full():
    perms = ensure_permissions(['manage_sales', 'process_sales'], category='Sales')
    role = ensure_role('Cashier')
    grants.toggle_permission(actor(), role.id, perms['process_sales'].id)
    result = grants.toggle_category(actor(), role.id, 'Sales')
    assert result['granted'] is True
    assert granted_names(role.id) == {'manage_sales', 'process_sales'}
    assert get_db().query(RolePermission).filter_by(role_id=role.id).count() == 2
    log = get_db().query(ActivityLog).filter_by(action_code='ROLE.CATEGORY.GRANT').one()
    assert log.action == "Granted all permissions in category 'Sales'"
    assert log.details['permissions_count'] == 2


def test_toggle_category_errors():
    ensure_permissions(['perm_a'], category='Sales')
    role = ensure_role('Cashier')
    with pytest.raises(ValidationError) as exc:
        grants.toggle_category(actor(), role.id, '  ')
    assert exc.value.message == 'Invalid category'
    with pytest.raises(NotFoundError) as exc:
        grants.toggle_category(actor(), role.id, 'Nope')
    assert exc.value.message == 'No permissions found in this category'
    with pytest.raises(NotFoundError):
        grants.toggle_category(actor(), 9999, 'Sales')


def test_null_category_counts_as_general():
    perm = ensure_permissions(['legacy_perm'])['legacy_perm']
    session = get_db()
    session.execute(update(Permission).where(Permission.id == perm.id).values(category=None))
    session.commit()
    role = ensure_role('Cashier')
    assert grants.category_permission_ids('General') == [perm.id]
    grants.toggle_category(actor(), role.id, 'General')
    assert granted_names(role.id) == {'legacy_perm'}


def test_set_category_grant():
    ensure_permissions(['manage_sales', 'process_sales'], category='Sales')
    role = ensure_role('Cashier')
    first = grants.set_category_grant(actor(), role.id, 'Sales', True)
    again = grants.set_category_grant(actor(), role.id, 'Sales', True)
    assert first['changed'] and not again['changed']
    assert again['previous_count'] == 2
    grants.set_category_grant(actor(), role.id, 'Sales', False)
    assert granted_names(role.id) == set()
    assert _codes() == ['ROLE.CATEGORY.GRANT', 'ROLE.CATEGORY.REVOKE']
