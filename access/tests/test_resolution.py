from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound

from access.models import StaffRoleAssignment, TemporaryPermission, User
from access.services.permissions import (
    add_user_permission,
    get_user_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    refresh_user_permissions,
    remove_user_permission,
    set_user_permissions,
    users_with_any_permission,
    users_with_permission,
)

pytestmark = pytest.mark.django_db


def _assign(staff, role, **kwargs):
    return StaffRoleAssignment.objects.create(staff_member=staff, role=role, **kwargs)


def test_effective_set_is_union_of_roles_direct_and_temporary(make_staff, make_role, later):
    staff = make_staff(direct=['view_reports'])
    _assign(staff, make_role('NURSE', ['view_patients', 'edit_charts']))
    TemporaryPermission.objects.create(user=staff.user, permission='export_data', expires_at=later(), reason='audit')

    perms = get_user_permissions(staff.user_id)
    assert perms.to_list() == ['edit_charts', 'export_data', 'view_patients', 'view_reports']
    assert has_permission(staff.user_id, 'export_data')
    assert has_any_permission(staff.user_id, ['nope', 'edit_charts'])
    assert not has_all_permissions(staff.user_id, ['edit_charts', 'nope'])


def test_admin_in_any_source_grants_everything(make_staff, make_role):
    staff = make_staff()
    _assign(staff, make_role('ADMIN', ['admin', 'view_patients']))
    perms = get_user_permissions(staff.user_id)
    assert perms.admin_all
    assert perms.to_list() == ['admin']
    assert has_permission(staff.user_id, 'delete_everything')


def test_unknown_user_has_no_permissions():
    assert not get_user_permissions(987654)
    assert not has_permission(987654, 'view_reports')
    assert refresh_user_permissions(987654) is None


def test_inactive_expired_and_disabled_sources_do_not_count(make_staff, make_role):
    staff = make_staff()
    now = timezone.now()
    _assign(staff, make_role('OLD', ['old_perm']), is_active=False)
    _assign(staff, make_role('LAPSED', ['lapsed_perm']), expires_at=now - timedelta(minutes=1))
    _assign(staff, make_role('OFF', ['off_perm'], is_active=False))
    TemporaryPermission.objects.create(user=staff.user, permission='tmp_expired',
                                       expires_at=now - timedelta(seconds=1), reason='x')
    TemporaryPermission.objects.create(user=staff.user, permission='tmp_revoked',
                                       expires_at=now + timedelta(days=1), reason='x', is_active=False)
    assert not get_user_permissions(staff.user_id)


def test_refresh_persists_cache(make_staff, make_role):
    staff = make_staff()
    _assign(staff, make_role('CLERK', ['view_reports']))
    assert User.objects.get(id=staff.user_id).permissions == []

    result = refresh_user_permissions(staff.user_id)
    user = User.objects.get(id=staff.user_id)
    assert result.to_list() == ['view_reports']
    assert user.permissions == ['view_reports']
    assert user.permissions_refreshed_at is not None


def test_direct_permission_edits_are_idempotent(make_staff):
    staff = make_staff()
    uid = staff.user_id
    assert add_user_permission(uid, 'view_reports') == ['view_reports']
    assert add_user_permission(uid, 'view_reports') == ['view_reports']
    assert User.objects.get(id=uid).permissions == ['view_reports']

    assert remove_user_permission(uid, 'view_reports') == []
    assert remove_user_permission(uid, 'view_reports') == []
    assert User.objects.get(id=uid).permissions == []


def test_direct_permission_edit_on_unknown_user():
    with pytest.raises(NotFound):
        add_user_permission(424242, 'x')
    with pytest.raises(NotFound):
        remove_user_permission(424242, 'x')


def test_removing_direct_permission_keeps_role_grant(make_staff, make_role):
    staff = make_staff(direct=['view_reports'])
    _assign(staff, make_role('CLERK', ['view_reports']))
    remove_user_permission(staff.user_id, 'view_reports')
    assert User.objects.get(id=staff.user_id).permissions == ['view_reports']


def test_set_user_permissions_replaces_list(make_staff):
    staff = make_staff(direct=['a'])
    assert set_user_permissions(staff.user_id, ['b', 'c', 'b', '']) == ['b', 'c']
    assert User.objects.get(id=staff.user_id).permissions == ['b', 'c']


def test_users_with_permission_uses_cached_sets(make_staff):
    reader = make_staff(direct=['view_reports'])
    admin = make_staff(direct=['admin'])
    other = make_staff(direct=['other'])
    ids = users_with_permission('view_reports')
    assert reader.user_id in ids
    assert admin.user_id in ids
    assert other.user_id not in ids
    assert set(users_with_any_permission(['other', 'nothing'])) == {admin.user_id, other.user_id}
