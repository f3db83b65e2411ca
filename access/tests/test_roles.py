from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import NotFound

from access.exceptions import Conflict
from access.models import AuditEvent, Role, StaffRoleAssignment, User
from access.services import roles as role_service

pytestmark = pytest.mark.django_db


def _cached(staff):
    return User.objects.get(id=staff.user_id).permissions


def test_create_role_rejects_duplicate_name_or_code():
    role_service.create_role(name='Nurse', code='NURSE', permissions=['view_patients', 'view_patients', ' '])
    assert Role.objects.get(code='NURSE').permissions == ['view_patients']
    with pytest.raises(Conflict):
        role_service.create_role(name='Nurse', code='OTHER')
    with pytest.raises(Conflict):
        role_service.create_role(name='Other', code='NURSE')


def test_update_role_checks_uniqueness_excluding_self(make_role):
    nurse = make_role('NURSE', [], name='Nurse')
    make_role('DOCTOR', [], name='Doctor')
    # unchanged name and code of the role itself are fine
    role_service.update_role(nurse.id, name='Nurse', code='NURSE', description='ward staff')
    assert Role.objects.get(id=nurse.id).description == 'ward staff'
    with pytest.raises(Conflict):
        role_service.update_role(nurse.id, code='DOCTOR')
    with pytest.raises(NotFound):
        role_service.update_role(99999, name='x')


def test_role_permission_change_refreshes_holders(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    role_service.assign_role_to_staff(staff.id, role.id)
    assert _cached(staff) == ['view_patients']

    role_service.update_role(role.id, permissions=['view_patients', 'edit_charts'])
    assert _cached(staff) == ['edit_charts', 'view_patients']

    role_service.update_role(role.id, is_active=False)
    assert _cached(staff) == []


def test_assign_and_list_staff_roles(make_staff, make_role):
    actor = make_staff()
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    assignment = role_service.assign_role_to_staff(staff.id, role.id, assigned_by=actor)
    assert assignment.scope == StaffRoleAssignment.SCOPE_GLOBAL
    assert assignment.assigned_by_id == actor.id
    assert [a.id for a in role_service.get_staff_roles(staff.id)] == [assignment.id]
    assert AuditEvent.objects.filter(action='role_assign', object_id=assignment.id).exists()


def test_duplicate_active_assignment_conflicts(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    role_service.assign_role_to_staff(staff.id, role.id)
    with pytest.raises(Conflict):
        role_service.assign_role_to_staff(staff.id, role.id)


def test_global_scope_ignores_scope_id(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', [])
    assignment = role_service.assign_role_to_staff(staff.id, role.id, scope='GLOBAL', scope_id='ward-3')
    assert assignment.scope_id is None


def test_scoped_assignments_are_distinct(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    role_service.assign_role_to_staff(staff.id, role.id, scope='DEPARTMENT', scope_id='1')
    role_service.assign_role_to_staff(staff.id, role.id, scope='DEPARTMENT', scope_id='2')
    assert StaffRoleAssignment.objects.filter(staff_member=staff, role=role, is_active=True).count() == 2
    assert role_service.remove_role_from_staff(staff.id, role.id) == 2


def test_reassign_after_removal_reactivates_same_row(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    first = role_service.assign_role_to_staff(staff.id, role.id)
    role_service.remove_role_from_staff(staff.id, role.id)
    assert _cached(staff) == []

    again = role_service.assign_role_to_staff(staff.id, role.id)
    assert again.id == first.id
    assert StaffRoleAssignment.objects.filter(staff_member=staff, role=role).count() == 1
    assert _cached(staff) == ['view_patients']


def test_remove_without_active_assignment_is_not_found(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', [])
    with pytest.raises(NotFound):
        role_service.remove_role_from_staff(staff.id, role.id)


def test_assign_unknown_staff_or_role(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', [])
    with pytest.raises(NotFound):
        role_service.assign_role_to_staff(99999, role.id)
    with pytest.raises(NotFound):
        role_service.assign_role_to_staff(staff.id, 99999)


def test_delete_role_blocked_while_actively_assigned(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', ['view_patients'])
    role_service.assign_role_to_staff(staff.id, role.id)
    with pytest.raises(Conflict):
        role_service.delete_role(role.id)

    role_service.remove_role_from_staff(staff.id, role.id)
    role_service.delete_role(role.id)
    assert not Role.objects.filter(id=role.id).exists()
    assert not StaffRoleAssignment.objects.filter(role_id=role.id).exists()


def test_list_roles_filters_and_counts(make_staff, make_role):
    staff = make_staff()
    nurse = make_role('NURSE', [], name='Nurse')
    make_role('ARCHIVE', [], name='Archivist', is_active=False)
    role_service.assign_role_to_staff(staff.id, nurse.id)

    active = list(role_service.list_roles(is_active=True))
    assert [r.code for r in active] == ['NURSE']
    assert active[0].active_assignments == 1
    assert [r.code for r in role_service.list_roles(search='arch')] == ['ARCHIVE']


def test_role_lookup_by_code_and_stats(make_staff, make_role):
    staff = make_staff()
    role = make_role('NURSE', [])
    role_service.assign_role_to_staff(staff.id, role.id)
    assert role_service.get_role_by_code('NURSE').id == role.id
    with pytest.raises(NotFound):
        role_service.get_role_by_code('MISSING')

    stats = role_service.get_role_stats(role.id)
    assert stats['activeAssignments'] == 1
    assert stats['departmentDistribution'] == {'Cardiology': 1}


def test_cleanup_deactivates_expired_assignments(make_staff, make_role, later):
    staff = make_staff()
    night = make_role('NIGHT', ['view_reports'])
    ward = make_role('WARD', ['view_charts'])
    lapsed = role_service.assign_role_to_staff(staff.id, night.id, expires_at=later(hours=1))
    kept = role_service.assign_role_to_staff(staff.id, ward.id)
    StaffRoleAssignment.objects.filter(id=lapsed.id).update(expires_at=timezone.now() - timedelta(seconds=1))

    assert role_service.cleanup_expired_assignments() == 1
    assert role_service.cleanup_expired_assignments() == 0
    assert _cached(staff) == ['view_charts']
    assert [a.id for a in role_service.get_staff_roles(staff.id)] == [kept.id]
    assert AuditEvent.objects.filter(action='role_expire', object_id=lapsed.id).exists()

    # an expired assignment can be granted again through the usual reactivation
    again = role_service.assign_role_to_staff(staff.id, night.id)
    assert again.id == lapsed.id
    assert sorted(_cached(staff)) == ['view_charts', 'view_reports']
