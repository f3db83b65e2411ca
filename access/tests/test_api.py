"""
Integration tests for the permission API.

These exercise the HTTP surface end to end: the capability guard, the
error envelope, role assignment, temporary grants, the request workflow
and direct permission edits.  Callers are authenticated with
``force_authenticate`` after their cached permission set is refreshed.
"""
from datetime import timedelta

from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from ..models import Department, Role, StaffMember, StaffRoleAssignment, TemporaryPermission, User
from ..services.permissions import refresh_user_permissions


class PermissionAPITests(APITestCase):
    def setUp(self) -> None:
        self.department = Department.objects.create(name='Cardiology', code='CARD')
        self.manager = self._staff('manager', [
            'manage_roles', 'grant_temporary_permissions', 'manage_temporary_permissions',
            'view_temporary_permissions', 'manage_user_permissions', 'view_permission_analytics',
        ])
        self.approver = self._staff('approver', ['approve_permission_requests', 'view_permission_requests'])
        self.nurse = self._staff('nurse', ['create_permission_requests', 'cancel_permission_requests'])
        self.client = APIClient()

    def _staff(self, username, direct):
        user = User.objects.create_user(username=username, password='P@ssw0rd1', direct_permissions=direct)
        staff = StaffMember.objects.create(user=user, employee_id=f'E-{username}', department=self.department)
        refresh_user_permissions(user.id)
        return staff

    def authenticate(self, staff) -> None:
        user = User.objects.get(id=staff.user_id)
        self.client.force_authenticate(user=user)

    def test_unauthenticated_request_is_rejected(self) -> None:
        resp = self.client.get('/api/roles')
        self.assertIn(resp.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_guard_denies_missing_permission_with_error_envelope(self) -> None:
        self.authenticate(self.nurse)
        resp = self.client.post('/api/roles', {'name': 'Doctor', 'code': 'doc'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(resp.data['ok'])
        self.assertIn('manage_roles', str(resp.data['error']['message']))

    def test_role_crud_and_conflict(self) -> None:
        self.authenticate(self.manager)
        resp = self.client.post('/api/roles', {'name': 'Doctor', 'code': 'doc', 'permissions': ['view_patients']}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['code'], 'DOC')
        role_id = resp.data['id']

        dup = self.client.post('/api/roles', {'name': 'Doctor', 'code': 'DOC2'}, format='json')
        self.assertEqual(dup.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(dup.data['error']['code'], 'conflict')

        listed = self.client.get('/api/roles')
        self.assertEqual([r['code'] for r in listed.data], ['DOC'])
        self.assertEqual(self.client.get('/api/roles/code/doc').data['id'], role_id)

        patched = self.client.patch(f'/api/roles/{role_id}', {'description': 'Attending physicians'}, format='json')
        self.assertEqual(patched.status_code, status.HTTP_200_OK)
        self.assertEqual(patched.data['description'], 'Attending physicians')

        self.assertEqual(self.client.delete(f'/api/roles/{role_id}').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get(f'/api/roles/{role_id}').status_code, status.HTTP_404_NOT_FOUND)

    def test_assign_role_updates_cached_permissions(self) -> None:
        role = Role.objects.create(name='Ward Nurse', code='WARD', permissions=['view_patients'])
        self.authenticate(self.manager)
        resp = self.client.post(f'/api/roles/staff/{self.nurse.id}/assign', {'roleId': role.id}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['assignedBy']['id'], self.manager.id)
        self.assertIn('view_patients', User.objects.get(id=self.nurse.user_id).permissions)

        again = self.client.post(f'/api/roles/staff/{self.nurse.id}/assign', {'roleId': role.id}, format='json')
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)

        blocked = self.client.delete(f'/api/roles/{role.id}')
        self.assertEqual(blocked.status_code, status.HTTP_409_CONFLICT)

        removed = self.client.delete(f'/api/roles/staff/{self.nurse.id}/roles/{role.id}')
        self.assertEqual(removed.data['deactivated'], 1)
        self.assertNotIn('view_patients', User.objects.get(id=self.nurse.user_id).permissions)

    def test_expired_assignment_stops_passing_the_guard_after_cleanup(self) -> None:
        role = Role.objects.create(name='Analytics Reader', code='READER', permissions=['view_permission_analytics'])
        self.authenticate(self.manager)
        self.client.post(f'/api/roles/staff/{self.nurse.id}/assign',
                         {'roleId': role.id, 'expiresAt': (timezone.now() + timedelta(hours=1)).isoformat()},
                         format='json')
        StaffRoleAssignment.objects.filter(staff_member=self.nurse).update(
            expires_at=timezone.now() - timedelta(minutes=1))

        self.authenticate(self.nurse)
        self.assertEqual(self.client.get('/api/permission-analytics/risk-assessment').status_code,
                         status.HTTP_200_OK)
        self.assertEqual(self.client.post('/api/roles/cleanup').status_code, status.HTTP_403_FORBIDDEN)

        self.authenticate(self.manager)
        cleanup = self.client.post('/api/roles/cleanup')
        self.assertEqual(cleanup.data['expired'], 1)

        self.authenticate(self.nurse)
        self.assertEqual(self.client.get('/api/permission-analytics/risk-assessment').status_code,
                         status.HTTP_403_FORBIDDEN)

    def test_scoped_assignment_requires_scope_id(self) -> None:
        role = Role.objects.create(name='Ward Nurse', code='WARD', permissions=[])
        self.authenticate(self.manager)
        resp = self.client.post(f'/api/roles/staff/{self.nurse.id}/assign',
                                {'roleId': role.id, 'scope': 'DEPARTMENT'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_temporary_permission_lifecycle(self) -> None:
        self.authenticate(self.manager)
        expires = (timezone.now() + timedelta(days=2)).isoformat()
        resp = self.client.post('/api/temporary-permissions', {
            'userId': self.nurse.user_id,
            'permission': 'view_reports',
            'expiresAt': expires,
            'reason': '<b>covering</b> night shift',
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        grant_id = resp.data['id']
        self.assertEqual(resp.data['reason'], 'covering night shift')
        self.assertEqual(resp.data['grantedBy']['id'], self.manager.id)
        self.assertEqual([e['action'] for e in resp.data['auditTrail']], ['GRANTED'])

        dup = self.client.post('/api/temporary-permissions', {
            'userId': self.nurse.user_id, 'permission': 'view_reports', 'expiresAt': expires, 'reason': 'again',
        }, format='json')
        self.assertEqual(dup.status_code, status.HTTP_409_CONFLICT)

        later = (timezone.now() + timedelta(days=5)).isoformat()
        extended = self.client.patch(f'/api/temporary-permissions/{grant_id}/extend',
                                     {'newExpiresAt': later, 'reason': 'shift extended'}, format='json')
        self.assertEqual(extended.status_code, status.HTTP_200_OK)

        revoked = self.client.patch(f'/api/temporary-permissions/{grant_id}/revoke', {'reason': 'done'}, format='json')
        self.assertFalse(revoked.data['isActive'])
        self.assertEqual([e['action'] for e in revoked.data['auditTrail']], ['REVOKED', 'EXTENDED', 'GRANTED'])
        self.assertEqual(User.objects.get(id=self.nurse.user_id).permissions,
                         ['cancel_permission_requests', 'create_permission_requests'])

        cleanup = self.client.post('/api/temporary-permissions/cleanup')
        self.assertEqual(cleanup.data['cleaned'], 0)

    def test_user_reads_own_active_grants(self) -> None:
        TemporaryPermission.objects.create(user=self.nurse.user, permission='view_reports',
                                           expires_at=timezone.now() + timedelta(hours=3), reason='r')
        self.authenticate(self.nurse)
        own = self.client.get(f'/api/temporary-permissions/user/{self.nurse.user_id}')
        self.assertEqual([g['permission'] for g in own.data], ['view_reports'])
        other = self.client.get(f'/api/temporary-permissions/user/{self.manager.user_id}')
        self.assertEqual(other.status_code, status.HTTP_403_FORBIDDEN)

    def test_request_workflow_end_to_end(self) -> None:
        self.authenticate(self.nurse)
        resp = self.client.post('/api/permission-requests', {
            'permission': 'view_reports',
            'reason': '<i>monthly</i> audit',
            'urgency': 'HIGH',
            'approverIds': [self.approver.user_id],
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['reason'], 'monthly audit')
        request_id = resp.data['id']
        self.assertEqual(resp.data['requesterId'], self.nurse.user_id)
        self.assertEqual(resp.data['approvers'][0]['status'], 'PENDING')

        # the requester cannot vote
        self.assertEqual(self.client.post(f'/api/permission-requests/{request_id}/approve').status_code,
                         status.HTTP_403_FORBIDDEN)

        self.authenticate(self.approver)
        approved = self.client.post(f'/api/permission-requests/{request_id}/approve',
                                    {'comments': 'fine'}, format='json')
        self.assertEqual(approved.status_code, status.HTTP_200_OK)
        self.assertEqual(approved.data['status'], 'APPROVED')
        self.assertTrue(TemporaryPermission.objects.filter(user_id=self.nurse.user_id, permission='view_reports').exists())
        self.assertIn('view_reports', User.objects.get(id=self.nurse.user_id).permissions)

        again = self.client.post(f'/api/permission-requests/{request_id}/reject', {'reason': 'late'}, format='json')
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)

        stats = self.client.get('/api/permission-requests/stats')
        self.assertEqual(stats.data['approved'], 1)

    def test_requester_cancels_pending_request(self) -> None:
        self.authenticate(self.nurse)
        resp = self.client.post('/api/permission-requests', {
            'permission': 'view_reports', 'reason': 'audit', 'approverIds': [self.approver.user_id],
        }, format='json')
        cancelled = self.client.post(f"/api/permission-requests/{resp.data['id']}/cancel")
        self.assertEqual(cancelled.data['status'], 'CANCELLED')

    def test_request_to_unqualified_approver_is_forbidden(self) -> None:
        self.authenticate(self.nurse)
        resp = self.client.post('/api/permission-requests', {
            'permission': 'view_reports', 'reason': 'audit', 'approverIds': [self.manager.user_id],
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_direct_permission_endpoints(self) -> None:
        self.authenticate(self.manager)
        url = f'/api/users/{self.nurse.user_id}/permissions'
        added = self.client.post(url, {'permission': 'view_reports'}, format='json')
        self.assertIn('view_reports', added.data['directPermissions'])

        self.authenticate(self.nurse)
        own = self.client.get(url)
        self.assertIn('view_reports', own.data['permissions'])
        self.assertEqual(self.client.post(url, {'permission': 'admin'}, format='json').status_code,
                         status.HTTP_403_FORBIDDEN)

        self.authenticate(self.manager)
        removed = self.client.delete(url, {'permission': 'view_reports'}, format='json')
        self.assertNotIn('view_reports', removed.data['directPermissions'])
        self.assertEqual(self.client.get('/api/users/999999/permissions').status_code, status.HTTP_404_NOT_FOUND)

    def test_permission_templates_and_presets(self) -> None:
        editor = self._staff('editor', ['manage_permission_templates'])
        self.authenticate(editor)
        resp = self.client.post('/api/permission-templates', {
            'name': 'Ward Nurse', 'category': 'clinical', 'permissions': ['view_patients', 'edit_charts'],
        }, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        template_id = resp.data['id']
        self.assertEqual(resp.data['version'], '1.0.0')
        self.assertEqual(self.client.post('/api/permission-templates', {
            'name': 'Empty', 'category': 'clinical', 'permissions': [],
        }, format='json').status_code, status.HTTP_400_BAD_REQUEST)

        preset = self.client.post('/api/permission-templates/presets', {
            'name': 'Night Ward',
            'templateId': template_id,
            'customizations': [
                {'action': 'ADD', 'permission': 'view_reports'},
                {'action': 'REMOVE', 'permission': 'edit_charts'},
            ],
        }, format='json')
        self.assertEqual(preset.status_code, status.HTTP_201_CREATED)
        preset_id = preset.data['id']

        effective = self.client.get(f'/api/permission-templates/presets/{preset_id}/permissions')
        self.assertEqual(effective.data, ['view_patients', 'view_reports'])
        self.assertEqual(self.client.get('/api/permission-templates/categories').data, ['clinical'])
        by_name = self.client.get('/api/permission-templates/name/Ward%20Nurse')
        self.assertEqual(by_name.data['presets'], [{'id': preset_id, 'name': 'Night Ward', 'description': ''}])
        self.assertEqual(len(self.client.get('/api/permission-templates/category/clinical').data), 1)

        blocked = self.client.delete(f'/api/permission-templates/{template_id}')
        self.assertEqual(blocked.status_code, status.HTTP_409_CONFLICT)
        self.client.delete(f'/api/permission-templates/presets/{preset_id}')
        self.assertEqual(self.client.delete(f'/api/permission-templates/{template_id}').status_code,
                         status.HTTP_200_OK)

        self.authenticate(self.nurse)
        self.assertEqual(self.client.get('/api/permission-templates').status_code, status.HTTP_403_FORBIDDEN)

    def test_analytics_dashboard(self) -> None:
        self.authenticate(self.manager)
        resp = self.client.get('/api/permission-analytics/dashboard')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIn('summary', resp.data)
        self.assertEqual(self.client.get('/api/permission-analytics/system-usage?days=0').status_code,
                         status.HTTP_400_BAD_REQUEST)

        self.authenticate(self.nurse)
        self.assertEqual(self.client.get('/api/permission-analytics/risk-assessment').status_code,
                         status.HTTP_403_FORBIDDEN)

    def test_login_returns_tokens_and_permissions(self) -> None:
        client = APIClient()
        resp = client.post('/api/auth/login', {'username': 'nurse', 'password': 'P@ssw0rd1'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data['token'])
        self.assertTrue(resp.data['jwt_access'])
        self.assertEqual(resp.data['user']['staffId'], self.nurse.id)
        self.assertEqual(resp.data['permissions'], ['cancel_permission_requests', 'create_permission_requests'])

        client.credentials(HTTP_AUTHORIZATION=f"Token {resp.data['token']}")
        self.assertEqual(client.get(f'/api/users/{self.nurse.user_id}/permissions').status_code, status.HTTP_200_OK)

        bad = APIClient().post('/api/auth/login', {'username': 'nurse', 'password': 'wrong'}, format='json')
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(bad.data['ok'])

    def test_healthz(self) -> None:
        resp = self.client.get('/healthz')
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()['ok'])
