"""
Temporary permission views.

Granting needs ``grant_temporary_permissions``; modifying, extending,
revoking, deleting and the cleanup sweep need
``manage_temporary_permissions``.  The acting staff member is taken from
the authenticated user, and the ledger re-checks the actor's permissions
itself.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import RequirePermissions, check_permissions, get_staff_for_request
from access.serializers.temporary import (
    TemporaryPermissionCreateSerializer,
    TemporaryPermissionExtendSerializer,
    TemporaryPermissionListQuerySerializer,
    TemporaryPermissionRevokeSerializer,
    TemporaryPermissionUpdateSerializer,
)
from access.services import temporary as ledger

VIEW = ['view_temporary_permissions', 'manage_temporary_permissions']
GRANT = ['grant_temporary_permissions']
MANAGE = ['manage_temporary_permissions']

RECENT_AUDIT_ENTRIES = 5


def _serialize_audit(entry) -> dict:
    return {
        'id': entry.id,
        'action': entry.action,
        'performedBy': entry.performed_by,
        'reason': entry.reason,
        'timestamp': entry.timestamp.isoformat() if entry.timestamp else None,
        'metadata': entry.metadata,
    }


def _serialize_grant(grant, audit_limit=None) -> dict:
    trail = sorted(grant.audit_trail.all(), key=lambda e: (e.timestamp, e.id), reverse=True)
    if audit_limit:
        trail = trail[:audit_limit]
    granted_by = grant.granted_by
    return {
        'id': grant.id,
        'userId': grant.user_id,
        'username': grant.user.username,
        'permission': grant.permission,
        'grantedBy': {
            'id': granted_by.id,
            'employeeId': granted_by.employee_id,
            'name': granted_by.display_name,
        } if granted_by else None,
        'grantedAt': grant.granted_at.isoformat() if grant.granted_at else None,
        'expiresAt': grant.expires_at.isoformat() if grant.expires_at else None,
        'reason': grant.reason,
        'isActive': grant.is_active,
        'isExpired': grant.is_expired,
        'auditTrail': [_serialize_audit(e) for e in trail],
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def temporary_permissions(request):
    """``GET`` lists grants with their latest audit entries; ``POST`` issues a grant."""
    if request.method == 'GET':
        check_permissions(request, VIEW)
        q = TemporaryPermissionListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = ledger.list_temporary_permissions(
            user_id=vd.get('userId'),
            permission=vd.get('permission'),
            is_active=vd.get('isActive'),
            granted_by=vd.get('grantedBy'),
        ).prefetch_related('audit_trail')
        return Response([_serialize_grant(g, RECENT_AUDIT_ENTRIES) for g in qs])

    check_permissions(request, GRANT)
    s = TemporaryPermissionCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    grant = ledger.create_temporary_permission(
        user_id=vd['userId'],
        permission=vd['permission'],
        expires_at=vd['expiresAt'],
        reason=vd['reason'],
        granted_by_staff_id=get_staff_for_request(request).id,
    )
    return Response(_serialize_grant(ledger.get_temporary_permission(grant.id)), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_temporary_permissions(request, user_id: int):
    """Active grants of one user, soonest expiry first.  Users may read their own."""
    if request.user.id != user_id:
        check_permissions(request, VIEW)
    qs = ledger.active_permissions_for_user(user_id).select_related('user').prefetch_related('audit_trail')
    return Response([_serialize_grant(g, RECENT_AUDIT_ENTRIES) for g in qs])


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def temporary_permission_detail(request, permission_id: int):
    if request.method == 'GET':
        check_permissions(request, VIEW)
        return Response(_serialize_grant(ledger.get_temporary_permission(permission_id)))

    check_permissions(request, MANAGE)
    staff = get_staff_for_request(request)
    if request.method == 'DELETE':
        ledger.delete_temporary_permission(permission_id, staff_id=staff.id)
        return Response({'ok': True})

    s = TemporaryPermissionUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    ledger.update_temporary_permission(
        permission_id,
        staff_id=staff.id,
        reason=vd.get('reason') or None,
        is_active=vd.get('isActive'),
    )
    return Response(_serialize_grant(ledger.get_temporary_permission(permission_id)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, RequirePermissions(MANAGE)])
def extend_temporary_permission(request, permission_id: int):
    s = TemporaryPermissionExtendSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ledger.extend_temporary_permission(
        permission_id,
        new_expires_at=s.validated_data['newExpiresAt'],
        reason=s.validated_data['reason'],
        staff_id=get_staff_for_request(request).id,
    )
    return Response(_serialize_grant(ledger.get_temporary_permission(permission_id)))


@api_view(['PATCH'])
@permission_classes([IsAuthenticated, RequirePermissions(MANAGE)])
def revoke_temporary_permission(request, permission_id: int):
    s = TemporaryPermissionRevokeSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ledger.revoke_temporary_permission(
        permission_id,
        reason=s.validated_data['reason'],
        staff_id=get_staff_for_request(request).id,
    )
    return Response(_serialize_grant(ledger.get_temporary_permission(permission_id)))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(MANAGE)])
def cleanup_temporary_permissions(request):
    count = ledger.cleanup_expired_permissions()
    return Response({'ok': True, 'cleaned': count})
