"""
Role management views.

CRUD for roles plus the staff assignment endpoints.  Reading requires
``view_roles`` (or ``manage_roles``); every write requires
``manage_roles``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import RequirePermissions, check_permissions, get_staff_for_request
from access.serializers.roles import (
    AssignRoleSerializer,
    RoleCreateSerializer,
    RoleListQuerySerializer,
    RoleUpdateSerializer,
)
from access.services import roles as role_service

READ = ['view_roles', 'manage_roles']
WRITE = ['manage_roles']


def _serialize_role(role) -> dict:
    data = {
        'id': role.id,
        'name': role.name,
        'code': role.code,
        'description': role.description,
        'permissions': list(role.permissions or []),
        'isActive': role.is_active,
        'createdAt': role.created_at.isoformat() if role.created_at else None,
        'updatedAt': role.updated_at.isoformat() if role.updated_at else None,
    }
    if hasattr(role, 'active_assignments'):
        data['activeAssignments'] = role.active_assignments
    return data


def _serialize_assignment(a) -> dict:
    assigned_by = a.assigned_by
    return {
        'id': a.id,
        'staffMemberId': a.staff_member_id,
        'role': _serialize_role(a.role),
        'scope': a.scope,
        'scopeId': a.scope_id,
        'conditions': a.conditions,
        'isActive': a.is_active,
        'assignedAt': a.assigned_at.isoformat() if a.assigned_at else None,
        'expiresAt': a.expires_at.isoformat() if a.expires_at else None,
        'assignedBy': {
            'id': assigned_by.id,
            'employeeId': assigned_by.employee_id,
            'name': assigned_by.display_name,
        } if assigned_by else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def roles(request):
    """``GET`` lists roles (``isActive``, ``search`` filters); ``POST`` creates one."""
    if request.method == 'GET':
        check_permissions(request, READ)
        q = RoleListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        qs = role_service.list_roles(
            is_active=q.validated_data.get('isActive'),
            search=q.validated_data.get('search'),
        )
        return Response([_serialize_role(r) for r in qs])

    check_permissions(request, WRITE)
    s = RoleCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    role = role_service.create_role(
        name=vd['name'],
        code=vd['code'],
        description=vd.get('description', ''),
        permissions=vd.get('permissions'),
        is_active=vd.get('isActive', True),
    )
    return Response(_serialize_role(role), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def role_detail(request, role_id: int):
    if request.method == 'GET':
        check_permissions(request, READ)
        return Response(_serialize_role(role_service.get_role(role_id)))

    check_permissions(request, WRITE)
    if request.method == 'DELETE':
        role_service.delete_role(role_id)
        return Response({'ok': True})

    s = RoleUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    role = role_service.update_role(
        role_id,
        name=vd.get('name'),
        code=vd.get('code'),
        description=vd.get('description'),
        permissions=vd.get('permissions'),
        is_active=vd.get('isActive'),
    )
    return Response(_serialize_role(role))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def role_by_code(request, code: str):
    return Response(_serialize_role(role_service.get_role_by_code(code.upper())))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def role_stats(request, role_id: int):
    return Response(role_service.get_role_stats(role_id))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(WRITE)])
def assign_role(request, staff_id: int):
    s = AssignRoleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    assignment = role_service.assign_role_to_staff(
        staff_id,
        vd['roleId'],
        scope=vd.get('scope'),
        scope_id=vd.get('scopeId') or None,
        conditions=vd.get('conditions'),
        expires_at=vd.get('expiresAt'),
        assigned_by=get_staff_for_request(request),
    )
    return Response(_serialize_assignment(assignment), status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, RequirePermissions(WRITE)])
def remove_role(request, staff_id: int, role_id: int):
    removed_by = getattr(request.user, 'staff_member', None)
    count = role_service.remove_role_from_staff(staff_id, role_id, removed_by=removed_by)
    return Response({'ok': True, 'deactivated': count})


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def staff_roles(request, staff_id: int):
    return Response([_serialize_assignment(a) for a in role_service.get_staff_roles(staff_id)])


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(WRITE)])
def cleanup_role_assignments(request):
    count = role_service.cleanup_expired_assignments()
    return Response({'ok': True, 'expired': count})
