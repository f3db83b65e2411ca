"""
Direct permission endpoints for a single user.

``GET`` returns the freshly resolved effective set next to the stored
direct list; ``POST``/``DELETE`` add or remove one direct permission.
Users may read their own permissions without ``manage_user_permissions``.
"""
from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import check_permissions
from access.services import permissions as resolution

User = get_user_model()

MANAGE = ['manage_user_permissions']


class DirectPermissionSerializer(serializers.Serializer):
    permission = serializers.CharField(max_length=100)

    def validate_permission(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('permission is required')
        return v


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def user_permissions(request, user_id: int):
    if request.method != 'GET' or request.user.id != user_id:
        check_permissions(request, MANAGE)

    if request.method == 'GET':
        user = User.objects.filter(id=user_id).only('id', 'direct_permissions').first()
        if not user:
            raise NotFound(f"User with ID '{user_id}' not found")
        effective = resolution.get_user_permissions(user_id)
        return Response({
            'userId': user_id,
            'isAdmin': effective.admin_all,
            'permissions': effective.to_list(),
            'directPermissions': list(user.direct_permissions or []),
        })

    s = DirectPermissionSerializer(data=request.data or request.query_params)
    s.is_valid(raise_exception=True)
    permission = s.validated_data['permission']
    if request.method == 'POST':
        direct = resolution.add_user_permission(user_id, permission)
    else:
        direct = resolution.remove_user_permission(user_id, permission)
    return Response({'userId': user_id, 'directPermissions': direct})
