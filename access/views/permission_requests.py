"""
Permission request views.

Any caller holding ``create_permission_requests`` may file a request for
themselves.  Approvers vote through ``approve``/``reject``; the
requester alone may cancel.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import RequirePermissions, check_permissions
from access.serializers.requests import (
    ApproveSerializer,
    PermissionRequestCreateSerializer,
    PermissionRequestListQuerySerializer,
    PermissionRequestUpdateSerializer,
    RejectSerializer,
)
from access.services import requests as workflow

MANAGE = 'manage_permission_requests'
VIEW = ['view_permission_requests', MANAGE]
CREATE = ['create_permission_requests', MANAGE]
EDIT = ['edit_permission_requests', MANAGE]
APPROVE = ['approve_permission_requests', MANAGE]
CANCEL = ['cancel_permission_requests', MANAGE]
DELETE = ['delete_permission_requests', MANAGE]


def _serialize_request(req) -> dict:
    return {
        'id': req.id,
        'requesterId': req.requester_id,
        'requester': req.requester.username,
        'permission': req.permission,
        'reason': req.reason,
        'urgency': req.urgency,
        'status': req.status,
        'requestedAt': req.requested_at.isoformat() if req.requested_at else None,
        'expiresAt': req.expires_at.isoformat() if req.expires_at else None,
        'attachments': req.attachments,
        'metadata': req.metadata,
        'approvers': [
            {
                'id': a.id,
                'userId': a.user_id,
                'username': a.user.username,
                'role': a.role,
                'status': a.status,
                'required': a.required,
                'comments': a.comments,
                'approvedAt': a.approved_at.isoformat() if a.approved_at else None,
            }
            for a in req.approvers.all()
        ],
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def permission_requests(request):
    if request.method == 'GET':
        check_permissions(request, VIEW)
        q = PermissionRequestListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = workflow.list_requests(
            status=vd.get('status'),
            urgency=vd.get('urgency'),
            requester_id=vd.get('requesterId'),
            approver_id=vd.get('approverId'),
        )
        return Response([_serialize_request(r) for r in qs])

    check_permissions(request, CREATE)
    s = PermissionRequestCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    req = workflow.create_request(
        requester_id=request.user.id,
        permission=vd['permission'],
        reason=vd['reason'],
        urgency=vd.get('urgency'),
        expires_at=vd.get('expiresAt'),
        approver_ids=vd['approverIds'],
        attachments=vd.get('attachments'),
        metadata=vd.get('metadata'),
    )
    return Response(_serialize_request(req), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(VIEW)])
def permission_request_stats(request):
    return Response(workflow.get_stats())


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def permission_request_detail(request, request_id: int):
    if request.method == 'GET':
        check_permissions(request, VIEW)
        return Response(_serialize_request(workflow.get_request(request_id)))

    if request.method == 'DELETE':
        check_permissions(request, DELETE)
        workflow.remove_request(request_id)
        return Response({'ok': True})

    check_permissions(request, EDIT)
    s = PermissionRequestUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    req = workflow.update_request(
        request_id,
        reason=vd.get('reason'),
        urgency=vd.get('urgency'),
        expires_at=vd.get('expiresAt'),
    )
    return Response(_serialize_request(req))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(APPROVE)])
def approve_permission_request(request, request_id: int):
    s = ApproveSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = workflow.approve(
        request_id,
        request.user.id,
        status=s.validated_data['status'],
        comments=s.validated_data.get('comments', ''),
    )
    return Response(_serialize_request(req))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(APPROVE)])
def reject_permission_request(request, request_id: int):
    s = RejectSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    req = workflow.reject(request_id, request.user.id, s.validated_data.get('reason', ''))
    return Response(_serialize_request(req))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions(CANCEL)])
def cancel_permission_request(request, request_id: int):
    return Response(_serialize_request(workflow.cancel_request(request_id, request.user.id)))


@api_view(['POST'])
@permission_classes([IsAuthenticated, RequirePermissions([MANAGE])])
def cleanup_permission_requests(request):
    count = workflow.cleanup_expired_requests()
    return Response({'ok': True, 'expired': count})
