import bleach
from rest_framework import serializers

from access.models import PermissionApprover, PermissionRequest


def _clean(v):
    return bleach.clean((v or '').strip(), tags=set(), strip=True)


class PermissionRequestCreateSerializer(serializers.Serializer):
    permission = serializers.CharField(max_length=100)
    reason = serializers.CharField(max_length=1000)
    urgency = serializers.ChoiceField(
        choices=[c for c, _ in PermissionRequest.URGENCY_CHOICES],
        required=False,
        default=PermissionRequest.URGENCY_NORMAL,
    )
    expiresAt = serializers.DateTimeField(required=False, allow_null=True)
    approverIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    attachments = serializers.JSONField(required=False, allow_null=True)
    metadata = serializers.JSONField(required=False, allow_null=True)

    def validate_reason(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('reason is required')
        return v


class PermissionRequestUpdateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, max_length=1000)
    urgency = serializers.ChoiceField(choices=[c for c, _ in PermissionRequest.URGENCY_CHOICES], required=False)
    expiresAt = serializers.DateTimeField(required=False)

    def validate_reason(self, v):
        return _clean(v)


class ApproveSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[PermissionApprover.STATUS_APPROVED, PermissionApprover.STATUS_REJECTED],
        required=False,
        default=PermissionApprover.STATUS_APPROVED,
    )
    comments = serializers.CharField(required=False, allow_blank=True, max_length=1000)

    def validate_comments(self, v):
        return _clean(v)


class RejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)

    def validate_reason(self, v):
        return _clean(v)


class PermissionRequestListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in PermissionRequest.STATUS_CHOICES], required=False)
    urgency = serializers.ChoiceField(choices=[c for c, _ in PermissionRequest.URGENCY_CHOICES], required=False)
    requesterId = serializers.IntegerField(min_value=1, required=False)
    approverId = serializers.IntegerField(min_value=1, required=False)
