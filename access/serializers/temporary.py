import bleach
from rest_framework import serializers


def _clean(v):
    return bleach.clean((v or '').strip(), tags=set(), strip=True)


class TemporaryPermissionCreateSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1)
    permission = serializers.CharField(max_length=100)
    expiresAt = serializers.DateTimeField()
    reason = serializers.CharField(max_length=1000)

    def validate_permission(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('permission is required')
        return v

    def validate_reason(self, v):
        v = _clean(v)
        if not v:
            raise serializers.ValidationError('reason is required')
        return v


class TemporaryPermissionUpdateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    isActive = serializers.BooleanField(required=False, allow_null=True, default=None)

    def validate_reason(self, v):
        return _clean(v)


class TemporaryPermissionExtendSerializer(serializers.Serializer):
    newExpiresAt = serializers.DateTimeField()
    reason = serializers.CharField(max_length=1000)

    def validate_reason(self, v):
        return _clean(v)


class TemporaryPermissionRevokeSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=1000)

    def validate_reason(self, v):
        return _clean(v)


class TemporaryPermissionListQuerySerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1, required=False)
    permission = serializers.CharField(max_length=100, required=False)
    isActive = serializers.BooleanField(required=False, allow_null=True, default=None)
    grantedBy = serializers.IntegerField(min_value=1, required=False)
