from rest_framework import serializers

from access.models import StaffRoleAssignment


class RoleCreateSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=100)
    code = serializers.CharField(min_length=2, max_length=20)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    permissions = serializers.ListField(child=serializers.CharField(max_length=100), required=False)
    isActive = serializers.BooleanField(required=False, default=True)

    def validate_name(self, v):
        v = (v or '').strip()
        if len(v) < 2:
            raise serializers.ValidationError('Role name must be at least 2 characters')
        return v

    def validate_code(self, v):
        return (v or '').strip().upper()


class RoleUpdateSerializer(RoleCreateSerializer):
    name = serializers.CharField(min_length=2, max_length=100, required=False)
    code = serializers.CharField(min_length=2, max_length=20, required=False)
    isActive = serializers.BooleanField(required=False)


class RoleListQuerySerializer(serializers.Serializer):
    isActive = serializers.BooleanField(required=False, allow_null=True, default=None)
    search = serializers.CharField(required=False, max_length=64)


class AssignRoleSerializer(serializers.Serializer):
    roleId = serializers.IntegerField(min_value=1)
    scope = serializers.ChoiceField(
        choices=[c for c, _ in StaffRoleAssignment.SCOPE_CHOICES],
        required=False,
        default=StaffRoleAssignment.SCOPE_GLOBAL,
    )
    scopeId = serializers.CharField(required=False, allow_null=True, allow_blank=True, max_length=64)
    conditions = serializers.JSONField(required=False, allow_null=True)
    expiresAt = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        scope = attrs.get('scope') or StaffRoleAssignment.SCOPE_GLOBAL
        if scope != StaffRoleAssignment.SCOPE_GLOBAL and not attrs.get('scopeId'):
            raise serializers.ValidationError({'scopeId': 'scopeId is required for a scoped assignment'})
        return attrs
