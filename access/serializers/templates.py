from rest_framework import serializers

from access.models import PermissionPreset


class PermissionTemplateCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    category = serializers.CharField(max_length=64)
    permissions = serializers.ListField(child=serializers.CharField(max_length=100), allow_empty=False)
    isSystem = serializers.BooleanField(required=False, default=False)
    version = serializers.CharField(required=False, max_length=20, default='1.0.0')

    def validate_name(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('name is required')
        return v

    def validate_category(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('category is required')
        return v


class PermissionTemplateUpdateSerializer(PermissionTemplateCreateSerializer):
    name = serializers.CharField(max_length=100, required=False)
    category = serializers.CharField(max_length=64, required=False)
    permissions = serializers.ListField(
        child=serializers.CharField(max_length=100), allow_empty=False, required=False
    )
    isSystem = None
    version = serializers.CharField(required=False, max_length=20)


class CustomizationSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[PermissionPreset.ACTION_ADD, PermissionPreset.ACTION_REMOVE])
    permission = serializers.CharField(max_length=100)


class PermissionPresetCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(required=False, allow_blank=True, max_length=1000)
    templateId = serializers.IntegerField(min_value=1)
    customizations = CustomizationSerializer(many=True, required=False)

    def validate_name(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('name is required')
        return v


class PermissionPresetUpdateSerializer(PermissionPresetCreateSerializer):
    name = serializers.CharField(max_length=100, required=False)
    templateId = serializers.IntegerField(min_value=1, required=False)
    isActive = serializers.BooleanField(required=False)
