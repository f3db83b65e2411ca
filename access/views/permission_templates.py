"""
Permission template and preset views.

Reading needs ``view_permission_templates`` (or
``manage_permission_templates``); every write needs
``manage_permission_templates``.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access.permissions import RequirePermissions, check_permissions
from access.serializers.templates import (
    PermissionPresetCreateSerializer,
    PermissionPresetUpdateSerializer,
    PermissionTemplateCreateSerializer,
    PermissionTemplateUpdateSerializer,
)
from access.services import templates as template_service

READ = ['view_permission_templates', 'manage_permission_templates']
WRITE = ['manage_permission_templates']


def _serialize_template(t) -> dict:
    return {
        'id': t.id,
        'name': t.name,
        'description': t.description,
        'category': t.category,
        'permissions': list(t.permissions or []),
        'isSystem': t.is_system,
        'version': t.version,
        'createdAt': t.created_at.isoformat() if t.created_at else None,
        'updatedAt': t.updated_at.isoformat() if t.updated_at else None,
        'presets': [
            {'id': p.id, 'name': p.name, 'description': p.description}
            for p in getattr(t, 'active_presets', [])
        ],
        'presetCount': getattr(t, 'preset_count', None),
    }


def _serialize_preset(p) -> dict:
    t = p.template
    return {
        'id': p.id,
        'name': p.name,
        'description': p.description,
        'templateId': p.template_id,
        'template': {'id': t.id, 'name': t.name, 'category': t.category, 'permissions': list(t.permissions or [])},
        'customizations': list(p.customizations or []),
        'isActive': p.is_active,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def permission_templates(request):
    if request.method == 'GET':
        check_permissions(request, READ)
        return Response([_serialize_template(t) for t in template_service.list_templates()])

    check_permissions(request, WRITE)
    s = PermissionTemplateCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    template = template_service.create_template(
        name=vd['name'],
        category=vd['category'],
        permissions=vd['permissions'],
        description=vd.get('description', ''),
        is_system=vd.get('isSystem', False),
        version=vd.get('version'),
    )
    return Response(_serialize_template(template_service.get_template(template.id)), status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def template_categories(request):
    return Response(template_service.list_categories())


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def templates_by_category(request, category: str):
    return Response([_serialize_template(t) for t in template_service.list_templates_by_category(category)])


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def template_by_name(request, name: str):
    return Response(_serialize_template(template_service.get_template_by_name(name)))


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def template_detail(request, template_id: int):
    if request.method == 'GET':
        check_permissions(request, READ)
        return Response(_serialize_template(template_service.get_template(template_id)))

    check_permissions(request, WRITE)
    if request.method == 'DELETE':
        template_service.delete_template(template_id)
        return Response({'ok': True})

    s = PermissionTemplateUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    template = template_service.update_template(
        template_id,
        name=vd.get('name'),
        description=vd.get('description'),
        category=vd.get('category'),
        permissions=vd.get('permissions'),
        version=vd.get('version'),
    )
    return Response(_serialize_template(template))


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def permission_presets(request):
    if request.method == 'GET':
        check_permissions(request, READ)
        return Response([_serialize_preset(p) for p in template_service.list_presets()])

    check_permissions(request, WRITE)
    s = PermissionPresetCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    preset = template_service.create_preset(
        name=vd['name'],
        template_id=vd['templateId'],
        description=vd.get('description', ''),
        customizations=vd.get('customizations'),
    )
    return Response(_serialize_preset(preset), status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def preset_detail(request, preset_id: int):
    if request.method == 'GET':
        check_permissions(request, READ)
        return Response(_serialize_preset(template_service.get_preset(preset_id)))

    check_permissions(request, WRITE)
    if request.method == 'DELETE':
        template_service.delete_preset(preset_id)
        return Response({'ok': True})

    s = PermissionPresetUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    preset = template_service.update_preset(
        preset_id,
        template_id=vd.get('templateId'),
        name=vd.get('name'),
        description=vd.get('description'),
        customizations=vd.get('customizations'),
        is_active=vd.get('isActive'),
    )
    return Response(_serialize_preset(preset))


@api_view(['GET'])
@permission_classes([IsAuthenticated, RequirePermissions(READ)])
def preset_permissions(request, preset_id: int):
    """Effective permission list of a preset: its template with the customisations applied."""
    return Response(template_service.get_preset_permissions(preset_id))
