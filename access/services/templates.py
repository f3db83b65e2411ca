"""
Permission templates and presets.

A template is a named, categorised permission bundle; a preset points at
one template and layers ``ADD``/``REMOVE`` customisations on top of it.
System templates are read-only.  A template can only be deleted once it
has no active presets; inactive presets are removed together with it.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from django.db import transaction
from django.db.models import Count, Prefetch
from rest_framework.exceptions import NotFound, ValidationError

from access.exceptions import Conflict
from access.models import PermissionPreset, PermissionTemplate

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = ('name', 'description', 'category', 'permissions', 'version')
PRESET_FIELDS = ('name', 'description', 'customizations', 'is_active')


def _clean_permissions(perms: Optional[Iterable[str]]) -> list:
    cleaned = list(dict.fromkeys(p.strip() for p in (perms or []) if p and p.strip()))
    if not cleaned:
        raise ValidationError({'permissions': 'Permissions must be a non-empty array'})
    return cleaned


def _clean_customizations(customizations) -> list:
    cleaned = []
    for c in customizations or []:
        action = (c.get('action') or '').upper()
        permission = (c.get('permission') or '').strip()
        if action not in (PermissionPreset.ACTION_ADD, PermissionPreset.ACTION_REMOVE) or not permission:
            raise ValidationError({'customizations': 'Each customization needs an ADD or REMOVE action and a permission'})
        cleaned.append({'action': action, 'permission': permission})
    return cleaned


def apply_customizations(base: Iterable[str], customizations) -> List[str]:
    """Apply ADD/REMOVE steps in order; template order is kept, additions go last."""
    result = list(base or [])
    for c in customizations or []:
        permission = c.get('permission')
        if c.get('action') == PermissionPreset.ACTION_ADD and permission not in result:
            result.append(permission)
        elif c.get('action') == PermissionPreset.ACTION_REMOVE:
            result = [p for p in result if p != permission]
    return result


def _templates():
    return PermissionTemplate.objects.annotate(preset_count=Count('presets')).prefetch_related(
        Prefetch('presets', queryset=PermissionPreset.objects.filter(is_active=True).order_by('-created_at', '-id'),
                 to_attr='active_presets')
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

@transaction.atomic
def create_template(*, name: str, category: str, permissions, description: str = '',
                    is_system: bool = False, version: str = '1.0.0') -> PermissionTemplate:
    permissions = _clean_permissions(permissions)
    if PermissionTemplate.objects.filter(name=name).exists():
        raise Conflict(f"Template with name '{name}' already exists")
    template = PermissionTemplate.objects.create(
        name=name,
        description=description or '',
        category=category,
        permissions=permissions,
        is_system=is_system,
        version=version or '1.0.0',
    )
    logger.info('permission template %s (%s) created in %s', template.name, template.id, template.category)
    return template


def list_templates():
    return _templates().order_by('-created_at', '-id')


def list_templates_by_category(category: str):
    return _templates().filter(category=category).order_by('name')


def get_template(template_id) -> PermissionTemplate:
    template = _templates().filter(id=template_id).first()
    if not template:
        raise NotFound(f"Permission template with ID '{template_id}' not found")
    return template


def get_template_by_name(name: str) -> PermissionTemplate:
    template = _templates().filter(name=name).first()
    if not template:
        raise NotFound(f"Permission template with name '{name}' not found")
    return template


def list_categories() -> List[str]:
    return list(
        PermissionTemplate.objects.order_by('category').values_list('category', flat=True).distinct()
    )


@transaction.atomic
def update_template(template_id, **changes) -> PermissionTemplate:
    template = PermissionTemplate.objects.select_for_update().filter(id=template_id).first()
    if not template:
        raise NotFound(f"Permission template with ID '{template_id}' not found")
    if template.is_system:
        raise Conflict('System templates cannot be modified')

    name = changes.get('name')
    if name and name != template.name and PermissionTemplate.objects.filter(name=name).exists():
        raise Conflict(f"Template with name '{name}' already exists")

    update_fields = []
    for f in TEMPLATE_FIELDS:
        if changes.get(f) is None:
            continue
        value = _clean_permissions(changes[f]) if f == 'permissions' else changes[f]
        setattr(template, f, value)
        update_fields.append(f)
    if update_fields:
        template.save(update_fields=update_fields + ['updated_at'])
        logger.info('permission template %s updated: %s', template.id, ', '.join(update_fields))
    return get_template(template.id)


@transaction.atomic
def delete_template(template_id) -> None:
    template = PermissionTemplate.objects.select_for_update().filter(id=template_id).first()
    if not template:
        raise NotFound(f"Permission template with ID '{template_id}' not found")
    if template.is_system:
        raise Conflict('System templates cannot be deleted')
    active = template.presets.filter(is_active=True).count()
    if active:
        raise Conflict(f'Cannot delete template. It has {active} active presets. Delete presets first.')
    template.presets.all().delete()
    template.delete()
    logger.info('permission template %s deleted', template_id)


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

def _presets():
    return PermissionPreset.objects.select_related('template')


@transaction.atomic
def create_preset(*, name: str, template_id, description: str = '', customizations=None) -> PermissionPreset:
    if not PermissionTemplate.objects.filter(id=template_id).exists():
        raise NotFound(f"Permission template with ID '{template_id}' not found")
    if PermissionPreset.objects.filter(name=name).exists():
        raise Conflict(f"Preset with name '{name}' already exists")
    preset = PermissionPreset.objects.create(
        name=name,
        description=description or '',
        template_id=template_id,
        customizations=_clean_customizations(customizations),
    )
    logger.info('permission preset %s (%s) created on template %s', preset.name, preset.id, template_id)
    return get_preset(preset.id)


def list_presets():
    return _presets().filter(is_active=True).order_by('-created_at', '-id')


def get_preset(preset_id) -> PermissionPreset:
    preset = _presets().filter(id=preset_id).first()
    if not preset:
        raise NotFound(f"Permission preset with ID '{preset_id}' not found")
    return preset


@transaction.atomic
def update_preset(preset_id, *, template_id=None, **changes) -> PermissionPreset:
    preset = PermissionPreset.objects.select_for_update().filter(id=preset_id).first()
    if not preset:
        raise NotFound(f"Permission preset with ID '{preset_id}' not found")

    name = changes.get('name')
    if name and name != preset.name and PermissionPreset.objects.filter(name=name).exists():
        raise Conflict(f"Preset with name '{name}' already exists")

    update_fields = []
    if template_id and template_id != preset.template_id:
        if not PermissionTemplate.objects.filter(id=template_id).exists():
            raise NotFound(f"Permission template with ID '{template_id}' not found")
        preset.template_id = template_id
        update_fields.append('template')
    for f in PRESET_FIELDS:
        if changes.get(f) is None:
            continue
        value = _clean_customizations(changes[f]) if f == 'customizations' else changes[f]
        setattr(preset, f, value)
        update_fields.append(f)
    if update_fields:
        preset.save(update_fields=update_fields + ['updated_at'])
        logger.info('permission preset %s updated: %s', preset.id, ', '.join(update_fields))
    return get_preset(preset.id)


@transaction.atomic
def delete_preset(preset_id) -> None:
    deleted, _ = PermissionPreset.objects.filter(id=preset_id).delete()
    if not deleted:
        raise NotFound(f"Permission preset with ID '{preset_id}' not found")
    logger.info('permission preset %s deleted', preset_id)


def get_preset_permissions(preset_id) -> List[str]:
    """Template permissions with the preset's customisations applied."""
    preset = get_preset(preset_id)
    return apply_customizations(preset.template.permissions, preset.customizations)
