import pytest
from rest_framework.exceptions import NotFound, ValidationError

from access.exceptions import Conflict
from access.models import PermissionPreset, PermissionTemplate
from access.services import templates as template_service

pytestmark = pytest.mark.django_db


@pytest.fixture
def ward_template():
    return template_service.create_template(
        name='Ward Nurse', category='clinical', permissions=['view_patients', 'edit_charts', 'view_patients'],
    )


def test_create_template_defaults_and_duplicates(ward_template):
    assert ward_template.permissions == ['view_patients', 'edit_charts']
    assert ward_template.version == '1.0.0'
    assert not ward_template.is_system
    with pytest.raises(Conflict):
        template_service.create_template(name='Ward Nurse', category='other', permissions=['x'])
    with pytest.raises(ValidationError):
        template_service.create_template(name='Empty', category='clinical', permissions=[' '])


def test_lookup_by_name_category_and_categories(ward_template):
    template_service.create_template(name='Billing Clerk', category='finance', permissions=['view_invoices'])
    template_service.create_template(name='Charge Nurse', category='clinical', permissions=['view_patients'])

    assert template_service.get_template_by_name('Ward Nurse').id == ward_template.id
    assert [t.name for t in template_service.list_templates_by_category('clinical')] == ['Charge Nurse', 'Ward Nurse']
    assert template_service.list_categories() == ['clinical', 'finance']
    with pytest.raises(NotFound):
        template_service.get_template_by_name('Surgeon')
    with pytest.raises(NotFound):
        template_service.get_template(99999)


def test_update_template_checks_name_and_system_flag(ward_template):
    other = template_service.create_template(name='Porter', category='support', permissions=['view_rota'])
    updated = template_service.update_template(ward_template.id, name='Ward Nurse', version='1.1.0',
                                               permissions=['view_patients'])
    assert updated.version == '1.1.0'
    assert updated.permissions == ['view_patients']
    with pytest.raises(Conflict):
        template_service.update_template(ward_template.id, name=other.name)

    system = template_service.create_template(name='Baseline', category='core', permissions=['view_rota'],
                                              is_system=True)
    with pytest.raises(Conflict):
        template_service.update_template(system.id, description='changed')
    with pytest.raises(Conflict):
        template_service.delete_template(system.id)


def test_delete_template_blocked_by_active_presets(ward_template):
    preset = template_service.create_preset(name='Night Ward', template_id=ward_template.id)
    with pytest.raises(Conflict):
        template_service.delete_template(ward_template.id)

    template_service.update_preset(preset.id, is_active=False)
    template_service.delete_template(ward_template.id)
    assert not PermissionTemplate.objects.filter(id=ward_template.id).exists()
    assert not PermissionPreset.objects.filter(id=preset.id).exists()


def test_preset_crud(ward_template):
    preset = template_service.create_preset(
        name='Night Ward', template_id=ward_template.id, description='night shift',
        customizations=[{'action': 'add', 'permission': 'view_reports'}],
    )
    assert preset.customizations == [{'action': 'ADD', 'permission': 'view_reports'}]
    with pytest.raises(Conflict):
        template_service.create_preset(name='Night Ward', template_id=ward_template.id)
    with pytest.raises(NotFound):
        template_service.create_preset(name='Orphan', template_id=99999)
    with pytest.raises(ValidationError):
        template_service.create_preset(name='Broken', template_id=ward_template.id,
                                       customizations=[{'action': 'SWAP', 'permission': 'x'}])

    other = template_service.create_template(name='Porter', category='support', permissions=['view_rota'])
    moved = template_service.update_preset(preset.id, template_id=other.id, name='Night Porter')
    assert moved.template_id == other.id
    assert moved.name == 'Night Porter'
    with pytest.raises(NotFound):
        template_service.update_preset(preset.id, template_id=99999)

    template_service.update_preset(preset.id, is_active=False)
    assert list(template_service.list_presets()) == []
    template_service.delete_preset(preset.id)
    with pytest.raises(NotFound):
        template_service.delete_preset(preset.id)


def test_template_listing_counts_presets(ward_template):
    template_service.create_preset(name='Day Ward', template_id=ward_template.id)
    retired = template_service.create_preset(name='Old Ward', template_id=ward_template.id)
    template_service.update_preset(retired.id, is_active=False)

    listed = template_service.get_template(ward_template.id)
    assert listed.preset_count == 2
    assert [p.name for p in listed.active_presets] == ['Day Ward']


def test_preset_permissions_apply_customizations_in_order(ward_template):
    preset = template_service.create_preset(
        name='Night Ward',
        template_id=ward_template.id,
        customizations=[
            {'action': 'ADD', 'permission': 'view_reports'},
            {'action': 'ADD', 'permission': 'view_patients'},
            {'action': 'REMOVE', 'permission': 'edit_charts'},
        ],
    )
    assert template_service.get_preset_permissions(preset.id) == ['view_patients', 'view_reports']


def test_apply_customizations_remove_then_add():
    steps = [{'action': 'REMOVE', 'permission': 'a'}, {'action': 'ADD', 'permission': 'a'}]
    assert template_service.apply_customizations(['a', 'b'], steps) == ['b', 'a']
    assert template_service.apply_customizations(['a'], []) == ['a']
