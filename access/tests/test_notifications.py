import pytest
from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from access.services.notifications import notify_permissions_changed, permissions_group
from access.services.permissions import add_user_permission


def test_notice_reaches_the_user_group():
    layer = get_channel_layer()
    channel = async_to_sync(layer.new_channel)()
    async_to_sync(layer.group_add)(permissions_group(7), channel)

    notify_permissions_changed(7, ['view_reports'])

    message = async_to_sync(layer.receive)(channel)
    assert message['type'] == 'permissions.refresh'
    assert message['userId'] == 7
    assert message['permissions'] == ['view_reports']


@pytest.mark.django_db
def test_refresh_notifies_only_after_commit(make_staff, django_capture_on_commit_callbacks, monkeypatch):
    sent = []
    monkeypatch.setattr('access.services.permissions.notify_permissions_changed',
                        lambda uid, perms: sent.append((uid, perms)))
    staff = make_staff()

    with django_capture_on_commit_callbacks(execute=False) as callbacks:
        add_user_permission(staff.user_id, 'view_reports')
    assert sent == []

    for callback in callbacks:
        callback()
    assert sent == [(staff.user_id, ['view_reports'])]
