import json

from asgiref.sync import sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from access.models import User
from access.services.notifications import permissions_group


def _cached_permissions(user_id):
    return list(User.objects.filter(id=user_id).values_list('permissions', flat=True).first() or [])


class PermissionUpdatesConsumer(AsyncWebsocketConsumer):
    """Streams a user's refreshed permission set to their open sockets."""

    async def connect(self):
        user = self.scope.get("user") or AnonymousUser()
        if not user.is_authenticated:
            await self.close(code=4003)
            return

        self.user_id = user.id
        self.group_name = permissions_group(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        # initial snapshot so the client does not wait for the next change
        permissions = await sync_to_async(_cached_permissions)(user.id)
        await self.send(json.dumps({"type": "permissions.snapshot", "userId": user.id, "permissions": permissions}))

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def permissions_refresh(self, event):
        # event: {"type": "permissions.refresh", "userId": int, "permissions": [...], "ts": "..."}
        await self.send(json.dumps(event))
