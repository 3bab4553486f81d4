from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TransactionTestCase
from rest_framework_simplejwt.tokens import AccessToken

from chat.models import Room, UserRoom
from chat.services import ConversationService, MessageService

from .consumers import CONNECTIONS
from .hub import ChannelLayerHub, build_message, room_group, user_group
from .middleware import JwtAuthMiddleware, token_from_scope
from .routing import websocket_urlpatterns

User = get_user_model()

application = JwtAuthMiddleware(URLRouter(websocket_urlpatterns))


class TokenFromScopeTests(SimpleTestCase):
    def test_header_wins_over_query(self):
        scope = {
            "headers": [(b"authorization", b"Bearer header-token")],
            "query_string": b"token=query-token",
        }
        self.assertEqual(token_from_scope(scope), "header-token")

    def test_query_string_fallback(self):
        self.assertEqual(token_from_scope({"query_string": b"token=abc"}), "abc")
        self.assertIsNone(token_from_scope({"query_string": b""}))

    def test_build_message_passes_payload_through(self):
        message = build_message("ice_candidate_received", "candidate:1 udp", exclude="chan")
        self.assertEqual(message["type"], "realtime.event")
        self.assertEqual(message["data"], "candidate:1 udp")
        self.assertEqual(message["exclude"], "chan")
        self.assertIsNone(message["group"])


class RealtimeConsumerTests(TransactionTestCase):
    def setUp(self):
        CONNECTIONS.clear()
        async_to_sync(get_channel_layer().flush)()
        self.alice = User.objects.create_user("alice.a", "alice@example.com", "Secret#123", full_name="Alice")
        self.bob = User.objects.create_user("bobby.b", "bob@example.com", "Secret#123", full_name="Bob")
        self.carol = User.objects.create_user("carol.c", "carol@example.com", "Secret#123", full_name="Carol")
        self.room = Room.objects.create(is_group=False, private_key=f"{self.alice.pk}:{self.bob.pk}")
        UserRoom.objects.create(user=self.alice, room=self.room)
        UserRoom.objects.create(user=self.bob, room=self.room)

    async def connect(self, user):
        token = str(AccessToken.for_user(user))
        communicator = WebsocketCommunicator(application, f"/ws/?token={token}")
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        return communicator

    async def drain(self, communicator):
        while not await communicator.receive_nothing(timeout=0.5):
            await communicator.receive_json_from()

    async def join(self, communicator, room_id):
        await communicator.send_json_to({"event": "join_room", "data": room_id})
        return await communicator.receive_json_from()

    async def test_anonymous_connection_rejected(self):
        communicator = WebsocketCommunicator(application, "/ws/")
        connected, code = await communicator.connect()
        self.assertFalse(connected)
        self.assertEqual(code, 4401)

        communicator = WebsocketCommunicator(application, "/ws/?token=not-a-jwt")
        connected, _ = await communicator.connect()
        self.assertFalse(connected)

    async def test_presence_tracks_first_and_last_connection(self):
        alice = await self.connect(self.alice)
        bob = await self.connect(self.bob)

        event = await alice.receive_json_from()
        self.assertEqual(event, {"event": "user_status_change",
                                 "data": {"userId": self.bob.pk, "isOnline": True}})
        bob_online = await database_sync_to_async(
            lambda: User.objects.get(pk=self.bob.pk).is_online
        )()
        self.assertTrue(bob_online)

        await bob.disconnect()
        event = await alice.receive_json_from()
        self.assertEqual(event["event"], "user_status_change")
        self.assertFalse(event["data"]["isOnline"])
        self.assertIn("lastSeen", event["data"])
        await alice.disconnect()

    async def test_ping_pong(self):
        alice = await self.connect(self.alice)
        await alice.send_json_to({"event": "ping"})
        reply = await alice.receive_json_from()
        self.assertEqual(reply["event"], "pong")
        await alice.disconnect()

    async def test_join_room_requires_membership(self):
        carol = await self.connect(self.carol)
        await carol.send_json_to({"event": "join_room", "data": {"roomId": self.room.pk}})
        self.assertTrue(await carol.receive_nothing(timeout=0.2))

        alice = await self.connect(self.alice)
        await self.drain(carol)
        ack = await self.join(alice, self.room.pk)
        self.assertEqual(ack, {"event": "room_joined", "data": {"roomId": self.room.pk}})
        await alice.disconnect()
        await carol.disconnect()

    async def test_send_message_relays_to_room_except_sender(self):
        alice = await self.connect(self.alice)
        bob = await self.connect(self.bob)
        await self.drain(alice)
        await self.join(alice, self.room.pk)
        await self.join(bob, self.room.pk)

        await alice.send_json_to({
            "event": "send_message",
            "data": {"roomId": self.room.pk, "messageData": {"id": 7, "content": "hi"}},
        })
        relayed = await bob.receive_json_from()
        self.assertEqual(relayed["event"], "receive_message")
        self.assertEqual(relayed["data"], {"id": 7, "content": "hi", "roomId": self.room.pk})
        self.assertTrue(await alice.receive_nothing(timeout=0.2))

        await alice.send_json_to({"event": "typing", "data": {"roomId": self.room.pk, "value": True}})
        typing = await bob.receive_json_from()
        self.assertEqual(typing["data"], {"roomId": self.room.pk, "userId": self.alice.pk, "value": True})

        await alice.disconnect()
        await bob.disconnect()

    async def test_call_signaling_reaches_only_target(self):
        alice = await self.connect(self.alice)
        bob = await self.connect(self.bob)
        carol = await self.connect(self.carol)
        for communicator in (alice, bob, carol):
            await self.drain(communicator)

        await alice.send_json_to({
            "event": "call_user",
            "data": {"userToCall": self.bob.pk, "signalData": {"sdp": "offer"}, "name": "Alice"},
        })
        incoming = await bob.receive_json_from()
        self.assertEqual(incoming["event"], "call_incoming")
        self.assertEqual(incoming["data"]["fromUser"], self.alice.pk)
        self.assertEqual(incoming["data"]["signalData"], {"sdp": "offer"})
        self.assertTrue(await carol.receive_nothing(timeout=0.2))

        await bob.send_json_to({"event": "answer_call", "data": {"to": self.alice.pk, "signal": {"sdp": "answer"}}})
        accepted = await alice.receive_json_from()
        self.assertEqual(accepted["event"], "call_accepted")
        self.assertEqual(accepted["data"]["signal"], {"sdp": "answer"})
        self.assertEqual(accepted["data"]["fromUser"], self.bob.pk)

        await bob.send_json_to({"event": "ice_candidate", "data": {"to": self.alice.pk, "candidate": "cand-1"}})
        ice = await alice.receive_json_from()
        self.assertEqual(ice, {"event": "ice_candidate_received", "data": "cand-1"})

        await alice.send_json_to({"event": "end_call", "data": {"to": self.bob.pk}})
        ended = await bob.receive_json_from()
        self.assertEqual(ended, {"event": "call_ended", "data": {"fromUser": self.alice.pk}})

        for communicator in (alice, bob, carol):
            await communicator.disconnect()

    async def test_hub_events_reach_personal_and_room_groups(self):
        alice = await self.connect(self.alice)
        await self.join(alice, self.room.pk)
        hub = ChannelLayerHub(get_channel_layer())

        await hub.apublish("new_notification", user_group(self.alice.pk), {"id": 1})
        self.assertEqual(await alice.receive_json_from(), {"event": "new_notification", "data": {"id": 1}})

        await hub.apublish("message_deleted", room_group(self.room.pk), {"messageId": 3, "roomId": self.room.pk})
        event = await alice.receive_json_from()
        self.assertEqual(event["event"], "message_deleted")
        await alice.disconnect()

    def make_group(self):
        group = Room.objects.create(is_group=True, name="Trio", created_by=self.alice)
        for user in (self.alice, self.bob, self.carol):
            UserRoom.objects.create(user=user, room=group)
        return group

    async def test_removed_member_stops_receiving_room_events(self):
        group = await database_sync_to_async(self.make_group)()
        hub = ChannelLayerHub(get_channel_layer())
        carol = await self.connect(self.carol)
        await self.join(carol, group.pk)

        remove = database_sync_to_async(ConversationService(hub).remove_member)
        await remove(self.alice, group.pk, self.carol.pk)
        self.assertEqual(await carol.receive_json_from(),
                         {"event": "conversation_deleted", "data": {"roomId": group.pk}})

        send = database_sync_to_async(MessageService(hub).send_message)
        await send(self.alice, group.pk, "after removal")
        await hub.apublish("typing", room_group(group.pk), {"roomId": group.pk, "userId": self.alice.pk})
        self.assertTrue(await carol.receive_nothing(timeout=0.3))
        await carol.disconnect()

    async def test_leaving_group_drops_every_socket_of_the_user(self):
        group = await database_sync_to_async(self.make_group)()
        hub = ChannelLayerHub(get_channel_layer())
        phone = await self.connect(self.bob)
        laptop = await self.connect(self.bob)
        for communicator in (phone, laptop):
            await self.join(communicator, group.pk)

        await database_sync_to_async(ConversationService(hub).leave_group)(self.bob, group.pk)
        for communicator in (phone, laptop):
            event = await communicator.receive_json_from()
            self.assertEqual(event["event"], "conversation_deleted")

        await hub.apublish("messages_read", room_group(group.pk), {"roomId": group.pk, "userId": self.alice.pk})
        for communicator in (phone, laptop):
            self.assertTrue(await communicator.receive_nothing(timeout=0.3))
            await communicator.disconnect()
