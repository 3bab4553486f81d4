from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.utils import timezone
from rest_framework.test import APIClient, APIRequestFactory, APITestCase

from notifications.models import PushSubscription
from notifications.push import PushResult
from realtime.hub import set_hub
from realtime.testing import RecordingHub

from .models import Message, MessageDeletion, Room, UserRoom
from .services import ConversationService, MessageService, build_private_key

User = get_user_model()


class FakeUploader:
    def upload(self, file, room_id):
        return f"/media/chat/{room_id}/clip.png", Message.MEDIA_IMAGE


class FakePush:
    """Push adapter that records deliveries instead of calling a push service."""

    def __init__(self, result=PushResult.SENT):
        self.result = result
        self.sent = []

    def is_configured(self):
        return True

    def send(self, subscription, payload):
        self.sent.append((subscription.user_id, payload))
        return self.result


class ChatTestCase(APITestCase):
    def setUp(self):
        self.hub = RecordingHub()
        set_hub(self.hub)
        self.alice = User.objects.create_user("alice.a", "alice@example.com", "Secret#123", full_name="Alice")
        self.bob = User.objects.create_user("bobby.b", "bob@example.com", "Secret#123", full_name="Bob")
        self.carol = User.objects.create_user("carol.c", "carol@example.com", "Secret#123", full_name="Carol")
        self.client = APIClient()
        self.client.force_authenticate(self.alice)

    def tearDown(self):
        set_hub(None)

    def direct_room(self, a, b):
        room, _ = ConversationService(self.hub).start_conversation(a, b.pk)
        return room

    def as_user(self, user):
        self.client.force_authenticate(user)
        return self.client


class ConversationTests(ChatTestCase):
    def test_start_is_idempotent_per_pair(self):
        res = self.client.post("/api/chat/conversation/start", {"targetUserId": self.bob.pk}, format="json")
        self.assertEqual(res.status_code, 201)
        room_id = res.data["id"]
        self.assertFalse(res.data["isGroup"])
        self.assertEqual(res.data["otherMember"]["id"], self.bob.pk)

        res = self.client.post("/api/chat/conversation/start", {"targetUserId": self.bob.pk}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["id"], room_id)

        # the other side gets the same room
        res = self.as_user(self.bob).post("/api/chat/conversation/start",
                                          {"targetUserId": self.alice.pk}, format="json")
        self.assertEqual(res.data["id"], room_id)

        self.assertEqual(Room.objects.count(), 1)
        room = Room.objects.get()
        self.assertEqual(room.private_key, build_private_key(self.bob.pk, self.alice.pk))
        self.assertEqual(UserRoom.objects.filter(room=room).count(), 2)

    def test_start_with_self_or_unknown_user(self):
        res = self.client.post("/api/chat/conversation/start", {"targetUserId": self.alice.pk}, format="json")
        self.assertEqual(res.status_code, 400)
        res = self.client.post("/api/chat/conversation/start", {"targetUserId": 99999}, format="json")
        self.assertEqual(res.status_code, 404)
        self.assertFalse(Room.objects.exists())

    def test_list_orders_by_activity_with_unread_counts(self):
        quiet = self.direct_room(self.alice, self.carol)
        busy = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        service.send_message(self.bob, busy.pk, "one")
        service.send_message(self.bob, busy.pk, "two")
        service.send_message(self.alice, busy.pk, "mine")

        res = self.client.get("/api/chat/conversations")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([c["id"] for c in res.data], [busy.pk, quiet.pk])
        self.assertEqual(res.data[0]["unreadCount"], 2)
        self.assertEqual(res.data[0]["lastMessage"]["content"], "mine")
        self.assertEqual(res.data[1]["unreadCount"], 0)
        self.assertIsNone(res.data[1]["lastMessage"])

    def test_start_existing_room_reports_unread_and_last_message(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        service.send_message(self.bob, room.pk, "are you there?")
        service.send_message(self.bob, room.pk, "hello?")

        res = self.client.post("/api/chat/conversation/start", {"targetUserId": self.bob.pk}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["id"], room.pk)
        self.assertEqual(res.data["unreadCount"], 2)
        self.assertEqual(res.data["lastMessage"]["content"], "hello?")
        self.assertFalse(res.data["isMuted"])

    def test_concurrent_start_returns_the_winning_room(self):
        key = build_private_key(self.alice.pk, self.bob.pk)
        rival = Room.objects.create(is_group=False, private_key=key)
        UserRoom.objects.create(user=self.bob, room=rival)
        UserRoom.objects.create(user=self.alice, room=rival)

        real_find = ConversationService._find_direct
        calls = []

        def lost_race(service, me, target, private_key):
            # the first lookup runs before the rival insert lands
            calls.append(private_key)
            return None if len(calls) == 1 else real_find(service, me, target, private_key)

        with mock.patch.object(ConversationService, "_find_direct", autospec=True, side_effect=lost_race):
            room, created = ConversationService(self.hub).start_conversation(self.alice, self.bob.pk)

        self.assertEqual(len(calls), 2)
        self.assertFalse(created)
        self.assertEqual(room.pk, rival.pk)
        self.assertEqual(Room.objects.count(), 1)

    def test_messages_deleted_for_me_leave_unread_and_last_message(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        service.send_message(self.bob, room.pk, "first")
        latest = service.send_message(self.bob, room.pk, "second")
        service.delete_message(self.alice, latest.pk, "me")

        (entry,) = self.client.get("/api/chat/conversations").data
        self.assertEqual(entry["unreadCount"], 1)
        self.assertEqual(entry["lastMessage"]["content"], "first")

        # the sender still sees it
        (entry,) = self.as_user(self.bob).get("/api/chat/conversations").data
        self.assertEqual(entry["lastMessage"]["content"], "second")

    def test_unread_counts_messages_after_mark_read(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        conversations = ConversationService(self.hub)
        service.send_message(self.bob, room.pk, "one")
        service.mark_read(self.alice, room.pk)
        self.assertEqual(conversations.unread_count(self.alice, room.pk), 0)

        service.send_message(self.bob, room.pk, "two")
        self.assertEqual(conversations.unread_count(self.alice, room.pk), 1)
        (entry,) = self.client.get("/api/chat/conversations").data
        self.assertEqual(entry["unreadCount"], 1)

    def test_delete_conversation_notifies_former_members(self):
        room = self.direct_room(self.alice, self.bob)
        MessageService(self.hub, push=FakePush()).send_message(self.bob, room.pk, "hi")
        self.hub.clear()

        res = self.client.delete(f"/api/chat/conversation/{room.pk}")
        self.assertEqual(res.status_code, 204)
        self.assertFalse(Room.objects.filter(pk=room.pk).exists())
        self.assertFalse(Message.objects.exists())
        self.assertEqual(sorted(self.hub.targets("conversation_deleted")),
                         sorted([f"user_{self.alice.pk}", f"user_{self.bob.pk}"]))

    def test_non_member_cannot_touch_room(self):
        room = self.direct_room(self.alice, self.bob)
        client = self.as_user(self.carol)
        self.assertEqual(client.get(f"/api/chat/{room.pk}/messages").status_code, 403)
        self.assertEqual(client.post(f"/api/chat/{room.pk}/messages", {"content": "x"}, format="json").status_code, 403)
        self.assertEqual(client.delete(f"/api/chat/conversation/{room.pk}").status_code, 403)
        self.assertEqual(client.get("/api/chat/424242/messages").status_code, 404)

    def test_mute_suppresses_push_but_not_alert(self):
        room = self.direct_room(self.alice, self.bob)
        PushSubscription.objects.create(user=self.bob, endpoint="https://push.example/bob",
                                        keys={"p256dh": "k", "auth": "a"})

        res = self.as_user(self.bob).put(f"/api/chat/conversation/{room.pk}/mute", {"muted": True}, format="json")
        self.assertEqual(res.data, {"roomId": room.pk, "muted": True})

        push = FakePush()
        with self.captureOnCommitCallbacks(execute=True):
            MessageService(self.hub, push=push).send_message(self.alice, room.pk, "quiet please")
        self.assertEqual(push.sent, [])
        self.assertEqual(self.hub.targets("new_message_alert"), [f"user_{self.bob.pk}"])

        UserRoom.objects.filter(room=room, user=self.bob).update(is_muted=False)
        with self.captureOnCommitCallbacks(execute=True):
            MessageService(self.hub, push=push).send_message(self.alice, room.pk, "hello again")
        self.assertEqual(len(push.sent), 1)
        user_id, payload = push.sent[0]
        self.assertEqual(user_id, self.bob.pk)
        self.assertEqual(payload["title"], "Alice")
        self.assertEqual(payload["roomId"], room.pk)


class MessageTests(ChatTestCase):
    def test_send_message_fans_out(self):
        room = self.direct_room(self.alice, self.bob)
        res = self.client.post(f"/api/chat/{room.pk}/messages", {"content": "  hello  "}, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["content"], "hello")
        self.assertEqual(res.data["senderId"], self.alice.pk)
        self.assertFalse(res.data["isRead"])

        received = self.hub.named("receive_message")
        self.assertEqual(len(received), 1)
        self.assertEqual(received[0][0], f"room_{room.pk}")
        self.assertEqual(received[0][1]["id"], res.data["id"])
        self.assertEqual(self.hub.named("new_message_alert"), [(f"user_{self.bob.pk}", {"roomId": room.pk})])

    def test_empty_message_rejected(self):
        room = self.direct_room(self.alice, self.bob)
        res = self.client.post(f"/api/chat/{room.pk}/messages", {"content": "   "}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertFalse(Message.objects.exists())

    def test_mark_read_resets_unread_and_emits(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        service.send_message(self.alice, room.pk, "a")
        service.send_message(self.alice, room.pk, "b")
        conversations = ConversationService(self.hub)
        self.assertEqual(conversations.unread_count(self.bob, room.pk), 2)
        self.assertEqual(conversations.unread_count(self.alice, room.pk), 0)
        self.hub.clear()

        res = self.as_user(self.bob).put(f"/api/chat/read/{room.pk}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data, {"roomId": room.pk, "updated": 2})
        self.assertEqual(conversations.unread_count(self.bob, room.pk), 0)
        self.assertEqual(self.hub.named("messages_read"),
                         [(f"room_{room.pk}", {"roomId": room.pk, "readerId": self.bob.pk})])
        self.assertEqual(self.hub.targets("refresh_unread"), [f"user_{self.bob.pk}"])

        # a second pass changes nothing
        res = self.client.put(f"/api/chat/read/{room.pk}")
        self.assertEqual(res.data["updated"], 0)

    def test_delete_for_me_hides_only_for_caller(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.bob, room.pk, "secret")

        res = self.client.delete(f"/api/chat/message/{message.pk}", {"type": "me"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data, {"messageId": message.pk, "type": "me"})
        self.assertTrue(MessageDeletion.objects.filter(user=self.alice, message=message).exists())

        # repeating is a no-op
        self.client.delete(f"/api/chat/message/{message.pk}", {"type": "me"}, format="json")
        self.assertEqual(MessageDeletion.objects.count(), 1)

        self.assertEqual(self.client.get(f"/api/chat/{room.pk}/messages").data, [])
        bob_view = self.as_user(self.bob).get(f"/api/chat/{room.pk}/messages").data
        self.assertEqual([m["id"] for m in bob_view], [message.pk])
        self.assertEqual(bob_view[0]["deletedBy"], [self.alice.pk])
        self.assertEqual(self.hub.named("message_deleted"), [])

    def test_recall_within_window(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.alice, room.pk, "oops")

        res = self.client.delete(f"/api/chat/message/{message.pk}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["type"], "recall")
        self.assertFalse(Message.objects.filter(pk=message.pk).exists())
        self.assertEqual(self.hub.named("message_deleted"),
                         [(f"room_{room.pk}", {"messageId": message.pk, "roomId": room.pk})])

    def test_recall_after_window_fails_and_keeps_message(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.alice, room.pk, "old news")
        Message.objects.filter(pk=message.pk).update(created_at=timezone.now() - timedelta(hours=2))

        res = self.client.delete(f"/api/chat/message/{message.pk}", {"type": "recall"}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["code"], "conflict")
        self.assertTrue(Message.objects.filter(pk=message.pk).exists())

    def test_recall_by_non_sender_forbidden(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.bob, room.pk, "mine")

        res = self.client.delete(f"/api/chat/message/{message.pk}?type=recall")
        self.assertEqual(res.status_code, 403)
        self.assertTrue(Message.objects.filter(pk=message.pk).exists())

    def test_unknown_delete_type_rejected(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.alice, room.pk, "x")
        res = self.client.delete(f"/api/chat/message/{message.pk}", {"type": "everyone"}, format="json")
        self.assertEqual(res.status_code, 400)

    def test_edit_by_sender_only(self):
        room = self.direct_room(self.alice, self.bob)
        message = MessageService(self.hub, push=FakePush()).send_message(self.alice, room.pk, "draft")

        res = self.as_user(self.bob).put(f"/api/chat/message/{message.pk}", {"content": "hacked"}, format="json")
        self.assertEqual(res.status_code, 403)

        res = self.as_user(self.alice).put(f"/api/chat/message/{message.pk}", {"content": "final"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["content"], "final")
        self.assertTrue(res.data["isEdited"])
        self.assertEqual(self.hub.named("message_updated")[0][0], f"room_{room.pk}")

    @override_settings(CHAT_PAGE_SIZE=2)
    def test_cursor_pagination_walks_history_and_terminates(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        sent = [service.send_message(self.alice, room.pk, f"m{i}").pk for i in range(5)]

        seen = []
        cursor = None
        pages = 0
        while True:
            url = f"/api/chat/{room.pk}/messages" + (f"?cursor={cursor}" if cursor else "")
            page = self.client.get(url).data
            pages += 1
            ids = [m["id"] for m in page]
            self.assertEqual(ids, sorted(ids))
            seen = ids + seen
            if len(page) < 2:
                break
            cursor = ids[0]
            self.assertLess(pages, 10)

        self.assertEqual(seen, sent)
        self.assertEqual(pages, 3)

    @override_settings(CHAT_PAGE_SIZE=2)
    def test_pages_skip_messages_deleted_for_me(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        sent = [service.send_message(self.bob, room.pk, f"m{i}").pk for i in range(6)]
        for hidden in (sent[1], sent[4]):
            service.delete_message(self.alice, hidden, "me")

        seen, cursor = [], None
        for _ in range(10):
            url = f"/api/chat/{room.pk}/messages" + (f"?cursor={cursor}" if cursor else "")
            ids = [m["id"] for m in self.client.get(url).data]
            seen = ids + seen
            if len(ids) < 2:
                break
            cursor = ids[0]

        self.assertEqual(seen, [pk for pk in sent if pk not in (sent[1], sent[4])])

    def test_hub_payload_urls_match_rest_response(self):
        self.alice.avatar = "avatars/alice.jpg"
        self.alice.save(update_fields=["avatar"])
        room = self.direct_room(self.alice, self.bob)

        res = self.client.post(f"/api/chat/{room.pk}/messages", {"content": "look"}, format="json")
        (_, payload), = self.hub.named("receive_message")
        self.assertEqual(payload["sender"]["avatar"], res.data["sender"]["avatar"])
        self.assertTrue(payload["sender"]["avatar"].startswith("http://testserver/"))

        request = APIRequestFactory().get("/")
        service = MessageService(self.hub, push=FakePush(), media=FakeUploader(), context={"request": request})
        self.hub.clear()
        service.send_message(self.alice, room.pk, media=object())
        (_, payload), = self.hub.named("receive_message")
        self.assertEqual(payload["mediaUrl"], f"http://testserver/media/chat/{room.pk}/clip.png")

    def test_recalled_cursor_still_pages(self):
        room = self.direct_room(self.alice, self.bob)
        service = MessageService(self.hub, push=FakePush())
        ids = [service.send_message(self.alice, room.pk, f"m{i}").pk for i in range(3)]
        service.delete_message(self.alice, ids[2], "recall")

        res = self.client.get(f"/api/chat/{room.pk}/messages?cursor={ids[2]}&limit=10")
        self.assertEqual([m["id"] for m in res.data], ids[:2])

    def test_limit_is_clamped(self):
        self.assertEqual(MessageService.clamp_limit(None), 20)
        self.assertEqual(MessageService.clamp_limit("0"), 1)
        self.assertEqual(MessageService.clamp_limit(10_000), 100)


class GroupTests(ChatTestCase):
    def create_group(self):
        res = self.client.post("/api/chat/group/create",
                               {"name": "Weekend", "memberIds": [self.bob.pk]}, format="json")
        self.assertEqual(res.status_code, 201)
        return Room.objects.get(pk=res.data["id"])

    def test_create_group_emits_to_all_members(self):
        room = self.create_group()
        self.assertTrue(room.is_group)
        self.assertEqual(room.created_by, self.alice)
        self.assertEqual(sorted(self.hub.targets("group_created")),
                         sorted([f"user_{self.alice.pk}", f"user_{self.bob.pk}"]))

    def test_create_group_needs_another_member(self):
        res = self.client.post("/api/chat/group/create",
                               {"name": "Solo", "memberIds": [self.alice.pk]}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertFalse(Room.objects.exists())

    def test_add_members_is_idempotent(self):
        room = self.create_group()
        self.hub.clear()

        url = f"/api/chat/group/{room.pk}/member/add"
        res = self.client.post(url, {"userIds": [self.bob.pk, self.carol.pk]}, format="json")
        self.assertEqual(res.data, {"roomId": room.pk, "added": [self.carol.pk]})
        self.assertEqual(self.hub.targets("group_created"), [f"user_{self.carol.pk}"])

        res = self.client.post(url, {"userIds": [self.carol.pk]}, format="json")
        self.assertEqual(res.data["added"], [])
        self.assertEqual(UserRoom.objects.filter(room=room).count(), 3)

    def test_only_owner_removes_members(self):
        room = self.create_group()
        ConversationService(self.hub).add_members(self.alice, room.pk, [self.carol.pk])
        url = f"/api/chat/group/{room.pk}/member/remove"

        res = self.as_user(self.bob).delete(url, {"userId": self.carol.pk}, format="json")
        self.assertEqual(res.status_code, 403)

        self.hub.clear()
        res = self.as_user(self.alice).delete(url, {"userId": self.carol.pk}, format="json")
        self.assertEqual(res.status_code, 204)
        self.assertFalse(UserRoom.objects.filter(room=room, user=self.carol).exists())
        self.assertEqual(self.hub.targets("conversation_deleted"), [f"user_{self.carol.pk}"])

    def test_owner_leaving_hands_over_ownership(self):
        room = self.create_group()
        res = self.client.post(f"/api/chat/group/{room.pk}/leave")
        self.assertEqual(res.status_code, 204)
        room.refresh_from_db()
        self.assertEqual(room.created_by, self.bob)

        # last member out deletes the group
        self.as_user(self.bob).post(f"/api/chat/group/{room.pk}/leave")
        self.assertFalse(Room.objects.filter(pk=room.pk).exists())

    def test_rename_group(self):
        room = self.create_group()
        self.hub.clear()
        res = self.as_user(self.bob).put(f"/api/chat/group/{room.pk}", {"name": "Sunday"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["name"], "Sunday")
        self.assertIn(f"room_{room.pk}", self.hub.targets("group_updated"))

    def test_group_operations_refuse_direct_rooms(self):
        room = self.direct_room(self.alice, self.bob)
        res = self.client.post(f"/api/chat/group/{room.pk}/member/add", {"userIds": [self.carol.pk]}, format="json")
        self.assertEqual(res.status_code, 400)
