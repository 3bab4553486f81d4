from unittest import mock

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase, APIClient

from realtime.hub import set_hub
from realtime.testing import RecordingHub

from .models import Notification, PushSubscription
from .push import PushResult, WebPushAdapter
from .consumers import PushDeliveryConsumer
from .services import NotificationService, dispatch_push, send_push


class StubPush:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0

    def is_configured(self):
        return True

    def send(self, subscription, payload):
        self.calls += 1
        return self.results.pop(0)


class NotificationApiTests(APITestCase):
    def setUp(self):
        self.hub = RecordingHub()
        set_hub(self.hub)
        User = get_user_model()
        self.user = User.objects.create_user("tester.t", "test@example.com", "pass12345")
        self.other = User.objects.create_user("other.o", "other@example.com", "pass12345")
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def tearDown(self):
        set_hub(None)

    def test_list_unread_and_mark_read(self):
        # three unread and one read
        n1 = Notification.objects.create(user=self.user, type=Notification.Types.LIKE, content="a", sender=self.other)
        n2 = Notification.objects.create(user=self.user, type=Notification.Types.COMMENT, content="b")
        n3 = Notification.objects.create(user=self.user, type=Notification.Types.FOLLOW, content="c")
        Notification.objects.create(user=self.user, type=Notification.Types.FOLLOW, content="d", is_read=True)
        Notification.objects.create(user=self.other, type=Notification.Types.FOLLOW, content="not mine")

        res = self.client.get("/api/notifications")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(len(res.data), 4)
        self.assertEqual(res.data[-1]["id"], n1.id)
        self.assertEqual(res.data[-1]["sender"]["id"], self.other.id)

        res = self.client.get("/api/notifications/unread-count")
        self.assertEqual(res.data, {"count": 3})

        # marking twice is harmless
        for _ in range(2):
            res = self.client.put(f"/api/notifications/{n1.id}/read")
            self.assertEqual(res.status_code, 200)
            self.assertTrue(res.data["read"])
        self.assertEqual(self.client.get("/api/notifications/unread-count").data["count"], 2)
        self.assertEqual(self.hub.targets("refresh_unread"), [f"user_{self.user.pk}"] * 2)

        res = self.client.put("/api/notifications/read-all")
        self.assertEqual(res.data, {"updated": 2})
        self.assertFalse(Notification.objects.filter(user=self.user, is_read=False).exists())
        self.assertTrue(Notification.objects.filter(pk__in=[n2.id, n3.id], is_read=True).count() == 2)

    def test_cannot_read_someone_elses_notification(self):
        foreign = Notification.objects.create(user=self.other, type=Notification.Types.LIKE, content="x")
        res = self.client.put(f"/api/notifications/{foreign.id}/read")
        self.assertEqual(res.status_code, 404)
        foreign.refresh_from_db()
        self.assertFalse(foreign.is_read)

    def test_subscribe_upserts_by_endpoint(self):
        body = {"endpoint": "https://push.example/abc", "keys": {"p256dh": "P", "auth": "A"}}
        res = self.client.post("/api/notifications/subscribe", body, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["keys"], {"p256dh": "P", "auth": "A"})

        # same endpoint from another account moves the subscription
        body["keys"] = {"p256dh": "P2", "auth": "A2"}
        self.client.force_authenticate(self.other)
        self.client.post("/api/notifications/subscribe", body, format="json")
        sub = PushSubscription.objects.get()
        self.assertEqual(sub.user, self.other)
        self.assertEqual(sub.keys["auth"], "A2")

        res = self.client.delete("/api/notifications/subscribe", {"endpoint": body["endpoint"]}, format="json")
        self.assertEqual(res.data, {"removed": True})
        self.assertFalse(PushSubscription.objects.exists())

    def test_subscribe_requires_keys(self):
        res = self.client.post("/api/notifications/subscribe",
                               {"endpoint": "https://push.example/abc", "keys": {"p256dh": "P"}}, format="json")
        self.assertEqual(res.status_code, 400)

    def test_vapid_key_is_public(self):
        res = APIClient().get("/api/notifications/vapid-public-key")
        self.assertEqual(res.status_code, 200)
        self.assertIn("publicKey", res.data)


class NotificationServiceTests(TestCase):
    def setUp(self):
        User = get_user_model()
        self.hub = RecordingHub()
        self.user = User.objects.create_user("tester.t", "test@example.com", "pass12345")
        self.other = User.objects.create_user("other.o", "other@example.com", "pass12345")

    def test_self_notification_is_dropped(self):
        service = NotificationService(self.hub, push=StubPush([]))
        result = service.notify(self.user, Notification.Types.LIKE, "self", sender=self.user)
        self.assertIsNone(result)
        self.assertFalse(Notification.objects.exists())
        self.assertEqual(self.hub.events, [])

    def test_notify_persists_and_emits(self):
        service = NotificationService(self.hub, push=StubPush([]))
        note = service.notify(self.user, Notification.Types.FOLLOW, "hello", sender=self.other)
        self.assertIsNotNone(note)
        (target, payload), = self.hub.named("new_notification")
        self.assertEqual(target, f"user_{self.user.pk}")
        self.assertEqual(payload["id"], note.id)
        self.assertEqual(payload["senderId"], self.other.pk)

    def test_send_push_deletes_gone_subscriptions(self):
        PushSubscription.objects.create(user=self.user, endpoint="https://push.example/1",
                                        keys={"p256dh": "k", "auth": "a"})
        PushSubscription.objects.create(user=self.user, endpoint="https://push.example/2",
                                        keys={"p256dh": "k", "auth": "a"})
        adapter = StubPush([PushResult.SENT, PushResult.GONE])

        counts = send_push(self.user.pk, {"title": "t"}, adapter=adapter)
        self.assertEqual(counts, {"sent": 1, "failed": 0, "expired": 1})
        self.assertEqual(PushSubscription.objects.filter(user=self.user).count(), 1)

    def test_send_push_skipped_without_vapid_keys(self):
        PushSubscription.objects.create(user=self.user, endpoint="https://push.example/1",
                                        keys={"p256dh": "k", "auth": "a"})
        adapter = WebPushAdapter(public_key="", private_key="")
        self.assertFalse(adapter.is_configured())
        counts = send_push(self.user.pk, {"title": "t"}, adapter=adapter)
        self.assertEqual(counts, {"sent": 0, "failed": 0, "expired": 0})
        self.assertEqual(PushSubscription.objects.count(), 1)

    def test_notify_pushes_only_after_commit(self):
        PushSubscription.objects.create(user=self.user, endpoint="https://push.example/1",
                                        keys={"p256dh": "k", "auth": "a"})
        adapter = StubPush([PushResult.SENT])
        service = NotificationService(self.hub, push=adapter)

        with self.captureOnCommitCallbacks() as callbacks:
            service.notify(self.user, Notification.Types.FOLLOW, "hello", sender=self.other)
            self.assertEqual(adapter.calls, 0)
        self.assertEqual(len(callbacks), 1)

        callbacks[0]()
        self.assertEqual(adapter.calls, 1)

    @override_settings(PUSH_DELIVERY_CHANNEL="push-test")
    def test_dispatch_hands_push_to_worker_channel(self):
        adapter = StubPush([])
        with self.captureOnCommitCallbacks(execute=True):
            dispatch_push([self.user.pk, self.other.pk], {"title": "t"}, adapter=adapter)
        self.assertEqual(adapter.calls, 0)

        job = async_to_sync(get_channel_layer().receive)("push-test")
        self.assertEqual(job["type"], "push.deliver")
        self.assertEqual(job["user_ids"], [self.user.pk, self.other.pk])
        self.assertEqual(job["payload"], {"title": "t"})

    def test_worker_delivers_queued_push(self):
        with mock.patch("notifications.consumers.deliver_push") as deliver:
            PushDeliveryConsumer().push_deliver({"type": "push.deliver", "user_ids": [self.user.pk],
                                                 "payload": {"title": "t"}})
        deliver.assert_called_once_with([self.user.pk], {"title": "t"})
