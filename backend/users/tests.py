from django.contrib.auth import get_user_model
from rest_framework.test import APIClient, APITestCase

from notifications.models import Notification
from realtime.hub import set_hub
from realtime.testing import RecordingHub

from .models import CoinTransaction, Follow

User = get_user_model()

STRONG_PASSWORD = "Secret#123"


class AuthApiTests(APITestCase):
    def setUp(self):
        self.client = APIClient()

    def test_register_returns_tokens_and_user(self):
        res = self.client.post("/api/auth/register", {
            "username": "alice.w",
            "email": "alice@example.com",
            "password": STRONG_PASSWORD,
            "fullName": "Alice Walker",
        }, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertIn("token", res.data)
        self.assertIn("refreshToken", res.data)
        self.assertEqual(res.data["user"]["username"], "alice.w")
        self.assertEqual(res.data["user"]["fullName"], "Alice Walker")
        self.assertEqual(res.data["user"]["coins"], 10)

    def test_register_rejects_bad_username_and_weak_password(self):
        res = self.client.post("/api/auth/register", {
            "username": "ab c",
            "email": "x@example.com",
            "password": "password",
        }, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("username", res.data)
        self.assertIn("password", res.data)

    def test_register_duplicate_is_case_insensitive(self):
        User.objects.create_user("bobby.b", "bob@example.com", STRONG_PASSWORD)
        res = self.client.post("/api/auth/register", {
            "username": "BOBBY.B",
            "email": "other@example.com",
            "password": STRONG_PASSWORD,
        }, format="json")
        self.assertEqual(res.status_code, 400)

        res = self.client.post("/api/auth/register", {
            "username": "robert.b",
            "email": "BOB@example.com",
            "password": STRONG_PASSWORD,
        }, format="json")
        self.assertEqual(res.status_code, 400)

    def test_login_by_email_or_username(self):
        User.objects.create_user("carol.c", "carol@example.com", STRONG_PASSWORD)

        res = self.client.post("/api/auth/login",
                               {"emailOrUsername": "CAROL@example.com", "password": STRONG_PASSWORD},
                               format="json")
        self.assertEqual(res.status_code, 200)
        self.assertIn("token", res.data)

        res = self.client.post("/api/auth/login",
                               {"emailOrUsername": "carol.c", "password": STRONG_PASSWORD},
                               format="json")
        self.assertEqual(res.status_code, 200)

        res = self.client.post("/api/auth/login",
                               {"emailOrUsername": "carol.c", "password": "Wrong#123"},
                               format="json")
        self.assertEqual(res.status_code, 401)

    def test_login_refused_for_inactive_account(self):
        User.objects.create_user("dave.d", "dave@example.com", STRONG_PASSWORD, is_active=False)
        res = self.client.post("/api/auth/login",
                               {"emailOrUsername": "dave.d", "password": STRONG_PASSWORD},
                               format="json")
        self.assertEqual(res.status_code, 401)

    def test_me_requires_token(self):
        res = self.client.get("/api/auth/me")
        self.assertEqual(res.status_code, 401)

        token = self.client.post("/api/auth/register", {
            "username": "erin.e",
            "email": "erin@example.com",
            "password": STRONG_PASSWORD,
        }, format="json").data["token"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        res = self.client.get("/api/auth/me")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["email"], "erin@example.com")


class FollowApiTests(APITestCase):
    def setUp(self):
        self.hub = RecordingHub()
        set_hub(self.hub)
        self.alice = User.objects.create_user("alice.a", "alice@example.com", STRONG_PASSWORD,
                                              full_name="Alice")
        self.bob = User.objects.create_user("bobby.b", "bob@example.com", STRONG_PASSWORD)
        self.client = APIClient()
        self.client.force_authenticate(self.alice)

    def tearDown(self):
        set_hub(None)

    def test_follow_toggle_notifies_once(self):
        res = self.client.post(f"/api/users/{self.bob.pk}/follow")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data["following"])
        self.assertTrue(Follow.objects.filter(follower=self.alice, following=self.bob).exists())

        notes = Notification.objects.filter(user=self.bob)
        self.assertEqual(notes.count(), 1)
        self.assertEqual(notes[0].type, Notification.Types.FOLLOW)
        self.assertEqual(notes[0].content, "Alice started following you")
        self.assertEqual(self.hub.targets("new_notification"), [f"user_{self.bob.pk}"])

        # unfollow removes the edge without a second notification
        res = self.client.post(f"/api/users/{self.bob.pk}/follow")
        self.assertFalse(res.data["following"])
        self.assertFalse(Follow.objects.exists())
        self.assertEqual(Notification.objects.filter(user=self.bob).count(), 1)

    def test_self_follow_rejected(self):
        res = self.client.post(f"/api/users/{self.alice.pk}/follow")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["code"], "validation")
        self.assertFalse(Follow.objects.exists())

    def test_profile_counts_and_friendship(self):
        Follow.objects.create(follower=self.alice, following=self.bob)
        Follow.objects.create(follower=self.bob, following=self.alice)

        res = self.client.get(f"/api/users/profile/{self.bob.pk}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["counts"], {"followers": 1, "following": 1, "posts": 0})
        self.assertTrue(res.data["isFollowing"])
        self.assertTrue(res.data["isFriend"])

        res = self.client.get(f"/api/users/{self.bob.pk}/followers")
        self.assertEqual([u["id"] for u in res.data], [self.alice.pk])

    def test_profile_update(self):
        res = self.client.put("/api/users/profile", {"fullName": "Alice Liddell", "bio": "hi"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.alice.refresh_from_db()
        self.assertEqual(self.alice.full_name, "Alice Liddell")
        self.assertEqual(self.alice.bio, "hi")


class CoinsApiTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user("frank.f", "frank@example.com", STRONG_PASSWORD)
        self.admin = User.objects.create_user("admin.a", "admin@example.com", STRONG_PASSWORD,
                                              role=User.Role.ADMIN)
        self.client = APIClient()

    def test_daily_check_in_once_per_day(self):
        self.client.force_authenticate(self.user)
        res = self.client.post("/api/users/check-in")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data, {"awarded": 5, "coins": 15})

        res = self.client.post("/api/users/check-in")
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["code"], "conflict")

        self.user.refresh_from_db()
        self.assertEqual(self.user.coins, 15)
        self.assertEqual(CoinTransaction.objects.filter(user=self.user).count(), 1)

    def test_admin_endpoints_require_admin_role(self):
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.get("/api/users/admin/users").status_code, 403)

        self.client.force_authenticate(self.admin)
        res = self.client.get("/api/users/admin/users")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(len(res.data), 2)

    def test_admin_adjusts_coins_with_ledger(self):
        self.client.force_authenticate(self.admin)
        res = self.client.post(f"/api/users/admin/users/{self.user.pk}/coins",
                               {"amount": -3, "reason": "Penalty"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["coins"], 7)
        tx = CoinTransaction.objects.get(user=self.user)
        self.assertEqual((tx.amount, tx.reason), (-3, "Penalty"))

        res = self.client.post(f"/api/users/admin/users/{self.user.pk}/coins", {"amount": 0}, format="json")
        self.assertEqual(res.status_code, 400)

    def test_admin_updates_and_deletes_user(self):
        self.client.force_authenticate(self.admin)
        res = self.client.put(f"/api/users/admin/users/{self.user.pk}",
                              {"isVip": True, "isActive": False}, format="json")
        self.assertEqual(res.status_code, 200)
        self.user.refresh_from_db()
        self.assertTrue(self.user.is_vip)
        self.assertFalse(self.user.is_active)

        self.assertEqual(self.client.delete(f"/api/users/admin/users/{self.admin.pk}").status_code, 400)
        self.assertEqual(self.client.delete(f"/api/users/admin/users/{self.user.pk}").status_code, 204)
        self.assertFalse(User.objects.filter(pk=self.user.pk).exists())
