from django.contrib.auth import get_user_model
from rest_framework.test import APIClient, APITestCase

from notifications.models import Notification
from realtime.hub import set_hub
from realtime.testing import RecordingHub

from .models import Comment, Like, Post

User = get_user_model()


class PostApiTests(APITestCase):
    def setUp(self):
        self.hub = RecordingHub()
        set_hub(self.hub)
        self.author = User.objects.create_user("author.a", "author@example.com", "Secret#123",
                                               full_name="Ann")
        self.reader = User.objects.create_user("reader.r", "reader@example.com", "Secret#123",
                                               full_name="Rob")
        self.post = Post.objects.create(author=self.author, content="hello world")
        self.client = APIClient()

    def tearDown(self):
        set_hub(None)

    def test_create_post_requires_text_or_image(self):
        self.client.force_authenticate(self.author)
        res = self.client.post("/api/posts", {"content": "   "}, format="json")
        self.assertEqual(res.status_code, 400)

        res = self.client.post("/api/posts", {"content": "second post"}, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["author"]["id"], self.author.pk)
        self.assertEqual(res.data["likeCount"], 0)

    def test_comment_notifies_author_only_for_other_users(self):
        self.client.force_authenticate(self.reader)
        res = self.client.post(f"/api/posts/{self.post.pk}/comment", {"content": "nice"}, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.data["author"]["id"], self.reader.pk)

        notes = Notification.objects.filter(user=self.author)
        self.assertEqual(notes.count(), 1)
        note = notes[0]
        self.assertEqual(note.type, Notification.Types.COMMENT)
        self.assertEqual(note.sender_id, self.reader.pk)
        self.assertEqual(note.post_id, self.post.pk)
        self.assertEqual(note.comment_id, res.data["id"])
        self.assertEqual(note.content, "Rob commented on your post")

        sent = self.hub.named("new_notification")
        self.assertEqual(len(sent), 1)
        target, payload = sent[0]
        self.assertEqual(target, f"user_{self.author.pk}")
        self.assertEqual(payload["postId"], self.post.pk)
        self.assertFalse(payload["read"])

        # commenting on one's own post leaves no notification
        self.client.force_authenticate(self.author)
        res = self.client.post(f"/api/posts/{self.post.pk}/comment", {"content": "thanks"}, format="json")
        self.assertEqual(res.status_code, 201)
        self.assertEqual(Notification.objects.count(), 1)
        self.assertEqual(Comment.objects.filter(post=self.post).count(), 2)

    def test_empty_comment_rejected(self):
        self.client.force_authenticate(self.reader)
        res = self.client.post(f"/api/posts/{self.post.pk}/comment", {"content": ""}, format="json")
        self.assertEqual(res.status_code, 400)
        self.assertFalse(Comment.objects.exists())

    def test_like_toggle_notifies_on_like_only(self):
        self.client.force_authenticate(self.reader)
        url = f"/api/posts/{self.post.pk}/like"

        res = self.client.post(url)
        self.assertEqual(res.data, {"liked": True, "likeCount": 1})
        res = self.client.post(url)
        self.assertEqual(res.data, {"liked": False, "likeCount": 0})
        res = self.client.post(url)
        self.assertEqual(res.data, {"liked": True, "likeCount": 1})

        self.assertEqual(Like.objects.count(), 1)
        likes = Notification.objects.filter(user=self.author, type=Notification.Types.LIKE)
        self.assertEqual(likes.count(), 2)
        self.assertEqual(likes[0].content, "Rob liked your post")

    def test_detail_includes_comments_and_viewer_like(self):
        Like.objects.create(post=self.post, user=self.reader)
        Comment.objects.create(post=self.post, author=self.reader, content="first")

        self.client.force_authenticate(self.reader)
        res = self.client.get(f"/api/posts/{self.post.pk}")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.data["isLiked"])
        self.assertEqual(res.data["commentCount"], 1)
        self.assertEqual([c["content"] for c in res.data["comments"]], ["first"])

    def test_user_posts_newest_first(self):
        newer = Post.objects.create(author=self.author, content="newer")
        res = self.client.get(f"/api/posts/user/{self.author.pk}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual([p["id"] for p in res.data], [newer.pk, self.post.pk])
        self.assertIsNone(res.data[0]["comments"])
