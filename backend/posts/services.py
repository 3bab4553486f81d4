from __future__ import annotations

import logging
from typing import Optional, Tuple

from django.db import IntegrityError, transaction

from config.errors import InvalidInput
from notifications.models import Notification
from notifications.services import NotificationService

from .models import Comment, Like, Post

logger = logging.getLogger(__name__)


def toggle_like(user, post: Post, notifier: Optional[NotificationService] = None) -> Tuple[bool, int]:
    """
    Like or unlike ``post``. Returns ``(liked, like_count)``.
    Only a new like notifies the author; unliking never does.
    """
    deleted, _ = Like.objects.filter(post=post, user=user).delete()
    if deleted:
        return False, post.likes.count()

    try:
        with transaction.atomic():
            Like.objects.create(post=post, user=user)
    except IntegrityError:
        return True, post.likes.count()

    if notifier is not None:
        notifier.notify(
            recipient=post.author_id,
            type=Notification.Types.LIKE,
            content=f"{user.display_name} liked your post",
            sender=user,
            post=post,
        )
    return True, post.likes.count()


def add_comment(user, post: Post, content: str, notifier: Optional[NotificationService] = None) -> Comment:
    content = (content or "").strip()
    if not content:
        raise InvalidInput("Comment content is required.")

    comment = Comment.objects.create(post=post, author=user, content=content)

    if notifier is not None:
        notifier.notify(
            recipient=post.author_id,
            type=Notification.Types.COMMENT,
            content=f"{user.display_name} commented on your post",
            sender=user,
            post=post,
            comment=comment,
        )
    return comment
