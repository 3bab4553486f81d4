from __future__ import annotations

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from config.errors import BusinessRuleViolation, InvalidInput
from notifications.models import Notification
from notifications.services import NotificationService

from .models import CoinTransaction, Follow, User

logger = logging.getLogger(__name__)

DAILY_CHECK_IN_REASON = "Daily Check-in"
DAILY_CHECK_IN_COINS = 5


class SelfFollowError(InvalidInput):
    default_message = "You cannot follow yourself."


class AlreadyCheckedIn(BusinessRuleViolation):
    default_message = "You have already checked in today."


def toggle_follow(me: User, target: User, notifier: Optional[NotificationService] = None) -> bool:
    """
    Follow ``target`` or drop the existing edge. Returns the new state.
    A follow notification is sent only when an edge is created.
    """
    if me.pk == target.pk:
        raise SelfFollowError()

    deleted, _ = Follow.objects.filter(follower=me, following=target).delete()
    if deleted:
        return False

    try:
        with transaction.atomic():
            Follow.objects.create(follower=me, following=target)
    except IntegrityError:
        # a concurrent request created the same edge
        return True

    if notifier is not None:
        notifier.notify(
            recipient=target,
            type=Notification.Types.FOLLOW,
            content=f"{me.display_name} started following you",
            sender=me,
        )
    return True


@transaction.atomic
def adjust_coins(user: User, amount: int, reason: str) -> User:
    """Change the balance and record the ledger row in one unit of work."""
    if amount == 0:
        raise InvalidInput("Amount must be non-zero.")
    User.objects.filter(pk=user.pk).update(coins=F("coins") + int(amount))
    CoinTransaction.objects.create(user=user, amount=int(amount), reason=reason[:120])
    user.refresh_from_db(fields=["coins"])
    logger.info("coins user=%s amount=%+d reason=%s", user.pk, amount, reason)
    return user


def daily_check_in(user: User) -> int:
    start_of_day = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0)
    already = CoinTransaction.objects.filter(
        user=user, reason=DAILY_CHECK_IN_REASON, created_at__gte=start_of_day,
    ).exists()
    if already:
        raise AlreadyCheckedIn()
    adjust_coins(user, DAILY_CHECK_IN_COINS, DAILY_CHECK_IN_REASON)
    return DAILY_CHECK_IN_COINS
