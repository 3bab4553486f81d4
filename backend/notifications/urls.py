from django.urls import path
from rest_framework.routers import SimpleRouter
from .views import NotificationViewSet, push_subscription, vapid_public_key

router = SimpleRouter(trailing_slash=False)
router.register("notifications", NotificationViewSet, basename="notifications")

urlpatterns = [
    # Web push endpoints, declared before the router so "subscribe" is not read as a pk
    path("notifications/subscribe", push_subscription, name="push-subscribe"),
    path("notifications/vapid-public-key", vapid_public_key, name="vapid-public-key"),
] + router.urls
