from django.conf import settings
from rest_framework import status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import ViewSet

from realtime.hub import get_hub

from .serializers import NotificationSerializer, PushSubscriptionSerializer
from .services import NotificationService


# ====== Notification API (list + read-marking) ======

class NotificationViewSet(ViewSet):
    """
    Notifications of the current user, newest first, plus read-marking.
    """
    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_service(self) -> NotificationService:
        return NotificationService(get_hub(), context={"request": self.request})

    def list(self, request):
        items = self.get_service().list_for(request.user)
        return Response(NotificationSerializer(items, many=True, context={"request": request}).data)

    @action(detail=False, methods=["get"], url_path="unread-count")
    def unread_count(self, request):
        return Response({"count": self.get_service().unread_count(request.user)})

    @action(detail=True, methods=["put"])
    def read(self, request, pk=None):
        notification = self.get_service().mark_read(request.user, int(pk))
        return Response(NotificationSerializer(notification, context={"request": request}).data)

    @action(detail=False, methods=["put"], url_path="read-all")
    def read_all(self, request):
        updated = self.get_service().mark_all_read(request.user)
        return Response({"updated": updated})


# ====== Web Push subscriptions ======

@api_view(["POST", "DELETE"])
@permission_classes([IsAuthenticated])
def push_subscription(request):
    service = NotificationService(get_hub())
    if request.method == "DELETE":
        endpoint = request.data.get("endpoint") or request.query_params.get("endpoint")
        removed = service.unsubscribe(request.user, endpoint)
        return Response({"removed": removed})

    sub = service.subscribe(request.user, request.data.get("endpoint"), request.data.get("keys"))
    return Response(PushSubscriptionSerializer(sub).data, status=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([AllowAny])
def vapid_public_key(request):
    return Response({"publicKey": settings.VAPID_PUBLIC_KEY or None})
