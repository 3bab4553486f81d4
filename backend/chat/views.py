from __future__ import annotations

from rest_framework import status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from realtime.hub import get_hub

from .serializers import (
    ConversationSerializer,
    ConversationStartSerializer,
    GroupCreateSerializer,
    GroupUpdateSerializer,
    MemberAddSerializer,
    MemberRemoveSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    MessageUpdateSerializer,
    MuteSerializer,
)
from .services import ConversationService, MessageService


class ChatAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def conversations(self) -> ConversationService:
        return ConversationService(get_hub())

    def messages(self) -> MessageService:
        return MessageService(get_hub(), context=self.ctx())

    def ctx(self) -> dict:
        return {"request": self.request}


# ======================= CONVERSATIONS =======================

class ConversationListView(ChatAPIView):
    def get(self, request):
        rooms = self.conversations().list_conversations(request.user)
        return Response(ConversationSerializer(rooms, many=True, context=self.ctx()).data)


class ConversationStartView(ChatAPIView):
    def post(self, request):
        ser = ConversationStartSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        service = self.conversations()
        room, created = service.start_conversation(request.user, ser.validated_data["targetUserId"])
        room = service.conversation_for(request.user, room)
        data = ConversationSerializer(room, context=self.ctx()).data
        return Response(data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


class ConversationDeleteView(ChatAPIView):
    def delete(self, request, pk):
        self.conversations().delete_conversation(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ConversationMuteView(ChatAPIView):
    def put(self, request, pk):
        ser = MuteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        muted = self.conversations().set_muted(request.user, pk, ser.validated_data["muted"])
        return Response({"roomId": pk, "muted": muted})


# ======================= MESSAGES =======================

class RoomMessagesView(ChatAPIView):
    """
    /api/chat/<roomId>/messages  [GET, POST]
    """
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get(self, request, room_id):
        page = self.messages().get_messages(
            request.user,
            room_id,
            cursor=request.query_params.get("cursor"),
            limit=request.query_params.get("limit"),
        )
        return Response(MessageSerializer(page, many=True, context=self.ctx()).data)

    def post(self, request, room_id):
        ser = MessageCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        message = self.messages().send_message(
            request.user,
            room_id,
            content=ser.validated_data.get("content", ""),
            media=ser.validated_data.get("file"),
        )
        return Response(MessageSerializer(message, context=self.ctx()).data, status=status.HTTP_201_CREATED)


class MessageDetailView(ChatAPIView):
    def put(self, request, pk):
        ser = MessageUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        message = self.messages().update_message(request.user, pk, ser.validated_data["content"])
        return Response(MessageSerializer(message, context=self.ctx()).data)

    def delete(self, request, pk):
        mode = request.data.get("type") if hasattr(request.data, "get") else None
        mode = mode or request.query_params.get("type")
        applied = self.messages().delete_message(request.user, pk, mode)
        return Response({"messageId": pk, "type": applied})


class MarkReadView(ChatAPIView):
    def put(self, request, room_id):
        updated = self.messages().mark_read(request.user, room_id)
        return Response({"roomId": room_id, "updated": updated})


# ======================= GROUPS =======================

class GroupCreateView(ChatAPIView):
    def post(self, request):
        ser = GroupCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        service = self.conversations()
        room = service.create_group(request.user, ser.validated_data["name"], ser.validated_data["memberIds"])
        room = service.conversation_for(request.user, room)
        return Response(ConversationSerializer(room, context=self.ctx()).data, status=status.HTTP_201_CREATED)


class GroupDetailView(ChatAPIView):
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def put(self, request, pk):
        # an uploaded avatar arrives in FILES, a URL arrives as a plain field
        data = {k: v for k, v in request.data.items() if k not in request.FILES}
        ser = GroupUpdateSerializer(data=data)
        ser.is_valid(raise_exception=True)
        service = self.conversations()
        room = service.update_group(
            request.user,
            pk,
            name=ser.validated_data.get("name"),
            avatar=ser.validated_data.get("avatar"),
            avatar_file=request.FILES.get("avatar"),
        )
        room = service.conversation_for(request.user, room)
        return Response(ConversationSerializer(room, context=self.ctx()).data)


class GroupMemberAddView(ChatAPIView):
    def post(self, request, pk):
        ser = MemberAddSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        added = self.conversations().add_members(request.user, pk, ser.validated_data["userIds"])
        return Response({"roomId": pk, "added": added})


class GroupMemberRemoveView(ChatAPIView):
    def delete(self, request, pk):
        ser = MemberRemoveSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        self.conversations().remove_member(request.user, pk, ser.validated_data["userId"])
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupLeaveView(ChatAPIView):
    def post(self, request, pk):
        self.conversations().leave_group(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)
