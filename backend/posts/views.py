from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from notifications.services import NotificationService
from realtime.hub import get_hub

from .models import Post
from .serializers import CommentCreateSerializer, CommentSerializer, PostSerializer
from .services import add_comment, toggle_like

User = get_user_model()


class PostCreateView(generics.CreateAPIView):
    serializer_class = PostSerializer
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def perform_create(self, serializer):
        serializer.save(author=self.request.user)


class PostDetailView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, pk):
        post = get_object_or_404(Post.objects.select_related("author"), pk=pk)
        ser = PostSerializer(post, context={"request": request, "with_comments": True})
        return Response(ser.data)


class UserPostsView(generics.ListAPIView):
    serializer_class = PostSerializer
    permission_classes = [AllowAny]

    def get_queryset(self):
        author = get_object_or_404(User, pk=self.kwargs["user_id"])
        return Post.objects.filter(author=author).select_related("author").order_by("-created_at", "-id")


class LikeToggleView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        post = get_object_or_404(Post, pk=pk)
        notifier = NotificationService(get_hub(), context={"request": request})
        liked, count = toggle_like(request.user, post, notifier=notifier)
        return Response({"liked": liked, "likeCount": count})


class CommentCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        post = get_object_or_404(Post, pk=pk)
        ser = CommentCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        comment = add_comment(
            request.user, post, ser.validated_data["content"],
            notifier=NotificationService(get_hub(), context={"request": request}),
        )
        return Response(CommentSerializer(comment, context={"request": request}).data,
                        status=status.HTTP_201_CREATED)
