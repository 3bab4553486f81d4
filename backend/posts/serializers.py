from rest_framework import serializers

from users.serializers import UserSummarySerializer

from .models import Comment, Post


class CommentSerializer(serializers.ModelSerializer):
    postId = serializers.IntegerField(source="post_id", read_only=True)
    author = UserSummarySerializer(read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Comment
        fields = ["id", "postId", "author", "content", "createdAt"]


class PostSerializer(serializers.ModelSerializer):
    author = UserSummarySerializer(read_only=True)
    image = serializers.ImageField(required=False, allow_null=True, use_url=True)
    likeCount = serializers.SerializerMethodField()
    commentCount = serializers.SerializerMethodField()
    isLiked = serializers.SerializerMethodField()
    comments = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Post
        fields = ["id", "author", "content", "image", "likeCount", "commentCount",
                  "isLiked", "comments", "createdAt"]

    def validate(self, attrs):
        content = (attrs.get("content") or "").strip()
        if not content and not attrs.get("image"):
            raise serializers.ValidationError("A post needs text or an image.")
        attrs["content"] = content
        return attrs

    def get_likeCount(self, obj) -> int:
        return obj.likes.count()

    def get_commentCount(self, obj) -> int:
        return obj.comments.count()

    def get_isLiked(self, obj) -> bool:
        request = self.context.get("request")
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return obj.likes.filter(user=user).exists()

    def get_comments(self, obj):
        if not self.context.get("with_comments"):
            return None
        qs = obj.comments.select_related("author").order_by("-created_at", "-id")
        return CommentSerializer(qs, many=True, context=self.context).data


class CommentCreateSerializer(serializers.Serializer):
    content = serializers.CharField(max_length=2000)
