from django.urls import path

from .views import CommentCreateView, LikeToggleView, PostCreateView, PostDetailView, UserPostsView

urlpatterns = [
    path("posts", PostCreateView.as_view(), name="post-create"),
    path("posts/<int:pk>", PostDetailView.as_view(), name="post-detail"),
    path("posts/user/<int:user_id>", UserPostsView.as_view(), name="user-posts"),
    path("posts/<int:pk>/like", LikeToggleView.as_view(), name="post-like"),
    path("posts/<int:pk>/comment", CommentCreateView.as_view(), name="post-comment"),
]
