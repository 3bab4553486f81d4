from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, BasePermission, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from notifications.services import NotificationService
from realtime.hub import get_hub

from .serializers import (
    AdminUserSerializer,
    CoinAdjustmentSerializer,
    CurrentUserSerializer,
    LoginSerializer,
    ProfileSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserSummarySerializer,
)
from .services import adjust_coins, daily_check_in, toggle_follow

User = get_user_model()


def _token_response(user, request, status_code=status.HTTP_200_OK):
    refresh = RefreshToken.for_user(user)
    return Response({
        "token": str(refresh.access_token),
        "refreshToken": str(refresh),
        "user": CurrentUserSerializer(user, context={"request": request}).data,
    }, status=status_code)


class IsAdminRole(BasePermission):
    def has_permission(self, request, view) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin)


class RegisterView(generics.CreateAPIView):
    """
    Register a new account.
    Returns an access token, a refresh token and the created user.
    """
    serializer_class = RegisterSerializer
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return _token_response(user, request, status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    Login by email or username.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = User.objects.get_by_login(serializer.validated_data["emailOrUsername"])
        if user is None or not user.check_password(serializer.validated_data["password"]):
            return Response({"detail": "Invalid credentials."}, status=status.HTTP_401_UNAUTHORIZED)
        if not user.is_active:
            return Response({"detail": "Account is disabled."}, status=status.HTTP_401_UNAUTHORIZED)

        return _token_response(user, request)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(CurrentUserSerializer(request.user, context={"request": request}).data)


class PublicProfileView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, pk):
        user = get_object_or_404(User, pk=pk, is_active=True)
        return Response(ProfileSerializer(user, context={"request": request}).data)


class ProfileView(APIView):
    """
    Update the caller's own profile (fullName, bio, avatar).
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def put(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response(ProfileSerializer(user, context={"request": request}).data)


class FollowToggleView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        target = get_object_or_404(User, pk=pk, is_active=True)
        notifier = NotificationService(get_hub(), context={"request": request})
        following = toggle_follow(request.user, target, notifier=notifier)
        return Response({"following": following})


class FollowersView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        qs = User.objects.filter(following_links__following=user).order_by("username")
        return Response(UserSummarySerializer(qs, many=True, context={"request": request}).data)


class FollowingView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        qs = User.objects.filter(follower_links__follower=user).order_by("username")
        return Response(UserSummarySerializer(qs, many=True, context={"request": request}).data)


class CheckInView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        awarded = daily_check_in(request.user)
        return Response({"awarded": awarded, "coins": request.user.coins})


# ======================= ADMIN =======================

class AdminUserListView(generics.ListAPIView):
    permission_classes = [IsAdminRole]
    serializer_class = AdminUserSerializer
    queryset = User.objects.all().order_by("-created_at")


class AdminUserDetailView(APIView):
    permission_classes = [IsAdminRole]

    def put(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        serializer = AdminUserSerializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    def delete(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        if user.pk == request.user.pk:
            return Response({"detail": "You cannot delete your own account here."},
                            status=status.HTTP_400_BAD_REQUEST)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminCoinsView(APIView):
    permission_classes = [IsAdminRole]

    def post(self, request, pk):
        user = get_object_or_404(User, pk=pk)
        serializer = CoinAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        adjust_coins(
            user,
            serializer.validated_data["amount"],
            serializer.validated_data.get("reason") or "Admin adjustment",
        )
        return Response(AdminUserSerializer(user).data)
