from django.urls import path
from .views import (
    AdminCoinsView,
    AdminUserDetailView,
    AdminUserListView,
    CheckInView,
    FollowersView,
    FollowingView,
    FollowToggleView,
    LoginView,
    MeView,
    ProfileView,
    PublicProfileView,
    RegisterView,
)

urlpatterns = [
    path('auth/register', RegisterView.as_view(), name='auth-register'),
    path('auth/login', LoginView.as_view(), name='auth-login'),
    path('auth/me', MeView.as_view(), name='auth-me'),

    path('users/profile', ProfileView.as_view(), name='profile-update'),
    path('users/profile/<int:pk>', PublicProfileView.as_view(), name='profile'),
    path('users/check-in', CheckInView.as_view(), name='check-in'),
    path('users/<int:pk>/follow', FollowToggleView.as_view(), name='follow-toggle'),
    path('users/<int:pk>/followers', FollowersView.as_view(), name='followers'),
    path('users/<int:pk>/following', FollowingView.as_view(), name='following'),

    path('users/admin/users', AdminUserListView.as_view(), name='admin-users'),
    path('users/admin/users/<int:pk>', AdminUserDetailView.as_view(), name='admin-user'),
    path('users/admin/users/<int:pk>/coins', AdminCoinsView.as_view(), name='admin-user-coins'),
]
