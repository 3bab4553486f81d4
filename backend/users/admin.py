from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import CoinTransaction, Follow, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = (
        (None, {"fields": ("username", "email", "password")}),
        ("Profile", {"fields": ("full_name", "avatar", "bio")}),
        ("Economy", {"fields": ("coins", "role", "is_vip")}),
        ("Permissions", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Presence", {"fields": ("is_online", "last_seen", "last_login")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("username", "email", "password1", "password2")}),
    )
    list_display = ("username", "email", "full_name", "role", "coins", "is_vip", "is_active")
    list_filter = ("role", "is_vip", "is_active", "is_staff")
    search_fields = ("username", "email", "full_name")
    ordering = ("-created_at",)
    readonly_fields = ("last_seen", "last_login")


@admin.register(Follow)
class FollowAdmin(admin.ModelAdmin):
    list_display = ("id", "follower", "following", "created_at")
    raw_id_fields = ("follower", "following")


@admin.register(CoinTransaction)
class CoinTransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "amount", "reason", "created_at")
    list_filter = ("reason",)
    raw_id_fields = ("user",)
