from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static

urlpatterns = [
    path('admin/', admin.site.urls),

    # JWT refresh/verify (Djoser + SimpleJWT)
    path('api/auth/', include('djoser.urls.jwt')),

    # API
    path('api/', include('users.urls')),           # auth, profiles, follows, admin
    path('api/', include('posts.urls')),           # posts, likes, comments
    path('api/', include('notifications.urls')),   # notifications, web push
    path('api/chat/', include('chat.urls')),       # conversations and messages
]

# Uploaded media (avatars, attachments)
urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
