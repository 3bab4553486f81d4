import re
from io import BytesIO

from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import InMemoryUploadedFile
from PIL import Image, UnidentifiedImageError
from rest_framework import serializers

# HEIC (iPhone) avatars
from pillow_heif import register_heif_opener
register_heif_opener()

User = get_user_model()

USERNAME_RE = re.compile(r'^[a-zA-Z0-9.]{6,50}$')
FULL_NAME_RE = re.compile(r'^[^\W_]+(?: +[^\W_]+)*$')  # unicode letters/digits separated by spaces
PASSWORD_RULES = (
    (re.compile(r'[a-z]'), 'a lowercase letter'),
    (re.compile(r'[A-Z]'), 'an uppercase letter'),
    (re.compile(r'\d'), 'a digit'),
    (re.compile(r'[\W_]'), 'a special character'),
)


def avatar_url_for(user, request=None):
    url = user.avatar_url() if user else None
    if url and request is not None and not url.startswith(('http://', 'https://')):
        return request.build_absolute_uri(url)
    return url


class UserSummarySerializer(serializers.Serializer):
    """Compact identity used inside messages, conversations and notifications."""
    id = serializers.IntegerField()
    username = serializers.CharField()
    fullName = serializers.CharField(source='display_name')
    avatar = serializers.SerializerMethodField()
    isVip = serializers.BooleanField(source='is_vip')
    isOnline = serializers.BooleanField(source='is_online')

    def get_avatar(self, obj):
        return avatar_url_for(obj, self.context.get('request'))


class CurrentUserSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='full_name')
    avatar = serializers.SerializerMethodField()
    isVip = serializers.BooleanField(source='is_vip')

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'fullName', 'avatar', 'bio', 'coins', 'role', 'isVip']

    def get_avatar(self, obj):
        return avatar_url_for(obj, self.context.get('request'))


# ✅ Registration
class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField()
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)
    fullName = serializers.CharField(required=False, allow_blank=True)

    def validate_username(self, value):
        value = value.strip()
        if not USERNAME_RE.match(value):
            raise serializers.ValidationError(
                'Username must be 6-50 characters: letters, digits and dots only, no spaces.'
            )
        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError('Username or email is already in use.')
        return value

    def validate_email(self, value):
        value = value.strip()
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError('Username or email is already in use.')
        return value

    def validate_fullName(self, value):
        value = (value or '').strip()
        if not value:
            return value
        if not 2 <= len(value) <= 60:
            raise serializers.ValidationError('Full name must be 2-60 characters.')
        if not FULL_NAME_RE.match(value):
            raise serializers.ValidationError('Full name may only contain letters, digits and spaces.')
        return value

    def validate_password(self, value):
        if not 8 <= len(value) <= 50:
            raise serializers.ValidationError('Password must be 8-50 characters.')
        missing = [label for pattern, label in PASSWORD_RULES if not pattern.search(value)]
        if missing:
            raise serializers.ValidationError('Password must contain ' + ', '.join(missing) + '.')
        return value

    def create(self, validated_data):
        return User.objects.create_user(
            username=validated_data['username'],
            email=validated_data['email'],
            password=validated_data['password'],
            full_name=validated_data.get('fullName') or validated_data['username'],
        )


class LoginSerializer(serializers.Serializer):
    emailOrUsername = serializers.CharField()
    password = serializers.CharField(write_only=True)


# ✅ Public profile
class ProfileSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='full_name')
    avatar = serializers.SerializerMethodField()
    isVip = serializers.BooleanField(source='is_vip')
    isOnline = serializers.BooleanField(source='is_online')
    lastSeen = serializers.DateTimeField(source='last_seen')
    createdAt = serializers.DateTimeField(source='created_at')
    counts = serializers.SerializerMethodField()
    isFollowing = serializers.SerializerMethodField()
    isFriend = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'username', 'fullName', 'avatar', 'bio', 'coins', 'role', 'isVip',
            'isOnline', 'lastSeen', 'createdAt', 'counts', 'isFollowing', 'isFriend',
        ]

    def _viewer(self):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        return user if user is not None and user.is_authenticated else None

    def get_avatar(self, obj):
        return avatar_url_for(obj, self.context.get('request'))

    def get_counts(self, obj):
        return {
            'followers': obj.follower_links.count(),
            'following': obj.following_links.count(),
            'posts': obj.posts.count(),
        }

    def get_isFollowing(self, obj) -> bool:
        viewer = self._viewer()
        return bool(viewer and viewer.pk != obj.pk and viewer.is_following(obj))

    def get_isFriend(self, obj) -> bool:
        viewer = self._viewer()
        return bool(viewer and viewer.pk != obj.pk and viewer.is_friend(obj))


# ✅ Own profile update
class ProfileUpdateSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='full_name', required=False)
    avatar = serializers.ImageField(required=False, allow_null=True, use_url=True)

    class Meta:
        model = User
        fields = ['fullName', 'bio', 'avatar']

    def validate_fullName(self, value):
        return RegisterSerializer().validate_fullName(value)

    def validate_avatar(self, avatar):
        if not avatar:
            return avatar

        try:
            image = Image.open(avatar)

            if image.mode != 'RGB':
                image = image.convert('RGB')

            buffer = BytesIO()
            image.save(buffer, format='JPEG', quality=85)
            buffer.seek(0)

            new_name = avatar.name.rsplit('.', 1)[0] + '.jpg'

            return InMemoryUploadedFile(
                file=buffer,
                field_name='avatar',
                name=new_name,
                content_type='image/jpeg',
                size=buffer.getbuffer().nbytes,
                charset=None
            )

        except UnidentifiedImageError:
            raise serializers.ValidationError(
                'Could not read the file as an image. Supported formats: JPG, PNG, GIF, HEIC.'
            )

    def update(self, instance, validated_data):
        """Removes the stored avatar file when avatar is explicitly cleared."""
        if 'avatar' in validated_data and validated_data['avatar'] is None:
            if instance.avatar:
                instance.avatar.delete(save=False)
        return super().update(instance, validated_data)


# ✅ Admin
class AdminUserSerializer(serializers.ModelSerializer):
    fullName = serializers.CharField(source='full_name', read_only=True)
    isVip = serializers.BooleanField(source='is_vip', required=False)
    isActive = serializers.BooleanField(source='is_active', required=False)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'fullName', 'role', 'isVip', 'coins', 'isActive']
        read_only_fields = ['id', 'username', 'email', 'coins']


class CoinAdjustmentSerializer(serializers.Serializer):
    amount = serializers.IntegerField()
    reason = serializers.CharField(required=False, allow_blank=True, max_length=120)

    def validate_amount(self, value):
        if value == 0:
            raise serializers.ValidationError('Amount must be non-zero.')
        return value
