from django.urls import path

from .views import (
    ConversationDeleteView,
    ConversationListView,
    ConversationMuteView,
    ConversationStartView,
    GroupCreateView,
    GroupDetailView,
    GroupLeaveView,
    GroupMemberAddView,
    GroupMemberRemoveView,
    MarkReadView,
    MessageDetailView,
    RoomMessagesView,
)

app_name = 'chat'

urlpatterns = [
    # conversations
    path('conversations', ConversationListView.as_view(), name='conversations'),
    path('conversation/start', ConversationStartView.as_view(), name='conversation-start'),
    path('conversation/<int:pk>', ConversationDeleteView.as_view(), name='conversation-delete'),
    path('conversation/<int:pk>/mute', ConversationMuteView.as_view(), name='conversation-mute'),

    # messages
    path('<int:room_id>/messages', RoomMessagesView.as_view(), name='room-messages'),
    path('message/<int:pk>', MessageDetailView.as_view(), name='message-detail'),
    path('read/<int:room_id>', MarkReadView.as_view(), name='mark-read'),

    # groups
    path('group/create', GroupCreateView.as_view(), name='group-create'),
    path('group/<int:pk>', GroupDetailView.as_view(), name='group-detail'),
    path('group/<int:pk>/member/add', GroupMemberAddView.as_view(), name='group-member-add'),
    path('group/<int:pk>/member/remove', GroupMemberRemoveView.as_view(), name='group-member-remove'),
    path('group/<int:pk>/leave', GroupLeaveView.as_view(), name='group-leave'),
]
