from django.contrib import admin

from .models import ChatMessage, ChatThread


class MessageInline(admin.TabularInline):
    model = ChatMessage
    extra = 0
    fields = ('timestamp', 'sender_name', 'text', 'image_url')
    readonly_fields = ('timestamp', 'sender_name', 'text', 'image_url')
    ordering = ('timestamp', 'id')


@admin.register(ChatThread)
class ChatThreadAdmin(admin.ModelAdmin):
    list_display = ('donor_name', 'donor_id', 'last_message', 'last_message_from', 'last_message_time', 'read_by_admin')
    list_filter = ('read_by_admin',)
    search_fields = ('donor_name', 'donor_id', 'last_message')
    inlines = [MessageInline]
