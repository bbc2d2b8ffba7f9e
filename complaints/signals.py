from django.db.models.signals import post_save
from django.dispatch import receiver

from .live import hub, MESSAGES_TOPIC, THREAD_TOPIC
from .models import ChatMessage, ChatThread


def message_snapshot(donor_id):
    return list(ChatMessage.objects.filter(thread_id=donor_id).order_by('timestamp', 'id'))


@receiver(post_save, sender=ChatThread)
def push_thread_snapshot(sender, instance, **kwargs):  # type: ignore
    if not hub.has_subscribers(THREAD_TOPIC, instance.pk):
        return
    # Re-read: partial saves leave the in-memory instance possibly stale
    fresh = ChatThread.objects.filter(pk=instance.pk).first()
    if fresh is not None:
        hub.publish(THREAD_TOPIC, instance.pk, fresh)


@receiver(post_save, sender=ChatMessage)
def push_message_snapshot(sender, instance, created, **kwargs):  # type: ignore
    if not hub.has_subscribers(MESSAGES_TOPIC, instance.thread_id):
        return
    hub.publish(MESSAGES_TOPIC, instance.thread_id, message_snapshot(instance.thread_id))
