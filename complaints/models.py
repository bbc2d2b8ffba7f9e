from django.db import models
from django.utils import timezone

ADMIN_SENDER = 'admin'


class ChatThread(models.Model):
    """Donor ↔ organization conversation, keyed by the donor's uid.

    Carries a denormalized summary of the last message. `read_by_admin` is
    False only while the latest message comes from the donor.
    """
    donor_id = models.CharField(max_length=64, primary_key=True)
    donor_name = models.CharField(max_length=120, default="Donor")
    last_message = models.TextField(blank=True)
    last_message_from = models.CharField(max_length=64, default="donor")
    last_message_time = models.DateTimeField(null=True, blank=True, db_index=True)
    read_by_admin = models.BooleanField(default=False)

    class Meta:
        db_table = 'donationOrgChats'
        ordering = ('-last_message_time',)
        verbose_name = 'Chat thread'
        verbose_name_plural = 'Chat threads'

    def __str__(self):
        return f"{self.donor_name} ({self.donor_id})"

    @property
    def is_unread(self):
        return self.last_message_from != ADMIN_SENDER and not self.read_by_admin


class ChatMessage(models.Model):
    thread = models.ForeignKey(ChatThread, on_delete=models.CASCADE, related_name='messages')
    text = models.TextField(blank=True)
    image_url = models.CharField(max_length=500, null=True, blank=True)
    sender_id = models.CharField(max_length=64)
    sender_name = models.CharField(max_length=120, blank=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'messages'
        ordering = ('timestamp', 'id')

    def __str__(self):
        return f"{self.sender_name or self.sender_id}: {self.text[:40] or '[Image]'}"

    @property
    def from_admin(self):
        return self.sender_id == ADMIN_SENDER
