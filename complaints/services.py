"""Write paths for donor ↔ organization chats.

Every admin-side write that touches a thread summary goes through here so
that `read_by_admin` stays True after any admin send or acknowledgment.
The thread-summary write and the message write are two separate writes:
a failure between them leaves the summary ahead of the message log.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.utils import timezone

from dashboard import uploads
from dashboard.models import Transaction
from dashboard.services import log_admin_action
from .models import ADMIN_SENDER, ChatMessage, ChatThread

logger = logging.getLogger(__name__)

ADMIN_NAME = 'Admin'


class ConfirmationError(ValidationError):
    """A donation cannot be confirmed in its current state."""


def mark_as_read(donor_id):
    thread = ChatThread.objects.filter(pk=donor_id).first()
    if thread is None:
        return False
    if not thread.read_by_admin:
        thread.read_by_admin = True
        thread.save(update_fields=['read_by_admin'])
    return True


def upsert_thread_summary(donor_id, last_message, sender_id, when, donor_name=None, read_by_admin=True):
    defaults = {
        'last_message': last_message,
        'last_message_from': sender_id,
        'last_message_time': when,
        'read_by_admin': read_by_admin,
    }
    if donor_name:
        defaults['donor_name'] = donor_name
    thread, _ = ChatThread.objects.update_or_create(donor_id=donor_id, defaults=defaults)
    return thread


def send_message(donor_id, text='', image=None, donor_name=None, progress=None):
    """Admin send. Returns the created ChatMessage, or None when there is nothing to send."""
    text = (text or '').strip()
    if not text and image is None:
        return None
    image_url = None
    if image is not None:
        uploads.validate_image(image)
        image_url = uploads.upload_file(image, uploads.chat_image_path(donor_id, image.name), progress)

    return post_admin_message(donor_id, text, image_url=image_url, donor_name=donor_name)


def post_admin_message(donor_id, text, image_url=None, donor_name=None):
    now = timezone.now()
    upsert_thread_summary(donor_id, text, ADMIN_SENDER, now, donor_name=donor_name, read_by_admin=True)
    try:
        return ChatMessage.objects.create(
            thread_id=donor_id,
            text=text,
            image_url=image_url,
            sender_id=ADMIN_SENDER,
            sender_name=ADMIN_NAME,
            timestamp=now,
        )
    except DatabaseError:
        logger.exception("Thread %s summary updated but message write failed", donor_id)
        raise


def receive_donor_message(donor_id, donor_name, text='', image_url=None):
    """Donor-side write as performed by the donor app."""
    text = (text or '').strip()
    if not text and not image_url:
        return None
    now = timezone.now()
    upsert_thread_summary(donor_id, text, donor_id, now, donor_name=donor_name, read_by_admin=False)
    return ChatMessage.objects.create(
        thread_id=donor_id,
        text=text,
        image_url=image_url,
        sender_id=donor_id,
        sender_name=donor_name or '',
        timestamp=now,
    )


def confirm_donation(transaction, note, image=None, progress=None, actor='SuperAdmin'):
    """Acknowledge receipt of a donation and tell the donor in their chat thread.

    Steps run in order without a surrounding transaction: receipt upload,
    status → Completed, thread summary upsert, chat message, audit entry.
    """
    note = (note or '').strip()
    if transaction.status not in Transaction.CONFIRMABLE:
        raise ConfirmationError(f"Donation {transaction.reference} is already {transaction.status}.", code='not_pending')
    if not transaction.buyer_id:
        raise ConfirmationError(f"Donation {transaction.reference} has no donor to notify.", code='no_donor')
    if not note:
        raise ConfirmationError("Please enter a message.", code='required')
    if image is not None:
        uploads.validate_image(image)

    image_url = None
    if image is not None:
        image_url = uploads.upload_file(image, uploads.receipt_path(transaction.reference, image.name), progress)

    transaction.transition(Transaction.COMPLETED)

    donor_name = transaction.buyer_name or None
    try:
        message = post_admin_message(transaction.buyer_id, note, image_url=image_url, donor_name=donor_name)
    except DatabaseError:
        logger.exception("Donation %s completed but donor chat was not updated", transaction.reference)
        raise

    log_admin_action('confirm_donation', f"{transaction.reference} confirmed for {transaction.buyer_id}", user=actor)
    return message
