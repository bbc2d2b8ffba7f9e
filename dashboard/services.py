import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.core import serializers
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.db.models import Q, Value
from django.db.models.functions import Concat
from django.utils import timezone

from .models import AuditLog, Member, Notification, Organization, OrganizationSettings, Transaction
from . import uploads

logger = logging.getLogger(__name__)

DEMO_SESSION_KEY = 'farmaid_demo_authenticated'
DEMO_UNREAD_COUNT = 3


def is_demo(request):
    return bool(request.session.get(DEMO_SESSION_KEY))


def sample_notifications():
    now = timezone.now()
    return [
        Notification(id=1, title="New Donation Received", message="Metro Food Bank donated 150kg of rice",
                     created=now - timedelta(hours=2), read=False),
        Notification(id=2, title="New Message", message="John Doe sent you a message",
                     created=now - timedelta(hours=5), read=False),
        Notification(id=3, title="Approval Required", message="New farmer registration needs approval",
                     created=now - timedelta(hours=8), read=False),
    ]


def sample_members():
    return [
        Member(uid="USR-001", firstname="Juan", lastname="Dela Cruz", user_type=Member.FARMER, location="Batangas"),
        Member(uid="USR-002", firstname="Maria", lastname="Santos", user_type=Member.DONOR, location="Manila"),
        Member(uid="USR-003", firstname="Pedro", lastname="Garcia", user_type=Member.FARMER, location="Laguna"),
        Member(uid="USR-004", firstname="Ana", lastname="Reyes", user_type=Member.ADMIN, location="Quezon City"),
    ]


# Notifications

def fetch_unread_count(request):
    if is_demo(request):
        return DEMO_UNREAD_COUNT
    if not request.user.is_authenticated:
        return 0
    try:
        return Notification.objects.filter(recipient=request.user, read=False).count()
    except DatabaseError:
        logger.exception("Error fetching unread notifications")
        return 0


def fetch_notifications(request, limit=None):
    limit = limit or settings.FARMAID_NOTIFICATIONS_LIMIT
    if is_demo(request):
        return sample_notifications()
    if not request.user.is_authenticated:
        return []
    try:
        return list(Notification.objects.filter(recipient=request.user).order_by('-created')[:limit])
    except DatabaseError:
        logger.exception("Error fetching notifications, using sample data")
        return sample_notifications()


def mark_notification_read(request, notification_id):
    if not request.user.is_authenticated:
        return False
    updated = Notification.objects.filter(pk=notification_id, recipient=request.user).update(read=True, updated=timezone.now())
    return updated > 0


def delete_notification(request, notification_id):
    if not request.user.is_authenticated:
        return False
    deleted, _ = Notification.objects.filter(pk=notification_id, recipient=request.user).delete()
    return deleted > 0


def create_notification(user, title, message, **extra):
    return Notification.objects.create(recipient=user, title=title, message=message, **extra)


# Users

def _sample_matches(member, term):
    return any(term in (value or '').lower() for value in (member.full_name, member.user_type, member.location, member.uid))


def fetch_members(search='', limit=None):
    """Members matching `search` (name, role, location or id) in uid order, capped at `limit`.

    Sample members stand in only when the collection is empty or unreadable.
    """
    limit = limit or settings.FARMAID_USERS_LIMIT
    term = (search or '').strip()
    try:
        if not Member.objects.exists():
            logger.info("No users found, using sample data")
            return [m for m in sample_members() if _sample_matches(m, term.lower())]
        qs = Member.objects.all()
        if term:
            qs = qs.annotate(full=Concat('firstname', Value(' '), 'lastname')).filter(
                Q(full__icontains=term) | Q(user_type__icontains=term)
                | Q(location__icontains=term) | Q(uid__icontains=term)
            )
        return list(qs[:limit])
    except DatabaseError:
        logger.exception("Error fetching users, using sample data")
        return sample_members()


def resolve_member_name(uid):
    if not uid:
        return ''
    member = Member.objects.filter(uid=uid).first()
    return member.full_name if member else ''


# Audit

def log_admin_action(action, details='', user='SuperAdmin'):
    try:
        return AuditLog.objects.create(action=action, details=details or '', user=user)
    except DatabaseError:
        logger.exception("Failed to log action %s", action)
        return None


def actor_label(request):
    if request.user.is_authenticated:
        return request.user.get_username()
    if is_demo(request):
        return 'demo-admin'
    return 'SuperAdmin'


# Overview

def time_ago(value, now=None):
    now = now or timezone.now()
    seconds = max(0, int((now - value).total_seconds()))
    if seconds < 60:
        return f"{seconds}s ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def personalize_activity(message, buyer_id):
    """Replace a leading "you" with the buyer's full name."""
    if not buyer_id or not isinstance(message, str):
        return message
    stripped = message.strip()
    if not stripped.lower().startswith('you'):
        return message
    name = resolve_member_name(buyer_id)
    if not name:
        return message
    return name + stripped[3:]


def overview_stats(now=None):
    now = now or timezone.now()
    local_now = timezone.localtime(now)
    donations = Transaction.objects.filter(transaction_type=Transaction.TYPE_DONATION)

    total = Decimal('0')
    monthly = Decimal('0')
    donor_ids = set()
    for tx in donations:
        total += tx.total_amount or 0
        ts = timezone.localtime(tx.timestamp)
        if ts.year == local_now.year and ts.month == local_now.month:
            monthly += tx.items_total
        if tx.buyer_id:
            donor_ids.add(tx.buyer_id)

    total_donors = sum(1 for m in Member.objects.filter(uid__in=donor_ids) if m.has_full_name)

    activities = []
    for notif in Notification.objects.filter(transaction_type=Transaction.TYPE_DONATION).order_by('-created'):
        activities.append({
            'id': notif.pk,
            'message': personalize_activity(notif.message, notif.buyer_id),
            'timestamp': notif.created,
            'ago': time_ago(notif.created, now),
        })

    return {
        'total_donations': total,
        'monthly_donations': monthly,
        'total_donors': total_donors,
        'active_farmers': Member.objects.filter(user_type=Member.FARMER).count(),
        'active_markets': Member.objects.filter(user_type=Member.MARKET).count(),
        'recent_activities': activities,
    }


# Analytics

def _month_starts(now, count):
    local_now = timezone.localtime(now)
    year, month = local_now.year, local_now.month
    months = []
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(months))


def analytics_summary(now=None, months=6):
    now = now or timezone.now()
    donations = list(Transaction.objects.filter(transaction_type=Transaction.TYPE_DONATION))

    buckets = {ym: Decimal('0') for ym in _month_starts(now, months)}
    by_category = {}
    donors = set()
    total = Decimal('0')
    for tx in donations:
        ts = timezone.localtime(tx.timestamp)
        key = (ts.year, ts.month)
        if key in buckets:
            buckets[key] += tx.total_amount
        category = tx.crop or 'Other'
        by_category[category] = by_category.get(category, Decimal('0')) + tx.total_amount
        total += tx.total_amount
        if tx.buyer_id:
            donors.add(tx.buyer_id)

    monthly = [
        {'name': datetime(year, month, 1).strftime('%b'), 'value': value}
        for (year, month), value in buckets.items()
    ]
    categories = sorted(
        ({'name': name, 'value': value} for name, value in by_category.items()),
        key=lambda x: x['value'], reverse=True,
    )

    growth = None
    if len(monthly) >= 2:
        previous, current = monthly[-2]['value'], monthly[-1]['value']
        if previous:
            growth = round(float((current - previous) / previous * 100))
    average = (total / len(donations)).quantize(Decimal('0.01')) if donations else Decimal('0')

    return {
        'monthly': monthly,
        'categories': categories,
        'total_donations': total,
        'total_donors': len(donors),
        'average_donation': average,
        'growth': f"{growth:+d}%" if growth is not None else None,
    }


# Transactions

def filter_transactions(queryset, search='', tx_type='', status=''):
    term = (search or '').strip()
    if term:
        queryset = queryset.filter(
            Q(reference__icontains=term) | Q(farmer_name__icontains=term)
            | Q(buyer_name__icontains=term) | Q(crop__icontains=term)
        )
    if tx_type:
        queryset = queryset.filter(transaction_type=tx_type)
    if status:
        queryset = queryset.filter(status=status)
    return queryset


# Confirmation notices

def submit_receipt_notice(donation, message, image=None, progress=None, organization_id='metro-food-bank'):
    """Dialog-style receipt confirmation: notification + Delivered → Confirmed."""
    message = (message or '').strip()
    if not message:
        raise ValidationError("Please enter a message.", code='required')
    image_url = ''
    if image is not None:
        uploads.validate_image(image)
        image_url = uploads.upload_file(image, uploads.confirmation_image_path(image.name), progress)
    notification = Notification.objects.create(
        title="Donation confirmed",
        message=message,
        type='donation_confirmation',
        donation_ref=donation.reference,
        donor_name=donation.buyer_name,
        buyer_id=donation.buyer_id,
        organization_id=organization_id,
        image_url=image_url,
    )
    if donation.status == Transaction.DELIVERED:
        donation.transition(Transaction.CONFIRMED)
    return notification


def submit_organization_confirmation(organization_id, message, image=None, donation_ref='', progress=None):
    message = (message or '').strip()
    if not message:
        raise ValidationError("Please enter a message.", code='required')
    image_url = ''
    if image is not None:
        uploads.validate_image(image)
        image_url = uploads.upload_file(image, uploads.donation_image_path(organization_id, image.name), progress)
    return Notification.objects.create(
        title="Donation confirmed",
        message=message,
        type='donation_confirmation',
        organization_id=organization_id,
        donation_ref=donation_ref or '',
        image_url=image_url,
        confirmed=True,
    )


# Organization registration

def register_organization(cleaned, certification, progress=None):
    url = uploads.upload_file(certification, uploads.certification_path(certification.name), progress)
    return Organization.objects.create(
        contact_person=cleaned['contact_person'].strip(),
        organization_name=cleaned['organization_name'].strip(),
        contact_number=cleaned['contact_number'].strip(),
        email=cleaned['email'].strip(),
        year_founded=cleaned['year_founded'],
        certification_url=url,
    )


# Backup

BACKUP_MODELS = (Transaction, Member, Notification, Organization, OrganizationSettings, AuditLog)


def build_backup():
    """Dump every collection (chat threads and messages included) into a JSON-ready dict."""
    from complaints.models import ChatThread, ChatMessage

    payload = {'generated_at': timezone.now().isoformat(), 'collections': {}}
    for model in BACKUP_MODELS + (ChatThread, ChatMessage):
        raw = serializers.serialize('json', model.objects.all())
        payload['collections'][model._meta.db_table] = json.loads(raw)
    return payload


def backup_filename(now=None):
    now = timezone.localtime(now or timezone.now())
    return f"farmaid_backup_{now.strftime('%Y%m%d_%H%M%S')}.json"
