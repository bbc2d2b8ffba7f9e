from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone


class InvalidTransition(ValidationError):
    """Raised when a transaction status change is not allowed by the status machine."""


class Transaction(models.Model):
    TYPE_DONATION = 'donation'
    TYPE_SALE = 'sale'
    TYPE_CHOICES = (
        (TYPE_DONATION, 'Donation'),
        (TYPE_SALE, 'Sale'),
    )

    PENDING = 'Pending'
    PROCESSING = 'Processing'
    DELIVERED = 'Delivered'
    CONFIRMED = 'Confirmed'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'
    STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (PROCESSING, 'Processing'),
        (DELIVERED, 'Delivered'),
        (CONFIRMED, 'Confirmed'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    )
    # Pending → Processing → {Delivered → Confirmed} | Completed | Cancelled
    TRANSITIONS = {
        PENDING: (PROCESSING, COMPLETED, CANCELLED),
        PROCESSING: (DELIVERED, COMPLETED, CANCELLED),
        DELIVERED: (CONFIRMED, COMPLETED),
        CONFIRMED: (),
        COMPLETED: (),
        CANCELLED: (),
    }
    CONFIRMABLE = (PENDING, PROCESSING, DELIVERED)

    reference = models.CharField(max_length=32, unique=True, help_text="Ex: TRX-007")
    farmer_name = models.CharField(max_length=120, blank=True)
    buyer_id = models.CharField(max_length=64, blank=True, db_index=True, help_text="Member uid of the buyer/donor")
    buyer_name = models.CharField(max_length=120, blank=True)
    crop = models.CharField("Category", max_length=60, blank=True)
    quantity = models.CharField(max_length=30, blank=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    items = models.JSONField(default=list, blank=True, help_text='List of {"name", "price"}')
    transaction_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=TYPE_DONATION, db_index=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'transactions'
        ordering = ('-timestamp',)

    def __str__(self):
        return f"{self.reference} - {self.get_transaction_type_display()} - {self.status}"

    @property
    def items_total(self):
        total = Decimal('0')
        for item in self.items or []:
            try:
                total += Decimal(str(item.get('price') or 0))
            except (AttributeError, ArithmeticError):
                continue
        return total

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())

    def transition(self, new_status, save=True):
        if not self.can_transition(new_status):
            raise InvalidTransition(f"Cannot move {self.reference} from {self.status} to {new_status}.")
        self.status = new_status
        if save:
            self.save(update_fields=['status', 'updated_at'])
        return self


class Member(models.Model):
    """Platform account (farmer, donor, market or admin) mirrored from the mobile app."""
    FARMER = 'Farmer'
    DONOR = 'Donor'
    MARKET = 'Market'
    ADMIN = 'Admin'
    TYPE_CHOICES = (
        (FARMER, 'Farmer'),
        (DONOR, 'Donor'),
        (MARKET, 'Market'),
        (ADMIN, 'Admin'),
    )

    uid = models.CharField(max_length=64, unique=True)
    firstname = models.CharField(max_length=80, blank=True)
    lastname = models.CharField(max_length=80, blank=True)
    email = models.EmailField(blank=True)
    user_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default=DONOR, db_index=True)
    location = models.CharField(max_length=120, blank=True)
    join_date = models.DateField(null=True, blank=True)

    class Meta:
        db_table = 'users'
        ordering = ('uid',)

    def __str__(self):
        return self.full_name or self.uid

    @property
    def full_name(self):
        return f"{self.firstname} {self.lastname}".strip()

    @property
    def has_full_name(self):
        return bool(self.firstname and self.lastname)


class Notification(models.Model):
    recipient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name='farmaid_notifications')
    title = models.CharField(max_length=200, blank=True)
    message = models.TextField()
    read = models.BooleanField(default=False, db_index=True)
    type = models.CharField(max_length=40, blank=True, help_text="Ex: donation_confirmation")
    transaction_type = models.CharField(max_length=10, blank=True, db_index=True)
    buyer_id = models.CharField(max_length=64, blank=True)
    donation_ref = models.CharField(max_length=32, blank=True)
    donor_name = models.CharField(max_length=120, blank=True)
    organization_id = models.CharField(max_length=64, blank=True)
    image_url = models.CharField(max_length=500, blank=True)
    confirmed = models.BooleanField(default=False)
    created = models.DateTimeField(default=timezone.now, db_index=True)
    updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'notifications'
        ordering = ('-created',)

    def __str__(self):
        return self.title or self.message[:40]


class Organization(models.Model):
    contact_person = models.CharField(max_length=120)
    organization_name = models.CharField(max_length=200)
    contact_number = models.CharField(max_length=20)
    email = models.EmailField()
    year_founded = models.PositiveIntegerField()
    certification_url = models.CharField(max_length=500)
    created = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'organizations'
        ordering = ('-created',)

    def __str__(self):
        return self.organization_name


class OrganizationSettings(models.Model):
    """Single row of dashboard settings."""
    display_name = models.CharField("Name", max_length=120, default="Admin User")
    email = models.EmailField(default="admin@farmaid.org")
    email_notifications = models.BooleanField(default=True)
    sms_notifications = models.BooleanField(default=False)
    app_notifications = models.BooleanField("In-app notifications", default=True)
    updated = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'organizationSettings'
        verbose_name = 'Organization settings'
        verbose_name_plural = 'Organization settings'

    def __str__(self):
        return "Organization settings"

    @classmethod
    def load(cls):
        obj = cls.objects.order_by('pk').first()
        if obj is None:
            obj = cls.objects.create()
        return obj


class AuditLog(models.Model):
    action = models.CharField(max_length=120)
    details = models.TextField(blank=True)
    user = models.CharField(max_length=120, default="SuperAdmin")
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'auditLogs'
        ordering = ('-timestamp',)

    def __str__(self):
        return f"{self.timestamp:%Y-%m-%d %H:%M} {self.user}: {self.action}"
