import csv
from datetime import datetime

from django.contrib import admin
from django.http import HttpResponse
from django.utils import timezone

from .models import AuditLog, Member, Notification, Organization, OrganizationSettings, Transaction


class RecentDateFilter(admin.SimpleListFilter):
    title = 'Period'
    parameter_name = 'period'
    date_field = 'timestamp'

    def lookups(self, request, model_admin):
        return [
            ('1d', 'Last 24h'),
            ('7d', 'Last 7 days'),
            ('30d', 'Last 30 days'),
        ]

    def queryset(self, request, queryset):
        days = {'1d': 1, '7d': 7, '30d': 30}.get(self.value())
        if not days:
            return queryset
        since = timezone.now() - timezone.timedelta(days=days)
        return queryset.filter(**{f'{self.date_field}__gte': since})


class RecentCreatedFilter(RecentDateFilter):
    date_field = 'created'


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('reference', 'transaction_type', 'status', 'farmer_name', 'buyer_name', 'crop', 'total_amount', 'timestamp')
    list_filter = ('transaction_type', 'status', RecentDateFilter, 'crop')
    search_fields = ('reference', 'farmer_name', 'buyer_name', 'buyer_id', 'crop')
    date_hierarchy = 'timestamp'
    actions = ['export_transactions_csv']

    def export_transactions_csv(self, request, queryset):
        """Export the selected transactions as CSV."""
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        response = HttpResponse(content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="transactions_{stamp}.csv"'
        writer = csv.writer(response)
        writer.writerow(['Reference', 'Type', 'Status', 'Farmer', 'Buyer/Donor', 'Crop', 'Quantity', 'Amount', 'Date'])
        for tx in queryset:
            writer.writerow([
                tx.reference,
                tx.get_transaction_type_display(),
                tx.status,
                tx.farmer_name,
                tx.buyer_name,
                tx.crop,
                tx.quantity,
                tx.total_amount,
                tx.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
            ])
        return response
    export_transactions_csv.short_description = 'Export selected transactions to CSV'


@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ('uid', 'firstname', 'lastname', 'user_type', 'location', 'join_date')
    list_filter = ('user_type',)
    search_fields = ('uid', 'firstname', 'lastname', 'email', 'location')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'recipient', 'type', 'read', 'created')
    list_filter = ('read', 'type', RecentCreatedFilter)
    search_fields = ('title', 'message', 'donation_ref', 'donor_name')


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ('organization_name', 'contact_person', 'contact_number', 'email', 'year_founded', 'created')
    search_fields = ('organization_name', 'contact_person', 'email')


@admin.register(OrganizationSettings)
class OrganizationSettingsAdmin(admin.ModelAdmin):
    def has_add_permission(self, request):
        if OrganizationSettings.objects.exists():
            return False
        return super().has_add_permission(request)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'user', 'action', 'details')
    list_filter = ('action', RecentDateFilter)
    readonly_fields = ('timestamp', 'user', 'action', 'details')
