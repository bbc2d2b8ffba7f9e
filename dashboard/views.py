import json
import logging

from django.contrib import messages
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError
from django.http import HttpResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.views.decorators.http import require_POST

from complaints.services import confirm_donation
from .decorators import dashboard_login_required
from .forms import DonationConfirmationForm, ReceiptNoticeForm, SettingsForm, StatusForm
from .models import OrganizationSettings, Transaction
from . import services

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    Transaction.DELIVERED: 'text-green',
    Transaction.CONFIRMED: 'text-blue',
    Transaction.COMPLETED: 'text-blue',
    Transaction.PROCESSING: 'text-orange',
    Transaction.PENDING: 'text-yellow',
    Transaction.CANCELLED: 'text-gray',
}


def _error_text(exc):
    return ' '.join(exc.messages) if hasattr(exc, 'messages') else str(exc)


@dashboard_login_required
def overview(request):
    return render(request, 'dashboard/overview.html', services.overview_stats())


@dashboard_login_required
def transactions(request):
    search = request.GET.get('q', '').strip()
    tx_type = request.GET.get('type', '').strip()
    status = request.GET.get('status', '').strip()
    qs = Transaction.objects.all()
    items = services.filter_transactions(qs, search, tx_type, status)
    return render(request, 'dashboard/transactions.html', {
        'transactions': items,
        'types': sorted(set(qs.values_list('transaction_type', flat=True))),
        'statuses': sorted(set(qs.values_list('status', flat=True))),
        'search': search,
        'active_type': tx_type,
        'active_status': status,
        'status_form': StatusForm(),
    })


@dashboard_login_required
@require_POST
def transaction_status(request, reference):
    tx = get_object_or_404(Transaction, reference=reference)
    form = StatusForm(request.POST)
    if not form.is_valid():
        messages.error(request, "Unknown status.")
        return redirect('dashboard:transactions')
    try:
        tx.transition(form.cleaned_data['status'])
    except ValidationError as exc:
        messages.error(request, _error_text(exc))
    else:
        services.log_admin_action('transaction_status', f"{tx.reference} → {tx.status}", user=services.actor_label(request))
        messages.success(request, f"{tx.reference} is now {tx.status}.")
    return redirect('dashboard:transactions')


@dashboard_login_required
def donations(request):
    rows = []
    for tx in Transaction.objects.filter(transaction_type=Transaction.TYPE_DONATION):
        rows.append({
            'tx': tx,
            'color': STATUS_COLORS.get(tx.status, 'text-gray'),
            'can_confirm': tx.status in Transaction.CONFIRMABLE and bool(tx.buyer_id),
            'can_acknowledge': tx.status == Transaction.DELIVERED,
        })
    return render(request, 'dashboard/donations.html', {
        'rows': rows,
        'confirm_form': DonationConfirmationForm(),
        'receipt_form': ReceiptNoticeForm(),
    })


@dashboard_login_required
@require_POST
def donation_confirm(request, reference):
    tx = get_object_or_404(Transaction, reference=reference, transaction_type=Transaction.TYPE_DONATION)
    form = DonationConfirmationForm(request.POST, request.FILES)
    if not form.is_valid():
        for errors in form.errors.values():
            messages.error(request, ' '.join(errors))
        return redirect('dashboard:donations')
    try:
        confirm_donation(tx, form.cleaned_data['note'], image=form.cleaned_data.get('image'),
                         actor=services.actor_label(request))
    except ValidationError as exc:
        messages.error(request, _error_text(exc))
    except (DatabaseError, OSError):
        logger.exception("Donation confirmation failed for %s", reference)
        messages.error(request, "There was an error submitting the confirmation. Please try again.")
    else:
        messages.success(request, "Donation confirmation has been successfully submitted.")
    return redirect('dashboard:donations')


@dashboard_login_required
@require_POST
def donation_receipt(request, reference):
    tx = get_object_or_404(Transaction, reference=reference, transaction_type=Transaction.TYPE_DONATION)
    form = ReceiptNoticeForm(request.POST, request.FILES)
    if not form.is_valid():
        for errors in form.errors.values():
            messages.error(request, ' '.join(errors))
        return redirect('dashboard:donations')
    try:
        services.submit_receipt_notice(tx, form.cleaned_data['message'], image=form.cleaned_data.get('image'))
    except ValidationError as exc:
        messages.error(request, _error_text(exc))
    except (DatabaseError, OSError):
        logger.exception("Receipt notice failed for %s", reference)
        messages.error(request, "There was an error submitting the confirmation. Please try again.")
    else:
        messages.success(request, "Confirmation sent.")
    return redirect('dashboard:donations')


@dashboard_login_required
def organization_confirmation(request):
    org_id = request.GET.get('org') or request.POST.get('org') or 'metro-food-bank'
    if request.method == 'POST':
        form = ReceiptNoticeForm(request.POST, request.FILES)
        if form.is_valid():
            try:
                services.submit_organization_confirmation(
                    org_id, form.cleaned_data['message'], image=form.cleaned_data.get('image'),
                    donation_ref=request.POST.get('donation', ''),
                )
            except (DatabaseError, OSError):
                logger.exception("Organization confirmation failed for %s", org_id)
                messages.error(request, "There was an error submitting your confirmation. Please try again.")
            else:
                messages.success(request, "Your donation confirmation has been successfully submitted!")
                return redirect(f"{request.path}?org={org_id}")
        else:
            messages.error(request, "Please enter a message.")
    else:
        form = ReceiptNoticeForm()
    return render(request, 'dashboard/organization_confirmation.html', {'form': form, 'org_id': org_id})


@dashboard_login_required
def analytics(request):
    return render(request, 'dashboard/analytics.html', services.analytics_summary())


@dashboard_login_required
def notifications(request):
    items = services.fetch_notifications(request)
    return render(request, 'dashboard/notifications.html', {
        'notifications': items,
        'unread_count': sum(1 for n in items if not n.read),
    })


@dashboard_login_required
@require_POST
def notification_read(request, pk):
    if not services.mark_notification_read(request, pk):
        messages.error(request, "Notification not found.")
    return redirect('dashboard:notifications')


@dashboard_login_required
@require_POST
def notification_delete(request, pk):
    if services.delete_notification(request, pk):
        messages.success(request, "Notification deleted.")
    else:
        messages.error(request, "Notification not found.")
    return redirect('dashboard:notifications')


@dashboard_login_required
def users(request):
    search = request.GET.get('q', '').strip()
    members = services.fetch_members(search=search)
    return render(request, 'dashboard/users.html', {'members': members, 'search': search})


@dashboard_login_required
def settings_view(request):
    instance = OrganizationSettings.load()
    if request.method == 'POST':
        form = SettingsForm(request.POST, instance=instance)
        if form.is_valid():
            form.save()
            services.log_admin_action('update_settings', ', '.join(form.changed_data), user=services.actor_label(request))
            messages.success(request, "Settings saved.")
            return redirect('dashboard:settings')
        messages.error(request, "Please correct the errors below.")
    else:
        form = SettingsForm(instance=instance)
    return render(request, 'dashboard/settings.html', {'form': form})


@dashboard_login_required
def settings_backup(request):
    """Download every collection as a timestamped JSON attachment."""
    try:
        payload = services.build_backup()
    except DatabaseError:
        logger.exception("Backup export failed")
        messages.error(request, "Backup failed. Please try again.")
        return redirect('dashboard:settings')
    services.log_admin_action('backup_export', '', user=services.actor_label(request))
    response = HttpResponse(json.dumps(payload, cls=DjangoJSONEncoder, indent=2), content_type='application/json; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{services.backup_filename()}"'
    return response
