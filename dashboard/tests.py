import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import BytesIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone
from PIL import Image

from dashboard import services, uploads
from dashboard.forms import OrganizationRegistrationForm
from dashboard.models import (
    AuditLog, InvalidTransition, Member, Notification, Organization, OrganizationSettings, Transaction,
)
from dashboard.signals import FAIL_KEY, LOCK_UNTIL_KEY


def make_image(name='photo.jpg', fmt='JPEG', content_type='image/jpeg'):
    buf = BytesIO()
    Image.new('RGB', (8, 8), 'green').save(buf, fmt)
    return SimpleUploadedFile(name, buf.getvalue(), content_type=content_type)


def demo_login(client):
    return client.post(reverse('dashboard:login'), {'email': 'admin@farmaid.gov', 'password': 'anything'})


class MediaRootMixin:
    def setUp(self):
        super().setUp()
        media = tempfile.mkdtemp()
        override = override_settings(MEDIA_ROOT=media)
        override.enable()
        self.addCleanup(override.disable)
        self.addCleanup(shutil.rmtree, media, ignore_errors=True)


class TransactionModelTests(TestCase):
    def setUp(self):
        self.tx = Transaction.objects.create(reference='TRX-001', buyer_id='D1', total_amount=Decimal('100'))

    def test_allowed_transitions(self):
        self.tx.transition(Transaction.PROCESSING)
        self.tx.transition(Transaction.DELIVERED)
        self.tx.transition(Transaction.CONFIRMED)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, Transaction.CONFIRMED)

    def test_terminal_status_cannot_move(self):
        self.tx.transition(Transaction.COMPLETED)
        with self.assertRaises(InvalidTransition):
            self.tx.transition(Transaction.PENDING)
        with self.assertRaises(InvalidTransition):
            self.tx.transition(Transaction.CANCELLED)

    def test_pending_cannot_skip_to_confirmed(self):
        self.assertFalse(self.tx.can_transition(Transaction.CONFIRMED))
        with self.assertRaises(ValidationError):
            self.tx.transition(Transaction.CONFIRMED)
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, Transaction.PENDING)

    def test_items_total_ignores_bad_entries(self):
        self.tx.items = [{'name': 'Rice', 'price': 300}, {'name': 'Corn', 'price': '150.50'}, 'junk', {'name': 'Free'}]
        self.assertEqual(self.tx.items_total, Decimal('450.50'))


class UploadTests(MediaRootMixin, TestCase):
    def test_jpeg_and_png_accepted(self):
        self.assertTrue(uploads.validate_image(make_image()))
        self.assertTrue(uploads.validate_image(make_image('p.png', 'PNG', 'image/png')))

    def test_declared_type_rejected(self):
        upload = make_image('anim.gif', 'GIF', 'image/gif')
        with self.assertRaises(ValidationError) as ctx:
            uploads.validate_image(upload)
        self.assertEqual(ctx.exception.code, 'invalid_type')

    @override_settings(FARMAID_MAX_UPLOAD_BYTES=16)
    def test_oversized_file_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            uploads.validate_image(make_image())
        self.assertEqual(ctx.exception.code, 'too_large')

    def test_renamed_non_image_rejected(self):
        fake = SimpleUploadedFile('notes.jpg', b'this is not an image', content_type='image/jpeg')
        with self.assertRaises(ValidationError) as ctx:
            uploads.validate_image(fake)
        self.assertEqual(ctx.exception.code, 'invalid_image')

    def test_content_must_match_declared_type(self):
        png_as_jpeg = make_image('p.jpg', 'PNG', 'image/jpeg')
        with self.assertRaises(ValidationError):
            uploads.validate_image(png_as_jpeg)

    def test_paths(self):
        self.assertEqual(uploads.receipt_path('TRX-007', 'my receipt.jpg', ts=1700000000000),
                         'receipts/TRX-007_1700000000000_my_receipt.jpg')
        self.assertEqual(uploads.chat_image_path('donor-42', 'a.png', ts=5), 'chat_images/donor-42_5_a.png')
        self.assertEqual(uploads.donation_image_path('metro', 'x.jpg', ts=5), 'donations/metro/5_x.jpg')
        self.assertEqual(uploads.certification_path('c.pdf', ts=5), 'certifications/5_c.pdf')
        self.assertTrue(uploads.confirmation_image_path('c.jpg').startswith('donation-confirmations/'))

    def test_upload_reports_progress(self):
        steps = []
        url = uploads.upload_file(make_image(), 'receipts/TRX-1_1_photo.jpg', progress=steps.append)
        self.assertEqual(steps, [25, 75, 100])
        self.assertTrue(url.startswith('/media/receipts/'))
        self.assertTrue(default_storage.exists('receipts/TRX-1_1_photo.jpg'))


class LoginTests(TestCase):
    def setUp(self):
        self.client = Client()

    def test_panels_require_login(self):
        for name in ('overview', 'transactions', 'donations', 'analytics', 'notifications', 'users', 'settings'):
            resp = self.client.get(reverse(f'dashboard:{name}'))
            self.assertEqual(resp.status_code, 302)
            self.assertIn(reverse('dashboard:login'), resp['Location'])

    def test_demo_email_bypasses_password(self):
        resp = demo_login(self.client)
        self.assertRedirects(resp, reverse('dashboard:overview'))
        self.assertTrue(self.client.session[services.DEMO_SESSION_KEY])
        self.assertEqual(self.client.get(reverse('dashboard:overview')).status_code, 200)

    def test_logout_clears_demo_session(self):
        demo_login(self.client)
        self.client.get(reverse('dashboard:logout'))
        self.assertNotIn(services.DEMO_SESSION_KEY, self.client.session)
        self.assertEqual(self.client.get(reverse('dashboard:overview')).status_code, 302)

    def test_staff_login_by_email(self):
        get_user_model().objects.create_user('ops', email='ops@farmaid.org', password='s3cret', is_staff=True)
        resp = self.client.post(reverse('dashboard:login'), {'email': 'OPS@farmaid.org', 'password': 's3cret'})
        self.assertRedirects(resp, reverse('dashboard:overview'))
        self.assertTrue(AuditLog.objects.filter(action='login', user='ops').exists())

    def test_non_staff_rejected(self):
        get_user_model().objects.create_user('donor', email='donor@example.com', password='pw')
        resp = self.client.post(reverse('dashboard:login'), {'email': 'donor@example.com', 'password': 'pw'})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get(reverse('dashboard:overview')).status_code, 302)

    def test_lockout_after_three_failures(self):
        for _ in range(3):
            resp = self.client.post(reverse('dashboard:login'), {'email': 'nobody@example.com', 'password': 'bad'})
            self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.session[FAIL_KEY], 3)
        self.assertIn(LOCK_UNTIL_KEY, self.client.session)
        resp = demo_login(self.client)
        self.assertEqual(resp.status_code, 429)
        self.assertNotIn(services.DEMO_SESSION_KEY, self.client.session)


class OverviewTests(TestCase):
    def setUp(self):
        now = timezone.now()
        Member.objects.create(uid='D1', firstname='Juan', lastname='Dela Cruz', user_type=Member.DONOR)
        Member.objects.create(uid='D2', firstname='Maria', user_type=Member.DONOR)
        Member.objects.create(uid='F1', firstname='Pedro', lastname='Garcia', user_type=Member.FARMER)
        Member.objects.create(uid='F2', firstname='Jose', lastname='Rizal', user_type=Member.FARMER)
        Member.objects.create(uid='M1', firstname='Palengke', lastname='Market', user_type=Member.MARKET)
        Transaction.objects.create(reference='TRX-001', buyer_id='D1', total_amount=Decimal('1000'),
                                   items=[{'name': 'Rice', 'price': 300}, {'name': 'Corn', 'price': 200}], timestamp=now)
        Transaction.objects.create(reference='TRX-002', buyer_id='D2', total_amount=Decimal('500'),
                                   timestamp=now - timedelta(days=62))
        Transaction.objects.create(reference='TRX-003', buyer_id='D1', total_amount=Decimal('9999'),
                                   transaction_type=Transaction.TYPE_SALE, timestamp=now)
        Notification.objects.create(message='You donated 5kg of rice', buyer_id='D1',
                                    transaction_type=Transaction.TYPE_DONATION, created=now - timedelta(hours=2))

    def test_overview_numbers(self):
        stats = services.overview_stats()
        self.assertEqual(stats['total_donations'], Decimal('1500'))
        self.assertEqual(stats['monthly_donations'], Decimal('500'))
        self.assertEqual(stats['total_donors'], 1)
        self.assertEqual(stats['active_farmers'], 2)
        self.assertEqual(stats['active_markets'], 1)

    def test_recent_activity_names_the_donor(self):
        activity = services.overview_stats()['recent_activities'][0]
        self.assertEqual(activity['message'], 'Juan Dela Cruz donated 5kg of rice')
        self.assertEqual(activity['ago'], '2h ago')

    def test_time_ago(self):
        now = timezone.now()
        self.assertEqual(services.time_ago(now - timedelta(seconds=30), now), '30s ago')
        self.assertEqual(services.time_ago(now - timedelta(minutes=5), now), '5m ago')
        self.assertEqual(services.time_ago(now - timedelta(days=3), now), '3d ago')

    def test_overview_page(self):
        client = Client()
        demo_login(client)
        resp = client.get(reverse('dashboard:overview'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context['total_donations'], Decimal('1500'))
        self.assertContains(resp, '₱1,500')


class AnalyticsTests(TestCase):
    def setUp(self):
        local_now = timezone.localtime()
        previous = (local_now.replace(day=1) - timedelta(days=1)).replace(hour=12)
        Transaction.objects.create(reference='TRX-010', buyer_id='D1', crop='Rice', total_amount=Decimal('100'),
                                   timestamp=previous)
        Transaction.objects.create(reference='TRX-011', buyer_id='D2', crop='Corn', total_amount=Decimal('150'),
                                   timestamp=local_now)

    def test_summary(self):
        summary = services.analytics_summary()
        self.assertEqual(len(summary['monthly']), 6)
        self.assertEqual(summary['monthly'][-1]['name'], timezone.localtime().strftime('%b'))
        self.assertEqual(summary['monthly'][-1]['value'], Decimal('150'))
        self.assertEqual(summary['total_donations'], Decimal('250'))
        self.assertEqual(summary['total_donors'], 2)
        self.assertEqual(summary['average_donation'], Decimal('125.00'))
        self.assertEqual(summary['growth'], '+50%')
        self.assertEqual(summary['categories'][0]['name'], 'Corn')

    def test_no_growth_without_previous_month(self):
        Transaction.objects.filter(reference='TRX-010').delete()
        self.assertIsNone(services.analytics_summary()['growth'])


class NotificationTests(TestCase):
    def test_demo_session_gets_sample_notifications(self):
        client = Client()
        demo_login(client)
        resp = client.get(reverse('dashboard:notifications'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.context['notifications']), 3)
        self.assertEqual(resp.context['unread_count'], 3)
        self.assertEqual(resp.context['notifications_count'], 3)

    def test_staff_notifications(self):
        user = get_user_model().objects.create_user('ops', email='ops@farmaid.org', password='pw', is_staff=True)
        unread = services.create_notification(user, 'New Donation Received', 'Rice donated')
        services.create_notification(user, 'Old', 'Seen', read=True)
        client = Client()
        client.force_login(user)
        resp = client.get(reverse('dashboard:notifications'))
        self.assertEqual(resp.context['unread_count'], 1)
        client.post(reverse('dashboard:notification_read', args=[unread.pk]))
        unread.refresh_from_db()
        self.assertTrue(unread.read)
        client.post(reverse('dashboard:notification_delete', args=[unread.pk]))
        self.assertFalse(Notification.objects.filter(pk=unread.pk).exists())


class UsersTests(TestCase):
    def test_sample_members_when_empty(self):
        client = Client()
        demo_login(client)
        resp = client.get(reverse('dashboard:users'))
        self.assertEqual(len(resp.context['members']), 4)

    def test_search(self):
        Member.objects.create(uid='U1', firstname='Juan', lastname='Dela Cruz', location='Batangas')
        Member.objects.create(uid='U2', firstname='Ana', lastname='Reyes', location='Manila')
        client = Client()
        demo_login(client)
        resp = client.get(reverse('dashboard:users'), {'q': 'batangas'})
        self.assertEqual([m.uid for m in resp.context['members']], ['U1'])

    def test_full_name_search(self):
        Member.objects.create(uid='U1', firstname='Juan', lastname='Dela Cruz')
        Member.objects.create(uid='U2', firstname='Ana', lastname='Reyes')
        self.assertEqual([m.uid for m in services.fetch_members(search='JUAN DELA')], ['U1'])

    def test_search_runs_before_limit(self):
        for i in range(5):
            Member.objects.create(uid=f'A-{i}', firstname='Pedro', location='Laguna')
        Member.objects.create(uid='Z-1', firstname='Maria', location='Batangas')
        self.assertEqual([m.uid for m in services.fetch_members(search='batangas', limit=3)], ['Z-1'])
        self.assertEqual(len(services.fetch_members(limit=3)), 3)

    def test_no_sample_fallback_when_search_misses(self):
        Member.objects.create(uid='U1', firstname='Juan', lastname='Dela Cruz')
        self.assertEqual(services.fetch_members(search='nobody'), [])

    def test_sample_members_are_searchable(self):
        self.assertEqual([m.uid for m in services.fetch_members(search='laguna')], ['USR-003'])


class TransactionViewTests(TestCase):
    def setUp(self):
        self.client = Client()
        demo_login(self.client)
        Transaction.objects.create(reference='TRX-020', farmer_name='Pedro', buyer_name='Maria', crop='Rice')
        Transaction.objects.create(reference='TRX-021', farmer_name='Jose', crop='Corn',
                                   transaction_type=Transaction.TYPE_SALE, status=Transaction.COMPLETED)

    def test_filters(self):
        resp = self.client.get(reverse('dashboard:transactions'), {'type': 'sale'})
        self.assertEqual([t.reference for t in resp.context['transactions']], ['TRX-021'])
        resp = self.client.get(reverse('dashboard:transactions'), {'q': 'maria'})
        self.assertEqual([t.reference for t in resp.context['transactions']], ['TRX-020'])

    def test_filter_stays_a_queryset(self):
        qs = services.filter_transactions(Transaction.objects.all(), search='corn', tx_type='sale',
                                          status=Transaction.COMPLETED)
        self.assertEqual(list(qs.values_list('reference', flat=True)), ['TRX-021'])
        qs = services.filter_transactions(Transaction.objects.all(), search='rice', tx_type='sale')
        self.assertFalse(qs.exists())

    def test_status_update(self):
        self.client.post(reverse('dashboard:transaction_status', args=['TRX-020']), {'status': Transaction.PROCESSING})
        self.assertEqual(Transaction.objects.get(reference='TRX-020').status, Transaction.PROCESSING)
        self.assertTrue(AuditLog.objects.filter(action='transaction_status').exists())

    def test_invalid_status_update(self):
        resp = self.client.post(reverse('dashboard:transaction_status', args=['TRX-021']),
                                {'status': Transaction.PENDING}, follow=True)
        self.assertEqual(Transaction.objects.get(reference='TRX-021').status, Transaction.COMPLETED)
        self.assertTrue(any('Cannot move' in m.message for m in resp.context['messages']))


class ReceiptNoticeTests(MediaRootMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.tx = Transaction.objects.create(reference='TRX-030', buyer_id='D1', buyer_name='Maria',
                                             status=Transaction.DELIVERED)

    def test_notice_confirms_delivered_donation(self):
        notification = services.submit_receipt_notice(self.tx, 'Thank you!', image=make_image())
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, Transaction.CONFIRMED)
        self.assertEqual(notification.type, 'donation_confirmation')
        self.assertEqual(notification.donation_ref, 'TRX-030')
        self.assertIn('/media/donation-confirmations/', notification.image_url)

    def test_blank_message_rejected(self):
        with self.assertRaises(ValidationError):
            services.submit_receipt_notice(self.tx, '   ')
        self.assertFalse(Notification.objects.exists())

    def test_organization_confirmation_page(self):
        client = Client()
        demo_login(client)
        resp = client.post(reverse('dashboard:organization_confirmation'),
                           {'org': 'metro-food-bank', 'message': 'Received 150kg rice', 'image': make_image()})
        self.assertEqual(resp.status_code, 302)
        notification = Notification.objects.get()
        self.assertTrue(notification.confirmed)
        self.assertIn('/media/donations/metro-food-bank/', notification.image_url)


class RegistrationTests(MediaRootMixin, TestCase):
    def _data(self, **overrides):
        data = {
            'contact_person': 'Ana Reyes',
            'organization_name': 'Metro Food Bank',
            'contact_number': '+63912345678',
            'email': 'contact@metrofood.ph',
            'year_founded': 2001,
        }
        data.update(overrides)
        return data

    def _cert(self):
        return SimpleUploadedFile('cert.pdf', b'%PDF-1.4 certificate', content_type='application/pdf')

    def test_register_organization(self):
        data = self._data()
        data['certification'] = self._cert()
        resp = Client().post(reverse('dashboard:register'), data)
        self.assertRedirects(resp, reverse('dashboard:login'))
        org = Organization.objects.get()
        self.assertEqual(org.organization_name, 'Metro Food Bank')
        self.assertTrue(org.certification_url.startswith('/media/certifications/'))

    def test_contact_number_rules(self):
        for number in ('0912345678', '+6391234', '+63912345678900', '+63-12345678'):
            form = OrganizationRegistrationForm(self._data(contact_number=number), {'certification': self._cert()})
            self.assertFalse(form.is_valid(), number)
            self.assertIn('contact_number', form.errors)

    def test_year_range(self):
        form = OrganizationRegistrationForm(self._data(year_founded=1850), {'certification': self._cert()})
        self.assertIn('year_founded', form.errors)
        form = OrganizationRegistrationForm(self._data(year_founded=timezone.localdate().year + 1),
                                            {'certification': self._cert()})
        self.assertIn('year_founded', form.errors)

    def test_certification_type(self):
        bad = SimpleUploadedFile('cert.txt', b'plain', content_type='text/plain')
        form = OrganizationRegistrationForm(self._data(), {'certification': bad})
        self.assertIn('certification', form.errors)


class SettingsTests(TestCase):
    def setUp(self):
        self.client = Client()
        demo_login(self.client)

    def test_save_settings(self):
        resp = self.client.post(reverse('dashboard:settings'), {
            'display_name': 'Ops Team', 'email': 'ops@farmaid.org', 'email_notifications': 'on',
        })
        self.assertRedirects(resp, reverse('dashboard:settings'))
        conf = OrganizationSettings.load()
        self.assertEqual(conf.display_name, 'Ops Team')
        self.assertFalse(conf.app_notifications)
        self.assertEqual(OrganizationSettings.objects.count(), 1)
        self.assertTrue(AuditLog.objects.filter(action='update_settings').exists())

    def test_backup_download(self):
        Transaction.objects.create(reference='TRX-040', total_amount=Decimal('10'))
        resp = self.client.get(reverse('dashboard:settings_backup'))
        self.assertEqual(resp.status_code, 200)
        self.assertRegex(resp['Content-Disposition'], r'attachment; filename="farmaid_backup_\d{8}_\d{6}\.json"')
        payload = json.loads(resp.content)
        self.assertEqual(len(payload['collections']['transactions']), 1)
        self.assertIn('donationOrgChats', payload['collections'])
        self.assertTrue(AuditLog.objects.filter(action='backup_export').exists())

    def test_backup_filename_uses_local_time(self):
        when = datetime(2024, 3, 5, 6, 7, 9, tzinfo=dt_timezone.utc)
        self.assertEqual(services.backup_filename(when), 'farmaid_backup_20240305_140709.json')


class AdminExportTests(TestCase):
    def test_export_transactions_csv(self):
        root = get_user_model().objects.create_superuser('root', 'root@farmaid.org', 'pw')
        tx = Transaction.objects.create(reference='TRX-050', buyer_name='Maria', total_amount=Decimal('75'))
        client = Client()
        client.force_login(root)
        resp = client.post(reverse('admin:dashboard_transaction_changelist'),
                           {'action': 'export_transactions_csv', '_selected_action': [tx.pk]})
        self.assertEqual(resp['Content-Type'], 'text/csv; charset=utf-8')
        self.assertIn('TRX-050', resp.content.decode())


__all__ = [
    'TransactionModelTests',
    'UploadTests',
    'LoginTests',
    'OverviewTests',
    'AnalyticsTests',
    'NotificationTests',
    'UsersTests',
    'TransactionViewTests',
    'ReceiptNoticeTests',
    'RegistrationTests',
    'SettingsTests',
    'AdminExportTests',
]
