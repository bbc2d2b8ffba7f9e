import threading
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.test import TestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone

from complaints import live, services
from complaints.models import ADMIN_SENDER, ChatMessage, ChatThread
from complaints.services import ConfirmationError, confirm_donation
from complaints.threads import MessageStream, ThreadIndex, ThreadSummary
from dashboard.models import AuditLog, Transaction
from dashboard.tests import MediaRootMixin, demo_login, make_image


class IndexMixin:
    def open_index(self):
        index = ThreadIndex().load()
        self.addCleanup(index.close)
        return index


class SnapshotHubTests(TestCase):
    def test_publish_and_unsubscribe(self):
        hub = live.SnapshotHub()
        received = []
        unsubscribe = hub.subscribe('thread', 'donor-1', received.append)
        self.assertEqual(hub.publish('thread', 'donor-1', 'a'), 1)
        self.assertEqual(hub.publish('thread', 'donor-2', 'b'), 0)
        unsubscribe()
        hub.publish('thread', 'donor-1', 'c')
        self.assertEqual(received, ['a'])
        self.assertFalse(hub.has_subscribers('thread', 'donor-1'))

    def test_failing_listener_does_not_block_others(self):
        hub = live.SnapshotHub()
        received = []

        def broken(snapshot):
            raise RuntimeError('boom')

        hub.subscribe('thread', 'donor-1', broken)
        hub.subscribe('thread', 'donor-1', received.append)
        with self.assertLogs('complaints.live', level='ERROR'):
            hub.publish('thread', 'donor-1', 'snap')
        self.assertEqual(received, ['snap'])

    def test_listener_runs_in_the_writing_thread(self):
        hub = live.SnapshotHub()
        seen = []
        hub.subscribe('messages', 'donor-1', lambda snapshot: seen.append(threading.current_thread().name))
        writer = threading.Thread(target=hub.publish, args=('messages', 'donor-1', []), name='writer')
        writer.start()
        writer.join()
        self.assertEqual(seen, ['writer'])

    def test_subscription_manager_reconcile(self):
        hub = live.SnapshotHub()
        manager = live.SubscriptionManager(lambda key, cb: hub.subscribe('thread', key, cb))
        added, removed = manager.reconcile(['a', 'b'], lambda key: (lambda snap: None))
        self.assertEqual(sorted(added), ['a', 'b'])
        self.assertEqual(removed, [])
        added, removed = manager.reconcile(['b', 'c'], lambda key: (lambda snap: None))
        self.assertEqual(added, ['c'])
        self.assertEqual(removed, ['a'])
        self.assertFalse(hub.has_subscribers('thread', 'a'))
        manager.close()
        self.assertEqual(len(manager), 0)
        self.assertFalse(hub.has_subscribers('thread', 'c'))


class ThreadSummaryTests(TestCase):
    def test_preview(self):
        thread = ChatThread(donor_id='d', last_message='x' * 31)
        self.assertEqual(ThreadSummary.from_document(thread).preview, 'x' * 30 + '...')
        thread.last_message = 'short'
        self.assertEqual(ThreadSummary.from_document(thread).preview, 'short')
        thread.last_message = ''
        self.assertEqual(ThreadSummary.from_document(thread).preview, 'No messages yet')
        thread.last_message_time = timezone.now()
        self.assertEqual(ThreadSummary.from_document(thread).preview, '[Image]')

    def test_unread_rule(self):
        self.assertTrue(ChatThread(donor_id='d', last_message_from='d', read_by_admin=False).is_unread)
        self.assertFalse(ChatThread(donor_id='d', last_message_from='d', read_by_admin=True).is_unread)
        self.assertFalse(ChatThread(donor_id='d', last_message_from=ADMIN_SENDER, read_by_admin=False).is_unread)


class ThreadIndexTests(IndexMixin, TestCase):
    def setUp(self):
        now = timezone.now()
        ChatThread.objects.create(donor_id='donor-7', donor_name='Ben', last_message='Thanks',
                                  last_message_from=ADMIN_SENDER, last_message_time=now - timedelta(hours=3),
                                  read_by_admin=True)
        ChatThread.objects.create(donor_id='donor-9', donor_name='Carla', last_message='Ok',
                                  last_message_from='donor-9', last_message_time=now - timedelta(hours=1),
                                  read_by_admin=True)
        ChatThread.objects.create(donor_id='donor-5', donor_name='Dina', read_by_admin=True)

    def test_load_computes_unread(self):
        ChatThread.objects.create(donor_id='donor-3', donor_name='Eli', last_message='Hello?',
                                  last_message_from='donor-3', last_message_time=timezone.now())
        index = self.open_index()
        self.assertEqual(index.unread, {'donor-3'})
        self.assertEqual(index.unread_count, 1)
        self.assertEqual(index.subscribed, {'donor-3', 'donor-5', 'donor-7', 'donor-9'})

    def test_donor_message_is_unread_until_opened(self):
        services.post_admin_message('donor-42', 'Hello Ana', donor_name='Ana')
        index = self.open_index()
        self.assertNotIn('donor-42', index.unread)

        services.receive_donor_message('donor-42', 'Ana', 'Was my donation received?')
        self.assertIn('donor-42', index.unread)
        self.assertEqual(index.threads['donor-42'].last_message, 'Was my donation received?')

        stream = index.select('donor-42')
        self.assertNotIn('donor-42', index.unread)
        self.assertTrue(ChatThread.objects.get(pk='donor-42').read_by_admin)
        self.assertEqual([m.text for m in stream.messages], ['Hello Ana', 'Was my donation received?'])

        # The open thread acknowledges new donor messages as they arrive
        services.receive_donor_message('donor-42', 'Ana', 'Thanks!')
        self.assertEqual(stream.messages[-1].text, 'Thanks!')
        self.assertNotIn('donor-42', index.unread)
        self.assertTrue(ChatThread.objects.get(pk='donor-42').read_by_admin)

    def test_snapshot_never_clears_unread(self):
        services.receive_donor_message('donor-42', 'Ana', 'Hi')
        index = self.open_index()
        self.assertIn('donor-42', index.unread)
        ChatThread.objects.filter(pk='donor-42').update(read_by_admin=True)
        ChatThread.objects.get(pk='donor-42').save()
        self.assertTrue(index.threads['donor-42'].read_by_admin)
        self.assertIn('donor-42', index.unread)
        index.mark_as_read('donor-42')
        self.assertNotIn('donor-42', index.unread)

    def test_refresh_tracks_new_and_removed_threads(self):
        index = self.open_index()
        services.receive_donor_message('donor-99', 'Fe', 'New here')
        self.assertNotIn('donor-99', index.threads)

        added, removed = index.refresh()
        self.assertEqual(added, ['donor-99'])
        self.assertEqual(removed, [])
        self.assertIn('donor-99', index.unread)

        services.receive_donor_message('donor-99', 'Fe', 'Second message')
        self.assertEqual(index.threads['donor-99'].last_message, 'Second message')

        ChatThread.objects.filter(pk='donor-7').delete()
        added, removed = index.refresh()
        self.assertEqual(removed, ['donor-7'])
        self.assertNotIn('donor-7', index.threads)
        self.assertNotIn('donor-7', index.subscribed)

    def test_threads_list_order_filter_and_search(self):
        services.receive_donor_message('donor-3', 'Eli', 'Newest')
        index = self.open_index()
        self.assertEqual([t.donor_id for t in index.threads_list()], ['donor-3', 'donor-9', 'donor-7', 'donor-5'])
        self.assertEqual([t.donor_id for t in index.threads_list(filter='unread')], ['donor-3'])
        self.assertEqual([t.donor_id for t in index.threads_list(search='CAR')], ['donor-9'])

    def test_close_releases_subscriptions(self):
        index = ThreadIndex().load()
        index.select('donor-7')
        index.close()
        self.assertFalse(live.hub.has_subscribers(live.THREAD_TOPIC, 'donor-7'))
        self.assertFalse(live.hub.has_subscribers(live.MESSAGES_TOPIC, 'donor-7'))
        self.assertIsNone(index.selected)


class MessageStreamTests(TestCase):
    def test_stream_follows_new_messages(self):
        services.receive_donor_message('donor-1', 'Gil', 'First')
        snapshots = []
        stream = MessageStream('donor-1', on_snapshot=snapshots.append).open()
        self.addCleanup(stream.close)
        self.assertTrue(stream.is_open)
        stream.send('Second')
        self.assertEqual([m.text for m in stream.messages], ['First', 'Second'])
        self.assertEqual(len(snapshots), 2)
        stream.close()
        services.receive_donor_message('donor-1', 'Gil', 'Third')
        self.assertEqual(len(stream.messages), 2)


class SendMessageTests(MediaRootMixin, TestCase):
    def setUp(self):
        super().setUp()
        services.receive_donor_message('donor-42', 'Ana', 'Hello')

    def test_empty_send_is_a_no_op(self):
        before = ChatThread.objects.get(pk='donor-42')
        self.assertIsNone(services.send_message('donor-42', text='   '))
        self.assertEqual(ChatMessage.objects.count(), 1)
        after = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(after.last_message, before.last_message)
        self.assertFalse(after.read_by_admin)

    def test_text_send_updates_summary(self):
        message = services.send_message('donor-42', text='We got it, thanks')
        self.assertEqual(message.sender_id, ADMIN_SENDER)
        self.assertEqual(message.sender_name, 'Admin')
        thread = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(thread.last_message, 'We got it, thanks')
        self.assertEqual(thread.last_message_from, ADMIN_SENDER)
        self.assertTrue(thread.read_by_admin)
        self.assertEqual(thread.donor_name, 'Ana')

    def test_image_only_send(self):
        message = services.send_message('donor-42', image=make_image('proof.png', 'PNG', 'image/png'))
        self.assertEqual(message.text, '')
        self.assertIn('/media/chat_images/donor-42_', message.image_url)
        thread = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(thread.last_message, message.text)
        self.assertEqual(thread.last_message_from, message.sender_id)
        self.assertEqual(thread.last_message_time, message.timestamp)
        self.assertEqual(ThreadSummary.from_document(thread).preview, '[Image]')

    def test_donor_image_only_message(self):
        message = services.receive_donor_message('donor-42', 'Ana', image_url='/media/chat_images/x.png')
        thread = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(thread.last_message, '')
        self.assertEqual(message.text, '')
        self.assertTrue(thread.is_unread)

    def assertNothingSent(self):
        self.assertEqual(ChatMessage.objects.count(), 1)
        self.assertEqual(ChatThread.objects.get(pk='donor-42').last_message, 'Hello')
        self.assertFalse(default_storage.exists('chat_images'))

    def test_invalid_image_rejected_before_any_write(self):
        fake = make_image('x.gif', 'GIF', 'image/gif')
        with self.assertRaises(ValidationError) as ctx:
            services.send_message('donor-42', text='see attached', image=fake)
        self.assertEqual(ctx.exception.code, 'invalid_type')
        self.assertNothingSent()

    @override_settings(FARMAID_MAX_UPLOAD_BYTES=16)
    def test_oversized_attachment_rejected_before_any_write(self):
        with self.assertRaises(ValidationError) as ctx:
            services.send_message('donor-42', text='see attached', image=make_image())
        self.assertEqual(ctx.exception.code, 'too_large')
        self.assertNothingSent()

    def test_mark_as_read(self):
        self.assertTrue(services.mark_as_read('donor-42'))
        self.assertTrue(ChatThread.objects.get(pk='donor-42').read_by_admin)
        self.assertFalse(services.mark_as_read('nobody'))


class ConfirmDonationTests(MediaRootMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.tx = Transaction.objects.create(reference='TRX-007', buyer_id='donor-42', buyer_name='Ana',
                                             crop='Rice', total_amount=Decimal('1200'))

    def test_confirm_pending_donation(self):
        message = confirm_donation(self.tx, 'Received, thank you')
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, Transaction.COMPLETED)
        self.assertEqual(message.text, 'Received, thank you')
        self.assertIsNone(message.image_url)
        thread = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(thread.last_message, 'Received, thank you')
        self.assertEqual(thread.last_message_from, ADMIN_SENDER)
        self.assertTrue(thread.read_by_admin)
        self.assertEqual(thread.donor_name, 'Ana')
        self.assertTrue(AuditLog.objects.filter(action='confirm_donation').exists())

    def test_confirm_with_receipt(self):
        message = confirm_donation(self.tx, 'Receipt attached', image=make_image('receipt.jpg'))
        self.assertIn('/media/receipts/TRX-007_', message.image_url)

    def test_already_completed(self):
        self.tx.transition(Transaction.COMPLETED)
        with self.assertRaises(ConfirmationError) as ctx:
            confirm_donation(self.tx, 'Again')
        self.assertEqual(ctx.exception.code, 'not_pending')
        self.assertFalse(ChatMessage.objects.exists())

    def test_requires_donor_and_note(self):
        with self.assertRaises(ConfirmationError) as ctx:
            confirm_donation(self.tx, '  ')
        self.assertEqual(ctx.exception.code, 'required')
        self.tx.buyer_id = ''
        with self.assertRaises(ConfirmationError) as ctx:
            confirm_donation(self.tx, 'Thanks')
        self.assertEqual(ctx.exception.code, 'no_donor')

    def test_bad_receipt_leaves_status(self):
        fake = make_image('receipt.jpg', 'PNG', 'image/jpeg')
        with self.assertRaises(ValidationError):
            confirm_donation(self.tx, 'Thanks', image=fake)
        self.assertNothingWritten()

    def assertNothingWritten(self):
        self.tx.refresh_from_db()
        self.assertEqual(self.tx.status, Transaction.PENDING)
        self.assertFalse(ChatThread.objects.exists())
        self.assertFalse(ChatMessage.objects.exists())
        self.assertFalse(AuditLog.objects.filter(action='confirm_donation').exists())
        self.assertFalse(default_storage.exists('receipts'))

    def test_gif_receipt_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            confirm_donation(self.tx, 'Thanks', image=make_image('receipt.gif', 'GIF', 'image/gif'))
        self.assertEqual(ctx.exception.code, 'invalid_type')
        self.assertNothingWritten()

    @override_settings(FARMAID_MAX_UPLOAD_BYTES=16)
    def test_oversized_receipt_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            confirm_donation(self.tx, 'Thanks', image=make_image('receipt.jpg'))
        self.assertEqual(ctx.exception.code, 'too_large')
        self.assertNothingWritten()

    @override_settings(FARMAID_MAX_UPLOAD_BYTES=16)
    def test_confirm_view_rejects_oversized_receipt(self):
        client = Client()
        demo_login(client)
        resp = client.post(reverse('dashboard:donation_confirm', args=['TRX-007']),
                           {'note': 'Thanks', 'image': make_image('receipt.jpg')}, follow=True)
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(any('too large' in m.message for m in resp.context['messages']))
        self.assertNothingWritten()

    def test_confirm_view(self):
        client = Client()
        demo_login(client)
        resp = client.post(reverse('dashboard:donation_confirm', args=['TRX-007']),
                           {'note': 'Received, thank you'}, follow=True)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(Transaction.objects.get(reference='TRX-007').status, Transaction.COMPLETED)
        self.assertTrue(any('successfully submitted' in m.message for m in resp.context['messages']))


class InboxViewTests(MediaRootMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client = Client()
        demo_login(self.client)
        services.receive_donor_message('donor-42', 'Ana', 'Hello there')
        services.post_admin_message('donor-7', 'Welcome', donor_name='Ben')

    def test_requires_login(self):
        resp = Client().get(reverse('complaints:inbox'))
        self.assertEqual(resp.status_code, 302)

    def test_inbox_lists_threads(self):
        resp = self.client.get(reverse('complaints:inbox'))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.context['unread_count'], 1)
        self.assertEqual(len(resp.context['threads']), 2)
        resp = self.client.get(reverse('complaints:inbox'), {'filter': 'unread'})
        self.assertEqual([t.donor_id for t in resp.context['threads']], ['donor-42'])
        self.assertFalse(live.hub.has_subscribers(live.THREAD_TOPIC, 'donor-42'))

    def test_opening_thread_marks_read(self):
        resp = self.client.get(reverse('complaints:thread', args=['donor-42']))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([m.text for m in resp.context['chat_messages']], ['Hello there'])
        self.assertTrue(ChatThread.objects.get(pk='donor-42').read_by_admin)

    def test_unknown_thread(self):
        self.assertEqual(self.client.get(reverse('complaints:thread', args=['nobody'])).status_code, 404)

    def test_send_from_thread(self):
        resp = self.client.post(reverse('complaints:send', args=['donor-42']), {'text': 'Yes, received'})
        self.assertRedirects(resp, reverse('complaints:thread', args=['donor-42']))
        thread = ChatThread.objects.get(pk='donor-42')
        self.assertEqual(thread.last_message, 'Yes, received')
        self.assertEqual(thread.last_message_from, ADMIN_SENDER)

    def test_send_rejects_bad_image(self):
        fake = make_image('x.jpg', 'PNG', 'image/jpeg')
        resp = self.client.post(reverse('complaints:send', args=['donor-42']), {'image': fake}, follow=True)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(ChatMessage.objects.filter(thread_id='donor-42').count(), 1)

    def test_threads_json(self):
        data = self.client.get(reverse('complaints:threads_json')).json()
        self.assertEqual(data['unreadCount'], 1)
        by_id = {t['id']: t for t in data['threads']}
        self.assertTrue(by_id['donor-42']['unread'])
        self.assertEqual(by_id['donor-7']['lastMessageFrom'], ADMIN_SENDER)

    def test_messages_json(self):
        data = self.client.get(reverse('complaints:messages_json', args=['donor-42'])).json()
        self.assertEqual([m['message'] for m in data['messages']], ['Hello there'])
        self.assertTrue(ChatThread.objects.get(pk='donor-42').read_by_admin)


__all__ = [
    'SnapshotHubTests',
    'ThreadSummaryTests',
    'ThreadIndexTests',
    'MessageStreamTests',
    'SendMessageTests',
    'ConfirmDonationTests',
    'InboxViewTests',
]
