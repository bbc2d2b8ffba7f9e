"""Chat thread index, unread tracking and the per-thread message stream."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from . import live, services
from .models import ADMIN_SENDER, ChatThread
from .signals import message_snapshot

PREVIEW_LENGTH = 30
EMPTY_PREVIEW = "No messages yet"
IMAGE_PREVIEW = "[Image]"


@dataclass(frozen=True)
class ThreadSummary:
    donor_id: str
    donor_name: str
    last_message: str
    last_message_from: str
    last_message_time: Optional[datetime]
    read_by_admin: bool

    @classmethod
    def from_document(cls, thread):
        return cls(
            donor_id=thread.donor_id,
            donor_name=thread.donor_name or "Donor",
            last_message=thread.last_message or "",
            last_message_from=thread.last_message_from or "donor",
            last_message_time=thread.last_message_time,
            read_by_admin=bool(thread.read_by_admin),
        )

    @property
    def is_unread(self):
        return self.last_message_from != ADMIN_SENDER and not self.read_by_admin

    @property
    def preview(self):
        if not self.last_message:
            return IMAGE_PREVIEW if self.last_message_time else EMPTY_PREVIEW
        if len(self.last_message) > PREVIEW_LENGTH:
            return self.last_message[:PREVIEW_LENGTH] + "..."
        return self.last_message


class MessageStream:
    """Live, timestamp-ordered message list of one thread.

    Each snapshot replaces the whole list. `on_snapshot` runs after every
    replacement (the index uses it to acknowledge new donor messages).
    """

    def __init__(self, donor_id, on_snapshot=None):
        self.donor_id = donor_id
        self.messages = []
        self._on_snapshot = on_snapshot
        self._unsubscribe = None

    def open(self):
        if self._unsubscribe is None:
            self._unsubscribe = live.subscribe_messages(self.donor_id, self._apply)
        self._apply(message_snapshot(self.donor_id))
        return self

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_open(self):
        return self._unsubscribe is not None

    def _apply(self, messages):
        self.messages = list(messages)
        if self._on_snapshot:
            self._on_snapshot(self.messages)

    def send(self, text='', image=None, donor_name=None, progress=None):
        return services.send_message(self.donor_id, text=text, image=image, donor_name=donor_name, progress=progress)


class ThreadIndex:
    """In-memory projection of all chat threads with an unread set.

    Snapshots only ever add to the unread set; removal happens through
    `mark_as_read`. `refresh()` reconciles per-thread subscriptions with the
    current thread list, so threads created after `load()` are tracked too.
    """

    def __init__(self):
        self.threads = {}
        self.unread = set()
        self.selected = None
        self.stream = None
        self._subscriptions = live.SubscriptionManager(live.subscribe_thread)

    def load(self):
        self.threads = {}
        self.unread = set()
        for doc in ChatThread.objects.all():
            summary = ThreadSummary.from_document(doc)
            self.threads[summary.donor_id] = summary
            if summary.is_unread:
                self.unread.add(summary.donor_id)
        self._subscriptions.reconcile(self.threads.keys(), self._listener)
        return self

    def refresh(self):
        """Re-fetch the thread list; returns (added, removed) thread ids."""
        docs = {doc.donor_id: doc for doc in ChatThread.objects.all()}
        for donor_id, doc in docs.items():
            if donor_id not in self.threads:
                self._on_snapshot(doc)
        for donor_id in set(self.threads) - set(docs):
            self.threads.pop(donor_id, None)
            self.unread.discard(donor_id)
        return self._subscriptions.reconcile(docs.keys(), self._listener)

    def close(self):
        self._subscriptions.close()
        if self.stream is not None:
            self.stream.close()
            self.stream = None
        self.selected = None

    @property
    def subscribed(self):
        return self._subscriptions.keys()

    def _listener(self, donor_id):
        return self._on_snapshot

    def _on_snapshot(self, doc):
        summary = ThreadSummary.from_document(doc)
        self.threads[summary.donor_id] = summary
        if summary.is_unread:
            self.unread.add(summary.donor_id)

    def mark_as_read(self, donor_id):
        services.mark_as_read(donor_id)
        self.unread.discard(donor_id)

    def select(self, donor_id):
        if self.stream is not None and self.stream.donor_id != donor_id:
            self.stream.close()
            self.stream = None
        self.selected = donor_id
        if self.stream is None:
            self.stream = MessageStream(donor_id, on_snapshot=lambda _msgs: self.mark_as_read(donor_id))
        self.stream.open()
        return self.stream

    def threads_list(self, filter='all', search=''):
        term = (search or '').strip().lower()
        items = [
            t for t in self.threads.values()
            if term in t.donor_name.lower()
            and (filter != 'unread' or t.donor_id in self.unread)
        ]
        # Newest first, threads without any message last
        items.sort(key=lambda t: (t.last_message_time is None, -(t.last_message_time.timestamp() if t.last_message_time else 0)))
        return items

    @property
    def unread_count(self):
        return len(self.unread)
