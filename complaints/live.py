"""In-process live queries over chat documents.

`post_save` on ChatThread / ChatMessage (see signals.py) publishes a fresh
snapshot to every subscriber of the written thread. Delivery is synchronous,
in the saving thread.

`hub` is process-wide. Under a threaded server a listener registered by one
request runs in whichever thread performs the write, on that thread's
database connection: a write in request B can run the `MessageStream`
callback of request A, which then calls `mark_as_read` from B. Views open and
close their `ThreadIndex` inside a single request, so this only happens
while two requests overlap.
"""
import logging
import threading

logger = logging.getLogger(__name__)

THREAD_TOPIC = 'thread'
MESSAGES_TOPIC = 'messages'


class SnapshotHub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = {}

    def subscribe(self, topic, key, callback):
        """Register `callback` for (topic, key); returns the unsubscribe function."""
        token = (topic, key)
        with self._lock:
            self._subscribers.setdefault(token, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(token, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(token, None)
        return unsubscribe

    def has_subscribers(self, topic, key):
        with self._lock:
            return bool(self._subscribers.get((topic, key)))

    def publish(self, topic, key, snapshot):
        with self._lock:
            callbacks = list(self._subscribers.get((topic, key), []))
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                # Listener errors are logged and skipped
                logger.exception("Snapshot listener failed for %s/%s", topic, key)
        return len(callbacks)


hub = SnapshotHub()


def subscribe_thread(donor_id, callback):
    return hub.subscribe(THREAD_TOPIC, donor_id, callback)


def subscribe_messages(donor_id, callback):
    return hub.subscribe(MESSAGES_TOPIC, donor_id, callback)


class SubscriptionManager:
    """Standing subscriptions keyed by thread id."""

    def __init__(self, subscribe):
        self._subscribe = subscribe
        self._active = {}

    def __contains__(self, key):
        return key in self._active

    def __len__(self):
        return len(self._active)

    def keys(self):
        return set(self._active)

    def add(self, key, callback):
        if key in self._active:
            return False
        self._active[key] = self._subscribe(key, callback)
        return True

    def remove(self, key):
        unsubscribe = self._active.pop(key, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    def reconcile(self, keys, callback_for):
        """Subscribe keys not yet tracked, drop keys no longer present."""
        keys = set(keys)
        added = [k for k in keys if self.add(k, callback_for(k))]
        removed = [k for k in self.keys() - keys if self.remove(k)]
        return added, removed

    def close(self):
        for key in list(self._active):
            self.remove(key)
