import logging

from django.contrib.auth.signals import user_login_failed, user_logged_in
from django.dispatch import receiver
from django.utils import timezone

logger = logging.getLogger(__name__)

FAIL_KEY = 'dashboard_login_fail_count'
LOCK_UNTIL_KEY = 'dashboard_login_lock_until'
FAIL_THRESHOLD = 3
LOCK_MINUTES = 2


def register_failure(request):
    """Count one failed login on the session; lock it once the threshold is hit."""
    lock_until = request.session.get(LOCK_UNTIL_KEY)
    if lock_until:
        try:
            if timezone.now() < timezone.datetime.fromisoformat(lock_until):
                return
        except ValueError:
            request.session.pop(LOCK_UNTIL_KEY, None)
    count = request.session.get(FAIL_KEY, 0) + 1
    request.session[FAIL_KEY] = count
    if count >= FAIL_THRESHOLD:
        lock_time = timezone.now() + timezone.timedelta(minutes=LOCK_MINUTES)
        request.session[LOCK_UNTIL_KEY] = lock_time.isoformat()
        logger.warning("Dashboard login locked until %s after %s failures", lock_time.isoformat(), count)


def clear_failures(request):
    for key in (FAIL_KEY, LOCK_UNTIL_KEY):
        request.session.pop(key, None)


@receiver(user_login_failed)
def login_failed(sender, credentials, request=None, **kwargs):  # type: ignore
    if request is None:
        return
    register_failure(request)


@receiver(user_logged_in)
def login_success(sender, request, user, **kwargs):  # type: ignore
    if request is None:
        return
    clear_failures(request)
