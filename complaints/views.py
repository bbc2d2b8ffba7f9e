import logging

from django.contrib import messages
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.http import Http404, JsonResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_POST

from dashboard.decorators import dashboard_login_required
from .forms import MessageForm
from .models import ChatThread
from .services import send_message
from .threads import ThreadIndex

logger = logging.getLogger(__name__)


def _list_params(request):
    flt = request.GET.get('filter', 'all')
    if flt not in ('all', 'unread'):
        flt = 'all'
    return flt, request.GET.get('q', '').strip()


def _render_inbox(request, donor_id=None):
    flt, search = _list_params(request)
    index = ThreadIndex().load()
    try:
        stream = None
        if donor_id is not None:
            if donor_id not in index.threads:
                raise Http404("Conversation not found")
            stream = index.select(donor_id)
        context = {
            'threads': index.threads_list(filter=flt, search=search),
            'unread': index.unread,
            'unread_count': index.unread_count,
            'active_filter': flt,
            'search': search,
            'selected': index.threads.get(donor_id) if donor_id else None,
            'chat_messages': stream.messages if stream else [],
            'form': MessageForm(),
        }
    finally:
        index.close()
    return render(request, 'complaints/inbox.html', context)


@dashboard_login_required
def inbox(request):
    return _render_inbox(request)


@dashboard_login_required
def thread_detail(request, donor_id):
    return _render_inbox(request, donor_id)


@dashboard_login_required
@require_POST
def thread_send(request, donor_id):
    thread = ChatThread.objects.filter(pk=donor_id).first()
    if thread is None:
        raise Http404("Conversation not found")
    form = MessageForm(request.POST, request.FILES)
    if not form.is_valid():
        for errors in form.errors.values():
            messages.error(request, ' '.join(errors))
        return redirect('complaints:thread', donor_id=donor_id)
    try:
        send_message(donor_id, text=form.cleaned_data.get('text', ''), image=form.cleaned_data.get('image'),
                     donor_name=thread.donor_name)
    except ValidationError as exc:
        messages.error(request, ' '.join(exc.messages))
    except (DatabaseError, OSError):
        logger.exception("Sending message to %s failed", donor_id)
        messages.error(request, "Message could not be sent. Please try again.")
    return redirect('complaints:thread', donor_id=donor_id)


@dashboard_login_required
def threads_json(request):
    flt, search = _list_params(request)
    index = ThreadIndex().load()
    try:
        data = [{
            'id': t.donor_id,
            'donorName': t.donor_name,
            'preview': t.preview,
            'lastMessageFrom': t.last_message_from,
            'lastMessageTime': t.last_message_time.isoformat() if t.last_message_time else None,
            'readByAdmin': t.read_by_admin,
            'unread': t.donor_id in index.unread,
        } for t in index.threads_list(filter=flt, search=search)]
        unread_count = index.unread_count
    finally:
        index.close()
    return JsonResponse({'threads': data, 'unreadCount': unread_count})


@dashboard_login_required
def messages_json(request, donor_id):
    index = ThreadIndex().load()
    try:
        if donor_id not in index.threads:
            raise Http404("Conversation not found")
        stream = index.select(donor_id)
        data = [{
            'id': m.pk,
            'message': m.text,
            'imageUrl': m.image_url,
            'senderId': m.sender_id,
            'senderName': m.sender_name,
            'timestamp': m.timestamp.isoformat(),
        } for m in stream.messages]
    finally:
        index.close()
    return JsonResponse({'messages': data})
