from .services import fetch_unread_count, is_demo


def sidebar(request):
    """Unread notification badge and demo flag for the sidebar."""
    if not hasattr(request, 'session'):
        return {}
    if not (is_demo(request) or getattr(request, 'user', None) and request.user.is_authenticated):
        return {}
    return {
        'notifications_count': fetch_unread_count(request),
        'is_demo': is_demo(request),
    }
