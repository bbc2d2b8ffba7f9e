from functools import wraps

from django.shortcuts import redirect
from django.urls import reverse

from .services import is_demo


def dashboard_login_required(view_func):
    """Allow staff users and demo sessions; send everyone else to the login page."""
    @wraps(view_func)
    def _wrapped(request, *args, **kwargs):
        user = request.user
        if is_demo(request) or (user.is_authenticated and user.is_staff):
            return view_func(request, *args, **kwargs)
        return redirect(f"{reverse('dashboard:login')}?next={request.path}")
    return _wrapped
