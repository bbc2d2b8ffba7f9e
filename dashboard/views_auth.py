import logging

from django.conf import settings
from django.contrib import messages
from django.contrib.auth import authenticate, get_user_model, login, logout
from django.db import DatabaseError
from django.shortcuts import redirect, render
from django.utils.http import url_has_allowed_host_and_scheme

from .forms import LoginForm, OrganizationRegistrationForm
from .services import DEMO_SESSION_KEY, log_admin_action, register_organization
from .signals import clear_failures, register_failure

logger = logging.getLogger(__name__)


def _next_url(request):
    target = request.POST.get('next') or request.GET.get('next')
    if target and url_has_allowed_host_and_scheme(target, allowed_hosts={request.get_host()}):
        return target
    return None


def login_view(request):
    if request.method == 'POST':
        form = LoginForm(request.POST)
        if getattr(request, 'login_locked', False):
            messages.error(request, f"Too many failed attempts. Try again in {request.login_lock_remaining} seconds.")
            return render(request, 'dashboard/login.html', {'form': form}, status=429)
        if form.is_valid():
            email = form.cleaned_data['email'].strip()
            password = form.cleaned_data['password']
            if email.lower() == settings.FARMAID_DEMO_ADMIN_EMAIL.lower():
                # Demo credentials: no auth user, only a session flag
                request.session[DEMO_SESSION_KEY] = True
                clear_failures(request)
                messages.success(request, "Login successful. Welcome to the dashboard!")
                return redirect(_next_url(request) or 'dashboard:overview')

            account = get_user_model().objects.filter(email__iexact=email).first()
            username = account.get_username() if account else email
            user = authenticate(request, username=username, password=password)
            if user is not None and user.is_staff:
                login(request, user)
                log_admin_action('login', f"{user.get_username()} signed in", user=user.get_username())
                return redirect(_next_url(request) or 'dashboard:overview')
            if user is not None:
                # Valid credentials but not an administrator
                register_failure(request)
            messages.error(request, "Invalid credentials. Please try again.")
        else:
            messages.error(request, "Invalid credentials. Please try again.")
    else:
        form = LoginForm()
    return render(request, 'dashboard/login.html', {'form': form, 'next': _next_url(request) or ''})


def logout_view(request):
    request.session.pop(DEMO_SESSION_KEY, None)
    logout(request)
    messages.success(request, "You have been successfully logged out.")
    return redirect('dashboard:login')


def register(request):
    if request.method == 'POST':
        form = OrganizationRegistrationForm(request.POST, request.FILES)
        if form.is_valid():
            try:
                organization = register_organization(form.cleaned_data, form.cleaned_data['certification'])
            except (DatabaseError, OSError):
                logger.exception("Organization registration failed")
                messages.error(request, "Registration failed. Please try again.")
            else:
                log_admin_action('register_organization', organization.organization_name)
                messages.success(request, "Your organization has been successfully registered!")
                return redirect('dashboard:login')
        else:
            messages.error(request, "Please fix all errors and complete required fields.")
    else:
        form = OrganizationRegistrationForm()
    return render(request, 'dashboard/register.html', {'form': form})
