from django.urls import path
from . import views
from . import views_auth

app_name = 'dashboard'

urlpatterns = [
    path('', views.overview, name='overview'),
    path('login/', views_auth.login_view, name='login'),
    path('logout/', views_auth.logout_view, name='logout'),
    path('register/', views_auth.register, name='register'),
    path('transactions/', views.transactions, name='transactions'),
    path('transactions/<str:reference>/status/', views.transaction_status, name='transaction_status'),
    path('donations/', views.donations, name='donations'),
    path('donations/<str:reference>/confirm/', views.donation_confirm, name='donation_confirm'),
    path('donations/<str:reference>/receipt/', views.donation_receipt, name='donation_receipt'),
    path('confirmations/', views.organization_confirmation, name='organization_confirmation'),
    path('analytics/', views.analytics, name='analytics'),
    path('notifications/', views.notifications, name='notifications'),
    path('notifications/<int:pk>/read/', views.notification_read, name='notification_read'),
    path('notifications/<int:pk>/delete/', views.notification_delete, name='notification_delete'),
    path('users/', views.users, name='users'),
    path('settings/', views.settings_view, name='settings'),
    path('settings/backup/', views.settings_backup, name='settings_backup'),
]
