from django.urls import path
from . import views

app_name = 'complaints'

urlpatterns = [
    path('', views.inbox, name='inbox'),
    path('threads.json', views.threads_json, name='threads_json'),
    path('<str:donor_id>/', views.thread_detail, name='thread'),
    path('<str:donor_id>/send/', views.thread_send, name='send'),
    path('<str:donor_id>/messages.json', views.messages_json, name='messages_json'),
]
