from django.urls import path
from . import views

app_name = 'signaling'

urlpatterns = [
    path('', views.send_signal, name='send-signal'),
    path('<uuid:signal_id>/respond/', views.respond_to_signal, name='respond-signal'),
    path('received/<uuid:user_id>/', views.received_signals, name='received-signals'),
]
