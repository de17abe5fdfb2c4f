from django.urls import path
from . import views

app_name = 'locations'

urlpatterns = [
    path('update/', views.update_location, name='update-location'),
    path('nearby/<uuid:user_id>/', views.nearby_users, name='nearby-users'),
]
