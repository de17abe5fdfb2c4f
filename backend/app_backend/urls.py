from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Signal endpoints (at /api/signals/)
    path('api/signals/', include('signaling.urls')),  # send, respond, received

    # Location endpoints (at /api/locations/)
    path('api/locations/', include('locations.urls')),  # update, nearby
]
