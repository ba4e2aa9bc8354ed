"""
URL configuration for the billing inventory API.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def health_check(request):
    """Liveness endpoint; no authentication."""
    return JsonResponse({'status': 'healthy', 'service': 'billing-inventory-api'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health-check'),
    path('api/', include('inventory.urls')),
]
