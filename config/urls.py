"""
URL configuration for the inventory back office.
"""
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def health_check(request):
    """Health check endpoint for container orchestration."""
    return JsonResponse({'status': 'healthy', 'service': 'inventory-backoffice'})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health/', health_check, name='health-check'),
    path('api/', include('accounts.urls')),
    path('api/', include('inventory.urls')),
    path('api/', include('purchases.urls')),
    path('api/', include('sales.urls')),
]
