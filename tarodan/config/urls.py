"""
URL configuration for the Tarodan API.

Every app mounts its endpoints under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Tarodan Admin Panel"
admin.site.site_title = "Tarodan Admin Portal"
admin.site.index_title = "Welcome to the Tarodan marketplace admin"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('tarodan.core.urls')),
    path('api/v1/', include('tarodan.membership.urls')),
    path('api/v1/', include('tarodan.catalog.urls')),
    path('api/v1/', include('tarodan.offers.urls')),
    path('api/v1/', include('tarodan.orders.urls')),
    path('api/v1/', include('tarodan.payments.urls')),
    path('api/v1/', include('tarodan.trades.urls')),
    path('api/v1/', include('tarodan.collection.urls')),
    path('api/v1/', include('tarodan.notifications.urls')),
]
