"""
URL configuration for the pharmacy project.

Every app mounts its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Pharmacy Management Admin Panel"
admin.site.site_title = "Pharmacy Admin Portal"
admin.site.index_title = "Pharmacy administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('pharmacy.core.urls')),
    path('api/v1/', include('pharmacy.locations.urls')),
    path('api/v1/', include('pharmacy.catalog.urls')),
    path('api/v1/', include('pharmacy.inventory.urls')),
    path('api/v1/', include('pharmacy.parties.urls')),
    path('api/v1/', include('pharmacy.purchasing.urls')),
    path('api/v1/', include('pharmacy.pos.urls')),
    path('api/v1/', include('pharmacy.ledger.urls')),
    path('api/v1/', include('pharmacy.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
    re_path(r'^static/(?P<path>.*)$', serve, {'document_root': settings.STATIC_ROOT}),
]
