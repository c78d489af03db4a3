"""
Back-office URL Configuration

URL Routing:
    /admin/       → Django admin panel (orders, refund requests)
    /api/v1/      → Back-office REST APIs (returns, refund decisions, invoices)
    /api/schema/  → OpenAPI schema and Swagger UI
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('returns.urls')),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/schema/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='schema-docs'),
]
