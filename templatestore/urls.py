# templatestore/urls.py
"""
CHANGE LOG
----------
2025-09-02
- ADD: Mount storefront API under /api/ (checkout, webhook, confirm, downloads, orders, requests).
- KEEP: Admin at /admin/ for catalog management (no custom CRUD screens).
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("storefront.urls", namespace="storefront")),
]
