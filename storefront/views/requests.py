"""
storefront.views.requests

GET  /api/requests/   staff only
POST /api/requests/   anyone; stores the request and emails the store owner

========= CHANGE LOG =========
2025-09-14 • ADD: custom template request intake.
"""

from __future__ import annotations

import logging

from rest_framework import generics, permissions

from ..config import get_config
from ..models import CustomRequest
from ..serializers import CustomRequestSerializer
from ..services.notifications import notify_owner_custom_request

log = logging.getLogger("storefront.requests")


class CustomRequestListCreateView(generics.ListCreateAPIView):
    queryset = CustomRequest.objects.all()
    serializer_class = CustomRequestSerializer

    def get_permissions(self):
        if self.request.method == "POST":
            return [permissions.AllowAny()]
        return [permissions.IsAdminUser()]

    def perform_create(self, serializer):
        custom_request = serializer.save()
        log.info("Custom request received: request=%s", custom_request.pk)
        notify_owner_custom_request(custom_request, get_config().owner_email)
