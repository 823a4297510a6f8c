"""
storefront.views.confirm

GET /api/confirm/?session_id=cs_...

Return-redirect confirmation. The session is re-fetched from Stripe; the
browser's word is never taken for payment status. On success the Order is
marked paid (idempotent with the webhook) and the download link is returned.

========= CHANGE LOG =========
2025-09-02 • ADD: pull-path confirmation endpoint.
"""

from __future__ import annotations

from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from ..config import get_config
from ..errors import StorefrontError
from ..services.reconciliation import confirm_checkout
from ._core import error_response, json_ok


@require_GET
def confirm(request: HttpRequest) -> JsonResponse:
    try:
        confirmation = confirm_checkout(
            request.user,
            request.GET.get("session_id", ""),
            config=get_config(),
        )
    except StorefrontError as e:
        return error_response(e)
    return json_ok(confirmation.as_dict())
