"""
storefront.views.stripe_webhook

POST /api/webhook/  (Stripe -> Django)

- Signature is verified against STRIPE_WEBHOOK_SECRET before anything else;
  a missing or bad Stripe-Signature header is a 400 with no Order lookup.
- Verified events are dispatched by services.reconciliation.handle_event().
- Duplicates, unknown types and Order misses are acknowledged with 200.
- Unexpected internal errors return 500 so Stripe redelivers the event.

========= CHANGE LOG =========
2025-09-02 • ADD: signed webhook receiver for checkout / payment_intent / charge events.
2025-09-14 • CHANGE: 500 on unexpected errors (was 200) so Stripe retries.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from ..config import get_config
from ..errors import Inconsistent, StorefrontError
from ..services.reconciliation import handle_event
from ..services.stripe_gateway import StripeGateway
from ._core import error_response, json_ok

log = logging.getLogger("storefront.webhook")


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    config = get_config()
    sig_header = request.headers.get("Stripe-Signature", "")

    try:
        event = StripeGateway(config).verify_webhook(request.body, sig_header)
    except StorefrontError as e:
        log.warning("Webhook rejected: code=%s detail=%s", e.code, e.detail or "-")
        return error_response(e)

    event_id = event.get("id") or "-"
    event_type = event.get("type") or "-"
    log.info("Webhook received: event=%s type=%s", event_id, event_type)

    try:
        outcome = handle_event(event, config=config)
    except StorefrontError as e:
        log.warning("Webhook event not processed: event=%s type=%s code=%s", event_id, event_type, e.code)
        return error_response(e)
    except Exception:
        log.exception("Webhook handler crashed: event=%s type=%s", event_id, event_type)
        return error_response(Inconsistent("Webhook processing failed."))

    return json_ok(outcome.as_dict())
