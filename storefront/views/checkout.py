"""
storefront.views.checkout

POST /api/checkout/

Body:
  {
    "target": {"template_id": 3} | {"bundle_id": 1},
    "success_url": "https://..."   (optional),
    "cancel_url":  "https://..."   (optional)
  }

Returns { ok, data: { url, session_id, order_id }, error, ver }.
The buyer is redirected to `url`; nothing is paid until Stripe says so.

========= CHANGE LOG =========
2025-09-02 • ADD: checkout endpoint over services.checkout.create_checkout().
2025-09-09 • ADD: per-user cache rate limit (STOREFRONT_CHECKOUT_RATE_LIMIT_PER_MIN).
"""

from __future__ import annotations

import logging

from django.core.cache import cache
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_POST

from ..config import get_config
from ..errors import RateLimited, StorefrontError, Unauthenticated
from ..services.checkout import PurchaseTarget, create_checkout
from ._core import error_response, json_ok, parse_json_body

log = logging.getLogger("storefront.checkout")


def _check_rate_limit(user_id: int, limit_per_minute: int) -> None:
    key = f"storefront_checkout_rl:{user_id}"
    count = cache.get(key, 0) + 1
    cache.set(key, count, timeout=60)
    if count > limit_per_minute:
        log.warning("Checkout rate limited: user=%s count=%s", user_id, count)
        raise RateLimited()


@require_POST
def checkout(request: HttpRequest) -> JsonResponse:
    config = get_config()
    try:
        if not request.user.is_authenticated:
            raise Unauthenticated("Please log in to purchase.")
        _check_rate_limit(request.user.pk, config.checkout_rate_limit_per_min)

        body = parse_json_body(request)
        target = PurchaseTarget.from_payload(body.get("target"))
        result = create_checkout(
            request.user,
            target,
            config=config,
            success_url=body.get("success_url"),
            cancel_url=body.get("cancel_url"),
        )
    except StorefrontError as e:
        return error_response(e)

    return json_ok(
        {
            "url": result.session_url,
            "session_id": result.session_id,
            "order_id": result.order.pk,
        }
    )
