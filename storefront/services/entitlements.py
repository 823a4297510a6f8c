"""
storefront.services.entitlements

Entitlement Check: may this user download this template?

A user is entitled when they are staff, or when one of their completed Orders
covers the template, either directly (single-template purchase) or through
the bundle lines frozen at checkout. Later edits to a bundle's membership do
not grant or remove access on existing orders.

A refund leaves status=completed, so entitlement survives a refund unless
STOREFRONT_REVOKE_ON_REFUND is on.

========= CHANGE LOG =========
2025-09-02 • ADD: can_download() / authorize_download().
2025-09-14 • ADD: bundle download page authorization + revoke_on_refund flag.
2025-09-21 • ADD: order_grants_access() so confirmation links follow the same rules.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from django.db.models import Q

from ..config import StorefrontConfig
from ..errors import NotFound, PurchaseRequired, Unauthenticated, Unauthorized
from ..models import Order, Template

log = logging.getLogger("storefront.entitlements")


def _entitling_orders(user, config: Optional[StorefrontConfig] = None):
    qs = Order.objects.filter(purchaser=user, status=Order.STATUS_COMPLETED)
    if config is not None and config.revoke_on_refund:
        qs = qs.exclude(payment_status=Order.PAYMENT_REFUNDED)
    return qs


def order_grants_access(order: Order, config: Optional[StorefrontConfig] = None) -> bool:
    """Does this one order currently entitle its purchaser?"""
    if order.status != Order.STATUS_COMPLETED:
        return False
    if config is not None and config.revoke_on_refund and order.payment_status == Order.PAYMENT_REFUNDED:
        return False
    return True


def can_download(user, template, config: Optional[StorefrontConfig] = None) -> bool:
    if user is None or not getattr(user, "is_authenticated", False):
        return False
    if user.is_staff:
        return True
    template_id = getattr(template, "pk", template)
    return (
        _entitling_orders(user, config)
        .filter(Q(template_id=template_id) | Q(purchased_lines__template_id=template_id))
        .exists()
    )


def authorize_download(user, template_id, config: Optional[StorefrontConfig] = None) -> Template:
    """
    Resolve a template for download or raise. Counts the download on success.

    Inactive templates stay downloadable for buyers who already own them.
    """
    if user is None or not getattr(user, "is_authenticated", False):
        raise Unauthenticated("Please log in to download.")

    template = Template.objects.filter(pk=template_id).first()
    if template is None:
        raise NotFound("Template not found.")

    if not can_download(user, template, config):
        log.info("Download denied: user=%s template=%s", user.pk, template.pk)
        raise PurchaseRequired()

    template.increment_download_count()
    log.info("Download authorized: user=%s template=%s", user.pk, template.pk)
    return template


def authorize_bundle_download(user, order_id, config: Optional[StorefrontConfig] = None) -> Tuple[Order, List[Template]]:
    if user is None or not getattr(user, "is_authenticated", False):
        raise Unauthenticated("Please log in to download.")

    order = Order.objects.select_related("bundle").filter(pk=order_id, bundle__isnull=False).first()
    if order is None:
        raise NotFound("Bundle order not found.")
    if order.purchaser_id != user.pk and not user.is_staff:
        raise Unauthorized()

    if not order_grants_access(order, config):
        raise PurchaseRequired("Bundle purchase is not completed.")

    templates = list(
        Template.objects.filter(purchased_lines__order=order).order_by("title")
    )
    return order, templates
