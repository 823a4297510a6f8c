"""
storefront.services.notifications

Transactional email for the storefront (Django mail framework; Anymail/Mailgun
in production, locmem in tests).

- send_purchase_receipt(): buyer receipt after the first PAID transition.
- notify_owner_custom_request(): store owner heads-up for a custom template request.
- alert_order_miss(): optional admin alert when a Stripe signal matches no Order.

The ledger calls these after its write has committed. A mail failure is logged
with a traceback and does not undo or fail the reconciliation.

========= CHANGE LOG =========
2025-09-14 • ADD: receipt + owner notification + order-miss alert.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, mail_admins, send_mail
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from ..models import Order

log = logging.getLogger("storefront.notifications")


def _from_email() -> str:
    return (
        getattr(settings, "DEFAULT_FROM_EMAIL", "")
        or getattr(settings, "SERVER_EMAIL", "")
        or "no-reply@localhost"
    )


def send_purchase_receipt(order_id: int) -> bool:
    order = (
        Order.objects.select_related("purchaser", "template", "bundle")
        .filter(pk=order_id)
        .first()
    )
    if order is None:
        return False
    to_email = (getattr(order.purchaser, "email", "") or "").strip()
    if not to_email:
        log.info("Receipt skipped (purchaser has no email): order=%s", order.pk)
        return False

    context = {"order": order, "item_title": order.item_title}
    html_body = render_to_string("storefront/email_purchase_receipt.html", context)
    msg = EmailMultiAlternatives(
        subject=f"Your purchase: {order.item_title}",
        body=strip_tags(html_body),
        from_email=_from_email(),
        to=[to_email],
    )
    msg.attach_alternative(html_body, "text/html")
    try:
        msg.send(fail_silently=False)
    except Exception:
        log.exception("Receipt email failed: order=%s", order.pk)
        return False
    return True


def notify_owner_custom_request(custom_request, owner_email: str) -> bool:
    if not owner_email:
        return False
    subject = f"New custom template request from {custom_request.name}"
    html_message = render_to_string(
        "storefront/email_custom_request.html",
        {"request_obj": custom_request},
    )
    try:
        send_mail(
            subject,
            strip_tags(html_message),
            None,  # use DEFAULT_FROM_EMAIL
            [owner_email],
            html_message=html_message,
        )
    except Exception:
        log.exception("Custom request notification failed: request=%s", custom_request.pk)
        return False
    return True


def alert_order_miss(*, ref: str, outcome: str, source: str) -> None:
    try:
        mail_admins(
            subject=f"Stripe {outcome} signal matched no order",
            message=f"source={source or '-'} {ref}\nCheck the reconcile_sessions report.",
        )
    except Exception:
        log.exception("Order-miss alert failed: %s", ref)
