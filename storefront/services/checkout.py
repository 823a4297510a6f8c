"""
storefront.services.checkout

Checkout Session Bridge: purchase intent -> Stripe Checkout Session + pending Order.

Order of operations
1) Resolve the target against the active catalog and compute the charge in
   the smallest currency unit (price-at-purchase; frozen on the Order).
2) Create exactly one Stripe session. The idempotency key covers purchaser,
   target, amount, URLs and a 10-minute window, so a double-submitted checkout
   gets the same session back instead of a second one.
3) Persist exactly one Order keyed by the session id (get_or_create), with the
   bundle expansion frozen into PurchasedTemplate rows.

If step 3 fails the session is orphaned at Stripe. That is reported as
Inconsistent (logged at ERROR with the session id) and left for the
reconcile_sessions sweep; it is never retried into a second Order.

========= CHANGE LOG =========
2025-09-02 • ADD: create_checkout() for single templates and bundles.
2025-09-09 • FIX: Order ref derived from the idempotency key so Stripe replays carry identical params.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from django.db import DatabaseError, transaction
from django.utils.crypto import salted_hmac

from ..config import StorefrontConfig
from ..errors import (
    Inconsistent,
    InvalidAmount,
    NotFound,
    Unauthenticated,
    ValidationFailed,
)
from ..models import Bundle, Order, PurchasedTemplate, Template
from .stripe_gateway import StripeGateway

log = logging.getLogger("storefront.checkout")

IDEMPOTENCY_WINDOW_SECONDS = 600
SESSION_PLACEHOLDER = "session_id={CHECKOUT_SESSION_ID}"
ORDER_REF_NAMESPACE = uuid.UUID("6f1c8a52-3b0e-4c4e-9a57-0d1f3c2b7e10")


@dataclass(frozen=True)
class PurchaseTarget:
    template_id: Optional[int] = None
    bundle_id: Optional[int] = None

    @classmethod
    def from_payload(cls, data: Any) -> "PurchaseTarget":
        if not isinstance(data, dict):
            raise ValidationFailed("target must be an object with template_id or bundle_id.")
        raw_template = data.get("template_id")
        raw_bundle = data.get("bundle_id")
        if (raw_template in (None, "")) == (raw_bundle in (None, "")):
            raise ValidationFailed("Provide exactly one of template_id or bundle_id.")
        try:
            if raw_template not in (None, ""):
                return cls(template_id=int(raw_template))
            return cls(bundle_id=int(raw_bundle))
        except (TypeError, ValueError):
            raise ValidationFailed("template_id / bundle_id must be integers.")

    @property
    def kind(self) -> str:
        return "bundle" if self.bundle_id is not None else "template"

    @property
    def target_id(self) -> int:
        return self.bundle_id if self.bundle_id is not None else self.template_id


@dataclass(frozen=True)
class CheckoutResult:
    session_url: str
    session_id: str
    order: Order


def to_minor_units(price: Any) -> int:
    """19.99 -> 1999. Zero, negative and non-finite prices raise InvalidAmount."""
    try:
        value = Decimal(str(price))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"Invalid price: {price!r}")
    if not value.is_finite():
        raise InvalidAmount(f"Invalid price: {price!r}")
    cents = int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise InvalidAmount()
    return cents


def clean_return_url(url: Optional[str], fallback: str) -> str:
    u = (url or "").strip()
    if not u:
        return fallback
    parsed = urlparse(u)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationFailed("success_url / cancel_url must be absolute http(s) URLs.")
    return u


def with_session_placeholder(url: str) -> str:
    if SESSION_PLACEHOLDER in url:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}{SESSION_PLACEHOLDER}"


def _idempotency_key(purchaser_id: int, target: PurchaseTarget, amount: int, success_url: str, cancel_url: str) -> str:
    window = int(time.time() // IDEMPOTENCY_WINDOW_SECONDS)
    payload = f"{purchaser_id}|{target.kind}:{target.target_id}|{amount}|{success_url}|{cancel_url}|{window}"
    digest = salted_hmac("storefront.checkout", payload).hexdigest()
    return f"tplstore_checkout_{digest[:40]}"


def _line_item(*, currency: str, name: str, description: str, amount: int, image_url: str = "") -> Dict[str, Any]:
    product_data: Dict[str, Any] = {"name": name}
    if description:
        product_data["description"] = description[:500]
    if image_url:
        product_data["images"] = [image_url]
    return {
        "price_data": {
            "currency": currency,
            "product_data": product_data,
            "unit_amount": amount,
        },
        "quantity": 1,
    }


def create_checkout(
    purchaser,
    target: PurchaseTarget,
    *,
    config: StorefrontConfig,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
    gateway: Optional[StripeGateway] = None,
) -> CheckoutResult:
    if purchaser is None or not getattr(purchaser, "is_authenticated", False):
        raise Unauthenticated("Please log in to purchase.")

    success = with_session_placeholder(clean_return_url(success_url, config.success_url))
    cancel = clean_return_url(cancel_url, config.cancel_url)

    template: Optional[Template] = None
    bundle: Optional[Bundle] = None
    member_ids: List[int] = []

    if target.bundle_id is not None:
        bundle = Bundle.objects.active().filter(pk=target.bundle_id).first()
        if bundle is None:
            raise NotFound("Bundle not found or inactive.")
        member_ids = sorted(bundle.templates.values_list("pk", flat=True))
        if not member_ids:
            raise ValidationFailed("Bundle has no templates.")
        amount = to_minor_units(bundle.bundle_price)
        item = _line_item(
            currency=config.currency,
            name=f"Bundle: {bundle.title}",
            description=bundle.description,
            amount=amount,
        )
    else:
        template = Template.objects.active().filter(pk=target.template_id).first()
        if template is None:
            raise NotFound("Template not found or inactive.")
        amount = to_minor_units(template.price)
        item = _line_item(
            currency=config.currency,
            name=template.title,
            description=template.description,
            amount=amount,
            image_url=template.image_url,
        )

    idem_key = _idempotency_key(purchaser.pk, target, amount, success, cancel)
    order_ref = str(uuid.uuid5(ORDER_REF_NAMESPACE, idem_key))

    metadata = {
        "order_ref": order_ref,
        "user_id": str(purchaser.pk),
        f"{target.kind}_id": str(target.target_id),
    }
    if member_ids:
        metadata["template_ids"] = ",".join(str(i) for i in member_ids)

    log.info(
        "Checkout create: user=%s target=%s:%s amount=%s currency=%s",
        purchaser.pk,
        target.kind,
        target.target_id,
        amount,
        config.currency,
    )

    gateway = gateway or StripeGateway(config)
    session = gateway.create_session(
        line_items=[item],
        success_url=success,
        cancel_url=cancel,
        metadata=metadata,
        client_reference_id=order_ref,
        idempotency_key=idem_key,
        customer_email=(getattr(purchaser, "email", "") or None),
    )

    try:
        with transaction.atomic():
            order, created = Order.objects.get_or_create(
                stripe_session_id=session.id,
                defaults={
                    "public_id": order_ref,
                    "purchaser": purchaser,
                    "template": template,
                    "bundle": bundle,
                    "amount": amount,
                    "currency": config.currency,
                    "status": Order.STATUS_PENDING,
                    "payment_status": Order.PAYMENT_PENDING,
                },
            )
            if created and member_ids:
                PurchasedTemplate.objects.bulk_create(
                    [PurchasedTemplate(order=order, template_id=tid) for tid in member_ids]
                )
    except DatabaseError as e:
        log.error(
            "Checkout orphaned session (no local order): session=%s user=%s target=%s:%s error=%s",
            session.id,
            purchaser.pk,
            target.kind,
            target.target_id,
            e,
        )
        raise Inconsistent(detail=str(e)) from e

    if not created:
        same_target = order.template_id == target.template_id and order.bundle_id == target.bundle_id
        if order.purchaser_id != purchaser.pk or not same_target:
            log.error(
                "Checkout session already bound to a different order: session=%s order=%s",
                session.id,
                order.pk,
            )
            raise Inconsistent()
        log.info("Checkout replay: session=%s order=%s", session.id, order.pk)
    else:
        log.info("Checkout order created: session=%s order=%s", session.id, order.pk)

    return CheckoutResult(session_url=session.url, session_id=session.id, order=order)
