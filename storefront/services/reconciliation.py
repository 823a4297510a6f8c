"""
storefront.services.reconciliation

Reconciliation Listener: two independent triggers, one transition function.

Push (Stripe webhook, at-least-once, unordered):
    checkout.session.completed     -> PAID     by session id
    payment_intent.payment_failed  -> FAILED   by payment intent id (order_ref metadata fallback)
    charge.refunded                -> REFUNDED by payment intent id
    anything else                  -> ignored

Pull (buyer return redirect):
    re-fetch the session from Stripe (never trust client-supplied status);
    paid -> PAID by session id; otherwise PaymentNotCompleted, no write.

Both go through ledger.apply_transition(), which is idempotent and keeps
success sticky, so the two paths may interleave in any order.

========= CHANGE LOG =========
2025-09-02 • ADD: handle_event() + confirm_checkout().
2025-09-14 • CHANGE: ignore checkout.session.completed while the session is still unpaid (async methods).
2025-09-21 • CHANGE: completed event without a session id is acknowledged, not rejected.
2025-09-21 • CHANGE: confirm only hands out a link the entitlement check would allow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.urls import reverse

from ..config import StorefrontConfig
from ..errors import (
    NotFound,
    PaymentNotCompleted,
    PurchaseRequired,
    Unauthenticated,
    Unauthorized,
    ValidationFailed,
)
from .entitlements import can_download, order_grants_access
from .ledger import (
    OUTCOME_FAILED,
    OUTCOME_PAID,
    OUTCOME_REFUNDED,
    OrderRef,
    TransitionResult,
    apply_transition,
    find_order,
)
from .stripe_gateway import StripeGateway

log = logging.getLogger("storefront.reconciliation")

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_PAYMENT_FAILED = "payment_intent.payment_failed"
EVENT_CHARGE_REFUNDED = "charge.refunded"

SETTLED_SESSION_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class EventOutcome:
    event_type: str
    handled: bool
    result: Optional[TransitionResult] = None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ack": True, "event": self.event_type, "handled": self.handled}
        if self.result is not None:
            data["order_found"] = self.result.found
            data["applied"] = self.result.applied
        return data


def _intent_id(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        raw = raw.get("id")
    return str(raw) if raw else None


def _event_object(event: Dict[str, Any]) -> Dict[str, Any]:
    obj = (event.get("data") or {}).get("object") or {}
    return obj if isinstance(obj, dict) else {}


def handle_event(event: Dict[str, Any], *, config: Optional[StorefrontConfig] = None) -> EventOutcome:
    """Dispatch an already signature-verified Stripe event."""
    event_type = str(event.get("type") or "")
    obj = _event_object(event)
    source = f"webhook:{event.get('id') or '-'}"

    if event_type == EVENT_CHECKOUT_COMPLETED:
        session_id = obj.get("id")
        if not session_id:
            log.warning("Checkout completed event without a session id: event=%s", event.get("id") or "-")
            return EventOutcome(event_type=event_type, handled=False)
        payment_status = str(obj.get("payment_status") or "")
        if payment_status and payment_status not in SETTLED_SESSION_STATUSES:
            log.info(
                "Checkout completed but unpaid; waiting: session=%s payment_status=%s",
                session_id,
                payment_status,
            )
            return EventOutcome(event_type=event_type, handled=False)
        ref = OrderRef(session_id=str(session_id), payment_intent_id=_intent_id(obj.get("payment_intent")))
        result = apply_transition(ref, OUTCOME_PAID, config=config, source=source)
        return EventOutcome(event_type=event_type, handled=True, result=result)

    if event_type == EVENT_PAYMENT_FAILED:
        metadata = obj.get("metadata") or {}
        ref = OrderRef(
            payment_intent_id=_intent_id(obj.get("id")),
            order_ref=(metadata.get("order_ref") or None) if isinstance(metadata, dict) else None,
        )
        result = apply_transition(ref, OUTCOME_FAILED, config=config, source=source)
        return EventOutcome(event_type=event_type, handled=True, result=result)

    if event_type == EVENT_CHARGE_REFUNDED:
        ref = OrderRef(payment_intent_id=_intent_id(obj.get("payment_intent")))
        result = apply_transition(ref, OUTCOME_REFUNDED, config=config, source=source)
        return EventOutcome(event_type=event_type, handled=True, result=result)

    log.info("Unhandled Stripe event type: %s", event_type or "<missing>")
    return EventOutcome(event_type=event_type, handled=False)


@dataclass(frozen=True)
class Confirmation:
    download_url: str
    item_title: str
    order_id: int
    applied: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            "download_url": self.download_url,
            "item_title": self.item_title,
            "order_id": self.order_id,
        }


def confirm_checkout(
    user,
    session_id: str,
    *,
    config: StorefrontConfig,
    gateway: Optional[StripeGateway] = None,
) -> Confirmation:
    if user is None or not getattr(user, "is_authenticated", False):
        raise Unauthenticated()
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValidationFailed("Missing session_id.")

    order = find_order(OrderRef(session_id=session_id))
    if order is None:
        raise NotFound("Order not found.")
    if order.purchaser_id != user.pk and not user.is_staff:
        raise Unauthorized()

    gateway = gateway or StripeGateway(config)
    session = gateway.retrieve_session(session_id)
    if not session.is_paid:
        log.info("Confirm: payment not completed session=%s payment_status=%s", session_id, session.payment_status)
        raise PaymentNotCompleted()

    result = apply_transition(
        OrderRef(session_id=session_id, payment_intent_id=session.payment_intent),
        OUTCOME_PAID,
        config=config,
        source="confirm",
    )
    order = result.order or order

    entitled = order_grants_access(order, config) if order.is_bundle else can_download(user, order.template, config)
    if not entitled:
        log.info("Confirm: paid session but no entitlement order=%s now=%s/%s", order.pk, order.status, order.payment_status)
        raise PurchaseRequired()

    if order.is_bundle:
        download_url = reverse("storefront:bundle-download", kwargs={"order_id": order.pk})
    else:
        download_url = order.template.pdf_url
    return Confirmation(
        download_url=download_url,
        item_title=order.item_title,
        order_id=order.pk,
        applied=result.applied,
    )
