"""
storefront.services.ledger

The one place Order payment state changes.

Both reconciliation paths (Stripe webhook push, buyer return-redirect pull)
call apply_transition(ref, outcome). Each transition is a single conditional
UPDATE gated on the current payment_status, so:

- PAID applied twice is a no-op the second time (idempotent),
- FAILED never downgrades a paid/refunded order (sticky success),
- REFUNDED only follows PAID and leaves the order status at completed,
- push and pull can race without locks; the database decides who wins.

A lookup miss or a gated no-op is reported in TransitionResult, never raised.

========= CHANGE LOG =========
2025-09-02 • ADD: apply_transition() with status-gated compare-and-set writes.
2025-09-14 • ADD: order_ref fallback lookup (payment intent metadata) for failed payments.
2025-09-14 • ADD: receipt email after the first real PAID transition only.
2025-09-21 • ADD: check_staff_move() / apply_staff_update(); staff payment edits use apply_transition().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from ..config import StorefrontConfig
from ..errors import IllegalTransition
from ..models import Order
from . import notifications

log = logging.getLogger("storefront.ledger")

OUTCOME_PAID = "paid"
OUTCOME_FAILED = "failed"
OUTCOME_REFUNDED = "refunded"

# outcome -> payment statuses it may be applied from
ALLOWED_FROM = {
    OUTCOME_PAID: (Order.PAYMENT_PENDING, Order.PAYMENT_FAILED),
    OUTCOME_FAILED: (Order.PAYMENT_PENDING,),
    OUTCOME_REFUNDED: (Order.PAYMENT_PAID,),
}


@dataclass(frozen=True)
class OrderRef:
    """How an inbound signal identifies its Order. The first non-empty key that matches wins."""

    session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_ref: Optional[str] = None

    def __str__(self) -> str:
        parts = []
        if self.session_id:
            parts.append(f"session={self.session_id}")
        if self.payment_intent_id:
            parts.append(f"intent={self.payment_intent_id}")
        if self.order_ref:
            parts.append(f"order_ref={self.order_ref}")
        return " ".join(parts) or "<empty>"


@dataclass(frozen=True)
class TransitionResult:
    outcome: str
    ref: OrderRef
    order: Optional[Order] = None
    applied: bool = False

    @property
    def found(self) -> bool:
        return self.order is not None


def find_order(ref: OrderRef) -> Optional[Order]:
    qs = Order.objects.select_related("template", "bundle")
    if ref.session_id:
        order = qs.filter(stripe_session_id=ref.session_id).first()
        if order:
            return order
    if ref.payment_intent_id:
        order = qs.filter(stripe_payment_intent_id=ref.payment_intent_id).first()
        if order:
            return order
    if ref.order_ref:
        try:
            order = qs.filter(public_id=ref.order_ref).first()
        except ValidationError:
            # not a UUID
            order = None
        if order:
            return order
    return None


def _writes(outcome: str, ref: OrderRef) -> Dict[str, Any]:
    if outcome == OUTCOME_PAID:
        writes = {"status": Order.STATUS_COMPLETED, "payment_status": Order.PAYMENT_PAID}
        if ref.payment_intent_id:
            writes["stripe_payment_intent_id"] = ref.payment_intent_id
        return writes
    if outcome == OUTCOME_FAILED:
        return {"status": Order.STATUS_FAILED, "payment_status": Order.PAYMENT_FAILED}
    if outcome == OUTCOME_REFUNDED:
        return {"payment_status": Order.PAYMENT_REFUNDED}
    raise ValueError(f"Unknown payment outcome: {outcome!r}")


def apply_transition(
    ref: OrderRef,
    outcome: str,
    *,
    config: Optional[StorefrontConfig] = None,
    source: str = "",
) -> TransitionResult:
    writes = _writes(outcome, ref)

    with transaction.atomic():
        order = find_order(ref)
        if order is None:
            log.warning("Order lookup miss: outcome=%s source=%s %s", outcome, source or "-", ref)
            if config is not None and config.alert_on_order_miss:
                notifications.alert_order_miss(ref=str(ref), outcome=outcome, source=source)
            return TransitionResult(outcome=outcome, ref=ref)

        writes["updated_at"] = timezone.now()
        updated = Order.objects.filter(
            pk=order.pk,
            payment_status__in=ALLOWED_FROM[outcome],
        ).update(**writes)
        order.refresh_from_db()

        applied = updated == 1
        log.info(
            "Order transition: order=%s outcome=%s applied=%s source=%s now=%s/%s",
            order.pk,
            outcome,
            applied,
            source or "-",
            order.status,
            order.payment_status,
        )

        if applied and outcome == OUTCOME_PAID:
            order_id = order.pk
            transaction.on_commit(lambda: notifications.send_purchase_receipt(order_id))

    return TransitionResult(outcome=outcome, ref=ref, order=order, applied=applied)


# payment_status staff may set -> (ledger outcome, status it lands on; None keeps the status)
STAFF_PAYMENT_OUTCOMES = {
    Order.PAYMENT_PAID: (OUTCOME_PAID, Order.STATUS_COMPLETED),
    Order.PAYMENT_FAILED: (OUTCOME_FAILED, Order.STATUS_FAILED),
    Order.PAYMENT_REFUNDED: (OUTCOME_REFUNDED, None),
}


def check_staff_move(
    order: Order,
    *,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> Optional[str]:
    """
    Validate a staff edit against the stored (status, payment_status) pair.

    A payment move may omit status; it lands where the ledger outcome puts it.
    Returns the ledger outcome for a payment move, None for a status-only move
    (or no move). Raises IllegalTransition naming the field at fault.
    """
    new_payment = payment_status or order.payment_status

    if new_payment != order.payment_status:
        move = STAFF_PAYMENT_OUTCOMES.get(new_payment)
        if move is None or order.payment_status not in ALLOWED_FROM[move[0]]:
            raise IllegalTransition(
                f"Cannot move payment from {order.payment_status} to {new_payment}.",
                field="payment_status",
            )
        outcome, lands_on = move
        expected = lands_on or order.status
        if status and status != expected:
            raise IllegalTransition(
                f"payment_status {new_payment} leaves status at {expected}, not {status}.",
                field="status",
            )
        return outcome

    new_status = status or order.status
    if new_status != order.status:
        allowed = Order.STAFF_STATUS_MOVES.get((order.status, order.payment_status), set())
        if new_status not in allowed:
            raise IllegalTransition(
                f"Cannot move from {order.status} to {new_status} while payment is {order.payment_status}.",
                field="status",
            )
    return None


def apply_staff_update(
    order: Order,
    *,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    notes: Optional[str] = None,
    config: Optional[StorefrontConfig] = None,
    source: str = "staff",
) -> Order:
    """Apply a staff edit. `order` must hold the stored values the edit was checked against."""
    outcome = check_staff_move(order, status=status, payment_status=payment_status)

    with transaction.atomic():
        if outcome is not None:
            result = apply_transition(
                OrderRef(session_id=order.stripe_session_id),
                outcome,
                config=config,
                source=source,
            )
            if not result.applied:
                raise IllegalTransition("Order changed meanwhile; reload and try again.", field="payment_status")
        elif status and status != order.status:
            moved = Order.objects.filter(
                pk=order.pk,
                status=order.status,
                payment_status=order.payment_status,
            ).update(status=status, updated_at=timezone.now())
            if not moved:
                raise IllegalTransition("Order changed meanwhile; reload and try again.")
        if notes is not None:
            Order.objects.filter(pk=order.pk).update(notes=notes, updated_at=timezone.now())

    order.refresh_from_db()
    log.info(
        "Order staff update: order=%s outcome=%s source=%s now=%s/%s",
        order.pk,
        outcome or "-",
        source,
        order.status,
        order.payment_status,
    )
    return order
