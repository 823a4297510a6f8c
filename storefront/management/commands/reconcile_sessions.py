"""
CHANGE LOG
- 2025-09-14: Initial creation of management command `reconcile_sessions`.
  Sweeps recent Stripe checkout sessions and reports:
    * orphans: sessions we created (order_ref metadata) with no local Order
    * stuck:   paid sessions whose Order is still waiting on payment
  `--apply` runs the PAID transition for stuck orders. Orphans are report-only;
  this command never creates Orders.
"""

from __future__ import annotations

import time

from django.core.management.base import BaseCommand, CommandError, CommandParser

from storefront.config import get_config
from storefront.errors import StorefrontError
from storefront.models import Order
from storefront.services.ledger import OUTCOME_PAID, OrderRef, apply_transition
from storefront.services.stripe_gateway import StripeGateway


class Command(BaseCommand):
    help = "Compares recent Stripe checkout sessions with local Orders (report; --apply fixes paid-but-pending)."

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--hours",
            type=int,
            default=24,
            help="Look back this many hours of checkout sessions (default: 24).",
        )
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Mark paid-but-pending orders as paid.",
        )

    def handle(self, *args, **opts) -> None:
        hours = max(1, int(opts.get("hours") or 24))
        apply_fixes = bool(opts.get("apply"))
        config = get_config()
        gateway = StripeGateway(config)
        since = int(time.time()) - hours * 3600

        self.stdout.write(self.style.NOTICE(f"[reconcile] hours={hours} apply={apply_fixes}"))

        scanned = orphans = stuck = fixed = 0
        try:
            for session in gateway.list_sessions(created_gte=since):
                if not session.metadata.get("order_ref"):
                    continue  # not ours
                scanned += 1
                order = Order.objects.filter(stripe_session_id=session.id).first()
                if order is None:
                    orphans += 1
                    self.stdout.write(
                        self.style.WARNING(
                            f"[orphan] session={session.id} order_ref={session.metadata.get('order_ref')} "
                            f"payment_status={session.payment_status}"
                        )
                    )
                    continue
                if session.is_paid and order.payment_status in (Order.PAYMENT_PENDING, Order.PAYMENT_FAILED):
                    stuck += 1
                    self.stdout.write(
                        self.style.WARNING(f"[stuck] session={session.id} order={order.pk} now={order.payment_status}")
                    )
                    if apply_fixes:
                        result = apply_transition(
                            OrderRef(session_id=session.id, payment_intent_id=session.payment_intent),
                            OUTCOME_PAID,
                            config=config,
                            source="reconcile_sessions",
                        )
                        if result.applied:
                            fixed += 1
        except StorefrontError as e:
            raise CommandError(f"Stripe sweep failed: {e.message} {e.detail or ''}".strip()) from e

        summary = f"[reconcile] scanned={scanned} orphans={orphans} stuck={stuck} fixed={fixed}"
        if orphans or (stuck and not apply_fixes):
            self.stdout.write(self.style.WARNING(summary))
        else:
            self.stdout.write(self.style.SUCCESS(summary))
