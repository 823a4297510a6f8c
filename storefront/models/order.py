"""
storefront.models.order

Order Ledger persistence (Django authoritative).

An Order is the durable record of one Stripe Checkout purchase:
- Created pending/pending the moment a checkout session is opened.
- Keyed by stripe_session_id (unique) so webhook + return-redirect processing
  converge on the same row.
- amount/currency and the purchased templates are frozen at checkout time;
  later catalog edits never change an existing Order.

Only LEDGER_MUTABLE_FIELDS may change after creation. save() raises
ValidationFailed for anything else, so a stray serializer or admin form cannot
rewrite the purchaser, the price or the purchase target.

========= CHANGE LOG =========
2025-09-02 • ADD: Order + PurchasedTemplate (frozen bundle expansion).
2025-09-14 • ADD: transition tables shared by the reconciliation ledger and staff updates.
2025-09-21 • CHANGE: staff moves checked on the (status, payment_status) pair.
2025-09-21 • FIX: purchased_template_ids() reads the prefetched lines.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import DEFERRED, Q

from ..errors import ValidationFailed
from .base import TimeStampedModel


class Order(TimeStampedModel):
    """
    Represents a single Stripe Checkout purchase (centered on checkout.session).
    """

    STATUS_PENDING = "pending"
    STATUS_PROCESSING = "processing"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_FAILED = "failed"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_FAILED, "Failed"),
    ]

    PAYMENT_PENDING = "pending"
    PAYMENT_PAID = "paid"
    PAYMENT_FAILED = "failed"
    PAYMENT_REFUNDED = "refunded"
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, "Pending"),
        (PAYMENT_PAID, "Paid"),
        (PAYMENT_FAILED, "Failed"),
        (PAYMENT_REFUNDED, "Refunded"),
    ]

    CURRENCY_CHOICES = [
        ("usd", "USD"),
        ("eur", "EUR"),
        ("gbp", "GBP"),
        ("cad", "CAD"),
    ]

    # Staff status moves that leave payment_status alone, keyed by (status, payment_status).
    # Payment moves are never plain writes; they go through the reconciliation ledger.
    STAFF_STATUS_MOVES = {
        (STATUS_PENDING, PAYMENT_PENDING): {STATUS_PROCESSING, STATUS_CANCELLED},
        (STATUS_PROCESSING, PAYMENT_PENDING): {STATUS_CANCELLED},
    }

    LEDGER_MUTABLE_FIELDS = frozenset(
        {"status", "payment_status", "stripe_payment_intent_id", "notes", "updated_at"}
    )

    # ---- identity ----
    public_id = models.UUIDField(
        default=uuid.uuid4,
        unique=True,
        editable=False,
        help_text="Order reference sent to Stripe (client_reference_id + metadata).",
    )

    purchaser = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # ---- purchase target (exactly one of template / bundle) ----
    template = models.ForeignKey(
        "storefront.Template",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    bundle = models.ForeignKey(
        "storefront.Bundle",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )

    # ---- Stripe identifiers (idempotency + joins) ----
    stripe_session_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Checkout Session id (cs_...).",
    )
    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        blank=True,
        null=True,
        help_text="Stripe PaymentIntent id (pi_...) once payment settles.",
    )

    # ---- amounts ----
    amount = models.PositiveIntegerField(
        help_text="Total amount in the smallest currency unit (e.g., cents), fixed at checkout.",
    )
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default="usd")

    # ---- status ----
    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PAYMENT_STATUS_CHOICES,
        default=PAYMENT_PENDING,
        db_index=True,
    )

    notes = models.TextField(
        blank=True,
        default="",
        help_text="Internal notes for support/audit (never shown to buyers).",
    )

    class Meta:
        ordering = ("-created_at",)
        indexes = [
            models.Index(fields=["purchaser", "-created_at"], name="order_purchaser_created_idx"),
            models.Index(fields=["status", "payment_status"], name="order_status_payment_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(template__isnull=False, bundle__isnull=True)
                    | Q(template__isnull=True, bundle__isnull=False)
                ),
                name="order_single_purchase_target",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.stripe_session_id})<{self.status}/{self.payment_status}>"

    # ---- immutability ----
    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_values = dict(
            zip(field_names, (value for value in values if value is not DEFERRED))
        )
        return instance

    def _snapshot(self) -> None:
        deferred = self.get_deferred_fields()
        self._loaded_values = {
            f.attname: getattr(self, f.attname)
            for f in self._meta.concrete_fields
            if f.attname not in deferred
        }

    def refresh_from_db(self, using=None, fields=None, **kwargs):
        super().refresh_from_db(using=using, fields=fields, **kwargs)
        if fields is None:
            self._snapshot()
            return
        # deferred-field load: only the refreshed columns become the new baseline
        loaded = getattr(self, "_loaded_values", {})
        for name in fields:
            attname = self._meta.get_field(name).attname
            loaded[attname] = getattr(self, attname)
        self._loaded_values = loaded

    def _changed_fields(self) -> Dict[str, Any]:
        loaded = getattr(self, "_loaded_values", None)
        if not loaded:
            return {}
        changed = {}
        for field in self._meta.concrete_fields:
            if field.attname not in loaded:
                continue
            current = getattr(self, field.attname)
            if current != loaded[field.attname]:
                changed[field.attname] = current
        return changed

    def clean(self):
        super().clean()
        if bool(self.template_id) == bool(self.bundle_id):
            raise ValidationError("Order must reference exactly one of template or bundle.")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            locked = {
                name
                for name in self._changed_fields()
                if name not in self.LEDGER_MUTABLE_FIELDS
            }
            if locked:
                raise ValidationFailed(
                    f"Order fields are immutable after creation: {', '.join(sorted(locked))}"
                )
        super().save(*args, **kwargs)
        self._snapshot()

    # ---- helpers ----
    @property
    def is_bundle(self) -> bool:
        return self.bundle_id is not None

    @property
    def is_paid(self) -> bool:
        return self.status == self.STATUS_COMPLETED and self.payment_status == self.PAYMENT_PAID

    @property
    def item_title(self) -> str:
        if self.is_bundle:
            return self.bundle.title
        return self.template.title

    def purchased_template_ids(self) -> list:
        if self.is_bundle:
            return [line.template_id for line in self.purchased_lines.all()]
        return [self.template_id]

    @property
    def formatted_amount(self) -> str:
        return f"{self.amount / 100:.2f} {self.currency.upper()}"


class PurchasedTemplate(models.Model):
    """One frozen member of a bundle purchase, captured at checkout time."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="purchased_lines")
    template = models.ForeignKey(
        "storefront.Template",
        on_delete=models.PROTECT,
        related_name="purchased_lines",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["order", "template"], name="purchased_template_once"),
        ]

    def __str__(self) -> str:
        return f"{self.order_id}:{self.template_id}"
