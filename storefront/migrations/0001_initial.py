import decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CustomRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=120)),
                ("email", models.EmailField(max_length=254)),
                ("template_description", models.TextField(max_length=2000)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ("-created_at",),
            },
        ),
        migrations.CreateModel(
            name="Template",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("title", models.CharField(max_length=100)),
                ("description", models.TextField(max_length=500)),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Price in the major currency unit (e.g. 19.99).",
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(decimal.Decimal("0"))],
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("leaving-a-memory", "Leaving a Memory"),
                            ("birthday-gift", "Birthday Gift"),
                            ("wedding-memories", "Wedding Memories"),
                            ("family-memory-book", "Family Memory Book"),
                            ("family-recipe-collection", "Family Recipe Collection"),
                            ("life-story-journal", "Life Story Journal"),
                            ("baby-first-year", "Baby First Year"),
                            ("memorial-tribute", "Memorial Tribute"),
                            ("school-year-memory", "School Year Memory"),
                        ],
                        db_index=True,
                        max_length=40,
                    ),
                ),
                ("features", models.JSONField(blank=True, default=list)),
                ("pdf_url", models.URLField(help_text="Media host URL of the PDF file.", max_length=500)),
                ("image_url", models.URLField(max_length=500)),
                ("download_count", models.PositiveIntegerField(default=0)),
            ],
            options={
                "ordering": ("-created_at",),
            },
        ),
        migrations.CreateModel(
            name="Bundle",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                ("title", models.CharField(max_length=120)),
                ("description", models.TextField(blank=True, default="", max_length=500)),
                (
                    "bundle_price",
                    models.DecimalField(
                        decimal_places=2,
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(decimal.Decimal("0"))],
                    ),
                ),
                ("templates", models.ManyToManyField(related_name="bundles", to="storefront.template")),
            ],
            options={
                "ordering": ("-created_at",),
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "public_id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Order reference sent to Stripe (client_reference_id + metadata).",
                        unique=True,
                    ),
                ),
                (
                    "stripe_session_id",
                    models.CharField(help_text="Stripe Checkout Session id (cs_...).", max_length=255, unique=True),
                ),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe PaymentIntent id (pi_...) once payment settles.",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "amount",
                    models.PositiveIntegerField(
                        help_text="Total amount in the smallest currency unit (e.g., cents), fixed at checkout.",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        choices=[("usd", "USD"), ("eur", "EUR"), ("gbp", "GBP"), ("cad", "CAD")],
                        default="usd",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "notes",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Internal notes for support/audit (never shown to buyers).",
                    ),
                ),
                (
                    "bundle",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="storefront.bundle",
                    ),
                ),
                (
                    "purchaser",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="storefront.template",
                    ),
                ),
            ],
            options={
                "ordering": ("-created_at",),
                "indexes": [
                    models.Index(fields=["purchaser", "-created_at"], name="order_purchaser_created_idx"),
                    models.Index(fields=["status", "payment_status"], name="order_status_payment_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("bundle__isnull", True), ("template__isnull", False)),
                            models.Q(("bundle__isnull", False), ("template__isnull", True)),
                            _connector="OR",
                        ),
                        name="order_single_purchase_target",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PurchasedTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="purchased_lines",
                        to="storefront.order",
                    ),
                ),
                (
                    "template",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchased_lines",
                        to="storefront.template",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("order", "template"), name="purchased_template_once"),
                ],
            },
        ),
    ]
