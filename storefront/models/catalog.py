"""
storefront.models.catalog

Catalog Store: Template (a downloadable PDF) and Bundle (a discounted set of
templates). Catalog rows are edited through Django admin; orders reference
them with PROTECT, so a sold template is deactivated rather than deleted.

========= CHANGE LOG =========
2025-09-02 • ADD: Template + Bundle models (price, media urls, active flag, download counter).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F

from .base import ActivatableModel, TimeStampedModel


class CatalogQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True)


class Template(TimeStampedModel, ActivatableModel):
    CATEGORY_CHOICES = [
        ("leaving-a-memory", "Leaving a Memory"),
        ("birthday-gift", "Birthday Gift"),
        ("wedding-memories", "Wedding Memories"),
        ("family-memory-book", "Family Memory Book"),
        ("family-recipe-collection", "Family Recipe Collection"),
        ("life-story-journal", "Life Story Journal"),
        ("baby-first-year", "Baby First Year"),
        ("memorial-tribute", "Memorial Tribute"),
        ("school-year-memory", "School Year Memory"),
    ]

    title = models.CharField(max_length=100)
    description = models.TextField(max_length=500)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
        help_text="Price in the major currency unit (e.g. 19.99).",
    )
    category = models.CharField(max_length=40, choices=CATEGORY_CHOICES, db_index=True)
    features = models.JSONField(default=list, blank=True)

    pdf_url = models.URLField(max_length=500, help_text="Media host URL of the PDF file.")
    image_url = models.URLField(max_length=500)

    download_count = models.PositiveIntegerField(default=0)

    objects = CatalogQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return self.title

    def increment_download_count(self) -> None:
        # F() keeps concurrent downloads from overwriting each other.
        type(self).objects.filter(pk=self.pk).update(download_count=F("download_count") + 1)

    @property
    def file_name(self) -> str:
        return f"{self.title}.pdf"


class Bundle(TimeStampedModel, ActivatableModel):
    title = models.CharField(max_length=120)
    description = models.TextField(max_length=500, blank=True, default="")
    templates = models.ManyToManyField(Template, related_name="bundles")
    bundle_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )

    objects = CatalogQuerySet.as_manager()

    class Meta:
        ordering = ("-created_at",)

    def __str__(self) -> str:
        return f"Bundle: {self.title}"

    @property
    def original_total(self) -> Decimal:
        return sum((t.price for t in self.templates.all()), Decimal("0"))

    @property
    def savings_amount(self) -> Decimal:
        return max(Decimal("0"), self.original_total - self.bundle_price)

    @property
    def savings_percent(self) -> int:
        original = self.original_total
        if not original:
            return 0
        return int((self.savings_amount / original * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
