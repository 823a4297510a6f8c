"""
Template Store: Django Admin Registrations

Catalog is managed here (no custom CRUD screens). Orders are visible for
support, but only notes and the state-machine fields can be edited, and
orders cannot be deleted.

========= CHANGE LOG =========
2025-09-02 • Register Template / Bundle / Order / CustomRequest.
2025-09-14 • Order: read-only frozen fields, transition-checked status edits, no delete.
2025-09-21 • Order: status pair checked together; payment edits applied through the ledger.
"""

from __future__ import annotations

from django import forms
from django.contrib import admin

from .config import get_config
from .errors import IllegalTransition
from .models import Bundle, CustomRequest, Order, PurchasedTemplate, Template
from .services.ledger import apply_staff_update, check_staff_move


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "category", "price", "is_active", "download_count", "created_at")
    list_filter = ("category", "is_active")
    search_fields = ("title", "description")
    readonly_fields = ("download_count", "created_at", "updated_at")
    ordering = ("-created_at",)


@admin.register(Bundle)
class BundleAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "bundle_price", "original_total", "savings_percent", "is_active")
    list_filter = ("is_active",)
    search_fields = ("title",)
    filter_horizontal = ("templates",)
    ordering = ("-created_at",)


class PurchasedTemplateInline(admin.TabularInline):
    model = PurchasedTemplate
    extra = 0
    can_delete = False
    readonly_fields = ("template",)

    def has_add_permission(self, request, obj=None):
        return False


class OrderAdminForm(forms.ModelForm):
    class Meta:
        model = Order
        fields = ("status", "payment_status", "notes")

    def clean(self):
        cleaned = super().clean()
        order = self.instance
        if order.pk is None:
            return cleaned
        # check against the stored row; self.instance picks up the form values before save
        self.stored = Order.objects.get(pk=order.pk)
        try:
            check_staff_move(
                self.stored,
                status=cleaned.get("status"),
                payment_status=cleaned.get("payment_status"),
            )
        except IllegalTransition as e:
            self.add_error(e.field, e.message)
        return cleaned


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    form = OrderAdminForm
    inlines = [PurchasedTemplateInline]
    list_display = (
        "id",
        "purchaser",
        "item_title",
        "formatted_amount",
        "status",
        "payment_status",
        "created_at",
    )
    list_filter = ("status", "payment_status", "currency")
    search_fields = ("stripe_session_id", "stripe_payment_intent_id", "purchaser__email", "public_id")
    readonly_fields = (
        "public_id",
        "purchaser",
        "template",
        "bundle",
        "stripe_session_id",
        "stripe_payment_intent_id",
        "amount",
        "currency",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)

    def save_model(self, request, obj, form, change):
        if not change:
            return super().save_model(request, obj, form, change)
        apply_staff_update(
            form.stored,
            status=obj.status,
            payment_status=obj.payment_status,
            notes=obj.notes,
            config=get_config(),
            source=f"admin:{request.user.pk}",
        )
        obj.refresh_from_db()

    def has_add_permission(self, request):
        # orders only come from checkout
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CustomRequest)
class CustomRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "email", "created_at")
    search_fields = ("name", "email", "template_description")
    readonly_fields = ("created_at",)
    ordering = ("-created_at",)
