"""
Template Store: URL routes (mounted under /api/ with namespace "storefront").

CHANGE LOG
----------
2025-09-14 • Add orders, stats, custom requests and bundle download page.
2025-09-02 • Initial checkout / webhook / confirm / download routes.
"""

from django.urls import path

from . import views

app_name = "storefront"

urlpatterns = [
    path("checkout/", views.checkout, name="checkout"),
    path("webhook/", views.stripe_webhook, name="stripe-webhook"),
    path("confirm/", views.confirm, name="confirm"),
    path("downloads/templates/<int:template_id>/", views.template_download, name="template-download"),
    path("downloads/bundles/<int:order_id>/", views.bundle_download, name="bundle-download"),
    path("orders/", views.OrderListView.as_view(), name="order-list"),
    path("orders/stats/", views.OrderStatsView.as_view(), name="order-stats"),
    path("orders/<int:pk>/", views.OrderDetailView.as_view(), name="order-detail"),
    path("requests/", views.CustomRequestListCreateView.as_view(), name="custom-requests"),
    path("health/", views.health, name="health"),
]
