"""
Template Store: views package

Function views (checkout, webhook, confirm, downloads, health) share the
{ok, data, error, ver} envelope from _core. Order history and custom requests
are DRF generic views.

CHANGE LOG
----------
2025-09-14 • Split endpoints into one module each; re-export for urls.py.
"""

from .checkout import checkout
from .confirm import confirm
from .downloads import bundle_download, template_download
from .health import health
from .orders import OrderDetailView, OrderListView, OrderStatsView
from .requests import CustomRequestListCreateView
from .stripe_webhook import stripe_webhook

__all__ = [
    "checkout",
    "confirm",
    "bundle_download",
    "template_download",
    "health",
    "OrderDetailView",
    "OrderListView",
    "OrderStatsView",
    "CustomRequestListCreateView",
    "stripe_webhook",
]
