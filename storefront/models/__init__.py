# -*- coding: utf-8 -*-
"""
Template Store: models package entrypoint.

This app uses a models/ package (not a single models.py); Django discovers
models when these modules are imported.
"""

from .catalog import Bundle, Template
from .custom_request import CustomRequest
from .order import Order, PurchasedTemplate

__all__ = [
    "Bundle",
    "CustomRequest",
    "Order",
    "PurchasedTemplate",
    "Template",
]
