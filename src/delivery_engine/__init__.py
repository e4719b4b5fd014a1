"""Delivery fee and delivery time resolution for storefront checkout."""

__version__ = "0.1.0"
