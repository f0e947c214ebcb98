"""WooCommerce / WordPress REST API integration."""

from .client import WooCommerceClient

__all__ = ["WooCommerceClient"]
