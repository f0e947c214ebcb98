"""Shopify Admin API integration."""

from .client import ShopifyClient

__all__ = ["ShopifyClient"]
