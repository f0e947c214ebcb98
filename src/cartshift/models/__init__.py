"""
Models for the cartshift migration system.
"""

from .entities import (
    EntityType, EntityRecord, Product, ProductVariant, Customer, Address, Order, LineItem,
    Post, Page, Category, ShippingZone, ShippingMethod, TaxRate, Coupon, DiscountType,
    StoreSettings, ImportResult,
)
from .config import (
    Platform, ConnectionConfig, ShopifyAuth, WooCommerceAuth, EntityMapping,
    Project, ProjectCreate, ProjectUpdate,
)
from .sync import SyncedItem, SyncedItemPage, SyncEvent, SyncEventType
from .migration import MigrationStatus, EntityStats, ChannelMessage

__all__ = [
    # Entity records
    "EntityType",
    "EntityRecord",
    "Product",
    "ProductVariant",
    "Customer",
    "Address",
    "Order",
    "LineItem",
    "Post",
    "Page",
    "Category",
    "ShippingZone",
    "ShippingMethod",
    "TaxRate",
    "Coupon",
    "DiscountType",
    "StoreSettings",
    "ImportResult",

    # Project configuration
    "Platform",
    "ConnectionConfig",
    "ShopifyAuth",
    "WooCommerceAuth",
    "EntityMapping",
    "Project",
    "ProjectCreate",
    "ProjectUpdate",

    # Sync cache and status
    "SyncedItem",
    "SyncedItemPage",
    "SyncEvent",
    "SyncEventType",
    "MigrationStatus",
    "EntityStats",
    "ChannelMessage",
]
