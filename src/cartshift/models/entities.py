"""
Universal entity records that every connector translates to and from.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class EntityType(str, Enum):
    """Categories of store data that can be migrated."""
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    ORDERS = "orders"
    POSTS = "posts"
    PAGES = "pages"
    CATEGORIES = "categories"
    SHIPPING_ZONES = "shipping_zones"
    TAXES = "taxes"
    COUPONS = "coupons"
    STORE_SETTINGS = "store_settings"

    @property
    def label(self) -> str:
        """Human-readable name used in log lines."""
        return self.value.replace("_", " ").title()


class EntityRecord(BaseModel):
    """
    Fields shared by every normalized record.

    original_data holds the raw source payload and is only consulted for
    field-map lookups; mapped_fields is filled just before import.
    """
    original_id: str
    new_id: Optional[str] = None
    original_data: Dict[str, Any] = Field(default_factory=dict)
    mapped_fields: Dict[str, Any] = Field(default_factory=dict)

    def get_original(self, key: str) -> Optional[Any]:
        """Return the raw source value for key, or None when absent."""
        if not self.original_data:
            return None
        return self.original_data.get(key)

    def has_original(self, key: str) -> bool:
        return bool(self.original_data) and key in self.original_data


class Address(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    province_code: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class ProductVariant(BaseModel):
    original_id: Optional[str] = None
    title: str = ""
    sku: Optional[str] = None
    price: Optional[float] = None
    options: Dict[str, str] = Field(default_factory=dict)
    inventory_quantity: Optional[int] = None


class Product(EntityRecord):
    title: str = ""
    description: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    variants: List[ProductVariant] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class Customer(EntityRecord):
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    addresses: List[Address] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class LineItem(BaseModel):
    title: str = ""
    sku: Optional[str] = None
    quantity: int = 1
    price: Optional[float] = None
    variant_id: Optional[str] = None
    product_id: Optional[str] = None


class Order(EntityRecord):
    order_number: Optional[str] = None
    customer: Optional[Customer] = None
    line_items: List[LineItem] = Field(default_factory=list)
    total_price: Optional[float] = None
    currency: Optional[str] = None
    status: str = "pending"
    created_at: Optional[datetime] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None


class Post(EntityRecord):
    title: str = ""
    content: Optional[str] = None
    excerpt: Optional[str] = None
    slug: Optional[str] = None
    status: str = "publish"
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None


class Page(EntityRecord):
    title: str = ""
    content: Optional[str] = None
    slug: Optional[str] = None
    status: str = "publish"
    published_at: Optional[datetime] = None


class Category(EntityRecord):
    name: str = ""
    slug: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[str] = None
    image: Optional[str] = None


class ShippingMethod(BaseModel):
    original_id: Optional[str] = None
    title: str = ""
    method_type: str = "flat_rate"
    cost: Optional[float] = None
    enabled: bool = True


class ShippingZone(EntityRecord):
    name: str = ""
    countries: List[str] = Field(default_factory=list)
    methods: List[ShippingMethod] = Field(default_factory=list)


class TaxRate(EntityRecord):
    name: str = ""
    rate: float = 0.0  # percentage, 20.0 means 20%
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    priority: int = 1
    compound: bool = False
    shipping: bool = True


class DiscountType(str, Enum):
    PERCENT = "percent"
    FIXED_CART = "fixed_cart"
    FIXED_PRODUCT = "fixed_product"


class Coupon(EntityRecord):
    code: str = ""
    amount: float = 0.0
    discount_type: DiscountType = DiscountType.FIXED_CART
    description: Optional[str] = None
    date_expires: Optional[datetime] = None
    usage_count: Optional[int] = None
    individual_use: bool = False
    product_ids: List[str] = Field(default_factory=list)
    excluded_product_ids: List[str] = Field(default_factory=list)
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    free_shipping: bool = False
    minimum_amount: Optional[float] = None
    maximum_amount: Optional[float] = None
    email_restrictions: List[str] = Field(default_factory=list)


class StoreSettings(EntityRecord):
    original_id: str = "store_settings"
    name: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    currency: Optional[str] = None
    timezone: Optional[str] = None
    weight_unit: Optional[str] = None
    address: Optional[Address] = None


class ImportResult(BaseModel):
    """Outcome of writing one record to a destination. Never mutated."""
    model_config = ConfigDict(frozen=True)

    original_id: str
    success: bool
    new_id: Optional[str] = None
    error: Optional[str] = None
