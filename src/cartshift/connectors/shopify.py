"""
Shopify connectors (Admin REST API, token auth).
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional, Tuple

from ..exceptions import ShopifyAPIError
from ..integrations.shopify.client import ShopifyClient
from ..models.config import Platform, ShopifyAuth
from ..models.entities import (
    Address, Category, Coupon, Customer, DiscountType, EntityType, LineItem, Order, Page, Post, Product,
    ProductVariant, ShippingMethod, ShippingZone, StoreSettings, TaxRate,
)
from .base import (
    ConnectorCapability, ConnectorSchema, DestinationConnector, SourceConnector, report_single_page,
    split_tags, to_float, with_mapped_fields,
)
from .pagination import Page as ListPage, ProgressCallback, fetch_all_pages, progress_percent

logger = logging.getLogger(__name__)

# entity type -> (resource path, response key); used for paging, counting and sampling
RESOURCES: Dict[EntityType, Tuple[str, str]] = {
    EntityType.PRODUCTS: ("products", "products"),
    EntityType.CUSTOMERS: ("customers", "customers"),
    EntityType.ORDERS: ("orders", "orders"),
    EntityType.CATEGORIES: ("custom_collections", "custom_collections"),
    EntityType.PAGES: ("pages", "pages"),
    EntityType.COUPONS: ("price_rules", "price_rules"),
    EntityType.SHIPPING_ZONES: ("shipping_zones", "shipping_zones"),
    EntityType.TAXES: ("countries", "countries"),
}

EXPORT_FIELDS: Dict[EntityType, List[str]] = {
    EntityType.PRODUCTS: ["title", "body_html", "vendor", "product_type", "tags", "variants", "images"],
    EntityType.CUSTOMERS: ["first_name", "last_name", "email", "phone", "addresses", "tags"],
    EntityType.ORDERS: [
        "email", "fulfillment_status", "line_items", "billing_address", "shipping_address", "financial_status",
    ],
    EntityType.CATEGORIES: ["title", "body_html", "handle", "image"],
    EntityType.PAGES: ["title", "body_html", "handle", "published_at"],
    EntityType.POSTS: ["title", "body_html", "summary_html", "author", "tags", "handle", "published_at"],
    EntityType.COUPONS: ["title", "value_type", "value", "target_type", "allocation_method", "usage_limit", "ends_at"],
    EntityType.SHIPPING_ZONES: ["name", "countries", "weight_based_shipping_rates", "price_based_shipping_rates"],
    EntityType.TAXES: ["name", "code", "tax", "tax_name", "provinces"],
    EntityType.STORE_SETTINGS: ["name", "email", "currency", "iana_timezone", "weight_unit", "address1", "city", "zip"],
}

DEFAULT_BLOG_TITLE = "News"


def to_address(data: Optional[Dict[str, Any]]) -> Optional[Address]:
    if not data:
        return None
    return Address(
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        company=data.get("company"),
        address1=data.get("address1"),
        address2=data.get("address2"),
        city=data.get("city"),
        province=data.get("province"),
        province_code=data.get("province_code"),
        country=data.get("country"),
        country_code=data.get("country_code"),
        zip=data.get("zip"),
        phone=data.get("phone"),
    )


def from_address(address: Optional[Address]) -> Optional[Dict[str, Any]]:
    if address is None:
        return None
    return address.model_dump(exclude={"email"}, exclude_none=True)


class ShopifyConnection:
    """Client construction and field discovery shared by both Shopify roles."""

    platform = Platform.SHOPIFY
    auth_model = ShopifyAuth
    shop: Optional[Dict[str, Any]] = None

    def _create_client(self) -> ShopifyClient:
        return ShopifyClient(self.config.url, self.auth.token, session=self._session)

    def _check_connection(self, client: ShopifyClient) -> None:
        self.shop = client.get_shop()

    def get_schema(self, entity_type: EntityType) -> ConnectorSchema:
        return ConnectorSchema.from_names(*EXPORT_FIELDS.get(entity_type, []))

    def _sample_record(self, entity_type: EntityType) -> Optional[Dict[str, Any]]:
        if entity_type == EntityType.STORE_SETTINGS:
            return self.client.get_shop()
        if entity_type == EntityType.POSTS:
            blogs = self.client.get("/blogs.json", params={"limit": 1}).get("blogs", [])
            if not blogs:
                return None
            articles = self.client.get(f"/blogs/{blogs[0]['id']}/articles.json", params={"limit": 1}).get("articles", [])
            return articles[0] if articles else None
        if entity_type not in RESOURCES:
            return None

        resource, key = RESOURCES[entity_type]
        params = {"limit": 1}
        if entity_type == EntityType.ORDERS:
            params["status"] = "any"
        items = self.client.get(f"/{resource}.json", params=params).get(key, [])
        return items[0] if items else None


class ShopifySource(ShopifyConnection, SourceConnector):
    """
    Reads every entity type from Shopify.

    Categories are custom collections, posts are blog articles, tax rates
    come from the configured countries, and coupons are price rules with
    their first discount code.
    """

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(readable=set(EntityType))

    def _fetch_collection(
        self,
        resource: str,
        key: str,
        on_progress: Optional[ProgressCallback],
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        cursor: Dict[str, Optional[str]] = {"page_info": None}

        def fetch_page(page_number: int, page_size: int) -> ListPage:
            total = self.client.count(resource, params) if page_number == 1 else None
            items, next_page_info = self.client.list_page(
                resource, key, page_size, params=params, page_info=cursor["page_info"]
            )
            cursor["page_info"] = next_page_info
            return ListPage(items=items, total=total, has_more=next_page_info is not None)

        return fetch_all_pages(fetch_page, on_progress)

    def _currency(self) -> Optional[str]:
        return self.shop.get("currency") if self.shop else None

    def _read_products(self, on_progress: Optional[ProgressCallback]) -> List[Product]:
        products = []
        for p in self._fetch_collection("products", "products", on_progress):
            variants = p.get("variants") or []
            first = variants[0] if variants else {}
            options = p.get("options") or []
            option_name = options[0].get("name") if options else None

            products.append(Product(
                original_id=str(p["id"]),
                title=p.get("title") or "",
                description=p.get("body_html"),
                sku=first.get("sku"),
                price=to_float(first.get("price")),
                currency=self._currency(),
                weight=to_float(first.get("weight")),
                weight_unit=first.get("weight_unit"),
                images=[img["src"] for img in p.get("images") or [] if img.get("src")],
                variants=[
                    ProductVariant(
                        original_id=str(v["id"]) if v.get("id") is not None else None,
                        title=v.get("title") or "",
                        sku=v.get("sku"),
                        price=to_float(v.get("price")),
                        options={option_name: v["option1"]} if option_name and v.get("option1") else {},
                        inventory_quantity=v.get("inventory_quantity"),
                    )
                    for v in variants
                ],
                categories=[p["product_type"]] if p.get("product_type") else [],
                tags=split_tags(p.get("tags")),
                original_data=p,
            ))
        return products

    def _to_customer(self, c: Dict[str, Any]) -> Customer:
        return Customer(
            original_id=str(c.get("id", "")),
            email=c.get("email"),
            first_name=c.get("first_name"),
            last_name=c.get("last_name"),
            phone=c.get("phone"),
            addresses=[to_address(a) for a in c.get("addresses") or [] if a],
            created_at=c.get("created_at") or None,
            original_data=c,
        )

    def _read_customers(self, on_progress: Optional[ProgressCallback]) -> List[Customer]:
        return [self._to_customer(c) for c in self._fetch_collection("customers", "customers", on_progress)]

    def _read_orders(self, on_progress: Optional[ProgressCallback]) -> List[Order]:
        orders = []
        for o in self._fetch_collection("orders", "orders", on_progress, params={"status": "any"}):
            customer_data = o.get("customer") or {}
            orders.append(Order(
                original_id=str(o["id"]),
                order_number=str(o["order_number"]) if o.get("order_number") is not None else None,
                customer=Customer(
                    original_id=str(customer_data.get("id", "")),
                    email=o.get("email") or customer_data.get("email"),
                    first_name=customer_data.get("first_name"),
                    last_name=customer_data.get("last_name"),
                    phone=customer_data.get("phone"),
                ),
                line_items=[
                    LineItem(
                        title=item.get("title") or "",
                        sku=item.get("sku"),
                        quantity=item.get("quantity") or 1,
                        price=to_float(item.get("price")),
                        variant_id=str(item["variant_id"]) if item.get("variant_id") else None,
                        product_id=str(item["product_id"]) if item.get("product_id") else None,
                    )
                    for item in o.get("line_items") or []
                ],
                total_price=to_float(o.get("total_price")),
                currency=o.get("currency"),
                status="paid" if o.get("financial_status") == "paid" else "pending",
                created_at=o.get("created_at") or None,
                billing_address=to_address(o.get("billing_address")),
                shipping_address=to_address(o.get("shipping_address")),
                original_data=o,
            ))
        return orders

    def _read_categories(self, on_progress: Optional[ProgressCallback]) -> List[Category]:
        return [
            Category(
                original_id=str(c["id"]),
                name=c.get("title") or "",
                slug=c.get("handle"),
                description=c.get("body_html"),
                image=(c.get("image") or {}).get("src"),
                original_data=c,
            )
            for c in self._fetch_collection("custom_collections", "custom_collections", on_progress)
        ]

    def _read_pages(self, on_progress: Optional[ProgressCallback]) -> List[Page]:
        return [
            Page(
                original_id=str(p["id"]),
                title=p.get("title") or "",
                content=p.get("body_html"),
                slug=p.get("handle"),
                status="publish" if p.get("published_at") else "draft",
                published_at=p.get("published_at") or None,
                original_data=p,
            )
            for p in self._fetch_collection("pages", "pages", on_progress)
        ]

    def _read_posts(self, on_progress: Optional[ProgressCallback]) -> List[Post]:
        blogs = self._fetch_collection("blogs", "blogs", None)
        posts = []
        for index, blog in enumerate(blogs, start=1):
            resource = f"blogs/{blog['id']}/articles"
            for a in self._fetch_collection(resource, "articles", None):
                posts.append(Post(
                    original_id=str(a["id"]),
                    title=a.get("title") or "",
                    content=a.get("body_html"),
                    excerpt=a.get("summary_html"),
                    slug=a.get("handle"),
                    status="publish" if a.get("published_at") else "draft",
                    author=a.get("author"),
                    tags=split_tags(a.get("tags")),
                    published_at=a.get("published_at") or None,
                    original_data=a,
                ))
            if on_progress:
                on_progress(progress_percent(index, len(blogs)))
        if not blogs:
            report_single_page(on_progress)
        return posts

    def _read_shipping_zones(self, on_progress: Optional[ProgressCallback]) -> List[ShippingZone]:
        zones = []
        for z in self.client.get("/shipping_zones.json").get("shipping_zones", []):
            rates = (z.get("weight_based_shipping_rates") or []) + (z.get("price_based_shipping_rates") or [])
            zones.append(ShippingZone(
                original_id=str(z["id"]),
                name=z.get("name") or "",
                countries=[c["code"] for c in z.get("countries") or [] if c.get("code")],
                methods=[
                    ShippingMethod(
                        original_id=str(rate["id"]) if rate.get("id") is not None else None,
                        title=rate.get("name") or "",
                        method_type="free_shipping" if to_float(rate.get("price")) == 0 else "flat_rate",
                        cost=to_float(rate.get("price")),
                    )
                    for rate in rates
                ],
                original_data=z,
            ))
        report_single_page(on_progress)
        return zones

    def _read_tax_rates(self, on_progress: Optional[ProgressCallback]) -> List[TaxRate]:
        rates = []
        for country in self.client.get("/countries.json").get("countries", []):
            code = country.get("code")
            country_rate = to_float(country.get("tax")) or 0.0
            if country_rate > 0:
                rates.append(TaxRate(
                    original_id=str(country["id"]),
                    name=country.get("tax_name") or f"{country.get('name', code)} Tax",
                    rate=round(country_rate * 100, 4),
                    country=code,
                    original_data=country,
                ))
            for province in country.get("provinces") or []:
                province_rate = to_float(province.get("tax")) or 0.0
                if province_rate <= 0:
                    continue
                rates.append(TaxRate(
                    original_id=f"{country['id']}-{province['id']}",
                    name=province.get("tax_name") or f"{province.get('name', '')} Tax",
                    rate=round(province_rate * 100, 4),
                    country=code,
                    state=province.get("code"),
                    priority=2,
                    compound=province.get("tax_type") == "compounded",
                    original_data=province,
                ))
        report_single_page(on_progress)
        return rates

    def _read_coupons(self, on_progress: Optional[ProgressCallback]) -> List[Coupon]:
        coupons = []
        for rule in self._fetch_collection("price_rules", "price_rules", on_progress):
            codes = self.client.get(f"/price_rules/{rule['id']}/discount_codes.json").get("discount_codes", [])
            code = codes[0]["code"] if codes else rule.get("title") or ""

            if rule.get("value_type") == "percentage":
                discount_type = DiscountType.PERCENT
            elif rule.get("allocation_method") == "each":
                discount_type = DiscountType.FIXED_PRODUCT
            else:
                discount_type = DiscountType.FIXED_CART

            subtotal = rule.get("prerequisite_subtotal_range") or {}
            coupons.append(Coupon(
                original_id=str(rule["id"]),
                code=code,
                amount=abs(to_float(rule.get("value")) or 0.0),
                discount_type=discount_type,
                description=rule.get("title"),
                date_expires=rule.get("ends_at") or None,
                usage_count=codes[0].get("usage_count") if codes else None,
                product_ids=[str(pid) for pid in rule.get("entitled_product_ids") or []],
                usage_limit=rule.get("usage_limit"),
                usage_limit_per_user=1 if rule.get("once_per_customer") else None,
                free_shipping=rule.get("target_type") == "shipping_line",
                minimum_amount=to_float(subtotal.get("greater_than_or_equal_to")),
                original_data=rule,
            ))
        return coupons

    def _read_store_settings(self, on_progress: Optional[ProgressCallback]) -> Optional[StoreSettings]:
        shop = self.client.get_shop()
        report_single_page(on_progress)
        if not shop:
            return None
        return StoreSettings(
            name=shop.get("name"),
            email=shop.get("email"),
            currency=shop.get("currency"),
            timezone=shop.get("iana_timezone"),
            weight_unit=shop.get("weight_unit"),
            address=Address(
                address1=shop.get("address1"),
                address2=shop.get("address2"),
                city=shop.get("city"),
                province_code=shop.get("province_code"),
                country_code=shop.get("country_code"),
                zip=shop.get("zip"),
                phone=shop.get("phone"),
            ),
            original_data=shop,
        )


class ShopifyDestination(ShopifyConnection, DestinationConnector):
    """
    Writes to Shopify.

    Shipping zones, tax rates and store settings have no create endpoint
    in the Admin REST API, so they are not writable.
    """

    _blog_id: Optional[str] = None

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(writable={
            EntityType.PRODUCTS,
            EntityType.CUSTOMERS,
            EntityType.ORDERS,
            EntityType.CATEGORIES,
            EntityType.PAGES,
            EntityType.POSTS,
            EntityType.COUPONS,
        })

    def disconnect(self) -> None:
        self._blog_id = None
        super().disconnect()

    def _write_product(self, record: Product) -> Any:
        variant: Dict[str, Any] = {"sku": record.sku}
        if record.price is not None:
            variant["price"] = str(record.price)
        payload = {
            "title": record.title,
            "body_html": record.description,
            "tags": ", ".join(record.tags),
            "variants": [variant],
            "images": [{"src": src} for src in record.images],
        }
        if record.categories:
            payload["product_type"] = record.categories[0]
        response = self.client.post("/products.json", {"product": with_mapped_fields(payload, record)})
        return response["product"]["id"]

    def _write_customer(self, record: Customer) -> Any:
        payload = {
            "first_name": record.first_name,
            "last_name": record.last_name,
            "email": record.email,
            "phone": record.phone,
            "addresses": [from_address(a) for a in record.addresses],
        }
        response = self.client.post("/customers.json", {"customer": with_mapped_fields(payload, record)})
        return response["customer"]["id"]

    def _write_order(self, record: Order) -> Any:
        payload: Dict[str, Any] = {
            "email": record.customer.email if record.customer else None,
            "financial_status": "paid" if record.status == "paid" else "pending",
            "currency": record.currency,
            "line_items": [
                {"title": item.title, "quantity": item.quantity, "price": str(item.price or 0)}
                for item in record.line_items
            ],
        }
        if record.billing_address:
            payload["billing_address"] = from_address(record.billing_address)
        if record.shipping_address:
            payload["shipping_address"] = from_address(record.shipping_address)
        response = self.client.post("/orders.json", {"order": with_mapped_fields(payload, record)})
        return response["order"]["id"]

    def _write_category(self, record: Category) -> Any:
        payload: Dict[str, Any] = {"title": record.name, "body_html": record.description}
        if record.slug:
            payload["handle"] = record.slug
        if record.image:
            payload["image"] = {"src": record.image}
        response = self.client.post("/custom_collections.json", {"custom_collection": with_mapped_fields(payload, record)})
        return response["custom_collection"]["id"]

    def _write_page(self, record: Page) -> Any:
        payload = {
            "title": record.title,
            "body_html": record.content,
            "handle": record.slug,
            "published": record.status == "publish",
        }
        response = self.client.post("/pages.json", {"page": with_mapped_fields(payload, record)})
        return response["page"]["id"]

    def _ensure_blog(self) -> str:
        if self._blog_id is None:
            blogs = self.client.get("/blogs.json", params={"limit": 1}).get("blogs", [])
            if blogs:
                self._blog_id = str(blogs[0]["id"])
            else:
                blog = self.client.post("/blogs.json", {"blog": {"title": DEFAULT_BLOG_TITLE}})["blog"]
                self._blog_id = str(blog["id"])
                logger.info(f"Created blog {self._blog_id} for imported posts")
        return self._blog_id

    def _write_post(self, record: Post) -> Any:
        blog_id = self._ensure_blog()
        payload = {
            "title": record.title,
            "body_html": record.content,
            "summary_html": record.excerpt,
            "author": record.author,
            "tags": ", ".join(record.tags),
            "handle": record.slug,
            "published": record.status == "publish",
        }
        response = self.client.post(f"/blogs/{blog_id}/articles.json", {"article": with_mapped_fields(payload, record)})
        return response["article"]["id"]

    def _write_coupon(self, record: Coupon) -> Any:
        if record.free_shipping:
            value_type, value, target_type = "percentage", "-100.0", "shipping_line"
        elif record.discount_type == DiscountType.PERCENT:
            value_type, value, target_type = "percentage", f"-{record.amount}", "line_item"
        else:
            value_type, value, target_type = "fixed_amount", f"-{record.amount}", "line_item"

        rule: Dict[str, Any] = {
            "title": record.code,
            "value_type": value_type,
            "value": value,
            "customer_selection": "all",
            "target_type": target_type,
            "target_selection": "all",
            "allocation_method": "each" if record.discount_type == DiscountType.FIXED_PRODUCT else "across",
            "starts_at": datetime.utcnow().isoformat(),
            "once_per_customer": record.usage_limit_per_user == 1,
        }
        if record.date_expires:
            rule["ends_at"] = record.date_expires.isoformat()
        if record.usage_limit:
            rule["usage_limit"] = record.usage_limit
        if record.minimum_amount:
            rule["prerequisite_subtotal_range"] = {"greater_than_or_equal_to": str(record.minimum_amount)}

        created = self.client.post("/price_rules.json", {"price_rule": with_mapped_fields(rule, record)})["price_rule"]
        try:
            self.client.post(f"/price_rules/{created['id']}/discount_codes.json", {"discount_code": {"code": record.code}})
        except ShopifyAPIError as e:
            raise ShopifyAPIError(f"Price rule {created['id']} created but discount code failed: {e}", e.status_code)
        return created["id"]
