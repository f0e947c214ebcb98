"""
WooCommerce connectors (WooCommerce v3 API with key/secret auth, WordPress v2
API with an application password for posts, pages and site settings).
"""

import logging
from typing import Dict, List, Any, Optional

from ..exceptions import ItemImportError
from ..integrations.woocommerce.client import WooCommerceClient
from ..models.config import Platform, WooCommerceAuth
from ..models.entities import (
    Address, Category, Coupon, Customer, DiscountType, EntityType, LineItem, Order, Page, Post, Product,
    ShippingMethod, ShippingZone, StoreSettings, TaxRate,
)
from .base import (
    ConnectorCapability, ConnectorSchema, DestinationConnector, SourceConnector, report_single_page,
    to_float, with_mapped_fields,
)
from .pagination import Page as ListPage, ProgressCallback, fetch_all_pages, progress_percent

logger = logging.getLogger(__name__)

# entity type -> WooCommerce endpoint; posts and pages live in the WordPress API
WC_ENDPOINTS: Dict[EntityType, str] = {
    EntityType.PRODUCTS: "/products",
    EntityType.CUSTOMERS: "/customers",
    EntityType.ORDERS: "/orders",
    EntityType.CATEGORIES: "/products/categories",
    EntityType.TAXES: "/taxes",
    EntityType.COUPONS: "/coupons",
    EntityType.SHIPPING_ZONES: "/shipping/zones",
}
WP_ENDPOINTS: Dict[EntityType, str] = {
    EntityType.POSTS: "/posts",
    EntityType.PAGES: "/pages",
}

IMPORT_FIELDS: Dict[EntityType, List[str]] = {
    EntityType.PRODUCTS: [
        "name", "type", "regular_price", "description", "short_description", "sku", "images", "categories", "tags",
    ],
    EntityType.CUSTOMERS: ["email", "first_name", "last_name", "username", "billing", "shipping"],
    EntityType.ORDERS: [
        "status", "currency", "billing", "shipping", "line_items", "payment_method", "payment_method_title",
    ],
    EntityType.CATEGORIES: ["name", "slug", "parent", "description", "image"],
    EntityType.POSTS: ["title", "content", "excerpt", "slug", "status", "date"],
    EntityType.PAGES: ["title", "content", "slug", "status", "date"],
    EntityType.SHIPPING_ZONES: ["name", "order", "locations", "methods"],
    EntityType.TAXES: ["country", "state", "postcode", "city", "rate", "name", "priority", "compound", "shipping"],
    EntityType.COUPONS: [
        "code", "amount", "discount_type", "description", "date_expires", "individual_use", "usage_limit",
        "usage_limit_per_user", "free_shipping", "minimum_amount", "maximum_amount", "email_restrictions",
    ],
    EntityType.STORE_SETTINGS: [
        "title", "description", "email", "timezone_string", "woocommerce_currency", "woocommerce_weight_unit",
        "woocommerce_store_address", "woocommerce_store_city", "woocommerce_store_postcode",
        "woocommerce_default_country",
    ],
}

# Shipping method ids WooCommerce core can create
SHIPPING_METHOD_IDS = {"flat_rate", "free_shipping", "local_pickup"}


def rendered(value: Any) -> Optional[str]:
    """WordPress returns text fields as {"rendered": "..."}."""
    if isinstance(value, dict):
        return value.get("rendered")
    return value


def billing_address(data: Optional[Dict[str, Any]]) -> Optional[Address]:
    if not data or not any(data.values()):
        return None
    return Address(
        first_name=data.get("first_name") or None,
        last_name=data.get("last_name") or None,
        company=data.get("company") or None,
        address1=data.get("address_1") or None,
        address2=data.get("address_2") or None,
        city=data.get("city") or None,
        province_code=data.get("state") or None,
        country_code=data.get("country") or None,
        country=data.get("country") or None,
        zip=data.get("postcode") or None,
        phone=data.get("phone") or None,
        email=data.get("email") or None,
    )


def to_wc_address(address: Optional[Address]) -> Dict[str, Any]:
    if address is None:
        return {}
    payload = {
        "first_name": address.first_name,
        "last_name": address.last_name,
        "company": address.company,
        "address_1": address.address1,
        "address_2": address.address2,
        "city": address.city,
        "state": address.province_code or address.province,
        "postcode": address.zip,
        "country": address.country_code or address.country,
        "phone": address.phone,
        "email": address.email,
    }
    return {key: value for key, value in payload.items() if value is not None}


def settings_values(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """WooCommerce settings groups are lists of {id, value}."""
    return {row.get("id"): row.get("value") for row in rows if isinstance(row, dict)}


class WooCommerceConnection:
    """Client construction and field discovery shared by both WooCommerce roles."""

    platform = Platform.WOOCOMMERCE
    auth_model = WooCommerceAuth
    system_status: Optional[Dict[str, Any]] = None

    def _create_client(self) -> WooCommerceClient:
        return WooCommerceClient(
            self.config.url,
            self.auth.key,
            self.auth.secret,
            wp_user=self.auth.wp_user,
            wp_app_password=self.auth.wp_app_password,
            session=self._session,
        )

    def _check_connection(self, client: WooCommerceClient) -> None:
        self.system_status = client.get_system_status()

    def get_schema(self, entity_type: EntityType) -> ConnectorSchema:
        return ConnectorSchema.from_names(*IMPORT_FIELDS.get(entity_type, []))

    def _sample_record(self, entity_type: EntityType) -> Optional[Dict[str, Any]]:
        if entity_type in WP_ENDPOINTS:
            items, _, _ = self.client.wp_list_page(WP_ENDPOINTS[entity_type], 1, 1)
        elif entity_type == EntityType.SHIPPING_ZONES:
            items = self.client.get("/shipping/zones")
        elif entity_type in WC_ENDPOINTS:
            items, _, _ = self.client.list_page(WC_ENDPOINTS[entity_type], 1, 1)
        else:
            return settings_values(self.client.get("/settings/general"))
        return items[0] if isinstance(items, list) and items else None


class WooCommerceSource(WooCommerceConnection, SourceConnector):
    """Reads every entity type from WooCommerce / WordPress."""

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(readable=set(EntityType))

    def _fetch_collection(
        self,
        endpoint: str,
        on_progress: Optional[ProgressCallback],
        params: Optional[Dict[str, Any]] = None,
        wordpress: bool = False,
    ) -> List[Dict[str, Any]]:
        list_page = self.client.wp_list_page if wordpress else self.client.list_page

        def fetch_page(page_number: int, page_size: int) -> ListPage:
            items, total, total_pages = list_page(endpoint, page_number, page_size, params)
            has_more = total_pages is None or page_number < total_pages
            return ListPage(items=items, total=total, has_more=has_more)

        return fetch_all_pages(fetch_page, on_progress)

    def _currency(self) -> Optional[str]:
        settings = (self.system_status or {}).get("settings") or {}
        return settings.get("currency")

    def _read_products(self, on_progress: Optional[ProgressCallback]) -> List[Product]:
        return [
            Product(
                original_id=str(p["id"]),
                title=p.get("name") or "",
                description=p.get("description"),
                sku=p.get("sku") or None,
                price=to_float(p.get("regular_price")) if p.get("regular_price") else to_float(p.get("price")),
                currency=self._currency(),
                weight=to_float(p.get("weight")),
                images=[img["src"] for img in p.get("images") or [] if img.get("src")],
                categories=[c["name"] for c in p.get("categories") or [] if c.get("name")],
                tags=[t["name"] for t in p.get("tags") or [] if t.get("name")],
                original_data=p,
            )
            for p in self._fetch_collection("/products", on_progress)
        ]

    def _read_customers(self, on_progress: Optional[ProgressCallback]) -> List[Customer]:
        customers = []
        for c in self._fetch_collection("/customers", on_progress):
            addresses = [a for a in (billing_address(c.get("billing")), billing_address(c.get("shipping"))) if a]
            customers.append(Customer(
                original_id=str(c["id"]),
                email=c.get("email"),
                first_name=c.get("first_name"),
                last_name=c.get("last_name"),
                phone=(c.get("billing") or {}).get("phone") or None,
                addresses=addresses,
                created_at=c.get("date_created") or None,
                original_data=c,
            ))
        return customers

    def _read_orders(self, on_progress: Optional[ProgressCallback]) -> List[Order]:
        orders = []
        for o in self._fetch_collection("/orders", on_progress):
            billing = o.get("billing") or {}
            orders.append(Order(
                original_id=str(o["id"]),
                order_number=str(o.get("number") or o["id"]),
                customer=Customer(
                    original_id=str(o.get("customer_id") or ""),
                    email=billing.get("email"),
                    first_name=billing.get("first_name"),
                    last_name=billing.get("last_name"),
                    phone=billing.get("phone"),
                ),
                line_items=[
                    LineItem(
                        title=item.get("name") or "",
                        sku=item.get("sku") or None,
                        quantity=item.get("quantity") or 1,
                        price=to_float(item.get("total")),
                        variant_id=str(item["variation_id"]) if item.get("variation_id") else None,
                        product_id=str(item["product_id"]) if item.get("product_id") else None,
                    )
                    for item in o.get("line_items") or []
                ],
                total_price=to_float(o.get("total")),
                currency=o.get("currency"),
                status="paid" if o.get("status") == "completed" else "pending",
                created_at=o.get("date_created") or None,
                billing_address=billing_address(billing),
                shipping_address=billing_address(o.get("shipping")),
                original_data=o,
            ))
        return orders

    def _read_categories(self, on_progress: Optional[ProgressCallback]) -> List[Category]:
        return [
            Category(
                original_id=str(c["id"]),
                name=c.get("name") or "",
                slug=c.get("slug"),
                description=c.get("description") or None,
                parent_id=str(c["parent"]) if c.get("parent") else None,
                image=(c.get("image") or {}).get("src"),
                original_data=c,
            )
            for c in self._fetch_collection("/products/categories", on_progress)
        ]

    def _read_posts(self, on_progress: Optional[ProgressCallback]) -> List[Post]:
        return [
            Post(
                original_id=str(p["id"]),
                title=rendered(p.get("title")) or "",
                content=rendered(p.get("content")),
                excerpt=rendered(p.get("excerpt")),
                slug=p.get("slug"),
                status=p.get("status") or "publish",
                author=str(p["author"]) if p.get("author") else None,
                published_at=p.get("date") or None,
                original_data=p,
            )
            for p in self._fetch_collection("/posts", on_progress, wordpress=True)
        ]

    def _read_pages(self, on_progress: Optional[ProgressCallback]) -> List[Page]:
        return [
            Page(
                original_id=str(p["id"]),
                title=rendered(p.get("title")) or "",
                content=rendered(p.get("content")),
                slug=p.get("slug"),
                status=p.get("status") or "publish",
                published_at=p.get("date") or None,
                original_data=p,
            )
            for p in self._fetch_collection("/pages", on_progress, wordpress=True)
        ]

    def _read_shipping_zones(self, on_progress: Optional[ProgressCallback]) -> List[ShippingZone]:
        # Zone 0 ("Locations not covered by your other zones") always exists and cannot be created
        raw_zones = [z for z in self.client.get("/shipping/zones") if z.get("id")]
        zones = []
        for index, z in enumerate(raw_zones, start=1):
            zone_id = z["id"]
            locations = self.client.get(f"/shipping/zones/{zone_id}/locations")
            methods = self.client.get(f"/shipping/zones/{zone_id}/methods")
            zones.append(ShippingZone(
                original_id=str(zone_id),
                name=z.get("name") or "",
                countries=[loc["code"] for loc in locations if loc.get("type") in ("country", "state") and loc.get("code")],
                methods=[
                    ShippingMethod(
                        original_id=str(m.get("instance_id") or m.get("id")),
                        title=m.get("title") or m.get("method_title") or "",
                        method_type=m.get("method_id") or "flat_rate",
                        cost=to_float(((m.get("settings") or {}).get("cost") or {}).get("value")),
                        enabled=bool(m.get("enabled", True)),
                    )
                    for m in methods
                ],
                original_data={**z, "locations": locations, "methods": methods},
            ))
            if on_progress:
                on_progress(progress_percent(index, len(raw_zones)))
        if not raw_zones:
            report_single_page(on_progress)
        return zones

    def _read_tax_rates(self, on_progress: Optional[ProgressCallback]) -> List[TaxRate]:
        rates = []
        for t in self._fetch_collection("/taxes", on_progress):
            city = t.get("city") or ";".join(t.get("cities") or [])
            postcode = t.get("postcode") or ";".join(t.get("postcodes") or [])
            rates.append(TaxRate(
                original_id=str(t["id"]),
                name=t.get("name") or "",
                rate=to_float(t.get("rate")) or 0.0,
                country=t.get("country") or None,
                state=t.get("state") or None,
                city=city or None,
                postcode=postcode or None,
                priority=t.get("priority") or 1,
                compound=bool(t.get("compound")),
                shipping=bool(t.get("shipping", True)),
                original_data=t,
            ))
        return rates

    def _read_coupons(self, on_progress: Optional[ProgressCallback]) -> List[Coupon]:
        coupons = []
        for c in self._fetch_collection("/coupons", on_progress):
            try:
                discount_type = DiscountType(c.get("discount_type") or DiscountType.FIXED_CART.value)
            except ValueError:
                discount_type = DiscountType.FIXED_CART
            coupons.append(Coupon(
                original_id=str(c["id"]),
                code=c.get("code") or "",
                amount=to_float(c.get("amount")) or 0.0,
                discount_type=discount_type,
                description=c.get("description") or None,
                date_expires=c.get("date_expires") or None,
                usage_count=c.get("usage_count"),
                individual_use=bool(c.get("individual_use")),
                product_ids=[str(pid) for pid in c.get("product_ids") or []],
                excluded_product_ids=[str(pid) for pid in c.get("excluded_product_ids") or []],
                usage_limit=c.get("usage_limit"),
                usage_limit_per_user=c.get("usage_limit_per_user"),
                free_shipping=bool(c.get("free_shipping")),
                minimum_amount=to_float(c.get("minimum_amount")) or None,
                maximum_amount=to_float(c.get("maximum_amount")) or None,
                email_restrictions=list(c.get("email_restrictions") or []),
                original_data=c,
            ))
        return coupons

    def _read_store_settings(self, on_progress: Optional[ProgressCallback]) -> Optional[StoreSettings]:
        general = settings_values(self.client.get("/settings/general"))
        products = settings_values(self.client.get("/settings/products"))
        site: Dict[str, Any] = {}
        if self.client.has_wordpress_login:
            site = self.client.wp_get("/settings")
        report_single_page(on_progress)

        country, _, state = (general.get("woocommerce_default_country") or "").partition(":")
        return StoreSettings(
            name=site.get("title"),
            description=site.get("description"),
            email=site.get("email"),
            currency=general.get("woocommerce_currency"),
            timezone=site.get("timezone_string") or None,
            weight_unit=products.get("woocommerce_weight_unit"),
            address=Address(
                address1=general.get("woocommerce_store_address") or None,
                address2=general.get("woocommerce_store_address_2") or None,
                city=general.get("woocommerce_store_city") or None,
                country_code=country or None,
                province_code=state or None,
                zip=general.get("woocommerce_store_postcode") or None,
            ),
            original_data={**general, **products, **site},
        )


class WooCommerceDestination(WooCommerceConnection, DestinationConnector):
    """
    Writes every entity type to WooCommerce / WordPress.

    Posts, pages and the WordPress half of store settings need the
    WordPress user and application password; without them those records
    fail individually.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # source category id -> created category id, for parent links within one run
        self._category_ids: Dict[str, str] = {}

    def get_capabilities(self) -> ConnectorCapability:
        return ConnectorCapability(writable=set(EntityType))

    def _require_wordpress_login(self, what: str) -> None:
        if not self.client.has_wordpress_login:
            raise ItemImportError(f"Importing {what} requires a WordPress user and application password")

    def _write_product(self, record: Product) -> Any:
        payload: Dict[str, Any] = {
            "name": record.title,
            "type": "simple",
            "description": record.description,
            "sku": record.sku,
            "images": [{"src": src} for src in record.images],
            "tags": [{"name": tag} for tag in record.tags],
        }
        if record.price is not None:
            payload["regular_price"] = str(record.price)
        if record.weight is not None:
            payload["weight"] = str(record.weight)
        return self.client.post("/products", with_mapped_fields(payload, record))["id"]

    def _write_customer(self, record: Customer) -> Any:
        first_address = record.addresses[0] if record.addresses else None
        billing = to_wc_address(first_address)
        billing.update({
            key: value for key, value in
            {"first_name": record.first_name, "last_name": record.last_name, "email": record.email, "phone": record.phone}.items()
            if value is not None
        })
        payload: Dict[str, Any] = {
            "email": record.email,
            "first_name": record.first_name,
            "last_name": record.last_name,
            "billing": billing,
        }
        if len(record.addresses) > 1:
            payload["shipping"] = to_wc_address(record.addresses[1])
        return self.client.post("/customers", with_mapped_fields(payload, record))["id"]

    def _write_order(self, record: Order) -> Any:
        customer = record.customer or Customer(original_id="")
        billing = to_wc_address(record.billing_address)
        billing.update({
            key: value for key, value in
            {"email": customer.email, "first_name": customer.first_name, "last_name": customer.last_name}.items()
            if value is not None
        })
        payload: Dict[str, Any] = {
            "status": "completed" if record.status == "paid" else "pending",
            "currency": record.currency,
            "billing": billing,
            "line_items": [
                {"name": item.title, "quantity": item.quantity, "total": str(item.price or 0)}
                for item in record.line_items
            ],
        }
        if record.shipping_address:
            payload["shipping"] = to_wc_address(record.shipping_address)
        return self.client.post("/orders", with_mapped_fields(payload, record))["id"]

    def _write_category(self, record: Category) -> Any:
        payload: Dict[str, Any] = {"name": record.name, "description": record.description or ""}
        if record.slug:
            payload["slug"] = record.slug
        if record.image:
            payload["image"] = {"src": record.image}
        if record.parent_id and record.parent_id in self._category_ids:
            payload["parent"] = int(self._category_ids[record.parent_id])

        new_id = self.client.post("/products/categories", with_mapped_fields(payload, record))["id"]
        self._category_ids[record.original_id] = str(new_id)
        return new_id

    def _write_post(self, record: Post) -> Any:
        self._require_wordpress_login("posts")
        payload = {
            "title": record.title,
            "content": record.content or "",
            "excerpt": record.excerpt or "",
            "slug": record.slug,
            "status": record.status,
        }
        return self.client.wp_post("/posts", with_mapped_fields(payload, record))["id"]

    def _write_page(self, record: Page) -> Any:
        self._require_wordpress_login("pages")
        payload = {
            "title": record.title,
            "content": record.content or "",
            "slug": record.slug,
            "status": record.status,
        }
        return self.client.wp_post("/pages", with_mapped_fields(payload, record))["id"]

    def _write_shipping_zone(self, record: ShippingZone) -> Any:
        zone = self.client.post("/shipping/zones", with_mapped_fields({"name": record.name}, record))
        zone_id = zone["id"]

        if record.countries:
            locations = [
                {"code": code, "type": "state" if ":" in code else "country"}
                for code in record.countries
            ]
            self.client.put(f"/shipping/zones/{zone_id}/locations", locations)

        for method in record.methods:
            method_id = method.method_type if method.method_type in SHIPPING_METHOD_IDS else "flat_rate"
            settings: Dict[str, Any] = {"title": method.title}
            if method.cost is not None and method_id == "flat_rate":
                settings["cost"] = str(method.cost)
            self.client.post(f"/shipping/zones/{zone_id}/methods", {
                "method_id": method_id,
                "enabled": method.enabled,
                "settings": settings,
            })
        return zone_id

    def _write_tax_rate(self, record: TaxRate) -> Any:
        payload = {
            "country": record.country or "",
            "state": record.state or "",
            "postcode": record.postcode or "",
            "city": record.city or "",
            "rate": str(record.rate),
            "name": record.name,
            "priority": record.priority,
            "compound": record.compound,
            "shipping": record.shipping,
        }
        return self.client.post("/taxes", with_mapped_fields(payload, record))["id"]

    def _write_coupon(self, record: Coupon) -> Any:
        payload: Dict[str, Any] = {
            "code": record.code,
            "amount": str(record.amount),
            "discount_type": record.discount_type.value,
            "description": record.description or "",
            "individual_use": record.individual_use,
            "free_shipping": record.free_shipping,
            "email_restrictions": record.email_restrictions,
        }
        if record.date_expires:
            payload["date_expires"] = record.date_expires.isoformat()
        if record.usage_limit is not None:
            payload["usage_limit"] = record.usage_limit
        if record.usage_limit_per_user is not None:
            payload["usage_limit_per_user"] = record.usage_limit_per_user
        if record.minimum_amount is not None:
            payload["minimum_amount"] = str(record.minimum_amount)
        if record.maximum_amount is not None:
            payload["maximum_amount"] = str(record.maximum_amount)
        return self.client.post("/coupons", with_mapped_fields(payload, record))["id"]

    def _write_store_settings(self, record: StoreSettings) -> Any:
        address = record.address or Address()
        country = address.country_code or address.country
        if country and address.province_code:
            country = f"{country}:{address.province_code}"

        general = {
            "woocommerce_currency": record.currency,
            "woocommerce_store_address": address.address1,
            "woocommerce_store_address_2": address.address2,
            "woocommerce_store_city": address.city,
            "woocommerce_store_postcode": address.zip,
            "woocommerce_default_country": country,
        }
        general.update({k: v for k, v in record.mapped_fields.items() if k.startswith("woocommerce_")})
        updates = [{"id": key, "value": value} for key, value in general.items() if value]
        if updates:
            self.client.post("/settings/general/batch", {"update": updates})

        if record.weight_unit:
            self.client.put("/settings/products/woocommerce_weight_unit", {"value": record.weight_unit})

        site = {
            "title": record.name,
            "description": record.description,
            "email": record.email,
            "timezone_string": record.timezone,
        }
        site.update({k: v for k, v in record.mapped_fields.items() if not k.startswith("woocommerce_")})
        site = {key: value for key, value in site.items() if value}
        if site:
            if self.client.has_wordpress_login:
                self.client.wp_post("/settings", site)
            else:
                logger.warning("Skipping WordPress site settings: no WordPress user and application password")

        return record.original_id
