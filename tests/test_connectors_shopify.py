import pytest

from cartshift.connectors import create_destination, create_source
from cartshift.connectors.shopify import ShopifyDestination, ShopifySource
from cartshift.exceptions import ConfigurationError, ConnectorConnectionError, ConnectorError
from cartshift.models.config import ConnectionConfig, Platform
from cartshift.models.entities import Coupon, DiscountType, EntityType, Post, Product

from fakes import FakeSession, make_response

API = "/admin/api/2023-10"
CONFIG = ConnectionConfig(url="https://demo.myshopify.com/", auth={"token": "shpat_secret"})
SHOP = {"shop": {"name": "Demo", "email": "owner@example.com", "currency": "EUR", "iana_timezone": "Europe/Paris",
                 "weight_unit": "kg", "address1": "1 Rue", "city": "Paris", "zip": "75001", "country_code": "FR"}}


def shopify_session(routes=None):
    session = FakeSession({("GET", f"{API}/shop.json"): make_response(200, SHOP)})
    session.routes.update(routes or {})
    return session


def connected_source(routes=None):
    session = shopify_session(routes)
    source = ShopifySource(CONFIG, session=session)
    source.connect()
    return source, session


def test_missing_token_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="token"):
        ShopifySource(ConnectionConfig(url="demo.myshopify.com", auth={}))
    with pytest.raises(ConfigurationError):
        ShopifySource(ConnectionConfig(url="", auth={"token": "x"}))


def test_registry_builds_shopify_connectors():
    assert isinstance(create_source(Platform.SHOPIFY, CONFIG), ShopifySource)
    assert isinstance(create_destination("shopify", CONFIG), ShopifyDestination)
    with pytest.raises(ConfigurationError):
        create_source("magento", CONFIG)


def test_connect_reads_shop_and_sends_token():
    source, session = connected_source()
    assert source.is_connected
    assert source.shop["currency"] == "EUR"
    assert session.headers["X-Shopify-Access-Token"] == "shpat_secret"
    assert source.name == "Shopify Source"


def test_connect_failure_reports_platform_message():
    session = FakeSession({("GET", f"{API}/shop.json"): make_response(401, {"errors": "Invalid API key"})})
    source = ShopifySource(CONFIG, session=session)
    with pytest.raises(ConnectorConnectionError, match="401"):
        source.connect()
    assert not source.is_connected
    assert session.closed


def test_reading_before_connect_fails():
    with pytest.raises(ConnectorError):
        ShopifySource(CONFIG, session=shopify_session()).get_products()


def test_disconnect_is_idempotent():
    source, session = connected_source()
    source.disconnect()
    source.disconnect()
    assert session.closed and not source.is_connected


def test_products_follow_cursor_pages_and_report_progress():
    next_link = f'<https://demo.myshopify.com{API}/products.json?limit=100&page_info=abc>; rel="next"'

    def products(params, body):
        if params.get("page_info") == "abc":
            return make_response(200, {"products": [{"id": 3, "title": "Cap", "variants": []}]})
        return make_response(200, {"products": [
            {"id": 1, "title": "Mug", "body_html": "<p>Mug</p>", "product_type": "Kitchen", "tags": "a, b",
             "options": [{"name": "Size"}],
             "variants": [{"id": 11, "sku": "MUG", "price": "19.99", "option1": "L", "weight": 0.4, "weight_unit": "kg"}],
             "images": [{"src": "https://cdn/mug.png"}]},
            {"id": 2, "title": "Cup", "variants": [{"id": 21, "price": "5.00"}]},
        ]}, headers={"Link": next_link})

    source, session = connected_source({
        ("GET", f"{API}/products/count.json"): make_response(200, {"count": 3}),
        ("GET", f"{API}/products.json"): products,
    })
    progress = []
    found = source.get_products(progress.append)

    assert [p.original_id for p in found] == ["1", "2", "3"]
    assert progress == [67, 100]
    mug = found[0]
    assert (mug.sku, mug.price, mug.currency, mug.weight) == ("MUG", 19.99, "EUR", 0.4)
    assert mug.categories == ["Kitchen"] and mug.tags == ["a", "b"]
    assert mug.variants[0].options == {"Size": "L"}
    assert mug.original_data["variants"][0]["price"] == "19.99"

    pages = session.calls_to("GET", f"{API}/products.json")
    assert pages[0].params == {"limit": 100}
    assert pages[1].params == {"limit": 100, "page_info": "abc"}


def test_orders_include_every_status():
    source, session = connected_source({
        ("GET", f"{API}/orders/count.json"): make_response(200, {"count": 2}),
        ("GET", f"{API}/orders.json"): make_response(200, {"orders": [
            {"id": 5, "order_number": 1001, "email": "a@example.com", "financial_status": "paid",
             "line_items": [{"title": "Mug", "quantity": 2, "price": "19.99"}], "total_price": "39.98"},
            {"id": 6, "financial_status": "refunded"},
        ]}),
    })
    orders = source.get_orders()

    assert [o.status for o in orders] == ["paid", "pending"]
    assert orders[0].customer.email == "a@example.com"
    assert orders[0].line_items[0].quantity == 2
    assert session.calls_to("GET", f"{API}/orders.json")[0].params["status"] == "any"


def test_tax_rates_come_from_countries_and_provinces():
    source, _ = connected_source({
        ("GET", f"{API}/countries.json"): make_response(200, {"countries": [
            {"id": 1, "code": "CA", "name": "Canada", "tax": 0.05, "tax_name": "GST",
             "provinces": [{"id": 2, "code": "QC", "name": "Quebec", "tax": 0.09975, "tax_type": "compounded"},
                           {"id": 3, "code": "AB", "name": "Alberta", "tax": 0.0}]},
        ]}),
    })
    progress = []
    rates = source.get_tax_rates(progress.append)

    assert [(r.original_id, r.rate, r.state, r.priority, r.compound) for r in rates] == [
        ("1", 5.0, None, 1, False),
        ("1-2", 9.975, "QC", 2, True),
    ]
    assert progress == [100]


def test_coupons_join_price_rules_and_codes():
    source, _ = connected_source({
        ("GET", f"{API}/price_rules/count.json"): make_response(200, {"count": 1}),
        ("GET", f"{API}/price_rules.json"): make_response(200, {"price_rules": [
            {"id": 9, "title": "Spring", "value_type": "percentage", "value": "-15.0", "target_type": "line_item",
             "once_per_customer": True, "prerequisite_subtotal_range": {"greater_than_or_equal_to": "50.0"}},
        ]}),
        ("GET", f"{API}/price_rules/9/discount_codes.json"): make_response(200, {"discount_codes": [
            {"code": "SPRING15", "usage_count": 4},
        ]}),
    })
    coupon = source.get_coupons()[0]
    assert (coupon.code, coupon.amount, coupon.discount_type) == ("SPRING15", 15.0, DiscountType.PERCENT)
    assert (coupon.usage_count, coupon.usage_limit_per_user, coupon.minimum_amount) == (4, 1, 50.0)


def test_store_settings_from_shop():
    source, _ = connected_source()
    settings = source.get_store_settings()
    assert (settings.name, settings.currency, settings.timezone) == ("Demo", "EUR", "Europe/Paris")
    assert settings.address.zip == "75001"


def test_export_fields_merge_static_and_sampled_names():
    source, _ = connected_source({
        ("GET", f"{API}/products.json"): make_response(200, {"products": [{"id": 1, "title": "Mug", "handle": "mug"}]}),
    })
    fields = source.get_export_fields(EntityType.PRODUCTS)
    assert fields[:2] == ["title", "body_html"]
    assert "handle" in fields and "id" in fields


def test_export_fields_fall_back_to_static_list_on_error():
    source, _ = connected_source({("GET", f"{API}/customers.json"): make_response(500, {"errors": "oops"})})
    assert source.get_export_fields(EntityType.CUSTOMERS) == [
        "first_name", "last_name", "email", "phone", "addresses", "tags",
    ]


def test_destination_imports_products_with_mapped_fields():
    session = shopify_session({
        ("POST", f"{API}/products.json"): lambda params, body: make_response(201, {"product": {"id": 555}}),
    })
    destination = ShopifyDestination(CONFIG, session=session)
    destination.connect()
    product = Product(original_id="1", title="Mug", price=19.99, mapped_fields={"vendor": "Acme"})

    results = destination.import_products([product])

    assert results[0].success and results[0].new_id == "555"
    assert product.new_id == "555"
    sent = session.calls_to("POST", f"{API}/products.json")[0].json["product"]
    assert sent["title"] == "Mug" and sent["vendor"] == "Acme"
    assert sent["variants"][0]["price"] == "19.99"


def test_destination_failure_is_per_record():
    responses = iter([
        make_response(422, {"errors": {"title": ["can't be blank"]}}),
        make_response(201, {"product": {"id": 2}}),
    ])
    session = shopify_session({("POST", f"{API}/products.json"): lambda params, body: next(responses)})
    destination = ShopifyDestination(CONFIG, session=session)
    destination.connect()

    results = destination.import_products([Product(original_id="a"), Product(original_id="b", title="Cup")])

    assert [r.success for r in results] == [False, True]
    assert "422" in results[0].error


def test_destination_cannot_write_settings_or_taxes():
    destination = ShopifyDestination(CONFIG, session=shopify_session())
    assert not destination.supports_write(EntityType.TAXES)
    assert not destination.supports_write(EntityType.STORE_SETTINGS)
    with pytest.raises(NotImplementedError):
        destination.import_entities(EntityType.SHIPPING_ZONES, [])


def test_coupon_creates_price_rule_then_code():
    session = shopify_session({
        ("POST", f"{API}/price_rules.json"): make_response(201, {"price_rule": {"id": 77}}),
        ("POST", f"{API}/price_rules/77/discount_codes.json"): make_response(201, {"discount_code": {"id": 1}}),
    })
    destination = ShopifyDestination(CONFIG, session=session)
    destination.connect()

    result = destination.import_coupons([Coupon(original_id="c1", code="TENOFF", amount=10, usage_limit=5)])[0]

    assert result.success and result.new_id == "77"
    rule = session.calls_to("POST", f"{API}/price_rules.json")[0].json["price_rule"]
    assert (rule["value_type"], rule["value"], rule["usage_limit"]) == ("fixed_amount", "-10.0", 5)
    code = session.calls_to("POST", f"{API}/price_rules/77/discount_codes.json")[0].json
    assert code == {"discount_code": {"code": "TENOFF"}}


def test_posts_go_to_first_blog_or_a_new_one():
    session = shopify_session({
        ("GET", f"{API}/blogs.json"): make_response(200, {"blogs": []}),
        ("POST", f"{API}/blogs.json"): make_response(201, {"blog": {"id": 8}}),
        ("POST", f"{API}/blogs/8/articles.json"): make_response(201, {"article": {"id": 80}}),
    })
    destination = ShopifyDestination(CONFIG, session=session)
    destination.connect()

    results = destination.import_posts([Post(original_id="1", title="A"), Post(original_id="2", title="B")])

    assert [r.new_id for r in results] == ["80", "80"]
    assert len(session.calls_to("POST", f"{API}/blogs.json")) == 1


def test_non_json_shop_is_a_connection_error():
    session = FakeSession({("GET", f"{API}/shop.json"): make_response(200, text="<html>maintenance</html>")})
    source = ShopifySource(CONFIG, session=session)
    with pytest.raises(ConnectorConnectionError, match="Invalid JSON"):
        source.connect()
    assert session.closed and not source.is_connected


def test_export_fields_fall_back_when_body_is_not_json():
    source, _ = connected_source({("GET", f"{API}/customers.json"): make_response(200, text="<html>oops</html>")})
    assert source.get_export_fields(EntityType.CUSTOMERS) == [
        "first_name", "last_name", "email", "phone", "addresses", "tags",
    ]
