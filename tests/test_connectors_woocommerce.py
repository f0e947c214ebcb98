import pytest

from cartshift.connectors.woocommerce import IMPORT_FIELDS, WooCommerceDestination, WooCommerceSource
from cartshift.exceptions import ConnectorConnectionError, WooCommerceAPIError
from cartshift.integrations.woocommerce.client import WooCommerceClient, site_url
from cartshift.models.config import ConnectionConfig
from cartshift.models.entities import (
    Address, Category, EntityType, Page, Post, ShippingMethod, ShippingZone, StoreSettings,
)

from fakes import FakeSession, make_response

WC = "/wp-json/wc/v3"
WP = "/wp-json/wp/v2"
CONFIG = ConnectionConfig(url="store.example.com", auth={"key": "ck_1", "secret": "cs_1"})
WP_CONFIG = ConnectionConfig(
    url="https://store.example.com/",
    auth={"key": "ck_1", "secret": "cs_1", "wpUser": "admin", "wpAppPassword": "app pass"},
)
STATUS = {"environment": {"version": "8.0"}, "settings": {"currency": "USD"}}


def woo_session(routes=None):
    session = FakeSession({("GET", f"{WC}/system_status"): make_response(200, STATUS)})
    session.routes.update(routes or {})
    return session


def connected(cls, routes=None, config=CONFIG):
    session = woo_session(routes)
    connector = cls(config, session=session)
    connector.connect()
    return connector, session


def test_site_url_normalization():
    assert site_url("store.example.com/") == "https://store.example.com"
    assert site_url("http://localhost:8080/shop") == "http://localhost:8080/shop"


def test_connect_uses_system_status_with_key_and_secret():
    source, session = connected(WooCommerceSource)
    call = session.calls_to("GET", f"{WC}/system_status")[0]
    assert call.params == {"consumer_key": "ck_1", "consumer_secret": "cs_1"}
    assert source.name == "Woocommerce Source"


def test_connect_failure_carries_platform_error():
    session = FakeSession({("GET", f"{WC}/system_status"): make_response(
        401, {"code": "woocommerce_rest_authentication_error", "message": "Invalid signature"})})
    with pytest.raises(ConnectorConnectionError, match="Invalid signature"):
        WooCommerceSource(CONFIG, session=session).connect()


def test_client_error_exposes_status_and_code():
    session = FakeSession({("GET", f"{WC}/products"): make_response(
        403, {"code": "woocommerce_rest_cannot_view", "message": "Sorry"})})
    client = WooCommerceClient("store.example.com", "ck", "cs", session=session)
    with pytest.raises(WooCommerceAPIError) as excinfo:
        client.get("/products")
    assert excinfo.value.status_code == 403
    assert excinfo.value.error_code == "woocommerce_rest_cannot_view"


def test_products_use_wp_total_headers_for_progress():
    def products(params, body):
        count = 100 if params["page"] == 1 else 50
        start = (params["page"] - 1) * 100
        rows = [{"id": start + i, "name": f"P{start + i}", "regular_price": "3.50"} for i in range(count)]
        return make_response(200, rows, headers={"X-WP-Total": "150", "X-WP-TotalPages": "2"})

    source, session = connected(WooCommerceSource, {("GET", f"{WC}/products"): products})
    progress = []
    found = source.get_products(progress.append)

    assert len(found) == 150
    assert progress == [67, 100]
    assert found[0].price == 3.5 and found[0].currency == "USD"
    assert len(session.calls_to("GET", f"{WC}/products")) == 2


def test_posts_stop_at_invalid_page_error():
    def posts(params, body):
        if params["page"] == 1:
            return make_response(200, [{"id": 1, "title": {"rendered": "Hello"}, "content": {"rendered": "<p>x</p>"},
                                        "slug": "hello", "status": "publish"}])
        return make_response(400, {"code": "rest_post_invalid_page_number", "message": "Page out of range"})

    source, _ = connected(WooCommerceSource, {("GET", f"{WP}/posts"): posts})
    found = source.get_posts()

    assert [(p.title, p.content, p.slug) for p in found] == [("Hello", "<p>x</p>", "hello")]


def test_shipping_zones_skip_default_zone():
    source, _ = connected(WooCommerceSource, {
        ("GET", f"{WC}/shipping/zones"): make_response(200, [{"id": 0, "name": "Rest of world"}, {"id": 3, "name": "EU"}]),
        ("GET", f"{WC}/shipping/zones/3/locations"): make_response(200, [
            {"code": "FR", "type": "country"}, {"code": "75001", "type": "postcode"},
        ]),
        ("GET", f"{WC}/shipping/zones/3/methods"): make_response(200, [
            {"instance_id": 9, "title": "Standard", "method_id": "flat_rate", "enabled": True,
             "settings": {"cost": {"value": "4.90"}}},
        ]),
    })
    progress = []
    zones = source.get_shipping_zones(progress.append)

    assert [z.name for z in zones] == ["EU"]
    assert zones[0].countries == ["FR"]
    assert (zones[0].methods[0].title, zones[0].methods[0].cost) == ("Standard", 4.9)
    assert progress == [100]


def test_store_settings_combine_setting_groups():
    source, _ = connected(WooCommerceSource, {
        ("GET", f"{WC}/settings/general"): make_response(200, [
            {"id": "woocommerce_currency", "value": "EUR"},
            {"id": "woocommerce_default_country", "value": "FR:75"},
            {"id": "woocommerce_store_postcode", "value": "75001"},
        ]),
        ("GET", f"{WC}/settings/products"): make_response(200, [{"id": "woocommerce_weight_unit", "value": "kg"}]),
    })
    settings = source.get_store_settings()
    assert (settings.currency, settings.weight_unit) == ("EUR", "kg")
    assert (settings.address.country_code, settings.address.province_code, settings.address.zip) == ("FR", "75", "75001")
    assert settings.name is None


def test_camel_case_wordpress_login_is_accepted():
    destination, session = connected(WooCommerceDestination, {
        ("POST", f"{WP}/posts"): make_response(201, {"id": 12}),
    }, config=WP_CONFIG)
    result = destination.import_posts([Post(original_id="1", title="Hi")])[0]
    assert result.success and result.new_id == "12"
    assert session.calls_to("POST", f"{WP}/posts")[0].auth == ("admin", "app pass")


def test_posts_and_pages_need_wordpress_login():
    destination, session = connected(WooCommerceDestination)
    results = destination.import_posts([Post(original_id="1")]) + destination.import_pages([Page(original_id="2")])
    assert [r.success for r in results] == [False, False]
    assert "WordPress" in results[0].error
    assert session.calls_to("POST", f"{WP}/posts") == []


def test_category_parents_resolve_to_created_ids():
    new_ids = iter([101, 102])
    destination, session = connected(WooCommerceDestination, {
        ("POST", f"{WC}/products/categories"): lambda params, body: make_response(201, {"id": next(new_ids)}),
    })
    destination.import_categories([
        Category(original_id="1", name="Kitchen"),
        Category(original_id="2", name="Mugs", parent_id="1"),
    ])
    sent = [call.json for call in session.calls_to("POST", f"{WC}/products/categories")]
    assert "parent" not in sent[0]
    assert sent[1]["parent"] == 101


def test_shipping_zone_import_creates_zone_locations_and_methods():
    destination, session = connected(WooCommerceDestination, {
        ("POST", f"{WC}/shipping/zones"): make_response(201, {"id": 4}),
        ("PUT", f"{WC}/shipping/zones/4/locations"): make_response(200, []),
        ("POST", f"{WC}/shipping/zones/4/methods"): make_response(200, {"instance_id": 1}),
    })
    zone = ShippingZone(original_id="z", name="Quebec", countries=["CA", "CA:QC"], methods=[
        ShippingMethod(title="Courier", method_type="carrier_calculated", cost=12.0),
        ShippingMethod(title="Free", method_type="free_shipping"),
    ])
    result = destination.import_shipping_zones([zone])[0]

    assert result.success and result.new_id == "4"
    locations = session.calls_to("PUT", f"{WC}/shipping/zones/4/locations")[0].json
    assert locations == [{"code": "CA", "type": "country"}, {"code": "CA:QC", "type": "state"}]
    methods = [call.json for call in session.calls_to("POST", f"{WC}/shipping/zones/4/methods")]
    assert methods[0] == {"method_id": "flat_rate", "enabled": True, "settings": {"title": "Courier", "cost": "12.0"}}
    assert methods[1]["method_id"] == "free_shipping"


def test_store_settings_without_wordpress_login_skip_site_settings():
    destination, session = connected(WooCommerceDestination, {
        ("POST", f"{WC}/settings/general/batch"): make_response(200, {"update": []}),
        ("PUT", f"{WC}/settings/products/woocommerce_weight_unit"): make_response(200, {"value": "kg"}),
    })
    settings = StoreSettings(name="Demo", currency="EUR", weight_unit="kg",
                             address=Address(country_code="FR", province_code="75", city="Paris"))

    result = destination.import_store_settings(settings)

    assert result.success
    batch = session.calls_to("POST", f"{WC}/settings/general/batch")[0].json["update"]
    assert {"id": "woocommerce_default_country", "value": "FR:75"} in batch
    assert {"id": "woocommerce_currency", "value": "EUR"} in batch
    assert session.calls_to("POST", f"{WP}/settings") == []


def test_import_fields_include_sampled_keys():
    destination, _ = connected(WooCommerceDestination, {
        ("GET", f"{WC}/products"): make_response(200, [{"id": 1, "name": "A", "stock_quantity": 3}]),
    })
    fields = destination.get_import_fields(EntityType.PRODUCTS)
    assert fields[0] == "name" and "stock_quantity" in fields


def test_import_fields_fall_back_when_body_is_not_json():
    destination, _ = connected(WooCommerceDestination, {
        ("GET", f"{WC}/products"): make_response(200, text="<html>maintenance</html>"),
    })
    assert destination.get_import_fields(EntityType.PRODUCTS) == IMPORT_FIELDS[EntityType.PRODUCTS]


def test_import_fields_fall_back_when_list_is_an_object():
    destination, _ = connected(WooCommerceDestination, {
        ("GET", f"{WC}/products"): make_response(200, {"unexpected": "object"}),
        ("GET", f"{WC}/shipping/zones"): make_response(200, {"unexpected": "object"}),
    })
    assert destination.get_import_fields(EntityType.PRODUCTS) == IMPORT_FIELDS[EntityType.PRODUCTS]
    assert destination.get_import_fields(EntityType.SHIPPING_ZONES) == IMPORT_FIELDS[EntityType.SHIPPING_ZONES]


def test_non_json_system_status_is_a_connection_error():
    session = FakeSession({("GET", f"{WC}/system_status"): make_response(200, text="<html>maintenance</html>")})
    source = WooCommerceSource(CONFIG, session=session)
    with pytest.raises(ConnectorConnectionError, match="Invalid JSON"):
        source.connect()
    assert session.closed and not source.is_connected
