from cartshift.connectors.woocommerce import WooCommerceSource
from cartshift.engine.sync import SyncCache
from cartshift.exceptions import ConnectorConnectionError
from cartshift.models.config import ConnectionConfig
from cartshift.models.entities import EntityType, Product
from cartshift.models.sync import SyncEventType

from fakes import FakeSession, FakeSource, make_response


def make_cache(projects, items, source):
    return SyncCache(projects, items, source_factory=lambda platform, config: source)


def test_sync_emits_status_progress_then_complete(projects, items, project):
    source = FakeSource(records={EntityType.PRODUCTS: [Product(original_id="1"), Product(original_id="2")]})
    events = []

    count = make_cache(projects, items, source).sync(project.id, EntityType.PRODUCTS, events.append)

    assert count == 2
    assert [e.type for e in events] == [
        SyncEventType.STATUS,
        SyncEventType.STATUS,
        SyncEventType.PROGRESS,
        SyncEventType.PROGRESS,
        SyncEventType.STATUS,
        SyncEventType.COMPLETE,
    ]
    assert events[0].message == "Connecting to Fake Source..."
    assert events[1].message == "Fetching Products..."
    assert [e.progress for e in events if e.type == SyncEventType.PROGRESS] == [50, 100]
    assert events[4].message == "Saving to database..."
    assert events[-1].count == 2
    assert items.get_items(project.id, EntityType.PRODUCTS).total == 2
    assert source.disconnects == 1


def test_failed_sync_ends_with_single_error_event(projects, items, project):
    source = FakeSource(connect_error=ConnectorConnectionError("Failed to connect to Fake Source: HTTP 401"))
    events = []

    assert make_cache(projects, items, source).sync(project.id, EntityType.PRODUCTS, events.append) is None

    assert events[-1].type == SyncEventType.ERROR
    assert "HTTP 401" in events[-1].message
    assert len([e for e in events if e.is_terminal]) == 1
    assert items.get_items(project.id, EntityType.PRODUCTS).total == 0


def test_unknown_project_is_an_error_event(projects, items):
    events = []
    make_cache(projects, items, FakeSource()).sync("missing", EntityType.PRODUCTS, events.append)
    assert [e.type for e in events] == [SyncEventType.ERROR]
    assert "not found" in events[0].message


def test_concurrent_sync_of_same_pair_is_rejected(projects, items, project):
    cache = make_cache(projects, items, FakeSource())
    cache._acquire((project.id, EntityType.PRODUCTS))
    events = []

    cache.sync(project.id, EntityType.PRODUCTS, events.append)
    assert events[-1].type == SyncEventType.ERROR
    assert "already in progress" in events[-1].message

    # Other entity types are unaffected
    other = []
    cache.sync(project.id, EntityType.CUSTOMERS, other.append)
    assert other[-1].type == SyncEventType.COMPLETE


def test_pair_is_released_after_failure(projects, items, project):
    source = FakeSource(fail_with=RuntimeError("boom"))
    cache = make_cache(projects, items, source)
    cache.sync(project.id, EntityType.PRODUCTS, lambda e: None)

    source.fail_with = None
    events = []
    cache.sync(project.id, EntityType.PRODUCTS, events.append)
    assert events[-1].type == SyncEventType.COMPLETE


def test_iter_sync_yields_until_terminal(projects, items, project):
    source = FakeSource(records={EntityType.PAGES: [Product(original_id="7")]})
    events = list(make_cache(projects, items, source).iter_sync(project.id, EntityType.PAGES))
    assert events[-1].type == SyncEventType.COMPLETE
    assert events[-1].to_sse().startswith('data: {"type": "complete"')


def test_get_items_pages_cached_records(projects, items, project):
    source = FakeSource(records={EntityType.PRODUCTS: [Product(original_id=str(i)) for i in range(3)]})
    cache = make_cache(projects, items, source)
    cache.sync(project.id, EntityType.PRODUCTS, lambda e: None)

    page = cache.get_items(project.id, EntityType.PRODUCTS, page=1, limit=2)
    assert page.total == 3
    assert len(page.items) == 2


def test_sync_of_250_woocommerce_products_stores_every_row(projects, items, project):
    catalog = [{"id": i, "name": f"Product {i}", "regular_price": "9.99"} for i in range(250)]

    def products(params, body):
        start = (params["page"] - 1) * params["per_page"]
        page = catalog[start:start + params["per_page"]]
        return make_response(200, page, headers={"X-WP-Total": "250"})

    session = FakeSession({
        ("GET", "/wp-json/wc/v3/system_status"): make_response(200, {"settings": {"currency": "USD"}}),
        ("GET", "/wp-json/wc/v3/products"): products,
    })
    config = ConnectionConfig(url="store.example.com", auth={"key": "ck_1", "secret": "cs_1"})
    cache = SyncCache(projects, items, source_factory=lambda platform, _: WooCommerceSource(config, session=session))
    events = []

    count = cache.sync(project.id, EntityType.PRODUCTS, events.append)

    assert count == 250
    assert [e.progress for e in events if e.type == SyncEventType.PROGRESS] == [40, 80, 100]
    assert [call.params["page"] for call in session.calls_to("GET", "/wp-json/wc/v3/products")] == [1, 2, 3, 4]
    assert items.get_items(project.id, EntityType.PRODUCTS, limit=500).total == 250
