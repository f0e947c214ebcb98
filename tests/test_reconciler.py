from cartshift.engine.reconciler import build_synonym_lookup, match_source_field, reconcile_fields


def test_exact_match_ignores_case():
    assert match_source_field("Email", ["title", "email"]) == "email"


def test_match_ignores_underscores():
    assert match_source_field("first_name", ["firstName", "email"]) == "firstName"


def test_synonyms_work_in_both_directions():
    lookup = build_synonym_lookup({"postcode": ["zip", "postal_code"]})
    assert match_source_field("postcode", ["zip"], lookup) == "zip"
    assert match_source_field("zip", ["postcode"], lookup) == "postcode"
    assert match_source_field("zip", ["postal_code"], lookup) == "postal_code"


def test_unmatched_field_maps_to_empty():
    assert reconcile_fields(["sku"], ["title"]) == {"sku": ""}


def test_default_synonyms_map_shopify_to_woocommerce():
    result = reconcile_fields(["name", "regular_price", "description"], ["title", "body_html", "price"])
    assert result == {"name": "title", "regular_price": "price", "description": "body_html"}


def test_explicit_mapping_is_kept():
    result = reconcile_fields(["name", "sku"], ["title", "sku", "vendor"], existing={"name": "vendor"})
    assert result == {"name": "vendor", "sku": "sku"}


def test_empty_existing_mapping_is_rematched():
    assert reconcile_fields(["sku"], ["sku"], existing={"sku": ""}) == {"sku": "sku"}


def test_fields_the_destination_dropped_are_pruned():
    result = reconcile_fields(["name"], ["title"], existing={"name": "title", "legacy": "vendor"})
    assert result == {"name": "title"}


def test_empty_destination_list_keeps_existing_map():
    existing = {"name": "title", "legacy": "vendor"}
    assert reconcile_fields([], ["title"], existing=existing) == existing


def test_reconcile_is_idempotent():
    dest = ["name", "regular_price", "postcode", "sku"]
    source = ["title", "price", "zip"]
    once = reconcile_fields(dest, source)
    assert reconcile_fields(dest, source, existing=once) == once


def test_custom_synonyms_replace_defaults():
    assert reconcile_fields(["name"], ["title"], synonyms={}) == {"name": ""}
    assert reconcile_fields(["name"], ["label"], synonyms={"name": ["label"]}) == {"name": "label"}
