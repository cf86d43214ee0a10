from enrichment import Product, ProductEnrichment, RuleBasedEnricher
from product_enrichment import (
    get_available_brands,
    get_enrichment_stats,
    get_processable_product_count,
    load_products_for_enrichment,
    save_enriched_product,
    save_enriched_products,
)

ITEMS = [
    {
        "id": 1,
        "sku": "MF-001",
        "name": "Scented Candle Grey",
        "status": "active",
        "retail_price": "12.50",
        "brand_id": "b1",
        "brands": {"id": "b1", "brand_name": "MyFlame"},
    },
    {
        "id": 2,
        "sku": "EL-7",
        "name": "Wool Throw",
        "status": "active",
        "brand_id": "b2",
        "brands": [{"id": "b2", "brand_name": "Elvang"}],
    },
    {
        "id": 3,
        "sku": "OLD-1",
        "name": "Retired Mug",
        "status": "inactive",
        "brand_id": "b1",
        "brands": {"id": "b1", "brand_name": "MyFlame"},
    },
]


def _enrichment(sku="MF-001"):
    return RuleBasedEnricher().enrich(Product(sku=sku, name="Scented Candle Grey", brand="MyFlame"))


def test_load_products_maps_brand_join(make_supabase):
    supabase = make_supabase({"items": ITEMS})

    products = load_products_for_enrichment(supabase, "c1")

    assert [p.sku for p in products] == ["MF-001", "EL-7"]
    assert products[0].brand == "MyFlame"
    assert products[0].retail_price == 12.5
    assert products[1].brand == "Elvang"


def test_load_products_for_one_brand(make_supabase):
    supabase = make_supabase({"items": ITEMS})
    assert [p.sku for p in load_products_for_enrichment(supabase, "c1", "b2")] == ["EL-7"]


def test_processable_count(make_supabase):
    supabase = make_supabase({"items": ITEMS})
    assert get_processable_product_count(supabase, "c1") == 2


def test_processable_count_is_zero_on_error(make_supabase):
    supabase = make_supabase(errors={"items": ConnectionError("down")})
    assert get_processable_product_count(supabase, "c1") == 0


def test_available_brands(make_supabase):
    supabase = make_supabase({"brands": [
        {"id": "b2", "brand_name": "Rader", "company_id": "c1", "is_active": True},
        {"id": "b1", "brand_name": "Elvang", "company_id": "c1", "is_active": True},
        {"id": "b3", "brand_name": "Gone", "company_id": "c1", "is_active": False},
    ]})

    assert [b["brand_name"] for b in get_available_brands(supabase, "c1")] == ["Elvang", "Rader"]


def test_available_brands_empty_on_error(make_supabase):
    supabase = make_supabase(errors={"brands": ConnectionError("down")})
    assert get_available_brands(supabase, "c1") == []


def test_enrichment_stats(make_supabase):
    stats = get_enrichment_stats(make_supabase({"items": ITEMS}), "c1")
    assert stats["total_products"] == 2
    assert stats["enriched_products"] == 0


def test_save_updates_item(make_supabase):
    supabase = make_supabase({"items": ITEMS})

    result = save_enriched_product(supabase, "c1", _enrichment())

    assert result.ok
    assert result.label == "MF-001"
    row = supabase.tables["items"][0]
    assert row["category"] == "Candles & Wax Melts"
    assert row["colour"] == "Gray"
    assert row["description"].startswith("This modern")


def test_save_reports_rls_block(make_supabase):
    supabase = make_supabase({"items": ITEMS}, blocked_updates=["items"])

    result = save_enriched_product(supabase, "c1", _enrichment())

    assert not result.ok
    assert "RLS" in result.error
    assert "description" not in supabase.tables["items"][0]


def test_save_unknown_sku(make_supabase):
    supabase = make_supabase({"items": ITEMS})

    result = save_enriched_product(supabase, "c1", ProductEnrichment(sku="NOPE", original_name="x"))

    assert not result.ok
    assert result.error == "Item not found for company"


def test_save_batch_keeps_going_after_errors(make_supabase):
    supabase = make_supabase({"items": ITEMS}, errors={"items": ConnectionError("timeout")})
    enrichments = [_enrichment("MF-001"), _enrichment("EL-7"), _enrichment("X")]

    results = save_enriched_products(supabase, "c1", enrichments, batch_size=2)

    assert len(results) == 3
    assert all(not r.ok for r in results)
    assert [r.label for r in results] == ["MF-001", "EL-7", "X"]
    assert results[0].error == "timeout"
