import json
from types import SimpleNamespace

import pytest

from app_settings import AIConfig
from enrichment import (
    ExternalLLMEnricher,
    Product,
    RuleBasedEnricher,
    build_enrichment_prompt,
    enrich_products,
    parse_enrichment_response,
    select_enricher,
)


def _candle():
    return Product(sku="MF-001", name="Scented Candle Grey", brand="MyFlame")


def _fake_client(reply=None, error=None):
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        if error is not None:
            raise error
        return SimpleNamespace(content=[SimpleNamespace(text=reply)])

    return SimpleNamespace(messages=SimpleNamespace(create=create)), calls


def _anthropic_config(api_key="test-key"):
    return AIConfig(provider="anthropic", api_key=api_key, model="claude-test", temperature=0.7, max_tokens=500)


class TestRuleBasedEnricher:
    def test_candle_enrichment(self):
        result = RuleBasedEnricher().enrich(_candle())

        assert result.sku == "MF-001"
        assert result.category_level_2 == "Home Fragrance"
        assert result.category_level_3 == "Candles & Wax Melts"
        assert result.standardized_color == "Gray"
        assert result.color_family == "Neutral"
        assert result.material == "Mixed Materials"
        assert result.style == "modern, lifestyle-focused"
        assert result.target_audience == "home fragrance enthusiasts"
        assert result.use_cases == "aromatherapy; ambiance; decoration"
        assert result.data_sources == "Local AI Logic; Brand Context"
        assert result.enhanced_description.startswith(
            "This modern, lifestyle-focused Scented Candle Grey from MyFlame"
        )
        assert "gray finish" in result.enhanced_description

    def test_confidence_score(self):
        enricher = RuleBasedEnricher()
        assert enricher.confidence_score(_candle()) == 0.7

        full = Product(
            sku="E-1",
            name="Wool Throw Natural",
            brand="Elvang",
            description="A soft throw woven from baby alpaca wool.",
            category="Throws",
        )
        assert enricher.confidence_score(full) == 1.0
        assert enricher.confidence_score(Product(sku="x", name="Mug", brand="Unknown")) == 0.3

    def test_seo_keywords_are_unique_and_capped(self):
        enricher = RuleBasedEnricher()
        product = _candle()
        keywords = enricher.seo_keywords(product.name, product.brand, enricher.categorize(product.name))

        assert keywords[:4] == ["myflame", "scented", "candle", "grey"]
        assert len(keywords) <= 10
        assert len(set(keywords)) == len(keywords)

    def test_unknown_product_uses_defaults(self):
        result = RuleBasedEnricher().enrich(Product(sku="Z-9", name="Desk Lamp", brand="Acme"))

        assert result.category_level_3 == "General Merchandise"
        assert result.standardized_color == "Unspecified"
        assert result.style == "contemporary"
        assert result.target_audience == "general consumers"

    def test_first_matching_material(self):
        assert RuleBasedEnricher().extract_material("Glass and wood tray") == "Wood"

    def test_item_update_columns(self):
        update = RuleBasedEnricher().enrich(_candle()).to_item_update()
        assert update["category"] == "Candles & Wax Melts"
        assert update["colour"] == "Gray"
        assert update["material"] == "Mixed Materials"
        assert update["description"].startswith("This modern")


def test_parse_response_strips_code_fences():
    text = '```json\n{"enhanced_description": "Nice", "use_cases": ["a", "b"], "seo_keywords": ["x"]}\n```'
    data = parse_enrichment_response(text)

    assert data["enhanced_description"] == "Nice"
    assert data["use_cases"] == "a; b"
    assert data["seo_keywords"] == "x"
    assert data["confidence_score"] == 0.95


def test_parse_response_rejects_non_objects():
    with pytest.raises(ValueError):
        parse_enrichment_response("[1, 2, 3]")


def test_prompt_mentions_product_details():
    prompt = build_enrichment_prompt(Product(sku="S1", name="Kitchen Scale", brand="GEFU", retail_price=24.5))
    assert "Product: Kitchen Scale" in prompt
    assert "Brand: GEFU" in prompt
    assert "Price: $24.5" in prompt


class TestExternalLLMEnricher:
    def test_successful_response(self):
        reply = json.dumps({
            "enhanced_description": "A calming grey candle.",
            "category_level_1": "Home & Garden",
            "category_level_2": "Home Fragrance",
            "category_level_3": "Candles",
            "standardized_color": "Gray",
            "use_cases": ["relaxing", "gifting"],
            "seo_keywords": ["candle", "grey"],
        })
        client, calls = _fake_client(reply=reply)
        enricher = ExternalLLMEnricher(_anthropic_config(), client=client, rate_limit_delay=0)

        result = enricher.enrich(_candle())

        assert result.enhanced_description == "A calming grey candle."
        assert result.category_level_3 == "Candles"
        assert result.use_cases == "relaxing; gifting"
        assert result.style == "modern, lifestyle-focused"
        assert result.confidence_score == 0.95
        assert result.data_sources == "Anthropic Claude"
        assert calls[0]["model"] == "claude-test"
        assert calls[0]["max_tokens"] == 500

    def test_provider_error_falls_back_to_rules(self):
        client, _ = _fake_client(error=RuntimeError("overloaded"))
        enricher = ExternalLLMEnricher(_anthropic_config(), client=client, rate_limit_delay=0)

        result = enricher.enrich(_candle())
        expected = RuleBasedEnricher().enrich(_candle())

        assert result.enhanced_description == expected.enhanced_description
        assert result.category_level_3 == expected.category_level_3
        assert "Fallback after Anthropic Claude error" in result.data_sources

    def test_invalid_json_falls_back(self):
        client, _ = _fake_client(reply="Sorry, I cannot help with that.")
        enricher = ExternalLLMEnricher(_anthropic_config(), client=client, rate_limit_delay=0)

        assert "Fallback" in enricher.enrich(_candle()).data_sources

    def test_missing_api_key_falls_back_without_calling(self):
        client, calls = _fake_client(reply="{}")
        enricher = ExternalLLMEnricher(_anthropic_config(api_key=None), client=client, rate_limit_delay=0)

        result = enricher.enrich(_candle())

        assert calls == []
        assert result.category_level_2 == "Home Fragrance"

    def test_rate_limit_waits_between_calls(self):
        client, _ = _fake_client(reply='{"enhanced_description": "ok"}')
        sleeps = []
        enricher = ExternalLLMEnricher(
            _anthropic_config(), client=client, rate_limit_delay=0.2,
            sleep=sleeps.append, clock=lambda: 100.0,
        )

        enricher.enrich(_candle())
        enricher.enrich(_candle())

        assert sleeps == [pytest.approx(0.2)]


def test_select_enricher():
    assert isinstance(select_enricher(AIConfig(provider="local")), RuleBasedEnricher)
    assert isinstance(select_enricher(_anthropic_config(api_key=None)), RuleBasedEnricher)
    assert isinstance(select_enricher(_anthropic_config(), use_external=False), RuleBasedEnricher)

    enricher = select_enricher(_anthropic_config())
    assert isinstance(enricher, ExternalLLMEnricher)
    assert enricher.name == "Anthropic Claude"


def test_enrich_products_returns_one_result_per_product():
    class FlakyEnricher(RuleBasedEnricher):
        def enrich(self, product):
            if product.sku == "BAD":
                raise ValueError("no name")
            return super().enrich(product)

    products = [_candle(), Product(sku="BAD", name=""), Product(sku="X-2", name="Red Cushion", brand="Rader")]
    progress = []

    results = enrich_products(products, FlakyEnricher(), on_progress=lambda d, t, n: progress.append((d, t)))

    assert [r.ok for r in results] == [True, False, True]
    assert results[1].label == "BAD"
    assert results[1].error == "no name"
    assert results[2].value.standardized_color == "Red"
    assert progress[-1] == (3, 3)


def test_enrich_products_respects_max_products():
    products = [Product(sku=f"S{i}", name=f"Item {i}") for i in range(5)]
    assert len(enrich_products(products, RuleBasedEnricher(), max_products=2)) == 2
