"""
AI Product Enrichment
---------------------
Fills in descriptions, category hierarchy, color, material, style and SEO
keywords for catalogue items.

Two strategies share the Enricher interface:
1. RuleBasedEnricher - keyword rules, no network
2. ExternalLLMEnricher - OpenAI or Anthropic; on any provider error it hands
   the product to its fallback enricher (rule-based by default)

select_enricher() picks one from AIConfig.
"""

import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from anthropic import Anthropic

from app_settings import AIConfig
from logger import log
from task_results import TaskResult, run_task

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

# Seconds between external calls per provider
RATE_LIMIT_DELAYS = {"openai": 0.35, "anthropic": 0.2}

PROVIDER_LABELS = {"openai": "OpenAI GPT-4", "anthropic": "Anthropic Claude"}


@dataclass
class Product:
    sku: str
    name: str
    brand: str = "Unknown"
    brand_id: str = ""
    description: Optional[str] = None
    category: Optional[str] = None
    colour: Optional[str] = None
    retail_price: Optional[float] = None
    material: Optional[str] = None
    dimensions: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Product":
        brands = row.get("brands")
        if isinstance(brands, list):
            brands = brands[0] if brands else {}
        brand_name = (brands or {}).get("brand_name") or "Unknown"

        price = row.get("retail_price")
        try:
            price = float(price) if price not in (None, "") else None
        except (TypeError, ValueError):
            price = None

        return cls(
            sku=str(row.get("sku") or ""),
            name=str(row.get("name") or ""),
            brand=str(brand_name),
            brand_id=str(row.get("brand_id") or ""),
            description=row.get("description") or None,
            category=row.get("category") or None,
            colour=row.get("colour") or None,
            retail_price=price,
            material=row.get("material") or None,
            dimensions=row.get("dimensions") or None,
        )


@dataclass
class ProductEnrichment:
    sku: str
    original_name: str
    enhanced_description: str = ""
    category_level_1: str = "General"
    category_level_2: str = "Products"
    category_level_3: str = "Miscellaneous"
    standardized_color: str = ""
    color_family: str = ""
    material: str = ""
    style: str = ""
    use_cases: str = ""
    target_audience: str = ""
    similar_products: str = ""
    seo_keywords: str = ""
    confidence_score: float = 0.85
    data_sources: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_item_update(self) -> Dict[str, Any]:
        """Columns written back to the items table."""
        update = {
            "description": self.enhanced_description,
            "category": self.category_level_3,
            "colour": self.standardized_color,
        }
        if self.material:
            update["material"] = self.material
        return update


class Enricher(ABC):
    name = "enricher"

    @abstractmethod
    def enrich(self, product: Product) -> ProductEnrichment:
        ...


class RuleBasedEnricher(Enricher):
    name = "Local AI Logic"

    CATEGORY_RULES = [
        (("candle", "scented"), {
            "level1": "Home & Garden",
            "level2": "Home Fragrance",
            "level3": "Candles & Wax Melts",
            "use_cases": ["aromatherapy", "ambiance", "decoration"],
        }),
        (("throw", "cushion", "pillow"), {
            "level1": "Home & Garden",
            "level2": "Home Decor",
            "level3": "Textiles & Soft Furnishings",
            "use_cases": ["comfort", "decoration", "warmth"],
        }),
        (("kitchen", "cooking"), {
            "level1": "Home & Kitchen",
            "level2": "Kitchen & Dining",
            "level3": "Kitchen Tools & Gadgets",
            "use_cases": ["cooking", "food preparation", "serving"],
        }),
    ]

    DEFAULT_CATEGORY = {
        "level1": "Home & Garden",
        "level2": "Home Decor",
        "level3": "General Merchandise",
        "use_cases": ["decoration", "home improvement", "lifestyle"],
    }

    # Checked in order; first keyword found wins
    COLOR_MAPPINGS = [
        ("grey", "Gray", "Neutral"),
        ("gray", "Gray", "Neutral"),
        ("white", "White", "Neutral"),
        ("black", "Black", "Neutral"),
        ("red", "Red", "Warm"),
        ("blue", "Blue", "Cool"),
        ("green", "Green", "Cool"),
        ("natural", "Natural", "Earth"),
    ]

    MATERIALS = ["cotton", "wool", "wood", "metal", "glass", "ceramic", "plastic"]

    BRAND_STYLES = {
        "MyFlame": "modern, lifestyle-focused",
        "Elvang": "luxury, natural materials",
        "GEFU": "functional, high-quality",
        "Rader": "contemporary, decorative",
        "Relaxound": "minimalist, wellness-focused",
        "Remember": "playful, giftable",
    }

    BRAND_TARGETS = {
        "MyFlame": "home fragrance enthusiasts",
        "Elvang": "luxury home market",
        "GEFU": "cooking enthusiasts",
        "Rader": "home decorators",
        "Relaxound": "wellness enthusiasts",
        "Remember": "gift buyers",
    }

    def categorize(self, name: str) -> Dict[str, Any]:
        name_lower = name.lower()
        for keywords, category in self.CATEGORY_RULES:
            if any(k in name_lower for k in keywords):
                return category
        return self.DEFAULT_CATEGORY

    def extract_color(self, text: str) -> Dict[str, str]:
        text_lower = text.lower()
        for keyword, standardized, family in self.COLOR_MAPPINGS:
            if keyword in text_lower:
                return {"standardized": standardized, "family": family}
        return {"standardized": "Unspecified", "family": "Unknown"}

    def extract_material(self, text: str) -> str:
        text_lower = text.lower()
        for material in self.MATERIALS:
            if material in text_lower:
                return material.capitalize()
        return "Mixed Materials"

    def brand_style(self, brand: str) -> str:
        return self.BRAND_STYLES.get(brand, "contemporary")

    def brand_target_audience(self, brand: str) -> str:
        return self.BRAND_TARGETS.get(brand, "general consumers")

    def seo_keywords(self, name: str, brand: str, category: Dict[str, Any]) -> List[str]:
        keywords = [brand.lower()]
        keywords.extend(w for w in name.lower().split(" ") if len(w) > 2)

        category_words = " ".join([category["level1"], category["level2"], category["level3"]]).lower().split(" ")
        keywords.extend(w for w in category_words if len(w) > 2 and w not in ("&", "and"))

        # dict keeps first-seen order while dropping duplicates
        return list(dict.fromkeys(keywords))[:10]

    def confidence_score(self, product: Product) -> float:
        score = 0.3
        if product.name and len(product.name) > 10:
            score += 0.2
        if product.description and len(product.description) > 20:
            score += 0.2
        if product.brand and product.brand != "Unknown":
            score += 0.2
        if product.category:
            score += 0.1
        return round(min(score, 1.0), 2)

    def enhanced_description(self, product: Product, category: Dict[str, Any], color: Dict[str, str]) -> str:
        parts = [
            f"This {self.brand_style(product.brand)} {product.name} from {product.brand}",
            f"is perfect for {category['use_cases'][0] if category['use_cases'] else 'everyday use'}",
        ]
        if color["standardized"] != "Unspecified":
            parts.append(f"featuring a {color['standardized'].lower()} finish")
        parts.append(f"Ideal for {self.brand_target_audience(product.brand)}")

        description = ". ".join(parts) + "."
        if product.description:
            return f"{description} {product.description}"
        return description

    def enrich(self, product: Product) -> ProductEnrichment:
        text = f"{product.name} {product.description or ''}"
        category = self.categorize(product.name)
        color = self.extract_color(text)

        return ProductEnrichment(
            sku=product.sku,
            original_name=product.name,
            enhanced_description=self.enhanced_description(product, category, color),
            category_level_1=category["level1"],
            category_level_2=category["level2"],
            category_level_3=category["level3"],
            standardized_color=color["standardized"],
            color_family=color["family"],
            material=self.extract_material(text),
            style=self.brand_style(product.brand),
            use_cases="; ".join(category["use_cases"]),
            target_audience=self.brand_target_audience(product.brand),
            seo_keywords="; ".join(self.seo_keywords(product.name, product.brand, category)),
            confidence_score=self.confidence_score(product),
            data_sources="Local AI Logic; Brand Context",
        )


def build_enrichment_prompt(product: Product) -> str:
    price = f"${product.retail_price}" if product.retail_price else "Unknown"
    lines = [
        "Analyze this product and provide structured enrichment data:",
        "",
        f"Product: {product.name}",
        f"Brand: {product.brand}",
        f"Current Description: {product.description or 'None'}",
        f"SKU: {product.sku}",
        f"Price: {price}",
    ]
    if product.material:
        lines.append(f"Material: {product.material}")
    if product.dimensions:
        lines.append(f"Dimensions: {product.dimensions}")

    lines += [
        "",
        "Please provide:",
        "1. An enhanced product description (2-3 sentences, highlight key features and benefits)",
        '2. Category hierarchy (3 levels, e.g., "Home & Garden > Outdoor Living > Garden Furniture")',
        "3. Primary color and color family",
        "4. Main material (if identifiable)",
        "5. Style/aesthetic (e.g., modern, rustic, minimalist)",
        "6. Target audience",
        "7. 3-5 use cases",
        "8. 5-8 SEO keywords",
        "",
        "Format your response as JSON with these keys:",
        "enhanced_description, category_level_1, category_level_2, category_level_3,",
        "standardized_color, color_family, material, style, target_audience,",
        "use_cases (array), seo_keywords (array)",
    ]
    return "\n".join(lines)


def parse_enrichment_response(text: str) -> Dict[str, Any]:
    """Parse the model's JSON reply; list fields are joined with '; '."""
    cleaned = text.strip()
    fence = re.search(r"```(?:json)?\s*([\s\S]+?)```", cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Enrichment response is not a JSON object")

    for key in ("use_cases", "seo_keywords"):
        if isinstance(data.get(key), list):
            data[key] = "; ".join(str(v) for v in data[key])

    data["confidence_score"] = 0.95
    return data


class ExternalLLMEnricher(Enricher):
    def __init__(
        self,
        config: AIConfig,
        fallback: Optional[Enricher] = None,
        client=None,
        rate_limit_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.fallback = fallback or RuleBasedEnricher()
        self.name = PROVIDER_LABELS.get(config.provider, config.provider)
        self.rate_limit_delay = (
            RATE_LIMIT_DELAYS.get(config.provider, 0.2) if rate_limit_delay is None else rate_limit_delay
        )
        self._sleep = sleep
        self._clock = clock
        self._last_call = None
        self._client = client

    def _apply_rate_limit(self):
        if self._last_call is not None:
            wait = self.rate_limit_delay - (self._clock() - self._last_call)
            if wait > 0:
                self._sleep(wait)
        self._last_call = self._clock()

    def _anthropic_client(self):
        if self._client is None:
            self._client = Anthropic(api_key=self.config.api_key)
        return self._client

    def _call_openai(self, prompt: str) -> str:
        response = requests.post(
            OPENAI_CHAT_URL,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
            json={
                "model": self.config.model,
                "messages": [
                    {"role": "system", "content": "You are a product data enrichment specialist. Always respond with valid JSON."},
                    {"role": "user", "content": prompt},
                ],
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_tokens,
                "response_format": {"type": "json_object"},
            },
            timeout=30,
        )
        response.raise_for_status()
        return response.json()["choices"][0]["message"]["content"]

    def _call_anthropic(self, prompt: str) -> str:
        response = self._anthropic_client().messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            messages=[{"role": "user", "content": f"{prompt}\n\nPlease respond with only valid JSON, no additional text."}],
        )
        return response.content[0].text

    def request_enrichment(self, product: Product) -> Dict[str, Any]:
        if not self.config.api_key:
            raise RuntimeError("AI API key not configured")

        self._apply_rate_limit()
        prompt = build_enrichment_prompt(product)

        if self.config.provider == "openai":
            text = self._call_openai(prompt)
        elif self.config.provider == "anthropic":
            text = self._call_anthropic(prompt)
        else:
            raise ValueError(f"Unsupported AI provider: {self.config.provider}")

        return parse_enrichment_response(text)

    def enrich(self, product: Product) -> ProductEnrichment:
        try:
            data = self.request_enrichment(product)
            if not data.get("enhanced_description"):
                raise ValueError("Response has no enhanced_description")
        except Exception as e:
            log.warning(f"{self.name} failed for {product.sku}, falling back to {self.fallback.name}: {e}")
            result = self.fallback.enrich(product)
            result.data_sources = f"{result.data_sources}; Fallback after {self.name} error"
            return result

        rules = self.fallback if isinstance(self.fallback, RuleBasedEnricher) else RuleBasedEnricher()
        return ProductEnrichment(
            sku=product.sku,
            original_name=product.name,
            enhanced_description=data.get("enhanced_description") or "",
            category_level_1=data.get("category_level_1") or "General",
            category_level_2=data.get("category_level_2") or "Products",
            category_level_3=data.get("category_level_3") or "Miscellaneous",
            standardized_color=data.get("standardized_color") or "",
            color_family=data.get("color_family") or "",
            material=data.get("material") or "",
            style=data.get("style") or rules.brand_style(product.brand),
            use_cases=data.get("use_cases") or "",
            target_audience=data.get("target_audience") or rules.brand_target_audience(product.brand),
            similar_products=data.get("similar_products") or "",
            seo_keywords=data.get("seo_keywords") or "",
            confidence_score=float(data.get("confidence_score") or 0.85),
            data_sources=self.name,
        )


def select_enricher(config: AIConfig, use_external: bool = True) -> Enricher:
    if use_external and config.provider in PROVIDER_LABELS and config.api_key:
        log.info(f"Using {PROVIDER_LABELS[config.provider]} for enrichment")
        return ExternalLLMEnricher(config)
    return RuleBasedEnricher()


def enrich_products(
    products: List[Product],
    enricher: Enricher,
    max_products: int = 50,
    on_progress: Optional[Callable[[int, int, str], None]] = None,
) -> List[TaskResult]:
    """Enrich up to max_products; one TaskResult per product."""
    batch = products[:max_products]
    results = []
    for i, product in enumerate(batch):
        results.append(run_task(product.sku, enricher.enrich, product))
        if on_progress:
            on_progress(i + 1, len(batch), product.name)
    return results
