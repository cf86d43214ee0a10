from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from app_settings import load_ai_config
from enrichment import Product, ProductEnrichment, enrich_products, select_enricher
from logger import log
from task_results import TaskResult

ITEM_COLUMNS = "sku,name,description,brand_id,category,colour,retail_price,brands!inner(id,brand_name)"


def load_products_for_enrichment(supabase, company_id: str, brand_filter: Optional[str] = None) -> List[Product]:
    """Active, named items for a company (optionally one brand)."""
    query = (
        supabase.table("items")
        .select(ITEM_COLUMNS)
        .eq("brands.company_id", company_id)
        .eq("status", "active")
        .not_.is_("name", "null")
    )
    if brand_filter:
        query = query.eq("brand_id", brand_filter)

    res = query.execute()
    rows = getattr(res, "data", None) or []
    return [Product.from_row(r) for r in rows]


def get_processable_product_count(supabase, company_id: str, brand_filter: Optional[str] = None) -> int:
    try:
        query = (
            supabase.table("items")
            .select("sku,brands!inner(id)", count="exact")
            .eq("brands.company_id", company_id)
            .eq("status", "active")
            .not_.is_("name", "null")
        )
        if brand_filter:
            query = query.eq("brand_id", brand_filter)
        res = query.execute()
        return getattr(res, "count", None) or 0
    except Exception as e:
        log.error(f"Error getting processable product count: {e}")
        return 0


def get_available_brands(supabase, company_id: str) -> List[Dict[str, Any]]:
    try:
        res = (
            supabase.table("brands")
            .select("id,brand_name")
            .eq("company_id", company_id)
            .eq("is_active", True)
            .order("brand_name")
            .execute()
        )
        rows = getattr(res, "data", None) or []
        log.info(f"Found {len(rows)} brands for company {company_id}")
        return rows
    except Exception as e:
        log.error(f"Error fetching brands: {e}")
        return []


def get_enrichment_stats(supabase, company_id: str) -> Dict[str, Any]:
    res = (
        supabase.table("items")
        .select("sku,brands!inner(company_id)")
        .eq("brands.company_id", company_id)
        .eq("status", "active")
        .execute()
    )
    rows = getattr(res, "data", None) or []

    # No enrichment_data column yet, so only the total is known
    return {
        "total_products": len(rows),
        "enriched_products": 0,
        "average_confidence": 0,
        "last_enriched": None,
    }


def save_enriched_product(supabase, company_id: str, enrichment: ProductEnrichment) -> TaskResult:
    res = (
        supabase.table("items")
        .select("id,sku,brands!inner(company_id)")
        .eq("sku", enrichment.sku)
        .eq("brands.company_id", company_id)
        .limit(1)
        .execute()
    )
    rows = getattr(res, "data", None) or []
    if not rows:
        return TaskResult.failure("Item not found for company", label=enrichment.sku)

    item_id = rows[0]["id"]
    update_res = (
        supabase.table("items")
        .update(enrichment.to_item_update())
        .eq("id", item_id)
        .execute()
    )
    updated = getattr(update_res, "data", None) or []
    count = getattr(update_res, "count", None)

    if not updated:
        # TODO: confirm with the items UPDATE policy owners whether an empty
        # representation here is always an RLS block before treating it as one.
        log.error(
            f"RLS policy may be blocking UPDATE for item {enrichment.sku}: "
            f"0 rows returned (count={count}). Check RLS policies on items."
        )
        return TaskResult.failure("0 rows updated (possible RLS block)", label=enrichment.sku)

    log.info(f"Updated item {enrichment.sku}")
    return TaskResult.success(updated[0], label=enrichment.sku)


def save_enriched_products(
    supabase, company_id: str, enrichments: List[ProductEnrichment], batch_size: int = 10
) -> List[TaskResult]:
    results = []
    for i in range(0, len(enrichments), batch_size):
        for enrichment in enrichments[i:i + batch_size]:
            try:
                results.append(save_enriched_product(supabase, company_id, enrichment))
            except Exception as e:
                log.error(f"Failed to update item {enrichment.sku}: {e}")
                results.append(TaskResult.failure(str(e), label=enrichment.sku))
    return results


def show_product_enrichment(supabase, company_id: str):
    st.title("AI Product Enricher")
    st.caption("Generate descriptions, categories, colors and SEO keywords for your catalogue.")

    try:
        stats = get_enrichment_stats(supabase, company_id)
        m1, m2 = st.columns(2)
        m1.metric("Active products", stats["total_products"])
        m2.metric("Enriched", stats["enriched_products"])
    except Exception as e:
        st.warning(f"Could not load enrichment stats: {e}")

    brands = get_available_brands(supabase, company_id)
    brand_options = {"All brands": None}
    brand_options.update({b["brand_name"]: b["id"] for b in brands})

    c1, c2, c3 = st.columns([2, 1, 1])
    with c1:
        brand_label = st.selectbox("Brand", list(brand_options.keys()))
    with c2:
        max_products = st.number_input("Max products", min_value=1, max_value=500, value=50, step=10)
    with c3:
        use_external = st.checkbox("Use external AI", value=True)

    brand_filter = brand_options[brand_label]
    count = get_processable_product_count(supabase, company_id, brand_filter)
    st.caption(f"{count} products can be processed")

    config = load_ai_config()
    enricher = select_enricher(config, use_external=use_external)
    st.caption(f"Enrichment source: {enricher.name}")

    if st.button("✨ Enrich Products", type="primary"):
        try:
            products = load_products_for_enrichment(supabase, company_id, brand_filter)
        except Exception as e:
            st.error(f"Unable to load products from Supabase: {e}")
            return

        if not products:
            st.warning("No products found for enrichment")
            return

        progress = st.progress(0.0)

        def _update(done, total, current):
            progress.progress(done / total, text=f"{done}/{total}: {current}")

        results = enrich_products(products, enricher, int(max_products), on_progress=_update)
        st.session_state["enrichment_results"] = results

    results: List[TaskResult] = st.session_state.get("enrichment_results") or []
    if not results:
        return

    enriched = [r.value for r in results if r.ok]
    failed = [r for r in results if not r.ok]
    if failed:
        st.warning(f"{len(failed)} products could not be enriched")
        with st.expander("View failures"):
            st.dataframe(pd.DataFrame([{"SKU": r.label, "Error": r.error} for r in failed]), hide_index=True)

    if enriched:
        st.dataframe(pd.DataFrame([e.to_dict() for e in enriched]), use_container_width=True, hide_index=True)

        if st.button("💾 Save to Supabase"):
            saved = save_enriched_products(supabase, company_id, enriched)
            ok = sum(1 for r in saved if r.ok)
            st.success(f"Saved {ok} of {len(saved)} products")
            for r in saved:
                if not r.ok:
                    st.error(f"{r.label}: {r.error}")
