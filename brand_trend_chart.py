from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

import pandas as pd
import streamlit as st

from brand_trends import (
    Granularity,
    TrendFact,
    build_trend_chart,
    generate_period_buckets,
    latest_period_snapshot,
    PERIOD_FIELD,
)
from logger import log

TRENDS_TABLE = "brand_trends_aggregated"

PERIOD_OPTIONS = {
    "Day": Granularity.DAY,
    "Week": Granularity.WEEK,
    "Month": Granularity.MONTH,
    "Year": Granularity.YEAR,
}


class TrendState(str, Enum):
    LOADED = "loaded"
    EMPTY = "empty"
    NOT_SET_UP = "not_set_up"
    ERROR = "error"


STATE_MESSAGES = {
    TrendState.EMPTY: "No trend data available for the selected period",
    TrendState.NOT_SET_UP: "Brand trends data not available. Please run the aggregation setup script.",
    TrendState.ERROR: "Failed to load brand trend data",
}


@dataclass
class TrendResult:
    state: TrendState
    chart: Dict[str, list] = field(default_factory=lambda: {"chartData": [], "brandInfo": []})
    message: Optional[str] = None


def _is_missing_table_error(error: Exception) -> bool:
    text = f"{error} {getattr(error, 'message', '') or ''}"
    code = getattr(error, "code", None)
    if code in ("42P01", "PGRST205"):
        return True
    if "relation" in text and "does not exist" in text:
        return True
    return "Could not find the table" in text


def load_brand_trends(
    supabase,
    company_id: str,
    granularity: Union[Granularity, str],
    now: Optional[Union[date, datetime]] = None,
) -> TrendResult:
    """
    Fetch aggregated brand trends for one company and build the chart.

    Every outcome is one of the TrendState values; fetch errors are logged and
    reported, never retried.
    """
    granularity = Granularity(granularity)
    now = now or datetime.now()
    buckets = generate_period_buckets(granularity, now)
    end_date = now.date() if isinstance(now, datetime) else now

    log.info(f"Fetching {granularity.value} brand trends for company {company_id}")

    try:
        res = (
            supabase.table(TRENDS_TABLE)
            .select("period_date,brand_name,total_quantity,period_type")
            .eq("company_id", company_id)
            .eq("period_type", granularity.value)
            .gte("period_date", buckets[0].key)
            .lte("period_date", end_date.isoformat())
            .order("period_date")
            .execute()
        )
        rows = getattr(res, "data", None) or []
    except Exception as e:
        if _is_missing_table_error(e):
            log.error(f"{TRENDS_TABLE} is missing: {e}")
            return TrendResult(TrendState.NOT_SET_UP, message=STATE_MESSAGES[TrendState.NOT_SET_UP])
        log.error(f"Error fetching trend data: {e}")
        return TrendResult(TrendState.ERROR, message=STATE_MESSAGES[TrendState.ERROR])

    if not rows:
        log.info("No trend data found for the selected period")
        return TrendResult(TrendState.EMPTY, message=STATE_MESSAGES[TrendState.EMPTY])

    try:
        facts = [TrendFact.from_row(r) for r in rows]
    except (TypeError, ValueError) as e:
        log.error(f"Malformed trend row: {e}")
        return TrendResult(TrendState.ERROR, message=STATE_MESSAGES[TrendState.ERROR])

    log.info(f"Trend rows found: {len(facts)}")
    return TrendResult(TrendState.LOADED, chart=build_trend_chart(facts, granularity, now))


def trend_frame(chart: Dict[str, list], granularity: Union[Granularity, str], now: Union[date, datetime]) -> pd.DataFrame:
    """Chart points as a DataFrame indexed by bucket start date."""
    chart_data = chart.get("chartData") or []
    if not chart_data:
        return pd.DataFrame()

    buckets = generate_period_buckets(granularity, now)
    df = pd.DataFrame(chart_data)
    df.index = pd.to_datetime([b.key for b in buckets])
    df.index.name = "period_date"
    return df.drop(columns=[PERIOD_FIELD])


def _legend_html(items) -> str:
    dots = []
    for item in items:
        dots.append(
            f"<span style='display:inline-flex;align-items:center;margin-right:16px;'>"
            f"<span style='width:10px;height:10px;border-radius:50%;background:{item['color']};"
            f"display:inline-block;margin-right:6px;'></span>{item['name']}</span>"
        )
    return "".join(dots)


def show_brand_trends(supabase, company_id: str):
    st.subheader("Brand Popularity Trends")

    c1, c2 = st.columns([3, 1])
    with c1:
        period_label = st.radio(
            "Period",
            list(PERIOD_OPTIONS.keys()),
            index=2,
            horizontal=True,
            label_visibility="collapsed",
            key="brand_trend_period",
        )
    with c2:
        compact = st.toggle("Compact view", value=False, key="brand_trend_compact")

    granularity = PERIOD_OPTIONS[period_label]
    now = datetime.now()

    # Refetch only when the company or period changes
    cache_key = (company_id, granularity.value, now.date().isoformat())
    refresh = st.button("Refresh", key="brand_trend_refresh")
    if refresh or st.session_state.get("brand_trends_key") != cache_key:
        with st.spinner("Loading trend data..."):
            st.session_state["brand_trends_result"] = load_brand_trends(supabase, company_id, granularity, now)
        st.session_state["brand_trends_key"] = cache_key

    result: TrendResult = st.session_state["brand_trends_result"]

    if result.state in (TrendState.ERROR, TrendState.NOT_SET_UP):
        st.error(result.message)
        return
    if result.state == TrendState.EMPTY:
        st.info(result.message)
        return

    brand_info = result.chart["brandInfo"]

    if compact:
        snapshot = latest_period_snapshot(result.chart["chartData"], brand_info)
        if not snapshot:
            st.info("No sales in the latest period")
        else:
            latest_label = result.chart["chartData"][-1][PERIOD_FIELD]
            st.caption(f"Latest period: {latest_label}")
            snap_df = pd.DataFrame(snapshot).set_index("name")
            st.bar_chart(snap_df[["value"]], horizontal=True)
    else:
        df = trend_frame(result.chart, granularity, now)
        st.area_chart(
            df,
            y=[b["name"] for b in brand_info],
            color=[b["color"] for b in brand_info],
        )

    st.markdown(_legend_html(brand_info), unsafe_allow_html=True)

    with st.expander("Totals for this window"):
        totals = get_trend_summary(result)
        st.dataframe(
            pd.DataFrame({"Brand": list(totals.keys()), "Items sold": list(totals.values())}),
            use_container_width=True,
            hide_index=True,
        )


def get_trend_summary(result: TrendResult) -> Dict[str, Any]:
    """Totals per brand across the loaded window, largest first."""
    totals: Dict[str, int] = {}
    for point in result.chart.get("chartData") or []:
        for brand in result.chart.get("brandInfo") or []:
            totals[brand["name"]] = totals.get(brand["name"], 0) + int(point.get(brand["name"], 0))
    return dict(sorted(totals.items(), key=lambda kv: kv[1], reverse=True))
