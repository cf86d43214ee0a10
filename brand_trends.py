"""
Brand trend bucketing.

Turns sparse (period_date, brand_name, total_quantity) rows from the
brand_trends_aggregated table into a dense, gap-filled series per brand that
the area chart can stack without holes:

1. Generate the period buckets for the selected granularity
2. Merge the facts onto those buckets (missing brand/bucket pairs become 0)
3. Assign each brand a palette color in first-seen order

Nothing in here does I/O; the Supabase query lives in brand_trend_chart.py.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence, Union


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


# Color palette for brand series
BRAND_COLORS = (
    "#10b981",  # Green
    "#fbbf24",  # Yellow/Gold
    "#06b6d4",  # Cyan/Blue
    "#f87171",  # Red/Pink
    "#a78bfa",  # Purple
    "#fb7185",  # Pink
    "#34d399",  # Emerald
    "#60a5fa",  # Light Blue
)

PERIOD_FIELD = "period"


@dataclass(frozen=True)
class TrendFact:
    period_date: date
    brand_name: str
    total_quantity: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TrendFact":
        """Build a fact from a brand_trends_aggregated row."""
        raw_date = row.get("period_date")
        if isinstance(raw_date, datetime):
            period_date = raw_date.date()
        elif isinstance(raw_date, date):
            period_date = raw_date
        else:
            period_date = date.fromisoformat(str(raw_date)[:10])

        try:
            quantity = int(row.get("total_quantity") or 0)
        except (TypeError, ValueError):
            quantity = 0

        return cls(
            period_date=period_date,
            brand_name=str(row.get("brand_name") or "Unknown"),
            total_quantity=max(quantity, 0),
        )


@dataclass(frozen=True)
class PeriodBucket:
    key: str
    label: str


def _as_date(now: Union[date, datetime]) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def _shift_years(d: date, years: int) -> date:
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return d.replace(year=d.year + years, day=28)


def lookback_start(granularity: Union[Granularity, str], now: Union[date, datetime]) -> date:
    """First day of the lookback window shown for a granularity."""
    granularity = Granularity(granularity)
    today = _as_date(now)

    if granularity == Granularity.DAY:
        return today - timedelta(days=30)
    if granularity == Granularity.WEEK:
        return today - timedelta(days=84)
    if granularity == Granularity.MONTH:
        return _shift_years(today, -1)
    return _shift_years(today, -3)


def bucket_key_for(d: date, granularity: Union[Granularity, str]) -> str:
    """Truncate a date to the start of its bucket, as YYYY-MM-DD."""
    granularity = Granularity(granularity)

    if granularity == Granularity.WEEK:
        # Weeks start on Sunday
        d = d - timedelta(days=(d.weekday() + 1) % 7)
    elif granularity == Granularity.MONTH:
        d = d.replace(day=1)
    elif granularity == Granularity.YEAR:
        d = date(d.year, 1, 1)

    return d.isoformat()


def format_period_label(key: str, granularity: Union[Granularity, str]) -> str:
    granularity = Granularity(granularity)
    d = date.fromisoformat(key)

    if granularity in (Granularity.DAY, Granularity.WEEK):
        return d.strftime("%d %b")
    if granularity == Granularity.MONTH:
        return d.strftime("%b %y")
    return d.strftime("%Y")


def generate_period_buckets(granularity: Union[Granularity, str], now: Union[date, datetime]) -> List[PeriodBucket]:
    """
    Build the ordered buckets for the lookback window ending at `now`.

    The result depends only on (granularity, now), so periods with no sales
    still get a bucket. Keys are zero-padded ISO dates, which makes the
    lexicographic sort chronological.
    """
    granularity = Granularity(granularity)
    today = _as_date(now)
    start = lookback_start(granularity, today)
    keys = set()

    if granularity in (Granularity.DAY, Granularity.WEEK):
        step = timedelta(days=1 if granularity == Granularity.DAY else 7)
        cursor = start
        while cursor <= today:
            keys.add(bucket_key_for(cursor, granularity))
            cursor += step
    elif granularity == Granularity.MONTH:
        cursor = start.replace(day=1)
        while cursor <= today:
            keys.add(cursor.isoformat())
            if cursor.month == 12:
                cursor = date(cursor.year + 1, 1, 1)
            else:
                cursor = date(cursor.year, cursor.month + 1, 1)
    else:
        for year in range(start.year, today.year + 1):
            keys.add(date(year, 1, 1).isoformat())

    return [PeriodBucket(key=k, label=format_period_label(k, granularity)) for k in sorted(keys)]


def series_name(brand_name: str) -> str:
    """Chart field for a brand; PERIOD_FIELD is reserved for the bucket label."""
    if brand_name == PERIOD_FIELD:
        return f"{brand_name} (brand)"
    return brand_name


def brand_names(facts: Iterable[TrendFact]) -> List[str]:
    """Distinct series names in first-seen order."""
    seen = {}
    for fact in facts:
        seen.setdefault(series_name(fact.brand_name), None)
    return list(seen)


def merge_trend_facts(
    facts: List[TrendFact],
    buckets: List[PeriodBucket],
    granularity: Union[Granularity, str],
) -> List[Dict[str, Any]]:
    """
    Produce one chart point per bucket with a value for every brand.

    Every brand seen anywhere in `facts` gets a field in every point, 0 when
    that brand has no fact for the bucket. Fact dates are truncated to their
    bucket first; facts sharing a bucket and brand are summed.
    """
    if not facts:
        return []

    granularity = Granularity(granularity)
    brands = brand_names(facts)
    bucket_keys = {b.key for b in buckets}

    totals: Dict[tuple, int] = {}
    for fact in facts:
        key = bucket_key_for(fact.period_date, granularity)
        if key not in bucket_keys:
            continue
        series = (key, series_name(fact.brand_name))
        totals[series] = totals.get(series, 0) + fact.total_quantity

    chart_data = []
    for bucket in buckets:
        point: Dict[str, Any] = {PERIOD_FIELD: bucket.label}
        for brand in brands:
            point[brand] = totals.get((bucket.key, brand), 0)
        chart_data.append(point)

    return chart_data


def assign_brand_colors(facts: Iterable[TrendFact], palette: Sequence[str] = BRAND_COLORS) -> List[Dict[str, str]]:
    return [
        {"name": name, "color": palette[index % len(palette)]}
        for index, name in enumerate(brand_names(facts))
    ]


def latest_period_snapshot(chart_data: List[Dict[str, Any]], brand_info: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """Non-zero brand values of the most recent bucket, for the compact view."""
    if not chart_data or not brand_info:
        return []

    latest = chart_data[-1]
    snapshot = []
    for brand in brand_info:
        value = latest.get(brand["name"], 0) or 0
        if value > 0:
            snapshot.append({"name": brand["name"], "value": value, "color": brand["color"]})
    return snapshot


def build_trend_chart(facts: List[TrendFact], granularity: Union[Granularity, str], now: Union[date, datetime]) -> Dict[str, list]:
    """Chart-ready structure: {"chartData": [...], "brandInfo": [...]}."""
    if not facts:
        return {"chartData": [], "brandInfo": []}

    buckets = generate_period_buckets(granularity, now)
    return {
        "chartData": merge_trend_facts(facts, buckets, granularity),
        "brandInfo": assign_brand_colors(facts),
    }
