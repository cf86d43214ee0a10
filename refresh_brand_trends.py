"""
Refresh Brand Trends Aggregation
--------------------------------
Rebuilds rows in brand_trends_aggregated by calling the SQL refresh functions:
1. With no arguments, refreshes the last 7 days for every company
   (refresh_recent_brand_trends)
2. With --company, refreshes one company over --from/--to
   (refresh_brand_trends)

Usage:
    python refresh_brand_trends.py
    python refresh_brand_trends.py --company <uuid> --from 2024-01-01 --to 2024-03-31
"""

import argparse
import sys
from datetime import date
from typing import Optional

from logger import log
from supabase_client import get_supabase


def refresh_brand_trends(supabase, company_id: Optional[str] = None, from_date: Optional[date] = None, to_date: Optional[date] = None):
    """Call the aggregation refresh RPC; returns the RPC response data."""
    if company_id is None and from_date is None and to_date is None:
        log.info("Refreshing recent brand trends for all companies")
        return supabase.rpc("refresh_recent_brand_trends", {}).execute().data

    params = {"p_company_id": company_id}
    if from_date:
        params["p_from_date"] = from_date.isoformat()
    if to_date:
        params["p_to_date"] = to_date.isoformat()

    log.info(f"Refreshing brand trends with {params}")
    return supabase.rpc("refresh_brand_trends", params).execute().data


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Refresh brand trend aggregations")
    parser.add_argument("--company", dest="company_id", default=None)
    parser.add_argument("--from", dest="from_date", type=date.fromisoformat, default=None)
    parser.add_argument("--to", dest="to_date", type=date.fromisoformat, default=None)
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point"""
    args = _parse_args(argv)

    print("=" * 50)
    print("📈  REFRESH BRAND TRENDS")
    print("=" * 50)

    try:
        supabase = get_supabase()
        refresh_brand_trends(supabase, args.company_id, args.from_date, args.to_date)
    except Exception as e:
        log.error(f"Brand trends refresh failed: {e}")
        print(f"\n❌ Refresh failed: {e}")
        sys.exit(1)

    print("\n✅ Brand trends refreshed")


if __name__ == "__main__":
    main()
