"""
Company resolution for signed-in users.

A user's company is found from their email: first by the email domain on the
companies table, then through the users table, then through customer_users ->
customers. Known domains have a static fallback for when every lookup is
blocked. Results (including "no company") are kept in a CompanyCache that the
caller owns.
"""
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from logger import log

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_MISS = object()


@dataclass
class Company:
    id: str
    name: str
    domain: str
    company_reference: str = ""
    brand_colors: Dict[str, Any] = field(default_factory=dict)
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Company":
        return cls(
            id=str(row.get("id", "")),
            name=str(row.get("name", "")),
            domain=str(row.get("domain", "") or ""),
            company_reference=str(row.get("company_reference", "") or ""),
            brand_colors=row.get("brand_colors") or {},
            is_active=bool(row.get("is_active", True)),
        )


KNOWN_DOMAIN_COMPANIES = {
    "dmbrands.co.uk": Company(
        id="87dcc6db-2e24-46fb-9a12-7886f690a326",
        name="DM Brands",
        domain="dmbrands.co.uk",
        company_reference="DMBRANDS",
        brand_colors={
            "primary": "#FF6B35",
            "secondary": "#F7931E",
            "gradient": ["#FF6B35", "#F7931E", "#FFB84C"],
        },
    ),
    "splitfin.com": Company(
        id="default",
        name="Splitfin",
        domain="splitfin.com",
        company_reference="SPLITFIN",
        brand_colors={
            "primary": "#79d5e9",
            "secondary": "#6bc7db",
            "gradient": ["#4daebc", "#79d5e9", "#89dce6"],
        },
    ),
}


class CompanyCache:
    """Domain -> Company (or None) with a per-entry TTL."""

    def __init__(self, ttl_seconds: int = 900, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, tuple] = {}

    def get(self, domain: str):
        """Return the cached value, or the module's _MISS sentinel."""
        entry = self._entries.get(domain)
        if entry is None:
            return _MISS
        expires, value = entry
        if self._clock() >= expires:
            del self._entries[domain]
            return _MISS
        return value

    def contains(self, domain: str) -> bool:
        return self.get(domain) is not _MISS

    def set(self, domain: str, company: Optional[Company]):
        self._entries[domain] = (self._clock() + self.ttl_seconds, company)

    def clear(self):
        self._entries.clear()
        log.info("Domain company cache cleared")

    def __len__(self):
        return len(self._entries)


def _first_row(res) -> Optional[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = getattr(res, "data", None) or []
    return rows[0] if rows else None


def _active_company(supabase, **filters) -> Optional[Company]:
    query = supabase.table("companies").select("*").eq("is_active", True)
    for column, value in filters.items():
        query = query.eq(column, value)
    row = _first_row(query.limit(1).execute())
    return Company.from_row(row) if row else None


def _company_via_users(supabase, email: str) -> Optional[Company]:
    user = _first_row(supabase.table("users").select("company_id").eq("email", email).limit(1).execute())
    if user and user.get("company_id"):
        company = _active_company(supabase, id=user["company_id"])
        if company:
            return company

    customer_user = _first_row(
        supabase.table("customer_users").select("linked_customer").eq("email", email).limit(1).execute()
    )
    if not customer_user or not customer_user.get("linked_customer"):
        return None

    customer = _first_row(
        supabase.table("customers").select("linked_company").eq("id", customer_user["linked_customer"]).limit(1).execute()
    )
    if not customer or not customer.get("linked_company"):
        return None

    return _active_company(supabase, id=customer["linked_company"])


def get_company_by_email(supabase, email: str, cache: CompanyCache) -> Optional[Company]:
    if not email or not EMAIL_RE.match(email):
        log.warning(f"Invalid email format: {email}")
        return None

    domain = email.split("@")[1].lower()

    cached = cache.get(domain)
    if cached is not _MISS:
        return cached

    try:
        company = _active_company(supabase, domain=domain)
    except Exception as e:
        log.error(f"Error fetching company for domain {domain}: {e}")
        company = None

    if company is None:
        try:
            company = _company_via_users(supabase, email)
        except Exception as e:
            # RLS commonly blocks these reads for non-admin users
            log.warning(f"User lookup denied for {email}, falling back to known domains: {e}")
            company = None

    if company is None and domain in KNOWN_DOMAIN_COMPANIES:
        company = KNOWN_DOMAIN_COMPANIES[domain]
        log.info(f"Using fallback company data for domain: {domain}")

    cache.set(domain, company)
    return company
