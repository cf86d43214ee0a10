"""
Supabase access for the dashboard.

dashboard.py keeps the signed-in user's SupabaseSession in st.session_state and
builds one authed client from it per rerun. Scripts use get_supabase().
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from supabase import Client, create_client

from app_settings import get_setting
from logger import log


def supabase_config() -> Tuple[str, str]:
    url = get_setting("SUPABASE_URL")
    key = get_setting("SUPABASE_ANON_KEY")
    if not url or not key:
        raise RuntimeError(
            "Missing Supabase config. Set SUPABASE_URL and SUPABASE_ANON_KEY in Streamlit secrets or environment variables."
        )
    return url, key


def get_supabase() -> Client:
    """Client with the anon key and no user session."""
    return create_client(*supabase_config())


@dataclass
class SupabaseSession:
    access_token: str
    refresh_token: str
    email: Optional[str] = None

    @classmethod
    def sign_in(cls, email: str, password: str, client_factory: Callable[[], Client] = get_supabase) -> "SupabaseSession":
        res = client_factory().auth.sign_in_with_password({"email": email, "password": password})
        session = getattr(res, "session", None)
        if not session:
            raise RuntimeError("Supabase sign-in did not return a session.")

        user = getattr(res, "user", None)
        log.info(f"Signed in {email}")
        return cls(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            email=getattr(user, "email", None) or email,
        )

    def client(self, client_factory: Callable[[], Client] = get_supabase) -> Client:
        """Client acting as this user. Tokens refreshed by Supabase are kept."""
        if not self.access_token or not self.refresh_token:
            raise RuntimeError("Supabase session is missing tokens. Please log in again.")

        supabase = client_factory()
        res = supabase.auth.set_session(self.access_token, self.refresh_token)
        refreshed = getattr(res, "session", None)
        if refreshed:
            self.access_token = refreshed.access_token
            self.refresh_token = refreshed.refresh_token
        return supabase


def get_current_user_email(supabase: Client) -> Optional[str]:
    try:
        res = supabase.auth.get_user()
    except Exception as e:
        log.warning(f"Could not read current Supabase user: {e}")
        return None
    return getattr(getattr(res, "user", None), "email", None)
