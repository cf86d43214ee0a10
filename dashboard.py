import streamlit as st

from app_settings import get_int_setting
from brand_trend_chart import show_brand_trends
from company_lookup import CompanyCache, get_company_by_email
from image_processing import show_image_management
from logger import log
from product_enrichment import get_available_brands, show_product_enrichment
from supabase_client import SupabaseSession, get_current_user_email

# Page config
st.set_page_config(
    page_title="Brand Dashboard",
    layout="wide",
    initial_sidebar_state="expanded"
)

st.markdown("""
<style>
    [data-testid="stSidebar"] {
        background-color: #1a1a1a;
    }

    [data-testid="stSidebar"] * {
        color: #ffffff !important;
    }

    .stButton > button {
        width: 100%;
    }

    .block-container {
        padding-top: 2rem;
    }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


def _company_cache() -> CompanyCache:
    # One cache per browser session
    if "company_cache" not in st.session_state:
        st.session_state["company_cache"] = CompanyCache(ttl_seconds=get_int_setting("COMPANY_CACHE_TTL_SECONDS", 900))
    return st.session_state["company_cache"]


def show_login():
    st.title("Sign in")
    with st.form("login_form"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", type="primary")

    if not submitted:
        return
    try:
        st.session_state["supabase_session"] = SupabaseSession.sign_in(email.strip(), password)
    except Exception as e:
        log.warning(f"Sign-in failed for {email}: {e}")
        st.error("Invalid email or password.")
        return
    st.rerun()


session: SupabaseSession = st.session_state.get("supabase_session")
if session is None:
    show_login()
    st.stop()

try:
    supabase = session.client()
except RuntimeError as e:
    st.error(str(e))
    st.session_state.pop("supabase_session", None)
    st.stop()
except Exception as e:
    # Usually an expired refresh token
    log.warning(f"Could not restore Supabase session: {e}")
    st.error("Your session has expired. Please sign in again.")
    st.session_state.pop("supabase_session", None)
    st.stop()

user_email = session.email or get_current_user_email(supabase)
company = get_company_by_email(supabase, user_email or "", _company_cache())
if not company:
    st.error("Unable to find a company for your account. Contact admin.")
    st.stop()

# Sidebar
with st.sidebar:
    st.markdown(f"## {company.name}")
    st.caption(f"👤 {user_email}")
    st.markdown("---")

    tool = st.radio("Navigation", ["Brand Trends", "AI Enrichment", "Images"], label_visibility="collapsed")

    st.markdown("---")

    if st.button("Logout", use_container_width=True):
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

# Main content area
if tool == "Brand Trends":
    st.title("📈 Brand Trends")
    show_brand_trends(supabase, company.id)

elif tool == "AI Enrichment":
    show_product_enrichment(supabase, company.id)

elif tool == "Images":
    show_image_management(supabase, company.id, get_available_brands(supabase, company.id))
