import os
from dataclasses import dataclass
from typing import Optional

import streamlit as st

try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    pass


def _clean_env_value(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = str(v).strip()
    if v.startswith("\"") and v.endswith("\""):
        v = v[1:-1]
    if v.startswith("'") and v.endswith("'"):
        v = v[1:-1]
    return v.strip() or None


def get_setting(name: str, default: Optional[str] = None) -> Optional[str]:
    """Look a setting up in Streamlit secrets, then the environment."""
    value = None
    try:
        value = st.secrets.get(name)
    except Exception:
        # No secrets.toml outside a Streamlit run
        pass

    value = _clean_env_value(value) if value is not None else None
    value = value or _clean_env_value(os.getenv(name))
    return value if value is not None else default


def get_int_setting(name: str, default: int) -> int:
    try:
        return int(get_setting(name, str(default)))
    except (TypeError, ValueError):
        return default


def get_float_setting(name: str, default: float) -> float:
    try:
        return float(get_setting(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass
class AIConfig:
    provider: str = "local"
    api_key: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1000


DEFAULT_MODELS = {
    "openai": "gpt-4-turbo-preview",
    "anthropic": "claude-3-opus-20240229",
}


def load_ai_config() -> AIConfig:
    provider = (get_setting("AI_PROVIDER", "local") or "local").lower()
    if provider == "anthropic":
        api_key = get_setting("ANTHROPIC_API_KEY")
    elif provider == "openai":
        api_key = get_setting("OPENAI_API_KEY")
    else:
        api_key = None

    return AIConfig(
        provider=provider,
        api_key=api_key,
        model=get_setting("AI_MODEL", DEFAULT_MODELS.get(provider)),
        temperature=get_float_setting("AI_TEMPERATURE", 0.7),
        max_tokens=get_int_setting("AI_MAX_TOKENS", 1000),
    )
