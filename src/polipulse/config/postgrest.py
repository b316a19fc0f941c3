"""PostgREST (Supabase-style) record store configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_env_var, require_env_vars
from .http_resilience import ResilienceConfig

DEFAULT_POLICY_TABLE = "policy"


@dataclass(frozen=True, slots=True)
class PostgrestConfig:
    """Holds the REST endpoint, API key and table name of the policy store."""

    url: str
    api_key: str
    resilience: ResilienceConfig
    table: str = DEFAULT_POLICY_TABLE


def get_postgrest_config(*, resilience: ResilienceConfig | None = None) -> PostgrestConfig:
    values = require_env_vars(("POLIPULSE_STORE_URL", "POLIPULSE_STORE_KEY"))
    url = values["POLIPULSE_STORE_URL"].rstrip("/")
    api_key = values["POLIPULSE_STORE_KEY"]
    return PostgrestConfig(
        url=url,
        api_key=api_key,
        table=optional_env_var("POLIPULSE_STORE_TABLE") or DEFAULT_POLICY_TABLE,
        resilience=resilience
        or ResilienceConfig(
            name="postgrest",
            base_url=url,
            default_headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
            },
        ),
    )
