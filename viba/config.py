"""Application configuration via environment variables."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Gemini
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "api_key"),
    )

    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""
    supabase_history_table: str = "generation_history"

    # Artifact storage (Supabase Storage bucket)
    storage_bucket: str = ""
    storage_public_base_url: Optional[str] = None
    signed_url_ttl_seconds: int = 3600

    # Upstream invocation policy (seconds / retry counts per operation)
    describe_timeout_seconds: float = 60.0
    describe_max_retries: int = 2
    variant_timeout_seconds: float = 90.0
    variant_max_retries: int = 2
    composite_timeout_seconds: float = 120.0
    composite_max_retries: int = 2
    retry_backoff_cap_seconds: float = 30.0
    retry_jitter: float = 0.0

    # Orchestration
    variant_count: int = 4
    min_description_length: int = 20

    # Persisted model selection
    model_selection_path: str = "model_selection.json"

    # Server
    compute_port: int = 3001
    log_level: str = "INFO"
    max_request_bytes: int = 50 * 1024 * 1024

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def gemini_configured(self) -> bool:
        return bool(self.gemini_api_key)

    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def storage_configured(self) -> bool:
        return self.supabase_configured() and bool(self.storage_bucket)


settings = Settings()
