"""Application settings loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Managed backend (Supabase)
    supabase_url: str = ""
    supabase_service_role_key: str = ""  # required by admin routes

    # Listing description generation
    description_provider: str = "gemini"  # gemini | openai | bedrock
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    openai_base_url: str = "https://api.openai.com"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    bedrock_model_id: str = ""  # e.g. "anthropic.claude-3-haiku-20240307-v1:0"
    aws_region: str = "us-east-1"

    # Google Sheets logging
    google_sheets_client_email: str = ""
    google_sheets_private_key: str = ""  # may contain literal "\n" sequences
    google_sheets_spreadsheet_id: str = ""

    # Rate limiting (fixed window, per client IP)
    rate_limit_interval_ms: int = 60_000
    rate_limit_max_requests: int = 10
    rate_limit_sweep_seconds: float = 300.0
    rate_limit_retention_ms: int = 600_000

    # Logging
    log_level: str = "INFO"
    audit_log_file: str = ""  # Empty = stdout only

    # Comma-separated list of allowed browser origins
    cors_origins: str = "http://localhost:3000"

    # The browser build shares this .env, so keys only it reads are ignored
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def sheets_private_key(self) -> str:
        """Private key with escaped newlines restored (env files flatten them)."""
        return self.google_sheets_private_key.replace("\\n", "\n")

    @property
    def sheets_configured(self) -> bool:
        return bool(
            self.google_sheets_private_key
            and self.google_sheets_client_email
            and self.google_sheets_spreadsheet_id
        )

    @property
    def service_role_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
