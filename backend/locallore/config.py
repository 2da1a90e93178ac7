import json

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


class Settings(BaseSettings):
    database_url: str
    # Shared secret of the auth provider; tokens are verified here, never issued to end users.
    secret_key: str
    algorithm: str = "HS256"
    allowed_origins: list[str] = DEFAULT_ALLOWED_ORIGINS
    auto_create_tables: bool = False
    auto_run_migrations: bool = False

    log_level: str = "INFO"
    log_json: bool = True

    ml_api_url: str = "http://localhost:8000"
    ml_recommendations_enabled: bool = True
    ml_timeout_seconds: float = 2.0

    feed_page_size: int = 20
    preference_history_limit: int = 50

    display_timezone: str = "America/New_York"

    map_cache_ttl_seconds: int = 120
    map_session_ttl_seconds: int = 30 * 60

    # `allowed_origins` supports comma-separated strings or JSON lists; disable pydantic-settings JSON decoding
    # so our validator can handle both formats.
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        enable_decoding=False,
        env_ignore_empty=True,
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value):
        if value is None or value == "":
            return list(DEFAULT_ALLOWED_ORIGINS)

        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return [origin for origin in parsed if origin]
            except json.JSONDecodeError:
                pass

            parsed = [origin.strip() for origin in value.split(",")]
            return [origin for origin in parsed if origin]

        if isinstance(value, (list, tuple)):
            return [origin for origin in value if origin]

        raise ValueError("allowed_origins must be a list or comma-separated string")

    @field_validator("ml_api_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value):
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value


settings = Settings()
