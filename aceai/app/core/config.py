import re
from typing import Annotated, Any, Iterable

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _origin_variants(entry: str) -> Iterable[str]:
    # Bare hosts are allowed over both schemes; the Origin header always has one.
    if "://" in entry:
        return (entry,)
    return (f"http://{entry}", f"https://{entry}")


def _parse_cors_origins(raw: Any) -> list[str]:
    """Accept a list, a JSON-ish array string, or a comma/space separated string."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        entries = [str(item).strip() for item in raw]
    else:
        entries = [
            token.strip("\"'")
            for token in re.split(r"[,\s]+", str(raw).strip().strip("[]"))
        ]
    entries = [entry for entry in entries if entry]

    if "*" in entries:
        return ["*"]
    if isinstance(raw, (list, tuple)):
        return entries
    return list(dict.fromkeys(o for entry in entries for o in _origin_variants(entry)))


class Settings(BaseSettings):
    """Proxy and session settings, read from the environment or a `.env` file."""

    # Exposes exception details in 500 responses
    debug: bool = False

    # Upstream study backend (course guide, review, ideal answer)
    study_api_url: str = Field(
        default="http://localhost:8080", validation_alias="STUDY_API_URL"
    )

    # HTTP client settings
    httpx_connect_timeout: float = 10.0
    httpx_read_timeout: float = 120.0  # Generation streams are slow
    httpx_write_timeout: float = 10.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 50
    httpx_max_keepalive_connections: int = 10

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Session behaviour
    progress_display_limit: int = 5
    min_prompt_length: int = 4

    # Persisted client state
    storage_dir: str = ".aceai"
    rate_limit_storage_key: str = "aceai_rate_limit"
    course_storage_key: str = "aceai_course"
    session_storage_key: str = "aceai_session"

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("study_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip()
        return v[:-1] if v.endswith("/") else v

    @field_validator("progress_display_limit", "min_prompt_length")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate session limits are positive."""
        if v < 1:
            raise ValueError("session limits must be at least 1")
        return v

    @field_validator("httpx_connect_timeout", "httpx_read_timeout", "httpx_write_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


settings = Settings()
