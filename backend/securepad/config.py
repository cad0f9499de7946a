"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend settings from env."""

    model_config = SettingsConfigDict(env_prefix="SECUREPAD_", extra="ignore")

    # Storage
    db_path: Path = Path("/data/securepad.db")
    storage_base_path: Path = Path("/data/securepad-blobs")

    # Uploads
    max_file_size_bytes: int = 10 * 1024 * 1024
    # Comma-separated, lower case, with leading dot
    allowed_extensions: str = ".pdf,.jpg,.jpeg,.png,.docx"

    # Pads
    min_password_length: int = 4

    # Retention windows (minutes). A pad's own retention_minutes overrides these.
    file_ttl_minutes: int = 1440
    content_ttl_minutes: int = 1440
    content_expiry_enabled: bool = True
    retention_enabled: bool = True
    retention_interval_minutes: int = 60

    # Brute-force detection (advisory only, never blocks)
    brute_force_window_minutes: int = 15
    brute_force_threshold: int = 5

    # SMTP (security alert emails)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    app_url: str = "http://localhost:3000"

    # Summarizer (Gemini generateContent)
    summarizer_api_key: str = ""
    summarizer_model: str = "gemini-1.5-flash"
    summarizer_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    summarizer_timeout_seconds: float = 30.0
    summary_min_chars: int = 50

    # Behind a reverse proxy the client address comes from X-Forwarded-For
    trust_proxy_headers: bool = False

    # CORS: comma-separated string so pydantic-settings does not JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()] or [
            "http://localhost:3000"
        ]

    @property
    def allowed_extensions_list(self) -> List[str]:
        """Allowed upload extensions, normalised to '.ext' lower case."""
        out = []
        for ext in self.allowed_extensions.split(","):
            ext = ext.strip().lower()
            if not ext:
                continue
            out.append(ext if ext.startswith(".") else f".{ext}")
        return out

    # Server
    port: int = 3000

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
