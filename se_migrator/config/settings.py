import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from se_migrator.models.enums import BackendKind


class AppSettings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # Extraction Backend
    extraction_backend: BackendKind = Field(
        BackendKind.BROWSER,
        description="Which extraction backend serves requests (browser or manus).",
    )

    # Session Tokens
    jwt_secret: str = Field(
        "change-me", description="Signing secret for session tokens."
    )
    session_ttl_seconds: int = Field(
        86_400, gt=0, description="Lifetime of a session from its creation."
    )
    session_sweep_interval_seconds: int = Field(
        900, gt=0, description="How often the server sweeps expired sessions."
    )

    # SportsEngine Site
    sportsengine_login_url: str = "https://user.sportngin.com/users/sign_in"
    sportsengine_dashboard_url: str = "https://my.sportngin.com/user"
    sportsengine_my_teams_url: str = "https://my.sportngin.com/user/my-teams"

    # Browser Automation
    browser_headless: bool = True
    browser_executable_path: Optional[str] = Field(
        None, description="Chrome/Chromium binary; Playwright's bundled one if unset."
    )
    selector_timeout_ms: int = Field(
        2000, gt=0, description="Existence timeout for each selector candidate."
    )
    navigation_timeout_ms: int = Field(30_000, gt=0)
    debug_screenshot_dir: Optional[Path] = Field(
        None, description="Write full-page screenshots here after each navigation."
    )

    # Manus Task Delegation
    manus_api_key: Optional[str] = Field(None, description="API key for Manus AI.")
    manus_base_url: str = "https://api.manus.ai"
    manus_webhook_url: Optional[str] = Field(
        None, description="Public URL of our /manus-webhook endpoint."
    )
    manus_task_mode: str = "quality"

    # Supabase Configuration
    supabase_url: Optional[str] = Field(None, description="URL for the Supabase project.")
    supabase_key: Optional[str] = Field(None, description="Key for the Supabase project.")

    # HTTP Surface / Proxy Client
    api_host: str = "0.0.0.0"
    api_port: int = 3001
    backend_url: str = Field(
        "http://localhost:3001", description="Base URL the proxy client talks to."
    )
    client_session_path: Path = Field(
        Path.home() / ".se_migrator" / "session.json",
        description="Where the proxy client persists its session.",
    )

    # Logging Configuration
    log_level: str = Field(
        "INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."
    )

    # Pydantic Settings Configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


def load_settings() -> AppSettings:
    """Loads and validates application settings."""
    try:
        settings = AppSettings()
        log_level_upper = settings.log_level.upper()
        # Validate log_level even if loaded from .env
        if log_level_upper not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            logging.warning(
                f"Invalid LOG_LEVEL '{settings.log_level}' found in .env or default. Using INFO."
            )
            settings.log_level = "INFO"
        else:
            settings.log_level = log_level_upper
        if settings.jwt_secret == "change-me":
            logging.warning("JWT_SECRET is not set; using the insecure default.")
        return settings
    except Exception as e:
        logging.exception(f"Error loading application settings: {e}")
        raise SystemExit("Failed to load application settings. Exiting.")


settings: AppSettings = load_settings()
