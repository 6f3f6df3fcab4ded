from loguru import logger

from se_migrator.config.settings import AppSettings
from se_migrator.models.enums import BackendKind
from se_migrator.scrapers.sportsengine_scraper import SportsEngineScraper
from se_migrator.sessions.store import SessionStore

from .base_backend import ExtractionBackend
from .browser_backend import BrowserExtractionBackend
from .manus_api import ManusApiClient
from .manus_backend import ManusTaskBackend


def create_backend(app_settings: AppSettings, store: SessionStore) -> ExtractionBackend:
    """Build the configured extraction backend. Called once at startup."""
    kind = BackendKind(app_settings.extraction_backend)
    if kind == BackendKind.MANUS:
        backend: ExtractionBackend = ManusTaskBackend(
            store,
            ManusApiClient(app_settings.manus_api_key, app_settings.manus_base_url),
            login_url=app_settings.sportsengine_login_url,
            dashboard_url=app_settings.sportsengine_dashboard_url,
            webhook_url=app_settings.manus_webhook_url,
            task_mode=app_settings.manus_task_mode,
        )
    else:
        backend = BrowserExtractionBackend(store, SportsEngineScraper(app_settings))
    logger.info(f"Using the {backend.name} extraction backend.")
    return backend
