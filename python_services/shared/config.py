"""
Shared configuration for the presenter relay service.
"""

import logging
import os
from typing import Optional
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Load environment variables from python_services/.env, regardless of CWD
try:
    from dotenv import load_dotenv, find_dotenv

    base_dir = Path(__file__).resolve().parents[1]  # points to python_services/
    dotenv_path = base_dir / ".env"

    if dotenv_path.exists():
        load_dotenv(dotenv_path, override=True)
    else:
        discovered = find_dotenv(usecwd=True)
        if discovered:
            load_dotenv(discovered, override=False)
except ImportError:
    logger.warning("python-dotenv not installed, using system environment variables only")


class Settings(BaseSettings):
    """Process settings with environment variable support.

    Operator-facing configuration (displays, ports, presets, backups) lives in the
    preferences store; these settings only cover how the process itself starts.
    """

    service_name: str = Field(default="presenter-relay", alias='SERVICE_NAME')
    build_number: str = Field(default="unknown", alias='PRESENTER_BUILD_NUMBER')
    api_host: str = Field(default="0.0.0.0", alias='PRESENTER_API_HOST')
    api_port: Optional[int] = Field(default=None, alias='PRESENTER_API_PORT')
    data_dir: Path = Field(default=Path.home() / ".presenter_relay", alias='PRESENTER_DATA_DIR')
    debug: bool = Field(default=False, alias='DEBUG')
    verbose: bool = Field(default=False, alias='PRESENTER_VERBOSE')

    # Logging
    log_level: str = Field(default="INFO", alias='LOG_LEVEL')

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True  # Allow both field name and alias
        extra = "ignore"

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / "preferences.sqlite"

    @property
    def profile_dir(self) -> Path:
        return self.data_dir / "web_profile"

    def effective_log_level(self) -> str:
        if self.verbose or self.debug:
            return "DEBUG"
        return self.log_level.upper()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the current settings instance."""
    return settings


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once for the service process."""
    logging.basicConfig(
        level=level or settings.effective_log_level(),
        format=LOG_FORMAT,
    )


def set_verbose_logging(enabled: bool) -> None:
    """Switch verbose logging at runtime (driven by the verboseLogging preference).

    The environment switch always wins so a verbose run cannot be silenced from the UI.
    """
    forced = settings.verbose or os.getenv("DEBUG", "").lower() in ("1", "true")
    level = logging.DEBUG if (enabled or forced) else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)


def debug_settings():
    """Log current settings for startup diagnostics."""
    s = get_settings()
    logger.info("🔍 Current Settings:")
    logger.info(f"  Service Name: {s.service_name}")
    logger.info(f"  Build Number: {s.build_number}")
    logger.info(f"  API Host: {s.api_host}")
    logger.info(f"  API Port override: {s.api_port or 'not set (using preferences)'}")
    logger.info(f"  Data Directory: {s.data_dir}")
    logger.info(f"  Debug Mode: {s.debug}")
    logger.info(f"  Log Level: {s.effective_log_level()}")
