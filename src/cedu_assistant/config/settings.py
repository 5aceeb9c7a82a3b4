from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from cedu_assistant.config.user_settings_store import DEFAULT_APP_NAME, DEFAULT_SETTINGS_DIR

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[3]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid value for %s: %r", name, raw)
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = DEFAULT_APP_NAME
    app_data_dir: Path = DEFAULT_SETTINGS_DIR
    selenium_driver_path: Path | None = None
    headless: bool = True
    poll_interval: float = 1.0
    guardian_error_delay: float = 5.0
    guardian_restart_delay: float = 5.0
    max_guardian_restarts: int = 5
    qr_hide_delay: float = 3.0
    qr_refresh_cooldown: float = 2.0
    max_login_attempts: int = 20
    selector_timeout: float = 10.0
    navigation_timeout: float = 30.0
    jitter_min: float = 3.0
    jitter_max: float = 7.0
    single_instance_port: int = 47631

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            app_name=os.getenv("APP_NAME", DEFAULT_APP_NAME),
            app_data_dir=Path(os.getenv("APP_DATA_DIR", str(DEFAULT_SETTINGS_DIR))).expanduser(),
            selenium_driver_path=(
                Path(driver_path) if (driver_path := os.getenv("SELENIUM_DRIVER_PATH")) else None
            ),
            headless=_env_bool("CEDU_HEADLESS", True),
            poll_interval=_env_float("CEDU_POLL_INTERVAL", 1.0),
            guardian_error_delay=_env_float("CEDU_GUARDIAN_ERROR_DELAY", 5.0),
            guardian_restart_delay=_env_float("CEDU_GUARDIAN_RESTART_DELAY", 5.0),
            max_guardian_restarts=_env_int("CEDU_MAX_GUARDIAN_RESTARTS", 5),
            qr_hide_delay=_env_float("CEDU_QR_HIDE_DELAY", 3.0),
            qr_refresh_cooldown=_env_float("CEDU_QR_REFRESH_COOLDOWN", 2.0),
            max_login_attempts=_env_int("CEDU_MAX_LOGIN_ATTEMPTS", 20),
            selector_timeout=_env_float("CEDU_SELECTOR_TIMEOUT", 10.0),
            navigation_timeout=_env_float("CEDU_NAVIGATION_TIMEOUT", 30.0),
            jitter_min=_env_float("CEDU_JITTER_MIN", 3.0),
            jitter_max=_env_float("CEDU_JITTER_MAX", 7.0),
            single_instance_port=_env_int("CEDU_SINGLE_INSTANCE_PORT", 47631),
        )


settings = Settings.from_env()


def refresh_settings() -> Settings:
    """Re-read ``.env`` and the environment and rebuild the settings object."""

    global settings  # noqa: PLW0603 - module-level singleton

    load_dotenv(ENV_PATH, override=True)
    settings = Settings.from_env()
    logger.debug("Settings refreshed: %s", settings)
    return settings


def get_settings() -> Settings:
    return settings
