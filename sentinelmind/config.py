# sentinelmind/config.py
import os
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration; every threshold is tunable from the environment"""
    data_dir: str = "data"
    template_db: str = "data/templates.db"

    typosquat_low_bound: float = 0.7
    typosquat_high_bound: float = 1.0
    acceptance_threshold: float = 0.6

    presence_min_ratio: float = 0.05
    presence_max_ratio: float = 0.6
    poll_interval: float = 0.2
    countdown_from: int = 3
    countdown_step: float = 0.8
    camera_ready_timeout: float = 10.0

    phash_resolution: int = 32
    phash_stride: int = 4
    phash_threshold: int = 128

    reference_reload_interval: int = 300
    log_level: str = "INFO"
    debug: bool = False


def get_settings() -> Settings:
    """Build Settings from environment variables (and a .env file if present)"""
    load_dotenv()

    data_dir = os.getenv("SENTINEL_DATA_DIR", "data")
    return Settings(
        data_dir=data_dir,
        template_db=os.getenv("SENTINEL_TEMPLATE_DB", os.path.join(data_dir, "templates.db")),
        typosquat_low_bound=_env_float("TYPOSQUAT_LOW_TH", 0.7),
        typosquat_high_bound=_env_float("TYPOSQUAT_HIGH_TH", 1.0),
        acceptance_threshold=_env_float("BIOMETRIC_ACCEPT_TH", 0.6),
        presence_min_ratio=_env_float("PRESENCE_MIN_RATIO", 0.05),
        presence_max_ratio=_env_float("PRESENCE_MAX_RATIO", 0.6),
        poll_interval=_env_float("PRESENCE_POLL_INTERVAL", 0.2),
        countdown_from=_env_int("COUNTDOWN_FROM", 3),
        countdown_step=_env_float("COUNTDOWN_STEP", 0.8),
        camera_ready_timeout=_env_float("CAMERA_READY_TIMEOUT", 10.0),
        phash_resolution=_env_int("PHASH_RESOLUTION", 32),
        phash_stride=_env_int("PHASH_STRIDE", 4),
        phash_threshold=_env_int("PHASH_THRESHOLD", 128),
        reference_reload_interval=_env_int("REFERENCE_RELOAD_INTERVAL", 300),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        debug=_env_bool("DEBUG"),
    )
