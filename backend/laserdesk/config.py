"""
Runtime configuration for laserdesk.

Values come from the environment (optionally seeded from a local .env file).
The feed location can also be changed at runtime and is persisted in a small
JSON settings file inside the data directory.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent

env_file = PROJECT_ROOT / ".env"
if env_file.exists():
    load_dotenv(env_file)

DATA_DIR = Path(os.getenv("LASERDESK_DATA_DIR", str(Path.home() / ".laserdesk")))
LOGS_DIR = Path(os.getenv("LASERDESK_LOGS_DIR", str(DATA_DIR / "logs")))
TEMPLATES_DIR = Path(os.getenv("LASERDESK_TEMPLATES_DIR", str(DATA_DIR / "templates")))
ASSETS_DIR = Path(os.getenv("LASERDESK_ASSETS_DIR", str(DATA_DIR / "assets")))
WORK_DIR = Path(os.getenv("LASERDESK_WORK_DIR", str(Path(tempfile.gettempdir()) / "laserdesk")))
OUTPUT_DIR = Path(os.getenv("LASERDESK_OUTPUT_DIR", str(DATA_DIR / "output")))
SETTINGS_FILE = DATA_DIR / "settings.json"

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'db.sqlite'}")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Feed
DEFAULT_FEED_URL = os.getenv("FEED_URL")
FEED_TIMEOUT_SECONDS = float(os.getenv("FEED_TIMEOUT_SECONDS", "30"))

# External renderer
RENDERER_PATH = os.getenv("RENDERER_PATH", r"C:\Program Files\LightBurn\LightBurn.exe")
RENDERER_TIMEOUT_SECONDS = float(os.getenv("RENDERER_TIMEOUT_SECONDS", "30"))
# detached launches: how long to watch for an early exit before assuming the GUI is up
RENDERER_LAUNCH_GRACE_SECONDS = float(os.getenv("RENDERER_LAUNCH_GRACE_SECONDS", "3"))
RENDER_MAX_RETRIES = int(os.getenv("RENDER_MAX_RETRIES", "2"))
RENDER_BACKOFF_SECONDS = float(os.getenv("RENDER_BACKOFF_SECONDS", "1.0"))

# Artifact verification
ARTIFACT_SETTLE_SECONDS = float(os.getenv("ARTIFACT_SETTLE_SECONDS", "0.5"))
MIN_ARTIFACT_BYTES = int(os.getenv("MIN_ARTIFACT_BYTES", "64"))

# Side retry bookkeeping
MAX_TRANSIENT_ATTEMPTS = int(os.getenv("MAX_TRANSIENT_ATTEMPTS", "3"))
CONFIG_ERROR_ATTEMPTS = int(os.getenv("CONFIG_ERROR_ATTEMPTS", "999"))


def ensure_directories() -> None:
    """Create every directory the application writes to."""
    for path in (DATA_DIR, LOGS_DIR, TEMPLATES_DIR, ASSETS_DIR, WORK_DIR, OUTPUT_DIR):
        path.mkdir(parents=True, exist_ok=True)
    logger.debug("Directories ready data=%s work=%s", DATA_DIR, WORK_DIR)


def _load_settings(settings_file: Path) -> dict:
    if not settings_file.exists():
        return {}
    try:
        with open(settings_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", settings_file, e)
        return {}
    return data if isinstance(data, dict) else {}


def get_feed_url(settings_file: Path = None) -> Optional[str]:
    """Return the persisted feed location, falling back to FEED_URL."""
    settings = _load_settings(settings_file or SETTINGS_FILE)
    return settings.get("feedUrl") or DEFAULT_FEED_URL


def set_feed_url(url: str, settings_file: Path = None) -> None:
    settings_file = settings_file or SETTINGS_FILE
    settings = _load_settings(settings_file)
    settings["feedUrl"] = url
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    with open(settings_file, "w", encoding="utf-8") as f:
        json.dump(settings, f, indent=2)
    logger.info("Feed URL updated to %s", url)
