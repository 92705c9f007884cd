"""
batchcoder.config
~~~~~~~~~~~~~~~~~
Persists application settings to a JSON file in the platform's standard
config directory.

Config location
---------------
  Windows  : %APPDATA%\\Batchcoder\\settings.json
  macOS    : ~/Library/Application Support/Batchcoder/settings.json
  Linux    : ~/.config/Batchcoder/settings.json

Set ``BATCHCODER_HOME`` to use another directory.

Only settings are stored here. Jobs and the queue live in memory and are
intentionally never written to disk.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from loguru import logger

from batchcoder.paths import FFMPEG_BIN, FFPROBE_BIN

DEFAULT_MAX_CONCURRENCY = 2


# ── Config directory ──────────────────────────────────────────────────────────

def config_dir() -> Path:
    override = os.environ.get("BATCHCODER_HOME")
    if override:
        return Path(override)

    if sys.platform == "win32":
        base = Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path.home() / ".config"

    return base / "Batchcoder"


def settings_file() -> Path:
    return config_dir() / "settings.json"


# ── Settings ──────────────────────────────────────────────────────────────────

@dataclass
class Settings:
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    ffmpeg_path: str = FFMPEG_BIN
    ffprobe_path: str = FFPROBE_BIN
    log_level: str = "INFO"


# ── Public API ────────────────────────────────────────────────────────────────

def load_settings(path: Path | None = None) -> Settings:
    """
    Read the settings file and return a Settings instance.
    Returns defaults if the file is missing, empty, or malformed; unknown
    keys are ignored and a non-positive concurrency falls back to the default.
    """
    path = path or settings_file()
    if not path.exists():
        return Settings()

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning(f"[CONFIG] Ignoring unreadable settings file {path}: {exc}")
        return Settings()

    if not isinstance(payload, dict):
        logger.warning(f"[CONFIG] Ignoring settings file {path}: expected a JSON object")
        return Settings()

    known = {f.name for f in fields(Settings)}
    settings = Settings(**{k: v for k, v in payload.items() if k in known})

    try:
        settings.max_concurrency = int(settings.max_concurrency)
    except (TypeError, ValueError):
        settings.max_concurrency = DEFAULT_MAX_CONCURRENCY
    if settings.max_concurrency < 1:
        logger.warning(f"[CONFIG] max_concurrency={settings.max_concurrency} is invalid, "
                       f"using {DEFAULT_MAX_CONCURRENCY}")
        settings.max_concurrency = DEFAULT_MAX_CONCURRENCY

    return settings


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Serialise *settings*, overwriting any previous file."""
    path = path or settings_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(settings), indent=2), encoding="utf-8")
    logger.debug(f"[CONFIG] Settings written to {path}")
