"""
batchcoder.paths
~~~~~~~~~~~~~~~~
Single source of truth for the external binaries used across the package.
Import these instead of hard-coding strings anywhere else.
"""

from __future__ import annotations

import shutil
import sys
from pathlib import Path

# Project root = the directory that contains main.py
PROJECT_ROOT = Path(__file__).resolve().parent.parent

BIN_DIR = PROJECT_ROOT / "bin"

_EXE_SUFFIX = ".exe" if sys.platform == "win32" else ""


def _resolve_binary(name: str) -> str:
    """Prefer a binary shipped in bin/, fall back to whatever is on PATH."""
    bundled = BIN_DIR / f"{name}{_EXE_SUFFIX}"
    if bundled.is_file():
        return str(bundled)
    return shutil.which(name) or name


FFMPEG_BIN  = _resolve_binary("ffmpeg")
FFPROBE_BIN = _resolve_binary("ffprobe")


def validate_binaries(*binaries: str) -> list[str]:
    """
    Return a list of error strings for any missing/non-executable binaries.
    Empty list means all good.

    Defaults to checking FFMPEG_BIN and FFPROBE_BIN.
    """
    errors: list[str] = []
    for binary in binaries or (FFMPEG_BIN, FFPROBE_BIN):
        path = Path(binary)
        if not path.is_absolute():
            found = shutil.which(binary)
            if found is None:
                errors.append(f"Binary not found on PATH: {binary}")
                continue
            path = Path(found)

        if not path.exists():
            errors.append(f"Binary not found: {path}")
        elif not path.is_file():
            errors.append(f"Not a file: {path}")
        elif sys.platform != "win32" and not path.stat().st_mode & 0o111:
            errors.append(f"Not executable: {path}")
    return errors
