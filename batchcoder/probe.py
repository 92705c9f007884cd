"""
batchcoder.probe
~~~~~~~~~~~~~~~~
Thin wrapper around the ffprobe CLI.
Returns ProbeMetadata dataclasses — no Qt, no side effects.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

from loguru import logger

from batchcoder.errors import ProbeError, ShellError
from batchcoder.models import AudioTrack, ProbeMetadata
from batchcoder.paths import FFPROBE_BIN


# ── Public API ────────────────────────────────────────────────────────────────

def probe_media(file: Path, ffprobe_bin: str = FFPROBE_BIN) -> ProbeMetadata:
    """
    Run ffprobe on *file* and return its ProbeMetadata.

    Raises:
        ShellError  – if ffprobe cannot be launched
        ProbeError  – if ffprobe exits non-zero or prints malformed JSON
    """
    raw = _run_ffprobe(Path(file), ffprobe_bin)
    return parse_probe_output(raw)


def parse_probe_output(data: dict) -> ProbeMetadata:
    """Extract the fields we care about from raw ffprobe JSON."""
    if not isinstance(data, dict):
        raise ProbeError("ffprobe output is not a JSON object")

    fmt = data.get("format") or {}
    streams = data.get("streams") or []

    duration = fmt.get("duration")
    bitrate = fmt.get("bit_rate")

    video_codec = None
    width = height = None
    resolution = None
    frame_rate = None
    video_kbps = None

    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video_stream is not None:
        video_codec = video_stream.get("codec_name")
        w, h = video_stream.get("width"), video_stream.get("height")
        if isinstance(w, int) and isinstance(h, int) and w > 0 and h > 0:
            width, height = w, h
            resolution = f"{w}x{h}"
        frame_rate = parse_frame_rate_string(video_stream.get("avg_frame_rate"))
        video_kbps = parse_probe_bitrate(video_stream.get("bit_rate"))

    audio_tracks = tuple(
        _audio_track(s) for s in streams if s.get("codec_type") == "audio"
    )

    # Many containers (mkv, webm) only carry an overall bitrate
    if video_kbps is None:
        container_kbps = parse_probe_bitrate(bitrate)
        if container_kbps is not None:
            audio_sum = sum(t.bitrate_kbps for t in audio_tracks if t.bitrate_kbps)
            if container_kbps > audio_sum:
                video_kbps = container_kbps - audio_sum

    return ProbeMetadata(
        duration=duration,
        bitrate=bitrate,
        video_codec=video_codec,
        audio_codec=audio_tracks[0].codec if audio_tracks else None,
        resolution=resolution,
        frame_rate=frame_rate,
        width=width,
        height=height,
        video_bitrate_kbps=video_kbps,
        audio_tracks=audio_tracks,
    )


def parse_frame_rate_string(value: str | None) -> float | None:
    """Convert '24000/1001' or '29.97' to a float; None when unknown."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "n/a":
        return None

    try:
        if "/" in value:
            num, den = value.split("/", 1)
            denominator = float(den)
            if denominator == 0:
                return None
            return float(num) / denominator
        return float(value)
    except ValueError:
        return None


def parse_probe_bitrate(raw: str | None) -> float | None:
    """ffprobe reports bits per second; return kbps, or None if unusable."""
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw or raw.lower() == "n/a":
        return None
    try:
        numeric = float(raw)
    except ValueError:
        return None
    if numeric <= 0:
        return None
    return numeric / 1000.0


# ── Internal helpers ──────────────────────────────────────────────────────────

def _run_ffprobe(file: Path, ffprobe_bin: str) -> dict:
    """Execute ffprobe and return parsed JSON output."""
    cmd = [
        ffprobe_bin,
        "-v", "quiet",            # suppress banner
        "-print_format", "json",  # machine-readable output
        "-show_format",           # duration, bitrate, etc.
        "-show_streams",          # per-stream codec info
        str(file),
    ]
    logger.debug(f"[PROBE] {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise ShellError(f"could not run ffprobe: {exc}") from exc

    if result.returncode != 0:
        raise ProbeError(
            f"ffprobe failed on {file.name} (exit {result.returncode}): "
            f"{result.stderr.strip()}"
        )

    try:
        return json.loads(result.stdout)
    except ValueError as exc:
        raise ProbeError(f"ffprobe returned malformed JSON for {file.name}: {exc}") from exc


def _audio_track(stream: dict) -> AudioTrack:
    tags = stream.get("tags") or {}
    channels = stream.get("channels")
    return AudioTrack(
        index=int(stream.get("index", 0)),
        codec=stream.get("codec_name") or "unknown",
        channels=str(channels) if channels is not None else "?",
        language=tags.get("language"),
        label=tags.get("title"),
        bitrate_kbps=parse_probe_bitrate(stream.get("bit_rate")),
    )
