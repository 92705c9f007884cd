"""
batchcoder.models
~~~~~~~~~~~~~~~~~
Pure dataclasses — no Qt, no I/O.
These travel freely between the coordinator, its workers and the estimator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path


# ── Enums ─────────────────────────────────────────────────────────────────────

class JobState(Enum):
    QUEUED    = auto()  # admitted, waiting for a free slot
    RUNNING   = auto()  # worker launched, encoder (about to be) running
    PAUSED    = auto()  # encoder process frozen by the OS
    COMPLETED = auto()  # encoder exited with code 0
    FAILED    = auto()  # encoder exited non-zero or could not be spawned
    CANCELLED = auto()  # failed after an explicit cancel()

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


# ── Encode configuration ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class EncodeConfig:
    """
    Everything needed to describe one encode, independent of the file it
    is applied to. Frozen: a config is never mutated once a job owns it.

    Numeric settings that users type in (bitrates, fps, custom sizes) are
    kept as strings, the way they arrive from a form or a preset file.
    ``custom_width`` / ``custom_height`` use ``"-1"`` (or None) for "auto".
    """
    container: str = "mp4"
    video_codec: str = "libx264"
    video_bitrate_mode: str = "crf"       # "crf" | "bitrate"
    video_bitrate: str = "5000"           # kbps, used in "bitrate" mode
    crf: int = 23
    quality: int = 50                     # 0-100, hardware encoders only
    preset: str = "medium"

    resolution: str = "original"          # original | 1080p | 720p | 480p | custom
    custom_width: str | None = None
    custom_height: str | None = None
    scaling_algorithm: str = "bicubic"
    fps: str = "original"

    audio_codec: str = "aac"
    audio_bitrate: str = "128"            # kbps per track
    audio_channels: str = "original"      # original | stereo | mono
    audio_volume: int = 100               # percent
    audio_normalize: bool = False
    selected_audio_tracks: tuple[int, ...] = ()

    metadata_mode: str = "preserve"       # preserve | strip
    start_time: str | None = None
    end_time: str | None = None

    @property
    def is_audio_only(self) -> bool:
        return is_audio_only_container(self.container)

    @property
    def uses_hardware_quality(self) -> bool:
        """True for encoders driven by a 0-100 quality knob instead of CRF."""
        return "videotoolbox" in self.video_codec or "nvenc" in self.video_codec


# Named output sizes; width follows the source aspect ratio
PRESET_HEIGHTS: dict[str, int] = {"1080p": 1080, "720p": 720, "480p": 480}


AUDIO_ONLY_CONTAINERS: frozenset[str] = frozenset({"mp3", "wav", "flac", "aac", "m4a"})


def is_audio_only_container(container: str) -> bool:
    return container.lower() in AUDIO_ONLY_CONTAINERS


# ── Job ───────────────────────────────────────────────────────────────────────

@dataclass
class Job:
    """
    One queued conversion.

    The coordinator owns the authoritative instance; workers only ever
    receive a copy.
    """
    id: str
    source: Path
    config: EncodeConfig
    output_name: str | None = None

    # Runtime state, managed by the coordinator
    state: JobState = field(default=JobState.QUEUED, compare=False)
    output_path: Path | None = field(default=None, compare=False)
    progress: float = field(default=0.0, compare=False)      # 0.0 – 100.0
    error_message: str = field(default="", compare=False)


# ── Probe metadata (returned by batchcoder.probe) ─────────────────────────────

@dataclass(frozen=True)
class AudioTrack:
    index: int
    codec: str = "unknown"
    channels: str = "?"
    language: str | None = None
    label: str | None = None
    bitrate_kbps: float | None = None


@dataclass(frozen=True)
class ProbeMetadata:
    """
    Read-only facts about a source file. Every field is optional: a partial
    instance (or no instance at all) is valid input to the estimator.

    ``duration`` is seconds as a string ("60.04") or ``HH:MM:SS.ff``;
    ``bitrate`` is the container bitrate in bits per second, as ffprobe
    reports it.
    """
    duration: str | None = None
    bitrate: str | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    resolution: str | None = None        # "1920x1080"
    frame_rate: float | None = None
    width: int | None = None
    height: int | None = None
    video_bitrate_kbps: float | None = None
    audio_tracks: tuple[AudioTrack, ...] = ()


# ── Estimate (returned by batchcoder.estimation) ──────────────────────────────

@dataclass(frozen=True)
class Estimate:
    video_kbps: int
    audio_kbps: int
    total_kbps: int
    size_mb: float | None = None
