"""
batchcoder.estimation
~~~~~~~~~~~~~~~~~~~~~
Predicts the bitrate and size of an encode before it is run.

Pure functions only: no subprocess, no Qt, no filesystem. ``estimate`` takes
an EncodeConfig and whatever ProbeMetadata is available (possibly none) and
returns an Estimate.

Quality-mode video bitrate is modelled in the log domain: every 6 CRF points
halve or double the bits spent. When the source bitrate is known, the source
is placed on the same CRF scale through its bits-per-pixel and the target is
projected from it; otherwise a per-codec reference curve is evaluated at the
target pixel rate.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from batchcoder.errors import InvalidInputError
from batchcoder.models import PRESET_HEIGHTS, EncodeConfig, Estimate, ProbeMetadata
from batchcoder.probe import parse_probe_bitrate


FALLBACK_AUDIO_BITRATE_KBPS = 128.0
UNCOMPRESSED_AUDIO_BITRATE_KBPS = 1536.0
CONTAINER_CONTENT_RATIO = 0.95      # share of the container bitrate that is payload

DEFAULT_ASPECT_RATIO = 16.0 / 9.0
DEFAULT_FRAME_RATE = 30.0

# Bits per pixel at each codec's reference CRF
DEFAULT_H264_BITS_PER_PIXEL = 0.075
DEFAULT_H265_BITS_PER_PIXEL = 0.040
DEFAULT_VP9_BITS_PER_PIXEL = 0.050
DEFAULT_AV1_BITS_PER_PIXEL = 0.032
DEFAULT_PRORES_BITS_PER_PIXEL = 1.9
DEFAULT_HW_H264_BITS_PER_PIXEL = 0.045

CRF_STEPS_PER_DOUBLING = 6.0
HARDWARE_QUALITY_DIVISOR = 1.96

NOMINAL_WIDTHS: dict[int, int] = {
    2160: 3840,
    1440: 2560,
    1080: 1920,
    720: 1280,
    576: 1024,
    480: 854,
}

AUTO_DIMENSION = {"", "-1", "auto"}


# ── Value types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    @property
    def aspect(self) -> float:
        return self.width / self.height

    def pixel_rate(self, fps: float) -> float:
        return self.width * self.height * fps


DEFAULT_DIMENSIONS = Dimensions(1280, 720)


@dataclass(frozen=True)
class CodecReference:
    crf: float
    bits_per_pixel: float


_CODEC_REFERENCES: dict[str, CodecReference] = {
    "libx265": CodecReference(28.0, DEFAULT_H265_BITS_PER_PIXEL),
    "h265": CodecReference(28.0, DEFAULT_H265_BITS_PER_PIXEL),
    "hevc": CodecReference(28.0, DEFAULT_H265_BITS_PER_PIXEL),
    "libvpx-vp9": CodecReference(31.0, DEFAULT_VP9_BITS_PER_PIXEL),
    "vp9": CodecReference(31.0, DEFAULT_VP9_BITS_PER_PIXEL),
    "libaom-av1": CodecReference(32.0, DEFAULT_AV1_BITS_PER_PIXEL),
    "libsvtav1": CodecReference(32.0, DEFAULT_AV1_BITS_PER_PIXEL),
    "av1": CodecReference(32.0, DEFAULT_AV1_BITS_PER_PIXEL),
    "prores": CodecReference(9.0, DEFAULT_PRORES_BITS_PER_PIXEL),
    "prores_ks": CodecReference(9.0, DEFAULT_PRORES_BITS_PER_PIXEL),
    "h264_videotoolbox": CodecReference(23.0, DEFAULT_HW_H264_BITS_PER_PIXEL),
    "h264_nvenc": CodecReference(23.0, DEFAULT_HW_H264_BITS_PER_PIXEL),
}
_H264_REFERENCE = CodecReference(23.0, DEFAULT_H264_BITS_PER_PIXEL)


def codec_reference(codec: str) -> CodecReference:
    """Reference CRF / bits-per-pixel pair; anything unknown is treated as x264."""
    return _CODEC_REFERENCES.get(codec.lower(), _H264_REFERENCE)


def container_overhead_factor(container: str) -> float:
    container = container.lower()
    if container in ("ts", "m2ts"):
        return 1.04
    if container in ("mp4", "m4v", "mov"):
        return 1.008
    return 1.01


# ── Public API ────────────────────────────────────────────────────────────────

def estimate(config: EncodeConfig, metadata: ProbeMetadata | None = None) -> Estimate:
    """
    Predict the output bitrate (and size, when the duration is known).

    Raises:
        InvalidInputError – for unparseable or non-positive settings
    """
    audio_only = config.is_audio_only

    target = target_dimensions(config, metadata)
    fps = target_frame_rate(config, metadata)

    if audio_only:
        video_kbps = 0.0
    elif config.video_bitrate_mode == "bitrate":
        video_kbps = parse_config_bitrate(config.video_bitrate, "video bitrate")
    else:
        video_kbps = quality_video_bitrate(config, metadata, target, fps)

    audio_kbps = audio_bitrate(config, metadata)

    total_kbps = (video_kbps + audio_kbps) * container_overhead_factor(config.container)

    seconds = parse_duration_seconds(metadata.duration if metadata else None)
    size_mb = total_kbps * seconds / 8.0 / 1000.0 if seconds is not None else None

    return Estimate(
        video_kbps=_round_kbps(video_kbps),
        audio_kbps=_round_kbps(audio_kbps),
        total_kbps=_round_kbps(total_kbps),
        size_mb=size_mb,
    )


# ── Target geometry ───────────────────────────────────────────────────────────

def source_dimensions(metadata: ProbeMetadata | None) -> Dimensions | None:
    if metadata is None:
        return None
    if metadata.width and metadata.height and metadata.width > 0 and metadata.height > 0:
        return Dimensions(metadata.width, metadata.height)
    return _parse_resolution(metadata.resolution)


def target_dimensions(config: EncodeConfig, metadata: ProbeMetadata | None) -> Dimensions:
    source = source_dimensions(metadata)

    if config.resolution in PRESET_HEIGHTS:
        return _dimensions_for_height(PRESET_HEIGHTS[config.resolution], source)
    if config.resolution == "custom":
        return _custom_dimensions(config, source)
    # "original" and anything unrecognised keep the source geometry
    return source or DEFAULT_DIMENSIONS


def target_frame_rate(config: EncodeConfig, metadata: ProbeMetadata | None) -> float:
    if config.fps == "original":
        if metadata is not None and metadata.frame_rate and metadata.frame_rate > 0:
            return metadata.frame_rate
        return DEFAULT_FRAME_RATE

    try:
        fps = float(config.fps.strip())
    except ValueError:
        raise InvalidInputError(f"Invalid fps value: {config.fps}") from None
    if not fps > 0 or math.isinf(fps):
        raise InvalidInputError(f"Frame rate must be positive, got {config.fps}")
    return fps


def parse_custom_dimension(value: str | None, field: str) -> int | None:
    """None for "derive this side"; a positive int otherwise."""
    if value is None or str(value).strip().lower() in AUTO_DIMENSION:
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise InvalidInputError(f"Invalid {field} value: {value}") from None
    if parsed <= 0:
        raise InvalidInputError(f"{field} must be positive or -1, got {value}")
    return parsed


def _custom_dimensions(config: EncodeConfig, source: Dimensions | None) -> Dimensions:
    width = parse_custom_dimension(config.custom_width, "custom width")
    height = parse_custom_dimension(config.custom_height, "custom height")
    aspect = source.aspect if source else DEFAULT_ASPECT_RATIO

    if width and height:
        return Dimensions(width, height)
    if width:
        return Dimensions(width, max(1, _round_half_up(width / aspect)))
    if height:
        return Dimensions(max(1, _round_half_up(height * aspect)), height)
    return source or DEFAULT_DIMENSIONS


def _dimensions_for_height(height: int, source: Dimensions | None) -> Dimensions:
    if source is not None:
        width = max(1, _round_half_up(height * source.aspect))
    else:
        width = NOMINAL_WIDTHS.get(height, _round_half_up(height * DEFAULT_ASPECT_RATIO))
    return Dimensions(width, height)


def _parse_resolution(resolution: str | None) -> Dimensions | None:
    if not resolution:
        return None
    parts = resolution.lower().split("x")
    if len(parts) != 2:
        return None
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return Dimensions(width, height)


# ── Video ─────────────────────────────────────────────────────────────────────

def effective_crf(config: EncodeConfig) -> float:
    """CRF for software encoders; hardware 0-100 quality mapped onto CRF."""
    if config.uses_hardware_quality:
        return (100.0 - config.quality) / HARDWARE_QUALITY_DIVISOR
    return float(config.crf)


def source_video_bitrate_kbps(metadata: ProbeMetadata | None) -> float | None:
    """Probed video bitrate, else container bitrate minus overhead and audio."""
    if metadata is None:
        return None
    if metadata.video_bitrate_kbps and metadata.video_bitrate_kbps > 0:
        return metadata.video_bitrate_kbps

    container_kbps = parse_probe_bitrate(metadata.bitrate)
    if container_kbps is None:
        return None
    audio_sum = sum(t.bitrate_kbps for t in metadata.audio_tracks if t.bitrate_kbps)
    return max(0.0, container_kbps * CONTAINER_CONTENT_RATIO - audio_sum)


def quality_video_bitrate(
    config: EncodeConfig,
    metadata: ProbeMetadata | None,
    target: Dimensions,
    fps: float,
) -> float:
    crf = effective_crf(config)
    target_pixel_rate = target.pixel_rate(fps)
    reference = codec_reference(config.video_codec)

    source_kbps = source_video_bitrate_kbps(metadata)
    if source_kbps is None:
        return reference_bitrate(reference, crf, target_pixel_rate)

    source = source_dimensions(metadata) or target
    source_fps = metadata.frame_rate if metadata.frame_rate and metadata.frame_rate > 0 else fps
    source_pixel_rate = max(1.0, source.pixel_rate(source_fps))
    projected = source_kbps * (target_pixel_rate / source_pixel_rate)

    source_bpp = source_kbps * 1000.0 / source_pixel_rate
    if source_bpp > 0 and reference.bits_per_pixel > 0:
        ratio = source_bpp / reference.bits_per_pixel
        if math.isfinite(ratio) and ratio > 0:
            source_crf = reference.crf - CRF_STEPS_PER_DOUBLING * math.log2(ratio)
            return max(0.0, projected * _crf_factor(source_crf, crf))

    return max(0.0, projected)


def reference_bitrate(reference: CodecReference, crf: float, pixel_rate: float) -> float:
    """Flat per-codec curve, used when nothing is known about the source."""
    return reference.bits_per_pixel * _crf_factor(reference.crf, crf) * pixel_rate / 1000.0


def _crf_factor(from_crf: float, to_crf: float) -> float:
    return 2.0 ** ((from_crf - to_crf) / CRF_STEPS_PER_DOUBLING)


# ── Audio ─────────────────────────────────────────────────────────────────────

def resolve_audio_tracks(config: EncodeConfig, metadata: ProbeMetadata | None) -> list[int]:
    """Track indices that will end up in the output, in selection order."""
    if config.selected_audio_tracks:
        return list(dict.fromkeys(config.selected_audio_tracks))
    if metadata is not None and metadata.audio_tracks:
        return [metadata.audio_tracks[0].index]
    if config.is_audio_only:
        return [0]
    return []


def audio_bitrate(config: EncodeConfig, metadata: ProbeMetadata | None) -> float:
    track_ids = resolve_audio_tracks(config, metadata)
    if not track_ids:
        return 0.0

    codec = config.audio_codec.lower()

    if codec == "copy":
        probed = {t.index: t.bitrate_kbps for t in metadata.audio_tracks} if metadata else {}
        return sum(probed.get(i) or FALLBACK_AUDIO_BITRATE_KBPS for i in track_ids)

    if codec.startswith("pcm_") or codec in ("flac", "alac"):
        try:
            per_track = float(config.audio_bitrate)
        except (TypeError, ValueError):
            per_track = 0.0
        if not per_track > 0:
            per_track = UNCOMPRESSED_AUDIO_BITRATE_KBPS
        return per_track * len(track_ids)

    return parse_config_bitrate(config.audio_bitrate, "audio bitrate") * len(track_ids)


# ── Parsing helpers ───────────────────────────────────────────────────────────

def parse_config_bitrate(value: str, field: str) -> float:
    """Strictly positive kbps value from a form field ("2500", "2,5")."""
    trimmed = str(value).strip()
    if not trimmed:
        raise InvalidInputError(f"{field} must not be empty")
    try:
        parsed = float(trimmed.replace(",", "."))
    except ValueError:
        raise InvalidInputError(f"Invalid {field} value: {value}") from None
    if not parsed > 0 or math.isinf(parsed):
        raise InvalidInputError(f"{field} must be positive, got {value}")
    return parsed


def parse_duration_seconds(duration: str | None) -> float | None:
    """Accepts plain seconds ("60.04") or HH:MM:SS(.ff)."""
    if not duration:
        return None
    try:
        return float(duration)
    except ValueError:
        pass

    parts = duration.split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = (float(p.strip()) for p in parts)
    except ValueError:
        return None
    return hours * 3600 + minutes * 60 + seconds


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _round_kbps(value: float) -> int:
    return max(0, _round_half_up(value))
