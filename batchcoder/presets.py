# batchcoder/presets.py

from __future__ import annotations

from dataclasses import dataclass

from batchcoder.errors import InvalidInputError
from batchcoder.models import EncodeConfig


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    config: EncodeConfig


BUILTIN_PRESETS: list[Preset] = [
    Preset(
        id="balanced-mp4",
        name="Balanced MP4",
        config=EncodeConfig(),
    ),
    Preset(
        id="archive-hq",
        name="Archive H.265",
        config=EncodeConfig(
            container="mkv",
            video_codec="libx265",
            video_bitrate="8000",
            crf=18,
            quality=60,
            preset="slow",
            scaling_algorithm="lanczos",
            audio_codec="ac3",
            audio_bitrate="192",
        ),
    ),
    Preset(
        id="web-share",
        name="Web Share",
        config=EncodeConfig(
            container="webm",
            video_codec="libvpx-vp9",
            video_bitrate="2500",
            crf=30,
            quality=40,
            resolution="720p",
            audio_codec="libopus",
            audio_bitrate="96",
            audio_channels="stereo",
        ),
    ),
    Preset(
        id="audio-mp3",
        name="Audio MP3",
        config=EncodeConfig(
            container="mp3",
            video_bitrate="0",
            audio_codec="mp3",
            audio_bitrate="128",
            audio_channels="stereo",
        ),
    ),
    Preset(
        id="audio-flac",
        name="Audio FLAC (Lossless)",
        config=EncodeConfig(container="flac", video_bitrate="0", audio_codec="flac", audio_bitrate="0"),
    ),
    Preset(
        id="audio-alac",
        name="Audio ALAC (Apple)",
        config=EncodeConfig(container="m4a", video_bitrate="0", audio_codec="alac", audio_bitrate="0"),
    ),
    Preset(
        id="audio-wav",
        name="Audio WAV (Lossless)",
        config=EncodeConfig(container="wav", video_bitrate="0", audio_codec="pcm_s16le", audio_bitrate="0"),
    ),
]

DEFAULT_PRESET_ID = "balanced-mp4"


def get_preset(preset_id: str) -> Preset:
    for preset in BUILTIN_PRESETS:
        if preset.id == preset_id:
            return preset
    known = ", ".join(p.id for p in BUILTIN_PRESETS)
    raise InvalidInputError(f"Unknown preset '{preset_id}' (known: {known})")
