"""
batchcoder.command_builder
~~~~~~~~~~~~~~~~~~~~~~~~~~
Builds ffmpeg CLI commands as plain list[str].

Keeping command construction separate means you can:
  - log / print the exact command before running it
  - paste it straight into a terminal for debugging
  - unit-test flag generation without running any process
"""

from __future__ import annotations

from pathlib import Path

from batchcoder.estimation import parse_custom_dimension
from batchcoder.models import PRESET_HEIGHTS, EncodeConfig
from batchcoder.paths import FFMPEG_BIN

SCALING_FLAGS: dict[str, str] = {
    "lanczos": ":flags=lanczos",
    "bilinear": ":flags=bilinear",
    "nearest": ":flags=neighbor",
    "bicubic": ":flags=bicubic",
}


def build_transcode_command(
    config: EncodeConfig,
    input_file: Path,
    output_file: Path,
    ffmpeg_bin: str = FFMPEG_BIN,
) -> list[str]:
    """
    Build the full ffmpeg command for transcoding one file.

    Example output:
        ['/usr/bin/ffmpeg', '-i', '/clips/clip.mov',
         '-c:v', 'libx264', '-crf', '23', '-preset', 'medium',
         '-c:a', 'aac', '-b:a', '128k',
         '-y', '/clips/clip.mov_converted.mp4']
    """
    return [ffmpeg_bin, *build_ffmpeg_args(str(input_file), str(output_file), config)]


def build_ffmpeg_args(input_file: str, output_file: str, config: EncodeConfig) -> list[str]:
    """Arguments only, without the ffmpeg binary itself."""
    args = ["-i", input_file]

    if config.start_time:
        args += ["-ss", config.start_time]
    if config.end_time:
        args += ["-to", config.end_time]

    if config.is_audio_only:
        args.append("-vn")
    else:
        args += _video_args(config)

    if config.selected_audio_tracks:
        if not config.is_audio_only:
            args += ["-map", "0:v:0"]
        for track_index in config.selected_audio_tracks:
            args += ["-map", f"0:{track_index}"]

    args += ["-c:a", config.audio_codec]
    # Lossless presets carry "0": let the encoder pick
    if config.audio_bitrate.strip() not in ("", "0"):
        args += ["-b:a", f"{config.audio_bitrate}k"]

    if config.audio_channels == "stereo":
        args += ["-ac", "2"]
    elif config.audio_channels == "mono":
        args += ["-ac", "1"]

    audio_filters = _audio_filters(config)
    if audio_filters and config.audio_codec != "copy":
        args += ["-af", ",".join(audio_filters)]

    if config.metadata_mode == "strip":
        args += ["-map_metadata", "-1"]

    args += ["-y", output_file]
    return args


# ── Internal helpers ──────────────────────────────────────────────────────────

def _video_args(config: EncodeConfig) -> list[str]:
    args = ["-c:v", config.video_codec]

    if config.video_bitrate_mode == "bitrate":
        args += ["-b:v", f"{config.video_bitrate}k"]
    elif config.video_codec == "h264_nvenc":
        # NVENC: constant quality 1-51 (1 is best); quality is 0-100 (100 is best)
        cq = min(51, max(1, int(52 - config.quality / 2 + 0.5)))
        args += ["-rc:v", "vbr", "-cq:v", str(cq)]
    elif config.video_codec == "h264_videotoolbox":
        args += ["-q:v", str(config.quality)]
    else:
        args += ["-crf", str(config.crf)]

    args += ["-preset", config.preset]

    if config.resolution != "original":
        args += ["-vf", _scale_filter(config)]

    if config.fps != "original":
        args += ["-r", config.fps]

    return args


def _scale_filter(config: EncodeConfig) -> str:
    if config.resolution == "custom":
        # -1 lets ffmpeg derive that side from the aspect ratio
        width = parse_custom_dimension(config.custom_width, "custom width") or -1
        height = parse_custom_dimension(config.custom_height, "custom height") or -1
        scale = f"scale={width}:{height}"
    elif config.resolution in PRESET_HEIGHTS:
        scale = f"scale=-1:{PRESET_HEIGHTS[config.resolution]}"
    else:
        scale = "scale=-1:-1"
    return scale + SCALING_FLAGS.get(config.scaling_algorithm, "")


def _audio_filters(config: EncodeConfig) -> list[str]:
    filters: list[str] = []
    if config.audio_volume != 100:
        filters.append(f"volume={config.audio_volume / 100:g}")
    if config.audio_normalize:
        filters.append("loudnorm")
    return filters


def command_as_string(cmd: list[str]) -> str:
    """Human-readable version of the command for logging."""
    return " ".join(cmd)
