from .command_builder import build_transcode_command, build_ffmpeg_args
from .coordinator import ConversionCoordinator
from .errors import (
    ConversionError, InvalidInputError, NotFoundError, ProbeError, ShellError, WorkerError,
)
from .estimation import estimate
from .models import AudioTrack, EncodeConfig, Estimate, Job, JobState, ProbeMetadata
from .probe import probe_media
from .process_control import ProcessController, default_controller
from .scanner import build_output_path, collect_media_files

__all__ = [
    "EncodeConfig", "Job", "JobState", "ProbeMetadata", "AudioTrack", "Estimate",
    "ConversionCoordinator",
    "ConversionError", "ShellError", "ProbeError", "NotFoundError",
    "InvalidInputError", "WorkerError",
    "estimate",
    "probe_media",
    "ProcessController", "default_controller",
    "build_output_path", "collect_media_files",
    "build_transcode_command", "build_ffmpeg_args",
]
