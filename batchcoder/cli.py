"""
batchcoder.cli
~~~~~~~~~~~~~~
Headless front-end: queue files on a ConversionCoordinator and run a
QCoreApplication event loop until every job has finished, or print size
estimates without encoding anything.
"""

from __future__ import annotations

import argparse
import signal
import sys
from functools import partial
from pathlib import Path

from loguru import logger
from PySide6.QtCore import QCoreApplication, QTimer

from batchcoder.command_builder import build_transcode_command
from batchcoder.config import load_settings
from batchcoder.coordinator import ConversionCoordinator
from batchcoder.errors import ConversionError
from batchcoder.estimation import estimate
from batchcoder.logging_setup import configure_logging
from batchcoder.models import EncodeConfig
from batchcoder.paths import validate_binaries
from batchcoder.presets import BUILTIN_PRESETS, DEFAULT_PRESET_ID, get_preset
from batchcoder.probe import probe_media
from batchcoder.scanner import collect_media_files


def get_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="batchcoder",
        description="Convert media files with ffmpeg, a few at a time.",
    )
    parser.add_argument(
        "paths", nargs="+", type=Path,
        help="Files to convert. Folders are expanded to the media files they contain.",
    )
    parser.add_argument(
        "--preset", default=DEFAULT_PRESET_ID, choices=[p.id for p in BUILTIN_PRESETS],
        help="Encode settings to use (default: %(default)s).",
    )
    parser.add_argument(
        "--jobs", type=int, default=None,
        help="Number of encodes to run at once (default: from settings).",
    )
    parser.add_argument(
        "--output-name", default=None,
        help="Output file name, placed beside the source. Only valid for a single file.",
    )
    parser.add_argument(
        "--estimate", action="store_true",
        help="Print the predicted bitrate and size instead of converting.",
    )
    parser.add_argument(
        "--log-level", default=None, choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level (default: from settings).",
    )

    args = parser.parse_args(argv)
    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be at least 1")
    return args


def expand_paths(paths: list[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            found = collect_media_files(path)
            logger.info(f"{path}: {len(found)} media file(s)")
            files.extend(found)
        else:
            files.append(path)
    return files


def main(argv: list[str] | None = None) -> int:
    args = get_args(argv)
    settings = load_settings()
    configure_logging(args.log_level or settings.log_level)

    config = get_preset(args.preset).config
    files = expand_paths(args.paths)
    if not files:
        logger.error("Nothing to convert.")
        return 1
    if args.output_name and len(files) > 1:
        logger.error("--output-name can only be used with a single file.")
        return 1

    if args.estimate:
        return print_estimates(files, config, settings.ffprobe_path)

    problems = validate_binaries(settings.ffmpeg_path)
    if problems:
        for problem in problems:
            logger.error(problem)
        return 1

    return run_conversions(
        files,
        config,
        output_name=args.output_name,
        max_concurrency=args.jobs or settings.max_concurrency,
        ffmpeg_bin=settings.ffmpeg_path,
    )


# ── Estimate mode ─────────────────────────────────────────────────────────────

def print_estimates(files: list[Path], config: EncodeConfig, ffprobe_bin: str) -> int:
    status = 0
    for file in files:
        try:
            metadata = probe_media(file, ffprobe_bin)
        except ConversionError as exc:
            logger.warning(f"{file.name}: {exc}; estimating without source metadata")
            metadata = None

        try:
            result = estimate(config, metadata)
        except ConversionError as exc:
            logger.error(f"{file.name}: {exc}")
            status = 1
            continue

        size = f"{result.size_mb:.1f} MB" if result.size_mb is not None else "unknown size"
        print(f"{file.name}: video {result.video_kbps} kbps + audio {result.audio_kbps} kbps "
              f"= {result.total_kbps} kbps, {size}")
    return status


# ── Conversion mode ───────────────────────────────────────────────────────────

class _Run:
    """Console reporting for one CLI invocation."""

    def __init__(self, app: QCoreApplication, coordinator: ConversionCoordinator, total: int):
        self._app = app
        self._coordinator = coordinator
        self._remaining = total
        self._last_step: dict[str, int] = {}
        self.failures = 0

        coordinator.progress_changed.connect(self.on_progress)
        coordinator.job_completed.connect(self.on_completed)
        coordinator.job_failed.connect(self.on_failed)

    def on_progress(self, job_id: str, progress: float) -> None:
        step = int(progress // 10)
        if step > self._last_step.get(job_id, -1):
            self._last_step[job_id] = step
            print(f"[{job_id}] {progress:5.1f}%")

    def on_completed(self, job_id: str, output_path: str) -> None:
        print(f"[{job_id}] done → {output_path}")
        self._job_done()

    def on_failed(self, job_id: str, error: str) -> None:
        print(f"[{job_id}] FAILED: {error}", file=sys.stderr)
        self.failures += 1
        self._job_done()

    def _job_done(self) -> None:
        self._remaining -= 1
        if self._remaining <= 0:
            self._app.quit()


def run_conversions(
    files: list[Path],
    config: EncodeConfig,
    output_name: str | None,
    max_concurrency: int,
    ffmpeg_bin: str,
) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    coordinator = ConversionCoordinator(
        max_concurrency=max_concurrency,
        command_factory=partial(build_transcode_command, ffmpeg_bin=ffmpeg_bin),
    )

    admitted = 0
    rejected = 0
    for index, file in enumerate(files, start=1):
        job_id = f"{index}:{file.name}"
        try:
            coordinator.queue_conversion(job_id, file, output_name, config)
            admitted += 1
        except ConversionError as exc:
            logger.error(f"{file}: {exc}")
            rejected += 1

    if not admitted:
        return 1

    run = _Run(app, coordinator, admitted)

    # Python signal handlers only run while the interpreter has control
    signal.signal(signal.SIGINT, lambda *_: coordinator.shutdown())
    heartbeat = QTimer()
    heartbeat.start(200)
    heartbeat.timeout.connect(lambda: None)

    app.exec()
    heartbeat.stop()
    coordinator.wait_for_workers()

    logger.info(f"{admitted - run.failures} converted, {run.failures} failed, {rejected} rejected")
    return 1 if run.failures or rejected else 0
