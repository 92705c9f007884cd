"""
batchcoder.worker
~~~~~~~~~~~~~~~~~
QThread that runs a single ffmpeg transcode and emits signals the
coordinator relays to its subscribers.

Signals
-------
job_started(str, int)        job id, encoder pid — emitted once, right after spawning
log_line(str, str)           every line ffmpeg writes to stderr, blank ones included
progress_changed(str, float) 0.0 – 100.0 as ffmpeg advances through the file
job_completed(str, str)      output path; the encoder exited with code 0
job_failed(str, str)         human-readable error, carries the exit code

Exactly one of job_completed / job_failed is emitted per worker, always
after every log_line / progress_changed of that job.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Callable

from loguru import logger
from PySide6.QtCore import QThread, Signal

from batchcoder.command_builder import build_transcode_command, command_as_string
from batchcoder.errors import InvalidInputError, ShellError, WorkerError
from batchcoder.estimation import parse_config_bitrate, parse_custom_dimension
from batchcoder.models import EncodeConfig, Job
from batchcoder.scanner import build_output_path

CommandFactory = Callable[[EncodeConfig, Path, Path], list[str]]

DURATION_RE = re.compile(r"Duration: (\d{2}:\d{2}:\d{2}\.\d{2})")
TIME_RE     = re.compile(r"time=(\d{2}:\d{2}:\d{2}\.\d{2})")
_HHMMSS_RE  = re.compile(r"(\d{2}):(\d{2}):(\d{2}\.\d{2})")


# ── Validation ────────────────────────────────────────────────────────────────

def validate_job(source: Path, config: EncodeConfig) -> None:
    """
    Reject a job before it is queued.

    Raises:
        InvalidInputError – missing/non-regular source, bad custom size,
                            non-positive video bitrate
    """
    if not source.exists():
        raise InvalidInputError(f"Input file does not exist: {source}")
    if not source.is_file():
        raise InvalidInputError(f"Input path is not a file: {source}")

    if config.resolution == "custom":
        parse_custom_dimension(config.custom_width, "custom width")
        parse_custom_dimension(config.custom_height, "custom height")

    if config.video_bitrate_mode == "bitrate" and not config.is_audio_only:
        parse_config_bitrate(config.video_bitrate, "video bitrate")


# ── Progress parsing ──────────────────────────────────────────────────────────

def parse_time(time_str: str) -> float | None:
    """'01:02:03.45' → 3723.45; anything else → None."""
    match = _HHMMSS_RE.fullmatch(time_str.strip())
    if match is None:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class ProgressParser:
    """
    Turns ffmpeg's stderr into percentages.

    The first ``Duration:`` line fixes the total; every later ``time=`` line
    yields ``min(100, position / duration * 100)``. Lines that don't parse
    are ignored, so progress simply stalls until a usable line shows up.
    """

    def __init__(self) -> None:
        self.duration: float | None = None

    def feed(self, line: str) -> float | None:
        if self.duration is None:
            match = DURATION_RE.search(line)
            if match:
                duration = parse_time(match.group(1))
                if duration:
                    self.duration = duration
            return None

        match = TIME_RE.search(line)
        if match is None:
            return None
        position = parse_time(match.group(1))
        if position is None:
            return None
        return min(100.0, position / self.duration * 100.0)


# ── Worker thread ─────────────────────────────────────────────────────────────

class TranscodeWorker(QThread):

    job_started      = Signal(str, int)
    log_line         = Signal(str, str)
    progress_changed = Signal(str, float)
    job_completed    = Signal(str, str)
    job_failed       = Signal(str, str)

    def __init__(
        self,
        job: Job,
        command_factory: CommandFactory = build_transcode_command,
        parent=None,
    ):
        super().__init__(parent)
        self._job = job
        self._command_factory = command_factory
        self._output_path = build_output_path(job.source, job.config.container, job.output_name)
        self._process: subprocess.Popen | None = None

    @property
    def job_id(self) -> str:
        return self._job.id

    @property
    def output_path(self) -> Path:
        return self._output_path

    # ── QThread entry point ───────────────────────────────────────────────────

    def run(self):
        job_id = self._job.id
        logger.info(f"[WORKER] '{job_id}': {self._job.source.name} → {self._output_path.name}")

        try:
            cmd = self._command_factory(self._job.config, self._job.source, self._output_path)
            logger.debug(f"[WORKER] '{job_id}' command: {command_as_string(cmd)}")
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (OSError, ValueError) as exc:
            self._fail(str(ShellError(f"could not start encoder: {exc}")))
            return

        logger.debug(f"[WORKER] '{job_id}' PID = {self._process.pid}")
        self.job_started.emit(job_id, self._process.pid)

        try:
            self._stream_output()
            returncode = self._process.wait()
        except Exception as exc:
            logger.exception(f"[WORKER] '{job_id}' lost track of the encoder")
            self._kill_quietly()
            self._fail(str(WorkerError(f"lost track of the encoder: {exc}")))
            return

        logger.info(f"[WORKER] '{job_id}' ffmpeg exited with code {returncode}")
        if returncode == 0:
            self.job_completed.emit(job_id, str(self._output_path))
        else:
            self._fail(str(WorkerError(f"Process terminated with code {returncode}")))

    # ── Internal ──────────────────────────────────────────────────────────────

    def _stream_output(self) -> None:
        # ffmpeg rewrites its stats line with '\r'; text mode splits on it too
        job_id = self._job.id
        parser = ProgressParser()
        with self._process.stderr as stderr:
            for raw in stderr:
                line = raw.rstrip("\r\n")
                logger.trace(f"[WORKER] '{job_id}' {line}")
                self.log_line.emit(job_id, line)

                pct = parser.feed(line)
                if pct is not None:
                    self.progress_changed.emit(job_id, pct)

    def _kill_quietly(self) -> None:
        if self._process is not None and self._process.poll() is None:
            self._process.kill()
            self._process.wait()

    def _fail(self, message: str) -> None:
        logger.warning(f"[WORKER] '{self._job.id}' failed: {message}")
        self.job_failed.emit(self._job.id, message)
