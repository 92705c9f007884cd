"""
batchcoder.coordinator
~~~~~~~~~~~~~~~~~~~~~~
ConversionCoordinator owns the pending queue, the set of running jobs and
the concurrency limit.

Every state change arrives as a message on the Qt event queue of the
thread the coordinator lives in (Enqueue, JobStarted, JobCompleted,
JobFailed, LimitChanged). Each handler applies its change and then runs one
scheduling pass, so queue and active-set mutations are serialised without
locks.

The only state touched from other threads is the job registry and the
``id → pid`` table used by pause/resume/cancel. Both sit behind one lock that
is never held across an OS call.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import replace
from pathlib import Path

from loguru import logger
from PySide6.QtCore import QObject, Qt, Signal, Slot

from batchcoder.command_builder import build_transcode_command
from batchcoder.config import DEFAULT_MAX_CONCURRENCY
from batchcoder.errors import InvalidInputError, NotFoundError, ShellError
from batchcoder.models import EncodeConfig, Job, JobState
from batchcoder.process_control import ProcessController, default_controller
from batchcoder.worker import CommandFactory, TranscodeWorker, validate_job


class ConversionCoordinator(QObject):

    log_line          = Signal(str, str)      # (job_id, line)
    progress_changed  = Signal(str, float)    # (job_id, 0.0 – 100.0)
    job_completed     = Signal(str, str)      # (job_id, output_path)
    job_failed        = Signal(str, str)      # (job_id, error)
    job_state_changed = Signal(str, object)   # (job_id, JobState)

    # Mailbox, always delivered through the event loop
    _enqueue_requested = Signal(object)
    _limit_changed     = Signal()

    def __init__(
        self,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        controller: ProcessController | None = None,
        command_factory: CommandFactory = build_transcode_command,
        parent=None,
    ):
        super().__init__(parent)
        if max_concurrency < 1:
            raise InvalidInputError("Max concurrency must be at least 1")

        self._max_concurrency = max_concurrency
        self._controller = controller or default_controller()
        self._command_factory = command_factory

        # Coordinator thread only
        self._queue: deque[Job]                  = deque()
        self._active: set[str]                   = set()
        self._workers: dict[str, TranscodeWorker] = {}
        self._retired: set[TranscodeWorker]      = set()

        # Shared with callers of pause/resume/cancel
        self._lock = threading.Lock()
        self._jobs: dict[str, Job] = {}
        self._pids: dict[str, int] = {}
        self._cancel_requested: set[str] = set()
        self._kill_on_start: set[str] = set()

        queued = Qt.ConnectionType.QueuedConnection
        self._enqueue_requested.connect(self._on_enqueue, queued)
        self._limit_changed.connect(self._on_limit_changed, queued)

    # ── Concurrency limit ─────────────────────────────────────────────────────

    def get_max_concurrency(self) -> int:
        return self._max_concurrency

    def set_max_concurrency(self, value: int) -> None:
        """
        Change the limit for future scheduling passes. Running jobs are never
        interrupted when the limit drops below the number already running.
        """
        if value < 1:
            raise InvalidInputError("Max concurrency must be at least 1")
        logger.info(f"[COORDINATOR] max_concurrency: {self._max_concurrency} → {value}")
        self._max_concurrency = value
        self._limit_changed.emit()

    # ── Job submission ────────────────────────────────────────────────────────

    def queue_conversion(
        self,
        job_id: str,
        path: Path | str,
        output_name: str | None,
        config: EncodeConfig,
    ) -> None:
        """
        Validate and admit a job. It runs once a slot is free.

        Raises:
            InvalidInputError – bad input, or *job_id* is still in use
        """
        source = Path(path)
        validate_job(source, config)

        job = Job(id=job_id, source=source, config=config, output_name=output_name)
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is not None and not existing.state.is_terminal:
                raise InvalidInputError(f"A job with id '{job_id}' is already queued or running")
            self._jobs[job_id] = job

        logger.info(f"[COORDINATOR] queue_conversion: '{job_id}' ← {source}")
        self._enqueue_requested.emit(job)

    # ── Process control ───────────────────────────────────────────────────────

    def pause(self, job_id: str) -> None:
        """Freeze the encoder of a running job. Raises NotFoundError if none."""
        pid = self._require_pid(job_id)
        self._controller.suspend(pid)
        self._set_state(job_id, JobState.PAUSED, only_from=JobState.RUNNING)

    def resume(self, job_id: str) -> None:
        """Thaw a paused encoder. Raises NotFoundError if none."""
        pid = self._require_pid(job_id)
        self._controller.resume(pid)
        self._set_state(job_id, JobState.RUNNING, only_from=JobState.PAUSED)

    def cancel(self, job_id: str) -> None:
        """
        Kill the encoder of a running job, without waiting for it to exit.
        The worker then reports the failure as usual. A job with no running
        process (never started, or already finished) is left alone.
        """
        with self._lock:
            pid = self._pids.get(job_id)
            if pid is None:
                logger.debug(f"[COORDINATOR] cancel: no process for '{job_id}', nothing to do")
                return
            self._cancel_requested.add(job_id)

        # Best effort: the process may never have been paused
        try:
            self._controller.resume(pid)
        except ShellError as exc:
            logger.debug(f"[COORDINATOR] cancel: resume before kill failed for '{job_id}': {exc}")

        logger.info(f"[COORDINATOR] cancel: terminating '{job_id}' (pid {pid})")
        self._controller.terminate(pid)

    def shutdown(self) -> None:
        """Drop everything still queued and kill every running encoder."""
        self._queue.clear()
        with self._lock:
            # Includes jobs whose Enqueue message is still in flight
            dropped = [j.id for j in self._jobs.values() if j.state is JobState.QUEUED]
            running = list(self._pids)
            # Running, but the JobStarted message is still in flight
            starting = [job_id for job_id in self._active if job_id not in self._pids]
            self._kill_on_start.update(starting)
        for job_id in dropped:
            self._set_state(job_id, JobState.CANCELLED)
            self.job_failed.emit(job_id, "Cancelled before it started")

        logger.info(f"[COORDINATOR] shutdown: {len(dropped)} queued dropped, "
                    f"{len(running) + len(starting)} running cancelled")
        for job_id in running:
            try:
                self.cancel(job_id)
            except ShellError as exc:
                logger.warning(f"[COORDINATOR] shutdown: {exc}")

    # ── Introspection ─────────────────────────────────────────────────────────

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def jobs(self) -> list[Job]:
        with self._lock:
            return [replace(job) for job in self._jobs.values()]

    def active_count(self) -> int:
        return len(self._active)

    def queued_count(self) -> int:
        return len(self._queue)

    def is_idle(self) -> bool:
        return not self._active and not self._queue

    def wait_for_workers(self, timeout_ms: int = 10_000) -> bool:
        """
        Block until every worker thread has returned. Only for teardown:
        no messages are handled while this waits.
        """
        threads = list(self._workers.values()) + list(self._retired)
        return all(worker.wait(timeout_ms) for worker in threads)

    # ── Message handlers ──────────────────────────────────────────────────────

    @Slot(object)
    def _on_enqueue(self, job: Job) -> None:
        if job.state is not JobState.QUEUED:
            # Dropped by shutdown() before the message arrived
            return
        self._queue.append(job)
        logger.debug(f"[COORDINATOR] Enqueued '{job.id}' ({len(self._queue)} waiting)")
        self._set_state(job.id, JobState.QUEUED)
        self._schedule()

    @Slot()
    def _on_limit_changed(self) -> None:
        self._schedule()

    @Slot(str, int)
    def _on_job_started(self, job_id: str, pid: int) -> None:
        with self._lock:
            self._pids[job_id] = pid
            kill_now = job_id in self._kill_on_start
            self._kill_on_start.discard(job_id)
        logger.debug(f"[COORDINATOR] '{job_id}' running as pid {pid}")

        if kill_now:
            logger.info(f"[COORDINATOR] '{job_id}' started after shutdown, cancelling")
            try:
                self.cancel(job_id)
            except ShellError as exc:
                logger.warning(f"[COORDINATOR] shutdown: {exc}")

    @Slot(str, str)
    def _on_log_line(self, job_id: str, line: str) -> None:
        self.log_line.emit(job_id, line)

    @Slot(str, float)
    def _on_progress(self, job_id: str, progress: float) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.progress = progress
        self.progress_changed.emit(job_id, progress)

    @Slot(str, str)
    def _on_job_completed(self, job_id: str, output_path: str) -> None:
        logger.info(f"[COORDINATOR] '{job_id}' completed → {output_path}")
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                job.output_path = Path(output_path)
                job.progress = 100.0
        self._finish(job_id, JobState.COMPLETED)
        self.job_completed.emit(job_id, output_path)
        self._schedule()

    @Slot(str, str)
    def _on_job_failed(self, job_id: str, error: str) -> None:
        with self._lock:
            cancelled = job_id in self._cancel_requested
            job = self._jobs.get(job_id)
            if job is not None:
                job.error_message = error
        state = JobState.CANCELLED if cancelled else JobState.FAILED
        logger.info(f"[COORDINATOR] '{job_id}' {state.name.lower()}: {error}")
        self._finish(job_id, state)
        self.job_failed.emit(job_id, error)
        self._schedule()

    @Slot()
    def _on_worker_thread_finished(self) -> None:
        worker = self.sender()
        if not isinstance(worker, TranscodeWorker):
            return

        # Terminal messages always arrive before the thread's finished signal
        if self._workers.get(worker.job_id) is worker:
            self._on_job_failed(worker.job_id, "worker exited without reporting a result")

        self._retired.discard(worker)
        worker.deleteLater()

    # ── Scheduling ────────────────────────────────────────────────────────────

    def _schedule(self) -> None:
        limit = max(1, self._max_concurrency)
        while len(self._active) < limit and self._queue:
            job = self._queue.popleft()
            self._active.add(job.id)
            self._set_state(job.id, JobState.RUNNING)
            self._start_worker(job)

    def _start_worker(self, job: Job) -> None:
        worker = TranscodeWorker(replace(job), self._command_factory, parent=self)

        queued = Qt.ConnectionType.QueuedConnection
        worker.job_started.connect(self._on_job_started, queued)
        worker.log_line.connect(self._on_log_line, queued)
        worker.progress_changed.connect(self._on_progress, queued)
        worker.job_completed.connect(self._on_job_completed, queued)
        worker.job_failed.connect(self._on_job_failed, queued)
        worker.finished.connect(self._on_worker_thread_finished, queued)

        self._workers[job.id] = worker
        logger.info(f"[COORDINATOR] Starting '{job.id}' "
                    f"({len(self._active)}/{self._max_concurrency} slots in use)")
        worker.start()

    def _finish(self, job_id: str, state: JobState) -> None:
        self._active.discard(job_id)
        with self._lock:
            self._pids.pop(job_id, None)
            self._cancel_requested.discard(job_id)
            self._kill_on_start.discard(job_id)

        # Still returning from run(); released on its finished signal
        worker = self._workers.pop(job_id, None)
        if worker is not None:
            self._retired.add(worker)

        self._set_state(job_id, state)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _require_pid(self, job_id: str) -> int:
        with self._lock:
            pid = self._pids.get(job_id)
        if pid is None:
            raise NotFoundError(f"no running process for job '{job_id}'")
        return pid

    def _set_state(self, job_id: str, state: JobState, only_from: JobState | None = None) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or (only_from is not None and job.state is not only_from):
                return
            previous, job.state = job.state, state
        if previous is not state:
            logger.debug(f"[COORDINATOR] State '{job_id}': {previous.name} → {state.name}")
        self.job_state_changed.emit(job_id, state)
