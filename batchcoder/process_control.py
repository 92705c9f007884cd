"""
batchcoder.process_control
~~~~~~~~~~~~~~~~~~~~~~~~~~
Freeze, thaw and kill an encoder process by pid.

POSIX systems use SIGSTOP / SIGCONT / SIGKILL. Windows has no stop signal,
so the suspend/resume pair from ntdll is used instead: it freezes every
thread of the target process at once.

Use ``default_controller()``; call sites never branch on the platform.
"""

from __future__ import annotations

import os
import signal
import sys
from abc import ABC, abstractmethod

from loguru import logger

from batchcoder.errors import ShellError


class ProcessController(ABC):
    """Suspend/resume/terminate capability for one platform."""

    @abstractmethod
    def suspend(self, pid: int) -> None:
        ...

    @abstractmethod
    def resume(self, pid: int) -> None:
        ...

    @abstractmethod
    def terminate(self, pid: int) -> None:
        ...


class PosixProcessController(ProcessController):

    def suspend(self, pid: int) -> None:
        self._send(pid, signal.SIGSTOP)

    def resume(self, pid: int) -> None:
        self._send(pid, signal.SIGCONT)

    def terminate(self, pid: int) -> None:
        try:
            self._send(pid, signal.SIGKILL)
        except ShellError as exc:
            # Already exited and reaped: nothing left to kill
            if isinstance(exc.__cause__, ProcessLookupError):
                logger.debug(f"[CONTROL] pid {pid} is already gone")
                return
            raise

    @staticmethod
    def _send(pid: int, sig: signal.Signals) -> None:
        logger.debug(f"[CONTROL] kill({pid}, {sig.name})")
        try:
            os.kill(pid, sig)
        except OSError as exc:
            raise ShellError(f"failed to send {sig.name} to pid {pid}: {exc}") from exc


class WindowsProcessController(ProcessController):

    PROCESS_TERMINATE         = 0x0001
    PROCESS_SUSPEND_RESUME    = 0x0800

    def suspend(self, pid: int) -> None:
        self._nt_call("NtSuspendProcess", pid)

    def resume(self, pid: int) -> None:
        self._nt_call("NtResumeProcess", pid)

    def terminate(self, pid: int) -> None:
        import ctypes

        kernel32 = ctypes.windll.kernel32
        logger.debug(f"[CONTROL] TerminateProcess({pid})")
        handle = kernel32.OpenProcess(self.PROCESS_TERMINATE, False, pid)
        if not handle:
            raise ShellError(f"OpenProcess failed for pid {pid} (error {kernel32.GetLastError()})")
        try:
            if not kernel32.TerminateProcess(handle, 1):
                raise ShellError(
                    f"TerminateProcess failed for pid {pid} (error {kernel32.GetLastError()})"
                )
        finally:
            kernel32.CloseHandle(handle)

    def _nt_call(self, name: str, pid: int) -> None:
        import ctypes

        kernel32 = ctypes.windll.kernel32
        ntdll = ctypes.windll.ntdll
        logger.debug(f"[CONTROL] {name}({pid})")
        handle = kernel32.OpenProcess(self.PROCESS_SUSPEND_RESUME, False, pid)
        if not handle:
            raise ShellError(f"OpenProcess failed for pid {pid} (error {kernel32.GetLastError()})")
        try:
            status = getattr(ntdll, name)(handle)
            if status != 0:
                raise ShellError(f"{name} failed for pid {pid} (NTSTATUS {status & 0xFFFFFFFF:#x})")
        finally:
            kernel32.CloseHandle(handle)


def default_controller() -> ProcessController:
    """The controller for the running platform."""
    if sys.platform == "win32":
        return WindowsProcessController()
    return PosixProcessController()
