import os
import sys
import textwrap
from pathlib import Path

# Must be set before pytest-qt creates the QApplication
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from batchcoder.coordinator import ConversionCoordinator
from batchcoder.models import EncodeConfig
from batchcoder.process_control import ProcessController


def encoder_script(
    steps: tuple[str, ...] = ("00:00:02.50", "00:00:05.00", "00:00:10.00"),
    delay: float = 0.05,
    exit_code: int = 0,
    hold: float = 0.0,
) -> str:
    """Python source that talks to stderr the way ffmpeg does."""
    return textwrap.dedent(f"""
        import sys, time
        sys.stderr.write("Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'in.mov':\\n")
        sys.stderr.write("  Duration: 00:00:10.00, start: 0.000000, bitrate: 4128 kb/s\\n")
        sys.stderr.flush()
        time.sleep({hold})
        for stamp in {steps!r}:
            sys.stderr.write("frame=  100 fps= 25 q=28.0 size=  256kB time=" + stamp + " bitrate= 209.7kbits/s\\r")
            sys.stderr.flush()
            time.sleep({delay})
        sys.stderr.write("\\n")
        sys.exit({exit_code})
    """)


def fake_encoder(**script_kwargs):
    """Command factory that runs a fake encoder instead of ffmpeg."""
    script = encoder_script(**script_kwargs)

    def factory(config, input_file, output_file):
        return [sys.executable, "-c", script]

    return factory


class RecordingController(ProcessController):
    """Remembers every call and never touches a real process."""

    def __init__(self):
        self.calls: list[tuple[str, int]] = []

    def suspend(self, pid: int) -> None:
        self.calls.append(("suspend", pid))

    def resume(self, pid: int) -> None:
        self.calls.append(("resume", pid))

    def terminate(self, pid: int) -> None:
        self.calls.append(("terminate", pid))


@pytest.fixture
def source_file(tmp_path) -> Path:
    path = tmp_path / "clip.mov"
    path.write_bytes(b"\x00" * 16)
    return path


@pytest.fixture
def make_sources(tmp_path):
    def make(count: int) -> list[Path]:
        paths = []
        for index in range(count):
            path = tmp_path / f"clip{index}.mov"
            path.write_bytes(b"\x00" * 16)
            paths.append(path)
        return paths
    return make


@pytest.fixture
def config() -> EncodeConfig:
    return EncodeConfig()


@pytest.fixture
def make_coordinator(qtbot):
    created: list[ConversionCoordinator] = []

    def make(**kwargs) -> ConversionCoordinator:
        kwargs.setdefault("controller", RecordingController())
        coordinator = ConversionCoordinator(**kwargs)
        created.append(coordinator)
        return coordinator

    yield make

    for coordinator in created:
        coordinator.shutdown()
        coordinator.wait_for_workers()
