import stat
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from batchcoder.cli import expand_paths, get_args, main, print_estimates, run_conversions
from batchcoder.errors import ProbeError
from batchcoder.models import EncodeConfig

FAKE_FFMPEG = """#!{python}
import sys
sys.stderr.write("  Duration: 00:00:01.00, start: 0.000000, bitrate: 900 kb/s\\n")
sys.stderr.write("frame=   25 fps=0.0 time=00:00:00.50 bitrate=N/A\\r")
sys.stderr.write("frame=   50 fps=0.0 time=00:00:01.00 bitrate=N/A\\n")
open(sys.argv[-1], "w").close()
"""


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("BATCHCODER_HOME", str(tmp_path / "home"))


def test_get_args_defaults():
    args = get_args(["a.mov"])

    assert args.paths == [Path("a.mov")]
    assert args.preset == "balanced-mp4"
    assert args.jobs is None
    assert not args.estimate


@pytest.mark.parametrize("argv", [["a.mov", "--jobs", "0"], ["a.mov", "--preset", "nope"], []])
def test_get_args_rejects(argv):
    with pytest.raises(SystemExit):
        get_args(argv)


def test_expand_paths(tmp_path):
    folder = tmp_path / "clips"
    folder.mkdir()
    (folder / "b.mp4").write_bytes(b"")
    (folder / "a.mkv").write_bytes(b"")
    single = tmp_path / "single.mov"

    assert expand_paths([folder, single]) == [folder / "a.mkv", folder / "b.mp4", single]


def test_print_estimates_survives_probe_failure(source_file, capsys):
    with patch("batchcoder.cli.probe_media", side_effect=ProbeError("no ffprobe")):
        status = print_estimates([source_file], EncodeConfig(), "ffprobe")

    assert status == 0
    assert "clip.mov: video 2074 kbps + audio 0 kbps" in capsys.readouterr().out


def test_print_estimates_reports_bad_settings(source_file):
    config = EncodeConfig(video_bitrate_mode="bitrate", video_bitrate="0")

    with patch("batchcoder.cli.probe_media", side_effect=ProbeError("no ffprobe")):
        assert print_estimates([source_file], config, "ffprobe") == 1


def test_main_estimate_mode(source_file, capsys):
    with patch("batchcoder.cli.probe_media", side_effect=ProbeError("no ffprobe")):
        status = main([str(source_file), "--estimate", "--preset", "audio-mp3"])

    assert status == 0
    assert "audio 128 kbps" in capsys.readouterr().out


def test_main_with_empty_folder(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()

    assert main([str(empty)]) == 1


def test_main_output_name_needs_single_file(make_sources):
    paths = [str(p) for p in make_sources(2)]

    assert main([*paths, "--output-name", "x"]) == 1


def test_main_without_ffmpeg(source_file, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / "settings.json").write_text('{"ffmpeg_path": "/nonexistent/ffmpeg"}', encoding="utf-8")

    assert main([str(source_file)]) == 1


@pytest.mark.skipif(sys.platform == "win32", reason="shebang script")
def test_run_conversions_end_to_end(qapp, tmp_path, source_file, monkeypatch):
    ffmpeg = tmp_path / "ffmpeg"
    ffmpeg.write_text(FAKE_FFMPEG.format(python=sys.executable), encoding="utf-8")
    ffmpeg.chmod(ffmpeg.stat().st_mode | stat.S_IXUSR)
    monkeypatch.setattr("batchcoder.cli.signal.signal", lambda *_: None)

    status = run_conversions([source_file], EncodeConfig(), None, 1, str(ffmpeg))

    assert status == 0
    assert source_file.with_name("clip.mov_converted.mp4").exists()
