import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from batchcoder.errors import ProbeError, ShellError
from batchcoder.probe import parse_frame_rate_string, parse_probe_bitrate, parse_probe_output, probe_media

FFPROBE_JSON = {
    "streams": [
        {
            "index": 0, "codec_type": "video", "codec_name": "h264",
            "width": 1920, "height": 1080, "avg_frame_rate": "30000/1001",
            "bit_rate": "4500000",
        },
        {
            "index": 1, "codec_type": "audio", "codec_name": "aac", "channels": 2,
            "bit_rate": "128000", "tags": {"language": "eng", "title": "Stereo"},
        },
        {"index": 2, "codec_type": "audio", "codec_name": "ac3", "channels": 6},
    ],
    "format": {"duration": "60.060000", "bit_rate": "4700000"},
}


def test_parse_probe_output():
    metadata = parse_probe_output(FFPROBE_JSON)

    assert metadata.duration == "60.060000"
    assert metadata.bitrate == "4700000"
    assert metadata.video_codec == "h264"
    assert metadata.audio_codec == "aac"
    assert metadata.resolution == "1920x1080"
    assert (metadata.width, metadata.height) == (1920, 1080)
    assert metadata.frame_rate == pytest.approx(29.97, abs=0.01)
    assert metadata.video_bitrate_kbps == 4500.0

    first, second = metadata.audio_tracks
    assert (first.index, first.codec, first.channels, first.language, first.label) == (1, "aac", "2", "eng", "Stereo")
    assert first.bitrate_kbps == 128.0
    assert (second.index, second.channels, second.bitrate_kbps) == (2, "6", None)


def test_video_rate_from_container_when_stream_has_none():
    data = json.loads(json.dumps(FFPROBE_JSON))
    del data["streams"][0]["bit_rate"]

    assert parse_probe_output(data).video_bitrate_kbps == pytest.approx(4700 - 128)


def test_audio_only_source():
    metadata = parse_probe_output({
        "streams": [{"index": 0, "codec_type": "audio", "codec_name": "mp3", "channels": 2}],
        "format": {"duration": "180.0", "bit_rate": "N/A"},
    })

    assert metadata.video_codec is None
    assert metadata.resolution is None
    assert metadata.video_bitrate_kbps is None
    assert metadata.audio_tracks[0].codec == "mp3"


def test_empty_output():
    metadata = parse_probe_output({})

    assert metadata.duration is None
    assert metadata.audio_tracks == ()


def test_non_object_is_rejected():
    with pytest.raises(ProbeError):
        parse_probe_output([])


@pytest.mark.parametrize("value,expected", [
    ("30/1", 30.0), ("24000/1001", 24000 / 1001), ("25", 25.0),
    ("0/0", None), ("N/A", None), ("", None), (None, None), ("abc", None),
])
def test_parse_frame_rate_string(value, expected):
    result = parse_frame_rate_string(value)
    if expected is None:
        assert result is None
    else:
        assert result == pytest.approx(expected)


@pytest.mark.parametrize("value,expected", [
    ("128000", 128.0), (" 96000 ", 96.0), ("N/A", None), ("0", None), ("-1", None), (None, None), ("x", None),
])
def test_parse_probe_bitrate(value, expected):
    assert parse_probe_bitrate(value) == expected


# ── probe_media ───────────────────────────────────────────────────────────────

def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_probe_media_runs_ffprobe():
    with patch("batchcoder.probe.subprocess.run", return_value=completed(stdout=json.dumps(FFPROBE_JSON))) as run:
        metadata = probe_media(Path("/clips/a.mov"), ffprobe_bin="/opt/ffprobe")

    cmd = run.call_args.args[0]
    assert cmd[0] == "/opt/ffprobe"
    assert cmd[-1] == str(Path("/clips/a.mov"))
    assert "-show_streams" in cmd
    assert metadata.video_codec == "h264"


def test_probe_media_nonzero_exit():
    with patch("batchcoder.probe.subprocess.run", return_value=completed(1, stderr="No such file")):
        with pytest.raises(ProbeError, match="No such file"):
            probe_media(Path("a.mov"))


def test_probe_media_malformed_json():
    with patch("batchcoder.probe.subprocess.run", return_value=completed(stdout="{not json")):
        with pytest.raises(ProbeError):
            probe_media(Path("a.mov"))


def test_probe_media_missing_binary():
    with patch("batchcoder.probe.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
        with pytest.raises(ShellError):
            probe_media(Path("a.mov"))
