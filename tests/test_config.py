import json

from batchcoder.config import (
    DEFAULT_MAX_CONCURRENCY,
    Settings,
    config_dir,
    load_settings,
    save_settings,
    settings_file,
)


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "settings.json")

    assert settings == Settings()
    assert settings.max_concurrency == DEFAULT_MAX_CONCURRENCY


def test_save_then_load(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    save_settings(Settings(max_concurrency=4, ffmpeg_path="/opt/ffmpeg", log_level="DEBUG"), path)

    loaded = load_settings(path)

    assert loaded.max_concurrency == 4
    assert loaded.ffmpeg_path == "/opt/ffmpeg"
    assert loaded.log_level == "DEBUG"


def test_malformed_file_gives_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{oops", encoding="utf-8")

    assert load_settings(path) == Settings()


def test_non_object_gives_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert load_settings(path) == Settings()


def test_unknown_keys_ignored_and_bad_concurrency_reset(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"max_concurrency": 0, "theme": "dark"}), encoding="utf-8")

    assert load_settings(path).max_concurrency == DEFAULT_MAX_CONCURRENCY


def test_string_concurrency_is_coerced(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"max_concurrency": "3"}), encoding="utf-8")

    assert load_settings(path).max_concurrency == 3


def test_home_override(tmp_path, monkeypatch):
    monkeypatch.setenv("BATCHCODER_HOME", str(tmp_path))

    assert config_dir() == tmp_path
    assert settings_file() == tmp_path / "settings.json"
