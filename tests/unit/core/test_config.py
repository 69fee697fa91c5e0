import logging

import pytest
from pydantic import ValidationError

from core.config import AppSettings, write_user_env_vars
from core.logging_setup import setup_logging


def test_defaults():
    settings = AppSettings(_env_file=None)
    assert settings.base_url == "https://graph.facebook.com"
    assert settings.api_version == "v2.3"
    assert settings.access_token is None
    assert settings.gzip_requests is True
    assert settings.graph_url() == "https://graph.facebook.com/v2.3"
    assert settings.graph_url("v2.5") == "https://graph.facebook.com/v2.5"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("GRAPH_BATCH_ACCESS_TOKEN", "abc")
    monkeypatch.setenv("GRAPH_BATCH_API_VERSION", "v2.4")
    monkeypatch.setenv("GRAPH_BATCH_GZIP_REQUESTS", "false")

    settings = AppSettings(_env_file=None)

    assert settings.access_token == "abc"
    assert settings.api_version == "v2.4"
    assert settings.gzip_requests is False


def test_env_file_is_read(tmp_path):
    env = tmp_path / ".env"
    env.write_text("GRAPH_BATCH_MAX_WORKERS=8\n", encoding="utf-8")

    assert AppSettings(_env_file=env).max_workers == 8


def test_settings_are_frozen():
    settings = AppSettings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.api_version = "v9.9"


def test_worker_count_is_bounded():
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, max_workers=0)


def test_write_user_env_vars_merges_existing(tmp_path):
    env = tmp_path / "cfg" / ".env"
    env.parent.mkdir()
    env.write_text("# comment\nGRAPH_BATCH_API_VERSION='v2.2'\n", encoding="utf-8")

    write_user_env_vars({"GRAPH_BATCH_ACCESS_TOKEN": "tok", "IGNORED": None}, env_path=env)

    lines = env.read_text(encoding="utf-8").splitlines()
    assert "GRAPH_BATCH_ACCESS_TOKEN=tok" in lines
    assert "GRAPH_BATCH_API_VERSION=v2.2" in lines
    assert not any(line.startswith("IGNORED") for line in lines)


def test_setup_logging_replaces_root_handlers():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        setup_logging("debug")
        setup_logging("INFO")
        assert len(root.handlers) == 1
        assert root.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)


def test_write_user_env_vars_removes_none_values(tmp_path):
    env = tmp_path / ".env"
    env.write_text("export GRAPH_BATCH_ACCESS_TOKEN=\"old\"\nGRAPH_BATCH_MAX_WORKERS=2\n", encoding="utf-8")

    write_user_env_vars({"GRAPH_BATCH_ACCESS_TOKEN": None}, env_path=env)

    lines = env.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("#")
    assert lines[1:] == ["GRAPH_BATCH_MAX_WORKERS=2"]
