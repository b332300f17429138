from __future__ import annotations

import logging

import pytest

from apix_gateway.utils.config import (
    build_hierarchical_tree,
    load_environment_settings,
    lookup_hierarchical_value,
    split_list,
)
from apix_gateway.utils.lifecycle import ShutdownRegistry

LAYERED_KEYS = ("APIX_LAYER_BASE", "APIX_LAYER_OVERRIDE", "APIX_LAYER_PROCESS")


@pytest.fixture
def clean_env(monkeypatch):
    # setenv followed by delenv makes monkeypatch remove values loaded from .env files.
    for key in LAYERED_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_later_env_files_override_earlier_ones(tmp_path, clean_env):
    (tmp_path / ".env").write_text(
        "APIX_LAYER_BASE=base\nAPIX_LAYER_OVERRIDE=base\n", encoding="utf-8"
    )
    (tmp_path / ".env.testing").write_text("APIX_LAYER_OVERRIDE=testing\n", encoding="utf-8")

    settings = load_environment_settings(env="testing", project_root=tmp_path)

    assert settings.name == "testing"
    assert settings.get("APIX_LAYER_BASE") == "base"
    assert settings.get("APIX_LAYER_OVERRIDE") == "testing"
    assert settings.loaded_files == (str(tmp_path / ".env"), str(tmp_path / ".env.testing"))


def test_process_environment_wins_over_env_files(tmp_path, clean_env):
    clean_env.setenv("APIX_LAYER_PROCESS", "process")
    (tmp_path / ".env").write_text("APIX_LAYER_PROCESS=file\n", encoding="utf-8")

    settings = load_environment_settings(project_root=tmp_path)

    assert settings.get("APIX_LAYER_PROCESS") == "process"


def test_typed_getters(tmp_path, monkeypatch):
    monkeypatch.setenv("PIPELINE_DEADLINE_SECONDS", "2.5")
    monkeypatch.setenv("EMPTY_PIPELINE_STATUS", "204")
    monkeypatch.setenv("HTTP_POOL_BLOCK", "no")
    monkeypatch.setenv("CORE_ROUTE_PATH", "")

    settings = load_environment_settings(project_root=tmp_path)

    assert settings.get_float("PIPELINE_DEADLINE_SECONDS", 0.0) == 2.5
    assert settings.get_int("EMPTY_PIPELINE_STATUS", 200) == 204
    assert settings.get_bool("HTTP_POOL_BLOCK", True) is False
    assert settings.get("CORE_ROUTE_PATH", "/core") == "/core"


def test_hierarchical_lookup():
    tree = build_hierarchical_tree({"EXTENSION__TIMEOUT__READ": "7", "PLAIN": "x"})

    assert tree == {"EXTENSION": {"TIMEOUT": {"READ": "7"}}}
    assert lookup_hierarchical_value(tree, "EXTENSION_TIMEOUT_READ") == "7"
    assert lookup_hierarchical_value(tree, "EXTENSION_TIMEOUT") is None


def test_split_list():
    assert split_list(" tcp://a:1, ,udp://b:2 ") == ["tcp://a:1", "udp://b:2"]
    assert split_list(None) == []


def test_shutdown_callbacks_fire_once_and_survive_failures(caplog):
    registry = ShutdownRegistry()
    calls = []

    def broken():
        raise RuntimeError("close failed")

    registry.add("broken", broken)
    registry.add("session", lambda: calls.append("session"))
    logger = logging.getLogger("tests.shutdown")

    with caplog.at_level(logging.ERROR, logger="tests.shutdown"):
        registry.fire(logger=logger)
        registry.fire(logger=logger)

    assert calls == ["session"]
    assert registry.names() == ("broken", "session")
    assert "Shutdown callback broken failed" in caplog.text
