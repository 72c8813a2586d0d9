import json

import pytest

from autogit.config import (
    DEFAULT_MODELS,
    Config,
    detect_available_providers,
    get_active_config,
    load_config,
    load_persisted_config,
    save_config,
)
from autogit.exceptions import ConfigError


def test_defaults_follow_watch_conventions(tmp_path):
    cfg = load_config(repo_root=tmp_path)

    assert cfg.provider == "openai"
    assert cfg.model == DEFAULT_MODELS["openai"]["model"]
    assert cfg.commit_mode == "periodic"
    assert cfg.debounce_seconds == 30
    assert cfg.settle_seconds == 300
    assert cfg.min_interval_seconds == 1800
    assert cfg.buffer_seconds == 30
    assert cfg.commit_threshold == "medium"
    assert cfg.max_calls_per_minute == 15
    assert cfg.push_enabled is True
    assert cfg.git_repo_path == str(tmp_path.resolve())
    assert get_active_config() is cfg


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTO_GIT_COMMIT_MODE", "intelligent")
    monkeypatch.setenv("AUTO_GIT_COMMIT_THRESHOLD", "major")
    monkeypatch.setenv("AUTO_GIT_BUFFER_TIME_SECONDS", "5")
    monkeypatch.setenv("AUTO_GIT_ACTIVITY_SETTLE_TIME", "120000")
    monkeypatch.setenv("AUTO_GIT_NO_PUSH", "true")
    monkeypatch.setenv("AUTO_GIT_MAX_CALLS_PER_MINUTE", "4")
    monkeypatch.setenv("AUTO_GIT_LLM_MODEL", "gpt-custom")

    cfg = load_config(repo_root=tmp_path)

    assert cfg.intelligent
    assert cfg.commit_threshold == "major"
    assert cfg.buffer_seconds == 5.0
    assert cfg.settle_seconds == pytest.approx(120.0)
    assert cfg.push_enabled is False
    assert cfg.max_calls_per_minute == 4
    assert cfg.model == "gpt-custom"


def test_overrides_beat_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTO_GIT_BUFFER_TIME_SECONDS", "5")
    cfg = load_config(
        repo_root=tmp_path,
        overrides={"buffer_seconds": "9", "push_enabled": False, "model": None},
    )
    assert cfg.buffer_seconds == 9.0
    assert cfg.push_enabled is False
    assert cfg.model == DEFAULT_MODELS["openai"]["model"]


def test_anthropic_is_auto_detected(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "anth-test")
    cfg = load_config(repo_root=tmp_path)
    assert cfg.provider == "anthropic"
    assert cfg.api_key_env == "ANTHROPIC_API_KEY"


def test_unknown_provider_falls_back_to_openai(tmp_path):
    cfg = load_config(repo_root=tmp_path, overrides={"provider": "unknown"})
    assert cfg.provider == "openai"


def test_invalid_values_raise_config_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(repo_root=tmp_path, overrides={"commit_mode": "sometimes"})
    with pytest.raises(ConfigError):
        load_config(repo_root=tmp_path, overrides={"buffer_seconds": -1})
    with pytest.raises(ConfigError):
        load_config(repo_root=tmp_path, overrides={"max_calls_per_minute": 0})


def test_non_numeric_env_raises(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTO_GIT_DEBOUNCE_SECONDS", "soon")
    with pytest.raises(ConfigError):
        load_config(repo_root=tmp_path)


def test_save_and_reload_persisted_settings(tmp_path):
    cfg = load_config(
        repo_root=tmp_path,
        overrides={"commit_mode": "intelligent", "buffer_seconds": 12},
    )
    path = save_config(cfg, tmp_path)

    assert path == tmp_path.resolve() / ".autogit" / "config.json"
    data = json.loads(path.read_text())
    assert data["commit_mode"] == "intelligent"

    reloaded = load_config(repo_root=tmp_path)
    assert reloaded.commit_mode == "intelligent"
    assert reloaded.buffer_seconds == 12


def test_corrupt_persisted_config_raises(tmp_path):
    cfg_dir = tmp_path / ".autogit"
    cfg_dir.mkdir()
    (cfg_dir / "config.json").write_text("{not json")
    with pytest.raises(ConfigError):
        load_persisted_config(tmp_path)


def test_persisted_unknown_keys_are_ignored(tmp_path):
    cfg_dir = tmp_path / ".autogit"
    cfg_dir.mkdir()
    (cfg_dir / "config.json").write_text(
        json.dumps(
            {
                "provider": "openai",
                "model": "m",
                "llm_endpoint": "http://x",
                "api_key_env": "OPENAI_API_KEY",
                "legacy_option": True,
            }
        )
    )
    loaded = load_persisted_config(tmp_path)
    assert isinstance(loaded, Config)
    assert loaded.git_repo_path == str(tmp_path.resolve())


def test_detect_available_providers_fuzzy():
    detected = detect_available_providers(
        {"OPENAI_API_KEY": "x", "MY_CLAUDE_KEY": "y", "GROK_TOKEN": "z"}
    )
    assert detected["openai"] == ["OPENAI_API_KEY"]
    assert detected["anthropic"] == ["MY_CLAUDE_KEY"]
    assert detected["xai"] == ["GROK_TOKEN"]
    assert detected["github"] == []
