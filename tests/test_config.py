"""Tests for tempo.config: tempo.toml loading and validation."""

from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest

from tempo.config import (
    ConfigError,
    TempoConfig,
    load_config,
    parse_clock_time,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit


def _write(tmp_path: Path, body: str) -> Path:
    (tmp_path / "tempo.toml").write_text(body)
    return tmp_path


# ---------------------------------------------------------------------------
# load_config
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_full_file(self, tmp_path: Path):
        config = load_config(
            _write(
                tmp_path,
                """
[tempo]
name = "tempo-dev"

[tempo.logging]
level = "debug"
format = "json"

[proposals]
ttl_minutes = 30

[retry]
max_attempts = 5
initial_delay_s = 0.5

[offline_queue]
capacity = 10
persist = true

[scheduling]
work_start = "08:00"
work_end = 18:00:00
max_items = 4
""",
            )
        )
        assert config.name == "tempo-dev"
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.proposals.ttl_minutes == 30
        assert config.retry.max_attempts == 5
        assert config.retry.initial_delay_s == 0.5
        assert config.offline_queue.capacity == 10
        assert config.offline_queue.persist is True
        assert config.scheduling.work_start == time(8, 0)
        assert config.scheduling.work_end == time(18, 0)
        assert config.scheduling.max_items == 4

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        config = load_config(_write(tmp_path, ""))
        assert config == TempoConfig()
        assert config.proposals.ttl_minutes == 120
        assert config.retry.max_attempts == 3

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write(tmp_path, "[tempo\nname = "))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize(
        "data",
        [
            {"tempo": {"logging": {"format": "xml"}}},
            {"tempo": {"name": "  "}},
            {"proposals": {"ttl_minutes": 0}},
            {"retry": {"max_attempts": "three"}},
            {"retry": {"backoff_factor": 0.5}},
            {"retry": {"initial_delay_s": 5, "max_delay_s": 1}},
            {"offline_queue": {"capacity": -1}},
            {"scheduling": {"work_start": "17:00", "work_end": "09:00"}},
            {"scheduling": {"lunch_time": "noon"}},
        ],
    )
    def test_rejected(self, data):
        with pytest.raises(ConfigError):
            parse_config(data)

    def test_parse_clock_time(self):
        assert parse_clock_time("09:30", "x") == time(9, 30)
        assert parse_clock_time(time(7, 0), "x") == time(7, 0)
        with pytest.raises(ConfigError):
            parse_clock_time(930, "x")


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------


class TestEnvVars:
    def test_resolves_nested(self, monkeypatch):
        monkeypatch.setenv("TEMPO_NAME", "from-env")
        assert resolve_env_vars({"a": ["${TEMPO_NAME}", 1]}) == {"a": ["from-env", 1]}

    def test_missing_var_is_reported(self, monkeypatch):
        monkeypatch.delenv("TEMPO_MISSING", raising=False)
        with pytest.raises(ConfigError, match="TEMPO_MISSING"):
            resolve_env_vars("${TEMPO_MISSING}")

    def test_applied_by_parse_config(self, monkeypatch):
        monkeypatch.setenv("TEMPO_QUEUE_KEY", "offline_queue::alice")
        config = parse_config({"offline_queue": {"state_key": "${TEMPO_QUEUE_KEY}"}})
        assert config.offline_queue.state_key == "offline_queue::alice"
