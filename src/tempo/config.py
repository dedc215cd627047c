"""Tempo configuration loading and validation.

Reads tempo.toml from a config directory, parses all sections, and returns
a validated TempoConfig dataclass.  Every section is optional; missing keys
fall back to the defaults below.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from typing import Any

CONFIG_FILE_NAME = "tempo.toml"

# Pattern matching ${VAR_NAME}; supports alphanumeric + underscore variable names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [tempo.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class ProposalConfig:
    """Proposal store configuration from [proposals] section."""

    ttl_minutes: int = 120


@dataclass
class RetryConfig:
    """Backoff policy for proxied service calls from [retry] section."""

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_factor: float = 2.0
    max_delay_s: float = 10.0
    attempt_timeout_s: float = 30.0


@dataclass
class OfflineQueueConfig:
    """Offline queue configuration from [offline_queue] section."""

    capacity: int = 100
    max_replay_retries: int = 3
    persist: bool = False
    state_key: str = "offline_queue::default"


@dataclass
class SchedulingConfig:
    """Scheduling heuristics defaults from [scheduling] section."""

    work_start: time = time(9, 0)
    work_end: time = time(17, 0)
    min_gap_minutes: int = 15
    min_item_minutes: int = 15
    max_items: int = 3
    default_item_minutes: int = 30
    lunch_time: time = time(12, 0)
    lunch_minutes: int = 60
    break_minutes: int = 15


@dataclass
class TempoConfig:
    """Parsed and validated configuration."""

    name: str = "tempo"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    proposals: ProposalConfig = field(default_factory=ProposalConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    offline_queue: OfflineQueueConfig = field(default_factory=OfflineQueueConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def parse_clock_time(value: Any, field_name: str) -> time:
    """Parse an ``HH:MM`` string (or a TOML local time) into a ``time``."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be an 'HH:MM' string, got {value!r}")
    try:
        return time.fromisoformat(value.strip())
    except ValueError as exc:
        raise ConfigError(f"{field_name} must be an 'HH:MM' string, got {value!r}") from exc


def _positive_int(section: dict[str, Any], key: str, default: int, prefix: str) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {prefix}.{key}: {raw!r}. Must be an integer.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {prefix}.{key}: {value!r}. Must be a positive integer.")
    return value


def _positive_float(section: dict[str, Any], key: str, default: float, prefix: str) -> float:
    raw = section.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {prefix}.{key}: {raw!r}. Must be a number.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {prefix}.{key}: {value!r}. Must be positive.")
    return value


def _parse_retry(section: dict[str, Any]) -> RetryConfig:
    defaults = RetryConfig()
    retry = RetryConfig(
        max_attempts=_positive_int(section, "max_attempts", defaults.max_attempts, "retry"),
        initial_delay_s=_positive_float(
            section, "initial_delay_s", defaults.initial_delay_s, "retry"
        ),
        backoff_factor=_positive_float(
            section, "backoff_factor", defaults.backoff_factor, "retry"
        ),
        max_delay_s=_positive_float(section, "max_delay_s", defaults.max_delay_s, "retry"),
        attempt_timeout_s=_positive_float(
            section, "attempt_timeout_s", defaults.attempt_timeout_s, "retry"
        ),
    )
    if retry.backoff_factor < 1:
        raise ConfigError("Invalid retry.backoff_factor: must be >= 1.")
    if retry.max_delay_s < retry.initial_delay_s:
        raise ConfigError("Invalid retry.max_delay_s: must be >= retry.initial_delay_s.")
    return retry


def _parse_scheduling(section: dict[str, Any]) -> SchedulingConfig:
    defaults = SchedulingConfig()
    scheduling = SchedulingConfig(
        work_start=parse_clock_time(
            section.get("work_start", defaults.work_start), "scheduling.work_start"
        ),
        work_end=parse_clock_time(
            section.get("work_end", defaults.work_end), "scheduling.work_end"
        ),
        min_gap_minutes=_positive_int(
            section, "min_gap_minutes", defaults.min_gap_minutes, "scheduling"
        ),
        min_item_minutes=_positive_int(
            section, "min_item_minutes", defaults.min_item_minutes, "scheduling"
        ),
        max_items=_positive_int(section, "max_items", defaults.max_items, "scheduling"),
        default_item_minutes=_positive_int(
            section, "default_item_minutes", defaults.default_item_minutes, "scheduling"
        ),
        lunch_time=parse_clock_time(
            section.get("lunch_time", defaults.lunch_time), "scheduling.lunch_time"
        ),
        lunch_minutes=_positive_int(section, "lunch_minutes", defaults.lunch_minutes, "scheduling"),
        break_minutes=_positive_int(section, "break_minutes", defaults.break_minutes, "scheduling"),
    )
    if scheduling.work_end <= scheduling.work_start:
        raise ConfigError("Invalid scheduling window: work_end must be after work_start.")
    return scheduling


def parse_config(data: dict[str, Any]) -> TempoConfig:
    """Build a TempoConfig from an already-parsed TOML mapping."""
    data = resolve_env_vars(data)

    # --- [tempo] section ---
    tempo_section = data.get("tempo", {})
    if not isinstance(tempo_section, dict):
        raise ConfigError("[tempo] must be a table")
    name = str(tempo_section.get("name", "tempo")).strip()
    if not name:
        raise ConfigError("tempo.name must be a non-empty string")

    # --- [tempo.logging] sub-section ---
    logging_section = tempo_section.get("logging", {})
    log_level = str(logging_section.get("level", "INFO")).upper()
    log_format = str(logging_section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid tempo.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    logging_config = LoggingConfig(
        level=log_level,
        format=log_format,
        log_root=logging_section.get("log_root"),
    )

    # --- [proposals] section ---
    proposals_section = data.get("proposals", {})
    proposals = ProposalConfig(
        ttl_minutes=_positive_int(
            proposals_section, "ttl_minutes", ProposalConfig.ttl_minutes, "proposals"
        ),
    )

    # --- [retry] section ---
    retry = _parse_retry(data.get("retry", {}))

    # --- [offline_queue] section ---
    queue_section = data.get("offline_queue", {})
    queue_defaults = OfflineQueueConfig()
    state_key = str(queue_section.get("state_key", queue_defaults.state_key)).strip()
    if not state_key:
        raise ConfigError("offline_queue.state_key must be a non-empty string")
    offline_queue = OfflineQueueConfig(
        capacity=_positive_int(queue_section, "capacity", queue_defaults.capacity, "offline_queue"),
        max_replay_retries=_positive_int(
            queue_section,
            "max_replay_retries",
            queue_defaults.max_replay_retries,
            "offline_queue",
        ),
        persist=bool(queue_section.get("persist", queue_defaults.persist)),
        state_key=state_key,
    )

    # --- [scheduling] section ---
    scheduling = _parse_scheduling(data.get("scheduling", {}))

    return TempoConfig(
        name=name,
        logging=logging_config,
        proposals=proposals,
        retry=retry,
        offline_queue=offline_queue,
        scheduling=scheduling,
    )


def load_config(config_dir: Path) -> TempoConfig:
    """Load and validate a tempo.toml from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = Path(config_dir) / CONFIG_FILE_NAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    raw_bytes = toml_path.read_bytes()
    try:
        data = tomllib.loads(raw_bytes.decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
