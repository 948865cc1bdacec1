from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pytz

from .errors import ConfigurationError
from .models import ReminderConfig, ScheduleConfig

CONFIG_ENV_VAR = "CONFIG_PATH"
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.json"
OVERLAP_POLICIES = ("skip", "queue")


def load_config(path: Path | str | None = None) -> ReminderConfig:
    """
    Load reminder configuration from JSON.

    ENV override: CONFIG_PATH. A missing default file yields built-in defaults;
    an explicitly requested file that does not exist is an error.
    """
    config_path = _resolve_config_path(path)
    payload: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as fh:
                payload = json.load(fh)
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Failed to read config file {config_path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigurationError(f"Config file {config_path} must hold a JSON object")
    elif path or os.getenv(CONFIG_ENV_VAR):
        raise ConfigurationError(f"Config file not found: {config_path}")

    return build_config(payload)


def build_config(payload: Dict[str, Any]) -> ReminderConfig:
    timezone = _validate_timezone(payload.get("timezone") or "UTC")

    schedule_raw = payload.get("schedule") or {}
    schedule_time = str(schedule_raw.get("time") or "00:00")
    parse_time_string(schedule_time)
    schedule = ScheduleConfig(
        time=schedule_time,
        timezone=_validate_timezone(schedule_raw.get("timezone") or timezone),
    )

    overlap_policy = str(payload.get("overlap_policy") or "skip").lower()
    if overlap_policy not in OVERLAP_POLICIES:
        raise ConfigurationError(
            f"Unknown overlap_policy '{overlap_policy}', expected one of: {', '.join(OVERLAP_POLICIES)}"
        )

    renotify_after_hours = _parse_number("renotify_after_hours", payload.get("renotify_after_hours", 20))
    run_timeout = payload.get("run_timeout_seconds")
    run_timeout_seconds = _parse_number("run_timeout_seconds", run_timeout) if run_timeout else None

    return ReminderConfig(
        timezone=timezone,
        schedule=schedule,
        store_path=payload.get("store_path"),
        callback_url=payload.get("callback_url") or None,
        voice_settings=payload.get("voice_settings", {}),
        renotify_after_hours=renotify_after_hours,
        run_timeout_seconds=run_timeout_seconds,
        overlap_policy=overlap_policy,
    )


def parse_time_string(value: str) -> Tuple[int, int]:
    """Parse "HH:MM" into an (hour, minute) pair."""
    try:
        hour_raw, minute_raw = value.split(":")
        hour, minute = int(hour_raw), int(minute_raw)
    except (ValueError, AttributeError) as exc:
        raise ConfigurationError(f"Invalid schedule time '{value}', expected HH:MM") from exc
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ConfigurationError(f"Schedule time out of range: {value}")
    return hour, minute


def _parse_number(name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid {name} '{value}', expected a number") from exc


def _validate_timezone(name: str) -> str:
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError as exc:
        raise ConfigurationError(f"Unknown timezone: {name}") from exc
    return name


def _resolve_config_path(path: Optional[Path | str]) -> Path:
    if path:
        return Path(path).expanduser()
    env_override = os.getenv(CONFIG_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser()
    return DEFAULT_CONFIG_PATH
