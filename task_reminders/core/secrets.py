from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Sequence

from .errors import ConfigurationError
from .models import Secrets

SECRETS_ENV_VAR = "SECRETS_PATH"
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_SECRETS_PATH = PROJECT_ROOT / "secrets.json"

ENV_SECRET_KEYS = {
    "twilio_sid": "TWILIO_ACCOUNT_SID",
    "twilio_token": "TWILIO_AUTH_TOKEN",
    "twilio_phone": "TWILIO_PHONE_NUMBER",
}

SECRET_FILE_PATHS = {
    "twilio_sid": (("twilio", "account_sid"), ("twilio", "secrets", "account_sid")),
    "twilio_token": (("twilio", "auth_token"), ("twilio", "secrets", "auth_token")),
    "twilio_phone": (("twilio", "phone_number"), ("twilio", "secrets", "phone_number")),
}


def load_secrets(path: Path | str | None = None) -> Secrets:
    """
    Load Twilio credentials from environment variables or a json secrets file.

    Environment variables take precedence. If any are missing we fall back to
    the secrets json file whose path can be overridden via SECRETS_PATH.
    """
    env_values = _collect_env_values()
    if all(env_values.values()):
        return Secrets(**env_values)  # type: ignore[arg-type]

    secrets_path = _resolve_secrets_path(path)
    if not secrets_path.exists():
        missing = [ENV_SECRET_KEYS[field] for field, value in env_values.items() if not value]
        raise ConfigurationError(
            f"Secrets file not found at {secrets_path} and missing environment variables: {', '.join(missing)}"
        )

    try:
        with open(secrets_path, "r", encoding="utf-8") as fh:
            payload: Dict[str, Any] = json.load(fh)
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Failed to read secrets file {secrets_path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"Secrets file {secrets_path} must hold a JSON object")

    for key, paths in SECRET_FILE_PATHS.items():
        if not env_values.get(key):
            env_values[key] = _extract(payload, paths)

    missing_fields = [field for field, value in env_values.items() if not value]
    if missing_fields:
        raise ConfigurationError(f"Missing secret values in file {secrets_path}: {', '.join(missing_fields)}")

    return Secrets(**env_values)  # type: ignore[arg-type]


def _collect_env_values() -> Dict[str, str | None]:
    return {field: os.getenv(env_key) for field, env_key in ENV_SECRET_KEYS.items()}


def _extract(payload: Mapping[str, Any], paths: Iterable[Sequence[str]]) -> str | None:
    for path in paths:
        node: Any = payload
        for key in path:
            if isinstance(node, Mapping) and key in node:
                node = node[key]
            else:
                node = None
                break
        if node is None:
            continue
        if isinstance(node, Mapping) and "value" in node:
            candidate = node["value"]
        else:
            candidate = node
        if isinstance(candidate, str):
            return candidate
    return None


def _resolve_secrets_path(path: Path | str | None) -> Path:
    if path:
        return Path(path).expanduser()

    env_override = os.getenv(SECRETS_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser()

    return DEFAULT_SECRETS_PATH
