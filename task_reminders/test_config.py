import json

import pytest

from task_reminders.core import config as config_module
from task_reminders.core.config import load_config, parse_time_string
from task_reminders.core.errors import ConfigurationError
from task_reminders.core.secrets import load_secrets


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_defaults_when_no_config_file(monkeypatch, tmp_path):
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "config.json")

    config = load_config()

    assert config.timezone == "UTC"
    assert config.schedule.time == "00:00"
    assert config.schedule.timezone == "UTC"
    assert config.overlap_policy == "skip"
    assert config.renotify_after_hours == 20
    assert config.run_timeout_seconds is None


def test_config_file_values(tmp_path):
    path = _write(tmp_path / "config.json", {
        "timezone": "Europe/Lisbon",
        "schedule": {"time": "07:45"},
        "callback_url": "https://example.com/voice/reminder",
        "voice_settings": {"language": "pt-PT"},
        "renotify_after_hours": 0,
        "run_timeout_seconds": 600,
        "overlap_policy": "queue",
    })

    config = load_config(path)

    assert config.schedule.time == "07:45"
    assert config.schedule.timezone == "Europe/Lisbon"
    assert config.callback_url == "https://example.com/voice/reminder"
    assert config.voice_settings == {"language": "pt-PT"}
    assert config.renotify_after_hours == 0
    assert config.run_timeout_seconds == 600
    assert config.overlap_policy == "queue"


def test_config_path_from_environment(monkeypatch, tmp_path):
    path = _write(tmp_path / "custom.json", {"timezone": "Asia/Tokyo"})
    monkeypatch.setenv("CONFIG_PATH", str(path))

    assert load_config().timezone == "Asia/Tokyo"


@pytest.mark.parametrize(
    "payload",
    [
        {"timezone": "Mars/Olympus"},
        {"schedule": {"time": "25:00"}},
        {"schedule": {"time": "noon"}},
        {"overlap_policy": "parallel"},
        {"renotify_after_hours": "a day"},
        {"run_timeout_seconds": [600]},
        ["not", "an", "object"],
    ],
)
def test_invalid_config_is_rejected(tmp_path, payload):
    path = _write(tmp_path / "config.json", payload)

    with pytest.raises(ConfigurationError):
        load_config(path)


def test_malformed_config_json_is_a_configuration_error(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{\"timezone\": \"UTC\",", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Failed to read config file"):
        load_config(path)


def test_explicit_missing_config_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.json")


def test_parse_time_string():
    assert parse_time_string("00:00") == (0, 0)
    assert parse_time_string("23:59") == (23, 59)


def test_secrets_from_environment(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15559999999")

    secrets = load_secrets()

    assert (secrets.twilio_sid, secrets.twilio_token, secrets.twilio_phone) == ("AC123", "token", "+15559999999")


def test_secrets_from_nested_file(monkeypatch, tmp_path):
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TWILIO_PHONE_NUMBER", "+15550001111")
    path = _write(tmp_path / "secrets.json", {
        "twilio": {
            "secrets": {
                "account_sid": {"value": "AC999"},
                "auth_token": {"value": "secret"},
                "phone_number": {"value": "+15552222222"},
            }
        }
    })

    secrets = load_secrets(path)

    assert secrets.twilio_sid == "AC999"
    assert secrets.twilio_token == "secret"
    # environment wins over the file
    assert secrets.twilio_phone == "+15550001111"


def test_missing_secrets_raise_configuration_error(monkeypatch, tmp_path):
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
        monkeypatch.delenv(name, raising=False)
    path = _write(tmp_path / "secrets.json", {"twilio": {"account_sid": "AC1"}})

    with pytest.raises(ConfigurationError, match="twilio_token"):
        load_secrets(path)
    with pytest.raises(ConfigurationError, match="TWILIO_AUTH_TOKEN"):
        load_secrets(tmp_path / "absent.json")


def test_malformed_secrets_json_is_a_configuration_error(monkeypatch, tmp_path):
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "secrets.json"
    path.write_text("{twilio: }", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Failed to read secrets file"):
        load_secrets(path)
