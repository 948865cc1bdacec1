import logging

import pytest

from task_reminders import send_voice_reminders
from task_reminders.conftest import NOW
from task_reminders.core.errors import ConfigurationError
from task_reminders.core.models import ReminderConfig, RunSummary


class _DummyDispatcher:
    def __init__(self, summary=None):
        self.summary = summary or RunSummary(started_at=NOW, attempted=2, succeeded=2)
        self.task_store = object()
        self.captured_kwargs = {}

    def run_once(self, limit=None):
        self.captured_kwargs["limit"] = limit
        return self.summary


def _patch(monkeypatch, dispatcher=None, error=None):
    captured = {}

    class _Factory:
        @classmethod
        def from_config(cls, config, dry_run=False):
            if error:
                raise error
            captured["dry_run"] = dry_run
            return dispatcher

    monkeypatch.setattr(send_voice_reminders, "ReminderDispatcher", _Factory)
    monkeypatch.setattr(send_voice_reminders, "load_config", lambda path=None: ReminderConfig())
    monkeypatch.setattr(send_voice_reminders, "setup_logging", lambda verbose=False: None)
    return captured


def test_main_passes_cli_arguments(monkeypatch):
    dispatcher = _DummyDispatcher()
    captured = _patch(monkeypatch, dispatcher)

    exit_code = send_voice_reminders.main(["--dry-run", "--limit", "3"])

    assert exit_code == 0
    assert captured["dry_run"] is True
    assert dispatcher.captured_kwargs["limit"] == 3


def test_main_returns_configuration_error(monkeypatch):
    _patch(monkeypatch, error=ConfigurationError("missing Twilio credentials"))

    assert send_voice_reminders.main([]) == 2


def test_main_returns_one_when_run_aborted(monkeypatch):
    _patch(monkeypatch, _DummyDispatcher(RunSummary(started_at=NOW, aborted=True)))

    assert send_voice_reminders.main(["--once"]) == 1


def test_main_logs_summary(monkeypatch, caplog):
    _patch(monkeypatch, _DummyDispatcher())

    caplog.set_level(logging.INFO)
    exit_code = send_voice_reminders.main([])

    assert exit_code == 0
    assert "attempted=2 succeeded=2" in caplog.text


def test_setup_logging_writes_daily_file(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    root = logging.getLogger()
    before = list(root.handlers)

    send_voice_reminders.setup_logging()
    added = [handler for handler in root.handlers if handler not in before]
    try:
        assert any(isinstance(handler, logging.FileHandler) for handler in added)
        assert list(tmp_path.glob("reminders_*.log"))
    finally:
        for handler in added:
            root.removeHandler(handler)
            handler.close()


def test_limit_must_be_positive(monkeypatch, capsys):
    dispatcher = _DummyDispatcher()
    _patch(monkeypatch, dispatcher)

    with pytest.raises(SystemExit) as excinfo:
        send_voice_reminders.main(["--limit", "0"])

    assert excinfo.value.code == 2
    assert "positive integer" in capsys.readouterr().err
    assert dispatcher.captured_kwargs == {}


def test_main_exits_two_on_malformed_config(monkeypatch, tmp_path):
    path = tmp_path / "config.json"
    path.write_text("not json", encoding="utf-8")
    monkeypatch.setattr(send_voice_reminders, "setup_logging", lambda verbose=False: None)

    assert send_voice_reminders.main(["--config", str(path)]) == 2
