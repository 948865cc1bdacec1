"""
Voice reminders for overdue tasks.

One run pulls the overdue tasks (most urgent first), resolves each owner and
asks the telephony gateway to call them. Every task is handled on its own: a
missing owner, a missing phone number or a failed call is logged and the run
moves on to the next task. Only a failing overdue query aborts the run.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from .core.config import PROJECT_ROOT, load_config
from .core.errors import GatewayFailure, MissingContact, StoreUnavailable, UserNotFound
from .core.models import NotificationAttempt, ReminderConfig, RunSummary, Task
from .core.secrets import load_secrets
from .core.selector import OverdueTaskSelector
from .store import JsonFileStore, as_utc, utc_now
from .telephony import TwilioService

LOGGER = logging.getLogger(__name__)

DEFAULT_STORE_PATH = PROJECT_ROOT / "var" / "store.json"


class ReminderDispatcher:
    """Runs the scan-and-call cycle against injected store and gateway collaborators."""

    def __init__(
        self,
        task_store,
        user_store,
        gateway,
        config: Optional[ReminderConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        dry_run: bool = False,
    ):
        self.task_store = task_store
        self.user_store = user_store
        self.gateway = gateway
        self.config = config or ReminderConfig()
        self.clock = clock or utc_now
        self.dry_run = dry_run
        self.selector = OverdueTaskSelector(task_store)

    @classmethod
    def from_environment(cls, config_path: Path | str | None = None, dry_run: bool = False) -> "ReminderDispatcher":
        return cls.from_config(load_config(config_path), dry_run=dry_run)

    @classmethod
    def from_config(cls, config: ReminderConfig, dry_run: bool = False) -> "ReminderDispatcher":
        store = JsonFileStore(config.store_path or DEFAULT_STORE_PATH, timezone=config.timezone)
        gateway = TwilioService.from_secrets(load_secrets(), config.voice_settings)
        return cls(store, store.users, gateway, config=config, dry_run=dry_run)

    def run_once(
        self,
        now: Optional[datetime] = None,
        cancel_event: Optional[threading.Event] = None,
        limit: Optional[int] = None,
    ) -> RunSummary:
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit}")

        now = as_utc(now or self.clock())
        summary = RunSummary(started_at=now)
        LOGGER.info("Reminder run started at %s", now.isoformat())

        try:
            tasks = self.selector.select_overdue(now)
        except StoreUnavailable as exc:
            LOGGER.error("Reminder run aborted, overdue tasks unavailable: %s", exc)
            summary.aborted = True
            self._log_summary(summary)
            return summary

        if limit is not None:
            tasks = tasks[:limit]
        if not tasks:
            LOGGER.info("No overdue tasks to remind about.")

        deadline = None
        if self.config.run_timeout_seconds:
            deadline = time.monotonic() + self.config.run_timeout_seconds

        for index, task in enumerate(tasks):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                summary.not_attempted = len(tasks) - index
                LOGGER.warning("Reminder run cancelled, %s tasks left", summary.not_attempted)
                break
            if deadline is not None and time.monotonic() >= deadline:
                summary.timed_out = True
                summary.not_attempted = len(tasks) - index
                LOGGER.warning(
                    "Reminder run exceeded %.0fs, %s tasks left",
                    self.config.run_timeout_seconds,
                    summary.not_attempted,
                )
                break

            attempted_before = summary.attempted
            settled_before = summary.succeeded + summary.failed
            try:
                self._dispatch(task, now, summary)
            except Exception:
                LOGGER.exception("Unexpected error while reminding about task %s", task.task_id)
                if summary.attempted > attempted_before:
                    if summary.succeeded + summary.failed == settled_before:
                        summary.failed += 1
                else:
                    summary.skipped += 1

        self._log_summary(summary)
        return summary

    def _dispatch(self, task: Task, now: datetime, summary: RunSummary) -> None:
        if self._recently_notified(task, now):
            summary.skipped += 1
            LOGGER.info("Task %s already reminded at %s, skipping", task.task_id, task.last_notified_at)
            return

        try:
            phone = self._resolve_phone(task)
        except UserNotFound as exc:
            summary.skipped += 1
            LOGGER.warning("Skipping task %s: %s", task.task_id, exc)
            return
        except MissingContact as exc:
            summary.skipped += 1
            LOGGER.info("Skipping task %s: %s", task.task_id, exc)
            return

        if self.dry_run:
            summary.skipped += 1
            LOGGER.info("Dry-run: call to %s skipped (task %s, urgency %s)", phone, task.task_id, task.urgency)
            return

        summary.attempted += 1
        try:
            result = self._place_call(phone)
        except GatewayFailure as exc:
            summary.failed += 1
            attempt = NotificationAttempt(
                task_id=task.task_id,
                success=False,
                timestamp=as_utc(self.clock()),
                phone=phone,
                error=str(exc),
            )
            LOGGER.error(
                "Reminder call failed task_id=%s phone=%s status=%s error=%s",
                task.task_id,
                phone,
                exc.status,
                exc,
            )
        else:
            summary.succeeded += 1
            attempt = NotificationAttempt(
                task_id=task.task_id,
                success=True,
                timestamp=as_utc(self.clock()),
                phone=phone,
            )
            LOGGER.info(
                "Reminder call placed task_id=%s phone=%s call_sid=%s",
                task.task_id,
                phone,
                result.call_sid,
            )
            self._mark_notified(task, now)
        summary.attempts.append(attempt)

    def _recently_notified(self, task: Task, now: datetime) -> bool:
        window = self.config.renotify_after_hours
        if not window or task.last_notified_at is None:
            return False
        return now - as_utc(task.last_notified_at) < timedelta(hours=window)

    def _resolve_phone(self, task: Task) -> str:
        try:
            user = self.user_store.find_by_id(task.user_id)
        except Exception as exc:
            raise UserNotFound(f"owner {task.user_id} lookup failed: {exc}") from exc
        if user is None:
            raise UserNotFound(f"owner {task.user_id} not found")
        phone = str(user.phone_number or "").strip()
        if not phone:
            raise MissingContact(f"owner {task.user_id} has no phone number")
        return phone

    def _place_call(self, phone: str):
        try:
            result = self.gateway.place_call(phone, callback_url=self.config.callback_url)
        except Exception as exc:
            raise GatewayFailure(str(exc)) from exc
        if not getattr(result, "success", False):
            status = str(getattr(result, "status", None) or "invalid-result")
            raise GatewayFailure(getattr(result, "error", None) or status, status=status)
        return result

    def _mark_notified(self, task: Task, now: datetime) -> None:
        try:
            self.task_store.update(task.task_id, {"last_notified_at": now})
        except Exception as exc:
            LOGGER.warning("Failed to record reminder time for task %s: %s", task.task_id, exc)

    @staticmethod
    def _log_summary(summary: RunSummary) -> None:
        LOGGER.info(
            "Reminder run finished: attempted=%s succeeded=%s failed=%s skipped=%s not_attempted=%s aborted=%s",
            summary.attempted,
            summary.succeeded,
            summary.failed,
            summary.skipped,
            summary.not_attempted,
            summary.aborted,
        )
