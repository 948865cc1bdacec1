from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class SubTaskStatus(int, Enum):
    OPEN = 0
    CLOSED = 1


@dataclass
class ScheduleConfig:
    """Daily trigger time ("HH:MM") in a named timezone."""

    time: str = "00:00"
    timezone: str = "UTC"


@dataclass
class ReminderConfig:
    """Runtime configuration loaded from json."""

    timezone: str = "UTC"
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    store_path: Optional[str] = None
    callback_url: Optional[str] = None
    voice_settings: Dict[str, Any] = field(default_factory=dict)
    renotify_after_hours: float = 20.0
    run_timeout_seconds: Optional[float] = None
    overlap_policy: str = "skip"


@dataclass
class Secrets:
    """Holds Twilio credentials required by the telephony gateway."""

    twilio_sid: str
    twilio_token: str
    twilio_phone: str


@dataclass
class User:
    """Task owner. A missing phone number means the user is not notifiable."""

    user_id: str
    phone_number: Optional[str] = None
    priority: int = 0


@dataclass
class Task:
    """Stored task; ``urgency`` is computed when the due date is written."""

    task_id: str
    user_id: str
    title: str
    description: str
    due_date: datetime
    urgency: int
    status: TaskStatus = TaskStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    last_notified_at: Optional[datetime] = None


@dataclass
class SubTask:
    subtask_id: str
    task_id: str
    status: SubTaskStatus = SubTaskStatus.OPEN
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass
class CallResult:
    """Twilio voice call outcome."""

    success: bool
    status: str
    call_sid: Optional[str] = None
    error: Optional[str] = None


@dataclass
class NotificationAttempt:
    """Outcome of a single dispatch. Only logged, never persisted."""

    task_id: str
    success: bool
    timestamp: datetime
    phone: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Counters reported back by one reminder run."""

    started_at: datetime
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    not_attempted: int = 0
    aborted: bool = False
    cancelled: bool = False
    timed_out: bool = False
    attempts: List[NotificationAttempt] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "not_attempted": self.not_attempted,
            "aborted": self.aborted,
            "cancelled": self.cancelled,
            "timed_out": self.timed_out,
        }
