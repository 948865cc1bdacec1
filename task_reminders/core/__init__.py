from __future__ import annotations

from .models import (
    CallResult,
    NotificationAttempt,
    ReminderConfig,
    RunSummary,
    ScheduleConfig,
    Secrets,
    SubTask,
    SubTaskStatus,
    Task,
    TaskStatus,
    User,
)
from .errors import (
    ConfigurationError,
    GatewayFailure,
    MissingContact,
    ReminderError,
    StoreUnavailable,
    UserNotFound,
)
from .config import load_config
from .secrets import load_secrets
from .urgency import classify
from .selector import OverdueTaskSelector

__all__ = [
    "CallResult",
    "ConfigurationError",
    "GatewayFailure",
    "MissingContact",
    "NotificationAttempt",
    "OverdueTaskSelector",
    "ReminderConfig",
    "ReminderError",
    "RunSummary",
    "ScheduleConfig",
    "Secrets",
    "StoreUnavailable",
    "SubTask",
    "SubTaskStatus",
    "Task",
    "TaskStatus",
    "User",
    "UserNotFound",
    "classify",
    "load_config",
    "load_secrets",
]
