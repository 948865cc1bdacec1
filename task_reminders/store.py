"""
Task, subtask and user storage.

The reminder job only needs ``TaskStore.find``/``update`` and
``UserStore.find_by_id``. The remaining operations cover the data layer that the
CRUD side of the tracker works against: users, tasks with soft deletion and
subtasks.

Urgency is written together with the due date (on create and whenever the due
date changes); it is never derived on read.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, fields, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import pytz

from .core.errors import StoreUnavailable
from .core.models import SubTask, SubTaskStatus, Task, TaskStatus, User
from .core.urgency import classify

LOGGER = logging.getLogger(__name__)

Query = Dict[str, Any]
Sort = Sequence[Tuple[str, bool]]

USER_PRIORITIES = (0, 1, 2)
TASK_FIELDS = {f.name for f in fields(Task)}
DATETIME_FIELDS = ("due_date", "created_at", "updated_at", "deleted_at", "last_notified_at")


class TaskStore(Protocol):
    def find(self, query: Query, sort: Optional[Sort] = None) -> List[Task]: ...

    def find_by_id(self, task_id: str) -> Optional[Task]: ...

    def update(self, task_id: str, changes: Dict[str, Any]) -> Optional[Task]: ...


class UserStore(Protocol):
    def find_by_id(self, user_id: str) -> Optional[User]: ...


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


def as_utc(moment: datetime) -> datetime:
    """Normalise to an aware UTC datetime; naive values are taken as UTC."""
    if moment.tzinfo is None:
        return pytz.UTC.localize(moment)
    return moment.astimezone(pytz.UTC)


def _normalise(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, TaskStatus):
        return value.value
    return value


def _matches(record: Any, query: Query) -> bool:
    for key, expected in query.items():
        actual = _normalise(getattr(record, key, None))
        if expected is None:
            if actual is not None:
                return False
            continue
        if isinstance(expected, dict):
            for op, raw in expected.items():
                operand = _normalise(raw)
                if actual is None:
                    return False
                if op == "$lt" and not actual < operand:
                    return False
                if op == "$lte" and not actual <= operand:
                    return False
                if op == "$gt" and not actual > operand:
                    return False
                if op == "$gte" and not actual >= operand:
                    return False
                if op == "$ne" and actual == operand:
                    return False
                if op == "$in" and actual not in {_normalise(item) for item in operand}:
                    return False
            continue
        if actual != _normalise(expected):
            return False
    return True


def _sorted(records: Iterable[Any], sort: Optional[Sort]) -> List[Any]:
    ordered = list(records)
    # Stable sorts applied from the least significant key.
    for key, ascending in reversed(list(sort or [])):
        ordered.sort(
            key=lambda item: (getattr(item, key, None) is None, _normalise(getattr(item, key, None))),
            reverse=not ascending,
        )
    return ordered


class InMemoryStore:
    """Process-local store implementing both TaskStore and UserStore."""

    def __init__(self, timezone: str = "UTC", clock: Optional[Callable[[], datetime]] = None):
        self.timezone = timezone
        self.clock = clock or utc_now
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._tasks: Dict[str, Task] = {}
        self._subtasks: Dict[str, SubTask] = {}

    # ------------------------------------------------------------------ #
    # persistence hooks
    # ------------------------------------------------------------------ #
    def _load(self) -> None:
        return

    def _save(self) -> None:
        return

    def ping(self) -> bool:
        with self._lock:
            self._load()
        return True

    def _now(self) -> datetime:
        return as_utc(self.clock())

    # ------------------------------------------------------------------ #
    # users
    # ------------------------------------------------------------------ #
    def create_user(self, phone_number: Optional[str], priority: int = 0) -> User:
        if priority not in USER_PRIORITIES:
            raise ValueError(f"User priority must be one of {USER_PRIORITIES}, got {priority}")
        with self._lock:
            self._load()
            user = User(user_id=uuid.uuid4().hex, phone_number=phone_number or None, priority=priority)
            self._users[user.user_id] = user
            self._save()
        LOGGER.info("User %s created", user.user_id)
        return replace(user)

    def find_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            self._load()
            user = self._users.get(user_id)
        return replace(user) if user else None

    @property
    def users(self) -> "UserLookup":
        return UserLookup(self)

    # ------------------------------------------------------------------ #
    # tasks
    # ------------------------------------------------------------------ #
    def create_task(self, user_id: str, title: str, description: str, due_date: datetime) -> Task:
        now = self._now()
        due = as_utc(due_date)
        task = Task(
            task_id=uuid.uuid4().hex,
            user_id=user_id,
            title=title,
            description=description,
            due_date=due,
            urgency=classify(due, now, self.timezone),
            status=TaskStatus.PENDING,
            created_at=now,
        )
        with self._lock:
            self._load()
            self._tasks[task.task_id] = task
            self._save()
        LOGGER.info("Task %s created (urgency=%s)", task.task_id, task.urgency)
        return replace(task)

    def list_tasks(self, include_deleted: bool = False) -> List[Task]:
        query: Query = {} if include_deleted else {"deleted_at": None}
        return self.find(query, [("created_at", True)])

    def find(self, query: Query, sort: Optional[Sort] = None) -> List[Task]:
        with self._lock:
            self._load()
            matched = [task for task in self._tasks.values() if _matches(task, query)]
        return [replace(task) for task in _sorted(matched, sort)]

    def find_by_id(self, task_id: str) -> Optional[Task]:
        with self._lock:
            self._load()
            task = self._tasks.get(task_id)
        return replace(task) if task else None

    def update(self, task_id: str, changes: Dict[str, Any]) -> Optional[Task]:
        unknown = set(changes) - TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        with self._lock:
            self._load()
            task = self._tasks.get(task_id)
            if task is None:
                return None

            now = self._now()
            values = {key: _coerce_task_value(key, value) for key, value in changes.items()}
            if "due_date" in values:
                values["urgency"] = classify(values["due_date"], now, self.timezone)
            values["updated_at"] = now

            updated = replace(task, **values)
            self._tasks[task_id] = updated
            self._save()
        return replace(updated)

    def update_task(
        self,
        task_id: str,
        due_date: Optional[datetime] = None,
        status: Optional[TaskStatus | str] = None,
    ) -> Optional[Task]:
        changes: Dict[str, Any] = {}
        if due_date is not None:
            changes["due_date"] = due_date
        if status is not None:
            changes["status"] = status
        return self.update(task_id, changes)

    def soft_delete_task(self, task_id: str) -> Optional[Task]:
        return self.update(task_id, {"deleted_at": self._now()})

    # ------------------------------------------------------------------ #
    # subtasks
    # ------------------------------------------------------------------ #
    def create_subtask(self, task_id: str) -> SubTask:
        with self._lock:
            self._load()
            if task_id not in self._tasks:
                raise KeyError(f"Task {task_id} not found")
            subtask = SubTask(subtask_id=uuid.uuid4().hex, task_id=task_id, created_at=self._now())
            self._subtasks[subtask.subtask_id] = subtask
            self._save()
        return replace(subtask)

    def list_subtasks(self, task_id: Optional[str] = None) -> List[SubTask]:
        query: Query = {"task_id": task_id} if task_id else {}
        with self._lock:
            self._load()
            matched = [item for item in self._subtasks.values() if _matches(item, query)]
        return [replace(item) for item in _sorted(matched, [("created_at", True)])]

    def update_subtask(self, subtask_id: str, status: SubTaskStatus | int) -> Optional[SubTask]:
        return self._touch_subtask(subtask_id, status=SubTaskStatus(int(status)))

    def soft_delete_subtask(self, subtask_id: str) -> Optional[SubTask]:
        return self._touch_subtask(subtask_id, deleted_at=self._now())

    def _touch_subtask(self, subtask_id: str, **values: Any) -> Optional[SubTask]:
        with self._lock:
            self._load()
            subtask = self._subtasks.get(subtask_id)
            if subtask is None:
                return None
            updated = replace(subtask, updated_at=self._now(), **values)
            self._subtasks[subtask_id] = updated
            self._save()
        return replace(updated)


class UserLookup:
    """Adapter exposing ``find_by_id`` for users of a combined store."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.store.find_user(user_id)


def _coerce_task_value(key: str, value: Any) -> Any:
    if key in DATETIME_FIELDS and value is not None:
        return as_utc(value)
    if key == "status" and value is not None:
        return TaskStatus(value)
    return value


class JsonFileStore(InMemoryStore):
    """
    Store backed by a single JSON document.

    The file is re-read before every operation and rewritten atomically after
    every mutation. Locking is per process only: readers in other processes
    always see a complete document, but concurrent writers from separate
    processes can lose each other's updates. Run a single writing process
    (the daemon or the webhook server) against one file.
    Any I/O or decoding problem surfaces as StoreUnavailable.
    """

    def __init__(self, path: Path | str, timezone: str = "UTC", clock: Optional[Callable[[], datetime]] = None):
        super().__init__(timezone=timezone, clock=clock)
        self.path = Path(path).expanduser()

    def _load(self) -> None:
        if not self.path.exists():
            self._users, self._tasks, self._subtasks = {}, {}, {}
            return
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                payload: Dict[str, Any] = json.load(fh)
            self._users = {key: User(**raw) for key, raw in payload.get("users", {}).items()}
            self._tasks = {key: _task_from_json(raw) for key, raw in payload.get("tasks", {}).items()}
            self._subtasks = {key: _subtask_from_json(raw) for key, raw in payload.get("subtasks", {}).items()}
        except (OSError, ValueError, TypeError, KeyError) as exc:
            raise StoreUnavailable(f"Failed to read store {self.path}: {exc}") from exc

    def _save(self) -> None:
        payload = {
            "users": {key: asdict(user) for key, user in self._users.items()},
            "tasks": {key: _to_json(asdict(task)) for key, task in self._tasks.items()},
            "subtasks": {key: _to_json(asdict(item)) for key, item in self._subtasks.items()},
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StoreUnavailable(f"Failed to write store {self.path}: {exc}") from exc


def _to_json(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = copy.copy(raw)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, (TaskStatus, SubTaskStatus)):
            data[key] = value.value
    return data


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return as_utc(datetime.fromisoformat(value))


def _task_from_json(raw: Dict[str, Any]) -> Task:
    data = dict(raw)
    for key in DATETIME_FIELDS:
        data[key] = _parse_dt(data.get(key))
    data["status"] = TaskStatus(data["status"])
    return Task(**data)


def _subtask_from_json(raw: Dict[str, Any]) -> SubTask:
    data = dict(raw)
    for key in ("created_at", "updated_at", "deleted_at"):
        data[key] = _parse_dt(data.get(key))
    data["status"] = SubTaskStatus(int(data.get("status", 0)))
    return SubTask(**data)
