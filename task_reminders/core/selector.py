from __future__ import annotations

import logging
from datetime import datetime
from typing import List

from .errors import StoreUnavailable
from .models import Task, TaskStatus

LOGGER = logging.getLogger(__name__)

OVERDUE_SORT = [("urgency", True), ("due_date", True)]


class OverdueTaskSelector:
    """Pulls actionable overdue tasks from the task store, most urgent first."""

    def __init__(self, task_store):
        self.task_store = task_store

    def select_overdue(self, now: datetime) -> List[Task]:
        """
        Return PENDING, non-deleted tasks due strictly before ``now``.

        Ordered by urgency ascending, ties broken by the earliest due date.
        Raises StoreUnavailable when the store query cannot complete.
        """
        query = {
            "status": TaskStatus.PENDING,
            "due_date": {"$lt": now},
            "deleted_at": None,
        }
        try:
            tasks = self.task_store.find(query, OVERDUE_SORT)
        except StoreUnavailable:
            raise
        except Exception as exc:
            raise StoreUnavailable(f"Overdue task query failed: {exc}") from exc

        LOGGER.debug("Overdue tasks selected: %s", len(tasks))
        return list(tasks)
