from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or the store is unreachable at startup."""


class ReminderError(Exception):
    """Base class for failures raised while running reminders."""


class StoreUnavailable(ReminderError):
    """The task/user store could not complete a query or update."""


class UserNotFound(ReminderError):
    """The owner referenced by a task does not exist."""


class MissingContact(ReminderError):
    """The owner exists but has no phone number to call."""


class GatewayFailure(ReminderError):
    """The telephony gateway did not accept the call."""

    def __init__(self, message: str, status: str = "error"):
        super().__init__(message)
        self.status = status
