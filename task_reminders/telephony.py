from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from twilio.rest import Client
from twilio.twiml.voice_response import VoiceResponse

from .core.models import CallResult, Secrets

LOGGER = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Hello! This is a reminder that you have overdue tasks in your task tracker."
DEFAULT_LANGUAGE = "en-US"


def build_reminder_twiml(voice_settings: Optional[Dict[str, Any]] = None) -> str:
    """TwiML played to the callee: the reminder message followed by a goodbye."""
    settings = voice_settings or {}
    say_kwargs: Dict[str, Any] = {"language": settings.get("language", DEFAULT_LANGUAGE)}
    if settings.get("voice"):
        say_kwargs["voice"] = settings["voice"]

    response = VoiceResponse()
    response.say(settings.get("message") or DEFAULT_MESSAGE, **say_kwargs)
    response.say("Goodbye.", **say_kwargs)
    return str(response)


class TwilioService:
    """Outbound voice calls through Twilio. Best effort: no retries, failures come back as CallResult."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_phone: str,
        voice_settings: Optional[Dict[str, Any]] = None,
    ):
        self.client = Client(account_sid, auth_token)
        self.from_phone = from_phone
        self.voice_settings = voice_settings or {}

    @classmethod
    def from_secrets(cls, secrets: Secrets, voice_settings: Optional[Dict[str, Any]] = None) -> "TwilioService":
        return cls(secrets.twilio_sid, secrets.twilio_token, secrets.twilio_phone, voice_settings)

    def place_call(self, to_phone: str, callback_url: Optional[str] = None) -> CallResult:
        """
        Start a reminder call to ``to_phone``.

        With ``callback_url`` Twilio fetches the TwiML from that URL (GET);
        otherwise the reminder message is sent inline.
        """
        params: Dict[str, Any] = {"to": to_phone, "from_": self.from_phone}
        if callback_url:
            params["url"] = callback_url
            params["method"] = "GET"
        else:
            params["twiml"] = build_reminder_twiml(self.voice_settings)

        try:
            call = self.client.calls.create(**params)
        except Exception as exc:
            return CallResult(success=False, status="error", error=str(exc))

        LOGGER.debug("Twilio call %s created with status %s", call.sid, call.status)
        return CallResult(success=True, status=str(call.status), call_sid=call.sid)
