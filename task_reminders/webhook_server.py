#!/usr/bin/env python3
"""
Flask webhook server for the reminder job.

- ``/voice/reminder`` returns the TwiML that Twilio plays when a reminder call
  is answered (point ``callback_url`` in config.json here).
- ``/reminders/run`` triggers an on-demand run through the same single-flight
  guard the daily trigger uses.
- ``/health`` is a liveness probe.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from flask import Flask, Response, jsonify

from .core.config import load_config
from .reminder_service import ReminderDispatcher
from .scheduler import SingleFlightRunner
from .telephony import build_reminder_twiml

LOGGER = logging.getLogger(__name__)


def create_app(
    runner: Optional[SingleFlightRunner] = None,
    voice_settings: Optional[Dict[str, Any]] = None,
) -> Flask:
    if runner is None:
        config = load_config()
        runner = SingleFlightRunner(ReminderDispatcher.from_config(config), policy=config.overlap_policy)
        voice_settings = config.voice_settings if voice_settings is None else voice_settings

    app = Flask(__name__)
    app.config["REMINDER_RUNNER"] = runner
    settings = voice_settings or {}

    @app.route("/voice/reminder", methods=["GET", "POST"])
    def voice_reminder():
        """TwiML for an answered reminder call."""
        return Response(build_reminder_twiml(settings), mimetype="text/xml")

    @app.route("/reminders/run", methods=["POST"])
    def run_reminders():
        LOGGER.info("On-demand reminder run requested")
        try:
            summary = runner.trigger()
        except Exception as exc:
            LOGGER.exception("On-demand reminder run crashed")
            return jsonify({"status": "error", "error": str(exc)}), 500
        if summary is None:
            return jsonify({"status": "skipped", "reason": "run already in progress"}), 409
        return jsonify({"status": "completed", "summary": summary.as_dict()}), 200

    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({
            "status": "ok",
            "run_active": runner.active,
            "timestamp": datetime.now(pytz.UTC).isoformat(),
        })

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    port = int(os.getenv("WEBHOOK_PORT", "5000"))
    host = os.getenv("WEBHOOK_HOST", "127.0.0.1")
    create_app().run(host=host, port=port, debug=False, threaded=True)
