"""
Serverless entry point: triggered by a scheduler event, payload is ignored.
"""
import json
from typing import Union

from qr_cleanup.core.logging import setup_logging
from qr_cleanup.modules.sessions.cleanup import CleanupFailure, CleanupResult, run

FAILURE_MESSAGE = "Failed to cleanup expired sessions"


def build_response(outcome: Union[CleanupResult, CleanupFailure]) -> dict:
    # Детали ошибки остаются в логах, наружу уходит только общий текст
    if isinstance(outcome, CleanupResult):
        return {
            "statusCode": 200,
            "body": json.dumps({"message": outcome.message}),
        }
    return {
        "statusCode": 500,
        "body": json.dumps({"error": FAILURE_MESSAGE}),
    }


def handler(event=None, context=None):
    setup_logging()
    return build_response(run())
