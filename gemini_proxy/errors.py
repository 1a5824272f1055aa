"""Failure types and the mapping from a caught failure to an HTTP outcome.

Classification precedence:

1. transport timeout                       -> 504
2. provider answered with an error status  -> that status
3. request sent but no response received   -> 503
4. anything else                           -> 500
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx


logger = logging.getLogger("gemini_proxy.errors")

API_KEY_INVALID_MARKER = "API key not valid"

GENERIC_RETRY_MESSAGE = "Something went wrong. Please try again."

_STATUS_MESSAGES = {
    401: "Authentication error. Please contact support.",
    403: "Authentication error. Please contact support.",
    429: "Too many requests. Please wait a moment and try again.",
    500: "AI service is temporarily unavailable. Please try again in a few minutes.",
    502: "AI service is temporarily unavailable. Please try again in a few minutes.",
    503: "AI service is temporarily unavailable. Please try again in a few minutes.",
}


@dataclass(frozen=True)
class ErrorOutcome:
    http_status: int
    error_tag: str
    user_message: str

    def to_body(self) -> dict:
        return {"error": self.error_tag, "message": self.user_message}


MISSING_PROMPT = ErrorOutcome(
    400, "Missing prompt", "Please provide a prompt for the AI to respond to."
)
INVALID_PROMPT = ErrorOutcome(
    400, "Invalid prompt", "The prompt must be a non-empty text string."
)
INVALID_PARAMETERS = ErrorOutcome(
    400,
    "Invalid parameters",
    "temperature must be a number between 0 and 1.",
)
REQUEST_TIMEOUT = ErrorOutcome(
    504, "Request timeout", "The AI is taking too long to respond. Please try again."
)
SERVICE_UNAVAILABLE = ErrorOutcome(
    503,
    "Service Unavailable",
    "Unable to reach the AI service. Please try again in a few moments.",
)
INTERNAL_ERROR = ErrorOutcome(500, "Internal Server Error", GENERIC_RETRY_MESSAGE)

PROVIDER_ERROR_TAG = "AI Response Error"


class GeminiProxyError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(GeminiProxyError):
    pass


class RequestValidationFailure(GeminiProxyError):
    """The inbound body was rejected before any provider call."""

    def __init__(self, outcome: ErrorOutcome, detail: str = ""):
        super().__init__(detail or outcome.user_message)
        self.outcome = outcome


class MalformedResponseError(GeminiProxyError):
    """The provider replied 2xx but the envelope has no generated text."""

    def __init__(self, message: str, envelope=None):
        super().__init__(message)
        self.envelope = envelope


def _provider_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return str(data["error"].get("message", ""))
    return response.text


def _message_for_status(status: int, response: httpx.Response) -> str:
    if status == 400:
        if API_KEY_INVALID_MARKER in _provider_error_message(response):
            return "API key configuration error. Please contact support."
        return "Invalid request format. Please check your input and try again."
    return _STATUS_MESSAGES.get(status, GENERIC_RETRY_MESSAGE)


def _log_failure(exc: Exception) -> None:
    status = None
    body = None
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        body = exc.response.text
    elif isinstance(exc, MalformedResponseError):
        body = exc.envelope
    logger.error(
        "Gemini API error (type=%s, message=%s, status=%s, response=%s, timestamp=%s)",
        exc.__class__.__name__,
        exc,
        status,
        body,
        datetime.now(timezone.utc).isoformat(),
    )


def classify_error(exc: Exception) -> ErrorOutcome:
    _log_failure(exc)

    # TimeoutException is a RequestError too, so it has to be checked first
    if isinstance(exc, httpx.TimeoutException):
        return REQUEST_TIMEOUT

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return ErrorOutcome(status, PROVIDER_ERROR_TAG, _message_for_status(status, exc.response))

    if isinstance(exc, httpx.RequestError):
        return SERVICE_UNAVAILABLE

    return INTERNAL_ERROR
