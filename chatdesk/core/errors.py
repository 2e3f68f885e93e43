"""
core/errors.py
--------------
Domain error taxonomy.

Services raise these; main.py maps each class to an HTTP status in a single
exception handler so routes never build error responses by hand.

  InvalidInputError    → 400  (non-PDF upload, malformed body, bad transition)
  AccessDeniedError    → 403  (tenant access resolver said no)
  NotFoundError        → 404  (only raised after access was granted)
  AlreadyRetriedError  → 409  (second retry of the same document)
  TransportFailure     → never surfaced; degraded into a fallback reply
  FormatFailure        → never surfaced; logged, best-effort text returned
"""

from fastapi import status


class ChatDeskError(Exception):
    """Base error for ChatDesk."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInputError(ChatDeskError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request"


class AccessDeniedError(ChatDeskError):
    status_code = status.HTTP_403_FORBIDDEN
    # Deliberately generic: never reveals whether the resource exists
    default_detail = "Forbidden: You don't have access to this tenant"


class NotFoundError(ChatDeskError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class AlreadyRetriedError(ChatDeskError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Document has already been retried"


class TransportFailure(ChatDeskError):
    """External workflow or processor could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Upstream service unavailable"


class FormatFailure(ChatDeskError):
    """Upstream answered, but the payload could not be interpreted."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream response could not be parsed"
