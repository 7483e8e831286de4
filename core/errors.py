"""
Error taxonomy shared by repositories, services and routers.
The app installs one handler that renders any PortalError as
{"detail": ..., "code": ...} with the class's status code.
"""

from typing import Any, Dict, Optional

from fastapi import status


class PortalError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL"

    def __init__(self, detail: str, code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class ValidationFailed(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFound(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class QuizNotFound(NotFound):
    def __init__(self, quiz_id: str):
        super().__init__("Quiz not found")
        self.quiz_id = quiz_id


class Conflict(PortalError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class AttemptConflict(Conflict):
    """A second submission for the same (user, quiz) pair."""
    code = "ALREADY_ATTEMPTED"

    def __init__(self, attempt):
        super().__init__("You have already attempted this quiz.")
        self.attempt = attempt

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["attempt"] = self.attempt.model_dump(mode="json", by_alias=True)
        return body


class Unauthenticated(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHENTICATED"


class SessionInvalidated(Unauthenticated):
    code = "SESSION_INVALIDATED"

    def __init__(self):
        super().__init__("Session expired. Logged in from another device.")


class Forbidden(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
