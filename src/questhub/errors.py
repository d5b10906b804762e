"""Domain error taxonomy.

Every predictable failure of a core operation is a QuestError subclass with a
machine-readable ``kind``. The operation boundary (questhub.actions) turns
them into structured results; nothing below it should let a raw store
exception escape.
"""

from __future__ import annotations


class QuestError(Exception):
    """Base class for all domain errors."""

    kind: str = "error"
    status_code: int = 400
    default_message: str = "Operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# --- not_found ---


class NotFound(QuestError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class TaskNotFound(NotFound):
    default_message = "Task not found"


class StepNotFound(NotFound):
    default_message = "Step not found"


class SubmissionNotFound(NotFound):
    default_message = "Submission not found"


class UserNotFound(NotFound):
    default_message = "User not found"


class InviteNotFound(NotFound):
    default_message = "Invite code not found"


class CompanyNotFound(NotFound):
    default_message = "Company not found"


class NotificationNotFound(NotFound):
    default_message = "Notification not found"


# --- conflict ---


class Conflict(QuestError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflicting update"


class AlreadyJoined(Conflict):
    default_message = "You have already joined this task."


class AlreadyPending(Conflict):
    default_message = "This step is already waiting for review."


class InviteAlreadyUsed(Conflict):
    default_message = "This invite code has already been used."


class AlreadyMember(Conflict):
    default_message = "User is already a member of this company."


# --- invalid_state ---


class InvalidState(QuestError):
    kind = "invalid_state"
    status_code = 409
    default_message = "Operation not allowed in the current state"


class AlreadyApproved(InvalidState):
    default_message = "This step has already been approved."


class NotEnrolled(InvalidState):
    default_message = "You have not joined this task."


# --- the rest ---


class PermissionDenied(QuestError):
    kind = "permission_denied"
    status_code = 403
    default_message = "You do not have permission to do this."


class TaskExpired(QuestError):
    kind = "expired"
    status_code = 410
    default_message = "The deadline for this task has passed."


class TaskInactive(QuestError):
    kind = "inactive"
    status_code = 409
    default_message = "This task is not active."


class ValidationFailed(QuestError):
    kind = "validation_error"
    status_code = 422
    default_message = "Invalid input"


class StorageError(QuestError):
    kind = "storage_error"
    status_code = 500
    default_message = "A storage error occurred. Please try again."


class ExternalServiceError(QuestError):
    kind = "external_service_error"
    status_code = 502
    default_message = "An external service is unavailable. Please try again."


class InternalError(QuestError):
    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"


ERROR_STATUS: dict[str, int] = {
    cls.kind: cls.status_code
    for cls in (
        NotFound,
        Conflict,
        InvalidState,
        PermissionDenied,
        TaskExpired,
        TaskInactive,
        ValidationFailed,
        StorageError,
        ExternalServiceError,
        InternalError,
    )
}
