"""Structured errors raised by the progress and assessment services.

Every error carries a stable machine-readable ``code`` plus a
human-readable message.  The four families map to HTTP statuses in one
place (coursetrack.main's exception handler); services never import
FastAPI.
"""

from __future__ import annotations


class CourseTrackError(Exception):
    code = "course_track_error"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message}


# --- validation (422) -------------------------------------------------------


class ValidationFailure(CourseTrackError):
    status_code = 422


class AnswerValidationError(ValidationFailure):
    code = "answer_validation"


class AttemptValidationError(ValidationFailure):
    code = "attempt_validation"


class LessonProgressValidationError(ValidationFailure):
    code = "lesson_progress_validation"


# --- state conflicts (409) --------------------------------------------------


class StateConflict(CourseTrackError):
    status_code = 409


class AttemptAlreadyInProgressError(StateConflict):
    code = "attempt_already_in_progress"


class AttemptNotActiveError(StateConflict):
    code = "attempt_not_active"


class RetakeNotAllowedError(StateConflict):
    code = "retake_not_allowed"


class AttemptLimitExceededError(StateConflict):
    code = "attempt_limit_exceeded"


class AttemptExpiredError(StateConflict):
    code = "attempt_expired"


class AttemptNotCompletedError(StateConflict):
    code = "attempt_not_completed"


class QuizRequiredError(StateConflict):
    code = "quiz_required"


class CertificateNotEligibleError(StateConflict):
    code = "certificate_not_eligible"

    def __init__(self, message: str, reasons: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.reasons = reasons

    def to_dict(self) -> dict[str, object]:
        body = super().to_dict()
        body["reasons"] = list(self.reasons)
        return body


class CertificateAlreadyRequestedError(StateConflict):
    code = "certificate_already_requested"


# --- availability (403) -----------------------------------------------------


class AvailabilityError(CourseTrackError):
    status_code = 403


class AssessmentUnavailableError(AvailabilityError):
    code = "assessment_unavailable"


# --- not found (404) --------------------------------------------------------


class NotFound(CourseTrackError):
    status_code = 404


class AssessmentNotFoundError(NotFound):
    code = "assessment_not_found"


class AttemptNotFoundError(NotFound):
    code = "attempt_not_found"


class EnrollmentNotFoundError(NotFound):
    code = "enrollment_not_found"


class LessonNotFoundError(NotFound):
    code = "lesson_not_found"


class CourseNotFoundError(NotFound):
    code = "course_not_found"
