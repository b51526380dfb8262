"""Domain errors raised by the services and rendered by the API layer.

Each error carries an HTTP status code and a machine-readable ``reason`` so a
client can tell "restart the attempt" apart from "not unlocked yet" or
"out of time".
"""

from typing import Optional


class ExamPortalError(Exception):
    status_code = 500
    reason = "internal_error"
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ExamNotFound(ExamPortalError):
    status_code = 404
    reason = "exam_not_found"
    default_message = "Exam not found"


class IneligibleForExam(ExamPortalError):
    status_code = 403
    reason = "ineligible"
    default_message = "You are not eligible to attend this exam."


class NoActiveSession(ExamPortalError):
    status_code = 400
    reason = "no_active_session"
    default_message = "No active exam session. Start the exam again."


class TimeLimitExceeded(ExamPortalError):
    status_code = 400
    reason = "time_limit_exceeded"
    default_message = "Time limit exceeded. The attempt has been recorded as failed."

    def __init__(
        self,
        message: Optional[str] = None,
        submission_id: Optional[int] = None,
        elapsed_seconds: Optional[int] = None,
        allowed_seconds: Optional[int] = None,
    ):
        super().__init__(message)
        self.submission_id = submission_id
        self.elapsed_seconds = elapsed_seconds
        self.allowed_seconds = allowed_seconds


class SubmissionConflict(ExamPortalError):
    status_code = 409
    reason = "duplicate_submission"
    default_message = "A conflicting submission already exists."


class SubmissionNotFound(ExamPortalError):
    status_code = 404
    reason = "submission_not_found"
    default_message = "Exam submission not found"


class ReviewNotFound(ExamPortalError):
    status_code = 404
    reason = "review_not_found"
    default_message = "Review not found"


class InvalidScoringConfig(ExamPortalError):
    status_code = 400
    reason = "invalid_config"
    default_message = "Marks and durations must be non-negative."
