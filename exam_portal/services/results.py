"""Read-side queries over completed submissions."""

from typing import List, Optional

from sqlmodel import Session, select

from exam_portal.errors import SubmissionNotFound
from exam_portal.models import ExamSubmission, SubmissionStatus


def list_completed_submissions(
    session: Session, passed: bool, user_id: Optional[int] = None
) -> List[ExamSubmission]:
    """Completed submissions with the given verdict, newest first."""
    stmt = select(ExamSubmission).where(
        (ExamSubmission.status == SubmissionStatus.COMPLETED.value)
        & (ExamSubmission.passed == passed)
    )
    if user_id is not None:
        stmt = stmt.where(ExamSubmission.user_id == user_id)
    stmt = stmt.order_by(ExamSubmission.completed_at.desc(), ExamSubmission.id.desc())
    return list(session.exec(stmt).all())


def get_submission(session: Session, submission_id: int) -> ExamSubmission:
    submission = session.get(ExamSubmission, submission_id)
    if not submission:
        raise SubmissionNotFound()
    return submission
