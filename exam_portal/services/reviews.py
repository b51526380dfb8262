"""Evaluator review threads on completed submissions."""

from typing import List

from sqlmodel import Session, select

from exam_portal.errors import ReviewNotFound, SubmissionNotFound
from exam_portal.models import ExamSubmission, SubmissionReview, utcnow
from exam_portal.utils import validate_review_message


def _get_submission(session: Session, submission_id: int) -> ExamSubmission:
    submission = session.get(ExamSubmission, submission_id)
    if not submission:
        raise SubmissionNotFound()
    return submission


def _get_review(session: Session, submission_id: int, review_id: int) -> SubmissionReview:
    review = session.get(SubmissionReview, review_id)
    if not review or review.submission_id != submission_id:
        raise ReviewNotFound()
    return review


def list_reviews(session: Session, submission_id: int) -> List[SubmissionReview]:
    stmt = (
        select(SubmissionReview)
        .where(SubmissionReview.submission_id == submission_id)
        .order_by(SubmissionReview.created_at, SubmissionReview.id)
    )
    return list(session.exec(stmt).all())


def add_review(
    session: Session, submission_id: int, evaluator_id: int, message: str
) -> SubmissionReview:
    """Append a review to a submission.

    Raises:
        SubmissionNotFound: If the submission doesn't exist
        ValueError: If the message is empty after sanitization
    """
    _get_submission(session, submission_id)
    review = SubmissionReview(
        submission_id=submission_id,
        evaluator_id=evaluator_id,
        message=validate_review_message(message),
    )
    session.add(review)
    session.commit()
    session.refresh(review)
    return review


def update_review(
    session: Session, submission_id: int, review_id: int, message: str
) -> SubmissionReview:
    review = _get_review(session, submission_id, review_id)
    review.message = validate_review_message(message)
    review.updated_at = utcnow()
    session.add(review)
    session.commit()
    session.refresh(review)
    return review


def delete_review(session: Session, submission_id: int, review_id: int) -> None:
    review = _get_review(session, submission_id, review_id)
    session.delete(review)
    session.commit()
