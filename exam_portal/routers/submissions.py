"""Submission history and evaluator review threads."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as http_status
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import ensure_self_or_staff, require_login, require_role
from exam_portal.models import User
from exam_portal.routers.exam_session import submission_summary
from exam_portal.schemas import ReviewIn, SubmissionOut
from exam_portal.services.results import get_submission, list_completed_submissions
from exam_portal.services.reviews import add_review, delete_review, list_reviews, update_review

router = APIRouter()

STAFF_ROLES = ["evaluator", "admin"]


def _detail(session: Session, submission_id: int) -> SubmissionOut:
    submission = get_submission(session, submission_id)
    return submission_summary(submission, list_reviews(session, submission_id))


@router.get("/passed", response_model=List[SubmissionOut])
def api_all_passed(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(STAFF_ROLES)),
):
    return [submission_summary(s) for s in list_completed_submissions(session, passed=True)]


@router.get("/passed/{user_id}", response_model=List[SubmissionOut])
def api_passed_for_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    ensure_self_or_staff(current_user, user_id)
    return [
        submission_summary(s)
        for s in list_completed_submissions(session, passed=True, user_id=user_id)
    ]


@router.get("/previous-attempts", response_model=List[SubmissionOut])
def api_all_failed(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(STAFF_ROLES)),
):
    return [submission_summary(s) for s in list_completed_submissions(session, passed=False)]


@router.get("/previous-attempts/{user_id}", response_model=List[SubmissionOut])
def api_failed_for_user(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    ensure_self_or_staff(current_user, user_id)
    return [
        submission_summary(s)
        for s in list_completed_submissions(session, passed=False, user_id=user_id)
    ]


@router.get("/{submission_id}", response_model=SubmissionOut)
def api_get_submission(
    submission_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """A single submission with graded answers and its review thread."""
    submission = get_submission(session, submission_id)
    ensure_self_or_staff(current_user, submission.user_id)
    return _detail(session, submission_id)


@router.post(
    "/{submission_id}/reviews",
    response_model=SubmissionOut,
    status_code=http_status.HTTP_201_CREATED,
)
def api_add_review(
    submission_id: int,
    payload: ReviewIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(STAFF_ROLES)),
):
    try:
        add_review(session, submission_id, current_user.id, payload.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _detail(session, submission_id)


@router.put("/{submission_id}/reviews/{review_id}", response_model=SubmissionOut)
def api_update_review(
    submission_id: int,
    review_id: int,
    payload: ReviewIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(STAFF_ROLES)),
):
    try:
        update_review(session, submission_id, review_id, payload.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _detail(session, submission_id)


@router.delete("/{submission_id}/reviews/{review_id}", response_model=SubmissionOut)
def api_delete_review(
    submission_id: int,
    review_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_role(STAFF_ROLES)),
):
    delete_review(session, submission_id, review_id)
    return _detail(session, submission_id)
