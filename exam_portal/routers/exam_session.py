"""Exam-taking endpoints: eligibility, start and submit."""

import logging
import random
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import ensure_self_or_staff, require_login
from exam_portal.models import ExamSubmission, User
from exam_portal.schemas import (
    EligibleExamOut,
    GradedAnswerOut,
    QuestionOut,
    StartExamIn,
    StartExamOut,
    SubmissionOut,
    SubmitExamIn,
    SubmitExamOut,
)
from exam_portal.services.attempts import start_exam
from exam_portal.services.catalog import list_exam_questions
from exam_portal.services.eligibility import check_exam_eligibility, list_eligible_exams
from exam_portal.services.notifications import build_repeated_failure_alert, deliver_alert
from exam_portal.services.submission import submit_exam

logger = logging.getLogger(__name__)

router = APIRouter()


def submission_summary(submission: ExamSubmission, reviews=None) -> SubmissionOut:
    return SubmissionOut(
        submission_id=submission.id,
        user_id=submission.user_id,
        exam_id=submission.exam_id,
        attempt_number=submission.attempt_number,
        status=submission.status,
        obtained_mark=submission.obtained_mark,
        passed=submission.passed,
        time_taken=submission.time_taken,
        created_at=submission.created_at,
        completed_at=submission.completed_at,
        answers=[GradedAnswerOut(**a) for a in submission.answers or []],
        reviews=[
            {
                "id": r.id,
                "evaluator_id": r.evaluator_id,
                "message": r.message,
                "created_at": r.created_at,
                "updated_at": r.updated_at,
            }
            for r in reviews or []
        ],
    )


@router.post("/start", response_model=StartExamOut)
def api_start_exam(
    payload: StartExamIn,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Start (or resume) the caller's attempt at an exam they are eligible for."""
    ensure_self_or_staff(current_user, payload.user_id)
    resolved = check_exam_eligibility(session, payload.user_id, payload.exam_code)
    exam = resolved.exam

    started = start_exam(session, payload.user_id, exam, len(resolved.questions))
    submission = started.submission

    questions = list(resolved.questions)
    if exam.shuffle_questions:
        random.shuffle(questions)

    return StartExamOut(
        submission_id=submission.id,
        exam_id=exam.id,
        attempt_number=submission.attempt_number,
        start_time=submission.created_at,
        server_duration_seconds=started.duration_seconds,
        level=exam.level,
        subject_name=resolved.subject_name,
        subtopic_name=resolved.subtopic_name,
        questions=[
            QuestionOut(
                question_id=q.id,
                question_type=q.question_type,
                question_text=q.question_text,
                options=q.options,
                image=q.image,
            )
            for q in questions
        ],
    )


@router.post("/submit", response_model=SubmitExamOut)
def api_submit_exam(
    payload: SubmitExamIn,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Grade and finalize the caller's active attempt."""
    ensure_self_or_staff(current_user, payload.user_id)
    answers = [
        {"question_id": a.question_id, "student_answer": a.student_answer}
        for a in payload.answers
    ]
    outcome = submit_exam(session, payload.user_id, payload.exam_id, answers)

    if outcome.notify_evaluators:
        try:
            alert = build_repeated_failure_alert(session, outcome.submission, outcome.exam)
        except Exception:
            logger.exception("Could not build evaluator alert for submission %s", outcome.submission.id)
            alert = None
        if alert:
            logger.info(
                "Queued evaluator alert for user %s after attempt %s",
                payload.user_id, outcome.submission.attempt_number,
            )
            background_tasks.add_task(deliver_alert, alert)

    return SubmitExamOut(
        total_marks=outcome.summary.total_marks,
        pass_mark=outcome.summary.pass_mark,
        submission=submission_summary(outcome.submission),
    )


@router.get("/eligible/{user_id}", response_model=List[EligibleExamOut])
def api_eligible_exams(
    user_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_login),
):
    """Active exams the user may start next, one level per subtopic."""
    ensure_self_or_staff(current_user, user_id)
    return [
        EligibleExamOut(
            exam_id=r.exam.id,
            exam_code=r.exam.exam_code,
            subject_id=r.exam.subject_id,
            subject_name=r.subject_name,
            subtopic_id=r.exam.subtopic_id,
            subtopic_name=r.subtopic_name,
            level=r.exam.level,
            pass_percentage=r.exam.pass_percentage,
            question_count=len(list_exam_questions(session, r.exam.id)),
        )
        for r in list_eligible_exams(session, user_id)
    ]
