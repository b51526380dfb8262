"""Finalizing an exam attempt: lock, time check, grading, persistence, progress."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from exam_portal.config import get_settings
from exam_portal.database import upsert_insert
from exam_portal.errors import ExamNotFound, NoActiveSession, SubmissionConflict, TimeLimitExceeded
from exam_portal.models import (
    Exam,
    ExamSubmission,
    Question,
    SubmissionStatus,
    UserProgress,
    as_utc,
    utcnow,
)
from exam_portal.services.catalog import (
    allowed_duration_seconds,
    get_duration_config,
    get_mark_config,
    list_exam_questions,
    marks_for_level,
)
from exam_portal.services.grading import GradedAnswer, grade_answer
from exam_portal.transactions import retry_transaction

logger = logging.getLogger(__name__)


@dataclass
class MarkSummary:
    obtained_mark: float
    total_marks: float
    pass_mark: float
    passed: bool


@dataclass
class SubmissionOutcome:
    submission: ExamSubmission
    exam: Exam
    summary: Optional[MarkSummary] = None
    timed_out: bool = False
    elapsed_seconds: int = 0
    allowed_seconds: int = 0
    notify_evaluators: bool = False
    graded: List[GradedAnswer] = field(default_factory=list)


def compute_result(
    raw_score: float, answer_count: int, positive_mark: float, pass_percentage: float
) -> MarkSummary:
    """Clamp a raw score into [0, total] and decide pass/fail.

    Obtained marks are rounded to 2 decimal places before comparing with the
    pass mark, so the stored mark and the stored verdict always agree. An exam
    worth nothing cannot be passed.
    """
    total_marks = answer_count * positive_mark
    pass_mark = pass_percentage / 100 * total_marks
    obtained = round(min(max(raw_score, 0.0), total_marks), 2)
    return MarkSummary(
        obtained_mark=obtained,
        total_marks=total_marks,
        pass_mark=pass_mark,
        passed=total_marks > 0 and obtained >= round(pass_mark, 2),
    )


def _lock_active_attempt(session: Session, user_id: int, exam_id: int) -> ExamSubmission:
    """Atomically move the started attempt to processing; this is the submit lock."""
    stmt = (
        update(ExamSubmission)
        .where(
            (ExamSubmission.user_id == user_id)
            & (ExamSubmission.exam_id == exam_id)
            & (ExamSubmission.status == SubmissionStatus.STARTED.value)
        )
        .values(status=SubmissionStatus.PROCESSING.value, updated_at=utcnow())
        .returning(ExamSubmission.id)
        .execution_options(synchronize_session=False)
    )
    locked_id = session.execute(stmt).scalar_one_or_none()
    if locked_id is None:
        raise NoActiveSession()
    return session.get(ExamSubmission, locked_id, populate_existing=True)


def _grade_answers(
    answers: List[Dict[str, Any]],
    questions: List[Question],
    positive_mark: float,
    negative_mark: float,
) -> List[GradedAnswer]:
    """Grade every exam question in order; questions left out of the payload are skipped."""
    question_ids = {q.id for q in questions}
    submitted: Dict[int, Any] = {}
    for answer in answers:
        question_id = answer.get("question_id")
        if question_id not in question_ids or question_id in submitted:
            logger.warning("Ignoring answer for unknown or repeated question %s", question_id)
            continue
        submitted[question_id] = answer.get("student_answer")

    return [
        grade_answer(q, submitted.get(q.id), positive_mark, negative_mark)
        for q in questions
    ]


def upsert_progress(session: Session, user_id: int, exam: Exam) -> None:
    """Record a passed level; an existing row for the same level is updated in place."""
    now = utcnow()
    stmt = (
        upsert_insert(session, UserProgress)
        .values(
            user_id=user_id,
            subject_id=exam.subject_id,
            subtopic_id=exam.subtopic_id,
            level=exam.level,
            passed=True,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=["user_id", "subject_id", "subtopic_id", "level"],
            set_={"passed": True, "updated_at": now},
        )
    )
    session.execute(stmt)


def _finalize(
    session: Session, user_id: int, exam_id: int, answers: List[Dict[str, Any]]
) -> SubmissionOutcome:
    settings = get_settings()
    submission = _lock_active_attempt(session, user_id, exam_id)

    exam = session.get(Exam, exam_id)
    if not exam:
        raise ExamNotFound()

    questions = list_exam_questions(session, exam.id)
    now = utcnow()
    elapsed = int((now - as_utc(submission.created_at)).total_seconds())
    allowed = allowed_duration_seconds(get_duration_config(session), exam.level, len(questions))

    if elapsed > allowed + settings.TIME_LIMIT_GRACE_SECONDS:
        submission.status = SubmissionStatus.COMPLETED.value
        submission.passed = False
        submission.obtained_mark = 0
        submission.time_taken = allowed
        submission.updated_at = now
        submission.completed_at = now
        session.add(submission)
        session.flush()
        return SubmissionOutcome(
            submission=submission,
            exam=exam,
            timed_out=True,
            elapsed_seconds=elapsed,
            allowed_seconds=allowed,
        )

    positive_mark, negative_mark = marks_for_level(get_mark_config(session), exam.level)
    graded = _grade_answers(answers, questions, positive_mark, negative_mark)
    summary = compute_result(
        sum(g.mark for g in graded), len(graded), positive_mark, exam.pass_percentage
    )

    submission.answers = [g.to_record() for g in graded]
    submission.time_taken = elapsed
    submission.obtained_mark = summary.obtained_mark
    submission.passed = summary.passed
    submission.status = SubmissionStatus.COMPLETED.value
    submission.updated_at = now
    submission.completed_at = now
    session.add(submission)

    if summary.passed:
        upsert_progress(session, user_id, exam)
    session.flush()

    return SubmissionOutcome(
        submission=submission,
        exam=exam,
        summary=summary,
        elapsed_seconds=elapsed,
        allowed_seconds=allowed,
        notify_evaluators=(
            not summary.passed
            and submission.attempt_number >= settings.EVALUATOR_ALERT_ATTEMPTS
        ),
        graded=graded,
    )


def submit_exam(
    session: Session, user_id: int, exam_id: int, answers: List[Dict[str, Any]]
) -> SubmissionOutcome:
    """Grade and complete the user's started attempt in one transaction.

    ``answers`` is a list of ``{"question_id", "student_answer"}`` dicts.

    Raises:
        NoActiveSession: no started attempt (never started, or already submitted)
        ExamNotFound: the exam disappeared; nothing is persisted
        TimeLimitExceeded: raised after the attempt was committed as a failure
        SubmissionConflict: a uniqueness constraint rejected the write
    """
    try:
        outcome = retry_transaction(
            session, lambda s: _finalize(s, user_id, exam_id, answers)
        )
    except IntegrityError as exc:
        logger.error("Submission for user=%s exam=%s conflicted: %s", user_id, exam_id, exc.orig)
        raise SubmissionConflict()

    session.refresh(outcome.submission)
    submission = outcome.submission

    if outcome.timed_out:
        logger.info(
            "User %s exceeded time on exam %s attempt %s (%ss > %ss)",
            user_id, exam_id, submission.attempt_number,
            outcome.elapsed_seconds, outcome.allowed_seconds,
        )
        raise TimeLimitExceeded(
            submission_id=submission.id,
            elapsed_seconds=outcome.elapsed_seconds,
            allowed_seconds=outcome.allowed_seconds,
        )

    logger.info(
        "User %s completed exam %s attempt %s: %s/%s (%s)",
        user_id, exam_id, submission.attempt_number,
        submission.obtained_mark, outcome.summary.total_marks,
        "pass" if submission.passed else "fail",
    )
    return outcome
