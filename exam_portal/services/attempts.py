"""Attempt numbering and the single-active-attempt invariant."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from exam_portal.database import upsert_insert
from exam_portal.errors import SubmissionConflict
from exam_portal.models import AttemptCounter, Exam, ExamSubmission, SubmissionStatus, utcnow
from exam_portal.services.catalog import allowed_duration_seconds, get_duration_config
from exam_portal.transactions import retry_transaction

logger = logging.getLogger(__name__)


@dataclass
class StartedAttempt:
    submission: ExamSubmission
    duration_seconds: int
    created: bool


def find_active_attempt(session: Session, user_id: int, exam_id: int) -> Optional[ExamSubmission]:
    stmt = select(ExamSubmission).where(
        (ExamSubmission.user_id == user_id)
        & (ExamSubmission.exam_id == exam_id)
        & (ExamSubmission.status == SubmissionStatus.STARTED.value)
    )
    return session.exec(stmt).first()


def next_attempt_number(session: Session, user_id: int, exam_id: int) -> int:
    """Upsert-and-increment the (user, exam) counter in one statement."""
    now = utcnow()
    table = AttemptCounter.__table__
    stmt = (
        upsert_insert(session, AttemptCounter)
        .values(
            user_id=user_id,
            exam_id=exam_id,
            current_attempt=1,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=["user_id", "exam_id"],
            set_={"current_attempt": table.c.current_attempt + 1, "updated_at": now},
        )
        .returning(table.c.current_attempt)
    )
    return session.execute(stmt).scalar_one()


def _open_attempt(session: Session, user_id: int, exam_id: int) -> ExamSubmission:
    attempt_number = next_attempt_number(session, user_id, exam_id)
    submission = ExamSubmission(
        user_id=user_id,
        exam_id=exam_id,
        attempt_number=attempt_number,
        status=SubmissionStatus.STARTED.value,
        answers=[],
    )
    session.add(submission)
    session.flush()
    return submission


def start_exam(
    session: Session, user_id: int, exam: Exam, question_count: int
) -> StartedAttempt:
    """Return the user's started attempt, opening a new one if none is active.

    Restarting while an attempt is active is idempotent. Counter increment and
    insert share one transaction, so a caller that loses the race on the
    active-attempt index rolls back its increment and returns the winner.
    """
    duration = allowed_duration_seconds(get_duration_config(session), exam.level, question_count)

    existing = find_active_attempt(session, user_id, exam.id)
    if existing:
        return StartedAttempt(existing, duration, created=False)

    try:
        submission = retry_transaction(
            session, lambda s: _open_attempt(s, user_id, exam.id)
        )
    except IntegrityError:
        winner = find_active_attempt(session, user_id, exam.id)
        if winner is None:
            logger.error("Attempt insert conflicted for user=%s exam=%s", user_id, exam.id)
            raise SubmissionConflict()
        logger.info("Concurrent start for user=%s exam=%s resolved to attempt %s",
                    user_id, exam.id, winner.attempt_number)
        return StartedAttempt(winner, duration, created=False)

    session.refresh(submission)
    logger.info("User %s started exam %s, attempt %s", user_id, exam.id, submission.attempt_number)
    return StartedAttempt(submission, duration, created=True)
