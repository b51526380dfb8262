"""Level gating: which exams a user may attempt."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from exam_portal.errors import ExamNotFound, IneligibleForExam
from exam_portal.models import Exam, Question, Subject, Subtopic, UserProgress
from exam_portal.services.catalog import (
    get_exam_by_code,
    get_topic_names,
    list_exam_questions,
)

MAX_LEVEL = 4


@dataclass
class ResolvedExam:
    """An exam the user is allowed to attempt, with topic names attached."""

    exam: Exam
    subject_name: Optional[str]
    subtopic_name: Optional[str]
    questions: List[Question] = field(default_factory=list)


def has_passed_level(
    session: Session, user_id: int, subject_id: int, subtopic_id: int, level: int
) -> bool:
    stmt = select(UserProgress).where(
        (UserProgress.user_id == user_id)
        & (UserProgress.subject_id == subject_id)
        & (UserProgress.subtopic_id == subtopic_id)
        & (UserProgress.level == level)
        & (UserProgress.passed == True)  # noqa: E712
    )
    return session.exec(stmt).first() is not None


def check_exam_eligibility(session: Session, user_id: int, exam_code: str) -> ResolvedExam:
    """Resolve an exam by code and verify the user unlocked its level.

    Raises:
        ExamNotFound: no exam with that code, or the exam is inactive
        IneligibleForExam: the previous level of the subtopic is not passed
    """
    exam = get_exam_by_code(session, exam_code)
    if not exam or exam.status != "active":
        raise ExamNotFound()

    if exam.level > 1 and not has_passed_level(
        session, user_id, exam.subject_id, exam.subtopic_id, exam.level - 1
    ):
        raise IneligibleForExam()

    subject_name, subtopic_name = get_topic_names(session, exam)
    return ResolvedExam(
        exam=exam,
        subject_name=subject_name,
        subtopic_name=subtopic_name,
        questions=list_exam_questions(session, exam.id),
    )


def list_eligible_exams(session: Session, user_id: int) -> List[ResolvedExam]:
    """Active exams at the next unlocked level of every subject/subtopic."""
    next_levels: Dict[Tuple[int, int], int] = {}
    progress = session.exec(
        select(UserProgress).where(
            (UserProgress.user_id == user_id) & (UserProgress.passed == True)  # noqa: E712
        )
    ).all()
    for record in progress:
        key = (record.subject_id, record.subtopic_id)
        next_levels[key] = max(next_levels.get(key, 1), record.level + 1)

    subjects = {s.id: s for s in session.exec(select(Subject)).all()}
    eligible: List[ResolvedExam] = []
    for subtopic in session.exec(select(Subtopic)).all():
        level = next_levels.get((subtopic.subject_id, subtopic.id), 1)
        if level > MAX_LEVEL:
            continue
        exams = session.exec(
            select(Exam).where(
                (Exam.subject_id == subtopic.subject_id)
                & (Exam.subtopic_id == subtopic.id)
                & (Exam.level == level)
                & (Exam.status == "active")
            )
        ).all()
        subject = subjects.get(subtopic.subject_id)
        for exam in exams:
            eligible.append(
                ResolvedExam(
                    exam=exam,
                    subject_name=subject.name if subject else None,
                    subtopic_name=subtopic.name,
                )
            )
    return eligible
