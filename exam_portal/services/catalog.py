"""Read-only lookups over exams, questions and the scoring configuration.

The submission pipeline never mutates catalog rows. The two configuration
singletons follow a lazy-initialize-with-defaults contract: readers get the
stored row or an unsaved default instance, and ``ensure_scoring_configs``
persists the defaults once at startup.
"""

from typing import List, Optional, Tuple

from sqlmodel import Session, select

from exam_portal.config import get_settings
from exam_portal.database import upsert_insert
from exam_portal.errors import InvalidScoringConfig
from exam_portal.models import (
    DURATION_CONFIG_ID,
    LEVELS,
    MARK_CONFIG_ID,
    DurationConfig,
    Exam,
    ExamQuestion,
    MarkConfig,
    Question,
    Subject,
    Subtopic,
    utcnow,
)


def get_exam(session: Session, exam_id: int) -> Optional[Exam]:
    return session.get(Exam, exam_id)


def get_exam_by_code(session: Session, exam_code: str) -> Optional[Exam]:
    return session.exec(select(Exam).where(Exam.exam_code == exam_code)).first()


def list_exam_questions(session: Session, exam_id: int) -> List[Question]:
    """Questions of an exam in their configured order."""
    stmt = (
        select(Question)
        .join(ExamQuestion, ExamQuestion.question_id == Question.id)
        .where(ExamQuestion.exam_id == exam_id)
        .order_by(ExamQuestion.position, ExamQuestion.id)
    )
    return list(session.exec(stmt).all())


def get_topic_names(session: Session, exam: Exam) -> Tuple[Optional[str], Optional[str]]:
    """Return (subject name, subtopic name) for an exam."""
    subject = session.get(Subject, exam.subject_id)
    subtopic = session.get(Subtopic, exam.subtopic_id)
    return (
        subject.name if subject else None,
        subtopic.name if subtopic else None,
    )


# --- Scoring configuration ---


def get_mark_config(session: Session) -> MarkConfig:
    """Stored mark configuration, or the defaults when none was saved yet."""
    return session.get(MarkConfig, MARK_CONFIG_ID) or MarkConfig()


def get_duration_config(session: Session) -> Optional[DurationConfig]:
    return session.get(DurationConfig, DURATION_CONFIG_ID)


def marks_for_level(config: MarkConfig, level: int) -> Tuple[float, float]:
    """Return (positive mark, negative mark) for a level."""
    return (
        getattr(config, f"level{level}_mark"),
        getattr(config, f"level{level}_negative_mark"),
    )


def allowed_duration_seconds(
    config: Optional[DurationConfig], level: int, question_count: int
) -> int:
    """Whole-exam budget: the per-question duration for the level times the question count."""
    per_question = getattr(config, f"level{level}_duration", None) if config else None
    if not per_question or question_count <= 0:
        return get_settings().DEFAULT_EXAM_DURATION_SECONDS
    return int(per_question) * question_count


def ensure_scoring_configs(session: Session) -> None:
    """Persist the default mark and duration singletons if they are missing."""
    for model in (MarkConfig, DurationConfig):
        stmt = (
            upsert_insert(session, model)
            .values(**model().model_dump())
            .on_conflict_do_nothing(index_elements=["id"])
        )
        session.execute(stmt)
    session.commit()


def _apply_changes(config, changes: dict, suffixes: Tuple[str, ...]) -> None:
    for level in LEVELS:
        for suffix in suffixes:
            key = f"level{level}_{suffix}"
            value = changes.get(key)
            if value is None:
                continue
            if value < 0:
                raise InvalidScoringConfig(f"{key} must be non-negative")
            setattr(config, key, value)
    config.updated_at = utcnow()


def update_mark_config(session: Session, changes: dict) -> MarkConfig:
    """Partially update the mark configuration; unspecified levels keep their values."""
    config = get_mark_config(session)
    _apply_changes(config, changes, ("mark", "negative_mark"))
    session.add(config)
    session.commit()
    session.refresh(config)
    return config


def update_duration_config(session: Session, changes: dict) -> DurationConfig:
    """Partially update the per-level question durations."""
    config = get_duration_config(session) or DurationConfig()
    _apply_changes(config, changes, ("duration",))
    session.add(config)
    session.commit()
    session.refresh(config)
    return config
