"""SQLModel models for the leveled exam portal."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint, text
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel

MARK_CONFIG_ID = "mark-based-on-levels"
DURATION_CONFIG_ID = "duration-in-seconds"
LEVELS = (1, 2, 3, 4)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that always hands back timezone-aware UTC values.
    SQLite drops the offset on storage, so results are re-tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    FILL_BLANK = "fill_blank"
    SHORT_ANSWER = "short_answer"


class AnswerStatus(str, Enum):
    CORRECT = "Correct"
    INCORRECT = "Incorrect"
    PARTIALLY_CORRECT = "Partially Correct"
    SKIPPED = "Skipped"


class SubmissionStatus(str, Enum):
    STARTED = "started"
    PROCESSING = "processing"  # transient lock held by the finalizer
    COMPLETED = "completed"


class User(SQLModel, table=True):
    """Identity resolved by the auth layer (student / evaluator / admin)."""

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str
    email: str
    role: str = Field(default="student")  # "student", "evaluator", "admin"
    is_active: bool = Field(default=True)
    status: str = Field(default="active")  # active, suspended
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ===================== CATALOG (read-only to the submission pipeline) =====================


class Subject(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name", name="uq_subject_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Subtopic(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("subject_id", "name", name="uq_subtopic_subject_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: int = Field(foreign_key="subject.id")
    name: str


class Exam(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("exam_code", name="uq_exam_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_code: str
    subject_id: int = Field(foreign_key="subject.id")
    subtopic_id: int = Field(foreign_key="subtopic.id")
    level: int = Field(ge=1, le=4)
    status: str = Field(default="active")  # active | inactive
    pass_percentage: float = Field(default=90, ge=0, le=100)
    shuffle_questions: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Question(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    subject_id: int = Field(foreign_key="subject.id")
    subtopic_id: int = Field(foreign_key="subtopic.id")
    level: int = Field(ge=1, le=4)
    question_type: str  # one of QuestionType values
    question_text: str
    options: Optional[list] = Field(default=None, sa_column=Column(JSON))
    correct_answers: list = Field(default_factory=list, sa_column=Column(JSON))
    image: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExamQuestion(SQLModel, table=True):
    """Ordered membership of a question in an exam."""

    __table_args__ = (
        UniqueConstraint("exam_id", "question_id", name="uq_exam_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id")
    question_id: int = Field(foreign_key="question.id")
    position: int = Field(default=0)


class MarkConfig(SQLModel, table=True):
    """Per-level positive and negative marks (singleton row)."""

    id: str = Field(default=MARK_CONFIG_ID, primary_key=True)
    level1_mark: float = Field(default=1, ge=0)
    level1_negative_mark: float = Field(default=0.33, ge=0)
    level2_mark: float = Field(default=1, ge=0)
    level2_negative_mark: float = Field(default=0.66, ge=0)
    level3_mark: float = Field(default=2, ge=0)
    level3_negative_mark: float = Field(default=0.66, ge=0)
    level4_mark: float = Field(default=10, ge=0)
    level4_negative_mark: float = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class DurationConfig(SQLModel, table=True):
    """Per-level allowed seconds for each question (singleton row)."""

    id: str = Field(default=DURATION_CONFIG_ID, primary_key=True)
    level1_duration: int = Field(default=45, ge=0)
    level2_duration: int = Field(default=90, ge=0)
    level3_duration: int = Field(default=120, ge=0)
    level4_duration: int = Field(default=150, ge=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


# ===================== SUBMISSION PIPELINE =====================


class AttemptCounter(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("user_id", "exam_id", name="uq_attemptcounter_user_exam"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    exam_id: int = Field(foreign_key="exam.id")
    current_attempt: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExamSubmission(SQLModel, table=True):
    """One attempt at an exam; created as started, finalized to completed."""

    __table_args__ = (
        UniqueConstraint(
            "user_id", "exam_id", "attempt_number", name="uq_submission_attempt"
        ),
        # At most one started attempt per user and exam.
        Index(
            "uq_submission_active_attempt",
            "user_id",
            "exam_id",
            unique=True,
            sqlite_where=text("status = 'started'"),
            postgresql_where=text("status = 'started'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    attempt_number: int
    status: str = Field(default=SubmissionStatus.STARTED.value)
    # [{question_id, student_answer, correct_answer, is_right, mark}]
    answers: list = Field(default_factory=list, sa_column=Column(JSON))
    time_taken: Optional[int] = None
    obtained_mark: float = Field(default=0)
    passed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)


class SubmissionReview(SQLModel, table=True):
    """Evaluator comment on a submission; never touches grading fields."""

    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: int = Field(foreign_key="examsubmission.id", index=True)
    evaluator_id: int = Field(foreign_key="user.id")
    message: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class UserProgress(SQLModel, table=True):
    """Durable fact that a user passed a subject/subtopic level."""

    __table_args__ = (
        UniqueConstraint(
            "user_id", "subject_id", "subtopic_id", "level", name="uq_user_progress"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    subject_id: int = Field(foreign_key="subject.id")
    subtopic_id: int = Field(foreign_key="subtopic.id")
    level: int
    passed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
