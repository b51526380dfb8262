import asyncio
from typing import List, Optional, Sequence

import httpx
import pytest
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from exam_portal.database import build_engine
from exam_portal.models import (
    DurationConfig,
    Exam,
    ExamQuestion,
    MarkConfig,
    Question,
    QuestionType,
    Subject,
    Subtopic,
    User,
)

# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================

# StaticPool keeps every connection on the same in-memory database
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture(scope="session")
def engine():
    """Provide test engine as a fixture."""
    return test_engine


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create all tables in the test database once per session."""
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(autouse=True)
def cleanup_db_between_tests():
    """Clean up test data after each test."""
    yield
    with Session(test_engine) as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            session.execute(text(f'DELETE FROM "{table.name}"'))
        session.commit()


@pytest.fixture
def session():
    """Provide a database session for tests."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite engine for tests that need real concurrent connections."""
    eng = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


# ============================================================================
# FASTAPI APP & TEST CLIENT
# ============================================================================

from exam_portal.database import get_session  # noqa: E402
from exam_portal.deps import get_current_user  # noqa: E402
from exam_portal.main import app  # noqa: E402


@pytest.fixture
def client():
    """Create test client using httpx AsyncClient with sync wrapper."""

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    loop = asyncio.new_event_loop()
    transport = httpx.ASGITransport(app=app)
    async_client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    class SyncClientWrapper:
        def __init__(self, async_client, loop):
            self.async_client = async_client
            self.loop = loop

        def get(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.get(*args, **kwargs))

        def post(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.post(*args, **kwargs))

        def put(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.put(*args, **kwargs))

        def delete(self, *args, **kwargs):
            return self.loop.run_until_complete(self.async_client.delete(*args, **kwargs))

    yield SyncClientWrapper(async_client, loop)

    loop.run_until_complete(async_client.aclose())
    loop.close()
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(client):
    """Make the auth layer resolve the given user (None logs out)."""

    def _login(user: Optional[User]):
        app.dependency_overrides[get_current_user] = lambda: user
        return client

    return _login


# ============================================================================
# ENTITY FIXTURES
# ============================================================================


def _create(obj):
    with Session(test_engine, expire_on_commit=False) as session:
        session.add(obj)
        session.commit()
        session.refresh(obj)
    return obj


@pytest.fixture
def student():
    return _create(User(username="alice", email="alice@example.com", role="student"))


@pytest.fixture
def other_student():
    return _create(User(username="bob", email="bob@example.com", role="student"))


@pytest.fixture
def evaluator():
    return _create(User(username="eve", email="eve@example.com", role="evaluator"))


@pytest.fixture
def admin():
    return _create(User(username="root", email="admin@example.com", role="admin"))


@pytest.fixture
def topic():
    """A subject with one subtopic; returns (subject, subtopic)."""
    subject = _create(Subject(name="Mathematics"))
    subtopic = _create(Subtopic(subject_id=subject.id, name="Algebra"))
    return subject, subtopic


@pytest.fixture
def scoring_config():
    """Level 1: 2 marks, 0.5 penalty, 60 seconds per question."""
    with Session(test_engine) as session:
        session.add(MarkConfig(level1_mark=2, level1_negative_mark=0.5))
        session.add(DurationConfig(level1_duration=60))
        session.commit()


def seed_student_and_topic(engine_, username: str, subject_name: str, subtopic_name: str):
    """Create a student, a subject and one subtopic; returns (user, subject, subtopic)."""
    with Session(engine_, expire_on_commit=False) as session:
        user = User(username=username, email=f"{username}@example.com", role="student")
        subject = Subject(name=subject_name)
        session.add(user)
        session.add(subject)
        session.commit()
        subtopic = Subtopic(subject_id=subject.id, name=subtopic_name)
        session.add(subtopic)
        session.commit()
    return user, subject, subtopic


def add_questions(
    engine_, subject_id: int, subtopic_id: int, level: int, specs: Sequence[tuple]
) -> List[Question]:
    """Insert questions from (question_type, correct_answers, options) tuples."""
    created = []
    with Session(engine_, expire_on_commit=False) as session:
        for question_type, correct, options in specs:
            q = Question(
                subject_id=subject_id,
                subtopic_id=subtopic_id,
                level=level,
                question_type=QuestionType(question_type).value,
                question_text=f"Question {len(created) + 1}?",
                options=options,
                correct_answers=list(correct),
            )
            session.add(q)
            session.commit()
            session.refresh(q)
            created.append(q)
    return created


def create_exam(
    engine_,
    subject_id: int,
    subtopic_id: int,
    level: int = 1,
    exam_code: Optional[str] = None,
    question_specs: Optional[Sequence[tuple]] = None,
    pass_percentage: float = 90,
    status: str = "active",
    shuffle_questions: bool = False,
):
    """Create an exam (default: ten single-choice questions answered 'A')."""
    if question_specs is None:
        question_specs = [
            (QuestionType.SINGLE_CHOICE, ["A"], ["A", "B", "C", "D"]) for _ in range(10)
        ]
    questions = add_questions(engine_, subject_id, subtopic_id, level, question_specs)
    with Session(engine_, expire_on_commit=False) as session:
        exam = Exam(
            exam_code=exam_code or f"EXAM-L{level}",
            subject_id=subject_id,
            subtopic_id=subtopic_id,
            level=level,
            status=status,
            pass_percentage=pass_percentage,
            shuffle_questions=shuffle_questions,
        )
        session.add(exam)
        session.commit()
        session.refresh(exam)
        for position, q in enumerate(questions):
            session.add(ExamQuestion(exam_id=exam.id, question_id=q.id, position=position))
        session.commit()
        session.refresh(exam)
    return exam, questions


@pytest.fixture
def make_exam(topic):
    subject, subtopic = topic

    def _make(**kwargs):
        return create_exam(test_engine, subject.id, subtopic.id, **kwargs)

    return _make


@pytest.fixture
def level1_exam(make_exam, scoring_config):
    """Ten single-choice questions, 2 marks each, 90% to pass."""
    return make_exam()


def answers_for(questions, answer="A", count=None):
    """Answer payload dicts answering the first `count` questions, skipping the rest."""
    count = len(questions) if count is None else count
    return [
        {"question_id": q.id, "student_answer": answer if i < count else None}
        for i, q in enumerate(questions)
    ]
