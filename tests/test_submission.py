"""Submission finalizer: grading, persistence, time limit and progress."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session, select

from conftest import answers_for, create_exam, seed_student_and_topic
from exam_portal.errors import (
    ExamNotFound,
    IneligibleForExam,
    NoActiveSession,
    TimeLimitExceeded,
)
from exam_portal.models import (
    Exam,
    ExamSubmission,
    QuestionType,
    UserProgress,
    as_utc,
)
from exam_portal.services.attempts import find_active_attempt, start_exam
from exam_portal.services.eligibility import check_exam_eligibility
from exam_portal.services.submission import submit_exam


def _start(session, user, exam, questions):
    return start_exam(session, user.id, exam, len(questions)).submission


def test_all_correct_passes_and_records_progress(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)

    outcome = submit_exam(session, student.id, exam.id, answers_for(questions))
    submission = outcome.submission

    assert outcome.summary.total_marks == 20
    assert outcome.summary.pass_mark == pytest.approx(18)
    assert submission.status == "completed"
    assert submission.obtained_mark == 20
    assert submission.passed is True
    assert submission.completed_at is not None
    assert len(submission.answers) == 10
    assert submission.answers[0]["is_right"] == "Correct"
    assert submission.answers[0]["correct_answer"] == ["A"]

    progress = session.exec(select(UserProgress)).one()
    assert (progress.user_id, progress.level, progress.passed) == (student.id, 1, True)


def test_pass_mark_boundary(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)

    # 9 right, 1 skipped: 18 of 20
    outcome = submit_exam(session, student.id, exam.id, answers_for(questions, count=9))

    assert outcome.submission.obtained_mark == 18
    assert outcome.submission.passed is True
    assert outcome.submission.answers[-1]["is_right"] == "Skipped"


def test_negative_marks_fail_without_progress(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)

    outcome = submit_exam(session, student.id, exam.id, answers_for(questions, answer="B"))

    assert outcome.submission.obtained_mark == 0
    assert outcome.submission.passed is False
    assert outcome.notify_evaluators is False
    assert session.exec(select(UserProgress)).all() == []


def test_mixed_question_types(session, student, make_exam, scoring_config):
    exam, questions = make_exam(
        pass_percentage=50,
        question_specs=[
            (QuestionType.SINGLE_CHOICE, ["A"], ["A", "B"]),
            (QuestionType.MULTI_CHOICE, ["A", "B"], ["A", "B", "C"]),
            (QuestionType.FILL_BLANK, ["New York"], None),
            (QuestionType.SHORT_ANSWER, ["force", "mass"], None),
        ],
    )
    _start(session, student, exam, questions)
    answers = [
        {"question_id": questions[0].id, "student_answer": "b"},
        {"question_id": questions[1].id, "student_answer": ["A"]},
        {"question_id": questions[2].id, "student_answer": "newyork"},
        {"question_id": questions[3].id, "student_answer": "Force equals MASS times a"},
    ]

    outcome = submit_exam(session, student.id, exam.id, answers)
    labels = [a["is_right"] for a in outcome.submission.answers]

    assert labels == ["Incorrect", "Partially Correct", "Correct", "Correct"]
    # -0.5 + 1 + 2 + 2
    assert outcome.submission.obtained_mark == 4.5
    assert outcome.summary.total_marks == 8
    assert outcome.submission.passed is True


def test_unknown_and_repeated_questions_are_ignored(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)
    answers = answers_for(questions[:2]) + [
        {"question_id": questions[0].id, "student_answer": "A"},
        {"question_id": 999999, "student_answer": "A"},
    ]

    outcome = submit_exam(session, student.id, exam.id, answers)
    stored = outcome.submission.answers

    assert [a["question_id"] for a in stored] == [q.id for q in questions]
    assert [a["is_right"] for a in stored[:3]] == ["Correct", "Correct", "Skipped"]
    assert outcome.summary.total_marks == 20
    assert outcome.submission.obtained_mark == 4


def test_empty_submission_fails_and_keeps_next_level_locked(
    session, student, level1_exam, make_exam
):
    exam, questions = level1_exam
    level2, _ = make_exam(level=2)
    _start(session, student, exam, questions)

    outcome = submit_exam(session, student.id, exam.id, [])

    assert outcome.summary.total_marks == 20
    assert outcome.submission.obtained_mark == 0
    assert outcome.submission.passed is False
    assert {a["is_right"] for a in outcome.submission.answers} == {"Skipped"}
    assert session.exec(select(UserProgress)).all() == []
    with pytest.raises(IneligibleForExam):
        check_exam_eligibility(session, student.id, level2.exam_code)


def test_partial_submission_is_scored_against_whole_exam(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)

    outcome = submit_exam(session, student.id, exam.id, answers_for(questions[:1]))

    assert outcome.summary.total_marks == 20
    assert outcome.submission.obtained_mark == 2
    assert outcome.submission.passed is False
    assert session.exec(select(UserProgress)).all() == []


def test_submit_without_start(session, student, level1_exam):
    exam, questions = level1_exam
    with pytest.raises(NoActiveSession):
        submit_exam(session, student.id, exam.id, answers_for(questions))


def test_second_submit_is_rejected(session, student, level1_exam):
    exam, questions = level1_exam
    _start(session, student, exam, questions)
    first = submit_exam(session, student.id, exam.id, answers_for(questions, answer="B"))

    with pytest.raises(NoActiveSession):
        submit_exam(session, student.id, exam.id, answers_for(questions))

    stored = session.exec(select(ExamSubmission)).all()
    assert len(stored) == 1
    assert stored[0].id == first.submission.id
    assert stored[0].passed is False


def test_timeout_is_recorded_as_failed_attempt(session, student, level1_exam):
    exam, questions = level1_exam
    submission = _start(session, student, exam, questions)
    # allowed 600s plus 60s grace
    submission.created_at = submission.created_at - timedelta(seconds=700)
    session.add(submission)
    session.commit()

    with pytest.raises(TimeLimitExceeded) as excinfo:
        submit_exam(session, student.id, exam.id, answers_for(questions))

    assert excinfo.value.submission_id == submission.id
    assert excinfo.value.allowed_seconds == 600
    assert excinfo.value.elapsed_seconds >= 700

    session.expire_all()
    stored = session.get(ExamSubmission, submission.id)
    assert stored.status == "completed"
    assert stored.passed is False
    assert stored.obtained_mark == 0
    assert stored.time_taken == 600
    assert session.exec(select(UserProgress)).all() == []

    # the attempt is consumed
    assert find_active_attempt(session, student.id, exam.id) is None
    assert _start(session, student, exam, questions).attempt_number == 2


def test_timestamps_are_stored_as_utc(session, student, level1_exam):
    exam, questions = level1_exam
    submission = _start(session, student, exam, questions)
    assert submission.created_at.utcoffset() == timedelta(0)

    local = datetime(2026, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    submission.created_at = local
    session.add(submission)
    session.commit()
    session.expire_all()

    stored = session.get(ExamSubmission, submission.id)
    assert stored.created_at == datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert stored.created_at.utcoffset() == timedelta(0)


def test_within_grace_period_is_graded(session, student, level1_exam):
    exam, questions = level1_exam
    submission = _start(session, student, exam, questions)
    submission.created_at = submission.created_at - timedelta(seconds=630)
    session.add(submission)
    session.commit()

    outcome = submit_exam(session, student.id, exam.id, answers_for(questions))
    assert outcome.submission.passed is True


def test_missing_exam_aborts_and_keeps_attempt(session, student, level1_exam):
    exam, questions = level1_exam
    submission = _start(session, student, exam, questions)
    session.delete(session.get(Exam, exam.id))
    session.commit()

    with pytest.raises(ExamNotFound):
        submit_exam(session, student.id, exam.id, answers_for(questions))

    session.expire_all()
    assert session.get(ExamSubmission, submission.id).status == "started"


def test_repeat_pass_updates_single_progress_row(session, student, level1_exam):
    exam, questions = level1_exam
    for _ in range(2):
        _start(session, student, exam, questions)
        submit_exam(session, student.id, exam.id, answers_for(questions))

    assert len(session.exec(select(UserProgress)).all()) == 1


def test_fifth_failure_flags_evaluator_alert(session, student, level1_exam):
    exam, questions = level1_exam
    flags = []
    for _ in range(5):
        _start(session, student, exam, questions)
        outcome = submit_exam(session, student.id, exam.id, answers_for(questions, answer="B"))
        flags.append(outcome.notify_evaluators)

    assert flags == [False, False, False, False, True]
    assert outcome.submission.attempt_number == 5


def test_concurrent_submits_finalize_once(file_engine):
    user, subject, subtopic = seed_student_and_topic(file_engine, "dave", "Chemistry", "Acids")
    exam, questions = create_exam(file_engine, subject.id, subtopic.id)

    with Session(file_engine) as s:
        start_exam(s, user.id, exam, len(questions))

    barrier = threading.Barrier(4)

    def submit(_):
        with Session(file_engine) as s:
            barrier.wait()
            try:
                return submit_exam(s, user.id, exam.id, answers_for(questions)).submission.id
            except NoActiveSession:
                return None

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(submit, range(4)))

    assert len([r for r in results if r is not None]) == 1
    with Session(file_engine) as s:
        rows = s.exec(select(ExamSubmission)).all()
        progress = s.exec(select(UserProgress)).all()
    assert len(rows) == 1
    assert rows[0].status == "completed"
    assert len(progress) == 1


def test_as_utc_normalizes_timestamps():
    naive = datetime(2026, 1, 1, 12, 0, 0)
    assert as_utc(naive) == naive.replace(tzinfo=timezone.utc)
    assert as_utc(None) is None
