"""Evaluator alerts for students who keep failing the same exam.

Alerts are built after the submission transaction commits and delivered as a
background task, at most once and best effort. Nothing here may change the
outcome of a submission.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session, select

from exam_portal.email_utils import send_mail
from exam_portal.models import Exam, ExamSubmission, User
from exam_portal.services.catalog import get_topic_names

logger = logging.getLogger(__name__)


@dataclass
class EvaluatorAlert:
    recipients: List[str]
    subject: str
    text: str
    html: str


def build_repeated_failure_alert(
    session: Session, submission: ExamSubmission, exam: Exam
) -> Optional[EvaluatorAlert]:
    """Compose the alert for a failed attempt, or None when there is nobody to tell."""
    evaluators = session.exec(
        select(User).where((User.role == "evaluator") & (User.is_active == True))  # noqa: E712
    ).all()
    recipients = [e.email for e in evaluators if e.email]
    if not recipients:
        return None

    student = session.get(User, submission.user_id)
    username = student.username if student else f"user {submission.user_id}"
    email = student.email if student else "unknown"
    subject_name, subtopic_name = get_topic_names(session, exam)
    attempts = submission.attempt_number

    text = (
        f"The user {username} (Email: {email}) has attempted the exam {attempts} times "
        f"but has not yet passed. Exam Details: Subject - {subject_name}, "
        f"Subtopic - {subtopic_name}, Level - {exam.level}."
    )
    html = f"""
<h2>Exam Attempt Alert</h2>
<p>The student <strong>{username}</strong> has attempted the exam <strong>{attempts} times</strong> but has not yet passed.</p>
<h3>Exam Details:</h3>
<ul>
  <li><strong>Subject:</strong> {subject_name}</li>
  <li><strong>Subtopic:</strong> {subtopic_name}</li>
  <li><strong>Level:</strong> {exam.level}</li>
</ul>
<p>Please review the student's progress.</p>
"""
    return EvaluatorAlert(
        recipients=recipients,
        subject=f"Student Repeated Exam Attempts: {username}",
        text=text,
        html=html,
    )


def deliver_alert(alert: EvaluatorAlert) -> None:
    """Background task entry point; failures are logged and dropped."""
    try:
        send_mail(alert.recipients, alert.subject, alert.text, alert.html)
    except Exception:
        logger.exception("Evaluator alert %r could not be delivered", alert.subject)
