"""Request/response schemas for the JSON API (camelCase on the wire)."""

from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Start / submit ---


class StartExamIn(CamelModel):
    user_id: int
    exam_code: str = Field(min_length=1)


class QuestionOut(CamelModel):
    question_id: int
    question_type: str
    question_text: str
    options: Optional[List[str]] = None
    image: Optional[str] = None


class StartExamOut(CamelModel):
    submission_id: int
    exam_id: int
    attempt_number: int
    start_time: datetime
    server_duration_seconds: int
    level: int
    subject_name: Optional[str] = None
    subtopic_name: Optional[str] = None
    questions: List[QuestionOut] = []


class AnswerIn(CamelModel):
    question_id: int
    student_answer: Optional[Union[str, List[str]]] = None


class SubmitExamIn(CamelModel):
    user_id: int
    exam_id: int
    answers: List[AnswerIn] = []


class GradedAnswerOut(CamelModel):
    question_id: int
    student_answer: Any = None
    correct_answer: List[str] = []
    is_right: str
    mark: float


class ReviewOut(CamelModel):
    id: int
    evaluator_id: int
    message: str
    created_at: datetime
    updated_at: datetime


class SubmissionOut(CamelModel):
    submission_id: int
    user_id: int
    exam_id: int
    attempt_number: int
    status: str
    obtained_mark: float
    passed: bool = Field(alias="pass")
    time_taken: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    answers: List[GradedAnswerOut] = []
    reviews: List[ReviewOut] = []


class SubmitExamOut(CamelModel):
    success: bool = True
    message: str = "Exam submitted successfully"
    total_marks: float
    pass_mark: float
    submission: SubmissionOut


class EligibleExamOut(CamelModel):
    exam_id: int
    exam_code: str
    subject_id: int
    subject_name: Optional[str] = None
    subtopic_id: int
    subtopic_name: Optional[str] = None
    level: int
    pass_percentage: float
    question_count: int


# --- Reviews ---


class ReviewIn(CamelModel):
    message: str


# --- Scoring configuration ---


class MarkConfigIn(CamelModel):
    level1_mark: Optional[float] = None
    level1_negative_mark: Optional[float] = None
    level2_mark: Optional[float] = None
    level2_negative_mark: Optional[float] = None
    level3_mark: Optional[float] = None
    level3_negative_mark: Optional[float] = None
    level4_mark: Optional[float] = None
    level4_negative_mark: Optional[float] = None


class MarkConfigOut(MarkConfigIn):
    updated_at: Optional[datetime] = None


class DurationConfigIn(CamelModel):
    level1_duration: Optional[int] = None
    level2_duration: Optional[int] = None
    level3_duration: Optional[int] = None
    level4_duration: Optional[int] = None


class DurationConfigOut(DurationConfigIn):
    updated_at: Optional[datetime] = None
