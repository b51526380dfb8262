"""Per-question grading rules.

Every question type has one grader that both classifies an answer (the label
evaluators see) and scores it (the signed mark contribution). A score is
positive only for Correct or Partially Correct answers.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from exam_portal.models import AnswerStatus, Question, QuestionType

StudentAnswer = Optional[Union[str, Sequence[str]]]


def is_skipped(answer: StudentAnswer) -> bool:
    """An answer is skipped when absent, blank, or an empty selection."""
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    return not any(str(a).strip() for a in answer)


def _normalize(value: Any) -> str:
    return str(value).strip().lower()


def _normalize_no_space(value: Any) -> str:
    return "".join(str(value).lower().split())


def _as_text(answer: StudentAnswer) -> str:
    if isinstance(answer, str):
        return answer
    return " ".join(str(a) for a in answer)


def _as_list(answer: StudentAnswer) -> List[str]:
    if isinstance(answer, str):
        return [answer]
    return [str(a) for a in answer]


class QuestionGrader:
    """Base grader; subclasses handle non-skipped answers."""

    def classify(self, correct_answers: Sequence[str], answer: StudentAnswer) -> AnswerStatus:
        if is_skipped(answer):
            return AnswerStatus.SKIPPED
        return self._classify(correct_answers, answer)

    def score(
        self,
        correct_answers: Sequence[str],
        answer: StudentAnswer,
        positive_mark: float,
        negative_mark: float,
    ) -> float:
        if is_skipped(answer):
            return 0.0
        return self._score(correct_answers, answer, positive_mark, negative_mark)

    def _classify(self, correct_answers, answer) -> AnswerStatus:
        raise NotImplementedError

    def _score(self, correct_answers, answer, positive_mark, negative_mark) -> float:
        raise NotImplementedError


class SingleChoiceGrader(QuestionGrader):
    """Trimmed, case-insensitive match; the only type with negative marking."""

    def _is_correct(self, correct_answers, answer) -> bool:
        picked = _normalize(_as_text(answer))
        return any(_normalize(c) == picked for c in correct_answers)

    def _classify(self, correct_answers, answer):
        if self._is_correct(correct_answers, answer):
            return AnswerStatus.CORRECT
        return AnswerStatus.INCORRECT

    def _score(self, correct_answers, answer, positive_mark, negative_mark):
        if self._is_correct(correct_answers, answer):
            return float(positive_mark)
        return -float(negative_mark)


class FillBlankGrader(QuestionGrader):
    """Case-insensitive match ignoring all whitespace."""

    def _is_correct(self, correct_answers, answer) -> bool:
        written = _normalize_no_space(_as_text(answer))
        return any(_normalize_no_space(c) == written for c in correct_answers)

    def _classify(self, correct_answers, answer):
        if self._is_correct(correct_answers, answer):
            return AnswerStatus.CORRECT
        return AnswerStatus.INCORRECT

    def _score(self, correct_answers, answer, positive_mark, negative_mark):
        return float(positive_mark) if self._is_correct(correct_answers, answer) else 0.0


class MultiChoiceGrader(QuestionGrader):
    """Set comparison with proportional credit when no wrong option is picked."""

    def _picked(self, correct_answers, answer):
        correct = {_normalize(c) for c in correct_answers}
        picked = {_normalize(a) for a in _as_list(answer) if str(a).strip()}
        return correct, picked

    def _classify(self, correct_answers, answer):
        correct, picked = self._picked(correct_answers, answer)
        if picked - correct:
            return AnswerStatus.INCORRECT
        if picked == correct:
            return AnswerStatus.CORRECT
        return AnswerStatus.PARTIALLY_CORRECT

    def _score(self, correct_answers, answer, positive_mark, negative_mark):
        correct, picked = self._picked(correct_answers, answer)
        if not correct or picked - correct:
            return 0.0
        return len(picked) / len(correct) * float(positive_mark)


class ShortAnswerGrader(QuestionGrader):
    """Keyword containment; credit proportional to the keywords found."""

    def _counts(self, correct_answers, answer):
        text = _as_text(answer).lower()
        keywords = [_normalize(k) for k in correct_answers if str(k).strip()]
        matched = sum(1 for k in keywords if k in text)
        return matched, len(keywords)

    def _classify(self, correct_answers, answer):
        matched, total = self._counts(correct_answers, answer)
        if matched == 0:
            return AnswerStatus.INCORRECT
        if matched == total:
            return AnswerStatus.CORRECT
        return AnswerStatus.PARTIALLY_CORRECT

    def _score(self, correct_answers, answer, positive_mark, negative_mark):
        matched, total = self._counts(correct_answers, answer)
        if matched == 0:
            return 0.0
        return matched / total * float(positive_mark)


GRADERS: Dict[QuestionType, QuestionGrader] = {
    QuestionType.SINGLE_CHOICE: SingleChoiceGrader(),
    QuestionType.MULTI_CHOICE: MultiChoiceGrader(),
    QuestionType.FILL_BLANK: FillBlankGrader(),
    QuestionType.SHORT_ANSWER: ShortAnswerGrader(),
}


def classify(
    question_type: Union[QuestionType, str],
    correct_answers: Sequence[str],
    student_answer: StudentAnswer,
) -> AnswerStatus:
    return GRADERS[QuestionType(question_type)].classify(correct_answers, student_answer)


def score(
    question_type: Union[QuestionType, str],
    correct_answers: Sequence[str],
    student_answer: StudentAnswer,
    positive_mark: float,
    negative_mark: float,
) -> float:
    return GRADERS[QuestionType(question_type)].score(
        correct_answers, student_answer, positive_mark, negative_mark
    )


@dataclass
class GradedAnswer:
    question_id: int
    student_answer: Any
    correct_answer: List[str]
    is_right: AnswerStatus
    mark: float

    def to_record(self) -> dict:
        record = asdict(self)
        record["is_right"] = self.is_right.value
        return record


def grade_answer(
    question: Question,
    student_answer: StudentAnswer,
    positive_mark: float,
    negative_mark: float,
) -> GradedAnswer:
    """Classify and score one answer, snapshotting the correct answers."""
    grader = GRADERS[QuestionType(question.question_type)]
    correct_answers = list(question.correct_answers or [])
    return GradedAnswer(
        question_id=question.id,
        student_answer=student_answer,
        correct_answer=correct_answers,
        is_right=grader.classify(correct_answers, student_answer),
        mark=grader.score(correct_answers, student_answer, positive_mark, negative_mark),
    )
