"""Scoring of submitted answers against an exam's questions.

Everything here is pure: no session, no clock. The ledger service feeds it
rows it has already read inside its transaction.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

PASS = "Pass"
FAIL = "Fail"
PENDING = "Pending"


@dataclass(frozen=True)
class ScoredQuestion:
    id: Any
    correct_answer: str
    marks: int


@dataclass(frozen=True)
class Evaluation:
    score: float
    total: float
    percentage: float
    status: str

    @property
    def score_label(self) -> str:
        """Score formatted as ``"<score>/<total>"``."""
        return f"{self.score:.2f}/{self.total:g}"


def normalize_answer(value: Any) -> Optional[str]:
    """Trim and lowercase an answer; ``None`` and blank answers count as unanswered."""
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def answer_matches(given: Any, correct: str) -> bool:
    given_norm = normalize_answer(given)
    return given_norm is not None and given_norm == (correct or "").strip().lower()


def percentage_of(score: float, total: float) -> float:
    return (score / total) * 100 if total > 0 else 0.0


def is_pass(score: float, total: float, pass_percentage: float) -> bool:
    """``score/total*100 >= pass_percentage`` without float rounding at the boundary."""
    if total <= 0:
        return 0 >= pass_percentage
    return score * 100 >= pass_percentage * total


def lookup_answer(answers: Mapping[Any, Any], question_id: Any) -> Any:
    # JSON object keys arrive as strings while ids are ints
    if question_id in answers:
        return answers[question_id]
    return answers.get(str(question_id))


def evaluate(
    questions: Iterable[ScoredQuestion],
    answers: Mapping[Any, Any],
    pass_percentage: Optional[float],
    default_pass_percentage: float = 35.0,
) -> Evaluation:
    """Score ``answers`` (question id -> answer text) against ``questions``.

    Each exact (trimmed, case-insensitive) match awards that question's
    marks. Answers for questions outside the exam are ignored.
    """
    threshold = default_pass_percentage if pass_percentage is None else pass_percentage
    score = 0
    total = 0
    for question in questions:
        total += question.marks
        if answer_matches(lookup_answer(answers, question.id), question.correct_answer):
            score += question.marks
    status = PASS if is_pass(score, total, threshold) else FAIL
    return Evaluation(
        score=score,
        total=total,
        percentage=percentage_of(score, total),
        status=status,
    )
