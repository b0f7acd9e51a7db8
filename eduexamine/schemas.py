"""Request schemas and the normalized question-options shape."""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

QUESTION_TEXT_MAX_LENGTH = 5000
CHOICE_MAX_LENGTH = 1000


class QuestionKind(str, Enum):
    SINGLE_CHOICE = "single_choice"
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


# Type tags sent by older clients
KIND_ALIASES = {
    "mcq": QuestionKind.SINGLE_CHOICE,
    "single": QuestionKind.SINGLE_CHOICE,
    "multiple": QuestionKind.MULTIPLE_CHOICE,
    "truefalse": QuestionKind.TRUE_FALSE,
    "true-false": QuestionKind.TRUE_FALSE,
    "boolean": QuestionKind.TRUE_FALSE,
    "text": QuestionKind.SHORT_ANSWER,
    "short": QuestionKind.SHORT_ANSWER,
}

CHOICE_KINDS = {
    QuestionKind.SINGLE_CHOICE,
    QuestionKind.MULTIPLE_CHOICE,
    QuestionKind.TRUE_FALSE,
}


class QuestionOptions(BaseModel):
    """Tagged variant stored in the ``options`` column of a question."""

    kind: QuestionKind
    choices: list[str] = Field(default_factory=list)

    @field_validator("kind", mode="before")
    @classmethod
    def _resolve_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower().replace(" ", "_")
            return KIND_ALIASES.get(key, key)
        return value

    @field_validator("choices")
    @classmethod
    def _clean_choices(cls, choices: list[str]) -> list[str]:
        cleaned = [c.strip() for c in choices]
        if any(not c for c in cleaned):
            raise ValueError("Choices must be non-empty.")
        if any(len(c) > CHOICE_MAX_LENGTH for c in cleaned):
            raise ValueError(f"Choices must be at most {CHOICE_MAX_LENGTH} characters.")
        if len({c.lower() for c in cleaned}) != len(cleaned):
            raise ValueError("Choices must be unique.")
        return cleaned

    @model_validator(mode="after")
    def _check_choice_count(self) -> "QuestionOptions":
        if self.kind == QuestionKind.TRUE_FALSE and not self.choices:
            self.choices = ["True", "False"]
        if self.kind in CHOICE_KINDS and len(self.choices) < 2:
            raise ValueError(f"A {self.kind.value} question needs at least two choices.")
        if self.kind == QuestionKind.SHORT_ANSWER and self.choices:
            raise ValueError("A short_answer question cannot have choices.")
        return self

    @classmethod
    def parse(cls, raw: Any) -> "QuestionOptions":
        """Normalize a stored options value, including legacy shapes.

        Accepts the canonical ``{"kind", "choices"}`` dict, the older
        ``{"type", "choices"}`` dict, a bare list of choices (treated as a
        single-choice question) or any of these JSON-encoded. Anything else
        raises ``ValueError``.
        """
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ValueError("Question options are not valid JSON") from exc
        if isinstance(raw, list):
            raw = {"kind": QuestionKind.SINGLE_CHOICE.value, "choices": raw}
        if not isinstance(raw, dict):
            raise ValueError(f"Unsupported question options shape: {type(raw).__name__}")
        if "kind" not in raw and "type" in raw:
            raw = {"kind": raw["type"], "choices": raw.get("choices") or []}
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            raise ValueError(f"Malformed question options: {exc.errors()[0]['msg']}") from exc

    def accepts(self, answer: str) -> bool:
        """Whether ``answer`` names one of the choices (case-insensitive)."""
        wanted = answer.strip().lower()
        return any(c.lower() == wanted for c in self.choices)


class RequestModel(BaseModel):
    """Base for request bodies: accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Accounts ---


class LoginIn(RequestModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    role: Literal["institute", "student"]


class TokenIn(RequestModel):
    refresh_token: str = Field(min_length=1)
    user_type: Literal["institute", "student"]


class InstituteRegisterIn(RequestModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    address: str = Field(min_length=1)


class StudentRegisterIn(RequestModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    institute_id: int
    branch_id: Optional[int] = None


class BulkStudentRow(RequestModel):
    # Fields are optional here so that missing ones are reported per row
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    branch: Optional[str] = None


class BulkUploadIn(RequestModel):
    students: list[BulkStudentRow] = Field(min_length=1)


class StudentUpdateIn(RequestModel):
    id: int
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    branch: str = Field(min_length=1)
    is_enabled: bool = True


class BranchIn(RequestModel):
    name: str = Field(min_length=1, max_length=100)


# --- Exams ---


class QuestionIn(RequestModel):
    text: str = Field(min_length=1, max_length=QUESTION_TEXT_MAX_LENGTH)
    type: str = QuestionKind.SINGLE_CHOICE.value
    options: list[str] = Field(default_factory=list)
    correct_answer: str = Field(min_length=1)
    marks: int = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _check_options(self) -> "QuestionIn":
        normalized = self.normalized_options()
        if normalized.kind in (QuestionKind.SINGLE_CHOICE, QuestionKind.TRUE_FALSE):
            if not normalized.accepts(self.correct_answer):
                raise ValueError("Correct answer must be one of the choices.")
        return self

    def normalized_options(self) -> QuestionOptions:
        return QuestionOptions.parse({"kind": self.type, "choices": self.options})


class ExamIn(RequestModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    expiry_date: Optional[datetime] = None
    duration_min: Optional[int] = Field(default=None, ge=1)
    pass_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    questions: list[QuestionIn] = Field(min_length=1)


class ExamUpdateIn(ExamIn):
    id: int


class ExamEnabledIn(RequestModel):
    is_enabled: StrictBool


class ResultLockIn(RequestModel):
    result_locked: StrictBool


class AssignBranchesIn(RequestModel):
    exam_id: int
    branch_ids: list[int]


class AssignStudentsIn(RequestModel):
    exam_id: int
    student_ids: list[int]


class SubmitExamIn(RequestModel):
    exam_id: int
    # Question id -> submitted answer text
    answers: dict[str, Any]


class AnnouncementIn(RequestModel):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    visible_to: str = "all"


# --- Guests ---


class GuestRegisterIn(RequestModel):
    guest_name: str = Field(min_length=1)


class GuestQuestionIn(RequestModel):
    type: str = QuestionKind.SINGLE_CHOICE.value
    question: str = Field(min_length=1, max_length=QUESTION_TEXT_MAX_LENGTH)
    choices: list[str] = Field(default_factory=list)
    correct_answer: str = Field(min_length=1)
    marks: int = Field(default=1, ge=1)

    def normalized_options(self) -> QuestionOptions:
        return QuestionOptions.parse({"kind": self.type, "choices": self.choices})

    @model_validator(mode="after")
    def _check_options(self) -> "GuestQuestionIn":
        self.normalized_options()
        return self


class GuestExamIn(RequestModel):
    guest_id: Optional[int] = None
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    enable_time_limit: bool = False
    duration_min: Optional[int] = Field(default=None, ge=1)
    pass_percentage: float = Field(ge=0, le=100)
    created_by: str = Field(min_length=1)
    questions: list[GuestQuestionIn] = Field(min_length=1)

    @model_validator(mode="after")
    def _check_time_limit(self) -> "GuestExamIn":
        if self.enable_time_limit and not self.duration_min:
            raise ValueError("durationMin is required when enableTimeLimit is set.")
        return self


class GuestSubmitIn(RequestModel):
    exam_id: int
    student_name: Optional[str] = None
    answers: dict[str, Any]
