from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError as PydanticValidationError
from pydantic import field_validator, model_validator
from typing_extensions import Annotated

from studylab.errors import SchemaValidationError


QuestionType = Literal["multiple_choice", "short_answer"]
Difficulty = Literal["easy", "medium", "hard"]

QUESTION_TYPES = ("multiple_choice", "short_answer")
DIFFICULTIES = ("easy", "medium", "hard")
MULTIPLE_CHOICE_OPTIONS = 4


class SourceDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw_text: str
    source_name: str
    type_info: Dict[str, Any] = Field(default_factory=dict)
    num_pages: Optional[int] = None


class Chunk(BaseModel):
    """Contiguous slice of a source text; `start`/`end` index into that text."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_name: str
    chunk_index: int = Field(ge=0)
    start: int = Field(default=0, ge=0)
    end: int = Field(default=0, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ContentSource(BaseModel):
    """One uploaded file as handed to a generator: raw text and/or pre-split chunks."""

    model_config = ConfigDict(populate_by_name=True)

    source_name: str = Field(
        default="Unknown",
        alias="source",
        validation_alias=AliasChoices("source", "source_name", "fileName", "name"),
    )
    # Processed files come back with `text`
    content: Optional[str] = Field(default=None, validation_alias=AliasChoices("text", "content"))
    chunks: Optional[List[str]] = None

    def text(self) -> str:
        if self.content and self.content.strip():
            return self.content
        return " ".join(c for c in (self.chunks or []) if c)


class TestConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    num_questions: int
    question_types: List[QuestionType]
    difficulty: Difficulty


class FlashcardConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = "New Flashcard Set"
    description: Optional[str] = None
    cards_per_source: int
    focus: str = "key concepts and definitions"


# -------------------- GENERATED ITEMS --------------------

class _QuestionBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = ""
    question: str
    correct_answer: str = Field(alias="correctAnswer")
    explanation: str = ""
    source: str = "Unknown"
    chunk_index: Optional[int] = Field(default=None, alias="chunkIndex")

    @field_validator("question", "correct_answer")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value


class MultipleChoiceQuestion(_QuestionBase):
    type: Literal["multiple_choice"] = "multiple_choice"
    options: List[str]

    @field_validator("options")
    @classmethod
    def _four_options(cls, value: List[str]) -> List[str]:
        if len(value) != MULTIPLE_CHOICE_OPTIONS:
            raise ValueError(f"expected {MULTIPLE_CHOICE_OPTIONS} options, got {len(value)}")
        return value

    @model_validator(mode="after")
    def _answer_is_an_option(self) -> "MultipleChoiceQuestion":
        if self.correct_answer not in self.options:
            raise ValueError("correctAnswer must be one of the options")
        return self


class ShortAnswerQuestion(_QuestionBase):
    type: Literal["short_answer"] = "short_answer"

    @model_validator(mode="before")
    @classmethod
    def _no_options(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("options") is not None:
            raise ValueError("short_answer questions must not have options")
        return data


Question = Annotated[Union[MultipleChoiceQuestion, ShortAnswerQuestion], Field(discriminator="type")]
_question_adapter = TypeAdapter(Question)


def parse_question(raw: Any, **fields: Any) -> Union[MultipleChoiceQuestion, ShortAnswerQuestion]:
    """Build a question from loosely typed model output, or raise SchemaValidationError.

    Keyword fields (id, source, chunk_index) override whatever the model returned.
    """
    if not isinstance(raw, dict):
        raise SchemaValidationError(f"question must be an object, got {type(raw).__name__}")
    data = dict(raw)
    data.pop("id", None)
    data.pop("chunkIndex", None)
    data.update(fields)
    try:
        return _question_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise SchemaValidationError(str(e)) from e


class GeneratedFlashcard(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    front_content: str
    back_content: str
    position: int = Field(ge=1)
    source: str = "Unknown"

    @field_validator("front_content", "back_content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()


def parse_flashcard(raw: Any, **fields: Any) -> GeneratedFlashcard:
    if not isinstance(raw, dict):
        raise SchemaValidationError(f"flashcard must be an object, got {type(raw).__name__}")
    data = {
        "front_content": raw.get("front_content"),
        "back_content": raw.get("back_content"),
    }
    data.update(fields)
    try:
        return GeneratedFlashcard.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaValidationError(str(e)) from e


# -------------------- REVIEW / SCORING --------------------

class SpacedRepetitionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    interval: int = Field(ge=1)
    ease_factor: float = Field(ge=1.3, le=2.5)
    review_count: int = Field(ge=0)
    next_review: datetime
    last_review: datetime


class QuestionFeedback(BaseModel):
    question_id: str
    correct: bool
    user_answer: Optional[str] = None
    correct_answer: str
    explanation: str = ""


class TestScore(BaseModel):
    total_questions: int
    correct_answers: int
    wrong_answers: int
    score: float
    feedback: List[QuestionFeedback]


class FlashcardSetStats(BaseModel):
    total_cards: int
    due_today: int
    due_this_week: int
    average_ease_factor: float
    total_reviews: int


class JobStatus(BaseModel):
    job_id: str
    kind: str
    status: str
    progress: int = 0
    title: Optional[str] = None
    message: Optional[str] = None
    artifact_id: Optional[int] = None
