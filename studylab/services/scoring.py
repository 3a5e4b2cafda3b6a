from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel

from studylab.errors import ValidationError
from studylab.schemas import (
    DIFFICULTIES,
    QUESTION_TYPES,
    FlashcardConfig,
    QuestionFeedback,
    TestConfig,
    TestScore,
)

MIN_CARDS_PER_SOURCE = 1
MAX_CARDS_PER_SOURCE = 20


def _as_dict(config: Any) -> Dict[str, Any]:
    if config is None:
        raise ValidationError("Configuration is required")
    if isinstance(config, BaseModel):
        return config.model_dump()
    if isinstance(config, Mapping):
        return dict(config)
    raise ValidationError(f"Configuration must be an object, got {type(config).__name__}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_test_config(config: Any) -> TestConfig:
    """Check a test generation config; raises ValidationError naming the first problem."""
    data = _as_dict(config)

    num_questions = data.get("num_questions")
    if not _is_int(num_questions) or num_questions < 1:
        raise ValidationError("Number of questions must be at least 1")

    question_types = data.get("question_types")
    if not question_types:
        raise ValidationError("At least one question type must be specified")
    for question_type in question_types:
        if question_type not in QUESTION_TYPES:
            raise ValidationError(f"Invalid question type: {question_type}")

    difficulty = data.get("difficulty")
    if difficulty not in DIFFICULTIES:
        raise ValidationError(f"Invalid difficulty: {difficulty}")

    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Test title is required")

    return TestConfig(
        title=title.strip(),
        num_questions=num_questions,
        question_types=list(dict.fromkeys(question_types)),
        difficulty=difficulty,
    )


def validate_flashcard_config(config: Any) -> FlashcardConfig:
    data = _as_dict(config)

    cards_per_source = data.get("cards_per_source")
    if cards_per_source is None:
        raise ValidationError("Missing required configuration fields: cards_per_source")
    if not _is_int(cards_per_source) or not MIN_CARDS_PER_SOURCE <= cards_per_source <= MAX_CARDS_PER_SOURCE:
        raise ValidationError(
            f"Cards per source must be between {MIN_CARDS_PER_SOURCE} and {MAX_CARDS_PER_SOURCE}"
        )

    kwargs: Dict[str, Any] = {"cards_per_source": cards_per_source}
    title = data.get("title")
    if isinstance(title, str) and title.strip():
        kwargs["title"] = title.strip()
    if data.get("description"):
        kwargs["description"] = str(data["description"])
    focus = data.get("focus")
    if isinstance(focus, str) and focus.strip():
        kwargs["focus"] = focus.strip()
    return FlashcardConfig(**kwargs)


def _field(question: Any, *names: str) -> Any:
    for name in names:
        if isinstance(question, Mapping):
            if name in question:
                return question[name]
        elif hasattr(question, name):
            return getattr(question, name)
    return None


def answers_match(user_answer: Optional[str], correct_answer: str) -> bool:
    if user_answer is None:
        return False
    return str(user_answer).strip().lower() == str(correct_answer).strip().lower()


def score_test(questions: Sequence[Any], answers: Mapping[str, Optional[str]]) -> TestScore:
    """Score answers keyed by question id; the percentage is left unrounded."""
    feedback = []
    correct_count = 0
    for question in questions:
        question_id = str(_field(question, "id"))
        correct_answer = str(_field(question, "correct_answer", "correctAnswer") or "")
        user_answer = answers.get(question_id)
        is_correct = answers_match(user_answer, correct_answer)
        if is_correct:
            correct_count += 1
        feedback.append(QuestionFeedback(
            question_id=question_id,
            correct=is_correct,
            user_answer=user_answer,
            correct_answer=correct_answer,
            explanation=str(_field(question, "explanation") or ""),
        ))

    total = len(questions)
    return TestScore(
        total_questions=total,
        correct_answers=correct_count,
        wrong_answers=total - correct_count,
        score=(correct_count / total * 100) if total else 0.0,
        feedback=feedback,
    )
