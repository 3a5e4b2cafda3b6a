"""Review scheduling for flashcards (simplified SM-2)."""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Sequence

from studylab.schemas import FlashcardSetStats, SpacedRepetitionState

DEFAULT_INTERVAL = 1
DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
EASE_STEP_UP = 0.1
EASE_STEP_DOWN = 0.2


def _get(card: Any, name: str) -> Any:
    if isinstance(card, Mapping):
        return card.get(name)
    return getattr(card, name, None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def calculate_next_review(card: Any, is_correct: bool, now: Optional[datetime] = None) -> SpacedRepetitionState:
    """Next review state after answering `card`.

    Args:
        card: Mapping or object with optional interval, ease_factor, review_count.
        is_correct: Whether the card was recalled correctly.
        now: Review time, defaults to the current UTC time.

    Returns:
        The new SpacedRepetitionState; the card itself is not modified.
    """
    now = _aware(now or _utcnow())
    interval = _get(card, "interval") or DEFAULT_INTERVAL
    ease_factor = _get(card, "ease_factor") or DEFAULT_EASE_FACTOR
    review_count = (_get(card, "review_count") or 0) + 1

    if is_correct:
        if review_count == 1:
            new_interval = 1
        elif review_count == 2:
            new_interval = 3
        else:
            new_interval = math.floor(interval * ease_factor + 0.5)
        new_ease = min(ease_factor + EASE_STEP_UP, MAX_EASE_FACTOR)
    else:
        # Incorrect: reset
        new_interval = 1
        new_ease = max(MIN_EASE_FACTOR, ease_factor - EASE_STEP_DOWN)

    return SpacedRepetitionState(
        interval=new_interval,
        ease_factor=round(new_ease, 2),
        review_count=review_count,
        next_review=now + timedelta(days=new_interval),
        last_review=now,
    )


def is_due(card: Any, now: Optional[datetime] = None) -> bool:
    next_review = _get(card, "next_review")
    if next_review is None:
        return True
    return _aware(next_review) <= _aware(now or _utcnow())


def get_due_cards(cards: Sequence[Any], now: Optional[datetime] = None) -> list:
    now = now or _utcnow()
    return [card for card in cards if is_due(card, now)]


def calculate_stats(cards: Sequence[Any], now: Optional[datetime] = None) -> Optional[FlashcardSetStats]:
    if not cards:
        return None
    now = _aware(now or _utcnow())
    one_week = now + timedelta(days=7)

    due_today = 0
    due_this_week = 0
    ease_total = 0.0
    total_reviews = 0
    for card in cards:
        next_review = _get(card, "next_review")
        if next_review is None or _aware(next_review) <= now:
            due_today += 1
        elif _aware(next_review) <= one_week:
            due_this_week += 1
        ease_total += _get(card, "ease_factor") or DEFAULT_EASE_FACTOR
        total_reviews += _get(card, "review_count") or 0

    return FlashcardSetStats(
        total_cards=len(cards),
        due_today=due_today,
        due_this_week=due_this_week,
        average_ease_factor=ease_total / len(cards),
        total_reviews=total_reviews,
    )
