from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import structlog

from studylab.errors import InsufficientContentError, ModelRequestError, SchemaValidationError
from studylab.schemas import ContentSource, FlashcardConfig, GeneratedFlashcard, parse_flashcard
from studylab.services.llm import CompletionClient
from studylab.services.progress import ProgressReporter
from studylab.services.retry import RetryPolicy, check_deadline, with_retry

logger = structlog.get_logger()

FLASHCARD_SCHEMA_EXAMPLE = {
    "flashcards": [
        {
            "front_content": "Clear, concise question or concept",
            "back_content": "Comprehensive but concise explanation",
        }
    ]
}


@dataclass
class FlashcardResult:
    flashcards: List[GeneratedFlashcard] = field(default_factory=list)

    @property
    def total_cards(self) -> int:
        return len(self.flashcards)


def build_flashcard_prompt(content: str, cards: int, focus: str) -> str:
    return (
        "You are a skilled educator tasked with creating high-quality flashcards. "
        f"Create exactly {cards} flashcards from the provided content, focusing on {focus}.\n\n"
        "Rules:\n"
        "1. front_content should be a clear question or key concept\n"
        "2. back_content should be a comprehensive but concise explanation\n"
        "3. Each card must have both fields\n"
        "4. Use ONLY the provided content\n\n"
        f"Content:\n{content}"
    )


class FlashcardGenerator:
    def __init__(
        self,
        client: CompletionClient,
        reporter: ProgressReporter,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.reporter = reporter
        self.retry_policy = retry_policy or RetryPolicy()

    def generate(
        self,
        sources: Sequence[ContentSource],
        config: FlashcardConfig,
        job_id: str,
        deadline: Optional[float] = None,
    ) -> FlashcardResult:
        result = FlashcardResult()
        position = 1
        for done, source in enumerate(sources, start=1):
            content = source.text()
            if not content.strip():
                logger.info("source_without_content", job_id=job_id, source=source.source_name)
                continue

            try:
                raw_cards = with_retry(
                    lambda: self._request(content, config),
                    self.retry_policy,
                    before_attempt=lambda: check_deadline(deadline, job_id),
                )
            except ModelRequestError as e:
                logger.error("flashcard_source_skipped", job_id=job_id, source=source.source_name, error=str(e))
                continue

            accepted = 0
            for raw in raw_cards:
                if accepted >= config.cards_per_source:
                    break
                try:
                    card = parse_flashcard(raw, id=f"card_{position}", position=position, source=source.source_name)
                except SchemaValidationError as e:
                    logger.info("flashcard_dropped", job_id=job_id, source=source.source_name, error=str(e))
                    continue
                result.flashcards.append(card)
                position += 1
                accepted += 1

            logger.info("flashcards_generated", job_id=job_id, source=source.source_name, cards=accepted)
            self.reporter.report(job_id, done, len(sources), [c.model_dump() for c in result.flashcards])

        logger.info("flashcard_generation_finished", job_id=job_id, total_cards=result.total_cards)
        if not result.flashcards:
            raise InsufficientContentError("No flashcards were generated")
        return result

    def _request(self, content: str, config: FlashcardConfig) -> List[Any]:
        prompt = build_flashcard_prompt(content, config.cards_per_source, config.focus)
        response = self.client.complete_structured(prompt, FLASHCARD_SCHEMA_EXAMPLE)
        cards = response.get("flashcards") if isinstance(response, dict) else None
        if not isinstance(cards, list):
            raise ModelRequestError('Response is missing the "flashcards" array')
        return cards
