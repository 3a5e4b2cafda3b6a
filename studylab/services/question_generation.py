"""
Test question generation: spread batches over the source chunks, ask the model
for each question type in turn, and keep only questions that pass validation.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence

import structlog

from studylab.errors import InsufficientContentError, ModelRequestError, SchemaValidationError
from studylab.schemas import Chunk, ContentSource, TestConfig, parse_question
from studylab.services.chunking import TextChunker, select_distributed_chunks
from studylab.services.llm import CompletionClient
from studylab.services.progress import ProgressReporter
from studylab.services.retry import RetryPolicy, check_deadline, with_retry

logger = structlog.get_logger()

QUESTIONS_PER_BATCH = 5

QUESTION_SCHEMA_EXAMPLE = {
    "questions": [
        {
            "question": "The actual question text",
            "type": "multiple_choice",
            "options": ["Option A", "Option B", "Option C", "Option D"],
            "correctAnswer": "Option A",
            "explanation": "Explanation of why this is correct",
        },
        {
            "question": "The actual question text",
            "type": "short_answer",
            "correctAnswer": "The brief answer",
            "explanation": "Explanation of why this is correct",
        },
    ]
}

TYPE_RULES = {
    "multiple_choice": (
        'Include an "options" array with exactly 4 plausible options. '
        'The "correctAnswer" must match one of the options exactly.'
    ),
    "short_answer": 'Do not include an "options" array. The "correctAnswer" should be a brief, clear answer.',
}


def distribute_question_types(num_questions: int, question_types: Sequence[str]) -> Dict[str, int]:
    """Split `num_questions` over the types as evenly as possible, remainder to the first types."""
    if not question_types:
        return {}
    base, remainder = divmod(num_questions, len(question_types))
    return {
        question_type: base + (1 if index < remainder else 0)
        for index, question_type in enumerate(question_types)
    }


def build_question_prompt(chunk: Chunk, question_type: str, count: int, difficulty: str) -> str:
    return (
        f"You are an expert test creator. Generate exactly {count} {question_type} "
        f"question{'s' if count != 1 else ''} based on the provided content.\n"
        f"The test should be at {difficulty} difficulty level.\n\n"
        "Requirements:\n"
        f"- Create exactly {count} questions, all of type {question_type}\n"
        "- Make questions challenging but clear\n"
        "- Ensure answers are unambiguous\n"
        "- Questions must be based ONLY on the provided content\n"
        f"- {TYPE_RULES[question_type]}\n\n"
        f"Content from {chunk.source_name}:\n{chunk.content}"
    )


class TestQuestionGenerator:
    __test__ = False

    def __init__(
        self,
        client: CompletionClient,
        reporter: ProgressReporter,
        chunker: Optional[TextChunker] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.reporter = reporter
        self.chunker = chunker or TextChunker()
        self.retry_policy = retry_policy or RetryPolicy()

    def collect_chunks(self, sources: Sequence[ContentSource]) -> List[Chunk]:
        """Flatten every source into one ordered chunk list, tagged with the source name."""
        chunks: List[Chunk] = []
        for source in sources:
            if source.chunks:
                chunks.extend(
                    Chunk(content=text, source_name=source.source_name, chunk_index=index)
                    for index, text in enumerate(c for c in source.chunks if c and c.strip())
                )
            elif source.content and source.content.strip():
                chunks.extend(self.chunker.chunk(source.content, {"source_name": source.source_name}))
            else:
                logger.info("source_without_content", source=source.source_name)
        return chunks

    def generate(
        self,
        sources: Sequence[ContentSource],
        config: TestConfig,
        job_id: str,
        deadline: Optional[float] = None,
    ) -> List[Any]:
        target = config.num_questions
        quotas = distribute_question_types(target, config.question_types)
        chunks = self.collect_chunks(sources)
        selected = select_distributed_chunks(chunks, math.ceil(target / QUESTIONS_PER_BATCH))
        logger.info(
            "test_generation_started",
            job_id=job_id,
            target=target,
            quotas=quotas,
            chunks=len(chunks),
            selected=len(selected),
        )

        accepted: List[Any] = []
        for chunk in selected:
            if len(accepted) >= target:
                break
            batch_need = min(QUESTIONS_PER_BATCH, target - len(accepted))
            for question_type in quotas:
                if quotas[question_type] <= 0 or batch_need <= 0:
                    continue
                count = min(quotas[question_type], batch_need)
                try:
                    raw_items = with_retry(
                        lambda: self._request(chunk, question_type, count, config.difficulty),
                        self.retry_policy,
                        before_attempt=lambda: check_deadline(deadline, job_id),
                    )
                except ModelRequestError as e:
                    logger.warning(
                        "question_request_abandoned",
                        job_id=job_id,
                        source=chunk.source_name,
                        chunk_index=chunk.chunk_index,
                        question_type=question_type,
                        error=str(e),
                    )
                    continue

                new_questions = self._accept(raw_items, question_type, count, chunk, len(accepted))
                if not new_questions:
                    continue
                accepted.extend(new_questions)
                quotas[question_type] -= len(new_questions)
                batch_need -= len(new_questions)
                self.reporter.report(
                    job_id, len(accepted), target, [q.model_dump(by_alias=True) for q in accepted]
                )

        logger.info("test_generation_finished", job_id=job_id, accepted=len(accepted), target=target)
        if len(accepted) < target:
            raise InsufficientContentError(
                f"Only {len(accepted)} of {target} questions could be generated from the provided content"
            )
        return accepted

    def _request(self, chunk: Chunk, question_type: str, count: int, difficulty: str) -> List[Any]:
        prompt = build_question_prompt(chunk, question_type, count, difficulty)
        response = self.client.complete_structured(prompt, QUESTION_SCHEMA_EXAMPLE)
        items = response.get("questions") if isinstance(response, dict) else None
        if not isinstance(items, list):
            raise ModelRequestError('Response is missing the "questions" array')
        return items

    def _accept(self, raw_items: List[Any], question_type: str, count: int, chunk: Chunk, offset: int) -> List[Any]:
        questions = []
        for raw in raw_items:
            if len(questions) >= count:
                break
            if isinstance(raw, dict):
                raw = {"type": question_type, **raw}
                if raw["type"] != question_type:
                    logger.info("question_dropped", reason="type_mismatch", got=raw["type"], expected=question_type)
                    continue
            try:
                question = parse_question(
                    raw,
                    id=f"q{offset + len(questions) + 1}",
                    source=chunk.source_name,
                    chunk_index=chunk.chunk_index,
                )
            except SchemaValidationError as e:
                logger.info("question_dropped", reason="invalid", chunk_index=chunk.chunk_index, error=str(e))
                continue
            questions.append(question)
        return questions
