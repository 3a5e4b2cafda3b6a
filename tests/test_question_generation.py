"""
Unit tests for test question generation
"""
import time

import pytest

from conftest import FakeCompletionClient, mc_question, question_type_of, requested_count, sa_question
from studylab.errors import GenerationTimeoutError, InsufficientContentError, SchemaValidationError
from studylab.schemas import (
    Chunk,
    ContentSource,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
    TestConfig as QuizConfig,
    parse_question,
)
from studylab.services.question_generation import (
    TestQuestionGenerator as QuestionGenerator,
    build_question_prompt,
    distribute_question_types,
)


def quiz_config(num_questions=10, question_types=("multiple_choice", "short_answer"), difficulty="medium"):
    return QuizConfig(
        title="Biology midterm",
        num_questions=num_questions,
        question_types=list(question_types),
        difficulty=difficulty,
    )


def three_sources():
    return [
        ContentSource(source="cells.pdf", content="Cells are the basic unit of life."),
        ContentSource(source="energy.pdf", content="Mitochondria produce most of the cell's energy."),
        ContentSource(source="plants.pdf", content="Chloroplasts capture light for photosynthesis."),
    ]


class TestDistributeQuestionTypes:
    def test_even_split(self):
        assert distribute_question_types(10, ["multiple_choice", "short_answer"]) == {
            "multiple_choice": 5,
            "short_answer": 5,
        }

    def test_remainder_goes_to_first_types(self):
        quotas = distribute_question_types(7, ["multiple_choice", "short_answer"])
        assert quotas == {"multiple_choice": 4, "short_answer": 3}
        assert sum(quotas.values()) == 7

    def test_single_type_gets_everything(self):
        assert distribute_question_types(3, ["short_answer"]) == {"short_answer": 3}


class TestParseQuestion:
    def test_multiple_choice_requires_four_options(self):
        raw = mc_question(1)
        raw["options"] = ["A", "B", "C"]
        with pytest.raises(SchemaValidationError):
            parse_question(raw)

    def test_multiple_choice_answer_must_be_an_option(self):
        with pytest.raises(SchemaValidationError):
            parse_question(mc_question(1, answer="E"))

    def test_short_answer_rejects_options(self):
        raw = sa_question(1)
        raw["options"] = ["A", "B", "C", "D"]
        with pytest.raises(SchemaValidationError):
            parse_question(raw)

    def test_short_answer_requires_answer(self):
        with pytest.raises(SchemaValidationError):
            parse_question(sa_question(1, answer="   "))

    def test_variants_and_overrides(self):
        question = parse_question(mc_question(1), id="q7", source="cells.pdf", chunk_index=2)
        assert isinstance(question, MultipleChoiceQuestion)
        assert question.id == "q7"
        assert question.model_dump(by_alias=True)["correctAnswer"] == "B"
        assert isinstance(parse_question(sa_question(1)), ShortAnswerQuestion)

    def test_non_object_is_rejected(self):
        with pytest.raises(SchemaValidationError):
            parse_question(["not", "a", "question"])


class TestBuildQuestionPrompt:
    def test_prompt_mentions_count_type_and_content(self):
        chunk = Chunk(content="Ribosomes build proteins.", source_name="cells.pdf", chunk_index=0)
        prompt = build_question_prompt(chunk, "short_answer", 3, "hard")
        assert "Generate exactly 3 short_answer questions" in prompt
        assert "hard difficulty" in prompt
        assert "Content from cells.pdf:\nRibosomes build proteins." in prompt


class TestQuestionGeneratorRun:
    def test_generates_target_count_with_sequential_ids(self, question_llm, reporter, no_wait_retry):
        generator = QuestionGenerator(question_llm, reporter, retry_policy=no_wait_retry)
        questions = generator.generate(three_sources(), quiz_config(), "job-1")

        assert len(questions) == 10
        assert [q.id for q in questions] == [f"q{i}" for i in range(1, 11)]
        assert sum(isinstance(q, MultipleChoiceQuestion) for q in questions) == 5
        assert sum(isinstance(q, ShortAnswerQuestion) for q in questions) == 5
        assert reporter.get("job-1") == 100

    def test_malformed_request_is_retried_then_abandoned(self, reporter, no_wait_retry):
        def handler(prompt, schema):
            if "cells.pdf" in prompt and question_type_of(prompt) == "multiple_choice":
                return "{not valid json"
            make = mc_question if question_type_of(prompt) == "multiple_choice" else sa_question
            return {"questions": [make(i) for i in range(requested_count(prompt))]}

        client = FakeCompletionClient(handler)
        generator = QuestionGenerator(client, reporter, retry_policy=no_wait_retry)
        questions = generator.generate(three_sources(), quiz_config(), "job-2")

        assert len(client.calls_matching("cells.pdf", "all of type multiple_choice")) == 3
        assert len(questions) == 10
        assert {q.source for q in questions} == {"cells.pdf", "energy.pdf"}
        assert reporter.get("job-2") == 100

    def test_missing_questions_field_counts_as_failed_request(self, reporter, no_wait_retry):
        client = FakeCompletionClient(lambda prompt, schema: {"items": []})
        generator = QuestionGenerator(client, reporter, retry_policy=no_wait_retry)

        with pytest.raises(InsufficientContentError):
            generator.generate(three_sources(), quiz_config(num_questions=2), "job-3")
        # one chunk, two types, three attempts each
        assert len(client.prompts) == 6

    def test_invalid_questions_are_dropped_not_retried(self, reporter, no_wait_retry):
        def handler(prompt, schema):
            count = requested_count(prompt)
            items = [mc_question(i) for i in range(count)]
            items[0] = dict(items[0], options=["A", "B", "C"])
            return {"questions": items}

        client = FakeCompletionClient(handler)
        generator = QuestionGenerator(client, reporter, retry_policy=no_wait_retry)

        with pytest.raises(InsufficientContentError) as exc_info:
            generator.generate(three_sources(), quiz_config(num_questions=5, question_types=["multiple_choice"]), "job-4")
        assert "Only 4 of 5" in str(exc_info.value)
        assert len(client.prompts) == 1
        assert reporter.get("job-4") == 80
        assert len(reporter.partial_results("job-4")) == 4

    def test_mismatched_type_is_dropped(self, reporter, no_wait_retry):
        client = FakeCompletionClient(lambda prompt, schema: {"questions": [sa_question(1)]})
        generator = QuestionGenerator(client, reporter, retry_policy=no_wait_retry)

        with pytest.raises(InsufficientContentError):
            generator.generate(three_sources(), quiz_config(num_questions=1, question_types=["multiple_choice"]), "job-5")

    def test_extra_questions_are_capped(self, reporter, no_wait_retry):
        client = FakeCompletionClient(lambda prompt, schema: {"questions": [sa_question(i) for i in range(8)]})
        generator = QuestionGenerator(client, reporter, retry_policy=no_wait_retry)
        questions = generator.generate(
            three_sources(), quiz_config(num_questions=3, question_types=["short_answer"]), "job-6"
        )
        assert len(questions) == 3

    def test_pre_split_chunks_are_used_as_given(self, question_llm, reporter, no_wait_retry):
        generator = QuestionGenerator(question_llm, reporter, retry_policy=no_wait_retry)
        sources = [ContentSource(source="slides.pdf", chunks=["First slide.", "", "Second slide."])]
        chunks = generator.collect_chunks(sources)
        assert [c.content for c in chunks] == ["First slide.", "Second slide."]
        assert [c.chunk_index for c in chunks] == [0, 1]

    def test_processed_file_fields_are_accepted(self, question_llm, reporter, no_wait_retry):
        generator = QuestionGenerator(question_llm, reporter, retry_policy=no_wait_retry)
        source = ContentSource.model_validate({"name": "lecture.pdf", "text": "Cells divide.", "chunks": []})
        chunks = generator.collect_chunks([source])
        assert source.source_name == "lecture.pdf"
        assert [(c.content, c.source_name) for c in chunks] == [("Cells divide.", "lecture.pdf")]

    def test_file_name_alias(self):
        source = ContentSource.model_validate({"fileName": "week3.mp3", "content": "Waves carry energy."})
        assert source.source_name == "week3.mp3"
        assert source.text() == "Waves carry energy."

    def test_expired_deadline_stops_generation(self, question_llm, reporter, no_wait_retry):
        generator = QuestionGenerator(question_llm, reporter, retry_policy=no_wait_retry)
        with pytest.raises(GenerationTimeoutError):
            generator.generate(three_sources(), quiz_config(), "job-7", deadline=time.monotonic() - 1)
        assert question_llm.prompts == []
