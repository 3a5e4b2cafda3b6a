"""
Shared fixtures: in-memory database, scripted completion client, wired service
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["OPENAI_API_KEY"] = ""

import threading

import pytest

from studylab.db import init_db, make_engine
from studylab.dependencies import build_generation_service
from studylab.services.jobs import JobRunner
from studylab.services.llm import parse_json_object
from studylab.services.progress import ProgressReporter
from studylab.services.retry import RetryPolicy
from studylab.services.stores import ArtifactStore, JobStore, ProgressStore


class FakeCompletionClient:
    """Completion client driven by a handler(prompt, schema) -> dict | str.

    String results go through the real JSON parser, so "{broken" behaves like
    a malformed model response.
    """

    def __init__(self, handler):
        self.handler = handler
        self.prompts = []
        self._lock = threading.Lock()

    def complete_structured(self, prompt, example_schema):
        with self._lock:
            self.prompts.append(prompt)
        result = self.handler(prompt, example_schema)
        if isinstance(result, str):
            return parse_json_object(result)
        return result

    def calls_matching(self, *needles):
        return [p for p in self.prompts if all(n in p for n in needles)]


def mc_question(n, answer="B"):
    return {
        "question": f"Multiple choice question {n}?",
        "type": "multiple_choice",
        "options": ["A", "B", "C", "D"],
        "correctAnswer": answer,
        "explanation": f"Because {answer}",
    }


def sa_question(n, answer="Mitochondria"):
    return {
        "question": f"Short answer question {n}?",
        "type": "short_answer",
        "correctAnswer": answer,
        "explanation": "Stated in the text",
    }


def question_type_of(prompt):
    return "multiple_choice" if "all of type multiple_choice" in prompt else "short_answer"


def requested_count(prompt):
    # "Generate exactly N <type> question(s)"
    return int(prompt.split("Generate exactly ", 1)[1].split(" ", 1)[0])


def well_behaved_questions(prompt, schema):
    count = requested_count(prompt)
    make = mc_question if question_type_of(prompt) == "multiple_choice" else sa_question
    return {"questions": [make(i) for i in range(count)]}


def flashcards_for(prompt, schema, per_request=5):
    return {
        "flashcards": [
            {"front_content": f"Term {i}", "back_content": f"Definition {i}"}
            for i in range(per_request)
        ]
    }


@pytest.fixture
def engine():
    bind = make_engine("sqlite://")
    init_db(bind)
    yield bind
    bind.dispose()


@pytest.fixture
def no_wait_retry():
    return RetryPolicy(wait_multiplier=0, wait_max=0)


@pytest.fixture
def reporter(engine):
    return ProgressReporter(ProgressStore(engine))


@pytest.fixture
def job_store(engine):
    return JobStore(engine)


@pytest.fixture
def artifact_store(engine):
    return ArtifactStore(engine)


@pytest.fixture
def question_llm():
    return FakeCompletionClient(well_behaved_questions)


@pytest.fixture
def flashcard_llm():
    return FakeCompletionClient(flashcards_for)


@pytest.fixture
def runner():
    job_runner = JobRunner(max_workers=2)
    yield job_runner
    job_runner.shutdown(wait=True)


@pytest.fixture
def service(engine, question_llm, flashcard_llm, runner, no_wait_retry):
    return build_generation_service(
        engine,
        question_llm,
        flashcard_llm,
        runner=runner,
        retry_policy=no_wait_retry,
    )
