from functools import lru_cache

from studylab.config import settings
from studylab.db import engine
from studylab.services.flashcard_generation import FlashcardGenerator
from studylab.services.jobs import GenerationService, JobRunner
from studylab.services.llm import OpenAICompletionClient
from studylab.services.progress import ProgressReporter
from studylab.services.question_generation import TestQuestionGenerator
from studylab.services.stores import ArtifactStore, FileBlobStore, JobStore, ProgressStore


def build_generation_service(bind, test_client, flashcard_client, runner=None, retry_policy=None) -> GenerationService:
    """Wire stores, generators and a worker pool around one database engine."""
    reporter = ProgressReporter(ProgressStore(bind))
    return GenerationService(
        jobs=JobStore(bind),
        reporter=reporter,
        artifacts=ArtifactStore(bind),
        test_generator=TestQuestionGenerator(test_client, reporter, retry_policy=retry_policy),
        flashcard_generator=FlashcardGenerator(flashcard_client, reporter, retry_policy=retry_policy),
        runner=runner or JobRunner(max_workers=settings.max_workers),
        test_timeout=settings.test_job_timeout,
        flashcard_timeout=settings.flashcard_job_timeout,
    )


@lru_cache()
def get_generation_service() -> GenerationService:
    return build_generation_service(
        engine,
        OpenAICompletionClient(model=settings.test_model, temperature=0.2, timeout=settings.request_timeout),
        OpenAICompletionClient(model=settings.flashcard_model, temperature=0.7, timeout=settings.request_timeout),
    )


@lru_cache()
def get_blob_store() -> FileBlobStore:
    return FileBlobStore(settings.blob_dir)


def get_engine():
    return engine
