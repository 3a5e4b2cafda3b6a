import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Central runtime configuration, read from the environment once."""

    database_url: str = "sqlite:///./studylab.db"
    openai_api_key: str = ""
    test_model: str = "gpt-4o"
    flashcard_model: str = "gpt-4o"
    transcription_model: str = "whisper-1"
    request_timeout: float = 30.0
    test_job_timeout: float = 300.0
    flashcard_job_timeout: float = 50.0
    max_workers: int = 4
    blob_dir: str = "./blobs"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        test_model=os.getenv("STUDYLAB_TEST_MODEL", Settings.test_model),
        flashcard_model=os.getenv("STUDYLAB_FLASHCARD_MODEL", Settings.flashcard_model),
        transcription_model=os.getenv("STUDYLAB_TRANSCRIPTION_MODEL", Settings.transcription_model),
        request_timeout=_env_float("STUDYLAB_REQUEST_TIMEOUT", Settings.request_timeout),
        test_job_timeout=_env_float("STUDYLAB_TEST_JOB_TIMEOUT", Settings.test_job_timeout),
        flashcard_job_timeout=_env_float("STUDYLAB_FLASHCARD_JOB_TIMEOUT", Settings.flashcard_job_timeout),
        max_workers=_env_int("STUDYLAB_MAX_WORKERS", Settings.max_workers),
        blob_dir=os.getenv("STUDYLAB_BLOB_DIR", Settings.blob_dir),
        redis_url=os.getenv("REDIS_URL", Settings.redis_url),
        log_level=(os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper(),
    )


settings = load_settings()
