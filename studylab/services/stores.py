"""
Persistence for generation jobs, progress snapshots and finished artifacts
"""
from __future__ import annotations

import hashlib
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import update
from sqlmodel import Session, select

from studylab.models import FlashcardRecord, FlashcardSet, GenerationJob, GenerationProgress, TestRecord

logger = structlog.get_logger()


class JobStore:
    def __init__(self, engine):
        self.engine = engine

    def create(self, job_id: str, kind: str, title: Optional[str] = None, config: Optional[dict] = None) -> GenerationJob:
        job = GenerationJob(id=job_id, kind=kind, status="processing", title=title, config=config or {})
        with Session(self.engine) as session:
            session.add(job)
            session.commit()
            session.refresh(job)
        logger.info("job_created", job_id=job_id, kind=kind)
        return job

    def update(self, job_id: str, **patch: Any) -> Optional[GenerationJob]:
        with Session(self.engine) as session:
            job = session.get(GenerationJob, job_id)
            if job is None:
                return None
            for key, value in patch.items():
                setattr(job, key, value)
            job.updated_at = datetime.utcnow()
            session.add(job)
            session.commit()
            session.refresh(job)
            return job

    def transition(self, job_id: str, from_status: str, **patch: Any) -> bool:
        """Apply `patch` only if the job is still in `from_status`; returns whether it was applied."""
        statement = (
            update(GenerationJob)
            .where(GenerationJob.id == job_id, GenerationJob.status == from_status)
            .values(updated_at=datetime.utcnow(), **patch)
        )
        with self.engine.begin() as conn:
            result = conn.execute(statement)
        return result.rowcount == 1

    def get(self, job_id: str) -> Optional[GenerationJob]:
        with Session(self.engine) as session:
            return session.get(GenerationJob, job_id)


class ProgressStore:
    """One row per job; every upsert overwrites the previous snapshot."""

    def __init__(self, engine):
        self.engine = engine

    def upsert(self, job_id: str, progress: int, partial_results: List[dict]) -> None:
        with Session(self.engine) as session:
            row = session.get(GenerationProgress, job_id)
            if row is None:
                row = GenerationProgress(job_id=job_id)
            row.progress = progress
            row.partial_results = list(partial_results)
            row.updated_at = datetime.utcnow()
            session.add(row)
            session.commit()

    def get(self, job_id: str) -> Optional[GenerationProgress]:
        with Session(self.engine) as session:
            return session.get(GenerationProgress, job_id)


class ArtifactStore:
    def __init__(self, engine):
        self.engine = engine

    def save(self, kind: str, payload: Dict[str, Any]) -> int:
        if kind == "test":
            return self._save_test(payload)
        if kind == "flashcards":
            return self._save_flashcard_set(payload)
        raise ValueError(f"Unknown artifact kind: {kind}")

    def _save_test(self, payload: Dict[str, Any]) -> int:
        record = TestRecord(
            job_id=payload.get("job_id"),
            title=payload["title"],
            config=payload.get("config") or {},
            questions=payload.get("questions") or [],
        )
        with Session(self.engine) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record.id

    def _save_flashcard_set(self, payload: Dict[str, Any]) -> int:
        cards = payload.get("flashcards") or []
        flashcard_set = FlashcardSet(
            job_id=payload.get("job_id"),
            title=payload.get("title") or "New Flashcard Set",
            description=payload.get("description"),
            card_count=len(cards),
        )
        with Session(self.engine) as session:
            session.add(flashcard_set)
            session.commit()
            session.refresh(flashcard_set)
            for card in cards:
                session.add(FlashcardRecord(
                    set_id=flashcard_set.id,
                    front_content=card["front_content"],
                    back_content=card["back_content"],
                    position=card["position"],
                    source=card.get("source"),
                ))
            session.commit()
            return flashcard_set.id

    def delete(self, kind: str, artifact_id: int) -> None:
        with Session(self.engine) as session:
            if kind == "test":
                record = session.get(TestRecord, artifact_id)
            else:
                for card in session.exec(select(FlashcardRecord).where(FlashcardRecord.set_id == artifact_id)).all():
                    session.delete(card)
                record = session.get(FlashcardSet, artifact_id)
            if record is not None:
                session.delete(record)
            session.commit()
        logger.info("artifact_deleted", kind=kind, artifact_id=artifact_id)

    def get_test(self, test_id: int) -> Optional[TestRecord]:
        with Session(self.engine) as session:
            return session.get(TestRecord, test_id)

    def get_flashcard_set(self, set_id: int) -> Optional[FlashcardSet]:
        with Session(self.engine) as session:
            return session.get(FlashcardSet, set_id)

    def list_flashcards(self, set_id: int) -> List[FlashcardRecord]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(FlashcardRecord)
                .where(FlashcardRecord.set_id == set_id)
                .order_by(FlashcardRecord.position)
            ).all())

    def get_flashcard(self, card_id: int) -> Optional[FlashcardRecord]:
        with Session(self.engine) as session:
            return session.get(FlashcardRecord, card_id)

    def update_flashcard(self, card_id: int, **patch: Any) -> Optional[FlashcardRecord]:
        with Session(self.engine) as session:
            card = session.get(FlashcardRecord, card_id)
            if card is None:
                return None
            for key, value in patch.items():
                setattr(card, key, value)
            session.add(card)
            session.commit()
            session.refresh(card)
            return card


class FileBlobStore:
    """Byte-buffer store on the local filesystem: put(bytes) -> locator, get(locator) -> bytes."""

    def __init__(self, root: str):
        self.root = Path(root)

    def put(self, data: bytes, file_name: str = "") -> str:
        suffix = Path(file_name).suffix.lower()
        digest = hashlib.sha256(data).hexdigest()[:16]
        locator = f"{uuid.uuid4().hex}-{digest}{suffix}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / locator).write_bytes(data)
        logger.info("blob_stored", locator=locator, size=len(data))
        return locator

    def get(self, locator: str) -> bytes:
        path = self.root / os.path.basename(locator)
        if not path.is_file():
            raise KeyError(locator)
        return path.read_bytes()
