from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON


class GenerationJob(SQLModel, table=True):
    id: str = Field(primary_key=True)
    kind: str = Field(index=True, description="test or flashcards")
    status: str = Field(default="processing", index=True)
    title: Optional[str] = None
    message: Optional[str] = None
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    artifact_id: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class GenerationProgress(SQLModel, table=True):
    job_id: str = Field(primary_key=True, foreign_key="generationjob.id")
    progress: int = 0
    partial_results: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TestRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: Optional[str] = Field(default=None, index=True)
    title: str
    config: dict = Field(default_factory=dict, sa_column=Column(JSON))
    questions: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)


class FlashcardSet(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    job_id: Optional[str] = Field(default=None, index=True)
    title: str
    description: Optional[str] = None
    card_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)


class FlashcardRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    set_id: int = Field(foreign_key="flashcardset.id", index=True)
    front_content: str
    back_content: str
    position: int
    source: Optional[str] = None
    interval: int = 1
    ease_factor: float = 2.5
    review_count: int = 0
    next_review: Optional[datetime] = None
    last_review: Optional[datetime] = None
