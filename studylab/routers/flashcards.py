from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from studylab.dependencies import get_generation_service
from studylab.errors import ValidationError
from studylab.middleware.rate_limit import ai_generation_limit
from studylab.models import FlashcardRecord
from studylab.schemas import ContentSource, JobStatus
from studylab.services.jobs import GenerationService
from studylab.services.spaced_repetition import calculate_stats, get_due_cards


router = APIRouter(prefix="/flashcards", tags=["flashcards"])


class GenerateFlashcardsRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    cards_per_source: Optional[int] = None
    focus: Optional[str] = None
    files: List[ContentSource] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    is_correct: bool


def _card_out(card: FlashcardRecord) -> dict:
    return {
        "id": card.id,
        "set_id": card.set_id,
        "front_content": card.front_content,
        "back_content": card.back_content,
        "position": card.position,
        "source": card.source,
        "interval": card.interval,
        "ease_factor": card.ease_factor,
        "review_count": card.review_count,
        "next_review": card.next_review.isoformat() if card.next_review else None,
        "last_review": card.last_review.isoformat() if card.last_review else None,
    }


def _require_set(set_id: int, service: GenerationService):
    flashcard_set = service.artifacts.get_flashcard_set(set_id)
    if flashcard_set is None:
        raise HTTPException(status_code=404, detail="Flashcard set not found")
    return flashcard_set


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
@ai_generation_limit()
def generate_flashcards(request: Request, body: GenerateFlashcardsRequest, service: GenerationService = Depends(get_generation_service)):
    if not body.files:
        raise HTTPException(status_code=400, detail="No files provided")
    config = body.model_dump(exclude={"files"}, exclude_none=True)
    try:
        job_id = service.start_flashcard_generation(body.files, config)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"job_id": job_id, "status": "processing"}


@router.get("/{job_id}/status", response_model=JobStatus)
def flashcard_status(job_id: str, service: GenerationService = Depends(get_generation_service)):
    job_status = service.get_job_status(job_id)
    if job_status is None or job_status.kind != "flashcards":
        raise HTTPException(status_code=404, detail="Flashcard job not found")
    return job_status


@router.get("/sets/{set_id}")
def get_flashcard_set(set_id: int, service: GenerationService = Depends(get_generation_service)):
    flashcard_set = _require_set(set_id, service)
    cards = service.artifacts.list_flashcards(set_id)
    return {
        "id": flashcard_set.id,
        "title": flashcard_set.title,
        "description": flashcard_set.description,
        "card_count": flashcard_set.card_count,
        "created_at": flashcard_set.created_at.isoformat(),
        "flashcards": [_card_out(c) for c in cards],
    }


@router.get("/sets/{set_id}/due")
def due_flashcards(set_id: int, service: GenerationService = Depends(get_generation_service)):
    _require_set(set_id, service)
    cards = get_due_cards(service.artifacts.list_flashcards(set_id))
    return {"set_id": set_id, "due": [_card_out(c) for c in cards]}


@router.get("/sets/{set_id}/stats")
def flashcard_stats(set_id: int, service: GenerationService = Depends(get_generation_service)):
    _require_set(set_id, service)
    stats = calculate_stats(service.artifacts.list_flashcards(set_id))
    if stats is None:
        raise HTTPException(status_code=404, detail="No flashcards in set")
    return stats


@router.post("/cards/{card_id}/review")
def review_card(card_id: int, body: ReviewRequest, service: GenerationService = Depends(get_generation_service)):
    """Record one review and reschedule the card"""
    card = service.review_flashcard(card_id, body.is_correct)
    if card is None:
        raise HTTPException(status_code=404, detail="Flashcard not found")
    return _card_out(card)
