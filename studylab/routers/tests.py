from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from studylab.dependencies import get_generation_service
from studylab.errors import ValidationError
from studylab.middleware.rate_limit import ai_generation_limit
from studylab.schemas import ContentSource, JobStatus, TestScore
from studylab.services.jobs import GenerationService


router = APIRouter(prefix="/tests", tags=["tests"])


class GenerateTestRequest(BaseModel):
    title: Optional[str] = None
    num_questions: Optional[int] = None
    question_types: Optional[List[str]] = None
    difficulty: Optional[str] = None
    files: List[ContentSource] = Field(default_factory=list)


class ScoreRequest(BaseModel):
    questions: List[dict]
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)


class AnswersRequest(BaseModel):
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)


@router.post("/generate", status_code=status.HTTP_202_ACCEPTED)
@ai_generation_limit()
def generate_test(request: Request, body: GenerateTestRequest, service: GenerationService = Depends(get_generation_service)):
    if not body.files:
        raise HTTPException(status_code=400, detail="No files provided")
    config = body.model_dump(exclude={"files"})
    try:
        job_id = service.start_test_generation(body.files, config)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"job_id": job_id, "status": "processing"}


@router.get("/{job_id}/status", response_model=JobStatus)
def test_status(job_id: str, service: GenerationService = Depends(get_generation_service)):
    job_status = service.get_job_status(job_id)
    if job_status is None or job_status.kind != "test":
        raise HTTPException(status_code=404, detail="Test not found")
    return job_status


def _load_test(job_id: str, service: GenerationService):
    job_status = test_status(job_id, service)
    if job_status.status != "completed" or job_status.artifact_id is None:
        raise HTTPException(status_code=409, detail=f"Test is not ready (status: {job_status.status})")
    record = service.artifacts.get_test(job_status.artifact_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Test not found")
    return record


@router.get("/{job_id}")
def get_test(job_id: str, service: GenerationService = Depends(get_generation_service)):
    record = _load_test(job_id, service)
    return {
        "id": record.id,
        "job_id": record.job_id,
        "title": record.title,
        "config": record.config,
        "questions": record.questions,
        "created_at": record.created_at.isoformat(),
    }


@router.post("/score", response_model=TestScore)
def score(body: ScoreRequest, service: GenerationService = Depends(get_generation_service)):
    return service.score_completed_test(body.questions, body.answers)


@router.post("/{job_id}/score", response_model=TestScore)
def score_stored_test(job_id: str, body: AnswersRequest, service: GenerationService = Depends(get_generation_service)):
    record = _load_test(job_id, service)
    return service.score_completed_test(record.questions, body.answers)
