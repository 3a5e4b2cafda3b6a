"""
Integration tests for API endpoints
"""
import pytest
from fastapi.testclient import TestClient

from studylab.dependencies import get_blob_store, get_engine, get_generation_service
from studylab.main import app
from studylab.middleware.rate_limit import limiter
from studylab.services import extraction
from studylab.services.stores import FileBlobStore

SOURCES = [
    {"source": "cells.pdf", "content": "Cells are the basic unit of life."},
    {"source": "energy.pdf", "content": "Mitochondria produce most of the cell's energy."},
]

QUIZ = {
    "title": "Biology quiz",
    "num_questions": 5,
    "question_types": ["short_answer"],
    "difficulty": "easy",
}


@pytest.fixture
def client(service, engine, tmp_path):
    limiter.enabled = False
    app.dependency_overrides[get_generation_service] = lambda: service
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_blob_store] = lambda: FileBlobStore(str(tmp_path))
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    limiter.enabled = True


class TestHealthEndpoints:
    def test_health_check(self, client):
        """Test health check endpoint"""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["blob_store"]["status"] == "healthy"
        assert data["checks"]["jobs"]["active"] == 0
        assert "timestamp" in data
        assert "X-Process-Time" in response.headers

    def test_metrics_endpoint(self, client):
        """Test metrics endpoint"""
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "http_requests_total" in response.text


class TestFileEndpoints:
    def test_unsupported_file(self, client):
        response = client.post("/files/process", files={"file": ("notes.txt", b"plain text", "text/plain")})
        assert response.status_code == 400
        assert "Unsupported file type" in response.json()["detail"]

    def test_invalid_pdf(self, client):
        response = client.post("/files/process", files={"file": ("notes.pdf", b"not a pdf", "application/pdf")})
        assert response.status_code == 400

    def test_audio_is_transcribed_and_chunked(self, client, monkeypatch):
        monkeypatch.setattr(extraction, "transcribe_audio", lambda data, name: "Entropy always increases. " * 200)
        response = client.post("/files/process", files={"file": ("lecture.mp3", b"ID3-api-test", "audio/mpeg")})

        assert response.status_code == 200
        data = response.json()
        assert data["info"]["type"] == "audio_transcription"
        assert len(data["chunks"]) > 1
        assert all(len(chunk) <= 2000 for chunk in data["chunks"])

        again = client.post(f"/files/{data['file_id']}/process", params={"name": "lecture.mp3"})
        assert again.status_code == 200
        assert again.json()["text"] == data["text"]

    def test_failed_extraction_stores_nothing(self, client, tmp_path):
        response = client.post("/files/process", files={"file": ("notes.pdf", b"not a pdf", "application/pdf")})
        assert response.status_code == 400
        assert list(tmp_path.iterdir()) == []

    def test_reprocess_missing_file(self, client):
        response = client.post("/files/nothing-here.pdf/process", params={"name": "x.pdf"})
        assert response.status_code == 404


class TestTestEndpoints:
    def test_invalid_config_is_rejected(self, client):
        response = client.post("/tests/generate", json=dict(QUIZ, num_questions=0, files=SOURCES))
        assert response.status_code == 422
        assert response.json()["detail"] == "Number of questions must be at least 1"

    def test_files_are_required(self, client):
        response = client.post("/tests/generate", json=QUIZ)
        assert response.status_code == 400

    def test_generate_poll_fetch_and_score(self, client, service):
        response = client.post("/tests/generate", json=dict(QUIZ, files=SOURCES))
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert response.json()["status"] == "processing"

        service.wait_for(job_id, timeout=10)
        status = client.get(f"/tests/{job_id}/status").json()
        assert status["status"] == "completed"
        assert status["progress"] == 100

        test = client.get(f"/tests/{job_id}").json()
        assert len(test["questions"]) == 5

        answers = {q["id"]: q["correctAnswer"].upper() for q in test["questions"][:4]}
        score = client.post(f"/tests/{job_id}/score", json={"answers": answers}).json()
        assert score["correct_answers"] == 4
        assert score["score"] == 80

    def test_processed_file_can_be_sent_back(self, client, service, monkeypatch):
        monkeypatch.setattr(extraction, "transcribe_audio", lambda data, name: "Entropy always increases. " * 200)
        processed = client.post("/files/process", files={"file": ("lecture.mp3", b"ID3-roundtrip", "audio/mpeg")})
        text_only = {key: value for key, value in processed.json().items() if key != "chunks"}

        for file_entry in (processed.json(), text_only):
            response = client.post("/tests/generate", json=dict(QUIZ, files=[file_entry]))
            assert response.status_code == 202
            job_id = response.json()["job_id"]
            service.wait_for(job_id, timeout=10)

            test = client.get(f"/tests/{job_id}").json()
            assert len(test["questions"]) == 5
            assert {q["source"] for q in test["questions"]} == {"lecture.mp3"}

    def test_unfinished_test_is_not_served(self, client, job_store):
        job_store.create("pending", "test", title="Later")
        response = client.get("/tests/pending")
        assert response.status_code == 409

    def test_unknown_job(self, client):
        assert client.get("/tests/missing/status").status_code == 404

    def test_score_inline_questions(self, client):
        payload = {
            "questions": [{"id": "q1", "correctAnswer": "Paris", "explanation": ""}],
            "answers": {"q1": " paris "},
        }
        response = client.post("/tests/score", json=payload)
        assert response.status_code == 200
        assert response.json()["score"] == 100


class TestFlashcardEndpoints:
    def test_missing_cards_per_source(self, client):
        response = client.post("/flashcards/generate", json={"files": SOURCES})
        assert response.status_code == 422
        assert "cards_per_source" in response.json()["detail"]

    def test_generate_review_and_stats(self, client, service):
        response = client.post("/flashcards/generate", json={"cards_per_source": 2, "files": SOURCES})
        assert response.status_code == 202
        job_id = response.json()["job_id"]

        service.wait_for(job_id, timeout=10)
        status = client.get(f"/flashcards/{job_id}/status").json()
        assert status["status"] == "completed"
        set_id = status["artifact_id"]

        flashcard_set = client.get(f"/flashcards/sets/{set_id}").json()
        assert flashcard_set["card_count"] == 4
        assert [c["position"] for c in flashcard_set["flashcards"]] == [1, 2, 3, 4]

        card_id = flashcard_set["flashcards"][0]["id"]
        reviewed = client.post(f"/flashcards/cards/{card_id}/review", json={"is_correct": True}).json()
        assert reviewed["interval"] == 1
        assert reviewed["review_count"] == 1

        due = client.get(f"/flashcards/sets/{set_id}/due").json()["due"]
        assert card_id not in [c["id"] for c in due]
        assert len(due) == 3

        stats = client.get(f"/flashcards/sets/{set_id}/stats").json()
        assert stats["total_cards"] == 4
        assert stats["total_reviews"] == 1

    def test_test_job_is_not_a_flashcard_job(self, client, service):
        job_id = client.post("/tests/generate", json=dict(QUIZ, files=SOURCES)).json()["job_id"]
        service.wait_for(job_id, timeout=10)
        assert client.get(f"/flashcards/{job_id}/status").status_code == 404

    def test_unknown_set_and_card(self, client):
        assert client.get("/flashcards/sets/999").status_code == 404
        assert client.post("/flashcards/cards/999/review", json={"is_correct": False}).status_code == 404
