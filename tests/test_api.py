import pytest
from fastapi.testclient import TestClient
from jose import jwt

from practicelab.main import app
from practicelab.models import Attempt, CaseStudy
from practicelab.providers import get_completion_client, get_embedder, get_generation_guard, get_store
from practicelab.settings import settings

from conftest import case_json, evaluation_json


@pytest.fixture
def client(store, embedder, llm, monkeypatch):
    monkeypatch.setattr(settings, "supabase_jwt_secret", None)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_embedder] = lambda: embedder
    app.dependency_overrides[get_completion_client] = lambda: llm
    app.dependency_overrides[get_generation_guard] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_unseen_case_serves_existing_ethics_case(client, add_case):
    case = add_case("Late night lab results", "lab", category="Ethics", level=1, questions=4)

    r = client.get("/cases/unseen", params={"user_id": "user-1", "category": "Ethics", "level": "1"})

    assert r.status_code == 200
    data = r.json()
    assert data["source"] == "existing"
    assert data["case"]["id"] == case.id
    assert 3 <= len(data["case"]["questions"]) <= 5
    assert "embedding" not in data["case"]


def test_unseen_case_generates_when_bucket_empty(client, llm):
    llm.queue(case_json("Bakery night shift", "bakery"))

    r = client.get("/cases/unseen", params={"user_id": "user-1", "category": "Ethics", "level": 1})

    assert r.status_code == 200
    assert r.json()["source"] == "generated"
    assert r.json()["case"]["category"] == "Ethics"


@pytest.mark.parametrize(
    "params",
    [
        {"category": "Ethics", "level": "1"},
        {"user_id": "u", "category": "Ethics", "level": "7"},
        {"user_id": "u", "category": "Ethics", "level": "one"},
        {"user_id": "u", "category": "Ethics"},
        {"user_id": "u", "level": "1"},
    ],
)
def test_unseen_case_validation(client, params):
    r = client.get("/cases/unseen", params=params)
    assert r.status_code == 400
    assert r.json()["error_code"] == "VALIDATION_ERROR"


def test_unseen_case_reports_no_case_available(client, llm, add_case, db_session):
    llm.queue("not json", "still not json", "nope")
    r = client.get("/cases/unseen", params={"user_id": "u", "category": "Ethics", "level": 1})
    assert r.status_code == 503
    assert r.json()["error_code"] == "NO_CASE_AVAILABLE"
    assert db_session.query(CaseStudy).count() == 0


def test_generate_case_endpoint(client, llm, add_case):
    add_case("Flooded river town", "river")
    llm.queue(case_json("Robot referee", "robot"))

    r = client.post("/cases/generate", json={"category": "Ethics", "level": 1})

    assert r.status_code == 200
    assert r.json()["case"]["title"] == "Robot referee"
    assert r.json()["best_similarity"] == pytest.approx(0.0, abs=1e-6)


def test_generate_case_novelty_exhausted(client, llm, add_case, db_session):
    add_case("Flooded river town", "river")
    llm.queue(*(case_json(f"River copy {i}", "river") for i in range(3)))

    r = client.post("/cases/generate", json={"category": "Ethics", "level": 1})

    assert r.status_code == 503
    assert r.json()["error_code"] == "NOVELTY_EXHAUSTED"
    assert db_session.query(CaseStudy).count() == 1


def test_generate_case_requires_fields(client):
    r = client.post("/cases/generate", json={"category": "Ethics"})
    assert r.status_code == 400


def test_evaluate_endpoint_persists_attempt(client, llm, add_case, db_session):
    case = add_case("Coffee and exam scores", "coffee", category="Research Methods", level=0)
    llm.queue(evaluation_json(score=90.7, is_correct=True))

    r = client.post(
        "/evaluate",
        json={
            "user_id": "user-1",
            "case_id": case.id,
            "answer_text": "insufficient evidence to conclude causation",
            "question_index": 0,
        },
    )

    assert r.status_code == 200
    data = r.json()
    assert data["evaluation"]["is_correct"] is True
    assert data["attempt"]["question_index"] == 0
    assert data["evaluation"]["score"] == 91
    assert data["attempt"]["score"] == 91
    assert data["next_question_index"] == 1
    assert data["is_complete"] is False
    assert data["total_questions"] == len(case.questions)
    assert db_session.query(Attempt).count() == 1


def test_evaluate_endpoint_failures_write_nothing(client, llm, add_case, db_session):
    case = add_case()
    r = client.post("/evaluate", json={"user_id": "u", "case_id": case.id, "answer_text": "a", "question_index": 9})
    assert r.status_code == 400

    r = client.post("/evaluate", json={"user_id": "u", "case_id": case.id, "answer_text": "a"})
    assert r.status_code == 400

    r = client.post("/evaluate", json={"user_id": "u", "case_id": "nope", "answer_text": "a", "question_index": 0})
    assert r.status_code == 404

    llm.queue("The student is right!")
    r = client.post("/evaluate", json={"user_id": "u", "case_id": case.id, "answer_text": "a", "question_index": 0})
    assert r.status_code == 502
    assert r.json()["error_code"] == "MALFORMED_MODEL_OUTPUT"

    assert db_session.query(Attempt).count() == 0


def test_categories_case_and_progress(client, llm, add_case):
    case = add_case("Flooded river town", "river")
    add_case("Zoo river case", "river", category="Zoology")

    assert client.get("/cases/categories").json() == {"categories": ["Ethics", "Zoology"]}
    assert client.get(f"/cases/{case.id}").json()["case"]["title"] == "Flooded river town"
    assert client.get("/cases/missing").status_code == 404

    progress = client.get(f"/cases/{case.id}/progress", params={"user_id": "user-1"}).json()
    assert progress["next_question_index"] == 0
    assert progress["attempts"] == []

    llm.queue(evaluation_json(is_correct=True))
    client.post("/evaluate", json={"user_id": "user-1", "case_id": case.id, "answer_text": "a", "question_index": 0})

    progress = client.get(f"/cases/{case.id}/progress", params={"user_id": "user-1"}).json()
    assert progress["next_question_index"] == 1
    assert progress["is_complete"] is False
    assert progress["total_questions"] == 3
    assert len(progress["attempts"]) == 1


def test_health_and_info(client):
    assert client.get("/health").json() == {"status": "ok", "database": True, "has_cases": False}
    info = client.get("/info").json()
    assert info["novelty_threshold"] == settings.novelty_threshold
    assert info["token_verification"] is False


def _token(sub, secret="s3cret"):
    return jwt.encode({"sub": sub, "aud": "authenticated"}, secret, algorithm="HS256")


def test_token_verification(client, add_case, monkeypatch):
    monkeypatch.setattr(settings, "supabase_jwt_secret", "s3cret")
    add_case()
    params = {"user_id": "user-1", "category": "Ethics", "level": 1}

    assert client.get("/cases/unseen", params=params).status_code == 401

    bad = {"Authorization": f"Bearer {_token('user-1', secret='wrong')}"}
    assert client.get("/cases/unseen", params=params, headers=bad).status_code == 401

    other = {"Authorization": f"Bearer {_token('user-2')}"}
    r = client.get("/cases/unseen", params=params, headers=other)
    assert r.status_code == 403

    mine = {"Authorization": f"Bearer {_token('user-1')}"}
    assert client.get("/cases/unseen", params=params, headers=mine).status_code == 200
    assert client.get("/auth/me", headers=mine).json()["user"]["user_id"] == "user-1"
