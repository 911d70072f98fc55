from datetime import date

import pytest
from fastapi.testclient import TestClient

from exam_paper.api.app import create_app
from exam_paper.api.auth_service import sign_token_claims
from exam_paper.api.container import AppContainer
from exam_paper.api.daily_limit import DailyRequestLimiter
from exam_paper.api.question_bank_store import QuestionBankStore
from exam_paper.api.question_errors import MissingCredentialError, UpstreamError

SECRET = "route-test-secret"
MATERIAL = "Newton's first law states that a body stays at rest or in uniform motion unless acted upon. " * 2
META = {"className": "9", "subject": "Physics", "chapter": "Laws of Motion", "unit": "Unit 3"}


class _FakeGateway:
    def __init__(self):
        self.replies = []
        self.calls = []

    def generate_text(self, prompt, *, kind=""):
        self.calls.append((kind, prompt))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def model_label(self):
        return "deepseek-chat"


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("AUTH_REQUIRED", "0")
    monkeypatch.setenv("DOCUMENT_GENERATION_ATTEMPTS", "1")
    gateway = _FakeGateway()
    container = AppContainer(
        store=QuestionBankStore(tmp_path / "data" / "question_bank.json"),
        gateway=gateway,
        limiter=DailyRequestLimiter(15, today=lambda: date(2024, 6, 1)),
        uploads_dir=tmp_path / "uploads",
        data_dir=tmp_path / "data",
    )
    client = TestClient(create_app(container))
    return client, container, gateway


def _bearer(sub, role):
    return {"Authorization": "Bearer " + sign_token_claims({"sub": sub, "role": role}, secret=SECRET)}


def test_health_reports_checks(env) -> None:
    client, _, _ = env
    res = client.get("/health")
    body = res.json()
    assert res.status_code == (200 if body["status"] == "ok" else 503)
    assert body["checks"]["question_bank"] == {"status": "ok", "questions": 0}
    assert res.headers.get("x-request-id")


def test_root_banner(env) -> None:
    client, _, _ = env
    res = client.get("/")
    assert res.status_code == 200
    assert res.text == "AI Exam Generator API is running"


def test_request_id_is_echoed(env) -> None:
    client, _, _ = env
    res = client.get("/health", headers={"x-request-id": "abc-123"})
    assert res.headers["x-request-id"] == "abc-123"


def test_upload_then_save_flow(env) -> None:
    client, container, gateway = env
    gateway.replies = ['[{"text": "State Newton\'s first law.", "type": "short", "answer": "Inertia"}]']

    res = client.post("/api/admin/upload", files={"file": ("law.txt", MATERIAL.encode("utf-8"), "text/plain")}, data=META)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["count"] == 1
    question = body["questions"][0]
    assert question["className"] == "9"
    assert question["type"] == "SHORT"
    assert gateway.calls[0][0] == "document_questions"
    assert list((container.uploads_dir).iterdir()) == []

    drafts = [dict(question, subject="Physics", chapter="Laws of Motion", unit="Unit 3")]
    res = client.post("/api/admin/save", json={"questions": drafts})
    assert res.json() == {
        "success": True,
        "count": 1,
        "skipped": 0,
        "message": "Successfully saved 1 new question(s).",
    }

    res = client.post("/api/admin/save", json={"questions": drafts})
    assert res.json()["count"] == 0
    assert res.json()["skipped"] == 1

    stored = container.store.list_questions()
    assert len(stored) == 1
    assert stored[0]["topic"] == "Unit 3"


def test_numeric_answers_survive_upload_then_save(env) -> None:
    client, container, gateway = env
    gateway.replies = ['[{"text": "What is 2+2?", "answer": 4, "options": [3, 4, 5]}]']

    res = client.post("/api/admin/upload", files={"file": ("sums.txt", MATERIAL.encode("utf-8"), "text/plain")}, data=META)
    assert res.status_code == 200, res.text
    question = res.json()["questions"][0]
    assert question["answer"] == "4"
    assert question["options"] == ["3", "4", "5"]

    res = client.post("/api/admin/save", json={"questions": [question, {"text": "What is 3+3?", "answer": 6}]})
    assert res.status_code == 200, res.text
    assert res.json()["count"] == 2
    answers = {q["text"]: q["answer"] for q in container.store.list_questions()}
    assert answers == {"What is 2+2?": "4", "What is 3+3?": "6"}


def test_upload_errors(env) -> None:
    client, _, gateway = env
    res = client.post("/api/admin/upload", data=META)
    assert res.status_code == 400
    assert res.json() == {"error": "No file uploaded"}

    res = client.post("/api/admin/upload", files={"file": ("law.txt", b"abc", "text/plain")}, data=dict(META, chapter=""))
    assert res.status_code == 400
    assert res.json()["error"] == "Missing metadata (className, subject, chapter, unit)"

    res = client.post("/api/admin/upload", files={"file": ("deck.pptx", b"abc", "application/octet-stream")}, data=META)
    assert res.status_code == 400
    assert res.json()["error"] == "Unsupported file type. Use PDF, DOCX, or TXT."

    res = client.post("/api/admin/upload", files={"file": ("law.txt", b"short", "text/plain")}, data=META)
    assert res.status_code == 500
    assert "text" in res.json()["error"].lower()
    assert gateway.calls == []


def test_upload_zero_questions_is_422(env) -> None:
    client, _, gateway = env
    gateway.replies = ["[]"]
    res = client.post("/api/admin/upload", files={"file": ("law.txt", MATERIAL.encode("utf-8"), "text/plain")}, data=META)
    assert res.status_code == 422
    assert res.json()["error"] == "AI returned 0 questions. The document might not contain enough relevant text."


def test_upload_missing_credential_is_500(env) -> None:
    client, _, gateway = env
    gateway.replies = [MissingCredentialError()]
    res = client.post("/api/admin/upload", files={"file": ("law.txt", MATERIAL.encode("utf-8"), "text/plain")}, data=META)
    assert res.status_code == 500
    assert res.json() == {"error": "OpenRouter API Key is missing in environment variables."}


def test_save_requires_questions(env) -> None:
    client, _, _ = env
    for payload in ({}, {"questions": []}):
        res = client.post("/api/admin/save", json=payload)
        assert res.status_code == 400
        assert res.json() == {"error": "No questions provided"}


def test_save_store_failure_is_500(env, monkeypatch) -> None:
    client, container, _ = env

    def broken(payload):
        raise OSError("read-only file system")

    monkeypatch.setattr(container.store, "create_question", broken)
    res = client.post("/api/admin/save", json={"questions": [{"text": "Q?"}]})
    assert res.status_code == 500
    assert res.json()["error"] == "Failed to save questions: read-only file system"


def test_teacher_generate_flow_and_limits(env) -> None:
    client, _, gateway = env
    payload = {"className": "7", "subject": "Math", "instruction": "Fractions MCQs", "count": 2}
    gateway.replies = ['[{"question": "1/2 + 1/4 = ?", "type": "MCQ", "options": ["3/4", "1"], "answer": "3/4"}]'] * 16

    res = client.post("/api/ai/teacher-generate", json=payload)
    assert res.status_code == 200
    body = res.json()
    assert body["model"] == "deepseek-chat"
    assert body["provider"] == "Shifu"
    assert body["questions"][0]["options"] == ["3/4", "1"]
    assert gateway.calls[0][0] == "teacher_ai"

    for _ in range(14):
        assert client.post("/api/ai/teacher-generate", json=payload).status_code == 200
    res = client.post("/api/ai/teacher-generate", json=payload)
    assert res.status_code == 429
    assert "Daily AI generation limit reached" in res.json()["error"]


def test_teacher_generate_validation_and_upstream_errors(env) -> None:
    client, _, gateway = env
    res = client.post("/api/ai/teacher-generate", json={"className": "7", "subject": "Math"})
    assert res.status_code == 400
    assert res.json() == {"error": "Missing required context (Class, Subject, or Instructions)"}

    gateway.replies = [UpstreamError()]
    res = client.post("/api/ai/teacher-generate", json={"className": "7", "subject": "Math", "instruction": "x"})
    assert res.status_code == 500
    assert res.json() == {"error": "AI Generation failed via OpenRouter."}

    gateway.replies = [""]
    res = client.post("/api/ai/teacher-generate", json={"className": "7", "subject": "Math", "instruction": "x"})
    assert res.status_code == 500
    assert res.json()["error"].startswith("AI returned an empty response.")


def test_teacher_generate_accepts_loose_field_types(env) -> None:
    client, _, gateway = env
    gateway.replies = ['[{"question": "Solve 2x = 4", "answer": "2"}]']
    res = client.post(
        "/api/ai/teacher-generate",
        json={"className": 9, "subject": "Math", "instruction": "Linear equations", "count": 2.5},
    )
    assert res.status_code == 200, res.text
    assert "exactly 2 exam questions for Class 9 Math" in gateway.calls[0][1]


def test_malformed_body_is_400_with_error_message(env) -> None:
    client, _, gateway = env
    res = client.post("/api/admin/save", json={"questions": "not-a-list"})
    assert res.status_code == 400
    body = res.json()
    assert set(body) == {"error"}
    assert body["error"].startswith("questions")

    res = client.post("/api/ai/teacher-generate", content=b"{broken", headers={"content-type": "application/json"})
    assert res.status_code == 400
    assert isinstance(res.json()["error"], str)
    assert gateway.calls == []


def test_question_bank_crud(env) -> None:
    client, _, _ = env
    res = client.post("/api/question-bank", json={"text": "What is 2+2?"})
    assert res.status_code == 400
    assert res.json() == {"error": "Text and Type are required"}

    created = client.post(
        "/api/question-bank",
        json={"text": "What is 2+2?", "type": "MCQ", "options": ["3", "4"], "subject": "Math", "className": "1"},
    ).json()
    assert created["id"] == 1
    assert created["options"] == ["3", "4"]

    res = client.post("/api/question-bank", json={"text": "what is 2+2", "type": "SHORT"})
    assert res.status_code == 409

    client.post("/api/question-bank", json={"text": "Name a prime.", "type": "SHORT", "subject": "Mathematics"})
    listed = client.get("/api/question-bank", params={"subject": "math"}).json()
    assert [q["text"] for q in listed] == ["Name a prime.", "What is 2+2?"]
    assert [q["text"] for q in client.get("/api/question-bank", params={"type": "MCQ"}).json()] == ["What is 2+2?"]

    res = client.put("/api/question-bank/1", json={"answer": "4"})
    assert res.status_code == 200
    assert res.json()["answer"] == "4"
    assert res.json()["text"] == "What is 2+2?"

    assert client.put("/api/question-bank/99", json={"answer": "x"}).status_code == 404
    assert client.delete("/api/question-bank/1").json() == {"message": "Question deleted successfully"}
    res = client.delete("/api/question-bank/1")
    assert res.status_code == 404
    assert res.json() == {"error": "Question not found"}


def test_auth_enforced_when_required(env, monkeypatch) -> None:
    client, _, gateway = env
    monkeypatch.setenv("AUTH_REQUIRED", "1")
    monkeypatch.setenv("AUTH_TOKEN_SECRET", SECRET)

    assert client.get("/health").status_code in (200, 503)

    res = client.post("/api/admin/save", json={"questions": [{"text": "Q?"}]})
    assert res.status_code == 401
    assert res.json() == {"error": "Authentication required"}
    assert res.headers.get("x-request-id")

    res = client.post("/api/admin/save", json={"questions": [{"text": "Q?"}]}, headers=_bearer("t1", "teacher"))
    assert res.status_code == 403
    assert res.json() == {"error": "Access denied. Admins only."}

    res = client.post("/api/admin/save", json={"questions": [{"text": "Q?"}]}, headers=_bearer("a1", "admin"))
    assert res.status_code == 200
    assert res.json()["count"] == 1

    assert client.get("/api/question-bank", headers=_bearer("t1", "teacher")).status_code == 200
    assert client.delete("/api/question-bank/1", headers=_bearer("t1", "teacher")).status_code == 403


def test_rate_limit_is_per_authenticated_user(env, monkeypatch) -> None:
    client, container, gateway = env
    monkeypatch.setenv("AUTH_REQUIRED", "1")
    monkeypatch.setenv("AUTH_TOKEN_SECRET", SECRET)
    gateway.replies = ['[{"question": "Q"}]'] * 2
    payload = {"className": "7", "subject": "Math", "instruction": "x"}

    assert client.post("/api/ai/teacher-generate", json=payload, headers=_bearer("t1", "teacher")).status_code == 200
    assert client.post("/api/ai/teacher-generate", json=payload, headers=_bearer("t2", "teacher")).status_code == 200
    assert container.limiter.tracked_keys() == ["t1-2024-06-01", "t2-2024-06-01"]
