import json

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def client(monkeypatch) -> TestClient:
    # Import after environment setup so the app uses the extractive generator.
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("PROMPT_PREP_LANGUAGES", "ENGLISH,CHINESE")
    from prompt_prep.api.main import app

    return TestClient(app)


def test_knowledge_base_endpoints(client: TestClient) -> None:
    blog = client.post(
        "/kb/documents",
        json={"doc_type": "blog", "content": "Kotlin coroutines simplify structured concurrency on Android."},
    )
    assert blog.status_code == 201
    blog_id = blog.json()["id"]
    assert blog.json()["embedding_dimension"] == 256

    qa = client.post(
        "/kb/documents",
        json={"doc_type": "chat_qa", "question": "Where is Zion?", "answer": "Southwestern Utah."},
    )
    assert qa.status_code == 201
    assert qa.json()["content"].startswith("Question: Where is Zion?")

    assert client.post("/kb/documents", json={"doc_type": "chat_qa", "question": "Only?"}).status_code == 400
    assert client.post("/kb/documents", json={"doc_type": "podcast", "content": "x"}).status_code == 422

    listing = client.get("/kb/documents", params={"doc_type": "blog", "page": 0, "size": 50})
    assert listing.status_code == 200
    assert blog_id in [item["id"] for item in listing.json()["items"]]
    assert client.get("/kb/documents", params={"size": 0}).status_code == 400

    assert client.get(f"/kb/documents/{blog_id}").json()["doc_type"] == "blog"
    assert client.get("/kb/documents/999999").status_code == 404

    search = client.post("/kb/search", json={"query": "kotlin coroutines", "top_k": 2})
    assert search.status_code == 200
    items = search.json()["items"]
    assert 1 <= len(items) <= 2
    assert items[0]["document_id"] == blog_id
    assert client.post("/kb/search", json={"query": "   "}).status_code == 400


def test_prepare_then_cache_hit_and_trace(client: TestClient) -> None:
    client.post(
        "/kb/documents",
        json={
            "doc_type": "blog",
            "content": "A Toyota RAV4 insurance policy costs about 1500 dollars per year.",
        },
    )
    body = {"query": "How much does RAV4 insurance cost?", "user_id": "api-user-1"}

    first = client.post("/prepare", json=body)
    second = client.post("/prepare", json=body)

    assert first.status_code == 200
    payload = first.json()
    assert payload["language"]["iso_code"] == "en"
    assert payload["intent"] == "VEHICLE"
    assert payload["template_id"] == "vehicle-default"
    assert payload["cache_hit"] is False
    assert "[blog #" in payload["answer"]
    assert "{{CONTEXT}}" not in payload["final_prompt"]

    cached = second.json()
    assert cached["cache_hit"] is True
    assert cached["answer"] == payload["answer"]
    assert cached["cache_frequency"] == 2

    trace = client.get(f"/traces/{payload['trace_id']}")
    assert trace.status_code == 200
    assert [step["name"] for step in trace.json()["steps"]][0] == "unified-clean-correct"
    assert client.get("/traces/unknown-trace").status_code == 404


def test_prepare_rejects_blank_query(client: TestClient) -> None:
    assert client.post("/prepare", json={"query": "  "}).status_code == 400
    assert client.post("/prepare/stream", json={"query": ""}).status_code == 400
    assert client.post("/prepare", json={"query": "hi", "char_limit": 0}).status_code == 422


def test_prepare_stream_emits_ndjson(client: TestClient) -> None:
    body = {"query": "Plan a three day itinerary for Zion National Park"}
    response = client.post("/prepare/stream", json=body)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in response.text.splitlines() if line.strip()]
    assert events[0]["type"] == "step"
    assert events[0]["stage"] == "unified-clean-correct"
    assert any(event["type"] == "delta" for event in events)
    done = events[-1]
    assert done["type"] == "done"
    assert done["trace_id"]
    assert done["answer"]


def test_health_reports_pipeline_state(client: TestClient) -> None:
    client.post("/prepare", json={"query": "hello"})

    payload = client.get("/health").json()

    assert payload["status"] == "ok"
    assert payload["llm_configured"] is False
    assert payload["generator"] == "extractive"
    assert payload["stages"][0] == "unified-clean-correct"
    assert payload["stages"][-1] == "prompt-cache-record"
    assert payload["total_requests"] >= 1
