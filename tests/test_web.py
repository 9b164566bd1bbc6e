import copy
import threading

import pytest

from chunkwise.config import DEFAULT_CONFIG
from chunkwise.web import create_app, tasks

from conftest import FakeTranslator, doc, heading, paragraph, three_chunk_document

SMALL_CHUNKS = {
    "minChunkTokens": 1000,
    "targetChunkTokens": 4000,
    "maxChunkTokens": 6000,
    "overheadPerChunk": 0,
    "expansionFactor": 1.0,
}


@pytest.fixture
def client():
    app = create_app(copy.deepcopy(DEFAULT_CONFIG))
    app.config["TESTING"] = True
    return app.test_client()


def start_job(client, **body):
    response = client.post("/api/translate", json=body)
    assert response.status_code == 202, response.get_json()
    return response.get_json()["job_id"]


def test_health(client):
    assert client.get("/health").get_json() == {"status": "ok"}


def test_translate_with_mock_provider(client):
    tree = doc(heading(1, "日本語の見出し"), paragraph("Body"))
    job_id = start_job(client, document=tree)

    job = tasks.wait_for_job(job_id)
    assert job.state == "completed"

    payload = client.get(f"/api/jobs/{job_id}").get_json()
    assert payload["state"] == "completed"
    assert payload["result"]["merged_document"] == tree
    assert payload["result"]["total_chunks"] == 1
    assert payload["progress"]["completed"] == 1
    assert "document" not in payload


def test_unicode_is_not_escaped(client):
    job_id = start_job(client, document=doc(paragraph("日本語")))
    tasks.wait_for_job(job_id)
    assert "日本語" in client.get(f"/api/jobs/{job_id}").get_data(as_text=True)


def test_invalid_requests_are_rejected(client):
    assert client.post("/api/translate", json={}).status_code == 400
    assert client.post("/api/translate", json={"document": {"type": "paragraph"}}).status_code == 400
    response = client.post(
        "/api/translate", json={"document": doc(paragraph("x")), "chunkConfig": {"maxChunkTokens": "huge"}}
    )
    assert response.status_code == 400
    response = client.post("/api/translate", json={"document": doc(paragraph("x")), "provider": "proxy"})
    assert response.status_code == 400
    assert response.get_json()["code"] == "translator_config_missing"


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/nope").status_code == 404
    assert client.post("/api/jobs/nope/cancel").status_code == 404
    assert client.post("/api/jobs/nope/retry").status_code == 404


def test_partial_job_can_be_retried(client, monkeypatch):
    translators = [FakeTranslator(fail_indices={1}), FakeTranslator()]
    monkeypatch.setattr(tasks, "build_translator", lambda config: translators.pop(0))

    job_id = start_job(client, document=three_chunk_document(), chunkConfig=SMALL_CHUNKS)
    job = tasks.wait_for_job(job_id)
    assert job.state == "partial"
    assert job.result["failed_chunk_indices"] == [1]

    response = client.post(f"/api/jobs/{job_id}/retry")
    assert response.status_code == 202
    job = tasks.wait_for_job(job_id)
    assert job.state == "completed"
    assert job.attempts == 2
    assert job.result["successful_chunks"] == 3

    # Nothing left to retry
    assert client.post(f"/api/jobs/{job_id}/retry").status_code == 400
    # Finished jobs cannot be cancelled
    assert client.post(f"/api/jobs/{job_id}/cancel").status_code == 400


def test_running_job_can_be_cancelled(client, monkeypatch):
    job_ids = []
    job_known = threading.Event()

    def cancel_on_first_chunk(params):
        job_known.wait(5)
        tasks.cancel_job(job_ids[0])

    monkeypatch.setattr(tasks, "build_translator", lambda config: FakeTranslator(on_call=cancel_on_first_chunk))

    job_ids.append(start_job(client, document=three_chunk_document(), chunkConfig=SMALL_CHUNKS))
    job_known.set()

    job = tasks.wait_for_job(job_ids[0])
    assert job.state == "cancelled"
    assert job.result["cancelled"] is True
    assert job.result["successful_chunks"] == 0


def test_chunking_preview(client):
    response = client.post(
        "/api/chunking/preview", json={"document": three_chunk_document(), "chunkConfig": SMALL_CHUNKS}
    )
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["should_chunk"] is True
    assert payload["was_chunked"] is True
    assert [c["node_count"] for c in payload["chunks"]] == [1, 1, 1]
    assert [c["estimated_tokens"] for c in payload["chunks"]] == [4000, 4000, 4000]
