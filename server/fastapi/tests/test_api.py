"""Endpoint tests for main.py using FastAPI TestClient.

Swaps the Gemini client for FakeGenerator so no LLM calls are made.
"""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from issues import HttpIssueStore, InMemoryIssueStore, IssueLookupError
from main import app
from prompts import EMPTY_SUMMARY
from session import FALLBACK_MESSAGE, WELCOME_MESSAGE
from summary import SUMMARY_FALLBACK
from tests.conftest import FakeGenerator, maps_metadata


client = TestClient(app)


@pytest.fixture
def fake_generator():
    original = app.state.generator
    fake = FakeGenerator(text="Our team is on it.", grounding_metadata=maps_metadata("https://maps/1"))
    app.state.generator = fake
    yield fake
    app.state.generator = original


@pytest.fixture
def fake_store(issue_store):
    original = app.state.issue_store
    app.state.issue_store = issue_store
    yield issue_store
    app.state.issue_store = original


def stream_events(resp) -> list[dict]:
    lines = [l for l in resp.text.strip().split("\n") if l.startswith("data:")]
    return [json.loads(l.removeprefix("data: ")) for l in lines]


class TestHealthAndRoot:
    def test_root(self):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Hello from Civic Tracker API"

    def test_health(self):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestSessions:
    def test_create_session(self, fake_generator):
        resp = client.post("/sessions", json={"location": {"lat": 40.7, "lon": -74.0}})
        assert resp.status_code == 200
        body = resp.json()
        assert body["busy"] is False
        assert [m["text"] for m in body["messages"]] == [WELCOME_MESSAGE]

    def test_create_session_with_location_error(self, fake_generator, caplog):
        resp = client.post("/sessions", json={"location_error": "User denied Geolocation"})
        assert resp.status_code == 200
        assert "User denied Geolocation" in caplog.text

    def test_submit_known_issue(self, fake_generator, fake_store):
        session_id = client.post("/sessions", json={"location": {"lat": 40.7, "lon": -74.0}}).json()["session_id"]

        resp = client.post(f"/sessions/{session_id}/messages", json={"text": "CIV-1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["accepted"] is True
        assert [m["sender"] for m in body["messages"]] == ["bot", "user", "bot"]
        reply = body["messages"][-1]
        assert reply["text"].startswith("Our team is on it.")
        assert '<a href="https://maps/1"' in reply["html"]
        assert fake_generator.calls[0]["location"].lat == 40.7

    def test_submit_blank_is_not_accepted(self, fake_generator):
        session_id = client.post("/sessions", json={}).json()["session_id"]

        body = client.post(f"/sessions/{session_id}/messages", json={"text": "   "}).json()

        assert body["accepted"] is False
        assert len(body["messages"]) == 1
        assert fake_generator.calls == []

    def test_submit_failure_shows_fallback(self, fake_generator, fake_store):
        fake_generator.error = RuntimeError("quota exceeded")
        session_id = client.post("/sessions", json={}).json()["session_id"]

        body = client.post(f"/sessions/{session_id}/messages", json={"text": "CIV-1"}).json()

        assert body["messages"][-1]["text"] == FALLBACK_MESSAGE
        assert body["busy"] is False

    def test_get_session(self, fake_generator):
        session_id = client.post("/sessions", json={}).json()["session_id"]
        resp = client.get(f"/sessions/{session_id}")
        assert resp.status_code == 200
        assert resp.json()["session_id"] == session_id

    def test_unknown_session(self):
        assert client.get("/sessions/does-not-exist").status_code == 404
        resp = client.post("/sessions/does-not-exist/messages", json={"text": "CIV-1"})
        assert resp.status_code == 404

    def test_delete_session(self, fake_generator):
        session_id = client.post("/sessions", json={}).json()["session_id"]

        resp = client.delete(f"/sessions/{session_id}")

        assert resp.status_code == 204
        assert client.get(f"/sessions/{session_id}").status_code == 404
        assert client.delete(f"/sessions/{session_id}").status_code == 404

    def test_user_html_is_escaped(self, fake_generator, fake_store):
        session_id = client.post("/sessions", json={}).json()["session_id"]
        body = client.post(f"/sessions/{session_id}/messages", json={"text": "<b>CIV-1</b>"}).json()
        assert body["messages"][1]["html"] == "&lt;b&gt;CIV-1&lt;/b&gt;"


class TestChatEndpoint:
    def test_returns_enriched_response(self, fake_generator, fake_store):
        resp = client.post("/chat", json={"issue_id": "CIV-1"})
        assert resp.status_code == 200
        assert "- [View on Google Maps](https://maps/1)" in resp.json()["response"]

    def test_unknown_issue_has_no_links(self, fake_generator, fake_store):
        resp = client.post("/chat", json={"issue_id": "CIV-404"})
        assert resp.json()["response"] == "Our team is on it."

    def test_passes_location_when_provided(self, fake_generator, fake_store):
        client.post("/chat", json={"issue_id": "CIV-1", "location": {"lat": 40.7, "lon": -74.0}})
        location = fake_generator.calls[0]["location"]
        assert (location.lat, location.lon) == (40.7, -74.0)

    def test_failure_returns_fallback(self, fake_generator, fake_store):
        fake_generator.error = RuntimeError("network")
        resp = client.post("/chat", json={"issue_id": "CIV-1"})
        assert resp.status_code == 200
        assert resp.json()["response"] == FALLBACK_MESSAGE

    def test_rejects_blank_issue_id(self):
        assert client.post("/chat", json={"issue_id": "  "}).status_code == 422

    def test_rejects_missing_issue_id(self):
        assert client.post("/chat", json={}).status_code == 422


class TestChatStreamEndpoint:
    def test_returns_event_stream_content_type(self, fake_generator, fake_store):
        resp = client.post("/chat/stream", json={"issue_id": "CIV-1"})
        assert resp.status_code == 200
        assert "text/event-stream" in resp.headers["content-type"]

    def test_streams_node_events_and_reply(self, fake_generator, fake_store):
        resp = client.post("/chat/stream", json={"issue_id": "CIV-1"})
        events = stream_events(resp)

        started = [e["node"] for e in events if e.get("type") == "node_start"]
        assert started == ["lookup_issue", "compose_prompt", "generate_reply", "enrich_reply"]

        replies = [e for e in events if e.get("type") == "reply"]
        assert len(replies) == 1
        assert "https://maps/1" in replies[0]["content"]
        assert events[-1]["type"] == "done"

    def test_streams_fallback_on_failure(self, fake_generator, fake_store):
        fake_generator.error = RuntimeError("quota")
        events = stream_events(client.post("/chat/stream", json={"issue_id": "CIV-1"}))

        replies = [e for e in events if e.get("type") == "reply"]
        assert replies == [{"type": "reply", "content": FALLBACK_MESSAGE}]
        assert events[-1]["type"] == "done"


class TestResolvedSummary:
    def test_summary(self, fake_generator, fake_store):
        resp = client.get("/issues/resolved/summary")
        assert resp.status_code == 200
        assert resp.json()["summary"].startswith("Our team is on it.")
        assert "Overflowing bins" in fake_generator.calls[0]["prompt"]

    def test_empty_summary_skips_model(self, fake_generator):
        original = app.state.issue_store
        app.state.issue_store = InMemoryIssueStore([])
        try:
            resp = client.get("/issues/resolved/summary")
        finally:
            app.state.issue_store = original

        assert resp.json()["summary"] == EMPTY_SUMMARY
        assert fake_generator.calls == []

    def test_store_failure_returns_fallback(self, fake_generator):
        class BrokenStore:
            def list_issues(self, status=None):
                raise IssueLookupError("tracker down")

        original = app.state.issue_store
        app.state.issue_store = BrokenStore()
        try:
            resp = client.get("/issues/resolved/summary")
        finally:
            app.state.issue_store = original

        assert resp.json()["summary"] == SUMMARY_FALLBACK

    def test_unreadable_tracker_list_returns_fallback(self, fake_generator):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"id": "CIV-9"}]))
        original = app.state.issue_store
        app.state.issue_store = HttpIssueStore("http://tracker.test", transport=transport)
        try:
            resp = client.get("/issues/resolved/summary")
        finally:
            app.state.issue_store.close()
            app.state.issue_store = original

        assert resp.status_code == 200
        assert resp.json()["summary"] == SUMMARY_FALLBACK
        assert fake_generator.calls == []

    def test_store_is_read_off_the_event_loop(self, fake_generator):
        class RecordingStore(InMemoryIssueStore):
            on_event_loop = None

            def list_issues(self, status=None):
                try:
                    asyncio.get_running_loop()
                    self.on_event_loop = True
                except RuntimeError:
                    self.on_event_loop = False
                return super().list_issues(status)

        store = RecordingStore()
        original = app.state.issue_store
        app.state.issue_store = store
        try:
            resp = client.get("/issues/resolved/summary")
        finally:
            app.state.issue_store = original

        assert resp.status_code == 200
        assert store.on_event_loop is False
