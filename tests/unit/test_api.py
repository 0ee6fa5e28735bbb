"""
Tests for the HTTP surface.

Each test gets an app backed by a fresh database file; the model client
is replaced through dependency_overrides so no network is involved.
"""

import pytest
from fastapi.testclient import TestClient

from fakes import ScriptedChatClient
from sage.api.dependencies import get_chat_client
from sage.api.routes.chat import GENERIC_ERROR, format_event, friendly_error
from sage.config.settings import Settings
from sage.infrastructure.anthropic.errors import (
    HTTPError,
    InvalidCredential,
    MissingCredential,
    NoConnection,
    RateLimited,
    RequestTimeout,
)
from sage.main import create_app


@pytest.fixture
def chat_client():
    return ScriptedChatClient(chunks=["Hello", ", world!"])


@pytest.fixture
def app(tmp_path, chat_client):
    settings = Settings(database_path=str(tmp_path / "api.db"), anthropic_api_key="sk-test")
    application = create_app(settings)
    application.dependency_overrides[get_chat_client] = lambda: chat_client
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def goal_id(client):
    response = client.post("/api/v1/goals", json={
        "name": "Guitar",
        "current_level": "beginner",
        "metrics": [{"name": "Practice", "unit": "minutes", "target_value": 30, "current_value": 15}],
    })
    assert response.status_code == 201
    return response.json()["id"]


def sse_events(body: str) -> list[tuple[str, str]]:
    """Split an event-stream body into (event, data) pairs."""
    events = []
    for block in body.strip().split("\n\n"):
        event, data = "message", []
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data.append(line[len("data: "):])
        events.append((event, "\n".join(data)))
    return events


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_health_reports_schema_and_key(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["details"]["schema_version"] == 2
        assert body["details"]["api_key_configured"] is True


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

class TestGoals:

    def test_create_returns_goal_with_metrics(self, client, goal_id):
        response = client.get(f"/api/v1/goals/{goal_id}")

        assert response.status_code == 200
        goal = response.json()
        assert goal["name"] == "Guitar"
        assert goal["metrics"][0]["name"] == "Practice"
        assert goal["metrics"][0]["progress"] == 0.5
        assert goal["metrics"][0]["id"]

    def test_list_goals_newest_first(self, client):
        client.post("/api/v1/goals", json={"name": "First"})
        client.post("/api/v1/goals", json={"name": "Second"})

        names = [g["name"] for g in client.get("/api/v1/goals").json()]

        assert names == ["Second", "First"]

    def test_blank_name_is_rejected(self, client):
        assert client.post("/api/v1/goals", json={"name": ""}).status_code == 422
        assert client.post("/api/v1/goals", json={"name": "   "}).status_code == 422

    def test_replace_goal(self, client, goal_id):
        response = client.put(f"/api/v1/goals/{goal_id}", json={
            "name": "Classical guitar",
            "target_level": "advanced",
            "metrics": [],
        })

        assert response.status_code == 200
        assert response.json()["name"] == "Classical guitar"
        assert response.json()["metrics"] == []

    def test_missing_goal_is_404(self, client):
        assert client.get("/api/v1/goals/999").status_code == 404
        assert client.put("/api/v1/goals/999", json={"name": "x"}).status_code == 404
        assert client.get("/api/v1/goals/999/conversations").status_code == 404

    def test_delete_goal(self, client, goal_id):
        assert client.delete(f"/api/v1/goals/{goal_id}").status_code == 204
        assert client.delete(f"/api/v1/goals/{goal_id}").status_code == 204
        assert client.get(f"/api/v1/goals/{goal_id}").status_code == 404


# ---------------------------------------------------------------------------
# Chat and conversations
# ---------------------------------------------------------------------------

class TestChat:

    def test_get_chat_starts_conversation(self, client, goal_id):
        response = client.get(f"/api/v1/goals/{goal_id}/chat")

        assert response.status_code == 200
        body = response.json()
        assert body["conversation"]["goal_id"] == goal_id
        assert body["messages"] == []

    def test_post_streams_reply_and_persists_it(self, client, goal_id):
        response = client.post(f"/api/v1/goals/{goal_id}/chat", json={"message": "How do I start?"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert sse_events(response.text) == [
            ("message", "Hello"),
            ("message", ", world!"),
            ("message", "[DONE]"),
        ]

        state = client.get(f"/api/v1/goals/{goal_id}/chat").json()
        assert [(m["role"], m["content"]) for m in state["messages"]] == [
            ("user", "How do I start?"),
            ("assistant", "Hello, world!"),
        ]

    def test_client_error_becomes_error_event(self, client, goal_id, chat_client):
        chat_client.fail_after = 0
        chat_client.error = MissingCredential()

        response = client.post(f"/api/v1/goals/{goal_id}/chat", json={"message": "Hi"})

        assert response.status_code == 200
        assert sse_events(response.text) == [
            ("error", "No API key found. Add one in Settings."),
            ("message", "[DONE]"),
        ]
        state = client.get(f"/api/v1/goals/{goal_id}/chat").json()
        assert [m["role"] for m in state["messages"]] == ["user"]

    def test_chat_with_unknown_goal_is_404(self, client):
        response = client.post("/api/v1/goals/999/chat", json={"message": "Hi"})
        assert response.status_code == 404

    def test_empty_message_is_rejected(self, client, goal_id):
        response = client.post(f"/api/v1/goals/{goal_id}/chat", json={"message": ""})
        assert response.status_code == 422


class TestConversations:

    def test_rename_and_list(self, client, goal_id):
        conversation_id = client.get(f"/api/v1/goals/{goal_id}/chat").json()["conversation"]["id"]

        response = client.patch(f"/api/v1/conversations/{conversation_id}", json={"title": "Chords"})

        assert response.status_code == 200
        assert response.json()["display_title"] == "Chords"
        listed = client.get(f"/api/v1/goals/{goal_id}/conversations").json()
        assert [c["title"] for c in listed] == ["Chords"]

    def test_messages_for_conversation(self, client, goal_id):
        client.post(f"/api/v1/goals/{goal_id}/chat", json={"message": "Hi"})
        conversation_id = client.get(f"/api/v1/goals/{goal_id}/conversations").json()[0]["id"]

        response = client.get(f"/api/v1/conversations/{conversation_id}/messages")

        assert [m["role"] for m in response.json()] == ["user", "assistant"]

    def test_unknown_conversation_is_404(self, client):
        assert client.patch("/api/v1/conversations/999", json={"title": "x"}).status_code == 404
        assert client.get("/api/v1/conversations/999/messages").status_code == 404


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestCredentials:

    def test_key_can_be_removed_and_set(self, client):
        assert client.get("/api/v1/credentials/api-key").json() == {"configured": True}

        assert client.delete("/api/v1/credentials/api-key").status_code == 204
        assert client.get("/api/v1/credentials/api-key").json() == {"configured": False}

        response = client.put("/api/v1/credentials/api-key", json={"api_key": "sk-new"})
        assert response.json() == {"configured": True}

    def test_blank_key_is_rejected(self, client):
        assert client.put("/api/v1/credentials/api-key", json={"api_key": "   "}).status_code == 422


# ---------------------------------------------------------------------------
# Event formatting
# ---------------------------------------------------------------------------

class TestEventFormatting:

    @pytest.mark.parametrize("error, expected", [
        (MissingCredential(), "No API key found. Add one in Settings."),
        (InvalidCredential(), "Invalid API key. Check your key in Settings."),
        (RateLimited(3), "Too many requests. Please wait a moment and try again."),
        (NoConnection(), "No internet connection."),
        (RequestTimeout(), "Request timed out. Please try again."),
        (HTTPError(500), GENERIC_ERROR),
    ])
    def test_friendly_error(self, error, expected):
        assert friendly_error(error) == expected

    def test_multiline_chunk_becomes_several_data_lines(self):
        assert format_event("one\ntwo") == "data: one\ndata: two\n\n"

    def test_named_event(self):
        assert format_event("oops", event="error") == "event: error\ndata: oops\n\n"
