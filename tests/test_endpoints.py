"""Tests for API endpoints."""

import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from moodmix.config import Settings
from moodmix.exceptions import TurnInProgressError
from moodmix.main import app
from moodmix.services.chat import ChatService, get_chat_service

from conftest import PLAYLIST_INPUT, SAVE_INPUT, ScriptedModel, text_step, tool_step


def _events(response) -> list[dict]:
    """Parse the data lines of a server-sent event stream."""
    return [
        json.loads(line[len("data: ") :]) for line in response.text.splitlines() if line.startswith("data: ")
    ]


@pytest.fixture
def model():
    """Scripted model shared by the service; tests append steps to it."""
    return ScriptedModel()


@pytest.fixture
def chat_service(model, library, store, registry):
    """Chat service driven by the scripted model."""
    return ChatService(
        settings=Settings(system_prompt="You are a music assistant."),
        model=model,
        store=store,
        registry=registry,
        library=library,
    )


@pytest.fixture
def client(chat_service):
    """Test client with the chat service overridden."""
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    """Tests for the health check endpoints."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    def test_check_api_key(self, client):
        """Test the credentials check reports the configured state."""
        with patch("moodmix.api.endpoints.has_api_key", return_value=False):
            assert client.get("/check-api-key").json() == {"success": False}
        with patch("moodmix.api.endpoints.has_api_key", return_value=True):
            assert client.get("/check-api-key").json() == {"success": True}


class TestChatEndpoint:
    """Tests for the streaming chat endpoint."""

    def test_streams_turn(self, client, model):
        """Test that a message returns an event stream and a session id header."""
        model.steps += [tool_step("call-1", "create_playlist", PLAYLIST_INPUT), text_step("1. Happy - Pharrell")]

        response = client.post("/chat", json={"message": "5 happy running songs"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-session-id"]
        events = _events(response)
        assert events[0]["type"] == "start"
        assert [e["type"] for e in events[1:3]] == ["tool-input-available", "tool-output-available"]
        assert events[-1] == {"type": "finish", "finish_reason": "stop"}

    def test_event_names_match_types(self, client, model):
        """Test that every SSE event is named after its payload type."""
        model.steps.append(text_step("Hi!"))

        response = client.post("/chat", json={"message": "Hello"})

        names = [line[len("event: ") :] for line in response.text.splitlines() if line.startswith("event: ")]
        assert names == [e["type"] for e in _events(response)]

    def test_uses_provided_session_id(self, client, model):
        """Test that the given session id is used and kept across turns."""
        model.steps += [text_step("Hi!"), text_step("Sure!")]

        client.post("/chat", json={"message": "Hello", "session_id": "session-abc"})
        response = client.post("/chat", json={"message": "Playlist?", "session_id": "session-abc"})

        assert response.headers["x-session-id"] == "session-abc"
        history = client.get("/chat/session-abc/messages").json()
        assert [m["role"] for m in history["messages"]] == ["user", "assistant", "user", "assistant"]

    def test_empty_message_rejected(self, client):
        """Test request validation."""
        assert client.post("/chat", json={"message": ""}).status_code == 422

    def test_conflict_while_confirmation_pending(self, client, model):
        """Test that new messages are refused while a tool call awaits approval."""
        model.steps.append(tool_step("call-1", "save_playlist", SAVE_INPUT))
        first = client.post("/chat", json={"message": "Save it", "session_id": "s1"})
        assert _events(first)[-1]["finish_reason"] == "awaiting-confirmation"

        response = client.post("/chat", json={"message": "Hello?", "session_id": "s1"})

        assert response.status_code == 409
        assert "call-1" in response.json()["detail"]

    def test_message_with_decisions(self, client, model, library):
        """Test that decisions sent with a message unblock the session."""
        model.steps += [tool_step("call-1", "save_playlist", SAVE_INPUT), text_step("Done!")]
        client.post("/chat", json={"message": "Save it", "session_id": "s1"})

        response = client.post(
            "/chat",
            json={
                "message": "Thanks",
                "session_id": "s1",
                "decisions": [{"tool_call_id": "call-1", "decision": "approve"}],
            },
        )

        assert response.status_code == 200
        assert _events(response)[0]["type"] == "tool-output-available"

    def test_decision_for_unknown_call_rejected(self, client, model):
        """Test that decisions naming tool calls that do not exist are refused."""
        model.steps.append(text_step("Hi"))
        client.post("/chat", json={"message": "Hello", "session_id": "s1"})

        response = client.post(
            "/chat",
            json={
                "message": "Thanks",
                "session_id": "s1",
                "decisions": [{"tool_call_id": "bogus", "decision": "approve"}],
            },
        )

        assert response.status_code == 404
        assert "bogus" in response.json()["detail"]

    def test_model_unavailable(self, library, store, registry):
        """Test that a missing API key is reported as service unavailable."""
        service = ChatService(settings=Settings(), store=store, registry=registry, library=library)
        app.dependency_overrides[get_chat_service] = lambda: service
        try:
            with patch("moodmix.services.chat.get_anthropic_client", side_effect=ValueError("no key")):
                response = TestClient(app).post("/chat", json={"message": "Hello"})
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503


class TestConfirmationEndpoint:
    """Tests for approving and rejecting tool calls."""

    def test_approve(self, client, model, library):
        """Test that approving streams the tool result."""
        model.steps.append(tool_step("call-1", "save_playlist", SAVE_INPUT))
        client.post("/chat", json={"message": "Save it", "session_id": "s1"})

        response = client.post("/chat/s1/confirmations", json={"tool_call_id": "call-1", "decision": "approve"})

        assert response.status_code == 200
        events = _events(response)
        assert events[0]["type"] == "tool-output-available"
        assert events[-1]["finish_reason"] == "stop"

        history = client.get("/chat/s1/messages").json()
        assert history["pending_confirmations"] == []
        assert history["status"] == "idle"

    def test_reject(self, client, model):
        """Test that rejecting streams a denial."""
        model.steps.append(tool_step("call-1", "save_playlist", SAVE_INPUT))
        client.post("/chat", json={"message": "Save it", "session_id": "s1"})

        response = client.post("/chat/s1/confirmations", json={"tool_call_id": "call-1", "decision": "reject"})

        event = _events(response)[0]
        assert event["type"] == "tool-output-error"
        assert event["error"]["kind"] == "denied"

    def test_unknown_session(self, client):
        """Test decisions for sessions that do not exist."""
        response = client.post("/chat/nope/confirmations", json={"tool_call_id": "call-1", "decision": "approve"})
        assert response.status_code == 404

    def test_unknown_tool_call(self, client, model):
        """Test decisions for tool calls that do not exist."""
        model.steps.append(text_step("Hi"))
        client.post("/chat", json={"message": "Hello", "session_id": "s1"})

        response = client.post("/chat/s1/confirmations", json={"tool_call_id": "call-9", "decision": "approve"})

        assert response.status_code == 404


class TestSessionEndpoints:
    """Tests for history, scheduling and deletion."""

    def test_messages_lists_pending(self, client, model):
        """Test that the history endpoint reports pending approvals."""
        model.steps.append(tool_step("call-1", "save_playlist", SAVE_INPUT))
        client.post("/chat", json={"message": "Save it", "session_id": "s1"})

        data = client.get("/chat/s1/messages").json()

        assert data["status"] == "suspended"
        assert [p["tool_call_id"] for p in data["pending_confirmations"]] == ["call-1"]

    def test_messages_unknown_session(self, client):
        """Test history for unknown sessions."""
        assert client.get("/chat/nope/messages").status_code == 404

    def test_schedule_and_delete(self, chat_service, model):
        """Test scheduling a reminder, then deleting the session cancels it."""
        model.steps.append(text_step("Hi"))
        app.dependency_overrides[get_chat_service] = lambda: chat_service
        try:
            with TestClient(app) as client:
                client.post("/chat", json={"message": "Hello", "session_id": "s1"})

                response = client.post(
                    "/chat/s1/schedule", json={"description": "Suggest a study playlist", "delay_seconds": 3600}
                )

                assert response.status_code == 202
                data = response.json()
                assert data["session_id"] == "s1"
                assert data["task_id"]
                assert len(chat_service.scheduler.pending_tasks("s1")) == 1

                assert client.delete("/chat/s1").json() == {"success": True}
                assert chat_service.scheduler.pending_tasks("s1") == []
                assert client.get("/chat/s1/messages").status_code == 404
        finally:
            app.dependency_overrides.clear()

    def test_schedule_unknown_session(self, client):
        """Test scheduling for unknown sessions."""
        response = client.post("/chat/nope/schedule", json={"description": "Hi", "delay_seconds": 1})
        assert response.status_code == 404

    def test_delete_unknown_session(self, client):
        """Test deleting a session that does not exist."""
        assert client.delete("/chat/nope").status_code == 404

    def test_delete_during_turn(self, client, chat_service):
        """Test that deleting a session mid-turn is a conflict."""
        with patch.object(chat_service, "delete_session", side_effect=TurnInProgressError("s1")):
            response = client.delete("/chat/s1")

        assert response.status_code == 409
