"""Tests for the HTTP API: conversation lifecycle through the bundled script."""

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend import storage


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(storage.data_dir()))


def _create(client: TestClient, title: str = "Morning Person") -> str:
    resp = client.post("/api/conversations", json={"title": title})
    assert resp.status_code == 200
    return resp.json()["slug"]


def _onboard_until_deal(client: TestClient, slug: str) -> dict:
    """Play day one up to the Deal? question."""
    started = client.post(f"/api/conversations/{slug}/start").json()
    name_prompt = started["awaiting"]
    named = client.post(f"/api/conversations/{slug}/input", json={"message_id": name_prompt["id"], "text": "Sam"}).json()
    goal_prompt = named["awaiting"]
    return client.post(f"/api/conversations/{slug}/input", json={"message_id": goal_prompt["id"], "text": "run 2km"}).json()


# ── Settings and scripts ─────────────────────────────────


class TestSettings:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_get_and_patch_settings(self, client: TestClient) -> None:
        assert client.get("/api/settings").json()["language"] == "en"
        resp = client.patch("/api/settings", json={"language": "de", "cache": {"script_ttl_hours": 1}})
        assert resp.json()["language"] == "de"
        assert client.get("/api/settings").json()["cache"]["script_ttl_hours"] == 1


class TestScripts:
    def test_bundled_script_summary(self, client: TestClient) -> None:
        summary = client.get("/api/script").json()
        assert summary["id"] == "habit_coach"
        assert summary["plot_days"] == ["day_1", "day_2", "day_7"]
        assert "morning_checkin" in summary["daily_events"]

    def test_unknown_language_uses_default(self, client: TestClient) -> None:
        assert client.get("/api/script", params={"language": "fr"}).json()["id"] == "habit_coach"

    def test_refresh_without_server(self, client: TestClient) -> None:
        assert client.post("/api/script/refresh", json={}).json()["id"] == "habit_coach"


# ── Conversation CRUD ────────────────────────────────────


class TestConversations:
    def test_create_list_get_delete(self, client: TestClient) -> None:
        slug = _create(client)
        assert slug == "morning-person"
        assert [c["slug"] for c in client.get("/api/conversations").json()] == [slug]
        assert client.get(f"/api/conversations/{slug}").json()["title"] == "Morning Person"

        assert client.delete(f"/api/conversations/{slug}").json() == {"ok": True}
        assert client.get(f"/api/conversations/{slug}").status_code == 404
        assert client.delete(f"/api/conversations/{slug}").status_code == 404

    def test_engine_calls_404_for_unknown(self, client: TestClient) -> None:
        assert client.post("/api/conversations/nope/start").status_code == 404
        assert client.get("/api/conversations/nope/state").status_code == 404
        assert client.get("/api/conversations/nope/messages").status_code == 404


# ── Engine endpoints ─────────────────────────────────────


class TestEngineEndpoints:
    def test_start_suspends_on_name_question(self, client: TestClient) -> None:
        slug = _create(client)
        result = client.post(f"/api/conversations/{slug}/start").json()

        assert result["flow_state"] == "awaiting_response"
        assert result["day_in_journey"] == 1
        assert result["messages"][-1]["content"] == "What should I call you?"
        assert result["awaiting"]["id"] == result["messages"][-1]["id"]
        assert result["awaiting"]["type"] == "input"

    def test_input_too_long_is_rejected(self, client: TestClient) -> None:
        slug = _create(client)
        awaiting = client.post(f"/api/conversations/{slug}/start").json()["awaiting"]
        result = client.post(
            f"/api/conversations/{slug}/input",
            json={"message_id": awaiting["id"], "text": "x" * 60},
        ).json()

        assert len(result["messages"]) == 1
        assert result["messages"][0]["id"] == f"{awaiting['id']}-error"
        assert result["messages"][0]["sender"] == "system"
        assert result["awaiting"]["id"] == awaiting["id"]

    def test_onboarding_flow(self, client: TestClient) -> None:
        slug = _create(client)
        deal = _onboard_until_deal(client, slug)
        assert deal["awaiting"]["type"] == "options"
        assert [o["id"] for o in deal["awaiting"]["options"]] == ["deal", "maybe"]

        result = client.post(
            f"/api/conversations/{slug}/select",
            json={"message_id": deal["awaiting"]["id"], "option_id": "deal"},
        ).json()
        assert result["messages"][0]["content"] == "Good. See you tomorrow."

        variables = client.get(f"/api/conversations/{slug}/state").json()["variables"]
        assert variables["user.name"] == "Sam"
        assert variables["user.goal"] == "run 2km"
        assert variables["user.onboarded"] is True
        assert variables["user.achievements"] == ["first_commitment"]

    def test_stale_select_returns_nothing(self, client: TestClient) -> None:
        slug = _create(client)
        client.post(f"/api/conversations/{slug}/start")
        result = client.post(
            f"/api/conversations/{slug}/select",
            json={"message_id": "m999", "option_id": "deal"},
        ).json()
        assert result["messages"] == []
        assert result["awaiting"] is not None

    def test_messages_history(self, client: TestClient) -> None:
        slug = _create(client)
        awaiting = client.post(f"/api/conversations/{slug}/start").json()["awaiting"]
        client.post(f"/api/conversations/{slug}/input", json={"message_id": awaiting["id"], "text": "Sam"})

        history = client.get(f"/api/conversations/{slug}/messages").json()
        assert [m["content"] for m in history if m["sender"] == "user"] == ["Sam"]
        assert len(client.get(f"/api/conversations/{slug}/messages", params={"limit": 1}).json()) == 1

    def test_patch_variables(self, client: TestClient) -> None:
        slug = _create(client)
        client.patch(f"/api/conversations/{slug}/variables", json={"variables": {"user.streak": 4}})
        result = client.patch(
            f"/api/conversations/{slug}/variables",
            json={"variables": {"user.streak": {"$increment": 1}}},
        ).json()
        assert result["user.streak"] == 5

    def test_reset(self, client: TestClient) -> None:
        slug = _create(client)
        client.post(f"/api/conversations/{slug}/start")
        assert client.post(f"/api/conversations/{slug}/reset").json() == {"ok": True}

        assert client.get(f"/api/conversations/{slug}/messages").json() == []
        state = client.get(f"/api/conversations/{slug}/state").json()
        assert state["awaiting_response_for_message_id"] is None
        assert state["completed_events"] == []
