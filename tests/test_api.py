"""HTTP tests for the FastAPI surface, run against the temporary database from conftest."""

import uuid

import pytest
from fastapi.testclient import TestClient

from slot_swap.main import app


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


def signup(client, name):
    email = f"{name.lower()}-{uuid.uuid4().hex[:8]}@swapmail.org"
    response = client.post("/api/auth/signup", json={"name": name, "email": email, "password": "secret123"})
    assert response.status_code == 201, response.text
    body = response.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}


def create_slot(client, headers, title, start, end, status=None):
    payload = {"title": title, "start_time": start, "end_time": end}
    if status:
        payload["status"] = status
    response = client.post("/api/events", json=payload, headers=headers)
    return response


def exchangeable_slot(client, headers, title, hour):
    response = create_slot(
        client, headers, title, f"2030-05-01T{hour:02d}:00:00Z", f"2030-05-01T{hour + 1:02d}:00:00Z", "EXCHANGEABLE"
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:
    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_endpoints_require_token(self, client):
        assert client.get("/api/swappable-slots").status_code == 401
        assert client.get("/api/swap-requests").status_code == 401
        assert client.post("/api/swap-request", json={"my_slot_id": 1, "their_slot_id": 2}).status_code == 401

    def test_login_and_token_form(self, client):
        email = f"dana-{uuid.uuid4().hex[:8]}@swapmail.org"
        client.post("/api/auth/signup", json={"name": "Dana", "email": email, "password": "secret123"})

        assert client.post("/api/auth/login", json={"email": email, "password": "wrong"}).status_code == 401
        login = client.post("/api/auth/login", json={"email": email, "password": "secret123"})
        assert login.status_code == 200
        token = client.post("/token", data={"username": email, "password": "secret123"}).json()["access_token"]
        me = client.get("/api/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["email"] == email

    def test_duplicate_signup_rejected(self, client):
        email = f"erin-{uuid.uuid4().hex[:8]}@swapmail.org"
        payload = {"name": "Erin", "email": email, "password": "secret123"}
        assert client.post("/api/auth/signup", json=payload).status_code == 201
        assert client.post("/api/auth/signup", json=payload).status_code == 400


class TestEvents:
    def test_unknown_status_is_rejected(self, client):
        _, headers = signup(client, "Frank")
        response = create_slot(client, headers, "Gym", "2030-05-01T10:00:00Z", "2030-05-01T11:00:00Z", "SWAPPABLE")
        assert response.status_code == 422

    def test_backwards_times_rejected(self, client):
        _, headers = signup(client, "Gina")
        response = create_slot(client, headers, "Gym", "2030-05-01T10:00:00Z", "2030-05-01T09:00:00Z", None)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_input"

    def test_create_defaults_to_ordinary(self, client):
        _, headers = signup(client, "Hank")
        response = create_slot(client, headers, "Gym", "2030-05-01T10:00:00Z", "2030-05-01T11:00:00Z", None)
        assert response.status_code == 201
        assert response.json()["status"] == "ORDINARY"
        assert [e["title"] for e in client.get("/api/events", headers=headers).json()] == ["Gym"]

    def test_partial_update_keeps_other_fields(self, client):
        _, headers = signup(client, "Ivy")
        created = create_slot(client, headers, "Gym", "2030-05-01T10:00:00Z", "2030-05-01T11:00:00Z", None).json()

        response = client.put(f"/api/events/{created['id']}", json={"status": "EXCHANGEABLE"}, headers=headers)
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["status"] == "EXCHANGEABLE"
        assert body["title"] == "Gym"
        assert body["start_time"] == created["start_time"]


class TestSwapFlow:
    def test_accept_round_trip(self, client):
        alice_id, alice = signup(client, "Alice")
        bob_id, bob = signup(client, "Bob")
        a = exchangeable_slot(client, alice, "Alice standup", 9)
        b = exchangeable_slot(client, bob, "Bob review", 14)

        market = client.get("/api/swappable-slots", headers=alice).json()
        assert b["id"] in [slot["id"] for slot in market]
        assert a["id"] not in [slot["id"] for slot in market]

        created = client.post("/api/swap-request", json={"my_slot_id": a["id"], "their_slot_id": b["id"]}, headers=alice)
        assert created.status_code == 201, created.text
        proposal = created.json()
        assert proposal["status"] == "OPEN"
        assert proposal["recipient"]["id"] == bob_id

        # Slot under an open proposal cannot be deleted
        assert client.delete(f"/api/events/{a['id']}", headers=alice).status_code == 409

        incoming = client.get("/api/swap-requests", headers=bob).json()["incoming"]
        assert [p["id"] for p in incoming] == [proposal["id"]]

        forbidden = client.post(f"/api/swap-response/{proposal['id']}", json={"accepted": True}, headers=alice)
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "unauthorized"

        accepted = client.post(f"/api/swap-response/{proposal['id']}", json={"accepted": True}, headers=bob)
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "ACCEPTED"

        again = client.post(f"/api/swap-response/{proposal['id']}", json={"accepted": False}, headers=bob)
        assert again.status_code == 409
        assert again.json()["code"] == "already_processed"

        # Swapped slots stay so the history keeps resolving
        kept = client.delete(f"/api/events/{a['id']}", headers=bob)
        assert kept.status_code == 409
        assert kept.json()["code"] == "slot_referenced"

        alice_events = client.get("/api/events", headers=alice).json()
        bob_events = client.get("/api/events", headers=bob).json()
        assert [(e["id"], e["status"]) for e in alice_events] == [(b["id"], "ORDINARY")]
        assert [(e["id"], e["status"]) for e in bob_events] == [(a["id"], "ORDINARY")]
        assert alice_id != bob_id

    def test_reject_and_conflict(self, client):
        _, alice = signup(client, "Alice")
        _, bob = signup(client, "Bob")
        _, carol = signup(client, "Carol")
        a = exchangeable_slot(client, alice, "Alice standup", 9)
        b = exchangeable_slot(client, bob, "Bob review", 14)
        c = exchangeable_slot(client, carol, "Carol yoga", 17)

        proposal = client.post(
            "/api/swap-request", json={"my_slot_id": a["id"], "their_slot_id": b["id"]}, headers=alice
        ).json()
        conflict = client.post("/api/swap-request", json={"my_slot_id": c["id"], "their_slot_id": b["id"]}, headers=carol)
        assert conflict.status_code == 409
        assert conflict.json()["code"] == "conflict"

        rejected = client.post(f"/api/swap-response/{proposal['id']}", json={"accepted": False}, headers=bob)
        assert rejected.json()["status"] == "REJECTED"
        assert client.get(f"/api/events/{a['id']}", headers=alice).json()["status"] == "EXCHANGEABLE"
        assert client.get(f"/api/events/{b['id']}", headers=bob).json()["status"] == "EXCHANGEABLE"

    def test_error_codes(self, client):
        _, alice = signup(client, "Alice")
        _, bob = signup(client, "Bob")
        a = exchangeable_slot(client, alice, "Alice standup", 9)
        b = exchangeable_slot(client, bob, "Bob review", 14)

        mismatch = client.post("/api/swap-request", json={"my_slot_id": b["id"], "their_slot_id": a["id"]}, headers=alice)
        assert (mismatch.status_code, mismatch.json()["code"]) == (403, "ownership_mismatch")

        self_swap = client.post("/api/swap-request", json={"my_slot_id": a["id"], "their_slot_id": a["id"]}, headers=alice)
        assert (self_swap.status_code, self_swap.json()["code"]) == (400, "self_swap")

        missing = client.post("/api/swap-request", json={"my_slot_id": a["id"], "their_slot_id": 999999}, headers=alice)
        assert (missing.status_code, missing.json()["code"]) == (404, "slot_not_found")

        malformed = client.post("/api/swap-request", json={"my_slot_id": 0, "their_slot_id": b["id"]}, headers=alice)
        assert malformed.status_code == 422

        unknown = client.post("/api/swap-response/999999", json={"accepted": True}, headers=bob)
        assert (unknown.status_code, unknown.json()["code"]) == (404, "proposal_not_found")
