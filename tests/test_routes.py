import mongoengine
import mongomock
import pytest

from app import create_app, mail
from db import User
from tests.conftest import TEST_DB_URI, make_account


@pytest.fixture
def app(clock):
    app = create_app({
        "TESTING": True,
        "MONGO_URI": TEST_DB_URI,
        "MONGO_CLIENT_CLASS": mongomock.MongoClient,
        "CLOCK": clock,
        "JWT_SECRET": "test-secret",
        "MAIL_DEFAULT_SENDER": "noreply@scan.test",
        "START_SWEEPER": False,
    })
    yield app
    User.drop_collection()
    mongoengine.disconnect()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def outbox(app):
    with mail.record_messages() as messages:
        yield messages


def login(client, email, password="secret123"):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def auth(tokens):
    return {"Authorization": f"Bearer {tokens['sessionToken']}"}


@pytest.fixture
def people(app):
    make_account("a@x.com", role="citizen")
    make_account("v@x.com", role="volunteer", name="Vee", contact_number="555-1111", is_approved=True)
    make_account("w@x.com", role="volunteer", name="Dub", is_approved=True)
    make_account("p@x.com", role="volunteer", name="Pending")
    make_account("admin@x.com", role="admin", name="Root")


def test_health(client):
    body = client.get("/api/auth/health").get_json()
    assert body["status"] == "healthy"
    assert body["sweeper_running"] is False


def test_signup_verify_login_flow(client, outbox):
    response = client.post("/api/auth/signup", json={
        "email": "new@x.com", "password": "pw123456", "name": "New",
        "contactNumber": "555", "role": "citizen",
    })
    assert response.status_code == 201

    unverified = client.post("/api/auth/login", json={"email": "new@x.com", "password": "pw123456"})
    assert unverified.status_code == 401
    assert unverified.get_json()["message"] == "Email not verified"

    assert outbox[0].subject == "Verify your email for SCAN"
    raw_token = outbox[0].html.split("token=")[1].split('"')[0]
    verified = client.post("/api/auth/verify-email", json={"token": raw_token})
    assert verified.status_code == 200

    tokens = login(client, "new@x.com", "pw123456")
    me = client.get("/api/auth/me", headers=auth(tokens)).get_json()
    assert me["user"]["email"] == "new@x.com"
    assert "password_hash" not in me["user"]


def test_duplicate_signup_conflicts(client, people):
    response = client.post("/api/auth/signup", json={
        "email": "a@x.com", "password": "pw", "name": "A", "contactNumber": "555", "role": "citizen",
    })
    assert response.status_code == 409


def test_missing_token_is_401(client, people):
    response = client.get("/api/auth/me")
    assert response.status_code == 401
    assert response.get_json()["message"] == "No token provided"


def test_login_supersedes_previous_session(client, people):
    first = login(client, "a@x.com")
    second = login(client, "a@x.com")

    stale = client.get("/api/auth/me", headers=auth(first))
    assert stale.status_code == 401
    assert stale.get_json()["message"] == "Invalid session"
    assert client.get("/api/auth/me", headers=auth(second)).status_code == 200


def test_logout_and_refresh(client, people, clock):
    tokens = login(client, "a@x.com")
    assert client.post("/api/auth/logout", headers=auth(tokens)).status_code == 200
    assert client.get("/api/auth/me", headers=auth(tokens)).status_code == 401

    clock.advance(minutes=30)
    refreshed = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert refreshed.status_code == 200
    assert client.get("/api/auth/me", headers=auth(refreshed.get_json())).status_code == 200

    assert client.post("/api/auth/refresh-token", json={}).status_code == 401


def test_pending_volunteer_is_gated(client, people):
    tokens = login(client, "p@x.com")
    assert tokens["pendingApproval"] is True

    response = client.get("/api/help/requests", headers=auth(tokens))
    assert response.status_code == 403
    assert response.get_json()["pendingApproval"] is True


def test_role_gates(client, people):
    citizen = login(client, "a@x.com")
    volunteer = login(client, "v@x.com")

    assert client.get("/api/help/requests", headers=auth(citizen)).status_code == 403
    assert client.post("/api/help/requests", headers=auth(volunteer), json={}).status_code == 403
    assert client.get("/api/admin/volunteers/pending", headers=auth(citizen)).status_code == 403
    assert client.get("/api/admin/volunteers/pending").status_code == 401


def test_help_request_scenario(client, people, outbox):
    citizen = login(client, "a@x.com")
    v = login(client, "v@x.com")
    w = login(client, "w@x.com")

    opened = client.post("/api/help/requests", headers=auth(citizen), json={
        "title": "Driving", "description": "airport", "location": "Kollam",
        "date": "2025-01-01", "time": "10:00",
    })
    assert opened.status_code == 201
    assert opened.get_json()["helpRequest"]["status"] == "open"

    listed = client.get("/api/help/requests", headers=auth(v)).get_json()["data"]
    assert [item["email"] for item in listed] == ["a@x.com"]

    accepted = client.post("/api/help/requests/accept", headers=auth(v), json={"email": "a@x.com"})
    assert accepted.status_code == 200
    assert "completionCode" not in accepted.get_json()["helpRequest"]["assignment"]

    again = client.post("/api/help/requests/accept", headers=auth(w), json={"email": "a@x.com"})
    assert again.status_code == 409

    mine = client.get("/api/help/requests/mine", headers=auth(citizen)).get_json()["helpRequest"]
    assert mine["assignment"]["volunteerName"] == "Vee"
    code = mine["assignment"]["completionCode"]
    assert outbox[-1].subject == "Help Request Accepted - SCAN"
    assert code in outbox[-1].html

    stranger = client.post("/api/help/requests/complete", headers=auth(w),
                           json={"email": "a@x.com", "completionCode": code})
    assert stranger.status_code == 403

    wrong = client.post("/api/help/requests/complete", headers=auth(v),
                        json={"email": "a@x.com", "completionCode": "x" + code[1:]})
    assert wrong.status_code == 409
    assert wrong.get_json()["message"] == "Invalid completion code"

    done = client.post("/api/help/requests/complete", headers=auth(v),
                       json={"email": "a@x.com", "completionCode": code})
    assert done.status_code == 200

    mine = client.get("/api/help/requests/mine", headers=auth(citizen)).get_json()["helpRequest"]
    assert mine["status"] == "completed"


def test_citizen_cancel_window(client, people, clock):
    citizen = login(client, "a@x.com")
    v = login(client, "v@x.com")
    client.post("/api/help/requests", headers=auth(citizen), json={
        "title": "Medical", "description": "clinic", "location": "Kollam",
        "date": "2025-01-01", "time": "10:00",
    })
    client.post("/api/help/requests/accept", headers=auth(v), json={"email": "a@x.com"})

    clock.advance(hours=2, minutes=40)  # 08:10 IST, inside the two hour cutoff
    citizen = login(client, "a@x.com")

    response = client.delete("/api/help/requests", headers=auth(citizen))
    assert response.status_code == 409


def test_admin_actions(client, people, outbox):
    admin = login(client, "admin@x.com")
    pending = User.objects.get(email="p@x.com")

    listed = client.get("/api/admin/volunteers/pending", headers=auth(admin)).get_json()
    assert [v["email"] for v in listed["volunteers"]] == ["p@x.com"]

    approved = client.patch(f"/api/admin/volunteers/{pending.id}/approve", headers=auth(admin))
    assert approved.status_code == 200
    assert User.objects.get(email="p@x.com").is_approved is True
    assert outbox[-1].subject == "Your Volunteer Account has been Approved!"

    citizen_id = User.objects.get(email="a@x.com").id
    victim = login(client, "a@x.com")
    assert client.patch(f"/api/admin/users/{citizen_id}/ban", headers=auth(admin)).status_code == 200
    banned = client.get("/api/auth/me", headers=auth(victim))
    assert banned.status_code == 401
    assert banned.get_json()["isBanned"] is True

    relogin = client.post("/api/auth/login", json={"email": "a@x.com", "password": "secret123"})
    assert relogin.status_code == 403

    found = client.get("/api/admin/users/banned?category=citizen&search=A", headers=auth(admin)).get_json()
    assert [u["email"] for u in found["users"]] == ["a@x.com"]

    assert client.patch(f"/api/admin/users/{citizen_id}/unban", headers=auth(admin)).status_code == 200
    login(client, "a@x.com")

    users = client.get("/api/admin/users?role=volunteer", headers=auth(admin)).get_json()["users"]
    assert {u["email"] for u in users} == {"v@x.com", "w@x.com", "p@x.com"}
    assert client.get("/api/admin/users?role=admin", headers=auth(admin)).status_code == 400

    assert client.delete(f"/api/admin/users/{pending.id}", headers=auth(admin)).status_code == 200
    assert client.delete(f"/api/admin/users/{pending.id}", headers=auth(admin)).status_code == 404


def test_admin_force_complete_and_cancel(client, people):
    admin = login(client, "admin@x.com")
    citizen = login(client, "a@x.com")
    v = login(client, "v@x.com")
    citizen_id = User.objects.get(email="a@x.com").id

    client.post("/api/help/requests", headers=auth(citizen), json={
        "title": "Shopping", "description": "groceries", "location": "Kollam",
        "date": "2025-01-01", "time": "10:00",
    })
    not_assigned = client.patch(f"/api/admin/helps/{citizen_id}/complete", headers=auth(admin))
    assert not_assigned.status_code == 409

    client.post("/api/help/requests/accept", headers=auth(v), json={"email": "a@x.com"})
    helps = client.get("/api/admin/helps", headers=auth(admin)).get_json()["helps"]
    assert [h["email"] for h in helps] == ["a@x.com"]

    assert client.patch(f"/api/admin/helps/{citizen_id}/complete", headers=auth(admin)).status_code == 200
    assert User.objects.get(email="a@x.com").help_state == "completed"

    assert client.patch(f"/api/admin/helps/{citizen_id}/cancel", headers=auth(admin)).status_code == 200
    assert User.objects.get(email="a@x.com").help_state == "idle"


def test_admin_triggers_sweep(client, people, clock):
    citizen = login(client, "a@x.com")
    client.post("/api/help/requests", headers=auth(citizen), json={
        "title": "Reading", "description": "newspaper", "location": "Kollam",
        "date": "2025-01-01", "time": "10:00",
    })
    clock.advance(hours=5)
    admin = login(client, "admin@x.com")

    body = client.post("/api/admin/check-expired-requests", headers=auth(admin)).get_json()

    assert body["expired"] == 1
    assert body["openRequests"] == 0


def test_non_text_request_fields_are_rejected(client, people):
    citizen = login(client, "a@x.com")

    response = client.post("/api/help/requests", headers=auth(citizen), json={
        "title": "Driving", "description": "airport", "location": "Kollam",
        "date": "2025-01-01", "time": 1000,
    })

    assert response.status_code == 400
    assert response.get_json()["fields"] == ["requested_time"]
    assert User.objects.get(email="a@x.com").help_state == "idle"
