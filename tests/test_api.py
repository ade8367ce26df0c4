import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.errors import PersistenceFailure
from app.core.security import create_access_token
from app.db.session import get_db, get_session_factory
from app.main import create_app
from app.services.messaging import MessagingEngine
from app.services.notifications import NotificationService


@pytest.fixture
def client(session_factory, channel, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))

    app = create_app(start_scheduler=False)
    app.state.channel = channel

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return TestClient(app)


def auth(user_id):
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_requires_token(client):
    assert client.get("/mails/inbox").status_code in (401, 403)
    assert client.get("/mails/inbox", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_conversation_over_http(client, connect, users, tmp_path):
    bob_socket = connect(users.bob)

    resp = client.post(
        "/mails",
        headers=auth(users.alice),
        data={"subject": "Kickoff", "body": "Plan attached", "recipients": f"[{users.bob}, {users.carol}]"},
        files=[("attachments", ("plan.pdf", b"%PDF-1.4", "application/pdf"))],
    )
    assert resp.status_code == 200, resp.text
    sent = resp.json()
    assert sent["success"] is True
    assert bob_socket.names() == ["mail:received", "mail:update"]

    inbox = client.get("/mails/inbox", headers=auth(users.carol)).json()
    assert inbox["inbox_count"] == 1
    item = inbox["data"][0]
    assert item["subject"] == "Kickoff" and item["preview"] == "Plan attached"
    assert item["attachments_count"] == 1
    assert item["attachments"][0]["original_name"] == "plan.pdf"
    assert (tmp_path / "documents" / item["attachments"][0]["file_name"]).exists()

    outbox = client.get("/mails/sent", headers=auth(users.alice)).json()
    assert outbox["sent_count"] == 1 and outbox["data"][0]["recipients"] == "Bob, Carol"

    resp = client.post(f"/mails/{sent['mail_id']}/reply", headers=auth(users.bob), data={"body": "On it"})
    assert resp.status_code == 200, resp.text
    reply_id = resp.json()["mail_id"]

    detail = client.get(f"/mails/{sent['mail_id']}", headers=auth(users.alice)).json()["data"]
    assert [m["id"] for m in detail["mails"]] == [sent["mail_id"], reply_id]

    assert client.put(f"/mails/{reply_id}/read", headers=auth(users.carol)).json()["success"] is True

    resp = client.delete(f"/mails/{sent['thread_id']}", headers=auth(users.carol))
    assert resp.json()["message"] == "Conversation removed successfully"
    assert client.get("/mails/inbox", headers=auth(users.carol)).json()["inbox_count"] == 0
    assert client.get("/mails/inbox", headers=auth(users.alice)).json()["inbox_count"] == 1


def test_comma_separated_recipients(client, users):
    resp = client.post(
        "/mails",
        headers=auth(users.alice),
        data={"subject": "Hi", "body": "there", "recipients": f"{users.bob}, {users.carol}"},
    )
    assert resp.status_code == 200, resp.text


@pytest.mark.parametrize("data", [
    {"subject": "", "body": "x", "recipients": "[2]"},
    {"subject": "Hi", "body": "", "recipients": "[2]"},
    {"subject": "Hi", "body": "x", "recipients": ""},
])
def test_send_validation_errors(client, users, data):
    resp = client.post("/mails", headers=auth(users.alice), data=data)
    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "code": "validation_error",
        "message": "subject, body & recipients required",
    }


def test_send_keeps_markup_but_rejects_line_breaks(client, users):
    resp = client.post(
        "/mails",
        headers=auth(users.alice),
        data={"subject": "Why does <script> break?", "body": "See ../notes", "recipients": f"[{users.bob}]"},
    )
    assert resp.status_code == 200, resp.text
    inbox = client.get("/mails/inbox", headers=auth(users.bob)).json()
    assert inbox["data"][0]["subject"] == "Why does <script> break?"

    resp = client.post(
        "/mails",
        headers=auth(users.alice),
        data={"subject": "two\nlines", "body": "x", "recipients": f"[{users.bob}]"},
    )
    assert resp.status_code == 400


def test_persistence_failure_is_opaque_500(client, users, monkeypatch):
    def _fail(self, *args, **kwargs):
        raise PersistenceFailure("Mail sending failed")

    monkeypatch.setattr(MessagingEngine, "send", _fail)
    resp = client.post(
        "/mails",
        headers=auth(users.alice),
        data={"subject": "Hi", "body": "x", "recipients": f"[{users.bob}]"},
    )
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "code": "persistence_error", "message": "Mail sending failed"}


def test_not_found_paths(client, users):
    assert client.get("/mails/999", headers=auth(users.alice)).status_code == 404
    assert client.post("/mails/999/reply", headers=auth(users.alice), data={"body": "x"}).status_code == 404
    resp = client.delete("/mails/999", headers=auth(users.alice))
    assert resp.status_code == 404 and resp.json()["message"] == "Thread not found"


def test_admin_listing_requires_super_admin(client, make_user, users):
    root = make_user("Root", "SUPER_ADMIN")
    client.post("/mails", headers=auth(users.alice),
                data={"subject": "Audit", "body": "x", "recipients": f"[{users.bob}]"})

    assert client.get("/mails/admin/all", headers=auth(users.alice)).status_code == 403
    resp = client.get("/mails/admin/all", headers=auth(root))
    assert resp.status_code == 200 and resp.json()["total_threads"] == 1


def test_suggestions(client, make_user, users):
    make_user("Bobby Admin", "ADMIN")
    resp = client.get("/mails/users/suggestions", params={"q": "bob"}, headers=auth(users.alice)).json()
    assert [u["name"] for u in resp["data"]] == ["Bob"]

    assert client.get("/mails/users/suggestions", params={"q": ""}, headers=auth(users.alice)).json()["data"] == []
    own = client.get("/mails/users/suggestions", params={"q": "alice"}, headers=auth(users.alice)).json()
    assert own["count"] == 0


def test_notifications_endpoints(client, session_factory, make_user, users):
    service = NotificationService(session_factory)
    mine = service.notify([users.bob], "For Bob", "b", "INFO")[0]
    service.notify([users.carol], "For Carol", "c", "INFO")
    service.notify(None, "Everyone", "all", "INFO")

    data = client.get("/notifications", headers=auth(users.bob)).json()["data"]
    assert {n["title"] for n in data} == {"For Bob", "Everyone"}

    root = make_user("Root", "SUPER_ADMIN")
    assert len(client.get("/notifications", headers=auth(root)).json()["data"]) == 3

    assert client.put(f"/notifications/{mine.id}/read", headers=auth(users.bob)).json()["success"] is True
    data = client.get("/notifications", headers=auth(users.bob)).json()["data"]
    assert {n["title"]: n["is_read"] for n in data} == {"For Bob": True, "Everyone": False}
