import pytest

from app.core.errors import NotFound
from app.crud import mails
from app.services.messaging import MessagingEngine


@pytest.fixture
def engine(session_factory):
    return MessagingEngine(session_factory)


def test_kickoff_scenario(db, engine, users):
    first = engine.send(users.alice, "Kickoff", "Welcome aboard, see the plan", [users.bob, users.carol])

    for uid in (users.bob, users.carol):
        inbox = mails.list_inbox(db, uid)
        assert len(inbox) == 1
        assert inbox[0]["thread_id"] == first.thread_id
        assert inbox[0]["preview"] == "Welcome aboard, see the plan"
        assert inbox[0]["is_read"] is False
        assert inbox[0]["replies_count"] == 0 and inbox[0]["has_replies"] is False

    sent = mails.list_sent(db, users.alice)
    assert len(sent) == 1
    assert sent[0]["recipients"] == "Bob, Carol"
    assert [r["id"] for r in sent[0]["recipient_list"]] == [users.bob, users.carol]

    reply = engine.reply(users.bob, first.message_id, "Thanks, reading it now")

    detail = mails.get_thread_detail(db, reply.message_id)
    assert [m["id"] for m in detail["mails"]] == [first.message_id, reply.message_id]
    assert [m["sender_id"] for m in detail["mails"]] == [users.alice, users.bob]
    assert detail["subject"] == "Kickoff"

    carol_item = mails.list_inbox(db, users.carol)[0]
    assert carol_item["id"] == reply.message_id
    assert carol_item["preview"] == "Thanks, reading it now"
    assert carol_item["replies_count"] == 1
    assert [r["sender_name"] for r in carol_item["replies"]] == ["Alice", "Bob"]

    engine.delete_conversation(users.carol, first.thread_id)

    assert mails.list_inbox(db, users.carol) == []
    assert len(mails.list_inbox(db, users.alice)) == 1
    assert len(mails.list_inbox(db, users.bob)) == 1
    assert len(mails.list_sent(db, users.alice)) == 1
    # the canonical history ignores deletion flags
    assert len(mails.get_thread_detail(db, first.message_id)["mails"]) == 2


def test_inbox_orders_threads_by_latest_activity(db, engine, users):
    older = engine.send(users.alice, "Older", "a", [users.bob])
    newer = engine.send(users.carol, "Newer", "b", [users.bob])
    assert [i["thread_id"] for i in mails.list_inbox(db, users.bob)] == [newer.thread_id, older.thread_id]

    engine.reply(users.alice, older.message_id, "bump")
    assert [i["thread_id"] for i in mails.list_inbox(db, users.bob)] == [older.thread_id, newer.thread_id]


def test_inbox_read_state_follows_latest_message(db, engine, users):
    first = engine.send(users.alice, "Read me", "a", [users.bob])
    engine.mark_read(users.bob, first.message_id)
    assert mails.list_inbox(db, users.bob)[0]["is_read"] is True

    # Bob's own reply is latest: he has no recipient row for it
    engine.reply(users.bob, first.message_id, "b")
    assert mails.list_inbox(db, users.bob)[0]["is_read"] is True

    engine.reply(users.alice, first.message_id, "c")
    assert mails.list_inbox(db, users.bob)[0]["is_read"] is False


def test_sent_hides_sender_deleted(db, engine, users):
    first = engine.send(users.alice, "Gone", "a", [users.bob])
    engine.send(users.alice, "Kept", "b", [users.bob])
    engine.delete_conversation(users.alice, first.thread_id)

    assert [s["subject"] for s in mails.list_sent(db, users.alice)] == ["Kept"]
    assert len(mails.list_inbox(db, users.bob)) == 2


def test_thread_detail_missing(db):
    with pytest.raises(NotFound):
        mails.get_thread_detail(db, 42)


def test_admin_view_includes_everything(db, engine, users):
    first = engine.send(users.alice, "Audit", "a", [users.bob, users.carol])
    engine.mark_read(users.bob, first.message_id)
    engine.delete_conversation(users.alice, first.thread_id)

    threads = mails.list_all_threads(db)
    assert len(threads) == 1
    thread = threads[0]
    assert thread["created_by"] == {"id": users.alice, "name": "Alice"}

    (mail,) = thread["mails"]
    assert mail["sender_deleted"] is True
    state = {r["recipient_id"]: (r["is_read"], r["is_deleted"]) for r in mail["recipients"]}
    assert state == {users.bob: (True, False), users.carol: (False, False)}


def test_admin_view_empty(db):
    assert mails.list_all_threads(db) == []
