"""
Tests for the GET /conversations endpoint.

Tests cover:
- Empty scope
- Pending count and respondent tracking
- Owner, name and parent fields
- Ordering of unanswered vs answered threads
- Scope isolation
- Timestamp ties
- Read idempotence
"""

from app.storage import append_message, SessionLocal
from conftest import SCOPE_ID, ts


def customer(post_message, conversation_id, minute, **kwargs):
    return post_message(conversation_id=conversation_id, created_at=ts(minute), **kwargs)


def agent(post_message, conversation_id, minute, **kwargs):
    return post_message(
        conversation_id=conversation_id,
        created_at=ts(minute),
        author="agent-bob",
        author_id="u-bob",
        respondent=True,
        **kwargs,
    )


def by_id(threads):
    return {thread["id"]: thread for thread in threads}


class TestConversationsBasic:
    """Test summary fields."""

    def test_empty(self, client):
        response = client.get("/conversations")

        assert response.status_code == 200
        assert response.json() == []

    def test_summary_fields(self, client, post_message):
        customer(post_message, "t1", 0)

        thread = client.get("/conversations").json()[0]
        assert set(thread) == {
            "id",
            "name",
            "lastMessageAt",
            "messageCount",
            "parentId",
            "parentName",
            "ownerName",
            "ownerId",
            "lastMessageFromRespondent",
            "lastRespondentMessageAt",
            "pendingCount",
        }
        assert thread["parentId"] == SCOPE_ID

    def test_customer_reply_customer(self, client, post_message):
        customer(post_message, "C1", 1)
        agent(post_message, "C1", 2)
        customer(post_message, "C1", 3)

        thread = client.get("/conversations").json()[0]
        assert thread["id"] == "C1"
        assert thread["messageCount"] == 3
        assert thread["lastMessageAt"] == ts(3)
        assert thread["lastRespondentMessageAt"] == ts(2)
        assert thread["pendingCount"] == 1
        assert thread["lastMessageFromRespondent"] is False

    def test_no_respondent_ever(self, client, post_message):
        for minute in range(4):
            customer(post_message, "t1", minute)

        thread = client.get("/conversations").json()[0]
        assert thread["pendingCount"] == 4
        assert thread["lastRespondentMessageAt"] is None
        assert thread["lastMessageFromRespondent"] is False

    def test_answered_thread_has_no_pending(self, client, post_message):
        customer(post_message, "t1", 0)
        customer(post_message, "t1", 1)
        agent(post_message, "t1", 2)

        thread = client.get("/conversations").json()[0]
        assert thread["pendingCount"] == 0
        assert thread["lastMessageFromRespondent"] is True

    def test_late_arriving_old_message(self, client, post_message):
        customer(post_message, "t1", 0)
        agent(post_message, "t1", 5)
        # Ingested last but written before the reply
        customer(post_message, "t1", 3)

        thread = client.get("/conversations").json()[0]
        assert thread["pendingCount"] == 0
        assert thread["lastMessageFromRespondent"] is True
        assert thread["lastMessageAt"] == ts(5)

    def test_owner_is_earliest_author(self, client, post_message):
        customer(post_message, "t1", 4, author="later", author_id="u-later")
        customer(post_message, "t1", 1, author="carol", author_id="u-carol")

        thread = client.get("/conversations").json()[0]
        assert thread["ownerName"] == "carol"
        assert thread["ownerId"] == "u-carol"

    def test_name_falls_back_to_id(self, client, post_message):
        customer(post_message, "t1", 0)

        assert client.get("/conversations").json()[0]["name"] == "t1"

    def test_last_non_empty_name_wins(self, client, post_message):
        customer(post_message, "t1", 0, conversationName="Old title")
        customer(post_message, "t1", 1, conversationName="New title")
        customer(post_message, "t1", 2, conversationName="")

        assert client.get("/conversations").json()[0]["name"] == "New title"

    def test_parent_name(self, client, post_message):
        customer(post_message, "t1", 0, groupParentName="Support")

        assert client.get("/conversations").json()[0]["parentName"] == "Support"


class TestConversationsOrdering:
    """Test ranking of threads."""

    def test_unanswered_before_answered(self, client, post_message):
        # Answered most recently, but still ranks after unanswered threads
        customer(post_message, "answered", 0)
        agent(post_message, "answered", 9)
        customer(post_message, "old-unanswered", 1)
        customer(post_message, "new-unanswered", 5)

        ids = [t["id"] for t in client.get("/conversations").json()]
        assert ids == ["new-unanswered", "old-unanswered", "answered"]

    def test_answered_sorted_by_recency(self, client, post_message):
        agent(post_message, "a", 1)
        agent(post_message, "b", 3)
        agent(post_message, "c", 2)

        ids = [t["id"] for t in client.get("/conversations").json()]
        assert ids == ["b", "c", "a"]


class TestConversationsScope:
    """Test scope isolation."""

    def test_other_scope_excluded(self, client, post_message):
        customer(post_message, "t1", 0)
        with SessionLocal() as db:
            append_message(
                db=db,
                conversation_id="t1",
                author="x",
                content="other scope, same conversation",
                created_at=ts(9),
                group_parent_id="other-forum",
            )
            append_message(
                db=db,
                conversation_id="p2-only",
                author="x",
                content="other scope",
                created_at=ts(9),
                group_parent_id="other-forum",
            )

        threads = by_id(client.get("/conversations").json())
        assert set(threads) == {"t1"}
        assert threads["t1"]["messageCount"] == 1
        assert threads["t1"]["pendingCount"] == 1
        assert threads["t1"]["lastMessageAt"] == ts(0)


class TestConversationsTies:
    """Test identical timestamps."""

    def test_tie_with_respondent_resolves_true(self, client, post_message):
        customer(post_message, "t1", 5)
        agent(post_message, "t1", 5)

        thread = client.get("/conversations").json()[0]
        assert thread["lastMessageFromRespondent"] is True
        assert thread["messageCount"] == 2
        # Same timestamp as the reply is not "after" it
        assert thread["pendingCount"] == 0

    def test_sub_millisecond_order_not_a_tie(self, client, post_message):
        post_message(
            created_at="2025-01-15T10:00:00.0001Z",
            author="agent-bob",
            author_id="u-bob",
            respondent=True,
        )
        post_message(created_at="2025-01-15T10:00:00.0009Z")

        thread = client.get("/conversations").json()[0]
        assert thread["lastMessageFromRespondent"] is False
        assert thread["pendingCount"] == 1
        assert thread["lastMessageAt"] == "2025-01-15T10:00:00.000900Z"
        assert thread["lastRespondentMessageAt"] == "2025-01-15T10:00:00.000100Z"

    def test_tie_order_independent(self, client, post_message):
        agent(post_message, "t1", 5)
        customer(post_message, "t1", 5)

        thread = client.get("/conversations").json()[0]
        assert thread["lastMessageFromRespondent"] is True


class TestConversationsIdempotence:
    """Test repeated reads."""

    def test_repeated_reads_identical(self, client, post_message):
        customer(post_message, "t1", 0)
        agent(post_message, "t1", 1)
        customer(post_message, "t2", 2)
        customer(post_message, "t3", 2)

        first = client.get("/conversations").json()
        second = client.get("/conversations").json()
        assert first == second
