"""
Tests for app.aggregation.summarize_threads as a pure function.
"""

from types import SimpleNamespace

from app.aggregation import summarize_threads


def row(id, conversation_id, created_at, respondent=False, author="alice", **kwargs):
    values = dict(
        id=id,
        conversation_id=conversation_id,
        conversation_name=None,
        author=author,
        author_id=f"u-{author}",
        created_at=created_at,
        group_parent_id="support",
        group_parent_name=None,
        is_from_respondent=respondent,
    )
    values.update(kwargs)
    return SimpleNamespace(**values)


def test_empty_input():
    assert summarize_threads([]) == []


def test_input_order_does_not_matter():
    rows = [
        row(1, "t1", "2025-01-15T10:01:00.000Z"),
        row(2, "t1", "2025-01-15T10:02:00.000Z", respondent=True, author="bob"),
        row(3, "t1", "2025-01-15T10:03:00.000Z"),
        row(4, "t2", "2025-01-15T10:00:00.000Z"),
    ]

    forward = summarize_threads(rows)
    backward = summarize_threads(list(reversed(rows)))

    assert forward == backward


def test_pending_counts_only_after_last_reply():
    rows = [
        row(1, "t1", "2025-01-15T10:00:00.000Z"),
        row(2, "t1", "2025-01-15T10:01:00.000Z", respondent=True, author="bob"),
        row(3, "t1", "2025-01-15T10:02:00.000Z"),
        row(4, "t1", "2025-01-15T10:03:00.000Z", respondent=True, author="bob"),
        row(5, "t1", "2025-01-15T10:04:00.000Z"),
        row(6, "t1", "2025-01-15T10:05:00.000Z"),
    ]

    [summary] = summarize_threads(rows)

    assert summary.pending_count == 2
    assert summary.last_respondent_message_at == "2025-01-15T10:03:00.000Z"
    assert summary.last_message_from_respondent is False


def test_owner_tie_uses_first_inserted():
    rows = [
        row(7, "t1", "2025-01-15T10:00:00.000Z", author="second"),
        row(3, "t1", "2025-01-15T10:00:00.000Z", author="first"),
    ]

    [summary] = summarize_threads(rows)

    assert summary.owner_name == "first"
    assert summary.owner_id == "u-first"


def test_latest_tie_with_respondent_is_answered():
    rows = [
        row(1, "t1", "2025-01-15T10:00:00.000Z", respondent=True, author="bob"),
        row(2, "t1", "2025-01-15T10:00:00.000Z"),
        row(3, "t1", "2025-01-15T09:00:00.000Z"),
    ]

    [summary] = summarize_threads(rows)

    assert summary.last_message_from_respondent is True
    assert summary.pending_count == 0


def test_name_uses_latest_inserted_label():
    rows = [
        row(2, "t1", "2025-01-15T10:00:00.000Z", conversation_name="Renamed"),
        row(1, "t1", "2025-01-15T10:05:00.000Z", conversation_name="Original"),
        row(3, "t1", "2025-01-15T10:06:00.000Z", conversation_name=""),
    ]

    [summary] = summarize_threads(rows)

    assert summary.name == "Renamed"


def test_ordering_ties_fall_back_to_conversation_id():
    rows = [
        row(1, "b", "2025-01-15T10:00:00.000Z"),
        row(2, "a", "2025-01-15T10:00:00.000Z"),
        row(3, "c", "2025-01-15T11:00:00.000Z", respondent=True, author="bob"),
    ]

    assert [s.id for s in summarize_threads(rows)] == ["a", "b", "c"]
