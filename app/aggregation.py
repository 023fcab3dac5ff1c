"""
Thread activity aggregation.

Builds one ThreadSummary per conversation from the raw message rows of a
single scope. The pass is a pure function of its input, so the result
always reflects the rows the store returned for this request.

Timestamps are compared as strings; the store keeps them normalized
(see app.utils.normalize_timestamp) so string order is time order.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from app.schemas import ThreadSummary

logger = logging.getLogger(__name__)


class _ThreadState:
    """Running aggregates for one conversation."""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        self.message_count = 0
        self.name: Optional[str] = None
        self.name_seq = -1
        self.parent_id: Optional[str] = None
        self.parent_name: Optional[str] = None
        self.parent_name_seq = -1
        self.owner_key = None
        self.owner_name: Optional[str] = None
        self.owner_id: Optional[str] = None
        self.last_message_at: Optional[str] = None
        self.last_message_from_respondent = False
        self.last_respondent_message_at: Optional[str] = None
        self.participant_times: List[str] = []

    def add(self, row: Any) -> None:
        self.message_count += 1
        created_at = row.created_at
        is_respondent = bool(row.is_from_respondent)

        # Last non-empty label wins, "last" meaning latest insertion
        if row.conversation_name and row.id > self.name_seq:
            self.name = row.conversation_name
            self.name_seq = row.id
        if row.group_parent_name and row.id > self.parent_name_seq:
            self.parent_name = row.group_parent_name
            self.parent_name_seq = row.id
        if self.parent_id is None:
            self.parent_id = row.group_parent_id

        # Owner is the author of the earliest message; equal timestamps fall back to id
        key = (created_at, row.id)
        if self.owner_key is None or key < self.owner_key:
            self.owner_key = key
            self.owner_name = row.author
            self.owner_id = row.author_id

        # Any respondent message sharing the latest timestamp marks the thread answered
        if self.last_message_at is None or created_at > self.last_message_at:
            self.last_message_at = created_at
            self.last_message_from_respondent = is_respondent
        elif created_at == self.last_message_at:
            self.last_message_from_respondent = (
                self.last_message_from_respondent or is_respondent
            )

        if is_respondent:
            if (
                self.last_respondent_message_at is None
                or created_at > self.last_respondent_message_at
            ):
                self.last_respondent_message_at = created_at
        else:
            self.participant_times.append(created_at)

    def pending_count(self) -> int:
        since = self.last_respondent_message_at
        if since is None:
            return len(self.participant_times)
        return sum(1 for ts in self.participant_times if ts > since)

    def summary(self) -> ThreadSummary:
        return ThreadSummary(
            id=self.conversation_id,
            name=self.name or self.conversation_id,
            last_message_at=self.last_message_at,
            message_count=self.message_count,
            parent_id=self.parent_id,
            parent_name=self.parent_name,
            owner_name=self.owner_name,
            owner_id=self.owner_id,
            last_message_from_respondent=self.last_message_from_respondent,
            last_respondent_message_at=self.last_respondent_message_at,
            pending_count=self.pending_count(),
        )


def summarize_threads(rows: Iterable[Any]) -> List[ThreadSummary]:
    """
    Aggregate message rows into ordered thread summaries.

    Args:
        rows: Message rows of a single scope, in any order. Each row needs
            id, conversation_id, conversation_name, author, author_id,
            created_at, group_parent_id, group_parent_name and
            is_from_respondent attributes.

    Returns:
        Summaries with unanswered threads first (last message not from a
        respondent), then by most recent activity descending. Threads
        without a timestamp sort last within their group. Remaining ties
        keep conversation id order.
    """
    states: Dict[str, _ThreadState] = {}
    for row in rows:
        state = states.get(row.conversation_id)
        if state is None:
            state = states[row.conversation_id] = _ThreadState(row.conversation_id)
        state.add(row)

    ordered = sorted(states.values(), key=lambda s: s.conversation_id)
    ordered.sort(key=lambda s: s.last_message_at or "", reverse=True)
    ordered.sort(key=lambda s: (s.last_message_from_respondent, s.last_message_at is None))

    logger.debug(f"Aggregated {len(ordered)} threads")
    return [state.summary() for state in ordered]
