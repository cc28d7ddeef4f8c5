"""
Conversation directory.

Conversations are not stored. Every view here is computed on read from the
messages a viewer has sent or received, then paginated in memory.
"""

from __future__ import annotations

from typing import Dict
from uuid import UUID

from sqlalchemy.orm import Session

from artchat.core.conversation_id import create_conversation_id
from artchat.models.message import Message
from artchat.schemas.message import (
    ConversationList,
    ConversationSearchHit,
    ConversationSearchResult,
    ConversationSummary,
    LastMessage,
    MatchingMessage,
    MessageRead,
    MessageSearchResult,
    Pagination,
)
from artchat.schemas.user import UserSummary
from artchat.services.message_service import MessageService
from artchat.services.user_service import UserService


def _other_party(message: Message, user_id: UUID) -> UUID:
    return message.receiver_id if message.sender_id == user_id else message.sender_id


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = max(limit, 1)
    return page, limit


class ConversationService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.messages = MessageService(db)
        self.users = UserService(db)

    def _summaries(self, user_ids) -> Dict[UUID, UserSummary]:
        return {
            u.id: UserSummary.model_validate(u) for u in self.users.get_users(set(user_ids))
        }

    def list_conversations(
        self, user_id: UUID, page: int = 1, limit: int = 20
    ) -> ConversationList:
        """Every conversation touching the user, most recently active first."""
        page, limit = _page_bounds(page, limit)
        last_messages = []
        for conversation_id in self.messages.get_conversation_ids(user_id):
            last = self.messages.get_last_message(conversation_id)
            if last is not None:
                last_messages.append(last)

        others = self._summaries(_other_party(m, user_id) for m in last_messages)
        entries = [
            ConversationSummary(
                conversation_id=m.conversation_id,
                other_user=others.get(_other_party(m, user_id)),
                last_message=LastMessage(
                    id=m.id,
                    content=m.content,
                    timestamp=m.timestamp,
                    sender_id=m.sender_id,
                    is_sent_by_me=m.sender_id == user_id,
                ),
                unread_count=self.messages.count_unread_in_conversation(
                    m.conversation_id, user_id
                ),
                updated_at=m.timestamp,
            )
            for m in last_messages
        ]
        entries.sort(key=lambda c: c.updated_at, reverse=True)

        skip = (page - 1) * limit
        return ConversationList(
            conversations=entries[skip : skip + limit],
            pagination=Pagination.build(page, limit, len(entries)),
        )

    def search_conversations(
        self, user_id: UUID, query_text: str, page: int = 1, limit: int = 20
    ) -> ConversationSearchResult:
        """Conversations with at least one matching message; newest match kept per conversation."""
        page, limit = _page_bounds(page, limit)
        first_match: Dict[str, Message] = {}
        for message in self.messages.search_user_messages(user_id, query_text):
            first_match.setdefault(message.conversation_id, message)

        matches = sorted(first_match.values(), key=lambda m: m.timestamp, reverse=True)
        others = self._summaries(_other_party(m, user_id) for m in matches)

        skip = (page - 1) * limit
        hits = [
            ConversationSearchHit(
                conversation_id=m.conversation_id,
                other_user=others.get(_other_party(m, user_id)),
                matching_message=MatchingMessage(
                    id=m.id, content=m.content, timestamp=m.timestamp
                ),
            )
            for m in matches[skip : skip + limit]
        ]
        return ConversationSearchResult(
            conversations=hits,
            pagination=Pagination.build(page, limit, len(matches)),
        )

    def search_within_conversation(
        self,
        user_id: UUID,
        other_user_id: UUID,
        query_text: str,
        page: int = 1,
        limit: int = 20,
    ) -> MessageSearchResult:
        page, limit = _page_bounds(page, limit)
        conversation_id = create_conversation_id(user_id, other_user_id)
        query = self.messages.search_conversation_query(conversation_id, query_text)
        total = query.count()
        rows = query.offset((page - 1) * limit).limit(limit).all()
        return MessageSearchResult(
            messages=[MessageRead.model_validate(m) for m in rows],
            pagination=Pagination.build(page, limit, total),
        )
