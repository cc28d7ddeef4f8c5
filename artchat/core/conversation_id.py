"""Conversation id and broadcast group names derived from participant ids."""

from __future__ import annotations

from uuid import UUID

from artchat.constants.messaging import (
    CONVERSATION_GROUP_PREFIX,
    USER_GROUP_PREFIX,
)


def create_conversation_id(user_a: UUID | str, user_b: UUID | str) -> str:
    """
    Build the deterministic conversation id for two participants.

    The ids are compared as strings, sorted and joined with a single
    underscore, so the result is the same whichever side sends first.
    """
    return "_".join(sorted((str(user_a), str(user_b))))


def conversation_room(conversation_id: str) -> str:
    return f"{CONVERSATION_GROUP_PREFIX}{conversation_id}"


def user_room(user_id: UUID | str) -> str:
    return f"{USER_GROUP_PREFIX}{user_id}"
