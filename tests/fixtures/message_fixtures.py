"""Fixtures for message model."""

import pytest

from artchat.services.message_service import MessageService


@pytest.fixture(scope="function")
def setup_conversation(db, setup_artist, setup_buyer):
    """
    Three messages between the artist and the buyer, oldest first.
    The last one is addressed to the buyer and unread.
    """
    service = MessageService(db)
    return [
        service.append(setup_artist.id, setup_buyer.id, "Thanks for visiting my gallery"),
        service.append(setup_buyer.id, setup_artist.id, "Is the blue landscape still available?"),
        service.append(setup_artist.id, setup_buyer.id, "Yes, the landscape is available"),
    ]
