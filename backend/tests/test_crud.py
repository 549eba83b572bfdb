"""Tests for the conversation and message CRUD layer."""

from datetime import datetime

import pytest

from chatrelay.crud.conversation import conversation_crud, message_crud
from chatrelay.models.message import Message
from chatrelay.services.errors import AuthorizationError, ConflictError, NotFoundError


async def test_same_timestamp_messages_keep_insertion_order(db, seeded) -> None:
    stamp = datetime(2024, 1, 1, 12, 0, 0)
    # ids sort opposite to insertion order
    for message_id, content in (("zz-first", "first"), ("mm-second", "second"), ("aa-third", "third")):
        db.add(
            Message(
                id=message_id,
                conversation_id=seeded["chat_id"],
                role="user",
                content=content,
                model_id=seeded["model_id"],
                created_at=stamp,
            )
        )
        await db.commit()

    messages = await message_crud.list_for_conversation(db, seeded["chat_id"])

    assert [m.content for m in messages] == ["first", "second", "third", "Hi there"]


async def test_get_owned_check_order(db, seeded) -> None:
    with pytest.raises(NotFoundError):
        await conversation_crud.get_owned(db, "missing", "u1")
    with pytest.raises(AuthorizationError):
        await conversation_crud.get_owned(db, seeded["chat_id"], "u2")

    conversation = await conversation_crud.get(db, seeded["chat_id"])
    await conversation_crud.soft_delete(db, conversation)
    with pytest.raises(ConflictError):
        await conversation_crud.get_owned(db, seeded["chat_id"], "u1")
    with pytest.raises(AuthorizationError):
        await conversation_crud.get_owned(db, seeded["chat_id"], "u2")


async def test_update_content_reports_missing_row(db, seeded) -> None:
    assert await message_crud.update_content(db, "missing", "x") is False
