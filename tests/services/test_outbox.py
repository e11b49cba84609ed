"""Tests for the optimistic send pipeline."""

import pytest

from huddle_chat.schemas import DeliveryStatus
from huddle_chat.services.chat import ChatContext
from huddle_chat.services.outbox import MessageSendError, OptimisticSender
from huddle_chat.services.reconcile import ConversationView
from huddle_chat.services.store import PersistenceError

ALICE = "user-alice"
BOB = "user-bob"


@pytest.fixture()
def view(chat_context: ChatContext) -> ConversationView:
    conversation_id = chat_context.store.find_or_create_conversation(ALICE, BOB)
    return ConversationView(conversation_id, ALICE, BOB)


@pytest.mark.asyncio
async def test_submit_shows_provisional_immediately(
    chat_context: ChatContext, view: ConversationView
) -> None:
    view.draft = "  hello bob  "
    task = chat_context.sender.submit(view, view.draft)

    assert view.draft == ""
    assert len(view.pending) == 1
    assert view.pending[0].content == "hello bob"
    assert view.pending[0].delivery_status is DeliveryStatus.SENDING

    message = await task

    assert message.delivery_status is DeliveryStatus.SENT
    assert [m.id for m in view.messages] == [message.id]
    assert view.pending == []


@pytest.mark.asyncio
async def test_empty_text_is_rejected(chat_context: ChatContext, view: ConversationView) -> None:
    with pytest.raises(ValueError):
        chat_context.sender.submit(view, "   ")
    assert view.messages == []


@pytest.mark.asyncio
async def test_failed_send_rolls_back_and_restores_draft(
    chat_context: ChatContext, view: ConversationView, mocker
) -> None:
    mocker.patch.object(
        chat_context.store, "append_message", side_effect=PersistenceError("store offline")
    )
    sender = OptimisticSender(chat_context.store)

    with pytest.raises(MessageSendError) as exc_info:
        await sender.send(view, "will fail")

    assert exc_info.value.content == "will fail"
    assert view.messages == []
    assert view.draft == "will fail"
    assert chat_context.store.list_messages(view.conversation_id) == []


@pytest.mark.asyncio
async def test_failed_send_restores_draft_exactly_as_typed(
    chat_context: ChatContext, view: ConversationView, mocker
) -> None:
    mocker.patch.object(
        chat_context.store, "append_message", side_effect=PersistenceError("store offline")
    )
    sender = OptimisticSender(chat_context.store)
    view.draft = "  will fail\n"

    with pytest.raises(MessageSendError) as exc_info:
        await sender.send(view, view.draft)

    assert exc_info.value.content == "  will fail\n"
    assert view.draft == "  will fail\n"
