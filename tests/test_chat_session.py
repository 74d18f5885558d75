import asyncio

import pytest

from debtdesk.models.schemas import ConversationCreate, ConversationType, MessageCreate, ParticipantRef
from debtdesk.services.chat_service import ChatService
from debtdesk.services.chat_session import ConversationSession


@pytest.fixture
def chat(gateway):
    return ChatService(gateway)


async def start_conversation(chat, ctx):
    return await chat.create_conversation(ctx, ConversationCreate(
        type=ConversationType.DIRECT,
        participants=[ParticipantRef(user_id="agent-2", user_name="Bob Agent")],
    ))


@pytest.mark.asyncio
async def test_session_loads_history_and_receives_pushes(chat, agent, other_agent):
    conversation = await start_conversation(chat, agent)
    await chat.send_message(agent, conversation.id, MessageCreate(content="first"))

    async with ConversationSession(chat, other_agent, conversation.id) as session:
        assert [m.content for m in session.messages] == ["first"]
        assert session.is_live

        await chat.send_message(agent, conversation.id, MessageCreate(content="second"))
        await asyncio.sleep(0.05)

        assert [m.content for m in session.messages] == ["first", "second"]

    assert not session.is_live


@pytest.mark.asyncio
async def test_own_send_is_not_duplicated_by_echo(gateway, chat, agent):
    conversation = await start_conversation(chat, agent)
    session = await ConversationSession(chat, agent, conversation.id).open()

    sent = await session.send(MessageCreate(content="hi"))
    await asyncio.sleep(0.05)

    assert [m.id for m in session.messages] == [sent.id]
    await session.close()
    assert gateway.subscription_count == 0


@pytest.mark.asyncio
async def test_refresh_keeps_order_and_mark_read(gateway, chat, agent, other_agent):
    conversation = await start_conversation(chat, agent)
    session = await ConversationSession(chat, other_agent, conversation.id).open()
    for text in ["a", "b", "c"]:
        await chat.send_message(agent, conversation.id, MessageCreate(content=text))
    await asyncio.sleep(0.05)

    refreshed = await session.refresh()
    await session.mark_read()
    await session.close()

    assert [m.content for m in refreshed] == ["a", "b", "c"]
    rows = await gateway.select("conversation_participants", {"user_id": "agent-2"})
    assert rows[0]["last_read_at"] is not None
