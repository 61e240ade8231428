import pytest

from codebridge.bus.events import InboundMessage, OutboundMessage
from codebridge.bus.queue import MessageBus


def test_session_key_combines_channel_and_chat():
    msg = InboundMessage(channel="telegram", sender_id="u1", chat_id="100", content="hello")
    assert msg.session_key == "telegram:100"
    assert msg.choice_id is None


@pytest.mark.asyncio
async def test_outbound_is_fifo_across_sync_and_async_publishers():
    bus = MessageBus()

    bus.publish_outbound_nowait(OutboundMessage(channel="telegram", chat_id="1", content="a"))
    await bus.publish_outbound(OutboundMessage(channel="telegram", chat_id="1", content="b"))
    bus.publish_outbound_nowait(OutboundMessage(channel="telegram", chat_id="1", content="c"))

    assert bus.outbound_size == 3
    assert [(await bus.consume_outbound()).content for _ in range(3)] == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_inbound_round_trip():
    bus = MessageBus()
    msg = InboundMessage(channel="telegram", sender_id="u1", chat_id="100", content="", choice_id="kill:alpha")

    await bus.publish_inbound(msg)

    assert bus.inbound_size == 1
    assert await bus.consume_inbound() is msg
