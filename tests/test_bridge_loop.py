import asyncio

import pytest

from codebridge.agent.loop import BridgeLoop
from codebridge.agent.registry import SessionRegistry
from codebridge.bus.events import InboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.config.schema import AgentConfig, ProjectsConfig
from codebridge.notifier import Notifier
from codebridge.projects import ProjectResolver
from codebridge.providers.base import StreamResult, StreamText


class EchoBackend:
    async def query(self, request):
        yield StreamText(f"echo: {request.prompt}")
        yield StreamResult(success=True)


def _loop(tmp_path) -> tuple[BridgeLoop, MessageBus]:
    (tmp_path / "alpha").mkdir()
    bus = MessageBus()
    notifier = Notifier(bus)
    registry = SessionRegistry(
        resolver=ProjectResolver(ProjectsConfig(root=str(tmp_path))),
        notifier=notifier,
        backend=EchoBackend(),
        agent_config=AgentConfig(stream_buffer_seconds=0.01),
    )
    return BridgeLoop(bus, registry, notifier), bus


def _drain(bus: MessageBus) -> list:
    messages = []
    while not bus.outbound.empty():
        messages.append(bus.outbound.get_nowait())
    return messages


@pytest.mark.asyncio
async def test_first_sender_becomes_recipient_and_gets_replies(tmp_path):
    loop, bus = _loop(tmp_path)

    await loop.process_direct("/open alpha", channel="telegram", chat_id="42")

    (reply,) = _drain(bus)
    assert (reply.channel, reply.chat_id) == ("telegram", "42")
    assert reply.content.startswith("Opened alpha")


@pytest.mark.asyncio
async def test_messages_from_other_chats_are_ignored(tmp_path):
    loop, bus = _loop(tmp_path)
    await loop.process_direct("/help", channel="telegram", chat_id="42")
    _drain(bus)

    await loop.process_direct("/open alpha", channel="telegram", chat_id="99")

    assert _drain(bus) == []
    assert loop.registry.sessions == {}


@pytest.mark.asyncio
async def test_router_errors_become_apology(tmp_path, monkeypatch):
    loop, bus = _loop(tmp_path)

    async def broken(text, choice_id=None):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(loop.router, "handle", broken)
    await loop.process_direct("anything")

    assert [m.content for m in _drain(bus)] == ["Sorry, I encountered an error: kaboom"]


@pytest.mark.asyncio
async def test_run_consumes_inbound_until_stopped(tmp_path):
    loop, bus = _loop(tmp_path)
    runner = asyncio.create_task(loop.run())

    await bus.publish_inbound(InboundMessage(channel="telegram", sender_id="7", chat_id="42", content="/open alpha"))
    await bus.publish_inbound(InboundMessage(channel="telegram", sender_id="7", chat_id="42", content="hello"))
    await asyncio.sleep(0.2)
    loop.stop()
    await asyncio.wait_for(runner, timeout=3)

    contents = [m.content for m in _drain(bus)]
    assert contents[0].startswith("Opened alpha")
    assert contents[1:] == ["_Working on it..._", "echo: hello"]
