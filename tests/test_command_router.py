import asyncio

import pytest

from codebridge.agent.registry import SessionRegistry
from codebridge.agent.router import HELP_TEXT, CommandRouter
from codebridge.bus.events import InboundMessage
from codebridge.bus.queue import MessageBus
from codebridge.config.schema import AgentConfig, ProjectsConfig
from codebridge.notifier import Notifier
from codebridge.projects import ProjectResolver
from codebridge.providers.base import StreamResult


class RecordingBackend:
    def __init__(self):
        self.prompts = []

    async def query(self, request):
        self.prompts.append(request.prompt)
        yield StreamResult(success=True)


def _router(root, names=("alpha", "alpine", "beta")) -> tuple[CommandRouter, MessageBus, RecordingBackend]:
    for name in names:
        (root / name).mkdir()
    bus = MessageBus()
    notifier = Notifier(bus)
    notifier.remember(InboundMessage(channel="telegram", sender_id="7", chat_id="42", content="hi"))
    backend = RecordingBackend()
    registry = SessionRegistry(
        resolver=ProjectResolver(ProjectsConfig(root=str(root))),
        notifier=notifier,
        backend=backend,
        agent_config=AgentConfig(stream_buffer_seconds=0.01),
    )
    return CommandRouter(registry, notifier), bus, backend


def _drain(bus: MessageBus) -> list:
    messages = []
    while not bus.outbound.empty():
        messages.append(bus.outbound.get_nowait())
    return messages


@pytest.mark.asyncio
async def test_open_without_argument_offers_project_list(tmp_path):
    router, bus, _ = _router(tmp_path)
    router.registry.open("beta")

    assert await router.handle("/open") is None

    choices = _drain(bus)[-1]
    assert choices.metadata["kind"] == "choices"
    # Open sessions first, then alphabetical
    assert [c["id"] for c in choices.metadata["choices"]] == ["open:beta", "open:alpha", "open:alpine"]
    assert "/open <project-name>" in choices.metadata["fallback"]


@pytest.mark.asyncio
async def test_open_with_unique_prefix_opens_directly(tmp_path):
    router, _, _ = _router(tmp_path)

    reply = await router.handle("/open BE")

    assert reply.startswith("Opened beta")
    assert router.registry.active_project == "beta"


@pytest.mark.asyncio
async def test_open_with_shared_prefix_lists_matches(tmp_path):
    router, bus, _ = _router(tmp_path)

    assert await router.handle("/open alp") is None

    choices = _drain(bus)[-1]
    assert [c["id"] for c in choices.metadata["choices"]] == ["open:alpha", "open:alpine"]
    assert choices.content.startswith('Projects matching "alp" (2 total)')


@pytest.mark.asyncio
async def test_open_with_no_match(tmp_path):
    router, _, _ = _router(tmp_path)
    assert await router.handle("/open zzz") == 'No projects matching "zzz". Use /open to browse.'


@pytest.mark.asyncio
async def test_open_list_is_capped(tmp_path):
    router, bus, _ = _router(tmp_path, names=[f"proj{i:02d}" for i in range(14)])

    await router.handle("/open")

    choices = _drain(bus)[-1]
    assert len(choices.metadata["choices"]) == 10
    assert "(14 total)" in choices.content
    assert "Showing the first 10" in choices.content


@pytest.mark.asyncio
async def test_open_with_empty_root(tmp_path):
    router, _, _ = _router(tmp_path, names=())
    assert await router.handle("/open") == f"No projects found in {tmp_path}"


@pytest.mark.asyncio
async def test_command_name_is_case_insensitive_and_bot_suffix_stripped(tmp_path):
    router, _, _ = _router(tmp_path)

    reply = await router.handle("/OPEN@codebridge_bot beta")

    assert reply.startswith("Opened beta")


@pytest.mark.asyncio
async def test_tapped_project_choice_opens_it(tmp_path):
    router, _, _ = _router(tmp_path)

    reply = await router.handle("alpha", choice_id="open:alpha")

    assert reply.startswith("Opened alpha")


@pytest.mark.asyncio
async def test_project_named_like_an_action_opens_from_the_picker(tmp_path):
    router, bus, _ = _router(tmp_path, names=("approve", "deny"))

    await router.handle("/open")
    ids = [c["id"] for c in _drain(bus)[-1].metadata["choices"]]

    assert ids == ["open:approve", "open:deny"]
    assert (await router.handle("", choice_id="open:approve")).startswith("Opened approve")
    assert router.registry.active_project == "approve"


@pytest.mark.asyncio
async def test_unknown_choice_is_rejected(tmp_path):
    router, _, _ = _router(tmp_path)

    assert await router.handle("", choice_id="alpha") == "That button is no longer valid."
    assert router.registry.session_ids() == []


@pytest.mark.asyncio
async def test_tapped_kill_and_restart_choices(tmp_path):
    router, _, _ = _router(tmp_path)
    router.registry.open("alpha")

    assert (await router.handle("", choice_id="restart:alpha")).startswith("Restarted alpha.")
    assert await router.handle("", choice_id="kill:alpha") == "Killed session: alpha"
    assert await router.handle("", choice_id="kill:alpha") == "No session found for: alpha"


@pytest.mark.asyncio
async def test_tapped_approval_with_nothing_pending(tmp_path):
    router, _, _ = _router(tmp_path)
    router.registry.open("alpha")

    assert await router.handle("", choice_id="approve") == "No pending approval to respond to."
    assert await router.handle("", choice_id="deny:alpha") == "No pending approval to respond to."
    assert await router.handle("", choice_id="deny:gone") == "No session found for: gone"


@pytest.mark.asyncio
async def test_kill_without_argument_offers_sessions(tmp_path):
    router, bus, _ = _router(tmp_path)
    assert await router.handle("/kill") == "No open sessions to kill."

    router.registry.open("alpha")
    router.registry.open("beta")
    assert await router.handle("/restart") is None

    choices = _drain(bus)[-1]
    assert [c["id"] for c in choices.metadata["choices"]] == ["restart:alpha", "restart:beta"]


@pytest.mark.asyncio
async def test_unknown_command_is_relayed_verbatim(tmp_path):
    router, _, backend = _router(tmp_path)
    router.registry.open("alpha")

    assert await router.handle("/compact  now") is None
    await asyncio.sleep(0.05)

    assert backend.prompts == ["/compact  now"]


@pytest.mark.asyncio
async def test_plain_text_is_relayed(tmp_path):
    router, _, backend = _router(tmp_path)

    assert await router.handle("fix the bug") == "No active session. Use /open <project> to start one."

    router.registry.open("alpha")
    assert await router.handle("  fix the bug \n") is None
    await asyncio.sleep(0.05)
    assert backend.prompts == ["fix the bug"]


@pytest.mark.asyncio
async def test_simple_commands(tmp_path):
    router, _, _ = _router(tmp_path)

    assert await router.handle("/help") == HELP_TEXT
    assert await router.handle("/start") == HELP_TEXT
    assert await router.handle("/list") == "No active sessions. Use /open <project> to start one."
    assert await router.handle("/yes") == "No active session."
    assert await router.handle("/cancel") == "No active session."
    assert "codebridge status" in await router.handle("/status")
