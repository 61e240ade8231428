import pytest
from pydantic import ValidationError

from codebridge.config.schema import DEFAULT_ALLOWED_TOOLS, AgentConfig, Config


def test_agent_defaults():
    cfg = Config()
    agent = cfg.agent
    assert agent.permission_mode == "acceptEdits"
    assert agent.allowed_tools == DEFAULT_ALLOWED_TOOLS
    assert "Bash" not in agent.allowed_tools
    assert agent.stream_buffer_seconds == 3.0
    assert agent.approval_timeout_seconds == 300.0
    assert agent.query_timeout_seconds == 600.0
    assert cfg.output.max_message_length == 3800


def test_camel_case_keys_are_accepted():
    cfg = Config.model_validate({
        "channels": {"telegram": {"enabled": True, "allowFrom": ["123"]}},
        "agent": {"streamBufferSeconds": 1.5, "permissionMode": "default"},
        "projects": {"root": "/srv/code", "overrides": {"api": "/opt/api"}},
    })
    assert cfg.channels.telegram.allow_from == ["123"]
    assert cfg.agent.stream_buffer_seconds == 1.5
    assert cfg.agent.permission_mode == "default"
    assert str(cfg.projects.root_path) == "/srv/code"


def test_permission_mode_validation_rejects_invalid_value():
    with pytest.raises(ValidationError):
        AgentConfig(permission_mode="yolo")


@pytest.mark.parametrize("field", ["stream_buffer_seconds", "approval_timeout_seconds", "query_timeout_seconds"])
def test_timings_must_be_positive(field):
    with pytest.raises(ValidationError):
        AgentConfig(**{field: 0})


def test_dump_uses_camel_case_aliases():
    data = Config().model_dump(by_alias=True)
    assert "allowFrom" in data["channels"]["telegram"]
    assert "approvalTimeoutSeconds" in data["agent"]
