"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Base(BaseModel):
    """Base model accepting both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TelegramConfig(Base):
    """Telegram channel configuration."""

    enabled: bool = False
    token: str = ""  # Bot token from @BotFather
    allow_from: list[str] = Field(default_factory=list)  # Allowed user IDs or usernames
    proxy: str | None = None  # HTTP/SOCKS5 proxy URL, e.g. "http://127.0.0.1:7890"


class ChannelsConfig(Base):
    """Configuration for chat channels."""

    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


DEFAULT_ALLOWED_TOOLS = [
    "Read",
    "Write",
    "Edit",
    "Glob",
    "Grep",
    "WebFetch",
    "WebSearch",
    "NotebookEdit",
]


class AgentConfig(Base):
    """Coding agent backend settings."""

    model: str = "sonnet"
    permission_mode: Literal["default", "acceptEdits", "plan", "bypassPermissions"] = "acceptEdits"
    # Tools approved without a round trip to the chat
    allowed_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))
    max_turns: int = 50
    # Quiet period before buffered text is flushed to the chat
    stream_buffer_seconds: float = 3.0
    # Pending approvals are auto-denied after this long
    approval_timeout_seconds: float = 300.0
    # A running query is aborted after this long
    query_timeout_seconds: float = 600.0

    @field_validator("stream_buffer_seconds", "approval_timeout_seconds", "query_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value


class ProjectsConfig(Base):
    """Where project working directories live."""

    root: str = "~/dev"
    overrides: dict[str, str] = Field(default_factory=dict)  # project id -> directory

    @property
    def root_path(self) -> Path:
        return Path(self.root).expanduser()


class OutputConfig(Base):
    """Outbound text shaping."""

    max_message_length: int = 3800
    summarize_threshold: int = 1500


class Config(Base):
    """Root configuration for codebridge."""

    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    projects: ProjectsConfig = Field(default_factory=ProjectsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
