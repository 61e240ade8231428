"""Configuration loading utilities."""

import json
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from codebridge.config.schema import Config


def get_config_path() -> Path:
    """Get the default configuration file path."""
    return Path.home() / ".codebridge" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file or create default.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        Loaded configuration object.
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            data = _migrate_config(data)
            return Config.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to save to. Uses default if not provided.
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump(by_alias=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def _migrate_config(data: dict) -> dict:
    """Migrate old config formats to current."""
    # Move claude -> agent
    if "claude" in data and "agent" not in data:
        data["agent"] = data.pop("claude")

    agent = data.get("agent")
    if isinstance(agent, dict):
        # Millisecond timings -> seconds
        for old, new in (
            ("streamBufferMs", "streamBufferSeconds"),
            ("approvalTimeoutMs", "approvalTimeoutSeconds"),
            ("queryTimeoutMs", "queryTimeoutSeconds"),
        ):
            if old in agent:
                value = agent.pop(old)
                if new not in agent and isinstance(value, (int, float)):
                    agent[new] = value / 1000

    # Move top-level projectRoot/projectOverrides -> projects
    projects = data.setdefault("projects", {})
    if "projectRoot" in data and "root" not in projects:
        projects["root"] = data.pop("projectRoot")
    if "projectOverrides" in data and "overrides" not in projects:
        projects["overrides"] = data.pop("projectOverrides")
    return data
