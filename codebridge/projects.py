"""Project resolution, enumeration and context loading."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from codebridge.config.schema import ProjectsConfig
from codebridge.errors import ProjectNotFoundError

SKIPPED_DIRS = {"node_modules", "__pycache__"}


@dataclass
class ProjectInfo:
    """One entry in an interactive project listing."""

    id: str
    title: str
    description: str = ""


class ProjectResolver:
    """Maps project ids to working directories under a configured root."""

    def __init__(self, config: ProjectsConfig):
        self.root = config.root_path
        self.overrides = {k: Path(v).expanduser() for k, v in config.overrides.items()}

    def candidate_path(self, project_id: str) -> Path | None:
        """Where a project would live, without checking it exists."""
        if project_id in self.overrides:
            return self.overrides[project_id]
        if not project_id or project_id in {".", ".."} or "/" in project_id or "\\" in project_id:
            # Nested paths and traversal outside the root are not projects.
            return None
        return self.root / project_id

    def resolve(self, project_id: str) -> Path:
        """Return the working directory for a project or raise ProjectNotFoundError."""
        path = self.candidate_path(project_id)
        if path is None or not path.is_dir():
            raise ProjectNotFoundError(project_id, str(path) if path else None)
        return path

    def list_available(self) -> list[ProjectInfo]:
        """List project directories; failures degrade to an empty list."""
        projects: dict[str, ProjectInfo] = {}
        try:
            for entry in self.root.iterdir():
                try:
                    if not entry.is_dir():
                        continue
                except OSError:
                    continue
                if entry.name.startswith(".") or entry.name in SKIPPED_DIRS:
                    continue
                projects[entry.name] = ProjectInfo(id=entry.name, title=entry.name, description=str(entry))
        except OSError as e:
            logger.error(f"Failed to list projects in {self.root}: {e}")

        for name, path in self.overrides.items():
            if path.is_dir():
                projects[name] = ProjectInfo(id=name, title=name, description=str(path))

        return sorted(projects.values(), key=lambda p: p.title.lower())

    @staticmethod
    def context_append(project_dir: Path) -> str:
        """
        Build a system prompt appendix from the project's spec files.

        Reads the first ``specs/*-status.md`` and ``specs/*-design.md`` so the
        agent knows where the project stands. Returns "" when neither exists.
        """
        specs_dir = project_dir / "specs"
        sections: list[str] = []
        try:
            files = sorted(p for p in specs_dir.iterdir() if p.is_file())
        except OSError:
            logger.debug(f"{project_dir.name}: no specs found, proceeding without context")
            return ""

        status = next((p for p in files if p.name.endswith("-status.md")), None)
        if status:
            sections.append(f"## Project Status (from {status.name})\n\n{status.read_text(encoding='utf-8')}")
        design = next((p for p in files if p.name.endswith("-design.md")), None)
        if design:
            sections.append(f"## Project Design (from {design.name})\n\n{design.read_text(encoding='utf-8')}")

        if not sections:
            return ""
        return "\n".join([
            "\n\n# Project Context (injected by codebridge)\n",
            "You are being accessed from a chat app through codebridge.",
            "The user is chatting from their phone. Keep responses concise.",
            "The following project specs were loaded automatically:\n",
            *sections,
        ])
