import pytest

from codebridge.config.schema import ProjectsConfig
from codebridge.errors import ProjectNotFoundError
from codebridge.projects import ProjectResolver


@pytest.fixture
def root(tmp_path):
    for name in ("beta", "Alpha", ".hidden", "node_modules"):
        (tmp_path / name).mkdir()
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    return tmp_path


def test_resolve_existing_project(root):
    resolver = ProjectResolver(ProjectsConfig(root=str(root)))
    assert resolver.resolve("beta") == root / "beta"


@pytest.mark.parametrize("project_id", ["missing", "notes.txt", "..", "beta/../beta", ""])
def test_resolve_rejects_unknown_or_escaping_ids(root, project_id):
    resolver = ProjectResolver(ProjectsConfig(root=str(root)))
    with pytest.raises(ProjectNotFoundError):
        resolver.resolve(project_id)


def test_override_wins_over_root(root, tmp_path_factory):
    elsewhere = tmp_path_factory.mktemp("elsewhere")
    resolver = ProjectResolver(ProjectsConfig(root=str(root), overrides={"beta": str(elsewhere)}))

    assert resolver.resolve("beta") == elsewhere


def test_list_available_skips_hidden_and_sorts_case_insensitively(root, tmp_path_factory):
    elsewhere = tmp_path_factory.mktemp("api")
    resolver = ProjectResolver(ProjectsConfig(root=str(root), overrides={"api": str(elsewhere)}))

    assert [p.id for p in resolver.list_available()] == ["Alpha", "api", "beta"]


def test_list_available_on_missing_root_is_empty(tmp_path):
    resolver = ProjectResolver(ProjectsConfig(root=str(tmp_path / "nope")))
    assert resolver.list_available() == []


def test_context_append_reads_status_and_design(tmp_path):
    specs = tmp_path / "specs"
    specs.mkdir()
    (specs / "app-status.md").write_text("Phase 2", encoding="utf-8")
    (specs / "app-design.md").write_text("Three tiers", encoding="utf-8")

    context = ProjectResolver.context_append(tmp_path)

    assert "# Project Context" in context
    assert "## Project Status (from app-status.md)\n\nPhase 2" in context
    assert "## Project Design (from app-design.md)\n\nThree tiers" in context


def test_context_append_without_specs(tmp_path):
    assert ProjectResolver.context_append(tmp_path) == ""
    (tmp_path / "specs").mkdir()
    assert ProjectResolver.context_append(tmp_path) == ""
