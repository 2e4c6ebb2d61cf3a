"""Tests for the project registry."""

import datetime
from pathlib import Path

import pytest
import yaml

from claude_sync.errors import ConfigurationError, ProjectAlreadyExists, ProjectNotFound
from claude_sync.registry import ProjectRegistry, TrackedProject


@pytest.fixture
def registry(tmp_path: Path) -> ProjectRegistry:
    return ProjectRegistry(tmp_path / "sync")


def test_missing_file_is_an_empty_registry(registry: ProjectRegistry) -> None:
    assert registry.load() == {}
    assert registry.names() == []
    assert registry.get("x") is None


def test_add_persists_yaml_with_sorted_files(registry: ProjectRegistry) -> None:
    """Verifies the on-disk record layout."""
    project = TrackedProject(
        name="demo",
        root_path=Path("/work/demo"),
        branch="dev",
        remote="git@github.com:me/demo.git",
        tracked_files={"b.md", "CLAUDE.local.md", ".claude/a.md"},
    )
    registry.add(project)

    data = yaml.safe_load(registry.path.read_text())
    record = data["projects"]["demo"]
    assert record["path"] == "/work/demo"
    assert record["gitRemote"] == "git@github.com:me/demo.git"
    assert record["branch"] == "dev"
    assert record["trackedFiles"] == [".claude/a.md", "CLAUDE.local.md", "b.md"]
    assert set(record["metadata"]) == {"addedAt", "lastSync", "lastModified"}
    assert not registry.path.with_suffix(".tmp").exists()

    loaded = registry.require("demo")
    assert loaded.root_path == Path("/work/demo")
    assert loaded.tracked_files == project.tracked_files
    assert loaded.metadata.added_at == project.metadata.added_at


def test_add_rejects_duplicate_names(registry: ProjectRegistry) -> None:
    registry.add(TrackedProject(name="demo", root_path=Path("/a")))

    with pytest.raises(ProjectAlreadyExists):
        registry.add(TrackedProject(name="demo", root_path=Path("/b")))


def test_update_and_remove_require_existing_project(registry: ProjectRegistry) -> None:
    with pytest.raises(ProjectNotFound):
        registry.update(TrackedProject(name="ghost", root_path=Path("/g")))
    with pytest.raises(ProjectNotFound):
        registry.remove("ghost")
    with pytest.raises(ProjectNotFound, match="ghost"):
        registry.require("ghost")


def test_update_and_remove(registry: ProjectRegistry) -> None:
    project = TrackedProject(name="demo", root_path=Path("/a"))
    registry.add(project)

    project.track(["CLAUDE.local.md"])
    registry.update(project)
    assert registry.require("demo").tracked_files == {"CLAUDE.local.md"}

    registry.remove("demo")
    assert not registry.exists("demo")


def test_find_by_root_compares_normalized_paths(
    registry: ProjectRegistry, tmp_path: Path
) -> None:
    registry.add(TrackedProject(name="demo", root_path=tmp_path / "work"))

    assert registry.find_by_root(tmp_path / "work" / "sub" / "..").name == "demo"
    assert registry.find_by_root(tmp_path / "other") is None


def test_track_and_untrack_update_last_modified() -> None:
    project = TrackedProject(name="demo", root_path=Path("/a"))
    before = project.metadata.last_modified = datetime.datetime(
        2020, 1, 1, tzinfo=datetime.UTC
    )

    assert project.track(["./x.md", "x.md", "y.md"]) == ["x.md", "y.md"]
    assert project.metadata.last_modified > before

    project.metadata.last_modified = before
    assert project.track(["x.md"]) == []
    assert project.metadata.last_modified == before

    assert project.untrack(["x.md", "z.md"]) == ["x.md"]
    assert project.tracked_files == {"y.md"}
    assert project.metadata.last_modified > before


def test_load_rejects_malformed_files(registry: ProjectRegistry) -> None:
    registry.path.parent.mkdir(parents=True)

    registry.path.write_text("projects: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Failed to parse"):
        registry.load()

    registry.path.write_text("projects:\n  demo:\n    branch: main\n")
    with pytest.raises(ConfigurationError, match="has no path"):
        registry.load()

    registry.path.write_text("projects:\n  - demo\n")
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        registry.load()


def test_load_fills_missing_metadata(registry: ProjectRegistry) -> None:
    registry.path.parent.mkdir(parents=True)
    registry.path.write_text("projects:\n  demo:\n    path: /work/demo\n")

    project = registry.require("demo")

    assert project.tracked_files == set()
    assert project.branch == "main"
    assert project.metadata.added_at.tzinfo is not None
