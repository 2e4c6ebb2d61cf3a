import logging
import os
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, Prompt

from .config import Config
from .constants import APP_NAME, SYNC_CONFIG_DIR
from .detector import ProjectDetector
from .errors import (
    ClaudeSyncError,
    LinkBatchError,
    LinkOperationFailed,
    NotAVersionControlRoot,
    ProjectAlreadyExists,
    ProjectNotFound,
    RepositoryStateError,
)
from .links import LinkManager, ReconcileResult
from .paths import normalize_path, sanitize_name
from .registry import ProjectRegistry, TrackedProject
from .scanner import FileRecord, FileScanner
from .sync_repo import SyncRepository

console = Console()
logger = logging.getLogger(APP_NAME)


def require_initialized(sync_repo: SyncRepository) -> None:
    """Raises `RepositoryStateError` unless the sync repository exists."""
    if not sync_repo.exists():
        raise RepositoryStateError(
            f"{sync_repo.path} is not initialized",
            hint="Run 'claude-sync init' first.",
        )


def current_project(
    sync_repo: SyncRepository, directory: str | Path
) -> tuple[ProjectRegistry, TrackedProject]:
    """Resolves the registered project that owns `directory`.

    Args:
        sync_repo (SyncRepository): The sync repository holding the registry.
        directory (str | Path): A directory inside the project.

    Returns:
        tuple[ProjectRegistry, TrackedProject]: The registry and the matching project.

    Raises:
        RepositoryStateError: If the sync repository is not initialized.
        NotAVersionControlRoot: If `directory` is not inside a git repository.
        ProjectNotFound: If the repository root is not registered.
    """
    require_initialized(sync_repo)
    path = normalize_path(directory)
    root = ProjectDetector().detect_git_root(path) if path.is_dir() else None
    if root is None:
        raise NotAVersionControlRoot(str(path))

    registry = ProjectRegistry(sync_repo.path)
    project = registry.find_by_root(root)
    if project is None:
        raise ProjectNotFound(str(root))
    return registry, project


def _relative_to_root(file: str, directory: Path, root: Path) -> str | None:
    """Expresses a user-supplied path relative to the project root, or None if outside it."""
    path = Path(file).expanduser()
    if not path.is_absolute():
        path = directory / path
    path = normalize_path(path)
    # git reports the physical root; resolve the parents, not the file itself.
    physical = Path(os.path.realpath(path.parent)) / path.name
    try:
        return physical.relative_to(os.path.realpath(root)).as_posix()
    except ValueError:
        return None


def _link_files(
    files: list[FileRecord], slot: Path
) -> tuple[list[str], list[LinkOperationFailed]]:
    try:
        return LinkManager().create_links(files, slot, continue_on_error=True), []
    except LinkBatchError as e:
        return e.created, e.failures


def _report_failures(failures: list[LinkOperationFailed]) -> None:
    for failure in failures:
        console.print(f"   [red]✘ {failure.relative_path}: {failure.cause}[/red]")


def _stage_project(
    sync_repo: SyncRepository, names: list[str], config: Config
) -> None:
    """Stages the given project slots together with the registry."""
    paths = [sync_repo.relative_slot(name) for name in names]
    sync_repo.stage([*paths, SYNC_CONFIG_DIR], config)


def init_project(
    name: str | None = None,
    *,
    directory: str | Path,
    sync_repo: SyncRepository,
    assume_yes: bool = False,
) -> TrackedProject | None:
    """Starts tracking the git repository around `directory`.

    Initializes the sync repository if needed, registers the project, links
    every file matching the tracking patterns into its slot and, when
    `core.auto_commit` is on, commits the result.

    Args:
        name (str | None, optional): The project name. Defaults to one derived
                                     from the remote URL or directory name.
        directory (str | Path): A directory inside the project.
        sync_repo (SyncRepository): The target sync repository.
        assume_yes (bool, optional): Skip all prompts. Defaults to False.

    Returns:
        TrackedProject | None: The registered project, or None if the user
                               cancelled.

    Raises:
        ProjectAlreadyExists: If the name or the project root is already registered.
        NotAVersionControlRoot: If `directory` is not inside a git repository.
        RepositoryStateError: If the sync repository cannot be initialized.
        LinkBatchError: After registration, if some links could not be created.
    """
    with console.status("Preparing sync repository...", spinner="dots"):
        sync_repo.initialize(Config.load(sync_repo.path))
    config = Config.load(sync_repo.path)

    detector = ProjectDetector()
    info = detector.git_info(directory)
    suggested = detector.suggested_name(info)

    if name is None and not assume_yes:
        name = Prompt.ask("Project name", default=suggested)
    project_name = sanitize_name(name) if name else suggested
    if not project_name:
        raise ClaudeSyncError(
            f"Invalid project name: {name!r}",
            hint="Use letters, digits, '-' or '_'.",
        )

    registry = ProjectRegistry(sync_repo.path)
    if registry.exists(project_name):
        raise ProjectAlreadyExists(project_name)
    existing = registry.find_by_root(info.root)
    if existing is not None:
        raise ClaudeSyncError(
            f"{info.root} is already tracked as '{existing.name}'",
            hint="Run 'claude-sync relink' to repair its links.",
        )

    console.print("Scanning for tracked files...", style="dim")
    files = FileScanner(config.files.patterns, config.files.exclude).scan(info.root)
    if not files:
        console.print("[yellow]⚠ No matching files found in project.[/yellow]")
        if not assume_yes and not Confirm.ask("Continue anyway?", default=True):
            console.print("Initialization cancelled.", style="dim")
            return None
    else:
        console.print(f"Found {len(files)} file(s):", style="green")
        for record in files:
            console.print(f"   • {record.relative_path}")

    project = TrackedProject(
        name=project_name,
        root_path=info.root,
        branch=info.branch,
        remote=info.remote,
    )
    failures: list[LinkOperationFailed] = []
    if files:
        slot = sync_repo.ensure_project_slot(project_name)
        created, failures = _link_files(files, slot)
        project.track(created)
    registry.add(project)
    logger.info(f"Initialized project {project_name} at {info.root}")

    _stage_project(sync_repo, [project_name], config)
    if config.core.auto_commit:
        sync_repo.commit(
            sync_repo.commit_message(f"add project {project_name}", config), config
        )

    console.print(f"\n[bold green]✔ Initialized project: {project_name}[/bold green]")
    console.print("\nNext steps:")
    console.print("   [cyan]claude-sync status[/cyan]     # Check status")
    console.print("   [cyan]claude-sync add[/cyan]        # Add more files")
    console.print("   [cyan]claude-sync push[/cyan]       # Push to remote")

    if failures:
        _report_failures(failures)
        raise LinkBatchError(sorted(project.tracked_files), failures)
    return project


def add_files(
    files: list[str],
    *,
    add_all: bool = False,
    directory: str | Path,
    sync_repo: SyncRepository,
) -> list[str]:
    """Links more files of the current project into its slot and stages them.

    With `add_all` (or no files named) the project is rescanned and every
    untracked match is added. Named files are skipped with a warning when
    they are missing, outside the project, not selected by the tracking
    patterns, or already tracked.

    Returns:
        list[str]: The relative paths that were added.

    Raises:
        ProjectNotFound: If the current project is not registered.
        LinkBatchError: After recording successes, if some links failed.
    """
    registry, project = current_project(sync_repo, directory)
    config = Config.load(sync_repo.path)
    scanner = FileScanner(config.files.patterns, config.files.exclude)
    root = project.root_path
    here = normalize_path(directory)

    candidates: list[FileRecord] = []
    if add_all or not files:
        console.print("Scanning for tracked files...", style="dim")
        candidates = [
            record
            for record in scanner.scan(root)
            if record.relative_path not in project.tracked_files
        ]
        if not candidates:
            console.print("No new files found.", style="dim")
            return []
    else:
        for file in files:
            rel = _relative_to_root(file, here, root)
            if rel is None:
                console.print(f"[yellow]⚠ Outside project: {file}[/yellow]")
                continue
            record = scanner.scan_single(root, rel)
            if record is None:
                console.print(f"[yellow]⚠ File not found: {file}[/yellow]")
                continue
            if not scanner.is_trackable(rel):
                console.print(
                    f"[yellow]⚠ Not matched by tracking patterns: {file}[/yellow]"
                )
                continue
            if rel in project.tracked_files:
                console.print(f"Already tracked: {file}", style="dim")
                continue
            candidates.append(record)

    if not candidates:
        console.print("No files to add.", style="dim")
        return []

    slot = sync_repo.ensure_project_slot(project.name)
    created, failures = _link_files(candidates, slot)
    project.track(created)
    registry.update(project)
    _stage_project(sync_repo, [project.name], config)

    if created:
        console.print(f"[green]Added {len(created)} file(s):[/green]")
        for rel in created:
            console.print(f"   [bold]+[/bold] {rel}")
        console.print(
            "\nFiles staged. Run 'claude-sync commit' to save changes.", style="dim"
        )

    if failures:
        _report_failures(failures)
        raise LinkBatchError(created, failures)
    return created


def remove_files(
    files: list[str],
    *,
    directory: str | Path,
    sync_repo: SyncRepository,
    assume_yes: bool = False,
) -> list[str]:
    """Stops tracking specific files of the current project.

    The links are removed, emptied directories pruned, and the registry
    updated. Source files in the project are never touched.

    Returns:
        list[str]: The relative paths that are no longer tracked.

    Raises:
        ClaudeSyncError: If no files were named.
        ProjectNotFound: If the current project is not registered.
    """
    if not files:
        raise ClaudeSyncError(
            "No files specified", hint="Use --project to remove the entire project."
        )

    registry, project = current_project(sync_repo, directory)
    config = Config.load(sync_repo.path)
    here = normalize_path(directory)

    to_remove: list[str] = []
    for file in files:
        rel = _relative_to_root(file, here, project.root_path)
        if rel is None or rel not in project.tracked_files:
            console.print(f"[yellow]⚠ Not tracked: {file}[/yellow]")
            continue
        if rel not in to_remove:
            to_remove.append(rel)

    if not to_remove:
        console.print("No files to remove.", style="dim")
        return []

    if not assume_yes and len(to_remove) > 1:
        console.print("Files to remove:")
        for rel in to_remove:
            console.print(f"   [red]-[/red] {rel}")
        if not Confirm.ask(f"Remove {len(to_remove)} file(s)?", default=True):
            console.print("Removal cancelled.", style="dim")
            return []

    LinkManager().remove_links(sync_repo.project_slot(project.name), project, to_remove)
    project.untrack(to_remove)
    registry.update(project)
    _stage_project(sync_repo, [project.name], config)

    console.print(f"[green]Removed {len(to_remove)} file(s).[/green]")
    console.print("Run 'claude-sync commit' to save changes.", style="dim")
    return to_remove


def remove_project(
    *,
    directory: str | Path,
    sync_repo: SyncRepository,
    assume_yes: bool = False,
) -> bool:
    """Stops tracking the current project entirely.

    Returns:
        bool: False if the user cancelled.

    Raises:
        ProjectNotFound: If the current project is not registered.
    """
    registry, project = current_project(sync_repo, directory)
    config = Config.load(sync_repo.path)

    if not assume_yes and not Confirm.ask(
        f"Remove project [bold]{project.name}[/bold] and all tracked links?",
        default=False,
    ):
        console.print("Removal cancelled.", style="dim")
        return False

    with console.status("Removing project links...", spinner="dots"):
        LinkManager().remove_links(sync_repo.project_slot(project.name), project)
        leftovers = sync_repo.remove_project_slot(project.name)
        registry.remove(project.name)
        _stage_project(sync_repo, [project.name], config)

    console.print(f"[green]Removed project: [bold]{project.name}[/bold][/green]")
    if leftovers:
        console.print(
            f"[yellow]⚠ Kept {sync_repo.relative_slot(project.name)}: "
            f"it still holds {len(leftovers)} real file(s):[/yellow]"
        )
        for rel in leftovers:
            console.print(f"     - {rel}")
    console.print("Run 'claude-sync commit' to save changes.", style="dim")
    return True


def _print_reconcile(name: str, result: ReconcileResult) -> None:
    if result.is_empty:
        console.print(f"[green]✔ {name}: links are up to date.[/green]")
        return
    console.print(f"[bold]{name}[/bold]")
    for rel in result.added:
        console.print(f"   [green]+[/green] {rel}")
    for rel in result.removed:
        console.print(f"   [red]-[/red] {rel}")
    for rel in result.updated:
        console.print(f"   [cyan]~[/cyan] {rel}")
    for anomaly in result.anomalies:
        console.print(
            f"   [yellow]⚠ {anomaly.relative_path}: {anomaly.message}[/yellow]"
        )
    _report_failures(result.failures)


def relink(
    *,
    directory: str | Path,
    sync_repo: SyncRepository,
    all_projects: bool = False,
) -> dict[str, ReconcileResult]:
    """Reconciles the links of the current project, or of every project.

    Projects whose root no longer exists are skipped with a warning. Changes
    are staged but not committed.

    Returns:
        dict[str, ReconcileResult]: The reconciliation result per project name.

    Raises:
        ProjectNotFound: If not `all_projects` and the current project is unknown.
        LinkBatchError: After all projects were processed, if any link failed.
    """
    if all_projects:
        require_initialized(sync_repo)
        registry = ProjectRegistry(sync_repo.path)
        projects = list(registry.load().values())
    else:
        registry, project = current_project(sync_repo, directory)
        projects = [project]
    config = Config.load(sync_repo.path)

    if not projects:
        console.print("[yellow]No projects tracked.[/yellow]")
        return {}

    manager = LinkManager()
    results: dict[str, ReconcileResult] = {}
    failures: list[LinkOperationFailed] = []

    for project in projects:
        if not project.root_path.exists():
            console.print(
                f"[yellow]⚠ {project.name}: project root {project.root_path} "
                "not found. Skipping.[/yellow]"
            )
            continue
        result = manager.reconcile(project, sync_repo.project_slot(project.name))
        project.mark_synced()
        registry.update(project)
        results[project.name] = result
        failures.extend(result.failures)
        _print_reconcile(project.name, result)

    if results:
        _stage_project(sync_repo, list(results), config)

    if failures:
        added = [rel for result in results.values() for rel in result.added]
        raise LinkBatchError(added, failures)
    return results
