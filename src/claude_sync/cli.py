import argparse
import logging
import os
import subprocess
import sys
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import ops
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, LOG_FILE
from .errors import ClaudeSyncError, LinkBatchError
from .forwarder import GitForwarder
from .links import LinkState, link_state
from .registry import ProjectRegistry
from .sync_repo import SyncRepository

logger = logging.getLogger(APP_NAME)
console = Console()

MANAGEMENT_COMMANDS = ("init", "add", "remove", "list", "relink", "config", "help")
"""tuple[str, ...]: First tokens handled by claude-sync itself; anything else goes to git."""


@dataclass
class GlobalOptions:
    """Options accepted before the command name.

    Attributes:
        sync_repo (Path | None): Overrides the sync repository location.
        directory (Path | None): Overrides the working directory.
        verbose (bool): Enables debug output on stderr.
    """

    sync_repo: Path | None = None
    directory: Path | None = None
    verbose: bool = False


def split_global_args(argv: list[str]) -> tuple[GlobalOptions, list[str]]:
    """Consumes the leading global options and returns the remaining tokens.

    Only tokens before the command are inspected, so flags that belong to a
    forwarded git command (e.g. `git branch -v`) are never taken.

    Raises:
        ClaudeSyncError: If a path option is missing its value.
    """
    opts = GlobalOptions()
    rest = list(argv)
    while rest:
        token = rest[0]
        if token in ("-v", "--verbose"):
            opts.verbose = True
            rest.pop(0)
            continue

        name, sep, value = token.partition("=")
        if name not in ("--sync-repo", "-d", "--directory"):
            break
        if sep:
            rest.pop(0)
        elif len(rest) > 1:
            value = rest[1]
            del rest[:2]
        else:
            raise ClaudeSyncError(f"Option {name} requires a path")

        if name == "--sync-repo":
            opts.sync_repo = Path(value).expanduser()
        else:
            opts.directory = Path(value).expanduser()
    return opts, rest


def setup_logging(verbose: bool, config: Config | None = None) -> None:
    """Configures the `claude-sync` logger.

    Args:
        verbose (bool): Show debug messages on stderr instead of warnings only.
        config (Config | None, optional): Supplies the log rotation size.
    """
    config = config or Config()
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=config.limits.max_log_size,
            backupCount=3,
        )
    except OSError as e:
        logger.debug(f"File logging disabled: {e}")
        return
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def list_projects(
    sync_repo: SyncRepository, long: bool = False, as_json: bool = False
) -> None:
    """Lists every tracked project with its health."""
    ops.require_initialized(sync_repo)
    projects = ProjectRegistry(sync_repo.path).load()

    if not projects:
        console.print("[yellow]No projects tracked.[/yellow]")
        console.print(
            "Run 'claude-sync init' in a git repository to get started.", style="dim"
        )
        return

    if as_json:
        console.print_json(
            data=[
                {
                    "name": name,
                    "path": str(project.root_path),
                    "trackedFiles": len(project.tracked_files),
                    "lastSync": project.metadata.last_sync.isoformat(),
                    "gitRemote": project.remote,
                }
                for name, project in sorted(projects.items())
            ]
        )
        return

    if long:
        for name, project in sorted(projects.items()):
            root_exists = project.root_path.exists()
            slot = sync_repo.project_slot(name)
            broken = sum(
                1
                for rel in project.tracked_files
                if link_state(slot / rel, project.root_path / rel)
                is not LinkState.CORRECT
            )
            display_path = str(project.root_path).replace(str(Path.home()), "~")
            last_sync = project.metadata.last_sync.astimezone().strftime(
                "%Y-%m-%d %H:%M:%S"
            )

            content = (
                f"Path:      [cyan]{display_path}[/cyan]\n"
                f"Files:     {len(project.tracked_files)} tracked\n"
                f"Branch:    {project.branch}\n"
                f"Last sync: {last_sync}"
            )
            if project.remote:
                content += f"\nRemote:    [dim]{project.remote}[/dim]"
            if not root_exists:
                content += "\n[yellow]⚠ Project directory not found.[/yellow]"
            if broken:
                content += f"\n[yellow]⚠ {broken} broken link(s). Run 'claude-sync relink'.[/yellow]"

            status = "[green]✔[/green]" if root_exists else "[red]✘[/red]"
            console.print(Panel(content, title=f"{status} {name}", expand=False))
    else:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Project", style="cyan")
        table.add_column("Path", style="dim")
        table.add_column("Files", justify="right")
        table.add_column("Status")

        for name, project in sorted(projects.items()):
            display_path = str(project.root_path).replace(str(Path.home()), "~")
            status = (
                "[green]active[/green]"
                if project.root_path.exists()
                else "[red]missing[/red]"
            )
            table.add_row(
                name, display_path, str(len(project.tracked_files)), status
            )

        console.print(table)

    total = sum(len(p.tracked_files) for p in projects.values())
    console.print(f"\n[dim]{len(projects)} project(s), {total} file(s) tracked[/dim]")


def open_config() -> None:
    """Opens the global configuration file in the user's editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# claude-sync global configuration\n\n"
                "[core]\n"
                "# Options: conventional, simple\n"
                '# commit_style = "conventional"\n\n'
                "[files]\n"
                "# patterns = [\".claude/hooks/*.sh\"]\n"
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        editor = "open" if sys.platform == "darwin" else "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="claude-sync Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    # Core Settings
    table.add_row(
        "core", "version", "int", "1", "Configuration schema version (required)."
    )
    table.add_row(
        "",
        "default_branch",
        "str",
        '"main"',
        "Initial branch of a newly created sync repository.",
    )
    table.add_row(
        "", "auto_commit", "bool", "true", "Commit automatically after 'init'."
    )
    table.add_row(
        "",
        "commit_style",
        "str",
        '"conventional"',
        "Commit messages: 'conventional' (feat: ...) or 'simple'.",
    )
    table.add_row(
        "", "remote_url", "str", "None", "Remote added as 'origin' at initialization."
    )
    table.add_row(
        "",
        "topology",
        "str",
        '"link-in-repository"',
        "Link layout; fixed when the repository is created.",
    )

    # Files Settings
    table.add_row(
        "files",
        "patterns",
        "list",
        "[]",
        "Extra include globs appended to the built-in patterns.",
    )
    table.add_row(
        "", "exclude", "list", "[]", "Extra exclude globs, matched per path segment."
    )

    # Limits Settings
    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    # Git Settings
    table.add_row(
        "git",
        "user_name",
        "str",
        "None",
        "Local user.name for sync repository commits.",
    )
    table.add_row(
        "", "user_email", "str", "None", "Local user.email for sync repository commits."
    )
    table.add_row(
        "",
        "timeout",
        "float",
        "None",
        "Seconds allowed per internal git call (forwarded commands never time out).",
    )

    console.print(table)


class ClaudeSyncHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []
            groups = {
                "Project Tracking": ["init", "add", "remove", "relink"],
                "Information": ["list", "config"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def build_parser() -> argparse.ArgumentParser:
    """Builds the parser for the commands claude-sync handles itself."""
    # Accepted after the command too; SUPPRESS keeps them from overriding
    # values given before it.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--sync-repo", type=Path, default=argparse.SUPPRESS)
    common.add_argument("-d", "--directory", type=Path, default=argparse.SUPPRESS)
    common.add_argument(
        "-v", "--verbose", action="store_true", default=argparse.SUPPRESS
    )

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        formatter_class=ClaudeSyncHelpFormatter,
        description="Track per-project Claude files in one git repository.",
        epilog=(
            "Any other command (status, diff, log, commit, push, ...) is "
            "forwarded to git in the sync repository."
        ),
    )
    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser(
        "init", parents=[common], help="Start tracking the current git repository"
    )
    init_parser.add_argument("name", nargs="?", help="Project name")
    init_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompts"
    )

    add_parser = subparsers.add_parser(
        "add", parents=[common], help="Add files to tracking"
    )
    add_parser.add_argument("files", nargs="*", help="Files to add")
    add_parser.add_argument(
        "--all", "-a", action="store_true", help="Add every matching file"
    )

    remove_parser = subparsers.add_parser(
        "remove", parents=[common], help="Remove files or the whole project"
    )
    remove_parser.add_argument("files", nargs="*", help="Files to stop tracking")
    remove_parser.add_argument(
        "--project", action="store_true", help="Remove the entire project"
    )
    remove_parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompts"
    )

    list_parser = subparsers.add_parser(
        "list", parents=[common], help="List tracked projects"
    )
    list_parser.add_argument(
        "--long", "-l", action="store_true", help="Show detailed information"
    )
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    relink_parser = subparsers.add_parser(
        "relink", parents=[common], help="Repair links of the current project"
    )
    relink_parser.add_argument(
        "--all", action="store_true", help="Repair links of every project"
    )

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("help", help="Show this help message")
    return parser


def _package_version() -> str:
    try:
        return version(APP_NAME)
    except PackageNotFoundError:
        return "unknown"


def run(argv: list[str] | None = None) -> int:
    """Runs one claude-sync invocation and returns the process exit status.

    Args:
        argv (list[str] | None, optional): Arguments without the program name.
                                           Defaults to `sys.argv[1:]`.

    Returns:
        int: 0 on success, 1 on a handled failure, or git's own status for a
             forwarded command.
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    try:
        opts, rest = split_global_args(argv)
        command = rest[0] if rest else None

        if command in ("--version", "-V"):
            console.print(f"{APP_NAME} {_package_version()}")
            return 0

        args = None
        if command in MANAGEMENT_COMMANDS or command in ("-h", "--help"):
            parser = build_parser()
            try:
                args = parser.parse_args(rest)
            except SystemExit as e:
                # argparse has already printed usage or help.
                return 0 if e.code in (0, None) else 1
            if args.command == "help":
                parser.print_help()
                return 0
            opts.sync_repo = getattr(args, "sync_repo", None) or opts.sync_repo
            opts.directory = getattr(args, "directory", None) or opts.directory
            opts.verbose = getattr(args, "verbose", False) or opts.verbose

        sync_repo = SyncRepository(opts.sync_repo)
        directory = opts.directory or Path.cwd()
        config = Config.load(sync_repo.path if sync_repo.exists() else None)
        setup_logging(opts.verbose, config)

        if args is None:
            forwarder = GitForwarder(sync_repo, directory)
            forwarder.ensure_sync_repo()
            return forwarder.forward(rest)

        if args.command == "init":
            ops.init_project(
                args.name,
                directory=directory,
                sync_repo=sync_repo,
                assume_yes=args.yes,
            )
        elif args.command == "add":
            ops.add_files(
                args.files, add_all=args.all, directory=directory, sync_repo=sync_repo
            )
        elif args.command == "remove":
            if args.project:
                ops.remove_project(
                    directory=directory, sync_repo=sync_repo, assume_yes=args.yes
                )
            else:
                ops.remove_files(
                    args.files,
                    directory=directory,
                    sync_repo=sync_repo,
                    assume_yes=args.yes,
                )
        elif args.command == "list":
            list_projects(sync_repo, long=args.long, as_json=args.json)
        elif args.command == "relink":
            ops.relink(
                directory=directory, sync_repo=sync_repo, all_projects=args.all
            )
        elif args.command == "config":
            if getattr(args, "list", False):
                show_config_reference()
            else:
                open_config()
        return 0

    except LinkBatchError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e.message}")
        for failure in e.failures:
            logger.debug(f"{failure.relative_path}: {failure.cause}")
        return 1
    except ClaudeSyncError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e.message}")
        if e.hint:
            console.print(f"   {e.hint}", style="dim")
        return 1
    except FileNotFoundError as e:
        if e.filename == "git":
            console.print("[bold red]ERROR:[/bold red] git is not installed.")
            return 1
        raise
    except KeyboardInterrupt:
        console.print("\nAborted.", style="dim")
        return 130


def main() -> None:
    """Main entry point for the claude-sync CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
