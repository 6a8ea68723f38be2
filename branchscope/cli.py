"""branchscope CLI - inspect what a branch changed relative to its target."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from branchscope.config import config
from branchscope.scm.models import BranchChanges

console = Console()
# Logs go to stderr so --json output stays parseable.
log_console = Console(stderr=True)

EXIT_UNAVAILABLE = 2


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, rich_tracebacks=True)],
    )
    if not verbose:
        # GitPython logs every spawned command at DEBUG/INFO
        logging.getLogger("git").setLevel(logging.WARNING)


def _shown(path: Path, root: Path) -> Path:
    return path.relative_to(root) if path.is_relative_to(root) else path


def _print_changes(changes: BranchChanges, root: Path, files_only: bool) -> None:
    console.print(f"  Target ref: {changes.target_ref}")
    console.print(f"  Merge base: {changes.merge_base}")

    console.print(f"\n[bold]Changed files: {len(changes.changed_files)}[/bold]")
    for path in sorted(changes.changed_files):
        console.print(f"   {_shown(path, root)}")

    if files_only:
        return

    console.print(
        f"\n[bold]Files with modified lines: {len(changes.changed_lines)}[/bold]"
    )
    for path, lines in sorted(changes.changed_lines.items()):
        console.print(f"   {_shown(path, root)}:  {sorted(lines)}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """branchscope - files and lines changed since the merge base with a target branch."""
    setup_logging(verbose)


@main.command()
@click.argument("target", required=False)
@click.option(
    "--path",
    "path",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Directory inside the repository to analyze",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to .branchscope.yml config file",
)
@click.option("--files-only", is_flag=True, help="Skip line-level detection")
@click.option("--json", "as_json", is_flag=True, help="Print a JSON report instead of text")
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write the JSON report to this file",
)
@click.option(
    "--strict",
    is_flag=True,
    help="Exit with status 2 when change detection is unavailable",
)
def changes(
    target: str | None,
    path: str,
    config_path: str | None,
    files_only: bool,
    as_json: bool,
    output_path: str | None,
    strict: bool,
) -> None:
    """Show files and lines changed against TARGET (a short branch name)."""
    from branchscope.provider import BranchChangeDetector, revision_id
    from branchscope.report.generator import generate_json_report
    from branchscope.scm.backend import find_work_tree
    from branchscope.scope_config import ScopeConfig

    errors = config.validate()
    if errors:
        for err in errors:
            console.print(f"[red]Config error:[/red] {err}")
        sys.exit(1)

    base_dir = Path(path).resolve()
    root = find_work_tree(base_dir)
    if root is None:
        console.print(f"[red]Not inside a Git work tree:[/red] {base_dir}")
        sys.exit(1)

    scope = ScopeConfig.load(Path(config_path) if config_path else None, root=root)
    target_branch = target or scope.target_branch
    strict = strict or scope.strict

    if not as_json:
        console.print("\n[bold]branchscope[/bold] - branch change detection\n")
        console.print(f"  Current path: {base_dir}")

    def wants_lines(changed: Path) -> bool:
        return not scope.is_path_excluded(changed.relative_to(root).as_posix())

    detector = BranchChangeDetector(root, max_workers=scope.max_workers)
    try:
        revision = revision_id(root)
        if not as_json:
            console.print(f"  sha1: {revision}")
        result = detector.detect_changes(
            target_branch,
            include_lines=not files_only,
            line_filter=wants_lines,
        )
    except Exception as e:
        console.print(f"[red]Change detection failed:[/red] {e}")
        logger = logging.getLogger(__name__)
        logger.debug("Full traceback:", exc_info=True)
        sys.exit(1)

    reason = str(detector.unavailable_reason) if detector.unavailable_reason else None

    if as_json or output_path:
        report = generate_json_report(
            target_branch,
            root,
            revision,
            result,
            unavailable_reason=reason,
            output_path=Path(output_path) if output_path else None,
        )
        if as_json:
            click.echo(report)

    if result is None:
        if not as_json:
            console.print(
                f"\n[yellow]Change detection against '{target_branch}' is unavailable: "
                f"{reason}. Every file should be treated as new.[/yellow]"
            )
        if strict:
            sys.exit(EXIT_UNAVAILABLE)
        return

    if not as_json:
        _print_changes(result, root, files_only)
        console.print()


@main.command()
@click.option(
    "--path",
    "path",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    help="Directory inside the repository",
)
def revision(path: str) -> None:
    """Print the HEAD commit sha."""
    from branchscope.provider import revision_id
    from branchscope.scm.errors import BranchScopeError

    try:
        sha = revision_id(Path(path).resolve())
    except BranchScopeError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    if sha is None:
        console.print("[yellow]Repository has no commits yet.[/yellow]")
        sys.exit(1)
    click.echo(sha)


@main.command()
def version() -> None:
    """Show version information."""
    console.print("branchscope v0.1.0")


if __name__ == "__main__":
    main()
