"""CLI entry point for gren."""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click
from rich.console import Console
from rich.table import Table

from gren.core import directive
from gren.core.ci import GitHubCLIProvider
from gren.core.worktree import WorktreeManager
from gren.exceptions import GrenError, PipelineAbortedError
from gren.logging_config import setup_logging
from gren.models.hooks import HookOutcome
from gren.models.worktree import Cleanliness

console = Console()

SHELL_INIT = """\
gren() {
    local directive_file exit_code
    directive_file="$(mktemp)"
    GREN_DIRECTIVE_FILE="$directive_file" command gren "$@"
    exit_code=$?
    if [ -s "$directive_file" ]; then
        . "$directive_file"
    fi
    rm -f "$directive_file"
    return $exit_code
}
"""


def get_worktree_manager(auto_approve: bool = False) -> WorktreeManager:
    """
    Get a WorktreeManager instance with error handling.

    Args:
        auto_approve: Approve hook commands without prompting.

    Returns:
        WorktreeManager instance.

    Raises:
        click.ClickException: If not in a git repository or the
            configuration is invalid.
    """
    try:
        return WorktreeManager(auto_approve=auto_approve)
    except GrenError as e:
        raise click.ClickException(str(e)) from e


def _print_hook_outcomes(outcomes: list[HookOutcome]) -> None:
    for outcome in outcomes:
        label = outcome.definition.label
        if outcome.background:
            console.print(f"  [dim]{label}: started in background[/dim]")
        elif outcome.succeeded:
            console.print(f"  [green]{label}[/green]")
        else:
            detail = outcome.error or f"exit {outcome.exit_code}"
            console.print(f"  [red]{label}: {detail}[/red]")


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@contextmanager
def busy(manager: WorktreeManager, message: str) -> Iterator[None]:
    """Show a spinner that is taken down before any approval prompt."""
    status = console.status(message)
    prompt = manager.gate.prompt

    def prompt_without_spinner(project: str, commands: list[str]) -> str:
        status.stop()
        return prompt(project, commands)

    manager.gate.prompt = prompt_without_spinner
    status.start()
    try:
        yield
    finally:
        status.stop()
        manager.gate.prompt = prompt


def _print_cd_hint(path: Path) -> None:
    if not directive.is_shell_integration_active():
        console.print(f"[dim]cd {path}[/dim]")


@click.group()
@click.version_option(package_name="gren")
@click.option("-v", "--verbose", is_flag=True, help="Show what gren is doing.")
@click.option("--debug", is_flag=True, help="Debug output, also written to the log file.")
def main(verbose: bool, debug: bool) -> None:
    """gren - Git worktree lifecycle manager.

    Create, switch, merge and delete worktrees, running the hooks
    configured in .gren/config.toml at each step.
    """
    setup_logging(verbose=verbose, debug=debug)


@main.command("create")
@click.argument("name")
@click.option("-b", "--branch", help="Branch name (defaults to NAME).")
@click.option("--base", "base_branch", help="Start point for the new branch.")
@click.option(
    "-e",
    "--existing",
    is_flag=True,
    help="Check out an existing branch instead of creating one.",
)
@click.option(
    "-d",
    "--dir",
    "directory",
    type=click.Path(path_type=Path),
    help="Directory to create the worktree in.",
)
@click.option("-x", "--execute", help="Command to run in the new worktree.")
@click.option("-y", "--yes", is_flag=True, help="Approve hook commands without prompting.")
def create_worktree(
    name: str,
    branch: Optional[str],
    base_branch: Optional[str],
    existing: bool,
    directory: Optional[Path],
    execute: Optional[str],
    yes: bool,
) -> None:
    """Create a new worktree called NAME.

    A new branch is created from --base, or from the recommended base
    branch when --base is omitted.

    Example:
        gren create feat-login
        gren create fix-123 --base release
        gren create review --branch feature/other --existing
        gren create feat-x -x "make dev"
    """
    manager = get_worktree_manager(auto_approve=yes)

    try:
        with busy(manager, f"[bold blue]Creating worktree '{name}'..."):
            result = manager.create(
                name,
                branch=branch,
                base_branch=base_branch,
                existing=existing,
                directory=directory,
                execute=execute,
            )
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    worktree = result.worktree
    console.print()
    console.print("[bold green]Worktree created successfully!")
    console.print()
    console.print(f"[bold]Branch:[/bold]  {worktree.branch}")
    if result.base_branch:
        console.print(f"[bold]Base:[/bold]    {result.base_branch}")
    console.print(f"[bold]Path:[/bold]    {worktree.short_path}")
    console.print(f"[bold]Commit:[/bold]  {worktree.short_commit}")

    if result.hook_results:
        console.print()
        console.print("[bold]Hooks:[/bold]")
        _print_hook_outcomes(result.hook_results)

    _print_warnings(result.warnings)
    console.print()
    _print_cd_hint(worktree.path)


@main.command("list")
@click.option("--ci", "show_ci", is_flag=True, help="Show pull request status (needs gh).")
def list_worktrees(show_ci: bool) -> None:
    """List all worktrees for this repository.

    Example:
        gren list
        gren list --ci
    """
    manager = get_worktree_manager()

    try:
        worktrees = manager.list()
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    summaries = {}
    if show_ci:
        if GitHubCLIProvider.available():
            with console.status("[bold blue]Fetching pull request status..."):
                summaries = manager.ci_summaries(
                    GitHubCLIProvider(manager.repository.main_root)
                )
        else:
            console.print("[yellow]gh is not installed; skipping CI status.[/yellow]")

    table = Table(title="Git Worktrees", show_header=True, header_style="bold cyan")
    table.add_column("", width=1)
    table.add_column("Name", style="bold")
    table.add_column("Branch", style="green")
    table.add_column("Commit", style="dim")
    table.add_column("Path")
    table.add_column("Status", justify="center")
    if show_ci:
        table.add_column("PR")

    for wt in worktrees:
        if wt.is_missing:
            status = "[red]missing[/red]"
        elif wt.cleanliness == Cleanliness.CLEAN:
            status = "[green]clean[/green]"
        else:
            status = (
                f"[yellow]+{wt.staged_count} ~{wt.modified_count} ?{wt.untracked_count}[/yellow]"
            )
        if wt.is_main:
            status = f"[blue]main[/blue] {status}"
        elif wt.is_stale:
            status = f"{status} [magenta]stale ({wt.stale_reason.value})[/magenta]"

        row = [
            "@" if wt.is_current else "",
            wt.name,
            wt.branch or "[yellow](detached)[/yellow]",
            wt.short_commit,
            wt.short_path,
            status,
        ]
        if show_ci:
            summary = summaries.get(wt.branch)
            row.append(
                f"#{summary.number} {summary.checks.value}" if summary and summary.number else ""
            )
        table.add_row(*row)

    console.print()
    console.print(table)
    console.print()


@main.command("delete")
@click.argument("identifier")
@click.option(
    "-f",
    "--force",
    is_flag=True,
    help="Delete even with uncommitted changes or failing pre-remove hooks.",
)
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation and approval prompts.")
def delete_worktree(identifier: str, force: bool, yes: bool) -> None:
    """Delete a worktree by name, branch, or path.

    The branch itself is kept.

    Example:
        gren delete feat-login
        gren delete feat-login --force
    """
    manager = get_worktree_manager(auto_approve=yes)

    try:
        worktree = manager.get(identifier)
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    if not yes:
        console.print()
        console.print("[bold]About to delete worktree:[/bold]")
        console.print(f"  Branch: {worktree.branch}")
        console.print(f"  Path:   {worktree.path}")
        console.print()

        if not click.confirm("Are you sure you want to delete this worktree?"):
            console.print("[yellow]Aborted.[/yellow]")
            return

    try:
        with busy(manager, f"[bold red]Deleting worktree '{identifier}'..."):
            result = manager.delete(identifier, force=force)
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    console.print()
    console.print(f"[bold green]Worktree deleted:[/bold green] {result.path}")
    if result.branch:
        console.print(f"[dim]Branch {result.branch} was kept.[/dim]")


@main.command("switch")
@click.argument("identifier")
@click.option("-y", "--yes", is_flag=True, help="Approve hook commands without prompting.")
def switch_worktree(identifier: str, yes: bool) -> None:
    """Switch to a worktree.

    With shell integration (see `gren shell-init`) the shell changes
    directory; otherwise the worktree path is printed.

    Example:
        gren switch feat-login
        cd $(gren switch feat-login)
    """
    manager = get_worktree_manager(auto_approve=yes)

    try:
        result = manager.switch(identifier)
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    if not result.directive_written:
        click.echo(result.worktree.path)


@main.command("merge")
@click.argument("target", required=False)
@click.option("--squash/--no-squash", default=None, help="Squash commits into one.")
@click.option("--rebase/--no-rebase", default=None, help="Rebase onto the target first.")
@click.option("--remove/--no-remove", default=None, help="Remove the worktree afterwards.")
@click.option("--verify/--no-verify", default=None, help="Run merge and remove hooks.")
@click.option("-m", "--message", help="Message for the squash commit.")
@click.option("-y", "--yes", is_flag=True, help="Approve hook commands without prompting.")
def merge_worktree(
    target: Optional[str],
    squash: Optional[bool],
    rebase: Optional[bool],
    remove: Optional[bool],
    verify: Optional[bool],
    message: Optional[str],
    yes: bool,
) -> None:
    """Merge the current worktree's branch into TARGET.

    TARGET defaults to the repository's default branch. Flags that are
    not given fall back to the [merge] section of the configuration.

    Example:
        gren merge
        gren merge develop --no-remove
        gren merge --no-squash --no-rebase -m "Add login"
    """
    manager = get_worktree_manager(auto_approve=yes)

    options = manager.default_merge_options()
    options.target = target
    options.message = message
    options.yes = yes
    if squash is not None:
        options.squash = squash
    if rebase is not None:
        options.rebase = rebase
    if remove is not None:
        options.remove = remove
    if verify is not None:
        options.verify = verify

    try:
        result = manager.merge(options)
    except PipelineAbortedError as e:
        console.print("[bold red]Merge stopped part way; nothing was rolled back.[/bold red]")
        raise click.ClickException(str(e)) from e
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    if result.skipped:
        console.print(f"[yellow]Nothing to merge: {result.skip_reason}[/yellow]")
        return

    console.print()
    console.print(
        f"[bold green]Merged {result.source_branch} into {result.target_branch}[/bold green]"
    )
    if result.commits_squashed:
        console.print(f"  Squashed {result.commits_squashed} commit(s)")
    if result.worktree_removed:
        console.print(f"  Removed worktree {result.worktree_path}")
    if result.hook_results:
        console.print("[bold]Hooks:[/bold]")
        _print_hook_outcomes(result.hook_results)
    _print_warnings(result.warnings)


@main.command(
    "for-each",
    context_settings={"ignore_unknown_options": True},
)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option("--skip-current", is_flag=True, help="Skip the current worktree.")
@click.option("--skip-main", is_flag=True, help="Skip the main worktree.")
def for_each(command: tuple[str, ...], skip_current: bool, skip_main: bool) -> None:
    """Run COMMAND in every worktree.

    A single argument is run through the shell; several arguments are run
    directly. Template variables such as {{ branch }} are expanded.

    Example:
        gren for-each "git status --short"
        gren for-each --skip-main -- git pull --ff-only
    """
    manager = get_worktree_manager()
    argv = command[0] if len(command) == 1 else list(command)

    try:
        report = manager.for_each(argv, skip_current=skip_current, skip_main=skip_main)
    except GrenError as e:
        raise click.ClickException(str(e)) from e

    for result in report.results:
        style = "green" if result.succeeded else "red"
        console.print(f"[bold {style}]{result.worktree_name}[/bold {style}] ({result.branch_name})")
        if result.output.strip():
            console.print(result.output.rstrip(), markup=False, highlight=False)
        if result.error:
            console.print(f"[red]{result.error}[/red]")

    console.print()
    console.print("[bold]Summary:[/bold]")
    console.print(f"  Successful: {report.successful}")
    console.print(f"  Failed:     {report.failed}")
    console.print(f"  Skipped:    {report.skipped}")

    if report.failed:
        raise SystemExit(1)


@main.group("approvals")
def approvals_group() -> None:
    """Manage approved hook commands for this project."""


@approvals_group.command("list")
def list_approvals() -> None:
    """List approved hook commands."""
    manager = get_worktree_manager()
    approved = manager.approvals()

    if not approved:
        console.print("[yellow]No approved commands.[/yellow]")
        return

    table = Table(title=f"Approvals for {manager.project_id}", show_header=True, header_style="bold cyan")
    table.add_column("Command")
    table.add_column("Approved", style="dim")
    for entry in approved:
        table.add_row(entry.command, entry.approved_at.strftime("%Y-%m-%d %H:%M"))

    console.print(table)


@approvals_group.command("revoke")
@click.argument("command", required=False)
@click.option("--all", "revoke_all", is_flag=True, help="Revoke every approval.")
def revoke_approvals(command: Optional[str], revoke_all: bool) -> None:
    """Revoke the approval of COMMAND, or every approval with --all."""
    if not command and not revoke_all:
        raise click.ClickException("Provide a command or use --all")

    manager = get_worktree_manager()
    removed = manager.revoke_approvals(None if revoke_all else command)
    if removed:
        console.print(f"[green]Revoked {removed} approval(s).[/green]")
    else:
        console.print("[yellow]No matching approval.[/yellow]")


@main.command("shell-init")
def shell_init() -> None:
    """Print the shell function that lets gren change directory.

    Example:
        eval "$(gren shell-init)"
    """
    click.echo(SHELL_INIT, nl=False)


@main.command("config-path")
def config_path() -> None:
    """Show where configuration is read from."""
    from gren.config import project_config_file, user_config_file

    manager = get_worktree_manager()
    console.print(f"[bold]User:[/bold]    {user_config_file()}")
    console.print(f"[bold]Project:[/bold] {project_config_file(manager.repository.main_root)}")
    console.print(f"[dim]Worktrees are created in {manager.worktree_dir()}[/dim]")


if __name__ == "__main__":
    main()
