"""pomprune CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from pomprune import __version__
from pomprune.errors import (
    CheckFailure,
    ConfigurationError,
    DescriptorIOError,
    PomPruneError,
    ResolutionError,
)

if TYPE_CHECKING:
    from pomprune.config import PomPruneConfig

EXIT_CHECK_FAILURE = 1
EXIT_CONFIGURATION = 2
EXIT_RESOLUTION = 3

_POLICY_CHOICE = click.Choice(["FAIL", "WARN", "IGNORE"], case_sensitive=False)

_project_option = click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
_policy_option = click.option(
    "--on-check-failure",
    type=_POLICY_CHOICE,
    default=None,
    help="Override on_check_failure from pomprune.yml.",
)


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    logging.basicConfig(level=level, format="%(message)s", handlers=[handler], force=True)


def _exit_with(exc: PomPruneError) -> NoReturn:
    click.echo(f"Error: {exc}", err=True)
    if isinstance(exc, CheckFailure):
        sys.exit(EXIT_CHECK_FAILURE)
    if isinstance(exc, (ResolutionError, DescriptorIOError)):
        sys.exit(EXIT_RESOLUTION)
    sys.exit(EXIT_CONFIGURATION)


def _load(project: Path | None, on_check_failure: str | None = None) -> PomPruneConfig:
    from pomprune.config import load_config, with_overrides

    config = load_config(project or Path.cwd())
    return with_overrides(config, on_check_failure=on_check_failure)


@click.group()
@click.version_option(version=__version__, prog_name="pomprune")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """pomprune - keep a large Maven source tree reduced to what is required."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose=verbose, quiet=quiet)


# ---------------------------------------------------------------------------
# prod-excludes
# ---------------------------------------------------------------------------


@main.command("prod-excludes")
@_project_option
@_policy_option
def prod_excludes(*, project: Path | None, on_check_failure: str | None) -> None:
    """Unlink every module not required by the productized artifacts."""
    from pomprune.excludes import ProdExcludes

    try:
        config = _load(project, on_check_failure)
        result = ProdExcludes(config).run()
    except PomPruneError as exc:
        _exit_with(exc)

    click.echo(
        f"{len(result.required)} modules required, {len(result.excludes)} excluded, "
        f"{len(result.written)} descriptors updated"
    )
    if result.manifest_changed:
        click.echo(f"Updated {config.excludes.manifest}")
    for pom_path in result.unpacked:
        click.echo(f"Unpacked community classes for {pom_path}")


@main.command("prod-excludes-check")
@_project_option
@_policy_option
def prod_excludes_check(*, project: Path | None, on_check_failure: str | None) -> None:
    """Verify that running prod-excludes would not change anything."""
    from pomprune.excludes import ProdExcludes

    try:
        config = _load(project, on_check_failure)
        messages = ProdExcludes(config).check()
    except PomPruneError as exc:
        _exit_with(exc)

    if messages:
        click.echo(f"{len(messages)} file(s) out of sync")
    else:
        click.echo("All descriptors in sync.")


# ---------------------------------------------------------------------------
# closure
# ---------------------------------------------------------------------------


@main.command()
@click.argument("artifacts", nargs=-1, required=True)
@_project_option
@click.option("--json", "as_json", is_flag=True, help="JSON output.")
def closure(artifacts: tuple[str, ...], *, project: Path | None, as_json: bool) -> None:
    """Show the modules required by ARTIFACTS and the ones left out.

    ARTIFACTS are ``artifactId`` (tracked group implied) or ``groupId:artifactId``.
    """
    from pomprune.model.gav import Ga
    from pomprune.tree.source_tree import MavenSourceTree

    try:
        config = _load(project)
        group = config.excludes.tracked_group
        roots = [Ga.of(a) if ":" in a else Ga(group, a) for a in artifacts]
        tree = MavenSourceTree.of(
            config.root_pom, config.encoding, relink_marker=config.excludes.marker
        )
        unknown = [str(ga) for ga in roots if ga not in tree.modules_by_ga]
        if unknown:
            msg = f"not a module of the tree rooted at {tree.root_directory}: {', '.join(unknown)}"
            raise ConfigurationError(msg)
        required = tree.required_closure(roots, config.profile_filter())
        excluded = tree.complement(required)
    except PomPruneError as exc:
        _exit_with(exc)

    if as_json:
        data = {
            "required": [str(ga) for ga in sorted(required)],
            "excluded": [str(ga) for ga in sorted(excluded)],
        }
        click.echo(json.dumps(data, indent=2))
        return

    from rich.console import Console
    from rich.markup import escape

    console = Console(emoji=False)
    console.print(f"[bold]Required ({len(required)}):[/bold]")
    for ga in sorted(required):
        console.print(f"  [green]{escape(str(ga))}[/green]")
    console.print(f"[bold]Excluded ({len(excluded)}):[/bold]")
    for ga in sorted(excluded):
        console.print(f"  [red]{escape(str(ga))}[/red]")


# ---------------------------------------------------------------------------
# flatten-bom
# ---------------------------------------------------------------------------


@main.command("flatten-bom")
@_project_option
@click.option("--fix", is_flag=True, help="Add exclusions for banned dependencies to the BOM.")
@_policy_option
@click.option("--json", "as_json", is_flag=True, help="Print the constraint drift as JSON.")
def flatten_bom(
    *, project: Path | None, fix: bool, on_check_failure: str | None, as_json: bool
) -> None:
    """Flatten the configured BOM, audit banned dependencies and run the checks."""
    from pomprune.bom.writer import drift_to_dict, render_drift
    from pomprune.flatten_bom import FlattenBom

    try:
        config = _load(project, on_check_failure)
        outcome = FlattenBom(config).run(fix=fix)
    except PomPruneError as exc:
        _exit_with(exc)

    if as_json:
        click.echo(json.dumps(drift_to_dict(outcome.drift), indent=2))
        return

    from rich.console import Console
    from rich.markup import escape

    console = Console(emoji=False)
    render_drift(outcome.drift, console, label=str(outcome.bom))
    for path in outcome.written:
        console.print(f"Wrote {escape(str(path))}")
    for path in outcome.fixed:
        console.print(f"Added exclusions to {escape(str(path))}")


# ---------------------------------------------------------------------------
# banned-patterns
# ---------------------------------------------------------------------------


@main.command("banned-patterns")
@click.argument("location")
@click.option("--xslt", "xslt_location", default=None, help="XSLT applied before extraction.")
@_project_option
def banned_patterns(location: str, *, xslt_location: str | None, project: Path | None) -> None:
    """List the banned patterns of an enforcer rule document.

    LOCATION is a file path or ``classpath:<resource>`` for a bundled document.
    """
    from pomprune.audit.banned import BannedDependencyResource

    try:
        config = _load(project)
        resource = BannedDependencyResource(location, xslt_location, config.project_root)
        patterns = resource.banned_patterns(config.encoding)
    except (ConfigurationError, DescriptorIOError) as exc:
        _exit_with(exc)

    for pattern in patterns:
        click.echo(str(pattern))
