"""Typer CLI for hostcfg.

Commands:
  compile           Compose a profile into a validated configuration and artifacts
  validate          Validate a full configuration tree file
  list-profiles     List available host profiles
  describe-profile  Describe a profile's resolved options
  order             Print the service start order
  explain           Explain an option or a composed configuration
  docs              Print Markdown documentation for every option
"""

from __future__ import annotations

import logging
from pathlib import Path  # noqa: TC003 (Typer evaluates type hints at runtime)
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hostcfg.catalog import build_default_catalog, service_entries
from hostcfg.composer import (
    ConfigCompiler,
    ValidationFailedError,
    compose,
    parse_override_assignments,
)
from hostcfg.models import ResolvedConfig, ValidationIssue
from hostcfg.profiles import overrides_table
from hostcfg.renderers import render_all
from hostcfg.schema import baseline_from_schema, build_default_schema, generate_option_docs
from hostcfg.settings import HostcfgSettings
from hostcfg.validators import ConfigValidator, CycleError, resolve_dependency_order

app = typer.Typer(
    name="hostcfg",
    help="Profile composer and validator for declarative workstation configuration",
    no_args_is_help=True,
)
console = Console()

LATEST_FILE = ".latest"
RESOLVED_FILE = "resolved.json"


def _settings() -> HostcfgSettings:
    return HostcfgSettings()


def _build_compiler(settings: HostcfgSettings) -> ConfigCompiler:
    return ConfigCompiler(build_default_schema(), build_default_catalog(), settings=settings)


def _print_issues(issues: list[ValidationIssue]) -> None:
    for issue in issues:
        if issue.severity == "error":
            text = escape(f"[{issue.kind.value}] {issue.message}")
            console.print(f"  [red]✗[/red] {text}", highlight=False)
        else:
            label = issue.rule_name or issue.kind.value
            text = escape(f"{label}: {issue.message}")
            console.print(f"  [yellow]warning[/yellow]: {text}", highlight=False)


def _load_tree(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON configuration tree from ``path``."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        console.print(f"[red]Error reading {path}: {e}[/red]")
        raise typer.Exit(1) from None
    if data is None:
        return {}
    if not isinstance(data, dict):
        console.print(f"[red]Error: {path} must contain a mapping at the top level[/red]")
        raise typer.Exit(1)
    return data


def _resolve_output_dir(
    settings: HostcfgSettings, *, name: str | None, output: Path | None, profile: str
) -> Path:
    """Resolve the output directory for compiled artifacts.

    Priority: --output (explicit path) > --name (under the config dir) > profile name.
    """
    if output:
        return output
    return settings.config_dir / (name or profile)


def _write_latest(settings: HostcfgSettings, config_name: str) -> None:
    settings.config_dir.mkdir(parents=True, exist_ok=True)
    (settings.config_dir / LATEST_FILE).write_text(config_name + "\n")


def _read_latest(settings: HostcfgSettings) -> str | None:
    latest_path = settings.config_dir / LATEST_FILE
    if not latest_path.exists():
        return None
    content = latest_path.read_text().strip()
    return content if content else None


def _resolve_resolved_path(settings: HostcfgSettings, resolved_json: Path | None) -> Path:
    """Resolve a resolved.json path, falling back to the .latest pointer."""
    if resolved_json:
        return resolved_json

    latest = _read_latest(settings)
    if not latest:
        latest_path = settings.config_dir / LATEST_FILE
        console.print(f"[red]No --profile-file given and no {latest_path} found.[/red]")
        console.print("Run [cyan]compile --name[/cyan] first, or pass --profile-file explicitly.")
        raise typer.Exit(1)

    path = settings.config_dir / latest / RESOLVED_FILE
    if not path.exists():
        console.print(f"[red]Resolved configuration not found: {path}[/red]")
        raise typer.Exit(1)

    console.print(f"[dim]Using latest config: {latest}[/dim]")
    return path


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    settings = _settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def compile(
    profile: Annotated[str, typer.Argument(help="Profile name (minimal, workstation, server)")],
    host: Annotated[
        Path | None, typer.Option("--host", help="Host override tree (YAML or JSON)")
    ] = None,
    override: Annotated[
        list[str] | None, typer.Option("--override", "-o", help="Option override (key=value)")
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Config name (stored under .hostcfg/<name>/)"),
    ] = None,
    output_dir: Annotated[
        Path | None, typer.Option("--output", help="Explicit output directory (overrides --name)")
    ] = None,
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format: text or json")
    ] = "text",
    strict: Annotated[
        bool | None, typer.Option("--strict/--lenient", help="Range-check structured string values")
    ] = None,
) -> None:
    """Compose a profile with overrides, validate it and emit artifacts."""
    settings = _settings()
    schema = build_default_schema()
    compiler = ConfigCompiler(schema, build_default_catalog(), settings=settings)

    host_tree = _load_tree(host) if host else None
    try:
        overrides = parse_override_assignments(override or [], schema)
        result = compiler.compile(
            profile, host_overrides=host_tree, overrides=overrides, strict=strict
        )
    except ValidationFailedError as e:
        console.print("[red]Validation failed:[/red]")
        _print_issues(e.issues)
        raise typer.Exit(1) from None
    except (ValueError, TypeError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    should_write = name is not None or output_dir is not None

    if should_write:
        try:
            artifacts = render_all(result, settings.output_formats)
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1) from None

        target = _resolve_output_dir(settings, name=name, output=output_dir, profile=profile)
        target.mkdir(parents=True, exist_ok=True)
        (target / RESOLVED_FILE).write_text(result.resolved.model_dump_json(indent=2))
        for artifact in artifacts:
            (target / artifact.filename).write_text(artifact.content)

        # Only the convention directory is tracked by .latest
        if not output_dir:
            _write_latest(settings, name or profile)

        console.print(f"[green]Artifacts written to {target}[/green]")
        _print_issues(result.warnings)
    elif format == "json":
        typer.echo(result.model_dump_json(indent=2))
    else:
        console.print(f"[bold]Profile:[/bold] {result.resolved.profile.value}")
        console.print()
        console.print(result.why_section, markup=False, highlight=False)


@app.command()
def validate(
    file: Annotated[Path, typer.Argument(help="Full configuration tree (YAML or JSON)")],
    strict: Annotated[
        bool | None, typer.Option("--strict/--lenient", help="Range-check structured string values")
    ] = None,
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format: text or json")
    ] = "text",
) -> None:
    """Validate a configuration tree and report every problem at once."""
    settings = _settings()
    tree = _load_tree(file)
    validator = ConfigValidator(
        build_default_schema(),
        build_default_catalog(),
        strict=settings.strict_values if strict is None else strict,
    )
    report = validator.validate(tree)

    if format == "json":
        typer.echo(report.model_dump_json(indent=2))
    elif report.ok:
        console.print(f"[green]✓ {file} is valid[/green]")
        if report.service_order:
            order_text = " → ".join(report.service_order)
            console.print(f"Service start order: {order_text}", highlight=False)
        _print_issues(report.warnings)
    else:
        console.print(f"[red]{file}: {len(report.errors)} error(s)[/red]")
        _print_issues(report.issues)

    if not report.ok:
        raise typer.Exit(1)


@app.command("list-profiles")
def list_profiles() -> None:
    """List available host profiles."""
    compiler = _build_compiler(_settings())

    table = Table(title="Available Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Overrides", style="green")

    for s in compiler.list_profiles():
        table.add_row(s.name.value, s.description, str(s.override_count))

    console.print(table)


@app.command("describe-profile")
def describe_profile(
    profile: Annotated[str, typer.Argument(help="Profile name")],
    all_options: Annotated[
        bool, typer.Option("--all", "-a", help="Include options left at their baseline default")
    ] = False,
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format: text or json")
    ] = "text",
) -> None:
    """Describe a profile's resolved options and where each value came from."""
    compiler = _build_compiler(_settings())

    try:
        desc = compiler.describe_profile(profile)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    if format == "json":
        typer.echo(desc.model_dump_json(indent=2))
        return

    console.print(f"[bold]{desc.name.value}[/bold]: {desc.description}")
    console.print()

    params = desc.parameters if all_options else desc.by_source("profile")
    table = Table(title="Options" if all_options else "Profile Overrides")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Source")
    for p in params:
        table.add_row(p.path, str(p.value), p.source)
    console.print(table)


@app.command()
def order(
    file: Annotated[
        Path | None, typer.Argument(help="Configuration tree (omit when using --profile)")
    ] = None,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-p", help="Compose this profile instead of reading a file"),
    ] = None,
) -> None:
    """Print the order enabled services start in."""
    if (file is None) == (profile is None):
        console.print("[red]Pass exactly one of FILE or --profile[/red]")
        raise typer.Exit(1)

    schema = build_default_schema()
    catalog = build_default_catalog()
    if file is not None:
        tree = _load_tree(file)
    else:
        try:
            tree = compose(profile, baseline_from_schema(schema), overrides_table())
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1) from None

    entries = service_entries(tree, catalog)
    enabled = [e.name for e in entries if e.enabled]
    depends_on = {e.name: sorted(e.depends_on) for e in entries}
    try:
        service_order = resolve_dependency_order(enabled, depends_on)
    except CycleError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None

    for i, name in enumerate(service_order, start=1):
        console.print(f"{i:>2}. {name}", highlight=False)


@app.command()
def explain(
    key: Annotated[
        str | None, typer.Option("--key", "-k", help="Explain a specific option path")
    ] = None,
    profile: Annotated[
        str | None, typer.Option("--profile", "-p", help="Compose and explain this profile")
    ] = None,
    resolved_json: Annotated[
        Path | None,
        typer.Option("--profile-file", help="resolved.json file (default: latest compiled config)"),
    ] = None,
    format: Annotated[
        str, typer.Option("--format", "-f", help="Output format: text or json")
    ] = "text",
) -> None:
    """Explain configuration.

    --key: explain a single option (in the context of --profile or the default profile)
    --profile: explain how a profile composes
    --profile-file: explain a compiled configuration (falls back to .hostcfg/.latest)
    """
    settings = _settings()
    compiler = _build_compiler(settings)

    if key or profile:
        try:
            result = compiler.compile(profile or settings.default_profile)
            explanation = (
                compiler.explain_key(key, result.resolved)
                if key
                else compiler.explain_profile(result.resolved)
            )
        except ValidationFailedError as e:
            console.print("[red]Validation failed:[/red]")
            _print_issues(e.issues)
            raise typer.Exit(1) from None
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1) from None
    else:
        path = _resolve_resolved_path(settings, resolved_json)
        try:
            resolved = ResolvedConfig.model_validate_json(path.read_text())
        except (OSError, ValueError) as e:
            console.print(f"[red]Error reading resolved configuration: {e}[/red]")
            raise typer.Exit(1) from None
        explanation = compiler.explain_profile(resolved)

    typer.echo(explanation.to_json() if format == "json" else explanation.to_text())


@app.command()
def docs(
    output: Annotated[
        Path | None, typer.Option("--output", help="Write the Markdown to this file")
    ] = None,
) -> None:
    """Print Markdown documentation for every option."""
    text = generate_option_docs(build_default_schema())
    if output:
        output.write_text(text)
        console.print(f"[green]Option docs written to {output}[/green]")
    else:
        typer.echo(text, nl=False)
