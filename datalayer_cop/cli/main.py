#!/usr/bin/env python3
"""Main CLI entry point for DataLayer Cop using Typer.

The CLI replays recorded dataLayer payloads through the same interceptor a
page would use, so rule configurations can be checked in CI before they ship.
"""

import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from typing_extensions import Annotated

from .. import __version__
from ..enforcement import (
    CaseMatcher,
    CommandCall,
    CopConfigManager,
    CopConfigurationError,
    Disposition,
    PageHost,
    QueueInterceptor,
    create_default_config,
    rule_catalog,
    validate_config,
)
from ..enforcement.casing import PREFERRED_CASES


class ExitCode(IntEnum):
    """CLI exit codes for CI/CD integration."""
    SUCCESS = 0          # Every payload accepted without violations
    VIOLATIONS = 1       # Payloads were flagged (with --strict)
    DROPPED = 2          # At least one payload was dropped
    CONFIG_ERROR = 3     # Configuration or input error


app = typer.Typer(
    name="datalayer-cop",
    help="DataLayer Cop - enforce dataLayer conventions and syntax",
    add_completion=False,
)


@app.callback()
def main(
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
    ] = "WARNING",
):
    """
    DataLayer Cop - enforce dataLayer conventions and syntax.

    Validate recorded dataLayer pushes against a rule configuration.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s"
    )


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"DataLayer Cop v{__version__}")


@app.command(name="rules")
def list_rules(
    case: Annotated[
        str,
        typer.Option("--case", help="Preferred case used to build the rule descriptions")
    ] = "snake",
):
    """List the predefined rules that configurations can reference."""
    if case not in PREFERRED_CASES:
        typer.echo(f"❌ Unknown case '{case}'. Valid values: {', '.join(PREFERRED_CASES)}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    for key, rule in rule_catalog.predefined_rules(CaseMatcher(case)).items():
        scope = rule.type.value if rule.type else "all"
        typer.echo(f"{key}")
        typer.echo(f"    {rule.name}")
        typer.echo(f"    applies to: {scope}, drop on fail: {str(rule.drop_on_fail).lower()}")


def load_events(path: Path) -> List[Any]:
    """Read payloads from a JSON array or a JSON-lines file.

    Objects become gtm payloads; arrays become positional gtag commands. A
    whole-file array counts as a list of pushes only when every element is an
    object or an array; otherwise it is a single gtag command.
    """
    text = path.read_text(encoding="utf-8")

    try:
        document = json.loads(text)
    except json.JSONDecodeError:
        # More than one JSON value: one push per line
        return [_to_push(json.loads(line)) for line in text.splitlines() if line.strip()]

    if isinstance(document, list) and all(isinstance(item, (dict, list)) for item in document):
        raw_items = document
    else:
        raw_items = [document]

    return [_to_push(item) for item in raw_items]


def _to_push(item: Any) -> Any:
    return CommandCall(tuple(item)) if isinstance(item, list) else item


def _load_config(config_path: Optional[Path]):
    try:
        return CopConfigManager().load_config(config_path)
    except CopConfigurationError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


@app.command()
def replay(
    events: Annotated[
        Path,
        typer.Argument(help="JSON array or JSON-lines file of recorded pushes")
    ],
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to YAML rule configuration")
    ] = None,
    hostname: Annotated[
        str,
        typer.Option("--hostname", help="Hostname reported in remote violation reports")
    ] = "localhost",
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with code 1 when any payload is flagged")
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON")
    ] = False,
):
    """
    Replay recorded pushes through the interceptor and report decisions.

    Examples:

        datalayer-cop replay pushes.jsonl --config cop.yaml

        datalayer-cop replay pushes.json -c cop.yaml --strict --json
    """
    if not events.exists():
        typer.echo(f"❌ Events file not found: {events}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    config = _load_config(config_path)

    try:
        items = load_events(events)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        typer.echo(f"❌ Could not parse {events}: {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    host = PageHost(hostname=hostname, url=f"https://{hostname}/", user_agent=f"datalayer-cop/{__version__}")
    interceptor = QueueInterceptor(config, host=host)

    decisions: List[Tuple[Disposition, List[str]]] = []

    def record(item, disposition, outcome):
        failed = [test.rule.name or "(unnamed rule)" for test in outcome.failures] if outcome else []
        decisions.append((disposition, failed))

    interceptor.register_hook(record)

    results: List[Dict[str, Any]] = []
    queue = interceptor.queue
    for index, item in enumerate(items):
        decisions.clear()
        queue.append(item)
        # Diagnostics re-enter the queue first; the outer decision is recorded last
        disposition, failed = decisions[-1] if decisions else (Disposition.ACCEPTED, [])
        results.append({'index': index, 'disposition': disposition.value, 'failed_rules': failed})

    flush = getattr(interceptor.reporter.transport, 'flush', None)
    if callable(flush):
        flush(timeout=10.0)

    summary: Dict[str, int] = {d.value: 0 for d in Disposition}
    for result in results:
        summary[result['disposition']] += 1

    if json_output:
        typer.echo(json.dumps({
            'installed': interceptor.installed,
            'results': results,
            'summary': summary,
        }, indent=2))
    else:
        if not interceptor.installed:
            typer.echo("⚠️  No rules configured - payloads were not validated")
        for result in results:
            line = f"#{result['index']:<4} {result['disposition']}"
            if result['failed_rules']:
                line += f"  ({'; '.join(result['failed_rules'])})"
            typer.echo(line)
        typer.echo(", ".join(f"{name}: {count}" for name, count in summary.items()))

    if summary[Disposition.DROPPED.value]:
        raise typer.Exit(code=ExitCode.DROPPED.value)
    if strict and summary[Disposition.FLAGGED.value]:
        raise typer.Exit(code=ExitCode.VIOLATIONS.value)


@app.command(name="validate-config")
def validate_config_command(
    config_path: Annotated[
        Path,
        typer.Argument(help="Path to YAML rule configuration")
    ],
):
    """Load a configuration and print any warnings."""
    config = _load_config(config_path)
    warnings = validate_config(config)

    if not warnings:
        typer.echo(f"✅ {config_path} is valid ({len(config.rules)} rule(s))")
        return

    for warning in warnings:
        typer.echo(f"⚠️  {warning}")


@app.command(name="init-config")
def init_config(
    output: Annotated[
        Path,
        typer.Argument(help="Where to write the starter configuration")
    ] = Path("datalayer-cop.yaml"),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing file")
    ] = False,
):
    """Write a starter configuration enabling every predefined rule."""
    if output.exists() and not force:
        typer.echo(f"❌ {output} already exists (use --force to overwrite)", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    create_default_config(output)
    typer.echo(f"✅ Wrote {output}")


if __name__ == "__main__":
    app()
