"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer

from hsmsctl.core.errors import HsmsctlError
from hsmsctl.core.service import TemplateService
from hsmsctl.core.template_store import read_template

app = typer.Typer(help="Send SECS/HSMS messages built from JSON templates")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log transport and correlation events"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service() -> TemplateService:
    service = TemplateService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _parse_assignment(assignment: str) -> tuple[str, Any]:
    key, sep, raw = assignment.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"Expected KEY=VALUE, got '{assignment}'")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key.strip(), value


def _collect_values(values_file: Path | None, assignments: list[str] | None) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if values_file is not None:
        try:
            loaded = json.loads(values_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise typer.BadParameter(f"Could not read values file {values_file}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise typer.BadParameter(f"Values file {values_file} must contain a JSON object")
        values.update(loaded)
    for assignment in assignments or []:
        key, value = _parse_assignment(assignment)
        values[key] = value
    return values


def _send(
    service: TemplateService,
    template: Any,
    values: dict[str, Any],
    sender: str,
    wait: bool | None,
    timeout_ms: int | None,
) -> None:
    result = asyncio.run(
        service.send_template(template, values, sender, wait_reply=wait, timeout_ms=timeout_ms)
    )
    if not result.ok:
        typer.echo(f"Error: {result.error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result.to_dict(), indent=2))


@app.command("list")
def list_templates() -> None:
    """List available message templates."""
    try:
        service = _build_service()
        names = service.list_templates()
        if not names:
            typer.echo("No templates found")
            raise typer.Exit(code=1)
        for name in names:
            typer.echo(name)
    except HsmsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("show")
def show_template(name: str) -> None:
    """Print a template as JSON."""
    try:
        template = _build_service().get_template(name)
        typer.echo(json.dumps(template.body, indent=2))
    except HsmsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("placeholders")
def list_placeholders(name: str) -> None:
    """List the placeholder keys a template needs values for."""
    try:
        keys = _build_service().placeholders(name)
        if not keys:
            typer.echo(f"{name} has no placeholders")
            return
        for key in keys:
            typer.echo(key)
    except HsmsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("send")
def send_template(
    name: str,
    sender: str = typer.Option("host", "--from", "-f", help="Sending connection: host or device"),
    assignments: list[str] = typer.Option(None, "--set", "-s", help="Placeholder value as KEY=VALUE (JSON or text)"),
    values_file: Path | None = typer.Option(None, "--values", help="JSON file with placeholder values"),
    wait: bool | None = typer.Option(None, "--wait/--no-wait", help="Override the template's replyExpected"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Reply timeout in milliseconds"),
) -> None:
    """Send a stored template over the loopback connection pair."""
    try:
        values = _collect_values(values_file, assignments)
        _send(_build_service(), name, values, sender, wait, timeout_ms)
    except HsmsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("send-inline")
def send_inline(
    template_file: Path,
    sender: str = typer.Option("host", "--from", "-f", help="Sending connection: host or device"),
    assignments: list[str] = typer.Option(None, "--set", "-s", help="Placeholder value as KEY=VALUE (JSON or text)"),
    values_file: Path | None = typer.Option(None, "--values", help="JSON file with placeholder values"),
    wait: bool | None = typer.Option(None, "--wait/--no-wait", help="Override the template's replyExpected"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", help="Reply timeout in milliseconds"),
) -> None:
    """Send a template read from TEMPLATE_FILE instead of the template store."""
    try:
        template = read_template(template_file)
        values = _collect_values(values_file, assignments)
        _send(_build_service(), template, values, sender, wait, timeout_ms)
    except HsmsctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
