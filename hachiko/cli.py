"""hachiko CLI: read-only views over migration state and policy."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError

from hachiko.control_plane.engine import MigrationEngine, build_engine_from_env
from hachiko.control_plane.migrations.state_inference import summarize_migration_state
from hachiko.control_plane.models.policy_contracts import PolicyContext
from hachiko.shared.errors import ConfigurationError, HachikoError
from hachiko.shared.logging import configure_logging

APP_HELP = """hachiko: migration state and policy checks.

Pull requests are read from HACHIKO_REPO (owner/name). The default connector is an
empty in-memory store; set HACHIKO_GITHUB_CONNECTOR=api with GITHUB_TOKEN to query
the GitHub REST API.
"""

app = typer.Typer(add_completion=False, help=APP_HELP)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


def _engine(config: Path | None) -> MigrationEngine:
    configure_logging()
    try:
        return build_engine_from_env(config_path=config)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


def _fail(exc: HachikoError) -> typer.Exit:
    _echo_json({"error": str(exc), "reason_code": exc.reason_code, "details": exc.details})
    return typer.Exit(code=2)


def _read_plan(plan: Path | None) -> str | None:
    return plan.read_text() if plan is not None else None


@app.command()
def state(
    migration_id: str,
    total_steps: int = typer.Option(0, "--total-steps", min=0),
    plan: Path = typer.Option(None, "--plan", exists=True, dir_okay=False),
    config: Path = typer.Option(None, "--config"),
) -> None:
    """Infer the current state of a migration from its pull requests.

    A --plan markdown file's task checkboxes take precedence over --total-steps.
    """
    engine = _engine(config)
    try:
        info = engine.get_migration_state(
            migration_id, total_tasks=total_steps, plan_markdown=_read_plan(plan)
        )
    except HachikoError as exc:
        raise _fail(exc) from exc
    payload = info.model_dump(mode="json")
    payload["summary"] = summarize_migration_state(info)
    _echo_json(payload)


@app.command("validate-step")
def validate_step_command(
    migration_id: str,
    step: int,
    force: bool = typer.Option(False, "--force"),
    total_steps: int = typer.Option(0, "--total-steps", min=0),
    plan: Path = typer.Option(None, "--plan", exists=True, dir_okay=False),
    config: Path = typer.Option(None, "--config"),
) -> None:
    """Check whether STEP may run next for a migration."""
    engine = _engine(config)
    try:
        validation = engine.validate_step_request(
            migration_id,
            step,
            force=force,
            total_tasks=total_steps,
            plan_markdown=_read_plan(plan),
        )
    except HachikoError as exc:
        raise _fail(exc) from exc
    _echo_json(
        {
            "decision": asdict(validation.decision),
            "state": validation.info.state,
            "current_step": validation.info.current_step,
        }
    )
    if not validation.decision.allowed:
        raise typer.Exit(code=1)


@app.command("policy-check")
def policy_check(
    context: Path = typer.Option(..., "--context", exists=True, dir_okay=False),
    config: Path = typer.Option(None, "--config"),
) -> None:
    """Evaluate a JSON or YAML policy context file against the active rules."""
    engine = _engine(config)
    try:
        raw = yaml.safe_load(context.read_text())
    except yaml.YAMLError as exc:
        raise typer.BadParameter(f"Context file is not valid JSON/YAML: {exc}") from exc
    try:
        parsed = PolicyContext.model_validate(raw or {})
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid policy context: {exc}") from exc

    result = engine.evaluate_policy(parsed)
    _echo_json(result.model_dump(mode="json"))
    if not result.allowed:
        raise typer.Exit(code=1)


@app.command()
def rules(config: Path = typer.Option(None, "--config")) -> None:
    """List policy rules in evaluation order."""
    engine = _engine(config)
    store = engine.rule_store
    _echo_json(
        {
            "version": store.version,
            "rules": [
                {
                    "id": rule.id,
                    "type": rule.type,
                    "severity": rule.severity,
                    "enabled": rule.enabled,
                }
                for rule in store.rules()
            ],
        }
    )


if __name__ == "__main__":
    app()
