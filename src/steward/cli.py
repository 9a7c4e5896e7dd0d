"""CLI commands for planning and running requests against a local project."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .approval import ApprovalDecision, ApprovalRequest, ApprovalResponse, SessionApprovalPolicy
from .config import (
    DEFAULT_CONFIG_NAME,
    StewardConfig,
    copy_config_template,
    load_config,
    write_config,
)
from .errors import ConfigError, ModelClientError
from .governor import InvocationCall, InvocationListener, InvocationResult, OperationType
from .models.chat import ChatClient
from .models.llm_client import ModelClient
from .planning.classifier import ComplexityClassifier
from .planning.schemas import Plan, ProgressEvent, ProgressKind, Step
from .session import Session
from .tools.diff import collapse_context, compute_diff, count_changes, render_diff

APP_HELP = "Plan and run coding requests against a local project."

app = typer.Typer(help=APP_HELP)

_APPROVAL_CHOICES = {
    "y": ApprovalResponse.APPROVED,
    "a": ApprovalResponse.APPROVED_NO_ASK_AGAIN,
    "n": ApprovalResponse.DENIED,
    "i": ApprovalResponse.NEW_INSTRUCTIONS,
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_config(config_path: Path) -> StewardConfig:
    try:
        return load_config(config_path)
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _build_client(config: StewardConfig, *, use_remote: bool) -> ModelClient:
    """Select either the HTTP chat client or the offline stub."""
    model_name = config.model.name
    offline_model = model_name.lower() == "offline" or model_name.lower().endswith("-offline")

    if use_remote and not offline_model:
        typer.echo(f"Using chat model {model_name} at {config.model.endpoint}.")
        return ChatClient(
            model=model_name,
            endpoint=config.model.endpoint,
            api_key=config.model.api_key,
            timeout=config.model.timeout,
            temperature=config.model.temperature,
        )

    if use_remote and offline_model:
        typer.echo(f"Model '{model_name}' is offline-only; using offline stub client.")
    else:
        typer.echo("Using offline stub client.")
    return _OfflineModelClient()


class _OfflineModelClient(ModelClient):
    """Local stub that synthesizes deterministic chat replies for demos/tests."""

    _SPLIT_RE = re.compile(r"\s*(?:,?\s+and then\s+|;\s*|\.\s+(?=[A-Z]))")
    _NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s+(.+)$", re.MULTILINE)

    def __init__(self) -> None:
        super().__init__("offline", temperature=0.0)

    async def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        messages = payload.get("messages") or []
        prompt = ""
        for message in reversed(messages):
            if message.get("role") == "user":
                prompt = str(message.get("content") or "")
                break
        if "---PLAN-START---" in prompt:
            content = self._plan_reply(prompt)
        else:
            content = self._step_reply(prompt)
        return json.dumps({"choices": [{"message": {"role": "assistant", "content": content}}]})

    def _plan_reply(self, prompt: str) -> str:
        request = prompt.split("Request:\n", 1)[-1].strip()
        parts = [item.strip() for item in self._NUMBERED_RE.findall(request)]
        if len(parts) < 2:
            parts = [item.strip(" .") for item in self._SPLIT_RE.split(request) if item.strip(" .")]
        if not parts:
            parts = [request or "Handle the request"]
        lines = ["---PLAN-START---"]
        for index, part in enumerate(parts, start=1):
            lines.append(f"STEP {index}: {part.splitlines()[0]}")
            lines.append(f"DO: {part}")
        lines.append("---PLAN-END---")
        return "\n".join(lines)

    @staticmethod
    def _step_reply(prompt: str) -> str:
        current = prompt.split("## Current Step\n", 1)[-1].split("\n\n", 1)[0].strip()
        return f"Offline stub acknowledged: {current or 'request'}. No changes were made."


class _EchoListener(InvocationListener):
    """Print operations as they run."""

    def on_invoked(self, call: InvocationCall) -> None:
        typer.echo(f"  -> {call.description}")

    def on_completed(self, result: InvocationResult) -> None:
        if not result.success:
            typer.echo(f"     failed: {result.result}")
            return
        outcome = result.outcome
        if outcome is None:
            return
        if outcome.operation_type is OperationType.WRITE:
            typer.echo(f"     wrote {outcome.line_count} lines to {outcome.file_path}")
        elif outcome.operation_type is OperationType.UPDATE:
            typer.echo(f"     updated {outcome.file_path} (+{outcome.additions} -{outcome.deletions})")
            if outcome.inline_diff:
                typer.echo(render_diff(outcome.inline_diff))
        elif outcome.operation_type is OperationType.DELETE:
            typer.echo(f"     deleted {outcome.file_path} ({outcome.deletions} lines)")


async def _prompt_approval(request: ApprovalRequest) -> ApprovalDecision:
    action = "Delete" if request.is_delete else ("Create" if request.is_new_file else "Update")
    typer.echo(f"\n{action} {request.path} (+{request.additions} -{request.deletions})")
    if request.preview:
        typer.echo(request.preview)
    while True:
        answer = await asyncio.to_thread(
            typer.prompt,
            "Approve? [y]es / [a]lways / [n]o / new [i]nstructions",
            default="y",
        )
        response = _APPROVAL_CHOICES.get(str(answer).strip().lower()[:1])
        if response is None:
            typer.echo("Please answer y, a, n or i.")
            continue
        if response is ApprovalResponse.NEW_INSTRUCTIONS:
            message = await asyncio.to_thread(typer.prompt, "New instructions")
            return ApprovalDecision.redirect(str(message))
        return ApprovalDecision(response)


def _render_plan(plan: Plan) -> None:
    typer.echo(f"Plan with {plan.total_steps} step(s):")
    for step in plan.steps:
        typer.echo(f"  {step.step_number}. {step.description}")
        if step.instruction and step.instruction != step.description:
            typer.echo(f"     {step.instruction}")
    if plan.execution_summary:
        typer.echo(plan.execution_summary)


def _render_event(event: ProgressEvent) -> None:
    if event.kind is ProgressKind.PLAN_CREATED:
        typer.echo(event.message or "")
    elif event.kind is ProgressKind.STEP_STARTED:
        typer.echo(f"[{event.current_step}/{event.total_steps}] {event.step_description}")
    elif event.kind is ProgressKind.STEP_COMPLETED:
        typer.echo(f"  done: {event.message or ''}".rstrip())
    elif event.kind is ProgressKind.STEP_FAILED:
        typer.echo(f"  failed: {event.message or ''}".rstrip())
    else:
        typer.echo(event.message or "")


async def _run_request(session: Session, message: str, *, force_plan: bool) -> Optional[Plan]:
    if not (force_plan or session.requires_planning(message)):
        reply = await session.ask(message)
        typer.echo(reply)
        return None

    plan = await session.create_plan(message)
    _render_plan(plan)
    async for event in session.execute_plan(plan):
        _render_event(event)
    if plan.execution_summary:
        typer.echo(plan.execution_summary)
    return plan


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file to create.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path}; use --force to overwrite.")
        return
    write_config(config_path, copy_config_template())
    typer.echo(f"Wrote default configuration to {config_path}")


@app.command()
def classify(
    message: str = typer.Argument(..., help="Request to classify."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
) -> None:
    """Report whether a request would be planned before execution."""
    config_data = _load_config(Path(config))
    classifier = ComplexityClassifier(enabled=config_data.planning.enabled)
    if classifier.requires_planning(message):
        typer.echo("Planning required")
    else:
        typer.echo("Direct execution")


@app.command()
def plan(
    message: str = typer.Argument(..., help="Request to plan."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    use_remote: bool = typer.Option(
        True,
        "--use-remote/--no-use-remote",
        help="Call the configured chat endpoint instead of the offline stub.",
    ),
) -> None:
    """Generate and print a plan without executing it."""
    config_path = Path(config)
    config_data = _load_config(config_path)
    client = _build_client(config_data, use_remote=use_remote)
    session = Session(config_data, client, project_root=config_data.project_root(config_path))
    created = asyncio.run(session.create_plan(message))
    _render_plan(created)


@app.command()
def run(
    message: str = typer.Argument(..., help="Request to carry out."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the configuration file.",
    ),
    use_remote: bool = typer.Option(
        True,
        "--use-remote/--no-use-remote",
        help="Call the configured chat endpoint instead of the offline stub.",
    ),
    force_plan: bool = typer.Option(
        False,
        "--plan",
        help="Always plan the request, even when it looks simple.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Apply writes and deletes without asking for approval.",
    ),
) -> None:
    """Classify a request, then plan and run it or send it straight to the model."""
    config_path = Path(config)
    config_data = _load_config(config_path)
    client = _build_client(config_data, use_remote=use_remote)
    approvals = None if yes else SessionApprovalPolicy(_prompt_approval)

    session: Optional[Session] = None

    async def on_step_failed(failed_plan: Plan, step: Step) -> None:
        if yes:
            return
        keep_going = await asyncio.to_thread(
            typer.confirm,
            f"Step {step.step_number} failed. Skip it and continue?",
            default=True,
        )
        if not keep_going and session is not None:
            session.cancel_plan(failed_plan)

    session = Session(
        config_data,
        client,
        project_root=config_data.project_root(config_path),
        approvals=approvals,
        on_step_failed=on_step_failed,
    )
    session.add_listener(_EchoListener())
    try:
        asyncio.run(_run_request(session, message, force_plan=force_plan))
    except ModelClientError as error:
        typer.echo(f"Model request failed: {error}")
        raise typer.Exit(code=1) from error


@app.command()
def diff(
    old: Path = typer.Argument(..., help="Original file (may not exist yet)."),
    new: Path = typer.Argument(..., help="Updated file."),
    context: int = typer.Option(3, "--context", "-U", min=0, help="Unchanged lines kept around changes."),
) -> None:
    """Show a collapsed line diff between two files."""
    if not new.is_file():
        raise typer.BadParameter(f"File not found: {new}", param_hint="NEW")
    old_text: Optional[str] = old.read_text(encoding="utf-8") if old.is_file() else None
    lines = compute_diff(old_text, new.read_text(encoding="utf-8"))
    additions, deletions = count_changes(lines)
    typer.echo(render_diff(collapse_context(lines, context)))
    typer.echo(f"+{additions} -{deletions}")


if __name__ == "__main__":
    app()
