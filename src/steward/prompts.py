"""Prompt templates shared by the assistant, plan generator, and step executor."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

ASSISTANT_SYSTEM_PROMPT = (
    "You are a local coding assistant with access to project filesystem operations.\n"
    "When the user asks you to create, modify, read, list, search, or delete files, call the "
    "matching operation immediately instead of describing what you would do.\n"
    "Wait for each operation result and use it to answer in plain sentences. Never emit raw JSON "
    "or function-call syntax as your reply.\n"
    "If an operation result says the user denied a change, do not retry it unless asked. If it "
    "carries new instructions, follow them.\n"
    "When reporting written files, include the absolute path returned by the operation."
)

PLAN_INSTRUCTION = (
    "Break the following request into a short ordered list of concrete steps that can each be "
    "completed on their own. Respond using exactly this format and nothing else:\n"
    "---PLAN-START---\n"
    "STEP 1: <short description, under 60 characters>\n"
    "DO: <complete instruction for this step>\n"
    "STEP 2: <short description>\n"
    "DO: <complete instruction>\n"
    "---PLAN-END---\n"
    "Use between 2 and 8 steps. Do not call any operations while planning."
)


def render_plan_prompt(message: str) -> str:
    """Return the user prompt asking the model to plan ``message``."""
    return f"{PLAN_INSTRUCTION}\n\nRequest:\n{message.strip()}"


def render_step_prompt(instruction: str, prior_context: Sequence[str]) -> str:
    """Return the user prompt for one plan step, including earlier step summaries."""
    sections: list[str] = []
    if prior_context:
        body = "\n".join(f"- {entry}" for entry in prior_context)
        sections.append(f"## Completed Steps\n{body}")
    sections.append(f"## Current Step\n{instruction.strip()}")
    sections.append("Complete only the current step. Use the available operations to make changes.")
    return "\n\n".join(sections)


def render_project_context(project_root: Path) -> str:
    """Describe the workspace the operations act on."""
    return (
        f"All file paths are relative to the project root at {project_root.as_posix()}. "
        "List or search the project before editing files you have not seen."
    )


__all__ = [
    "ASSISTANT_SYSTEM_PROMPT",
    "PLAN_INSTRUCTION",
    "render_plan_prompt",
    "render_project_context",
    "render_step_prompt",
]
