from __future__ import annotations

import textwrap

from steward.planning.parser import parse_plan_response
from steward.planning.schemas import StepStatus


def test_marker_format_takes_priority() -> None:
    response = textwrap.dedent(
        """
        Here is the plan.
        ---PLAN-START---
        STEP 1: Create the HTML page
        DO: Write index.html with a 3x3 grid.
        STEP 2: Add the game logic
        DO: Write game.js that tracks turns
        and detects a winner.
        ---PLAN-END---
        1. Ignored - numbered item
        """
    )

    steps = parse_plan_response(response)

    assert [step.description for step in steps] == ["Create the HTML page", "Add the game logic"]
    assert steps[0].instruction == "Write index.html with a 3x3 grid."
    assert steps[1].instruction == "Write game.js that tracks turns\nand detects a winner."
    assert all(step.status is StepStatus.PENDING for step in steps)


def test_json_array_with_alternate_keys() -> None:
    response = (
        'Plan: [{"step": "Scaffold", "action": "Create the folders"}, '
        '{"description": "Docs"}, {"description": " ", "do": ""}]'
    )

    steps = parse_plan_response(response)

    assert [(step.step_number, step.description, step.instruction) for step in steps] == [
        (1, "Scaffold", "Create the folders"),
        (2, "Docs", "Docs"),
    ]


def test_invalid_json_falls_through_to_numbered_list() -> None:
    response = "[{broken json}]\n1. Write tests - cover the parser\n2. Ship it"

    steps = parse_plan_response(response)

    assert [(step.description, step.instruction) for step in steps] == [
        ("Write tests", "cover the parser"),
        ("Ship it", "Ship it"),
    ]


def test_legacy_step_instruction_format() -> None:
    response = (
        "STEP 1: Read config\nNotes here\nINSTRUCTION: Open steward.yaml\n"
        "STEP 2: Validate\nINSTRUCTION: Check every section"
    )

    steps = parse_plan_response(response)

    assert [(step.description, step.instruction) for step in steps] == [
        ("Read config", "Open steward.yaml"),
        ("Validate", "Check every section"),
    ]


def test_generic_step_format_and_renumbering() -> None:
    response = "Step 4: Prepare\nget the data ready\nStep 9: Finish\nwrap everything up"

    steps = parse_plan_response(response)

    assert [step.step_number for step in steps] == [1, 2]
    assert [step.description for step in steps] == ["Prepare", "Finish"]
    assert steps[0].instruction == "get the data ready"


def test_long_descriptions_are_shortened_and_blank_text_yields_nothing() -> None:
    long_description = "x" * 80
    steps = parse_plan_response(f"1. {long_description}")

    assert steps[0].description == "x" * 57 + "..."
    assert steps[0].instruction == long_description
    assert parse_plan_response("") == []
    assert parse_plan_response("nothing that looks like a plan") == []
