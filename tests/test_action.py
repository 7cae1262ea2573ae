import io

import pytest

from actkit.action import (
    Action,
    ActionRuns,
    ActionRunsUsing,
    Branding,
    Input,
    InvalidActionError,
    Output,
    parse_runs_using,
    read_action,
)

NODE_ACTION = """
name: 'name'
runs:
  using: 'node16'
  main: 'main.js'
"""


def test_read_action_sets_defaults():
    expected = Action(
        name="name",
        runs=ActionRuns(
            using=ActionRunsUsing.NODE16,
            main="main.js",
            pre_if="always()",
            post_if="always()",
        ),
    )
    assert read_action(NODE_ACTION) == expected


def test_read_action_from_file_objects():
    expected = read_action(NODE_ACTION)
    assert read_action(io.StringIO(NODE_ACTION)) == expected
    assert read_action(io.BytesIO(NODE_ACTION.encode())) == expected


def test_read_action_keeps_explicit_conditions():
    text = NODE_ACTION + "  pre-if: 'success()'\n  post-if: 'failure()'\n"
    runs = read_action(text).runs
    assert runs.pre_if == "success()"
    assert runs.post_if == "failure()"


def test_read_action_full_document():
    text = """
name: Greeter
author: someone
description: says hello
inputs:
  who:
    description: who to greet
    required: true
    default: world
outputs:
  greeting:
    description: the greeting
    value: ${{ steps.greet.outputs.text }}
runs:
  using: docker
  image: Dockerfile
  entrypoint: /entry.sh
  args: [a, 1]
  env:
    MODE: fast
branding:
  color: blue
  icon: sun
"""
    action = read_action(text)
    assert action.inputs == {
        "who": Input(description="who to greet", required=True, default="world")
    }
    assert action.outputs["greeting"] == Output(
        description="the greeting", value="${{ steps.greet.outputs.text }}"
    )
    assert action.runs.using is ActionRunsUsing.DOCKER
    assert action.runs.args == ["a", "1"]
    assert action.runs.env == {"MODE": "fast"}
    assert action.branding == Branding(color="blue", icon="sun")


def test_read_composite_steps_kept_raw():
    text = """
runs:
  using: composite
  steps:
    - run: echo hi
      shell: bash
"""
    runs = read_action(text).runs
    assert runs.using is ActionRunsUsing.COMPOSITE
    assert runs.steps == [{"run": "echo hi", "shell": "bash"}]


def test_runs_using_is_case_insensitive():
    assert parse_runs_using("Node20") is ActionRunsUsing.NODE20
    assert read_action("runs:\n  using: DOCKER\n").runs.using is ActionRunsUsing.DOCKER


def test_runs_using_round_trip():
    for using in ActionRunsUsing:
        assert parse_runs_using(str(using)) is using


def test_invalid_runs_using():
    with pytest.raises(InvalidActionError) as info:
        parse_runs_using("Python")
    assert str(info.value) == (
        "The runs.using key in action.yml must be one of: "
        "[composite docker node12 node16 node20], got python"
    )


def test_invalid_runs_using_in_document():
    with pytest.raises(InvalidActionError):
        read_action("runs:\n  using: ruby\n")


def test_empty_document_is_an_error():
    with pytest.raises(InvalidActionError):
        read_action("")


def test_non_mapping_document_is_an_error():
    with pytest.raises(InvalidActionError):
        read_action("- a\n- b\n")


def test_malformed_yaml_is_an_error():
    with pytest.raises(InvalidActionError):
        read_action("name: [unclosed\n")


def test_required_must_be_boolean():
    with pytest.raises(InvalidActionError):
        read_action("inputs:\n  x:\n    required: maybe\n")