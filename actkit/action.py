"""Action metadata files (action.yml / action.yaml)."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from typing import IO, Any, Optional, Union

import yaml


class InvalidActionError(ValueError):
    """Raised when an action metadata file cannot be read."""


class ActionRunsUsing(str, enum.Enum):
    """The runtime named by ``runs.using``."""

    NODE12 = "node12"
    NODE16 = "node16"
    NODE20 = "node20"
    DOCKER = "docker"
    COMPOSITE = "composite"

    def __str__(self) -> str:
        return self.value


_USING_ORDER = (
    ActionRunsUsing.COMPOSITE,
    ActionRunsUsing.DOCKER,
    ActionRunsUsing.NODE12,
    ActionRunsUsing.NODE16,
    ActionRunsUsing.NODE20,
)


def parse_runs_using(value: Union[str, ActionRunsUsing]) -> ActionRunsUsing:
    """Parse ``runs.using`` case-insensitively."""
    if isinstance(value, ActionRunsUsing):
        return value
    lowered = str(value).lower()
    try:
        return ActionRunsUsing(lowered)
    except ValueError:
        choices = " ".join(u.value for u in _USING_ORDER)
        raise InvalidActionError(
            f"The runs.using key in action.yml must be one of: [{choices}], got {lowered}"
        ) from None


@dataclass
class Input:
    """An input parameter the action accepts."""

    description: str = ""
    required: bool = False
    default: str = ""


@dataclass
class Output:
    """An output the action sets."""

    description: str = ""
    value: str = ""


@dataclass
class Branding:
    """Marketplace branding."""

    color: str = ""
    icon: str = ""


@dataclass
class ActionRuns:
    """How the action runs; ``steps`` holds raw step mappings of a composite action."""

    using: Optional[ActionRunsUsing] = None
    env: dict[str, str] = field(default_factory=dict)
    main: str = ""
    pre: str = ""
    pre_if: str = ""
    post: str = ""
    post_if: str = ""
    image: str = ""
    entrypoint: str = ""
    args: list[str] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Action:
    """The contents of an action metadata file."""

    name: str = ""
    author: str = ""
    description: str = ""
    inputs: dict[str, Input] = field(default_factory=dict)
    outputs: dict[str, Output] = field(default_factory=dict)
    runs: ActionRuns = field(default_factory=ActionRuns)
    branding: Branding = field(default_factory=Branding)


def _text(value: Any, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    raise InvalidActionError(f"{where}: expected a string, got {type(value).__name__}")


def _flag(value: Any, where: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise InvalidActionError(f"{where}: expected a boolean, got {value!r}")


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise InvalidActionError(f"{where}: expected a mapping, got {type(value).__name__}")


def _sequence(value: Any, where: str) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    raise InvalidActionError(f"{where}: expected a sequence, got {type(value).__name__}")


def _parse_runs(data: dict) -> ActionRuns:
    using = data.get("using")
    return ActionRuns(
        using=None if using is None else parse_runs_using(_text(using, "runs.using")),
        env={
            str(k): _text(v, f"runs.env.{k}")
            for k, v in _mapping(data.get("env"), "runs.env").items()
        },
        main=_text(data.get("main"), "runs.main"),
        pre=_text(data.get("pre"), "runs.pre"),
        pre_if=_text(data.get("pre-if"), "runs.pre-if") or "always()",
        post=_text(data.get("post"), "runs.post"),
        post_if=_text(data.get("post-if"), "runs.post-if") or "always()",
        image=_text(data.get("image"), "runs.image"),
        entrypoint=_text(data.get("entrypoint"), "runs.entrypoint"),
        args=[_text(a, "runs.args") for a in _sequence(data.get("args"), "runs.args")],
        steps=[
            dict(_mapping(step, "runs.steps"))
            for step in _sequence(data.get("steps"), "runs.steps")
        ],
    )


def read_action(source: Union[str, bytes, IO[str], IO[bytes]]) -> Action:
    """Read an action from YAML text, bytes or a readable file object."""
    text = source.read() if hasattr(source, "read") else source
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidActionError(str(exc)) from exc
    if data is None:
        raise InvalidActionError("action file is empty")
    data = _mapping(data, "action")

    inputs = {}
    for key, raw in _mapping(data.get("inputs"), "inputs").items():
        spec = _mapping(raw, f"inputs.{key}")
        inputs[str(key)] = Input(
            description=_text(spec.get("description"), f"inputs.{key}.description"),
            required=_flag(spec.get("required"), f"inputs.{key}.required"),
            default=_text(spec.get("default"), f"inputs.{key}.default"),
        )

    outputs = {}
    for key, raw in _mapping(data.get("outputs"), "outputs").items():
        spec = _mapping(raw, f"outputs.{key}")
        outputs[str(key)] = Output(
            description=_text(spec.get("description"), f"outputs.{key}.description"),
            value=_text(spec.get("value"), f"outputs.{key}.value"),
        )

    branding = _mapping(data.get("branding"), "branding")
    return Action(
        name=_text(data.get("name"), "name"),
        author=_text(data.get("author"), "author"),
        description=_text(data.get("description"), "description"),
        inputs=inputs,
        outputs=outputs,
        runs=_parse_runs(_mapping(data.get("runs"), "runs")),
        branding=Branding(
            color=_text(branding.get("color"), "branding.color"),
            icon=_text(branding.get("icon"), "branding.icon"),
        ),
    )