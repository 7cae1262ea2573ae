"""Steps of a job: their environment, shell command and kind."""

from __future__ import annotations

import datetime
import enum
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

_INPUT_KEY_CHARS = re.compile(r"[^A-Z0-9-]")

_SHELL_COMMANDS = {
    "": "bash --noprofile --norc -e -o pipefail {0}",
    "bash": "bash --noprofile --norc -e -o pipefail {0}",
    "pwsh": "pwsh -command . '{0}'",
    "python": "python {0}",
    "sh": "sh -e {0}",
    "cmd": 'cmd /D /E:ON /V:OFF /S /C "CALL "{0}""',
    "powershell": "powershell -command . '{0}'",
}


def _scalar_text(value: Any, where: str) -> str:
    """Render a YAML scalar as the string a workflow author wrote."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    raise ValueError(
        f"Failed to decode {where}: expected a scalar, got {type(value).__name__}"
    )


def _string_map(raw: Any, where: str) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError(
            f"Failed to decode {where}: expected a mapping, got {type(raw).__name__}"
        )
    return {str(k): _scalar_text(v, f"{where}.{k}") for k, v in raw.items()}


def environment(raw: Any) -> dict[str, str]:
    """Decode a raw ``env`` value into strings; anything but a mapping gives {}."""
    if not isinstance(raw, Mapping):
        return {}
    return _string_map(raw, "env")


class StepType(enum.IntEnum):
    """What kind of step is about to run."""

    RUN = 0
    USES_DOCKER_URL = 1
    USES_ACTION_LOCAL = 2
    USES_ACTION_REMOTE = 3
    REUSABLE_WORKFLOW_LOCAL = 4
    REUSABLE_WORKFLOW_REMOTE = 5
    INVALID = 6

    def __str__(self) -> str:
        return _STEP_TYPE_NAMES[self]


_STEP_TYPE_NAMES = {
    StepType.INVALID: "invalid",
    StepType.RUN: "run",
    StepType.USES_ACTION_LOCAL: "local-action",
    StepType.USES_ACTION_REMOTE: "remote-action",
    StepType.USES_DOCKER_URL: "docker",
    StepType.REUSABLE_WORKFLOW_LOCAL: "local-reusable-workflow",
    StepType.REUSABLE_WORKFLOW_REMOTE: "remote-reusable-workflow",
}


@dataclass
class Step:
    """One step of a job; ``if_`` and ``env`` keep their raw YAML values."""

    id: str = ""
    if_: Any = None
    name: str = ""
    uses: str = ""
    run: str = ""
    working_directory: str = ""
    shell: str = ""
    env: Any = None
    with_: dict[str, str] = field(default_factory=dict)
    raw_continue_on_error: str = ""
    timeout_minutes: str = ""

    def __str__(self) -> str:
        return self.name or self.uses or self.run or self.id

    def environment(self) -> dict[str, str]:
        """The step's own ``env`` as strings."""
        return environment(self.env)

    def get_env(self) -> dict[str, str]:
        """The step env plus an ``INPUT_*`` entry for every ``with`` value."""
        env = self.environment()
        for key, value in self.with_.items():
            env_key = _INPUT_KEY_CHARS.sub("_", key.upper())
            env[f"INPUT_{env_key.upper()}"] = value
        return env

    def shell_command(self) -> str:
        """The command line template for the step's shell."""
        return _SHELL_COMMANDS.get(self.shell, self.shell)

    def type(self) -> StepType:
        """Classify the step from its ``run`` and ``uses`` keys."""
        uses = self.uses
        if not self.run and not uses:
            return StepType.INVALID
        if self.run:
            return StepType.INVALID if uses else StepType.RUN
        if uses.startswith("docker://"):
            return StepType.USES_DOCKER_URL
        if uses.startswith("./.github/workflows") and uses.endswith((".yml", ".yaml")):
            return StepType.REUSABLE_WORKFLOW_LOCAL
        if (
            not uses.startswith("./")
            and ".github/workflows" in uses
            and (".yml@" in uses or ".yaml@" in uses)
        ):
            return StepType.REUSABLE_WORKFLOW_REMOTE
        if uses.startswith("./"):
            return StepType.USES_ACTION_LOCAL
        return StepType.USES_ACTION_REMOTE


def parse_step(data: Any) -> Step:
    """Build a Step from the mapping found in a workflow or composite action."""
    if not isinstance(data, Mapping):
        raise ValueError(
            f"Failed to decode step: expected a mapping, got {type(data).__name__}"
        )
    return Step(
        id=_scalar_text(data.get("id"), "step.id"),
        if_=data.get("if"),
        name=_scalar_text(data.get("name"), "step.name"),
        uses=_scalar_text(data.get("uses"), "step.uses"),
        run=_scalar_text(data.get("run"), "step.run"),
        working_directory=_scalar_text(
            data.get("working-directory"), "step.working-directory"
        ),
        shell=_scalar_text(data.get("shell"), "step.shell"),
        env=data.get("env"),
        with_=_string_map(data.get("with"), "step.with"),
        raw_continue_on_error=_scalar_text(
            data.get("continue-on-error"), "step.continue-on-error"
        ),
        timeout_minutes=_scalar_text(data.get("timeout-minutes"), "step.timeout-minutes"),
    )