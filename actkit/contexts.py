"""Step results and the job context exposed to expressions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class StepStatus(enum.IntEnum):
    """Outcome of a step; renders as its lower-case name."""

    SUCCESS = 0
    FAILURE = 1
    SKIPPED = 2

    def __str__(self) -> str:
        return self.name.lower()


def parse_step_status(text: str) -> StepStatus:
    """Turn ``success``, ``failure`` or ``skipped`` into a StepStatus."""
    for status in StepStatus:
        if str(status) == text:
            return status
    raise ValueError(f'invalid step status "{text}"')


@dataclass
class StepResult:
    """Outputs and status of a finished step."""

    outputs: dict[str, str] = field(default_factory=dict)
    conclusion: StepStatus = StepStatus.SUCCESS
    outcome: StepStatus = StepStatus.SUCCESS


@dataclass
class JobContainer:
    """The container a job runs in."""

    id: str = ""
    network: str = ""


@dataclass
class JobService:
    """A service container started for a job."""

    id: str = ""


@dataclass
class JobContext:
    """The ``job`` context: status, container and services."""

    status: str = ""
    container: JobContainer = field(default_factory=JobContainer)
    services: dict[str, JobService] = field(default_factory=dict)