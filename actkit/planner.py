"""Plan which jobs of a set of workflows run, and in which stages."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from itertools import zip_longest
from typing import IO, Iterator, Optional, Union

from .workflow import EmptyWorkflowError, Job, Workflow, WorkflowError, read_workflow

logger = logging.getLogger(__name__)

_JOB_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_WORKFLOW_EXTENSIONS = (".yml", ".yaml")


class PlannerError(Exception):
    """Raised when workflows cannot be loaded or planned.

    When raised while planning, ``plan`` holds the stages that could still be built.
    """

    def __init__(self, message: str, plan: Optional["Plan"] = None) -> None:
        super().__init__(message)
        self.plan = plan


@dataclass
class Run:
    """A job of a workflow that needs to be run."""

    workflow: Workflow
    job_id: str

    def __str__(self) -> str:
        job = self.job()
        if job is not None and job.name:
            return job.name
        return self.job_id

    def job(self) -> Optional[Job]:
        """The job this run refers to."""
        return self.workflow.get_job(self.job_id)


@dataclass
class Stage:
    """Runs that may execute in parallel."""

    runs: list[Run] = field(default_factory=list)

    def get_job_ids(self) -> list[str]:
        """IDs of the jobs in this stage."""
        return [run.job_id for run in self.runs]


@dataclass
class Plan:
    """Stages to run one after another."""

    stages: list[Stage] = field(default_factory=list)

    def max_run_name_len(self) -> int:
        """Length of the longest run name in the plan."""
        return max(
            (len(str(run)) for stage in self.stages for run in stage.runs), default=0
        )

    def merge_stages(self, stages: list[Stage]) -> None:
        """Append the runs of ``stages`` to the stages at the same positions."""
        merged = []
        for ours, theirs in zip_longest(self.stages, stages):
            runs: list[Run] = []
            if ours is not None:
                runs.extend(ours.runs)
            if theirs is not None:
                runs.extend(theirs.runs)
            merged.append(Stage(runs))
        self.stages = merged


def list_in_stages(src_list: list[str], *args: Stage) -> bool:
    """Whether every job ID in ``src_list`` appears in at least one stage."""
    return all(
        any(src in stage.get_job_ids() for stage in args) for src in src_list
    )


def create_stages(workflow: Workflow, *args: str) -> list[Stage]:
    """Order the given jobs and everything they need into dependency stages."""
    dependencies: dict[str, list[str]] = {}
    pending = list(args)
    while pending:
        discovered: list[str] = []
        for job_id in pending:
            if job_id in dependencies:
                continue
            job = workflow.get_job(job_id)
            if job is None:
                continue
            needs = job.needs()
            dependencies[job_id] = needs
            discovered.extend(needs)
        pending = discovered

    stages: list[Stage] = []
    while dependencies:
        stage = Stage()
        for job_id, needs in list(dependencies.items()):
            if list_in_stages(needs, *stages):
                stage.runs.append(Run(workflow=workflow, job_id=job_id))
                del dependencies[job_id]
        if not stage.runs:
            raise PlannerError(
                f"unable to build dependency graph for {workflow.name} ({workflow.file})"
            )
        stages.append(stage)

    if not stages:
        raise PlannerError(
            "Could not find any stages to run. List the valid jobs to see which can "
            "be filtered by job ID, workflow or event name"
        )
    return stages


def validate_job_name(workflow: Workflow) -> None:
    """Raise PlannerError if a job ID is not a valid identifier."""
    for job_id in workflow.jobs:
        if not _JOB_NAME.fullmatch(job_id):
            raise PlannerError(
                f"workflow is not valid. '{workflow.name}': Job name '{job_id}' is "
                "invalid. Names must start with a letter or '_' and contain only "
                "alphanumeric characters, '-', or '_'"
            )


@dataclass
class WorkflowPlanner:
    """Builds plans from a set of loaded workflows."""

    workflows: list[Workflow] = field(default_factory=list)

    def _plan(self, pairs: Iterator[tuple[Workflow, tuple[str, ...]]]) -> Plan:
        plan = Plan()
        last_error: Optional[PlannerError] = None
        for workflow, job_ids in pairs:
            try:
                stages = create_stages(workflow, *job_ids)
            except PlannerError as exc:
                logger.warning("%s", exc)
                last_error = exc
            else:
                plan.merge_stages(stages)
        if last_error is not None:
            raise PlannerError(str(last_error), plan) from last_error
        return plan

    def plan_event(self, event_name: str) -> Plan:
        """Plan every job of the workflows triggered by ``event_name``."""
        if not self.workflows:
            logger.debug("no workflows found by planner")
            return Plan()

        def pairs() -> Iterator[tuple[Workflow, tuple[str, ...]]]:
            for workflow in self.workflows:
                events = workflow.on()
                if not events:
                    logger.debug("no events found for workflow: %s", workflow.file)
                    continue
                for event in events:
                    if event == event_name:
                        yield workflow, tuple(workflow.get_job_ids())

        return self._plan(pairs())

    def plan_job(self, job_name: str) -> Plan:
        """Plan the named job, and what it needs, in every workflow."""
        if not self.workflows:
            logger.debug("no jobs found for workflow: %s", job_name)
        return self._plan((workflow, (job_name,)) for workflow in self.workflows)

    def plan_all(self) -> Plan:
        """Plan every job of every workflow."""
        if not self.workflows:
            logger.debug("no workflows found by planner")
            return Plan()
        return self._plan(
            (workflow, tuple(workflow.get_job_ids())) for workflow in self.workflows
        )

    def get_events(self) -> list[str]:
        """Sorted events of the workflows, skipping workflows sharing an event already seen."""
        events: list[str] = []
        for workflow in self.workflows:
            on = workflow.on()
            if not any(event in on for event in events):
                events.extend(on)
        return sorted(events)


def _read(name: str, source: Union[str, bytes, IO[str], IO[bytes]]) -> Workflow:
    logger.debug("Reading workflow %s", name)
    try:
        workflow = read_workflow(source)
    except EmptyWorkflowError as exc:
        raise PlannerError(
            f"unable to read workflow '{name}': file is empty: {exc}"
        ) from exc
    except WorkflowError as exc:
        raise PlannerError(f"workflow is not valid. '{name}': {exc}") from exc
    workflow.file = name
    if not workflow.name:
        workflow.name = name
    validate_job_name(workflow)
    return workflow


def _walk_files(root: str) -> Iterator[tuple[str, str]]:
    for name in sorted(os.listdir(root)):
        full = os.path.join(root, name)
        if os.path.isdir(full) and not os.path.islink(full):
            yield from _walk_files(full)
        else:
            logger.debug("Found workflow '%s' in '%s'", name, full)
            yield root, name


def _extension(name: str) -> str:
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def new_workflow_planner(path: str, no_workflow_recurse: bool = False) -> WorkflowPlanner:
    """Load one workflow file, or every workflow file in a directory."""
    path = os.path.abspath(path)
    os.stat(path)

    if os.path.isdir(path):
        logger.debug("Loading workflows from '%s'", path)
        if no_workflow_recurse:
            entries = [(path, name) for name in sorted(os.listdir(path))]
        else:
            logger.debug("Loading workflows recursively")
            entries = list(_walk_files(path))
    else:
        logger.debug("Loading workflow '%s'", path)
        entries = [(os.path.dirname(path), os.path.basename(path))]

    planner = WorkflowPlanner()
    for directory, name in entries:
        if _extension(name) not in _WORKFLOW_EXTENSIONS:
            continue
        with open(os.path.join(directory, name), encoding="utf-8") as handle:
            planner.workflows.append(_read(name, handle))
    return planner


def new_single_workflow_planner(
    name: str, source: Union[str, bytes, IO[str], IO[bytes]]
) -> WorkflowPlanner:
    """Load a single workflow from text or a readable file object."""
    return WorkflowPlanner(workflows=[_read(name, source)])