"""Workflow files: jobs, strategies, matrices and trigger configuration."""

from __future__ import annotations

import copy
import enum
import itertools
import logging
import re
from dataclasses import dataclass, field
from typing import IO, Any, Mapping, Optional, Sequence, Union

import yaml

from .step import Step, environment, parse_step

logger = logging.getLogger(__name__)

_BOOL_TAG = "tag:yaml.org,2002:bool"
_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class _WorkflowLoader(yaml.SafeLoader):
    """Loader with YAML 1.2 booleans, so keys such as ``on`` stay strings."""


_WorkflowLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag not in (_BOOL_TAG, _TIMESTAMP_TAG)
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}
_WorkflowLoader.add_implicit_resolver(
    _BOOL_TAG,
    re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"),
    list("tTfF"),
)

_INT_PATTERN = re.compile(r"^[+-]?[0-9]+$")
_GO_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}
_YAML_EXT = re.compile(r"\.(ya?ml)(?:$|@)")
_REMOTE_PATH = re.compile(r"^[^.](.+?/){2,}.+\.ya?ml@")
_HAS_VERSION = re.compile(r"\.ya?ml@")


class WorkflowError(ValueError):
    """Raised when a workflow, or a part of it, is not valid."""


class EmptyWorkflowError(WorkflowError):
    """Raised when a workflow file holds no document."""


def _text(value: Any, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise WorkflowError(
        f"Failed to decode {where}: expected a scalar, got {type(value).__name__}"
    )


def _flag(value: Any, where: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    raise WorkflowError(f"Failed to decode {where}: expected a boolean, got {value!r}")


def _mapping(value: Any, where: str) -> dict:
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    raise WorkflowError(
        f"Failed to decode {where}: expected a mapping, got {type(value).__name__}"
    )


def _sequence(value: Any, where: str) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    raise WorkflowError(
        f"Failed to decode {where}: expected a sequence, got {type(value).__name__}"
    )


def _string_map(value: Any, where: str) -> dict[str, str]:
    return {str(k): _text(v, f"{where}.{k}") for k, v in _mapping(value, where).items()}


def _string_list(value: Any, where: str) -> list[str]:
    return [_text(item, where) for item in _sequence(value, where)]


def _is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (list, dict))


def _node_as_string_list(value: Any, where: str) -> list[str]:
    if _is_scalar(value):
        return [_text(value, where)]
    if isinstance(value, list):
        return _string_list(value, where)
    return []


def _deep_equal(left: Any, right: Any) -> bool:
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(
            _deep_equal(value, right[key]) for key, value in left.items()
        )
    if isinstance(left, list):
        return len(left) == len(right) and all(
            _deep_equal(a, b) for a, b in zip(left, right)
        )
    return left == right


def _common_keys_match(a: Mapping, b: Mapping) -> bool:
    return all(key not in b or _deep_equal(value, b[key]) for key, value in a.items())


def _common_keys_match2(a: Mapping, b: Mapping, keys: Mapping) -> bool:
    return all(
        key not in keys or key not in b or _deep_equal(value, b[key])
        for key, value in a.items()
    )


def cartesian_product(mapping: Mapping[str, Sequence[Any]]) -> list[dict[str, Any]]:
    """Every combination of one value per key; empty if any list or the mapping is."""
    if not mapping:
        return []
    names = list(mapping)
    return [
        dict(zip(names, combination))
        for combination in itertools.product(*(mapping[name] for name in names))
    ]


@dataclass
class RunDefaults:
    """Defaults for every ``run`` step."""

    shell: str = ""
    working_directory: str = ""


@dataclass
class Defaults:
    """Default settings for all steps of a job or workflow."""

    run: RunDefaults = field(default_factory=RunDefaults)


def _parse_defaults(value: Any, where: str) -> Defaults:
    run = _mapping(_mapping(value, where).get("run"), f"{where}.run")
    return Defaults(
        run=RunDefaults(
            shell=_text(run.get("shell"), f"{where}.run.shell"),
            working_directory=_text(
                run.get("working-directory"), f"{where}.run.working-directory"
            ),
        )
    )


@dataclass
class Strategy:
    """A job's strategy; ``raw_matrix`` keeps the raw YAML value."""

    fail_fast: bool = False
    max_parallel: int = 0
    fail_fast_string: str = ""
    max_parallel_string: str = ""
    raw_matrix: Any = None

    def get_max_parallel(self) -> int:
        """``max-parallel``, 4 when unset, 0 when it cannot be parsed."""
        if not self.max_parallel_string:
            return 4
        if _INT_PATTERN.match(self.max_parallel_string):
            return int(self.max_parallel_string)
        logger.error(
            "Failed to parse 'max-parallel' option: invalid syntax %r",
            self.max_parallel_string,
        )
        return 0

    def get_fail_fast(self) -> bool:
        """``fail-fast``, true when unset, false when it cannot be parsed."""
        logger.debug(self.fail_fast_string)
        if not self.fail_fast_string:
            return True
        if self.fail_fast_string in _GO_BOOLS:
            return _GO_BOOLS[self.fail_fast_string]
        logger.error(
            "Failed to parse 'fail-fast' option: invalid syntax %r", self.fail_fast_string
        )
        return False


@dataclass
class ContainerSpec:
    """The container to use for a job or a service."""

    image: str = ""
    env: dict[str, str] = field(default_factory=dict)
    ports: list[str] = field(default_factory=list)
    volumes: list[str] = field(default_factory=list)
    options: str = ""
    credentials: dict[str, str] = field(default_factory=dict)
    entrypoint: str = ""
    args: str = ""
    name: str = ""
    reuse: bool = False


def _parse_container(value: Any, where: str) -> ContainerSpec:
    data = _mapping(value, where)
    return ContainerSpec(
        image=_text(data.get("image"), f"{where}.image"),
        env=_string_map(data.get("env"), f"{where}.env"),
        ports=_string_list(data.get("ports"), f"{where}.ports"),
        volumes=_string_list(data.get("volumes"), f"{where}.volumes"),
        options=_text(data.get("options"), f"{where}.options"),
        credentials=_string_map(data.get("credentials"), f"{where}.credentials"),
        entrypoint=_text(data.get("entrypoint"), f"{where}.entrypoint"),
        args=_text(data.get("args"), f"{where}.args"),
        name=_text(data.get("name"), f"{where}.name"),
        reuse=_flag(data.get("reuse"), f"{where}.reuse"),
    )


@dataclass
class WorkflowDispatchInput:
    """An input of a manually dispatched workflow."""

    description: str = ""
    required: bool = False
    default: str = ""
    type: str = ""
    options: list[str] = field(default_factory=list)


@dataclass
class WorkflowDispatch:
    """The ``workflow_dispatch`` trigger configuration."""

    inputs: dict[str, WorkflowDispatchInput] = field(default_factory=dict)


@dataclass
class WorkflowCallInput:
    """An input of a reusable workflow."""

    description: str = ""
    required: bool = False
    default: str = ""
    type: str = ""


@dataclass
class WorkflowCallOutput:
    """An output of a reusable workflow."""

    description: str = ""
    value: str = ""


@dataclass
class WorkflowCall:
    """The ``workflow_call`` trigger configuration."""

    inputs: dict[str, WorkflowCallInput] = field(default_factory=dict)
    outputs: dict[str, WorkflowCallOutput] = field(default_factory=dict)


@dataclass
class WorkflowCallResult:
    """The outputs produced by a called workflow."""

    outputs: dict[str, str] = field(default_factory=dict)


def _parse_dispatch(value: Any) -> WorkflowDispatch:
    inputs = {}
    for key, raw in _mapping(_mapping(value, "workflow_dispatch").get("inputs"), "inputs").items():
        spec = _mapping(raw, f"inputs.{key}")
        inputs[str(key)] = WorkflowDispatchInput(
            description=_text(spec.get("description"), f"inputs.{key}.description"),
            required=_flag(spec.get("required"), f"inputs.{key}.required"),
            default=_text(spec.get("default"), f"inputs.{key}.default"),
            type=_text(spec.get("type"), f"inputs.{key}.type"),
            options=_string_list(spec.get("options"), f"inputs.{key}.options"),
        )
    return WorkflowDispatch(inputs=inputs)


def _parse_call(value: Any) -> WorkflowCall:
    data = _mapping(value, "workflow_call")
    inputs = {}
    for key, raw in _mapping(data.get("inputs"), "inputs").items():
        spec = _mapping(raw, f"inputs.{key}")
        inputs[str(key)] = WorkflowCallInput(
            description=_text(spec.get("description"), f"inputs.{key}.description"),
            required=_flag(spec.get("required"), f"inputs.{key}.required"),
            default=_text(spec.get("default"), f"inputs.{key}.default"),
            type=_text(spec.get("type"), f"inputs.{key}.type"),
        )
    outputs = {}
    for key, raw in _mapping(data.get("outputs"), "outputs").items():
        spec = _mapping(raw, f"outputs.{key}")
        outputs[str(key)] = WorkflowCallOutput(
            description=_text(spec.get("description"), f"outputs.{key}.description"),
            value=_text(spec.get("value"), f"outputs.{key}.value"),
        )
    return WorkflowCall(inputs=inputs, outputs=outputs)


class JobType(enum.IntEnum):
    """What kind of job is about to run."""

    DEFAULT = 0
    REUSABLE_WORKFLOW_LOCAL = 1
    REUSABLE_WORKFLOW_REMOTE = 2
    INVALID = 3

    def __str__(self) -> str:
        return {
            JobType.DEFAULT: "default",
            JobType.REUSABLE_WORKFLOW_LOCAL: "local-reusable-workflow",
            JobType.REUSABLE_WORKFLOW_REMOTE: "remote-reusable-workflow",
        }.get(self, "unknown")


@dataclass
class Job:
    """One job of a workflow; ``raw_*``, ``env`` and ``if_`` keep raw YAML values."""

    name: str = ""
    raw_needs: Any = None
    raw_runs_on: Any = None
    env: Any = None
    if_: Any = None
    steps: list[Step] = field(default_factory=list)
    timeout_minutes: str = ""
    services: dict[str, ContainerSpec] = field(default_factory=dict)
    strategy: Optional[Strategy] = None
    raw_container: Any = None
    defaults: Defaults = field(default_factory=Defaults)
    outputs: dict[str, str] = field(default_factory=dict)
    uses: str = ""
    with_: dict[str, Any] = field(default_factory=dict)
    raw_secrets: Any = None
    result: str = ""

    def inherit_secrets(self) -> bool:
        """Whether ``secrets: inherit`` is set."""
        if not _is_scalar(self.raw_secrets):
            return False
        return _text(self.raw_secrets, "secrets") == "inherit"

    def secrets(self) -> Optional[dict[str, str]]:
        """Secrets passed as a mapping, or None."""
        if not isinstance(self.raw_secrets, dict):
            return None
        return _string_map(self.raw_secrets, "secrets")

    def container(self) -> Optional[ContainerSpec]:
        """The job container, given as an image name or a mapping."""
        if _is_scalar(self.raw_container):
            return ContainerSpec(image=_text(self.raw_container, "container"))
        if isinstance(self.raw_container, dict):
            return _parse_container(self.raw_container, "container")
        return None

    def needs(self) -> list[str]:
        """IDs of the jobs this job depends on."""
        return _node_as_string_list(self.raw_needs, "needs")

    def runs_on(self) -> list[str]:
        """Runner labels, with the group appended when given as a mapping."""
        if isinstance(self.raw_runs_on, dict):
            labels = _node_as_string_list(self.raw_runs_on.get("labels"), "runs-on.labels")
            group = _text(self.raw_runs_on.get("group"), "runs-on.group")
            if group:
                labels.append(group)
            return labels
        return _node_as_string_list(self.raw_runs_on, "runs-on")

    def environment(self) -> dict[str, str]:
        """The job's ``env`` as strings."""
        return environment(self.env)

    def matrix(self) -> Optional[dict[str, list[Any]]]:
        """A fresh copy of the strategy matrix, or None without one."""
        if self.strategy is None or not isinstance(self.strategy.raw_matrix, dict):
            return None
        return {
            str(key): copy.deepcopy(_sequence(value, f"matrix.{key}"))
            for key, value in self.strategy.raw_matrix.items()
        }

    def get_matrixes(self) -> list[dict[str, Any]]:
        """The matrix cross product with excludes removed and includes applied."""
        if self.strategy is None:
            logger.debug("Empty Strategy, matrixes=[{}]")
            return [{}]
        self.strategy.fail_fast = self.strategy.get_fail_fast()
        self.strategy.max_parallel = self.strategy.get_max_parallel()

        m = self.matrix()
        if m is None:
            return [{}]

        includes: list[dict] = []
        extra_includes: list[dict] = []
        for value in m.get("include", []):
            if value is None:
                continue
            for entry in value if isinstance(value, list) else [value]:
                entry = _mapping(entry, "matrix include")
                if any(key in m for key in entry):
                    includes.append(entry)
                else:
                    extra_includes.append(entry)
        m.pop("include", None)

        excludes: list[dict] = []
        for entry in m.get("exclude", []):
            entry = _mapping(entry, "matrix exclude")
            for key in entry:
                if key not in m:
                    raise WorkflowError(
                        "the workflow is not valid. Matrix exclude key "
                        f'"{key}" does not match any key within the matrix'
                    )
            if entry:
                excludes.append(entry)
        m.pop("exclude", None)

        matrixes = []
        for combination in cartesian_product(m):
            if any(_common_keys_match(combination, exclude) for exclude in excludes):
                logger.debug("Skipping matrix %s due to exclude", combination)
                continue
            matrixes.append(combination)

        for include in includes:
            matched = False
            for matrix in matrixes:
                if _common_keys_match2(matrix, include, m):
                    matched = True
                    logger.debug("Adding include values %s to existing entry", include)
                    matrix.update(include)
            if not matched:
                extra_includes.append(include)

        for include in extra_includes:
            logger.debug("Adding include %s", include)
            matrixes.append(include)
        return matrixes or [{}]

    def type(self) -> JobType:
        """Classify the job; raise WorkflowError for an invalid ``uses`` path."""
        if not self.uses:
            return JobType.DEFAULT
        if _YAML_EXT.search(self.uses):
            if self.uses.startswith("./"):
                return JobType.REUSABLE_WORKFLOW_LOCAL
            if _REMOTE_PATH.search(self.uses) and _HAS_VERSION.search(self.uses):
                return JobType.REUSABLE_WORKFLOW_REMOTE
        raise WorkflowError(
            f"`uses` key references invalid workflow path '{self.uses}'. Must start with "
            "'./' if it's a local workflow, or must start with '<org>/<repo>/' and "
            "include an '@' if it's a remote workflow"
        )


def _parse_strategy(value: Any, where: str) -> Strategy:
    data = _mapping(value, where)
    return Strategy(
        fail_fast_string=_text(data.get("fail-fast"), f"{where}.fail-fast"),
        max_parallel_string=_text(data.get("max-parallel"), f"{where}.max-parallel"),
        raw_matrix=data.get("matrix"),
    )


def _parse_job(job_id: str, value: Any) -> Job:
    where = f"jobs.{job_id}"
    data = _mapping(value, where)
    strategy = data.get("strategy")
    try:
        steps = [parse_step(step) for step in _sequence(data.get("steps"), f"{where}.steps")]
    except WorkflowError:
        raise
    except ValueError as exc:
        raise WorkflowError(str(exc)) from exc
    return Job(
        name=_text(data.get("name"), f"{where}.name"),
        raw_needs=data.get("needs"),
        raw_runs_on=data.get("runs-on"),
        env=data.get("env"),
        if_=data.get("if"),
        steps=steps,
        timeout_minutes=_text(data.get("timeout-minutes"), f"{where}.timeout-minutes"),
        services={
            str(name): _parse_container(spec, f"{where}.services.{name}")
            for name, spec in _mapping(data.get("services"), f"{where}.services").items()
        },
        strategy=None if strategy is None else _parse_strategy(strategy, f"{where}.strategy"),
        raw_container=data.get("container"),
        defaults=_parse_defaults(data.get("defaults"), f"{where}.defaults"),
        outputs=_string_map(data.get("outputs"), f"{where}.outputs"),
        uses=_text(data.get("uses"), f"{where}.uses"),
        with_={str(k): v for k, v in _mapping(data.get("with"), f"{where}.with").items()},
        raw_secrets=data.get("secrets"),
    )


@dataclass
class Workflow:
    """A workflow file; ``raw_on`` keeps the raw ``on`` value."""

    file: str = ""
    name: str = ""
    raw_on: Any = None
    env: dict[str, str] = field(default_factory=dict)
    jobs: dict[str, Job] = field(default_factory=dict)
    defaults: Defaults = field(default_factory=Defaults)

    def on(self) -> list[str]:
        """Names of the events that trigger the workflow."""
        if isinstance(self.raw_on, dict):
            return [str(key) for key in self.raw_on]
        return _node_as_string_list(self.raw_on, "on")

    def on_event(self, event: str) -> Any:
        """The configuration given for ``event``, when ``on`` is a mapping."""
        if isinstance(self.raw_on, dict):
            return self.raw_on.get(event)
        return None

    def workflow_dispatch_config(self) -> Optional[WorkflowDispatch]:
        """The ``workflow_dispatch`` configuration, or None without that trigger."""
        if isinstance(self.raw_on, dict):
            if "workflow_dispatch" in self.raw_on:
                return _parse_dispatch(self.raw_on["workflow_dispatch"])
            return None
        if "workflow_dispatch" in _node_as_string_list(self.raw_on, "on"):
            return WorkflowDispatch()
        return None

    def workflow_call_config(self) -> WorkflowCall:
        """The ``workflow_call`` configuration; empty unless given as a mapping."""
        if not isinstance(self.raw_on, dict):
            return WorkflowCall()
        return _parse_call(self.raw_on.get("workflow_call"))

    def get_job(self, job_id: str) -> Optional[Job]:
        """The job with this ID, its name and condition defaulted; None if absent."""
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if not job.name:
            job.name = job_id
        if job.if_ is None or job.if_ == "":
            job.if_ = "success()"
        return job

    def get_job_ids(self) -> list[str]:
        """All job IDs in the workflow."""
        return list(self.jobs)


def read_workflow(source: Union[str, bytes, IO[str], IO[bytes]]) -> Workflow:
    """Read a workflow from YAML text, bytes or a readable file object."""
    text = source.read() if hasattr(source, "read") else source
    try:
        data = yaml.load(text, Loader=_WorkflowLoader)
    except yaml.YAMLError as exc:
        raise WorkflowError(str(exc)) from exc
    if data is None:
        raise EmptyWorkflowError("EOF")
    data = _mapping(data, "workflow")
    return Workflow(
        name=_text(data.get("name"), "name"),
        raw_on=data.get("on"),
        env=_string_map(data.get("env"), "env"),
        jobs={
            str(job_id): _parse_job(str(job_id), value)
            for job_id, value in _mapping(data.get("jobs"), "jobs").items()
        },
        defaults=_parse_defaults(data.get("defaults"), "defaults"),
    )