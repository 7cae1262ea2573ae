# actkit

A library for working with CI workflow files. It reads workflows and
action metadata, plans job stages from job dependencies, parses
`${{ ... }}` expressions, and provides the built-in expression functions
together with the loose typing rules they follow.

## Installation

```
pip install actkit
```

To run the test suite:

```
pip install "actkit[test]"
pytest
```

## Reading and planning workflows

```python
from actkit.planner import new_workflow_planner

planner = new_workflow_planner(".github/workflows", False)
print(planner.get_events())

plan = planner.plan_event("push")
for stage in plan.stages:
    print(stage.get_job_ids())
```

`new_workflow_planner(path, no_workflow_recurse)` loads a single file or
every `.yml`/`.yaml` file in a directory. Subdirectories are included
unless `no_workflow_recurse` is true. To read one workflow from text or
from a file object, use `new_single_workflow_planner(name, source)`.

`WorkflowPlanner.plan_event`, `plan_job` and `plan_all` return a `Plan`,
whose `stages` each hold `Run` objects. A job is placed in a stage after
every job it needs. An invalid job name, an empty or malformed file, or a
dependency graph that cannot be resolved raises `PlannerError`. When
planning fails for some workflows, the error's `plan` attribute holds the
stages that could still be built.

`actkit.workflow.read_workflow` returns a `Workflow`. You can get its
trigger events (`Workflow.on`), the `workflow_dispatch` and
`workflow_call` configuration, and its jobs (`Workflow.get_job`). For
each `Job` you can get its needs, runner labels, container, secrets,
environment, type, and matrix combinations (`Job.get_matrixes`, which
applies `include` and `exclude`). Steps are `actkit.step.Step` objects.
Each step has a `type()` (a `StepType`), a `shell_command()` template,
and `get_env()`, which adds `INPUT_*` entries for its `with` values.

## Action metadata

```python
from actkit.action import read_action

with open("action.yml") as fh:
    action = read_action(fh)
print(action.runs.using, action.runs.pre_if)
```

`runs.using` is matched case-insensitively to an `ActionRunsUsing` value.
An unknown value raises `InvalidActionError`. Unset `pre-if` and
`post-if` default to `always()`.

## The github context

`actkit.github_context.GithubContext` holds the `github.*` values.
`set_ref` and `set_sha` derive the ref and commit from the event payload.
When the payload does not give them, they fall back to a lookup function
that you pass in, for example `find_git_ref(repo_path)`.
`set_ref_type_and_name` and `set_base_and_head_ref` fill in the derived
fields. `actkit.contexts` provides `StepResult`, `StepStatus` and
`JobContext`.

## Expressions

```python
from actkit.parser import parse, walk, CompareOp
from actkit.values import compare_values, is_truthy
from actkit.functions import format_string, from_json, hash_files

node = parse("github.event_name == 'push'")        # a CompareOpNode
names = [n for n in walk(node)]                     # the node and every node below it

compare_values("3", 3, CompareOp.EQ)                # True
is_truthy("")                                       # False
format_string("Hello {0}", "Mona")                  # 'Hello Mona'
from_json("[1, 2]")                                 # [1.0, 2.0]
hash_files("/path/to/repo", "**/requirements.txt")  # SHA-256 hex digest, or ''
```

`actkit.functions` provides `contains`, `starts_with`, `ends_with`,
`format_string`, `join`, `to_json`, `from_json`, `hash_files` and
`get_needs_transitive`. `actkit.values` provides the truthiness,
coercion (`coerce_to_string`, `coerce_to_number`) and comparison rules.
A parse error raises `ExpressionError`, which carries the offset at which
parsing failed.

## Finding executables

`actkit.lookpath.look_path(file, getenv)` searches the path for an
executable, following the rules of the current platform.
`look_path_unix`, `look_path_windows` and `look_path_plan9` apply one
platform's rules explicitly. If nothing is found, they raise
`LookPathError`.

## What this package does not do

- It does not evaluate a whole expression against the `github`, `env`,
  `steps`, `needs` and other contexts. You get the parse tree, the value
  rules and the functions, but nothing walks the tree to produce a
  result. The status functions `success()`, `failure()`, `always()` and
  `cancelled()` are not provided.
- It does not run jobs or steps, and it starts no containers or
  processes.
- It has no command-line program.