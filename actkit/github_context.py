"""The ``github`` context and how its ref, sha and repository are derived."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

FindGitRef = Callable[[str], str]
FindGitRevision = Callable[[str], "tuple[str, str]"]
FindGithubRepo = Callable[[str, str, str], str]


def as_string(value: Any) -> str:
    """Return ``value`` if it is a string, otherwise an empty string."""
    return value if isinstance(value, str) else ""


def nested_map_lookup(mapping: Optional[Mapping[str, Any]], *args: str) -> Any:
    """Follow ``args`` through nested mappings; None if any step is missing."""
    if not args or not isinstance(mapping, Mapping):
        return None
    current: Any = mapping
    for key in args:
        if not isinstance(current, Mapping) or key not in current:
            return None
        current = current[key]
    return current


def with_default_branch(branch: str, event: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Set ``repository.default_branch`` in the event unless it is already there."""
    if event is None:
        event = {}
    repo = event.get("repository", {})
    if not isinstance(repo, dict):
        logger.warning("unable to set default branch to %s", branch)
        return event
    if "default_branch" in repo:
        return event
    repo["default_branch"] = branch
    event["repository"] = repo
    return event


def _pull_number(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{float(value):.0f}"
    return as_string(value)


@dataclass
class GithubContext:
    """Values exposed to workflows as ``github.*``."""

    event: dict[str, Any] = field(default_factory=dict)
    event_path: str = ""
    workflow: str = ""
    run_id: str = ""
    run_number: str = ""
    actor: str = ""
    repository: str = ""
    event_name: str = ""
    sha: str = ""
    ref: str = ""
    ref_name: str = ""
    ref_type: str = ""
    head_ref: str = ""
    base_ref: str = ""
    token: str = ""
    workspace: str = ""
    action: str = ""
    action_path: str = ""
    action_ref: str = ""
    action_repository: str = ""
    job: str = ""
    job_name: str = ""
    repository_owner: str = ""
    retention_days: str = ""
    runner_perflog: str = ""
    runner_tracking_id: str = ""
    server_url: str = ""
    api_url: str = ""
    graphql_url: str = ""

    def set_ref(
        self, default_branch: str, repo_path: str, find_git_ref: FindGitRef
    ) -> None:
        """Derive ``ref`` from the event, falling back to the local repository."""
        name = self.event_name
        event = self.event
        if name == "pull_request_target":
            self.ref = f"refs/heads/{self.base_ref}"
        elif name in ("pull_request", "pull_request_review", "pull_request_review_comment"):
            number = event.get("number") if event else None
            self.ref = f"refs/pull/{_pull_number(number)}/merge"
        elif name in ("deployment", "deployment_status"):
            self.ref = as_string(nested_map_lookup(event, "deployment", "ref"))
        elif name == "release":
            tag = as_string(nested_map_lookup(event, "release", "tag_name"))
            self.ref = f"refs/tags/{tag}"
        elif name in ("push", "create", "workflow_dispatch"):
            self.ref = as_string(event.get("ref") if event else None)
        else:
            branch = as_string(nested_map_lookup(event, "repository", "default_branch"))
            if branch:
                self.ref = f"refs/heads/{branch}"

        if self.ref:
            return

        try:
            ref = find_git_ref(repo_path)
        except Exception as exc:  # any lookup failure is reported and ignored
            logger.warning("unable to get git ref: %s", exc)
        else:
            logger.debug("using github ref: %s", ref)
            self.ref = ref

        self.event = with_default_branch(default_branch or "master", self.event)

        if not self.ref:
            branch = as_string(nested_map_lookup(self.event, "repository", "default_branch"))
            self.ref = f"refs/heads/{branch}"

    def set_sha(self, repo_path: str, find_git_revision: FindGitRevision) -> None:
        """Derive ``sha`` from the event, falling back to the local repository."""
        name = self.event_name
        event = self.event or {}
        if name == "pull_request_target":
            self.sha = as_string(nested_map_lookup(event, "pull_request", "base", "sha"))
        elif name in ("deployment", "deployment_status"):
            self.sha = as_string(nested_map_lookup(event, "deployment", "sha"))
        elif name in ("push", "create", "workflow_dispatch"):
            deleted = event.get("deleted")
            if isinstance(deleted, bool) and not deleted:
                self.sha = as_string(event.get("after"))

        if self.sha:
            return
        try:
            _, sha = find_git_revision(repo_path)
        except Exception as exc:  # any lookup failure is reported and ignored
            logger.warning("unable to get git revision: %s", exc)
        else:
            self.sha = sha

    def set_repository_and_owner(
        self,
        github_instance: str,
        remote_name: str,
        repo_path: str,
        find_github_repo: FindGithubRepo,
    ) -> None:
        """Fill ``repository`` if unset, then ``repository_owner`` from it."""
        if not self.repository:
            try:
                repo = find_github_repo(repo_path, github_instance, remote_name)
            except Exception as exc:  # any lookup failure is reported and ignored
                logger.warning("unable to get git repo: %s", exc)
                return
            self.repository = repo
        self.repository_owner = self.repository.split("/")[0]

    def set_ref_type_and_name(self) -> None:
        """Fill ``ref_type`` and ``ref_name`` from ``ref`` where they are unset."""
        ref_type = ref_name = ""
        for prefix, kind in (
            ("refs/tags/", "tag"),
            ("refs/heads/", "branch"),
            ("refs/pull/", ""),
        ):
            if self.ref.startswith(prefix):
                ref_type = kind
                ref_name = self.ref[len(prefix):]
                break
        if not self.ref_type:
            self.ref_type = ref_type
        if not self.ref_name:
            self.ref_name = ref_name

    def set_base_and_head_ref(self) -> None:
        """Fill ``base_ref`` and ``head_ref`` for pull request events."""
        if self.event_name not in ("pull_request", "pull_request_target"):
            return
        if not self.base_ref:
            self.base_ref = as_string(
                nested_map_lookup(self.event, "pull_request", "base", "ref")
            )
        if not self.head_ref:
            self.head_ref = as_string(
                nested_map_lookup(self.event, "pull_request", "head", "ref")
            )