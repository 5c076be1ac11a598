"""Branch-scoped validation and lifecycle policy loaded from YAML."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from bugzilla_gate.server.bugzilla_client import Bug, BugUpdate

WILDCARD = "*"


def pretty_status(status: str, resolution: str) -> str:
    if not resolution:
        return status
    return f"{status} ({resolution})"


class BugState(BaseModel):
    """A status/resolution pair; empty fields match anything."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status: str = ""
    resolution: str = ""

    def matches(self, bug: Bug) -> bool:
        if self.status and self.status != bug.status:
            return False
        if self.resolution and self.resolution != bug.resolution:
            return False
        return True

    def as_bug_update(self, bug: Bug | None = None) -> BugUpdate | None:
        """Return the update moving ``bug`` into this state, or None when already there."""
        status = self.status if self.status and (bug is None or self.status != bug.status) else ""
        resolution = (
            self.resolution
            if self.resolution and (bug is None or self.resolution != bug.resolution)
            else ""
        )
        if not status and not resolution:
            return None
        return BugUpdate(status=status, resolution=resolution)

    def __str__(self) -> str:
        return pretty_status(self.status, self.resolution)


def bug_matches_states(bug: Bug, states: list[BugState] | tuple[BugState, ...]) -> bool:
    return any(state.matches(bug) for state in states)


def pretty_states(states: list[BugState] | tuple[BugState, ...]) -> list[str]:
    return [str(state) for state in states]


class BranchPolicy(BaseModel):
    """What a valid bug looks like on a branch and how bugs move."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    validate_by_default: bool | None = None
    is_open: bool | None = None
    target_release: str | None = None
    valid_states: tuple[BugState, ...] | None = None
    dependent_bug_states: tuple[BugState, ...] | None = None
    dependent_bug_target_release: str | None = None
    state_after_validation: BugState | None = None
    add_external_link: bool | None = None
    state_after_merge: BugState | None = None

    def allowed_states(self) -> list[BugState]:
        allowed = list(self.valid_states or ())
        if self.state_after_validation is not None:
            allowed.append(self.state_after_validation)
        return allowed

    def has_dependent_requirements(self) -> bool:
        return (
            self.dependent_bug_states is not None
            or self.dependent_bug_target_release is not None
        )


def resolve_policy(parent: BranchPolicy, child: BranchPolicy) -> BranchPolicy:
    """Overlay every field set on ``child`` onto ``parent``."""
    overrides: dict[str, Any] = {}
    for name in BranchPolicy.model_fields:
        value = getattr(child, name)
        if value is not None:
            overrides[name] = value
    return parent.model_copy(update=overrides)


def options_for_item(item: str, config: dict[str, BranchPolicy]) -> BranchPolicy:
    return resolve_policy(
        config.get(WILDCARD) or BranchPolicy(), config.get(item) or BranchPolicy()
    )


class RepoPolicies(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    branches: dict[str, BranchPolicy] = Field(default_factory=dict)


class OrgPolicies(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    default: dict[str, BranchPolicy] = Field(default_factory=dict)
    repos: dict[str, RepoPolicies] = Field(default_factory=dict)


class PolicyConfig(BaseModel):
    """Global, org and repo levels of branch policy."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    default: dict[str, BranchPolicy] = Field(default_factory=dict)
    orgs: dict[str, OrgPolicies] = Field(default_factory=dict)

    def options_for_branch(self, org: str, repo: str, branch: str) -> BranchPolicy:
        options = options_for_item(branch, self.default)
        org_options = self.orgs.get(org)
        if org_options is None:
            return options
        options = resolve_policy(options, options_for_item(branch, org_options.default))
        repo_options = org_options.repos.get(repo)
        if repo_options is None:
            return options
        return resolve_policy(options, options_for_item(branch, repo_options.branches))

    def options_for_repo(self, org: str, repo: str) -> dict[str, BranchPolicy]:
        """Resolved policy for every branch configured at any level for ``org/repo``."""
        branches = set(self.default)
        org_options = self.orgs.get(org)
        if org_options is not None:
            branches.update(org_options.default)
            repo_options = org_options.repos.get(repo)
            if repo_options is not None:
                branches.update(repo_options.branches)
        return {branch: self.options_for_branch(org, repo, branch) for branch in sorted(branches)}


def load_policy_config(path: Path) -> PolicyConfig:
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")
    raw = yaml.safe_load(path.read_text()) or {}
    return parse_policy_config(raw)


def parse_policy_config(raw: dict[str, Any]) -> PolicyConfig:
    if not isinstance(raw, dict):
        raise ValueError("Policy document must be a mapping")
    section = raw.get("bugzilla", raw)
    return PolicyConfig.model_validate(section or {})


def _join_clauses(clauses: list[str]) -> str:
    if len(clauses) == 1:
        return clauses[0]
    if len(clauses) == 2:
        return f"{clauses[0]} and {clauses[1]}"
    return ", ".join(clauses[:-1]) + f", and {clauses[-1]}"


def describe_policy(branch: str, policy: BranchPolicy) -> str:
    """Summarize what a branch policy requires of bugs and how it moves them."""
    if branch == WILDCARD:
        message = "by default, "
    else:
        message = f'on the "{branch}" branch, '
    message += "valid bugs must "

    conditions: list[str] = []
    if policy.is_open is not None:
        conditions.append("be open" if policy.is_open else "be closed")
    if policy.target_release is not None:
        conditions.append(f'target the "{policy.target_release}" release')
    if policy.valid_states:
        pretty = ", ".join(pretty_states(policy.valid_states))
        conditions.append(f"be in one of the following states: {pretty}")
    if policy.has_dependent_requirements():
        conditions.append("depend on at least one other bug")
    if policy.dependent_bug_states is not None:
        pretty = ", ".join(pretty_states(policy.dependent_bug_states))
        conditions.append(f"have all dependent bugs in one of the following states: {pretty}")
    if policy.dependent_bug_target_release is not None:
        conditions.append(
            f'have all dependent bugs target the "{policy.dependent_bug_target_release}" release'
        )
    message += _join_clauses(conditions) if conditions else "exist"

    updates: list[str] = []
    if policy.state_after_validation is not None:
        updates.append(f"moved to the {policy.state_after_validation} state")
    if policy.add_external_link:
        updates.append("updated to refer to the pull request using the external bug tracker")
    if policy.state_after_merge is not None:
        updates.append(
            f"moved to the {policy.state_after_merge} state when all linked pull requests "
            "are merged"
        )
    if updates:
        message += ". After being linked to a pull request, bugs will be " + _join_clauses(updates)
    return message + "."
