"""Turn review-host webhook deliveries into reconciliation events."""

from __future__ import annotations

import logging
import re
import string
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from bugzilla_gate.policy import BranchPolicy
from bugzilla_gate.server.github_connector import GitHubConnector
from bugzilla_gate.server.responses import format_response_raw
from bugzilla_gate.shared.observability import get_logger, log_event

LOGGER = get_logger("events")

_REFRESH_COMMAND_RE = re.compile(r"^/bugzilla refresh\s*$", re.IGNORECASE | re.MULTILINE)
_ASSIGN_QA_COMMAND_RE = re.compile(r"^/bugzilla assign-qa\s*$", re.IGNORECASE | re.MULTILINE)

ISSUES_NOT_SUPPORTED = (
    "Bugzilla bug referencing is only supported for Pull Requests, not issues."
)

PolicyResolver = Callable[[str, str, str], BranchPolicy]


class PullRequestAction(str, Enum):
    OPENED = "opened"
    REOPENED = "reopened"
    EDITED = "edited"
    CLOSED = "closed"


class Command(Enum):
    REFRESH = "refresh"
    ASSIGN_QA = "assign-qa"


@dataclass(frozen=True)
class Event:
    org: str
    repo: str
    base_ref: str
    number: int
    bug_id: int = 0
    missing: bool = False
    merged: bool = False
    state: str = ""
    body: str = ""
    html_url: str = ""
    login: str = ""
    assign: bool = False


@dataclass(frozen=True)
class PullRequestEvent:
    action: str
    org: str
    repo: str
    base_ref: str
    number: int
    title: str
    state: str
    merged: bool
    html_url: str
    login: str
    previous_title: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PullRequestEvent":
        pr = payload.get("pull_request") or {}
        base = pr.get("base") or {}
        base_repo = base.get("repo") or {}
        changes = payload.get("changes")
        previous_title: str | None = None
        if isinstance(changes, dict) and isinstance(changes.get("title"), dict):
            from_value = changes["title"].get("from")
            if isinstance(from_value, str):
                previous_title = from_value
        return cls(
            action=str(payload.get("action", "")),
            org=str((base_repo.get("owner") or {}).get("login", "")),
            repo=str(base_repo.get("name", "")),
            base_ref=str(base.get("ref", "")),
            number=int(pr.get("number") or payload.get("number") or 0),
            title=str(pr.get("title", "")),
            state=str(pr.get("state", "")),
            merged=bool(pr.get("merged", False)),
            html_url=str(pr.get("html_url", "")),
            login=str((pr.get("user") or {}).get("login", "")),
            previous_title=previous_title,
        )


@dataclass(frozen=True)
class GenericCommentEvent:
    action: str
    org: str
    repo: str
    number: int
    is_pr: bool
    body: str
    html_url: str
    login: str

    @classmethod
    def from_payload(cls, event_type: str, payload: dict[str, Any]) -> "GenericCommentEvent":
        repository = payload.get("repository") or {}
        org = str((repository.get("owner") or {}).get("login", ""))
        repo = str(repository.get("name", ""))
        action = str(payload.get("action", ""))

        if event_type == "issue_comment":
            issue = payload.get("issue") or {}
            comment = payload.get("comment") or {}
            return cls(
                action=action,
                org=org,
                repo=repo,
                number=int(issue.get("number") or 0),
                is_pr="pull_request" in issue,
                body=str(comment.get("body") or ""),
                html_url=str(comment.get("html_url", "")),
                login=str((comment.get("user") or {}).get("login", "")),
            )
        if event_type == "pull_request_review":
            review = payload.get("review") or {}
            pr = payload.get("pull_request") or {}
            # A submitted review is the review-level equivalent of a new comment.
            return cls(
                action="created" if action == "submitted" else action,
                org=org,
                repo=repo,
                number=int(pr.get("number") or 0),
                is_pr=True,
                body=str(review.get("body") or ""),
                html_url=str(review.get("html_url", "")),
                login=str((review.get("user") or {}).get("login", "")),
            )
        if event_type == "pull_request_review_comment":
            comment = payload.get("comment") or {}
            pr = payload.get("pull_request") or {}
            return cls(
                action=action,
                org=org,
                repo=repo,
                number=int(pr.get("number") or 0),
                is_pr=True,
                body=str(comment.get("body") or ""),
                html_url=str(comment.get("html_url", "")),
                login=str((comment.get("user") or {}).get("login", "")),
            )
        raise ValueError(f"Unsupported comment event type: {event_type}")


def extract_bug_id(title: str) -> int | None:
    """Return the id of the first ``Bug <digits>:`` reference in a title.

    Only ASCII digits count. A reference whose digits cannot be converted is
    logged and skipped in favour of a later one.
    """
    lowered = title.lower()
    start = lowered.find("bug ")
    while start != -1:
        cursor = start + len("bug ")
        end = cursor
        while end < len(lowered) and lowered[end] in string.digits:
            end += 1
        if end > cursor and end < len(lowered) and lowered[end] == ":":
            digits = lowered[cursor:end]
            try:
                return int(digits)
            except ValueError:
                log_event(
                    LOGGER,
                    "bug_id_unparseable",
                    level=logging.WARNING,
                    title=title,
                    digits=digits,
                )
        start = lowered.find("bug ", start + 1)
    return None


def parse_command(body: str) -> Command | None:
    if _REFRESH_COMMAND_RE.search(body):
        return Command.REFRESH
    if _ASSIGN_QA_COMMAND_RE.search(body):
        return Command.ASSIGN_QA
    return None


def _actionable_pull_request_action(pre: PullRequestEvent) -> PullRequestAction | None:
    try:
        action = PullRequestAction(pre.action)
    except ValueError:
        return None
    if action is PullRequestAction.CLOSED and not pre.merged:
        return None
    return action


def digest_pull_request(pre: PullRequestEvent, validate_by_default: bool | None) -> Event | None:
    """Decide whether a pull request change needs reconciling."""
    if _actionable_pull_request_action(pre) is None:
        return None

    bug_id = extract_bug_id(pre.title)
    event = Event(
        org=pre.org,
        repo=pre.repo,
        base_ref=pre.base_ref,
        number=pre.number,
        bug_id=bug_id or 0,
        missing=bug_id is None,
        merged=pre.merged,
        state=pre.state,
        body=pre.title,
        html_url=pre.html_url,
        login=pre.login,
    )

    fallback = event if bug_id is not None or validate_by_default else None
    if pre.previous_title is None:
        return fallback
    previous_id = extract_bug_id(pre.previous_title)
    if previous_id is None:
        return fallback
    if previous_id == bug_id:
        log_event(LOGGER, "bug_reference_unchanged", level=logging.DEBUG, bug_id=bug_id)
        return None
    # The title used to reference a different bug, so labels must follow the change.
    return event


def digest_comment(
    connector: GitHubConnector,
    gce: GenericCommentEvent,
    resolve_policy: PolicyResolver,
) -> Event | None:
    """Decide whether a comment asks for reconciliation, replying to unsupported targets."""
    if gce.action != "created":
        return None
    command = parse_command(gce.body)
    if command is None:
        return None

    if not gce.is_pr:
        log_event(LOGGER, "command_on_issue_ignored", level=logging.DEBUG, number=gce.number)
        connector.create_comment(
            gce.org,
            gce.repo,
            gce.number,
            format_response_raw(gce.body, gce.html_url, gce.login, ISSUES_NOT_SUPPORTED),
        )
        return None

    pr = connector.get_pull_request(gce.org, gce.repo, gce.number)
    bug_id = extract_bug_id(pr.title)
    if bug_id is None:
        policy = resolve_policy(gce.org, gce.repo, pr.base_ref)
        if not policy.validate_by_default:
            log_event(
                LOGGER,
                "command_without_bug_reference",
                level=logging.DEBUG,
                number=gce.number,
                repo=f"{gce.org}/{gce.repo}",
            )
            return None

    return Event(
        org=gce.org,
        repo=gce.repo,
        base_ref=pr.base_ref,
        number=gce.number,
        bug_id=bug_id or 0,
        missing=bug_id is None,
        merged=pr.merged,
        state=pr.state,
        body=gce.body,
        html_url=gce.html_url,
        login=gce.login,
        assign=command is Command.ASSIGN_QA,
    )
