"""Advance a bug once every pull request linked to it has merged."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bugzilla_gate.policy import BranchPolicy, bug_matches_states, pretty_status
from bugzilla_gate.server.bugzilla_client import (
    BugNotFoundError,
    BugzillaClient,
    BugzillaError,
    ExternalBug,
)
from bugzilla_gate.server.github_connector import GitHubConnector, GitHubError
from bugzilla_gate.server.events import Event
from bugzilla_gate.server.responses import (
    format_error,
    format_merge_outcome,
    format_not_found,
    format_unrecognized_state,
)
from bugzilla_gate.shared.observability import get_logger, log_event

LOGGER = get_logger("merge")


@dataclass(frozen=True)
class MergeOutcome:
    """What the merge path decided; ``response`` is None when nothing is posted."""

    response: str | None
    migrated: bool = False
    merged: tuple[ExternalBug, ...] = ()
    unmerged: tuple[tuple[ExternalBug, str], ...] = ()


def handle_merge(
    event: Event,
    github: GitHubConnector,
    bugzilla: BugzillaClient,
    policy: BranchPolicy,
) -> MergeOutcome:
    target = policy.state_after_merge
    if target is None or event.missing or not event.merged:
        return MergeOutcome(response=None)
    update = target.as_bug_update()
    if update is None:
        # An empty post-merge state names nothing to move the bug to.
        return MergeOutcome(response=None)
    endpoint = bugzilla.endpoint

    if policy.valid_states is not None or policy.state_after_validation is not None:
        # A bug moved by hand (say, closed after the merge) must not be dragged
        # back into the post-merge state by a stale refresh.
        try:
            bug = bugzilla.get_bug(event.bug_id)
        except BugNotFoundError:
            log_event(LOGGER, "bug_not_found", level=logging.DEBUG, bug_id=event.bug_id)
            return MergeOutcome(response=format_not_found(event.bug_id, endpoint))
        except BugzillaError as exc:
            log_event(
                LOGGER, "bug_fetch_failed", level=logging.WARNING, bug_id=event.bug_id, error=exc
            )
            return MergeOutcome(response=format_error("searching", endpoint, event.bug_id, exc))
        if not bug_matches_states(bug, policy.allowed_states()):
            return MergeOutcome(
                response=format_unrecognized_state(
                    event.bug_id, endpoint, pretty_status(bug.status, bug.resolution), str(target)
                )
            )

    try:
        links = bugzilla.get_external_bug_prs_on_bug(event.bug_id)
    except BugzillaError as exc:
        log_event(
            LOGGER,
            "external_bugs_list_failed",
            level=logging.WARNING,
            bug_id=event.bug_id,
            error=exc,
        )
        action = "searching for external tracker bugs"
        return MergeOutcome(response=format_error(action, endpoint, event.bug_id, exc))

    merged: list[ExternalBug] = []
    unmerged: list[tuple[ExternalBug, str]] = []
    for link in links:
        if (link.org, link.repo, link.number) == (event.org, event.repo, event.number):
            is_merged, state = event.merged, event.state
        else:
            try:
                pr = github.get_pull_request(link.org, link.repo, link.number)
            except GitHubError as exc:
                log_event(
                    LOGGER,
                    "linked_pull_request_fetch_failed",
                    level=logging.WARNING,
                    bug_id=event.bug_id,
                    link=link.identifier,
                    error=exc,
                )
                action = f"checking the state of a related pull request at {link.url}"
                return MergeOutcome(response=format_error(action, endpoint, event.bug_id, exc))
            is_merged, state = pr.merged, pr.state
        if not is_merged:
            # Stop at the first unmerged pull request; the rest need not be fetched.
            unmerged.append((link, state))
            break
        merged.append(link)

    migrate = not unmerged
    if migrate:
        try:
            bugzilla.update_bug(event.bug_id, update)
        except BugzillaError as exc:
            log_event(
                LOGGER,
                "bug_update_failed",
                level=logging.WARNING,
                bug_id=event.bug_id,
                error=exc,
            )
            action = f"updating to the {target} state"
            return MergeOutcome(response=format_error(action, endpoint, event.bug_id, exc))
        log_event(LOGGER, "bug_moved_after_merge", bug_id=event.bug_id, state=str(target))

    return MergeOutcome(
        response=format_merge_outcome(event.bug_id, endpoint, str(target), merged, unmerged),
        migrated=migrate,
        merged=tuple(merged),
        unmerged=tuple(unmerged),
    )
