"""Keep the valid/invalid bug labels on a pull request in step with the verdict."""

from __future__ import annotations

import logging

from bugzilla_gate.server.github_connector import GitHubConnector, GitHubError
from bugzilla_gate.shared.observability import get_logger, log_event

LOGGER = get_logger("labels")

VALID_BUG_LABEL = "bugzilla/valid-bug"
INVALID_BUG_LABEL = "bugzilla/invalid-bug"


def reconcile_labels(
    connector: GitHubConnector,
    org: str,
    repo: str,
    number: int,
    *,
    needs_valid: bool,
    needs_invalid: bool,
) -> None:
    """Add or remove each label only where the pull request disagrees.

    Failures are logged and dropped; they never block the reply.
    """
    try:
        current = set(connector.get_issue_labels(org, repo, number))
    except GitHubError as exc:
        log_event(
            LOGGER,
            "labels_list_failed",
            level=logging.WARNING,
            repo=f"{org}/{repo}",
            number=number,
            error=exc,
        )
        current = set()

    for label, needed in ((VALID_BUG_LABEL, needs_valid), (INVALID_BUG_LABEL, needs_invalid)):
        present = label in current
        if needed == present:
            continue
        try:
            if needed:
                connector.add_label(org, repo, number, label)
            else:
                connector.remove_label(org, repo, number, label)
        except GitHubError as exc:
            log_event(
                LOGGER,
                "label_add_failed" if needed else "label_remove_failed",
                level=logging.ERROR,
                repo=f"{org}/{repo}",
                number=number,
                label=label,
                error=exc,
            )
