"""Reconciliation application surface: one webhook delivery in, one reply out."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from bugzilla_gate.policy import BranchPolicy, PolicyConfig, load_policy_config
from bugzilla_gate.server.bugzilla_client import (
    Bug,
    BugNotFoundError,
    BugzillaClient,
    BugzillaError,
    build_bugzilla_client_from_env,
)
from bugzilla_gate.server.events import (
    Event,
    GenericCommentEvent,
    PullRequestEvent,
    digest_comment,
    digest_pull_request,
)
from bugzilla_gate.server.github_connector import (
    GitHubConnector,
    GitHubError,
    build_connector_from_env,
)
from bugzilla_gate.server.labels import reconcile_labels
from bugzilla_gate.server.merge import handle_merge
from bugzilla_gate.server.responses import (
    NO_BUG_REFERENCED,
    format_error,
    format_invalid,
    format_no_qa_contact,
    format_not_found,
    format_qa_assignment,
    format_qa_contact_without_email,
    format_response_raw,
    format_valid,
)
from bugzilla_gate.shared.observability import get_logger, log_event
from bugzilla_gate.shared.settings import RuntimeSettings
from bugzilla_gate.validation import Verdict, validate_bug

LOGGER = get_logger("app")

COMMENT_EVENT_TYPES = {"issue_comment", "pull_request_review", "pull_request_review_comment"}


class _TrackerCallFailed(Exception):
    """An external call failed while validating; the app replies with an error."""

    def __init__(self, action: str, error: Exception) -> None:
        super().__init__(action)
        self.action = action
        self.error = error


class ServerApp:
    """Thin facade wiring the digesters, validator, merge tracker and connectors."""

    def __init__(
        self,
        github: GitHubConnector,
        bugzilla: BugzillaClient,
        policies: PolicyConfig | None = None,
    ) -> None:
        self.github = github
        self.bugzilla = bugzilla
        self.policies = policies or PolicyConfig()

    def options_for_branch(self, org: str, repo: str, branch: str) -> BranchPolicy:
        return self.policies.options_for_branch(org, repo, branch)

    def ingest_webhook(self, event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Handle one delivery; external failures are reported, never raised."""
        try:
            if event_type == "pull_request":
                return self.handle_pull_request(PullRequestEvent.from_payload(payload))
            if event_type in COMMENT_EVENT_TYPES:
                return self.handle_generic_comment(
                    GenericCommentEvent.from_payload(event_type, payload)
                )
        except GitHubError as exc:
            log_event(
                LOGGER,
                "github_call_failed",
                level=logging.WARNING,
                event_type=event_type,
                reason_code=exc.reason_code,
                error=exc,
            )
            return {"status": "error", "reason_code": exc.reason_code, "error": str(exc)}
        return {"status": "ignored", "reason": "unsupported_event_type"}

    def handle_pull_request(self, pre: PullRequestEvent) -> dict[str, Any]:
        policy = self.options_for_branch(pre.org, pre.repo, pre.base_ref)
        event = digest_pull_request(pre, policy.validate_by_default)
        if event is None:
            return {"status": "ignored", "reason": "not_actionable"}
        return self.handle(event, policy)

    def handle_generic_comment(self, gce: GenericCommentEvent) -> dict[str, Any]:
        event = digest_comment(self.github, gce, self.options_for_branch)
        if event is None:
            return {"status": "ignored", "reason": "not_actionable"}
        return self.handle(event, self.options_for_branch(event.org, event.repo, event.base_ref))

    def handle(self, event: Event, policy: BranchPolicy) -> dict[str, Any]:
        log_event(
            LOGGER,
            "event_handling_started",
            repo=f"{event.org}/{event.repo}",
            number=event.number,
            bug_id=event.bug_id,
            missing=event.missing,
            merged=event.merged,
        )
        if event.merged:
            outcome = handle_merge(event, self.github, self.bugzilla, policy)
            if outcome.response is None:
                return {"status": "ignored", "reason": "merge_not_tracked"}
            self._comment(event, outcome.response)
            return {
                "status": "handled",
                "path": "merge",
                "bug_id": event.bug_id,
                "migrated": outcome.migrated,
                "response": outcome.response,
            }

        if event.missing:
            log_event(LOGGER, "bug_reference_missing", level=logging.DEBUG, number=event.number)
            reconcile_labels(
                self.github,
                event.org,
                event.repo,
                event.number,
                needs_valid=False,
                needs_invalid=False,
            )
            self._comment(event, NO_BUG_REFERENCED)
            return {"status": "handled", "path": "missing", "response": NO_BUG_REFERENCED}

        return self._handle_validation(event, policy)

    def _handle_validation(self, event: Event, policy: BranchPolicy) -> dict[str, Any]:
        try:
            return self._validate(event, policy)
        except _TrackerCallFailed as failure:
            return self._abort(event, failure.action, failure.error)

    def _validate(self, event: Event, policy: BranchPolicy) -> dict[str, Any]:
        endpoint = self.bugzilla.endpoint
        bug = self._fetch_bug(event)
        if bug is None:
            return {"status": "handled", "path": "bug_unavailable", "bug_id": event.bug_id}

        dependents: list[Bug] = []
        if policy.has_dependent_requirements():
            for dependent_id in bug.depends_on:
                try:
                    dependents.append(self.bugzilla.get_bug(dependent_id))
                except BugzillaError as exc:
                    action = f"searching for dependent bug {dependent_id}"
                    raise _TrackerCallFailed(action, exc) from exc

        verdict = validate_bug(bug, dependents, policy, endpoint)
        if verdict.valid:
            log_event(LOGGER, "bug_valid", level=logging.DEBUG, bug_id=event.bug_id)
            response = self._valid_response(event, bug, policy, verdict)
        else:
            log_event(LOGGER, "bug_invalid", level=logging.DEBUG, bug_id=event.bug_id)
            response = format_invalid(event.bug_id, endpoint, verdict)

        reconcile_labels(
            self.github,
            event.org,
            event.repo,
            event.number,
            needs_valid=verdict.valid,
            needs_invalid=not verdict.valid,
        )
        self._comment(event, response)
        return {
            "status": "handled",
            "path": "validation",
            "bug_id": event.bug_id,
            "valid": verdict.valid,
            "validations": list(verdict.validations),
            "errors": list(verdict.errors),
            "response": response,
        }

    def _valid_response(
        self, event: Event, bug: Bug, policy: BranchPolicy, verdict: Verdict
    ) -> str:
        """Apply the post-validation tracker updates and build the reply for a valid bug."""
        endpoint = self.bugzilla.endpoint
        moved_to = ""
        target = policy.state_after_validation
        if target is not None:
            update = target.as_bug_update(bug)
            if update is not None:
                try:
                    self.bugzilla.update_bug(event.bug_id, update)
                except BugzillaError as exc:
                    raise _TrackerCallFailed(f"updating to the {target} state", exc) from exc
                moved_to = str(target)

        link_added = False
        if policy.add_external_link:
            try:
                link_added = self.bugzilla.add_pull_request_as_external_bug(
                    event.bug_id, event.org, event.repo, event.number
                )
            except BugzillaError as exc:
                action = "adding this pull request to the external tracker bugs"
                raise _TrackerCallFailed(action, exc) from exc

        response = format_valid(
            event.bug_id, endpoint, verdict, moved_to=moved_to, external_link_added=link_added
        )
        if not event.assign:
            return response

        if not bug.has_qa_contact:
            return response + format_no_qa_contact(event.bug_id, endpoint)
        email = bug.qa_contact_email or ""
        if not email:
            return response + format_qa_contact_without_email(event.bug_id, endpoint)
        try:
            logins = self.github.search_users_by_email(email)
        except GitHubError as exc:
            action = f"querying GitHub for users with public email ({email})"
            raise _TrackerCallFailed(action, exc) from exc
        return response + "\n\n" + format_qa_assignment(logins, email)

    def _fetch_bug(self, event: Event) -> Bug | None:
        try:
            return self.bugzilla.get_bug(event.bug_id)
        except BugNotFoundError:
            log_event(LOGGER, "bug_not_found", level=logging.DEBUG, bug_id=event.bug_id)
            self._comment(event, format_not_found(event.bug_id, self.bugzilla.endpoint))
            return None
        except BugzillaError as exc:
            raise _TrackerCallFailed("searching", exc) from exc

    def _abort(self, event: Event, action: str, error: Exception) -> dict[str, Any]:
        log_event(
            LOGGER,
            "tracker_call_failed",
            level=logging.WARNING,
            repo=f"{event.org}/{event.repo}",
            number=event.number,
            bug_id=event.bug_id,
            action=action,
            error=error,
        )
        response = format_error(action, self.bugzilla.endpoint, event.bug_id, error)
        self._comment(event, response)
        return {"status": "handled", "path": "error", "bug_id": event.bug_id, "response": response}

    def _comment(self, event: Event, reply: str) -> None:
        self.github.create_comment(
            event.org,
            event.repo,
            event.number,
            format_response_raw(event.body, event.html_url, event.login, reply),
        )


def create_app(
    env: dict[str, str] | None = None,
    policy_path: str | Path | None = None,
) -> ServerApp:
    settings = RuntimeSettings.from_env(env)
    resolved_path = Path(policy_path) if policy_path else settings.policy_path
    policies = load_policy_config(resolved_path) if resolved_path else PolicyConfig()
    return ServerApp(
        github=build_connector_from_env(env),
        bugzilla=build_bugzilla_client_from_env(env),
        policies=policies,
    )
