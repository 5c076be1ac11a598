"""In-memory GitHub connector for deterministic tests."""

from __future__ import annotations

from dataclasses import dataclass

from bugzilla_gate.server.github_connector import GitHubError, PullRequest


@dataclass(frozen=True)
class RecordedCall:
    operation: str
    org: str
    repo: str
    number: int
    argument: str = ""


class InMemoryGitHubConnector:
    """In-memory connector used for deterministic reconciliation tests."""

    def __init__(self) -> None:
        self.pull_requests: dict[tuple[str, str, int], PullRequest] = {}
        self.labels: dict[tuple[str, str, int], list[str]] = {}
        self.comments: dict[tuple[str, str, int], list[str]] = {}
        self.users_by_email: dict[str, list[str]] = {}
        self.calls: list[RecordedCall] = []
        self.failing_operations: set[str] = set()

    def add_pull_request(self, pr: PullRequest) -> None:
        self.pull_requests[(pr.org, pr.repo, pr.number)] = pr

    def writes(self, operation: str = "") -> list[RecordedCall]:
        write_ops = {"create_comment", "add_label", "remove_label"}
        return [
            call
            for call in self.calls
            if call.operation in write_ops and (not operation or call.operation == operation)
        ]

    def get_pull_request(self, org: str, repo: str, number: int) -> PullRequest:
        self._record("get_pull_request", org, repo, number)
        pr = self.pull_requests.get((org, repo, number))
        if pr is None:
            raise GitHubError(
                f"pull request {org}/{repo}#{number} not found",
                reason_code="github_404",
                status_code=404,
            )
        return pr

    def create_comment(self, org: str, repo: str, number: int, body: str) -> None:
        self._record("create_comment", org, repo, number, body)
        self.comments.setdefault((org, repo, number), []).append(body)

    def get_issue_labels(self, org: str, repo: str, number: int) -> list[str]:
        self._record("get_issue_labels", org, repo, number)
        return list(self.labels.get((org, repo, number), []))

    def add_label(self, org: str, repo: str, number: int, label: str) -> None:
        self._record("add_label", org, repo, number, label)
        current = self.labels.setdefault((org, repo, number), [])
        if label not in current:
            current.append(label)

    def remove_label(self, org: str, repo: str, number: int, label: str) -> None:
        self._record("remove_label", org, repo, number, label)
        current = self.labels.get((org, repo, number), [])
        if label not in current:
            raise GitHubError(
                f"label {label!r} does not exist on {org}/{repo}#{number}",
                reason_code="github_404",
                status_code=404,
            )
        current.remove(label)

    def search_users_by_email(self, email: str) -> list[str]:
        self._record("search_users_by_email", "", "", 0, email)
        return list(self.users_by_email.get(email, []))

    def _record(self, operation: str, org: str, repo: str, number: int, argument: str = "") -> None:
        self.calls.append(
            RecordedCall(operation=operation, org=org, repo=repo, number=number, argument=argument)
        )
        if operation in self.failing_operations:
            raise GitHubError(f"injected failure for {operation}", reason_code="injected_failure")
