"""GitHub connector contracts, review-host records, and factory helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from bugzilla_gate.shared.settings import RuntimeSettings


@dataclass(frozen=True)
class PullRequest:
    org: str
    repo: str
    number: int
    title: str
    base_ref: str
    state: str
    merged: bool
    html_url: str = ""
    user_login: str = ""


class GitHubError(RuntimeError):
    """A GitHub call failed in transport or was rejected by the API."""

    def __init__(self, message: str, reason_code: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.status_code = status_code


class GitHubConnector(Protocol):
    """Connector contract for all GitHub integration implementations."""

    def get_pull_request(self, org: str, repo: str, number: int) -> PullRequest: ...

    def create_comment(self, org: str, repo: str, number: int, body: str) -> None: ...

    def get_issue_labels(self, org: str, repo: str, number: int) -> list[str]: ...

    def add_label(self, org: str, repo: str, number: int, label: str) -> None: ...

    def remove_label(self, org: str, repo: str, number: int, label: str) -> None: ...

    def search_users_by_email(self, email: str) -> list[str]: ...


def build_connector_from_env(env: dict[str, str] | None = None) -> GitHubConnector:
    settings = RuntimeSettings.from_env(env)

    if settings.github_connector == "api":
        from bugzilla_gate.server.github_connector_api import GitHubAPIConnector

        return GitHubAPIConnector(
            read_token=settings.github_read_token,
            write_token=settings.github_write_token,
            base_url=settings.github_api_url,
        )

    from bugzilla_gate.server.github_connector_inmemory import InMemoryGitHubConnector

    return InMemoryGitHubConnector()


__all__ = [
    "GitHubConnector",
    "GitHubError",
    "PullRequest",
    "build_connector_from_env",
]
