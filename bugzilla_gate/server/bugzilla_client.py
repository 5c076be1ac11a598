"""Bugzilla client contracts, tracker records, and factory helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from bugzilla_gate.shared.settings import RuntimeSettings


GITHUB_EXTERNAL_TRACKER_URL = "https://github.com/"


@dataclass(frozen=True)
class Bug:
    id: int
    is_open: bool
    status: str
    resolution: str = ""
    target_release: tuple[str, ...] = ()
    depends_on: tuple[int, ...] = ()
    qa_contact_email: str | None = None
    has_qa_contact: bool = False


@dataclass(frozen=True)
class BugUpdate:
    status: str = ""
    resolution: str = ""

    def as_payload(self) -> dict[str, str]:
        payload: dict[str, str] = {}
        if self.status:
            payload["status"] = self.status
        if self.resolution:
            payload["resolution"] = self.resolution
        return payload


@dataclass(frozen=True, order=True)
class ExternalBug:
    """A pull request recorded against a bug in the external tracker table."""

    org: str
    repo: str
    number: int

    @property
    def identifier(self) -> str:
        return f"{self.org}/{self.repo}/pull/{self.number}"

    @property
    def url(self) -> str:
        return f"{GITHUB_EXTERNAL_TRACKER_URL}{self.identifier}"


class BugzillaError(RuntimeError):
    """A Bugzilla call failed in transport or was rejected by the server."""

    def __init__(self, message: str, reason_code: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.status_code = status_code


class BugNotFoundError(BugzillaError):
    def __init__(self, bug_id: int) -> None:
        super().__init__(f"bug {bug_id} not found", reason_code="bug_not_found", status_code=404)
        self.bug_id = bug_id


class BugzillaClient(Protocol):
    """Client contract for all Bugzilla integration implementations."""

    @property
    def endpoint(self) -> str: ...

    def get_bug(self, bug_id: int) -> Bug: ...

    def get_external_bug_prs_on_bug(self, bug_id: int) -> list[ExternalBug]: ...

    def update_bug(self, bug_id: int, update: BugUpdate) -> None: ...

    def add_pull_request_as_external_bug(
        self, bug_id: int, org: str, repo: str, number: int
    ) -> bool: ...


def parse_external_bug_identifier(identifier: str) -> ExternalBug | None:
    """Parse an ``org/repo/pull/123`` identifier, returning None for other shapes."""
    parts = identifier.strip().strip("/").split("/")
    if len(parts) != 4 or parts[2] != "pull" or not parts[0] or not parts[1]:
        return None
    try:
        number = int(parts[3])
    except ValueError:
        return None
    return ExternalBug(org=parts[0], repo=parts[1], number=number)


def build_bugzilla_client_from_env(env: dict[str, str] | None = None) -> BugzillaClient:
    settings = RuntimeSettings.from_env(env)

    if settings.bugzilla_client == "api":
        from bugzilla_gate.server.bugzilla_client_api import BugzillaAPIClient

        return BugzillaAPIClient(
            endpoint=settings.bugzilla_endpoint, api_key=settings.bugzilla_api_key
        )

    from bugzilla_gate.server.bugzilla_client_inmemory import InMemoryBugzillaClient

    return InMemoryBugzillaClient(endpoint=settings.bugzilla_endpoint)


__all__ = [
    "Bug",
    "BugNotFoundError",
    "BugUpdate",
    "BugzillaClient",
    "BugzillaError",
    "ExternalBug",
    "GITHUB_EXTERNAL_TRACKER_URL",
    "build_bugzilla_client_from_env",
    "parse_external_bug_identifier",
]
