"""In-memory Bugzilla client for deterministic tests."""

from __future__ import annotations

from dataclasses import replace

from bugzilla_gate.server.bugzilla_client import (
    Bug,
    BugNotFoundError,
    BugUpdate,
    BugzillaError,
    ExternalBug,
)


class InMemoryBugzillaClient:
    """In-memory tracker used for deterministic reconciliation tests."""

    def __init__(self, endpoint: str = "https://bugzilla.example.com") -> None:
        self._endpoint = endpoint.rstrip("/")
        self.bugs: dict[int, Bug] = {}
        self.external_bugs: dict[int, list[ExternalBug]] = {}
        self.updates: list[tuple[int, BugUpdate]] = []
        self.failing_operations: set[str] = set()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def add_bug(self, bug: Bug) -> None:
        self.bugs[bug.id] = bug

    def get_bug(self, bug_id: int) -> Bug:
        self._maybe_fail("get_bug")
        bug = self.bugs.get(bug_id)
        if bug is None:
            raise BugNotFoundError(bug_id)
        return bug

    def get_external_bug_prs_on_bug(self, bug_id: int) -> list[ExternalBug]:
        self._maybe_fail("get_external_bug_prs_on_bug")
        if bug_id not in self.bugs:
            raise BugNotFoundError(bug_id)
        return list(self.external_bugs.get(bug_id, []))

    def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        self._maybe_fail("update_bug")
        bug = self.bugs.get(bug_id)
        if bug is None:
            raise BugNotFoundError(bug_id)
        self.updates.append((bug_id, update))
        changes = update.as_payload()
        self.bugs[bug_id] = replace(
            bug,
            status=changes.get("status", bug.status),
            resolution=changes.get("resolution", bug.resolution),
        )

    def add_pull_request_as_external_bug(
        self, bug_id: int, org: str, repo: str, number: int
    ) -> bool:
        self._maybe_fail("add_pull_request_as_external_bug")
        if bug_id not in self.bugs:
            raise BugNotFoundError(bug_id)
        link = ExternalBug(org=org, repo=repo, number=number)
        links = self.external_bugs.setdefault(bug_id, [])
        if link in links:
            return False
        links.append(link)
        return True

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing_operations:
            raise BugzillaError(f"injected failure for {operation}", reason_code="injected_failure")
