"""Bugzilla REST and JSON-RPC client implementation."""

from __future__ import annotations

from typing import Any

import requests

from bugzilla_gate.server.bugzilla_client import (
    GITHUB_EXTERNAL_TRACKER_URL,
    Bug,
    BugNotFoundError,
    BugUpdate,
    BugzillaError,
    ExternalBug,
    parse_external_bug_identifier,
)

# Bugzilla reports "Bug #N does not exist" with this error code.
_BUG_DOES_NOT_EXIST_CODE = 101


class BugzillaAPIClient:
    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        session: requests.Session | None = None,
        timeout_s: float = 30,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def get_bug(self, bug_id: int) -> Bug:
        payload = self._rest("GET", f"/rest/bug/{bug_id}", bug_id=bug_id)
        return _bug_from_row(_single_bug_row(payload, bug_id))

    def get_external_bug_prs_on_bug(self, bug_id: int) -> list[ExternalBug]:
        payload = self._rest(
            "GET",
            f"/rest/bug/{bug_id}",
            bug_id=bug_id,
            params={"include_fields": "external_bugs"},
        )
        row = _single_bug_row(payload, bug_id)
        links: list[ExternalBug] = []
        for external in row.get("external_bugs") or []:
            if not isinstance(external, dict):
                continue
            tracker_url = str((external.get("type") or {}).get("url", ""))
            if tracker_url != GITHUB_EXTERNAL_TRACKER_URL:
                continue
            parsed = parse_external_bug_identifier(str(external.get("ext_bz_bug_id", "")))
            if parsed is not None and parsed not in links:
                links.append(parsed)
        return links

    def update_bug(self, bug_id: int, update: BugUpdate) -> None:
        self._rest("PUT", f"/rest/bug/{bug_id}", bug_id=bug_id, json=update.as_payload())

    def add_pull_request_as_external_bug(
        self, bug_id: int, org: str, repo: str, number: int
    ) -> bool:
        identifier = ExternalBug(org=org, repo=repo, number=number).identifier
        params: dict[str, Any] = {
            "bug_ids": [bug_id],
            "external_bugs": [
                {"ext_type_url": GITHUB_EXTERNAL_TRACKER_URL, "ext_bz_bug_id": identifier}
            ],
        }
        if self.api_key:
            params["api_key"] = self.api_key
        body = {
            "jsonrpc": "1.0",
            "method": "ExternalBugs.add_external_bug",
            "params": [params],
            "id": "bugzilla-gate",
        }
        payload = self._send("POST", f"{self._endpoint}/jsonrpc.cgi", json=body)
        if not isinstance(payload, dict):
            raise BugzillaError("unexpected JSON-RPC response", reason_code="bugzilla_payload")
        error = payload.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise BugzillaError(
                f"JSON-RPC error adding external bug: {message}", reason_code="bugzilla_jsonrpc"
            )
        for changed_bug in (payload.get("result") or {}).get("bugs") or []:
            if not isinstance(changed_bug, dict) or changed_bug.get("id") != bug_id:
                continue
            changes = changed_bug.get("changes") or {}
            for change in changes.values():
                if isinstance(change, dict) and change.get("added") == identifier:
                    return True
        return False

    def _rest(
        self,
        method: str,
        path: str,
        *,
        bug_id: int,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            return self._send(method, f"{self._endpoint}{path}", json=json, params=params)
        except BugzillaError as exc:
            if exc.status_code == 404:
                raise BugNotFoundError(bug_id) from exc
            raise

    def _send(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-BUGZILLA-API-KEY"] = self.api_key
        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise BugzillaError(
                f"Bugzilla request failed: {exc}", reason_code="bugzilla_transport"
            ) from exc

        payload = _json_or_none(response)
        if response.status_code >= 400:
            message = "no error message"
            if isinstance(payload, dict):
                message = str(payload.get("message", message))
                if payload.get("code") == _BUG_DOES_NOT_EXIST_CODE:
                    raise BugzillaError(message, reason_code="bug_not_found", status_code=404)
            raise BugzillaError(
                f"Bugzilla returned {response.status_code}: {message}",
                reason_code=f"bugzilla_{response.status_code}",
                status_code=response.status_code,
            )
        return payload


def _json_or_none(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _single_bug_row(payload: Any, bug_id: int) -> dict[str, Any]:
    rows = payload.get("bugs") if isinstance(payload, dict) else None
    if not rows:
        raise BugNotFoundError(bug_id)
    if len(rows) != 1 or not isinstance(rows[0], dict):
        raise BugzillaError(
            f"did not get exactly one bug for id {bug_id}", reason_code="bugzilla_payload"
        )
    return rows[0]


def _bug_from_row(row: dict[str, Any]) -> Bug:
    qa_detail = row.get("qa_contact_detail")
    qa_email: str | None = None
    if isinstance(qa_detail, dict):
        qa_email = str(qa_detail.get("email", "")).strip()
    target_release = row.get("target_release") or []
    if isinstance(target_release, str):
        target_release = [target_release]
    return Bug(
        id=int(row["id"]),
        is_open=bool(row.get("is_open", False)),
        status=str(row.get("status", "")),
        resolution=str(row.get("resolution", "") or ""),
        target_release=tuple(str(release) for release in target_release),
        depends_on=tuple(int(dep) for dep in row.get("depends_on") or []),
        qa_contact_email=qa_email,
        has_qa_contact=isinstance(qa_detail, dict),
    )
