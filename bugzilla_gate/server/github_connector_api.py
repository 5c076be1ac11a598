"""GitHub REST and GraphQL connector implementation."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import requests

from bugzilla_gate.server.github_connector import GitHubError, PullRequest

# search(type: USER) only returns public emails; five results is enough to tell
# "exactly one" from "ambiguous".
EMAIL_TO_LOGIN_QUERY = """
query($email: String!) {
  search(type: USER, query: $email, first: 5) {
    edges {
      node {
        ... on User {
          login
        }
      }
    }
  }
}
""".strip()


class GitHubAPIConnector:
    def __init__(
        self,
        read_token: str | None = None,
        write_token: str | None = None,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        timeout_s: float = 15,
    ) -> None:
        self.read_token = read_token
        self.write_token = write_token
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s

    def get_pull_request(self, org: str, repo: str, number: int) -> PullRequest:
        payload = self._request(
            "GET", f"/repos/{org}/{repo}/pulls/{number}", token=self.read_token
        )
        return _pull_request_from_payload(payload, org=org, repo=repo, number=number)

    def create_comment(self, org: str, repo: str, number: int, body: str) -> None:
        self._request(
            "POST",
            f"/repos/{org}/{repo}/issues/{number}/comments",
            token=self.write_token,
            json={"body": body},
        )

    def get_issue_labels(self, org: str, repo: str, number: int) -> list[str]:
        payload = self._request(
            "GET",
            f"/repos/{org}/{repo}/issues/{number}/labels",
            token=self.read_token,
            params={"per_page": "100"},
        )
        if not isinstance(payload, list):
            return []
        return [str(row.get("name", "")) for row in payload if isinstance(row, dict)]

    def add_label(self, org: str, repo: str, number: int, label: str) -> None:
        self._request(
            "POST",
            f"/repos/{org}/{repo}/issues/{number}/labels",
            token=self.write_token,
            json={"labels": [label]},
        )

    def remove_label(self, org: str, repo: str, number: int, label: str) -> None:
        self._request(
            "DELETE",
            f"/repos/{org}/{repo}/issues/{number}/labels/{quote(label, safe='')}",
            token=self.write_token,
        )

    def search_users_by_email(self, email: str) -> list[str]:
        payload = self._request(
            "POST",
            "/graphql",
            token=self.read_token,
            json={"query": EMAIL_TO_LOGIN_QUERY, "variables": {"email": email}},
        )
        if not isinstance(payload, dict):
            return []
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(
                str(error.get("message", "")) for error in errors if isinstance(error, dict)
            )
            raise GitHubError(
                f"GitHub GraphQL query failed: {messages}", reason_code="github_graphql"
            )
        edges = ((payload.get("data") or {}).get("search") or {}).get("edges") or []
        logins: list[str] = []
        for edge in edges:
            node = edge.get("node") if isinstance(edge, dict) else None
            login = str((node or {}).get("login", "")).strip()
            if login:
                logins.append(login)
        return logins

    def _request(
        self,
        method: str,
        path: str,
        token: str | None,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise GitHubError(
                f"GitHub API request failed: {exc}", reason_code="github_transport"
            ) from exc

        if response.status_code >= 400:
            raise GitHubError(
                f"GitHub API returned {response.status_code}: {_error_message(response)}",
                reason_code=f"github_{response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise GitHubError(
                f"GitHub API returned {response.status_code} with a non-JSON body",
                reason_code="github_payload",
                status_code=response.status_code,
            ) from exc


def _pull_request_from_payload(payload: Any, *, org: str, repo: str, number: int) -> PullRequest:
    if not isinstance(payload, dict):
        raise GitHubError(
            f"unexpected pull request payload for {org}/{repo}#{number}",
            reason_code="github_payload",
        )
    base = payload.get("base") or {}
    user = payload.get("user") or {}
    return PullRequest(
        org=org,
        repo=repo,
        number=int(payload.get("number") or number),
        title=str(payload.get("title", "")),
        base_ref=str(base.get("ref", "")),
        state=str(payload.get("state", "")),
        merged=bool(payload.get("merged", False)),
        html_url=str(payload.get("html_url", "")),
        user_login=str(user.get("login", "")),
    )


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return "no error message"
    if isinstance(payload, dict):
        return str(payload.get("message", "no error message"))
    return "no error message"
