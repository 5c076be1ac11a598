"""Shared runtime settings loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_BUGZILLA_ENDPOINT = "https://bugzilla.redhat.com"
DEFAULT_GITHUB_API_URL = "https://api.github.com"


@dataclass(frozen=True)
class RuntimeSettings:
    """Connector selection, service endpoints and policy location."""

    github_connector: str
    github_api_url: str
    github_read_token: str | None
    github_write_token: str | None
    bugzilla_client: str
    bugzilla_endpoint: str
    bugzilla_api_key: str | None
    policy_path: Path | None
    log_level: str | None

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "RuntimeSettings":
        source = os.environ if env is None else env
        policy_path = _clean(source.get("BUGZILLA_GATE_POLICY_PATH"))
        # Either GitHub token may be set alone; the shared token fills the gap.
        shared_token = _clean(source.get("BUGZILLA_GATE_GITHUB_TOKEN")) or _clean(
            source.get("GITHUB_TOKEN")
        )
        return cls(
            github_connector=(
                _clean(source.get("BUGZILLA_GATE_GITHUB_CONNECTOR")) or "in_memory"
            ).lower(),
            github_api_url=(
                _clean(source.get("BUGZILLA_GATE_GITHUB_API_URL")) or DEFAULT_GITHUB_API_URL
            ),
            github_read_token=(
                _clean(source.get("BUGZILLA_GATE_GITHUB_READ_TOKEN")) or shared_token
            ),
            github_write_token=(
                _clean(source.get("BUGZILLA_GATE_GITHUB_WRITE_TOKEN")) or shared_token
            ),
            bugzilla_client=(
                _clean(source.get("BUGZILLA_GATE_BUGZILLA_CLIENT")) or "in_memory"
            ).lower(),
            bugzilla_endpoint=(
                _clean(source.get("BUGZILLA_GATE_BUGZILLA_ENDPOINT")) or DEFAULT_BUGZILLA_ENDPOINT
            ).rstrip("/"),
            bugzilla_api_key=_clean(source.get("BUGZILLA_GATE_BUGZILLA_API_KEY")),
            policy_path=Path(policy_path) if policy_path else None,
            log_level=_clean(source.get("BUGZILLA_GATE_LOG_LEVEL")),
        )

    def redacted(self) -> dict[str, str]:
        return {
            "github_connector": self.github_connector,
            "github_api_url": self.github_api_url,
            "github_read_token": redact_secret(self.github_read_token),
            "github_write_token": redact_secret(self.github_write_token),
            "bugzilla_client": self.bugzilla_client,
            "bugzilla_endpoint": self.bugzilla_endpoint,
            "bugzilla_api_key": redact_secret(self.bugzilla_api_key),
            "policy_path": str(self.policy_path) if self.policy_path else "unset",
        }


def get_runtime_settings(env: dict[str, str] | None = None) -> RuntimeSettings:
    """Build runtime settings from environment variables."""

    return RuntimeSettings.from_env(env)


def redact_secret(value: str | None) -> str:
    if value is None:
        return "unset"
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
