"""bugzilla-gate CLI."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from bugzilla_gate.policy import PolicyConfig, describe_policy, load_policy_config
from bugzilla_gate.server.app import create_app
from bugzilla_gate.shared.observability import configure_logging
from bugzilla_gate.shared.settings import get_runtime_settings

COMMANDS = {
    "/bugzilla refresh": "Check Bugzilla for a valid bug referenced in the PR title",
    "/bugzilla assign-qa": "Assign PR to QA contact specified in Bugzilla",
}

app = typer.Typer(add_completion=False, help="bugzilla-gate: keep pull requests and bugs in step")


def _load_policies(policy: Path | None) -> PolicyConfig:
    settings = get_runtime_settings()
    path = policy or settings.policy_path
    if path is None:
        return PolicyConfig()
    try:
        return load_policy_config(path)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc


@app.command()
def handle(
    event_type: str = typer.Option(..., "--event-type"),
    payload: Path = typer.Option(..., "--payload"),
    policy: Path = typer.Option(None, "--policy"),
) -> None:
    """Reconcile one recorded webhook delivery and print the outcome."""
    settings = get_runtime_settings()
    configure_logging(settings.log_level)
    try:
        body = json.loads(payload.read_text())
    except (OSError, ValueError) as exc:
        typer.echo(f"Error: could not read payload: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    if not isinstance(body, dict):
        typer.echo("Error: payload must be a JSON object", err=True)
        raise typer.Exit(code=2)

    service = create_app(policy_path=policy)
    result = service.ingest_webhook(event_type, body)
    typer.echo(json.dumps(result, indent=2))
    if result.get("status") == "error":
        raise typer.Exit(code=1)


@app.command("policy")
def show_policy(
    org: str = typer.Option(..., "--org"),
    repo: str = typer.Option(..., "--repo"),
    branch: str = typer.Option(..., "--branch"),
    policy: Path = typer.Option(None, "--policy"),
) -> None:
    """Print the policy that applies to a branch and what it means."""
    policies = _load_policies(policy)
    resolved = policies.options_for_branch(org, repo, branch)
    typer.echo(
        json.dumps(
            {
                "org": org,
                "repo": repo,
                "branch": branch,
                "policy": resolved.model_dump(mode="json", exclude_none=True),
                "description": describe_policy(branch, resolved),
            },
            indent=2,
        )
    )


@app.command()
def describe(
    org: str = typer.Option(..., "--org"),
    repo: str = typer.Option(..., "--repo"),
    policy: Path = typer.Option(None, "--policy"),
) -> None:
    """Describe every configured branch policy for a repository."""
    policies = _load_policies(policy)
    branches = policies.options_for_repo(org, repo)
    if not branches:
        typer.echo(f"No Bugzilla policy is configured for {org}/{repo}.")
        return
    typer.echo("The plugin has the following configuration:")
    for branch, options in branches.items():
        typer.echo(f"- {describe_policy(branch, options)}")


@app.command()
def commands() -> None:
    """List the comment commands understood on pull requests."""
    for usage, description in COMMANDS.items():
        typer.echo(f"{usage}: {description}")


if __name__ == "__main__":
    app()
