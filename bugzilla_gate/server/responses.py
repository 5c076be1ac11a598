"""User-facing reply formatting."""

from __future__ import annotations

from bugzilla_gate.server.bugzilla_client import ExternalBug
from bugzilla_gate.validation import Verdict, bug_link

REFRESH_HINT = "<code>/bugzilla refresh</code>"
ABOUT_THIS_BOT = (
    "Instructions for interacting with me using PR comments are available by commenting "
    "<code>/bugzilla refresh</code> or <code>/bugzilla assign-qa</code>. "
    "If you have questions or suggestions related to my behavior, please contact the "
    "repository administrators."
)

NO_BUG_REFERENCED = (
    "No Bugzilla bug is referenced in the title of this pull request.\n"
    "To reference a bug, add 'Bug XXX:' to the title of this pull request and request "
    f"another bug refresh with {REFRESH_HINT}."
)


def format_response(to: str, message: str, reason: str) -> str:
    return f"@{to}: {message}\n\n<details>\n\n{reason}\n\n{ABOUT_THIS_BOT}\n</details>"


def format_response_raw(body: str, body_url: str, login: str, reply: str) -> str:
    """Address ``reply`` to ``login``, quoting the body that triggered it."""
    quoted = "\n".join(f">{line}" for line in body.split("\n"))
    reason = f"In response to [this]({body_url}):\n\n{quoted}\n"
    return format_response(login, reply, reason)


def format_error(action: str, endpoint: str, bug_id: int, error: BaseException) -> str:
    return (
        f"An error was encountered {action} for bug {bug_id} on the Bugzilla server at "
        f"{endpoint}:\n> {error}\n"
        "Please contact an administrator to resolve this issue, then request a bug refresh "
        f"with {REFRESH_HINT}."
    )


def format_not_found(bug_id: int, endpoint: str) -> str:
    return (
        f"No Bugzilla bug with ID {bug_id} exists in the tracker at {endpoint}.\n"
        "Once a valid bug is referenced in the title of this pull request, request a bug "
        f"refresh with {REFRESH_HINT}."
    )


def format_valid(
    bug_id: int,
    endpoint: str,
    verdict: Verdict,
    *,
    moved_to: str = "",
    external_link_added: bool = False,
) -> str:
    response = f"This pull request references {bug_link(bug_id, endpoint)}, which is valid."
    if moved_to:
        response += f" The bug has been moved to the {moved_to} state."
    if external_link_added:
        response += (
            " The bug has been updated to refer to the pull request using the external bug tracker."
        )
    response += "\n\n<details>"
    if not verdict.validations:
        response += "<summary>No validations were run on this bug</summary>"
    else:
        count = len(verdict.validations)
        response += f"<summary>{count} validation(s) were run on this bug</summary>\n"
    for validation in verdict.validations:
        response += f"\n* {validation}"
    response += "</details>"
    return response


def format_invalid(bug_id: int, endpoint: str, verdict: Verdict) -> str:
    reasons = "".join(f" - {error}\n" for error in verdict.errors)
    return (
        f"This pull request references {bug_link(bug_id, endpoint)}, which is invalid:\n"
        f"{reasons}\n"
        f"Comment {REFRESH_HINT} to re-evaluate validity if changes to the Bugzilla bug are "
        "made, or edit the title of this pull request to link to a different bug."
    )


def format_no_qa_contact(bug_id: int, endpoint: str) -> str:
    return f"\n\n{bug_link(bug_id, endpoint)} does not have a QA contact, skipping assignment"


def format_qa_contact_without_email(bug_id: int, endpoint: str) -> str:
    return (
        f"\n\nQA contact for {bug_link(bug_id, endpoint)} does not have a listed email, "
        "skipping assignment"
    )


def format_qa_assignment(logins: list[str], email: str) -> str:
    """Turn the users found for a QA contact's email into an assignment or an explanation."""
    if not logins:
        return (
            "No GitHub users were found matching the public email listed for the QA contact "
            f"in Bugzilla ({email}), skipping assignment."
        )
    if len(logins) == 1:
        return f"Assigning the QA contact for review:\n/assign @{logins[0]}"
    response = (
        "Multiple GitHub users were found matching the public email listed for the QA "
        f"contact in Bugzilla ({email}), skipping assignment. List of users with matching email:"
    )
    for login in logins:
        response += f"\n\t- {login}"
    return response


def format_unrecognized_state(bug_id: int, endpoint: str, actual: str, target: str) -> str:
    return (
        f"{bug_link(bug_id, endpoint)} is in an unrecognized state ({actual}) and will not be "
        f"moved to the {target} state."
    )


def pull_request_link(link: ExternalBug) -> str:
    return f"[{link.org}/{link.repo}#{link.number}]({link.url})"


def format_merge_outcome(
    bug_id: int,
    endpoint: str,
    target: str,
    merged: list[ExternalBug],
    unmerged: list[tuple[ExternalBug, str]],
) -> str:
    merged_links = ", ".join(pull_request_link(link) for link in merged)
    if not unmerged:
        return (
            f"All pull requests linked via external trackers have merged: {merged_links}. "
            f"{bug_link(bug_id, endpoint)} has been moved to the {target} state."
        )
    statements = "\n".join(f"\n * {pull_request_link(link)} is {state}" for link, state in unmerged)
    merged_statement = (
        f"Some pull requests linked via external trackers have merged: {merged_links}."
        if merged
        else "No pull requests linked via external trackers have merged."
    )
    return (
        f"{merged_statement} "
        f"The following pull requests linked via external trackers have not merged:{statements}\n"
        f"{bug_link(bug_id, endpoint)} has not been moved to the {target} state."
    )
