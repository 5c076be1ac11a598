import logging

import pytest

from bugzilla_gate.policy import BranchPolicy
from bugzilla_gate.server.events import (
    ISSUES_NOT_SUPPORTED,
    Command,
    Event,
    GenericCommentEvent,
    PullRequestEvent,
    digest_comment,
    digest_pull_request,
    extract_bug_id,
    parse_command,
)
from bugzilla_gate.server.github_connector import PullRequest
from bugzilla_gate.server.github_connector_inmemory import InMemoryGitHubConnector


def _pre(**overrides) -> PullRequestEvent:
    fields = {
        "action": "opened",
        "org": "org",
        "repo": "repo",
        "base_ref": "main",
        "number": 1,
        "title": "Bug 123: fix the thing",
        "state": "open",
        "merged": False,
        "html_url": "https://github.com/org/repo/pull/1",
        "login": "dev",
    }
    fields.update(overrides)
    return PullRequestEvent(**fields)


def _comment(**overrides) -> GenericCommentEvent:
    fields = {
        "action": "created",
        "org": "org",
        "repo": "repo",
        "number": 1,
        "is_pr": True,
        "body": "/bugzilla refresh",
        "html_url": "https://github.com/org/repo/pull/1#issuecomment-1",
        "login": "reviewer",
    }
    fields.update(overrides)
    return GenericCommentEvent(**fields)


def _policy(validate_by_default=None):
    return lambda org, repo, branch: BranchPolicy(validate_by_default=validate_by_default)


@pytest.mark.parametrize(
    "title",
    [
        "Bug 1234: fix flake",
        "bug 1234: lowercase works",
        "BUG 1234:",
        "[release-4.5] Bug 1234: cherry-pick",
        "Bug 1234: Bug 99: only the first reference counts",
    ],
)
def test_extract_bug_id_finds_reference(title):
    assert extract_bug_id(title) == 1234


@pytest.mark.parametrize(
    "title",
    [
        "",
        "fix flake",
        "Bug 1234 fix flake",
        "Bug: 1234",
        "Bug abc: nope",
        "Bug1234: no space",
        "Bug \u0661\u0662: arabic-indic digits",
        "Bug \u00b2: superscript",
    ],
)
def test_extract_bug_id_without_reference(title):
    assert extract_bug_id(title) is None


def test_extract_bug_id_skips_references_without_colon():
    assert extract_bug_id("Revert bug 12 and Bug 34: again") == 34


def test_extract_bug_id_keeps_scanning_past_non_ascii_digits():
    assert extract_bug_id("Bug \u00b2: see Bug 5: fix") == 5


def test_extract_bug_id_unconvertible_digits_are_logged_and_skipped(caplog, monkeypatch):
    monkeypatch.setattr(logging.getLogger("bugzilla_gate"), "propagate", True)
    # int() refuses decimal strings past the interpreter's digit limit.
    huge = "9" * 5000
    with caplog.at_level(logging.WARNING, logger="bugzilla_gate"):
        assert extract_bug_id(f"Bug {huge}: overflow") is None
        assert extract_bug_id(f"Bug {huge}: then Bug 6: fix") == 6
    assert "bug_id_unparseable" in caplog.text


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("/bugzilla refresh", Command.REFRESH),
        ("/BUGZILLA REFRESH  ", Command.REFRESH),
        ("thanks!\n/bugzilla refresh\n", Command.REFRESH),
        ("/bugzilla assign-qa", Command.ASSIGN_QA),
        ("please /bugzilla refresh", None),
        ("/bugzilla refresh now", None),
        ("/lgtm", None),
    ],
)
def test_parse_command(body, expected):
    assert parse_command(body) is expected


@pytest.mark.parametrize("action", ["opened", "reopened", "edited"])
def test_digest_pull_request_qualifying_actions(action):
    event = digest_pull_request(_pre(action=action), None)

    assert event == Event(
        org="org",
        repo="repo",
        base_ref="main",
        number=1,
        bug_id=123,
        state="open",
        body="Bug 123: fix the thing",
        html_url="https://github.com/org/repo/pull/1",
        login="dev",
    )


@pytest.mark.parametrize(
    ("action", "merged"),
    [("closed", False), ("labeled", False), ("synchronize", False), ("assigned", True)],
)
def test_digest_pull_request_ignores_other_actions(action, merged):
    assert digest_pull_request(_pre(action=action, merged=merged), True) is None


def test_digest_pull_request_merge_event():
    event = digest_pull_request(_pre(action="closed", merged=True, state="closed"), None)

    assert event is not None
    assert event.merged is True
    assert event.state == "closed"


def test_digest_pull_request_without_reference_is_suppressed_by_default():
    assert digest_pull_request(_pre(title="fix the thing"), None) is None
    assert digest_pull_request(_pre(title="fix the thing"), False) is None


def test_digest_pull_request_without_reference_validated_by_default():
    event = digest_pull_request(_pre(title="fix the thing"), True)

    assert event is not None
    assert event.missing is True
    assert event.bug_id == 0


def test_title_edit_with_same_bug_is_suppressed():
    pre = _pre(action="edited", title="Bug 123: better wording", previous_title="Bug 123: wording")

    assert digest_pull_request(pre, True) is None


def test_title_edit_to_different_bug_is_actionable():
    pre = _pre(action="edited", title="Bug 456: now this", previous_title="Bug 123: was that")

    event = digest_pull_request(pre, None)

    assert event is not None
    assert event.bug_id == 456


def test_title_edit_removing_reference_is_actionable():
    pre = _pre(action="edited", title="no bug now", previous_title="Bug 123: was that")

    event = digest_pull_request(pre, None)

    assert event is not None
    assert event.missing is True


def test_title_edit_from_unreferenced_title_follows_current_reference():
    without = _pre(action="edited", title="still none", previous_title="none before")
    with_ref = _pre(action="edited", title="Bug 9: added", previous_title="none before")

    assert digest_pull_request(without, None) is None
    event = digest_pull_request(with_ref, None)
    assert event is not None and event.bug_id == 9


def test_pull_request_event_from_payload_reads_previous_title():
    payload = {
        "action": "edited",
        "number": 5,
        "changes": {"title": {"from": "Bug 1: old"}},
        "pull_request": {
            "number": 5,
            "title": "Bug 2: new",
            "state": "open",
            "merged": False,
            "html_url": "https://github.com/org/repo/pull/5",
            "user": {"login": "dev"},
            "base": {"ref": "release-4.6", "repo": {"name": "repo", "owner": {"login": "org"}}},
        },
    }

    pre = PullRequestEvent.from_payload(payload)

    assert pre.previous_title == "Bug 1: old"
    assert (pre.org, pre.repo, pre.base_ref, pre.number) == ("org", "repo", "release-4.6", 5)
    assert PullRequestEvent.from_payload({**payload, "changes": {}}).previous_title is None


def test_generic_comment_from_issue_comment_payload():
    payload = {
        "action": "created",
        "repository": {"name": "repo", "owner": {"login": "org"}},
        "issue": {"number": 3, "pull_request": {"url": "..."}},
        "comment": {
            "body": "/bugzilla refresh",
            "html_url": "https://github.com/org/repo/pull/3#c",
            "user": {"login": "reviewer"},
        },
    }

    gce = GenericCommentEvent.from_payload("issue_comment", payload)

    assert gce.is_pr is True
    assert gce.number == 3
    assert gce.login == "reviewer"
    issue_only = {**payload, "issue": {"number": 3}}
    assert GenericCommentEvent.from_payload("issue_comment", issue_only).is_pr is False


def test_generic_comment_from_submitted_review_counts_as_created():
    payload = {
        "action": "submitted",
        "repository": {"name": "repo", "owner": {"login": "org"}},
        "pull_request": {"number": 8},
        "review": {"body": "/bugzilla assign-qa", "html_url": "u", "user": {"login": "qa"}},
    }

    gce = GenericCommentEvent.from_payload("pull_request_review", payload)

    assert gce.action == "created"
    assert gce.body == "/bugzilla assign-qa"


def test_generic_comment_rejects_unknown_event_type():
    with pytest.raises(ValueError, match="Unsupported comment event type"):
        GenericCommentEvent.from_payload("push", {})


def test_digest_comment_ignores_edits_and_other_text():
    connector = InMemoryGitHubConnector()

    assert digest_comment(connector, _comment(action="edited"), _policy()) is None
    assert digest_comment(connector, _comment(body="/lgtm"), _policy()) is None
    assert connector.calls == []


def test_digest_comment_on_issue_replies_and_produces_no_event():
    connector = InMemoryGitHubConnector()

    event = digest_comment(connector, _comment(is_pr=False), _policy())

    assert event is None
    [reply] = connector.comments[("org", "repo", 1)]
    assert reply.startswith(f"@reviewer: {ISSUES_NOT_SUPPORTED}")
    assert ">/bugzilla refresh" in reply


def test_digest_comment_fetches_pull_request_for_reference():
    connector = InMemoryGitHubConnector()
    connector.add_pull_request(
        PullRequest(
            org="org",
            repo="repo",
            number=1,
            title="Bug 77: thing",
            base_ref="release-4.6",
            state="open",
            merged=False,
        )
    )

    event = digest_comment(connector, _comment(body="/bugzilla assign-qa"), _policy())

    assert event is not None
    assert event.bug_id == 77
    assert event.assign is True
    assert event.base_ref == "release-4.6"
    assert event.body == "/bugzilla assign-qa"
    assert event.login == "reviewer"


def test_digest_comment_without_reference_needs_validate_by_default():
    connector = InMemoryGitHubConnector()
    connector.add_pull_request(
        PullRequest(
            org="org",
            repo="repo",
            number=1,
            title="no ref",
            base_ref="main",
            state="open",
            merged=False,
        )
    )

    assert digest_comment(connector, _comment(), _policy()) is None
    assert connector.writes() == []

    event = digest_comment(connector, _comment(), _policy(validate_by_default=True))
    assert event is not None
    assert event.missing is True
    assert event.assign is False
