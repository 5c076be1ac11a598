import pytest

from bugzilla_gate.server.github_connector_inmemory import InMemoryGitHubConnector
from bugzilla_gate.server.labels import INVALID_BUG_LABEL, VALID_BUG_LABEL, reconcile_labels

KEY = ("org", "repo", 1)


def _reconcile(connector, *, needs_valid, needs_invalid):
    reconcile_labels(
        connector, "org", "repo", 1, needs_valid=needs_valid, needs_invalid=needs_invalid
    )


@pytest.mark.parametrize(
    ("needs_valid", "needs_invalid", "expected"),
    [
        (True, False, [VALID_BUG_LABEL]),
        (False, True, [INVALID_BUG_LABEL]),
        (False, False, []),
    ],
)
def test_reconcile_labels_from_any_starting_state(needs_valid, needs_invalid, expected):
    for start in ([], [VALID_BUG_LABEL], [INVALID_BUG_LABEL], [VALID_BUG_LABEL, INVALID_BUG_LABEL]):
        connector = InMemoryGitHubConnector()
        connector.labels[KEY] = ["lgtm", *start]

        _reconcile(connector, needs_valid=needs_valid, needs_invalid=needs_invalid)

        assert sorted(connector.labels[KEY]) == sorted(["lgtm", *expected])


def test_second_pass_with_same_verdict_issues_no_writes():
    connector = InMemoryGitHubConnector()
    connector.labels[KEY] = [VALID_BUG_LABEL]

    _reconcile(connector, needs_valid=False, needs_invalid=True)
    first_pass = len(connector.writes())
    _reconcile(connector, needs_valid=False, needs_invalid=True)

    assert first_pass == 2
    assert len(connector.writes()) == first_pass


def test_label_list_failure_is_swallowed_and_labels_still_added():
    connector = InMemoryGitHubConnector()
    connector.failing_operations.add("get_issue_labels")

    _reconcile(connector, needs_valid=True, needs_invalid=False)

    assert [call.argument for call in connector.writes("add_label")] == [VALID_BUG_LABEL]


def test_label_write_failure_is_swallowed():
    connector = InMemoryGitHubConnector()
    connector.labels[KEY] = [VALID_BUG_LABEL]
    connector.failing_operations.update({"add_label", "remove_label"})

    _reconcile(connector, needs_valid=False, needs_invalid=True)

    assert connector.labels[KEY] == [VALID_BUG_LABEL]
    assert {call.operation for call in connector.writes()} == {"add_label", "remove_label"}
