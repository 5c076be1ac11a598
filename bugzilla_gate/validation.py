"""Bug validation against a branch policy."""

from __future__ import annotations

from dataclasses import dataclass

from bugzilla_gate.policy import BranchPolicy, bug_matches_states, pretty_states, pretty_status
from bugzilla_gate.server.bugzilla_client import Bug


def bug_link(bug_id: int, endpoint: str) -> str:
    return f"[Bugzilla bug {bug_id}]({endpoint}/show_bug.cgi?id={bug_id})"


@dataclass(frozen=True)
class Verdict:
    validations: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class _Check:
    passed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()


def _check_open(bug: Bug, policy: BranchPolicy) -> _Check:
    if policy.is_open is None:
        return _Check()
    if policy.is_open != bug.is_open:
        not_ = "" if policy.is_open else "not "
        was = "isn't" if policy.is_open else "is"
        return _Check(failed=(f"expected the bug to {not_}be open, but it {was}",))
    expected = "open" if policy.is_open else "not open"
    was = "is" if bug.is_open else "isn't"
    return _Check(passed=(f"bug {was} open, matching expected state ({expected})",))


def _check_target_release(bug: Bug, policy: BranchPolicy) -> _Check:
    wanted = policy.target_release
    if wanted is None:
        return _Check()
    # Bugzilla returns target_release as a list but only the first entry is ever shown.
    if not bug.target_release:
        return _Check(
            failed=(
                f'expected the bug to target the "{wanted}" release, but no target release was set',
            )
        )
    actual = bug.target_release[0]
    if actual != wanted:
        return _Check(
            failed=(
                f'expected the bug to target the "{wanted}" release, '
                f'but it targets "{actual}" instead',
            )
        )
    return _Check(
        passed=(
            f"bug target release ({actual}) matches configured target release "
            f"for branch ({wanted})",
        )
    )


def _check_states(bug: Bug, policy: BranchPolicy) -> _Check:
    if policy.valid_states is None:
        return _Check()
    allowed = policy.allowed_states()
    pretty_allowed = ", ".join(pretty_states(allowed))
    actual = pretty_status(bug.status, bug.resolution)
    if not bug_matches_states(bug, allowed):
        return _Check(
            failed=(
                f"expected the bug to be in one of the following states: {pretty_allowed}, "
                f"but it is {actual} instead",
            )
        )
    return _Check(
        passed=(
            f"bug is in the state {actual}, which is one of the valid states ({pretty_allowed})",
        )
    )


def _check_dependent_states(dependents: list[Bug], policy: BranchPolicy, endpoint: str) -> _Check:
    if policy.dependent_bug_states is None:
        return _Check()
    expected = ", ".join(pretty_states(policy.dependent_bug_states))
    passed: list[str] = []
    failed: list[str] = []
    for dependent in dependents:
        link = bug_link(dependent.id, endpoint)
        actual = pretty_status(dependent.status, dependent.resolution)
        if bug_matches_states(dependent, policy.dependent_bug_states):
            passed.append(
                f"dependent bug {link} is in the state {actual}, "
                f"which is one of the valid states ({expected})"
            )
        else:
            failed.append(
                f"expected dependent {link} to be in one of the following states: {expected}, "
                f"but it is {actual} instead"
            )
    return _Check(passed=tuple(passed), failed=tuple(failed))


def _check_dependent_releases(
    dependents: list[Bug], policy: BranchPolicy, endpoint: str
) -> _Check:
    wanted = policy.dependent_bug_target_release
    if wanted is None:
        return _Check()
    passed: list[str] = []
    failed: list[str] = []
    for dependent in dependents:
        link = bug_link(dependent.id, endpoint)
        if not dependent.target_release:
            failed.append(
                f'expected dependent {link} to target the "{wanted}" release, '
                "but no target release was set"
            )
        elif dependent.target_release[0] != wanted:
            failed.append(
                f'expected dependent {link} to target the "{wanted}" release, '
                f'but it targets "{dependent.target_release[0]}" instead'
            )
        else:
            passed.append(
                f'dependent {link} targets the "{dependent.target_release[0]}" release, '
                f"matching the expected ({wanted}) release"
            )
    return _Check(passed=tuple(passed), failed=tuple(failed))


def _check_has_dependents(
    bug: Bug, dependents: list[Bug], policy: BranchPolicy, endpoint: str
) -> _Check:
    if dependents:
        return _Check(passed=("bug has dependents",))
    link = bug_link(bug.id, endpoint)
    states = policy.dependent_bug_states
    release = policy.dependent_bug_target_release
    if states is not None and release is not None:
        expected = ", ".join(pretty_states(states))
        return _Check(
            failed=(
                f'expected {link} to depend on a bug targeting the "{release}" release and in one '
                f"of the following states: {expected}, but no dependents were found",
            )
        )
    if states is not None:
        expected = ", ".join(pretty_states(states))
        return _Check(
            failed=(
                f"expected {link} to depend on a bug in one of the following states: {expected}, "
                "but no dependents were found",
            )
        )
    if release is not None:
        return _Check(
            failed=(
                f'expected {link} to depend on a bug targeting the "{release}" release, '
                "but no dependents were found",
            )
        )
    return _Check()


def validate_bug(
    bug: Bug, dependents: list[Bug], policy: BranchPolicy, endpoint: str
) -> Verdict:
    """Evaluate every configured constraint and collect what passed and what failed."""
    checks = [
        _check_open(bug, policy),
        _check_target_release(bug, policy),
        _check_states(bug, policy),
        _check_dependent_states(dependents, policy, endpoint),
        _check_dependent_releases(dependents, policy, endpoint),
        _check_has_dependents(bug, dependents, policy, endpoint),
    ]
    return Verdict(
        validations=tuple(message for check in checks for message in check.passed),
        errors=tuple(message for check in checks for message in check.failed),
    )
