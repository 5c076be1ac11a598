import logging
from pathlib import Path

import pytest

from bugzilla_gate.shared.observability import (
    LOGGER_NAME,
    build_event_message,
    configure_logging,
    get_logger,
    log_event,
)
from bugzilla_gate.shared.settings import RuntimeSettings, redact_secret


@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_build_event_message_sorts_and_quotes_fields():
    message = build_event_message(
        event="bug_update_failed",
        fields={
            "repo": "org/repo",
            "bug_id": 12,
            "merged": True,
            "missing": None,
            "title": "Bug 12: fix  the\nthing",
            "error": RuntimeError("boom"),
        },
    )

    assert message == (
        "event=bug_update_failed bug_id=12 error=\"RuntimeError: boom\" merged=true "
        'missing=null repo=org/repo title="Bug 12: fix the thing"'
    )


def test_build_event_message_truncates_long_values_and_hides_objects():
    message = build_event_message(event="e", fields={"long": "x" * 200, "obj": object()})

    assert f"long={'x' * 120}..." in message
    assert "obj=<object>" in message


def test_configure_logging_routes_events_at_requested_level(capsys):
    configure_logging("info")

    log_event(get_logger("app"), "event_handling_started", number=1)
    log_event(get_logger("app"), "bug_valid", level=logging.DEBUG, bug_id=1)

    err = capsys.readouterr().err
    assert "INFO bugzilla_gate.app event=event_handling_started number=1" in err
    assert "bug_valid" not in err


def test_configure_logging_unset_is_silent(capsys):
    configure_logging(None)

    log_event(get_logger("merge"), "bug_update_failed", level=logging.ERROR)

    assert capsys.readouterr().err == ""


def test_configure_logging_rejects_unknown_level():
    with pytest.raises(ValueError, match="Unsupported log level"):
        configure_logging("loud")


def test_runtime_settings_from_env_defaults():
    settings = RuntimeSettings.from_env({})

    assert settings.github_connector == "in_memory"
    assert settings.bugzilla_client == "in_memory"
    assert settings.bugzilla_endpoint == "https://bugzilla.redhat.com"
    assert settings.policy_path is None
    assert settings.log_level is None


def test_runtime_settings_redacts_api_key():
    settings = RuntimeSettings.from_env(
        {
            "BUGZILLA_GATE_BUGZILLA_CLIENT": " API ",
            "BUGZILLA_GATE_BUGZILLA_API_KEY": "abcdefghijkl",
            "BUGZILLA_GATE_POLICY_PATH": "/etc/bugzilla-gate/policy.yaml",
        }
    )

    assert settings.bugzilla_client == "api"
    assert settings.policy_path == Path("/etc/bugzilla-gate/policy.yaml")
    assert settings.redacted()["bugzilla_api_key"] == "abcd...ijkl"
    assert redact_secret("short") == "***"
    assert redact_secret(None) == "unset"


def test_runtime_settings_github_tokens_fall_back_to_shared_token():
    settings = RuntimeSettings.from_env(
        {
            "BUGZILLA_GATE_GITHUB_READ_TOKEN": "read-token",
            "BUGZILLA_GATE_GITHUB_TOKEN": "shared-token",
            "GITHUB_TOKEN": "ignored-token",
        }
    )

    assert settings.github_read_token == "read-token"
    assert settings.github_write_token == "shared-token"
    assert settings.redacted()["github_read_token"] == "read...oken"
    assert settings.redacted()["github_write_token"] == "shar...oken"


def test_runtime_settings_github_tokens_unset():
    settings = RuntimeSettings.from_env({"BUGZILLA_GATE_GITHUB_WRITE_TOKEN": "  "})

    assert settings.github_read_token is None
    assert settings.github_write_token is None
    assert settings.redacted()["github_write_token"] == "unset"
