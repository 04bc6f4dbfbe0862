from __future__ import annotations

from pathlib import Path

import pytest

from hachiko.shared.errors import ConfigurationError, HachikoError, format_error_for_issue
from hachiko.shared.settings import CollectorSettings, load_hachiko_config


def test_missing_config_file_yields_defaults(tmp_path: Path) -> None:
    config = load_hachiko_config(tmp_path / "absent.yml")
    assert config.policy.network == "none"
    assert config.policy.step_timeout_minutes == 15
    assert config.policy.max_attempts_per_step == 2
    assert config.rules == []


def test_config_path_from_env(tmp_path: Path) -> None:
    path = tmp_path / "hachiko.yml"
    path.write_text(
        "policy:\n"
        "  network: restricted\n"
        "  step_timeout_minutes: 45\n"
        "  risky_globs: []\n"
        "rules:\n"
        "  - id: no-lockfiles\n"
        "    type: file_access\n"
        "    severity: warning\n"
        "    conditions:\n"
        "      - field: files\n"
        "        operator: matches\n"
        "        value: '*.lock'\n"
        "agents:\n"
        "  cursor: {}\n"
    )
    config = load_hachiko_config(env={"HACHIKO_CONFIG_PATH": str(path)})
    assert config.policy.network == "restricted"
    assert config.policy.step_timeout_minutes == 45
    assert config.policy.risky_globs == []
    assert config.rules[0]["id"] == "no-lockfiles"


def test_empty_config_file_yields_defaults(tmp_path: Path) -> None:
    path = tmp_path / "hachiko.yml"
    path.write_text("")
    assert load_hachiko_config(path).policy.network == "none"


@pytest.mark.parametrize(
    "content",
    [
        "policy: [unclosed\n",
        "- just\n- a list\n",
        "policy:\n  network: sometimes\n",
        "policy:\n  step_timeout_minutes: 500\n",
        "policy:\n  unknown_knob: true\n",
    ],
)
def test_invalid_config_is_fatal(tmp_path: Path, content: str) -> None:
    path = tmp_path / "hachiko.yml"
    path.write_text(content)
    with pytest.raises(ConfigurationError):
        load_hachiko_config(path)


def test_collector_settings_from_env() -> None:
    settings = CollectorSettings.from_env(
        {
            "GITHUB_REPOSITORY": "acme/web",
            "HACHIKO_SIGNAL_MAX_ATTEMPTS": "5",
            "HACHIKO_SIGNAL_BACKOFF_S": "0.5",
            "HACHIKO_SIGNAL_TIMEOUT_S": "12",
            "HACHIKO_GITHUB_API_URL": "https://ghe.example.com/api/v3/",
        }
    )
    assert settings.repo == "acme/web"
    assert settings.max_attempts == 5
    assert settings.backoff_s == 0.5
    assert settings.timeout_s == 12.0
    assert settings.base_url == "https://ghe.example.com/api/v3"

    assert CollectorSettings.from_env({"HACHIKO_REPO": "acme/api"}).repo == "acme/api"

    with pytest.raises(ConfigurationError):
        CollectorSettings.from_env({"HACHIKO_SIGNAL_MAX_ATTEMPTS": "many"})


def test_format_error_for_issue() -> None:
    rendered = format_error_for_issue(
        HachikoError("Step rejected", reason_code="invalid_transition", details={"step": 5})
    )
    assert rendered.startswith("**HachikoError**: Step rejected")
    assert "- step: 5" in rendered
    assert rendered.endswith("**Code**: `invalid_transition`")

    try:
        raise ValueError("boom")
    except ValueError as exc:
        plain = format_error_for_issue(exc)
    assert plain.startswith("**Error**: boom")
    assert "ValueError: boom" in plain
