from __future__ import annotations

import threading

import pytest

from hachiko.control_plane.models.policy_contracts import PolicyRule
from hachiko.control_plane.policy.builtin_rules import build_builtin_rules
from hachiko.control_plane.policy.evaluator import PolicyEvaluator
from hachiko.control_plane.policy.rule_store import (
    PolicyRuleStore,
    build_rule_store,
    parse_rule_definitions,
)
from hachiko.shared.errors import ConfigurationError
from hachiko.shared.settings import HachikoConfig, PolicySettings


def _rule(rule_id: str, severity: str = "error") -> PolicyRule:
    return PolicyRule.model_validate(
        {
            "id": rule_id,
            "type": "file_access",
            "severity": severity,
            "conditions": [{"field": "files", "operator": "matches", "value": "*.lock"}],
        }
    )


def test_builtin_rules_follow_policy_settings() -> None:
    default_ids = [rule.id for rule in build_builtin_rules(PolicySettings())]
    assert default_ids == [
        "block_sensitive_files",
        "block_risky_paths",
        "enforce_allowlist",
        "limit_execution_time",
        "block_dangerous_commands",
        "block_network_access",
        "require_write_permissions",
    ]

    open_ids = [
        rule.id
        for rule in build_builtin_rules(
            PolicySettings(network="unrestricted", risky_globs=[], allowlist_globs=[])
        )
    ]
    assert "block_network_access" not in open_ids
    assert "enforce_allowlist" not in open_ids
    assert "block_risky_paths" not in open_ids

    timeout_rule = build_builtin_rules(PolicySettings(step_timeout_minutes=30))[3]
    assert timeout_rule.conditions[0].value == 1800


def test_upsert_replaces_in_place_and_appends_new() -> None:
    store = PolicyRuleStore([_rule("a"), _rule("b")])
    start = store.version

    store.upsert(_rule("a", severity="warning"))
    store.upsert(_rule("c"))

    assert [rule.id for rule in store.rules()] == ["a", "b", "c"]
    assert store.get("a").severity == "warning"
    assert store.version == start + 2


def test_remove_and_toggle() -> None:
    store = PolicyRuleStore([_rule("a"), _rule("b")])

    assert store.set_enabled("a", False) is True
    assert [rule.id for rule in store.enabled_rules()] == ["b"]
    assert store.get("a").enabled is False
    assert store.set_enabled("missing", True) is False

    version = store.version
    assert store.remove("b") is True
    assert store.remove("b") is False
    assert store.version == version + 1
    assert store.get("b") is None


def test_replace_all_dedupes_keeping_first_position() -> None:
    store = PolicyRuleStore()
    store.replace_all([_rule("a"), _rule("b"), _rule("a", severity="info")])
    assert [rule.id for rule in store.rules()] == ["a", "b"]
    assert store.get("a").severity == "info"


def test_readers_never_see_partial_lists() -> None:
    store = PolicyRuleStore([_rule("base")])
    seen_sizes: set[int] = set()
    errors: list[str] = []

    def reader() -> None:
        for _ in range(500):
            snapshot = store.rules()
            if snapshot[0].id != "base":
                errors.append("base rule moved")
            seen_sizes.add(len(snapshot))

    def writer() -> None:
        for index in range(200):
            store.upsert(_rule(f"extra-{index}"))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    threads.append(threading.Thread(target=writer))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.rules()) == 201
    assert store.version == 201
    assert seen_sizes <= set(range(1, 202))


def test_config_rules_extend_and_override_builtins() -> None:
    config = HachikoConfig(
        rules=[
            {
                "id": "no-lockfiles",
                "type": "file_access",
                "severity": "warning",
                "conditions": [{"field": "files", "operator": "matches", "value": "*.lock"}],
            },
            {
                "id": "require_write_permissions",
                "type": "user_permissions",
                "severity": "error",
                "enabled": False,
                "conditions": [{"field": "user.type", "operator": "equals", "value": "Bot"}],
            },
        ]
    )
    store = build_rule_store(config)
    ids = [rule.id for rule in store.rules()]

    assert ids[-1] == "no-lockfiles"
    assert ids.index("require_write_permissions") < ids.index("no-lockfiles")
    assert store.get("require_write_permissions").enabled is False


def test_malformed_rule_definitions_are_fatal() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        parse_rule_definitions([{"id": "bad", "type": "file_access", "severity": "loud"}])
    assert exc_info.value.reason_code == "configuration_error"
    assert exc_info.value.details["index"] == 0

    with pytest.raises(ConfigurationError):
        parse_rule_definitions(["not-a-mapping"])

    with pytest.raises(ConfigurationError):
        build_rule_store(
            HachikoConfig(
                rules=[
                    {
                        "id": "bad-op",
                        "type": "file_access",
                        "severity": "error",
                        "conditions": [{"field": "files", "operator": "like", "value": "*"}],
                    }
                ]
            )
        )


def test_workflow_edits_can_be_allowed() -> None:
    context = {"files": [".github/workflows/ci.yml"]}
    strict = PolicyRuleStore(build_builtin_rules(PolicySettings(allowlist_globs=[])))
    relaxed = PolicyRuleStore(
        build_builtin_rules(PolicySettings(allow_workflow_edits=True, allowlist_globs=[]))
    )

    assert PolicyEvaluator(strict).evaluate(context).allowed is False
    assert PolicyEvaluator(relaxed).evaluate(context).allowed is True
    risky = relaxed.get("block_risky_paths")
    assert risky is not None
    assert ".github/workflows/**" not in risky.conditions[0].value
