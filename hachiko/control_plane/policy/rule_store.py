"""Ordered, versioned policy rule store with copy-on-write updates."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable

from pydantic import ValidationError

from hachiko.control_plane.models.policy_contracts import PolicyRule
from hachiko.control_plane.policy.builtin_rules import build_builtin_rules
from hachiko.shared.errors import ConfigurationError
from hachiko.shared.settings import HachikoConfig

logger = logging.getLogger(__name__)


class PolicyRuleStore:
    """Readers see a whole tuple of rules; writers swap in a new tuple under a lock."""

    def __init__(self, rules: Iterable[PolicyRule] = ()) -> None:
        self._lock = threading.Lock()
        self._rules: tuple[PolicyRule, ...] = _dedupe(rules)
        self._version = 1

    @property
    def version(self) -> int:
        return self._version

    def rules(self) -> tuple[PolicyRule, ...]:
        return self._rules

    def enabled_rules(self) -> tuple[PolicyRule, ...]:
        return tuple(rule for rule in self._rules if rule.enabled)

    def get(self, rule_id: str) -> PolicyRule | None:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def upsert(self, rule: PolicyRule) -> None:
        with self._lock:
            current = list(self._rules)
            for index, existing in enumerate(current):
                if existing.id == rule.id:
                    current[index] = rule
                    action = "updated"
                    break
            else:
                current.append(rule)
                action = "added"
            self._publish(tuple(current))
        logger.info("policy rule %s rule_id=%s version=%s", action, rule.id, self._version)

    def remove(self, rule_id: str) -> bool:
        with self._lock:
            remaining = tuple(rule for rule in self._rules if rule.id != rule_id)
            if len(remaining) == len(self._rules):
                return False
            self._publish(remaining)
        logger.info("policy rule removed rule_id=%s version=%s", rule_id, self._version)
        return True

    def set_enabled(self, rule_id: str, enabled: bool) -> bool:
        with self._lock:
            current = list(self._rules)
            for index, existing in enumerate(current):
                if existing.id == rule_id:
                    current[index] = existing.model_copy(update={"enabled": enabled})
                    self._publish(tuple(current))
                    break
            else:
                return False
        logger.info(
            "policy rule toggled rule_id=%s enabled=%s version=%s", rule_id, enabled, self._version
        )
        return True

    def replace_all(self, rules: Iterable[PolicyRule]) -> None:
        with self._lock:
            self._publish(_dedupe(rules))
        logger.info("policy rules reloaded count=%s version=%s", len(self._rules), self._version)

    def _publish(self, rules: tuple[PolicyRule, ...]) -> None:
        self._rules = rules
        self._version += 1


def parse_rule_definitions(raw_rules: Iterable[Any]) -> list[PolicyRule]:
    """Validate rule dicts from config; any malformed entry fails startup."""

    parsed: list[PolicyRule] = []
    for index, raw in enumerate(raw_rules):
        if not isinstance(raw, dict):
            raise ConfigurationError(
                f"Policy rule #{index} must be a mapping", details={"index": index}
            )
        try:
            parsed.append(PolicyRule.model_validate(raw))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid policy rule #{index} ({raw.get('id', '?')})",
                details={"index": index, "errors": [err["msg"] for err in exc.errors()]},
            ) from exc
    return parsed


def build_rule_store(config: HachikoConfig | None = None) -> PolicyRuleStore:
    resolved = config or HachikoConfig()
    store = PolicyRuleStore(build_builtin_rules(resolved.policy))
    for rule in parse_rule_definitions(resolved.rules):
        store.upsert(rule)
    logger.info(
        "policy rule store initialized rules=%s enabled=%s",
        len(store.rules()),
        len(store.enabled_rules()),
    )
    return store


def _dedupe(rules: Iterable[PolicyRule]) -> tuple[PolicyRule, ...]:
    # Later definitions replace earlier ones but keep the first position.
    ordered: dict[str, PolicyRule] = {}
    for rule in rules:
        ordered[rule.id] = rule
    return tuple(ordered.values())
