"""Evaluate a proposed agent action against every enabled policy rule."""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Callable

from wcmatch import glob

from hachiko.control_plane.models.policy_contracts import (
    BLOCKING_SEVERITIES,
    PolicyCondition,
    PolicyContext,
    PolicyEvaluationResult,
    PolicyRule,
    PolicyViolation,
)
from hachiko.control_plane.policy.rule_store import PolicyRuleStore

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_MISSING = object()
_GLOB_FLAGS = glob.GLOBSTAR | glob.DOTGLOB


class PolicyEvaluator:
    def __init__(self, store: PolicyRuleStore) -> None:
        self.store = store

    def evaluate(self, context: PolicyContext | dict[str, Any]) -> PolicyEvaluationResult:
        """Evaluate all enabled rules in order; never short-circuits, never raises on a block."""

        if not isinstance(context, PolicyContext):
            context = PolicyContext.model_validate(context)
        data = context.model_dump()

        violations: list[PolicyViolation] = []
        warnings: list[PolicyViolation] = []
        requires_approval = False
        for rule in self.store.enabled_rules():
            message = _violated_message(rule, data)
            if message is None:
                continue
            blocking = rule.severity in BLOCKING_SEVERITIES
            violation = PolicyViolation(
                type=rule.type,
                message=message,
                pattern=rule.id,
                severity="error" if blocking else "warning",
            )
            if blocking:
                violations.append(violation)
            else:
                warnings.append(violation)
            if any(action.type == "require_approval" for action in rule.actions):
                requires_approval = True

        result = PolicyEvaluationResult(
            allowed=not violations,
            violations=tuple(violations),
            warnings=tuple(warnings),
            requires_approval=requires_approval,
        )
        logger.debug(
            "policy evaluation plan_id=%s step_id=%s allowed=%s violations=%s warnings=%s "
            "requires_approval=%s",
            context.plan_id,
            context.step_id,
            result.allowed,
            len(violations),
            len(warnings),
            requires_approval,
        )
        return result


def _violated_message(rule: PolicyRule, data: dict[str, Any]) -> str | None:
    # Conditions inside one rule are OR'd: any match violates the rule.
    for condition in rule.conditions:
        if evaluate_condition(condition, data):
            for action in rule.actions:
                if action.message:
                    return action.message
            return rule.description or rule.name or rule.id
    return None


def evaluate_condition(condition: PolicyCondition, data: dict[str, Any]) -> bool:
    actual = resolve_field(data, condition.field)
    if actual is _MISSING:
        actual = None
    expected = condition.value
    operator = condition.operator

    if operator == "equals":
        return _equals(actual, expected)
    if operator == "not_equals":
        return not _equals(actual, expected)
    if operator == "matches":
        return _any_item(actual, lambda item: _matches_glob(item, expected))
    if operator == "not_matches":
        return not _any_item(actual, lambda item: _matches_glob(item, expected))
    if operator == "any_not_matches":
        return _any_item(actual, lambda item: not _matches_glob(item, expected))
    if operator == "contains":
        return _any_item(
            actual, lambda item: _contains(item, expected, condition.case_sensitive)
        )
    if operator == "not_contains":
        return not _any_item(
            actual, lambda item: _contains(item, expected, condition.case_sensitive)
        )
    if operator == "greater_than":
        return _compare(actual, expected, greater=True)
    if operator == "less_than":
        return _compare(actual, expected, greater=False)
    return False


def resolve_field(data: Any, path: str) -> Any:
    """Walk a dotted path; each segment may be snake_case or camelCase."""

    value = data
    for part in path.split("."):
        if not isinstance(value, dict):
            return _MISSING
        if part in value:
            value = value[part]
            continue
        snake = _CAMEL_BOUNDARY.sub("_", part).lower()
        if snake in value:
            value = value[snake]
            continue
        return _MISSING
    return value


def _any_item(actual: Any, predicate: Callable[[Any], bool]) -> bool:
    if actual is None:
        return False
    if isinstance(actual, (list, tuple)):
        return any(predicate(item) for item in actual if item is not None)
    return bool(predicate(actual))


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple)) and isinstance(expected, (list, tuple)):
        try:
            return set(actual) == set(expected)
        except TypeError:
            return sorted(map(repr, actual)) == sorted(map(repr, expected))
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def _patterns(expected: Any) -> list[str]:
    if isinstance(expected, (list, tuple)):
        return [str(pattern) for pattern in expected]
    return [str(expected)]


def _matches_glob(item: Any, expected: Any) -> bool:
    path = str(item).replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    return glob.globmatch(path, _patterns(expected), flags=_GLOB_FLAGS)


def _contains(item: Any, expected: Any, case_sensitive: bool) -> bool:
    haystack = str(item) if case_sensitive else str(item).lower()
    for needle in _patterns(expected):
        if (needle if case_sensitive else needle.lower()) in haystack:
            return True
    return False


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _compare(actual: Any, expected: Any, *, greater: bool) -> bool:
    left = _to_number(actual)
    right = _to_number(expected)
    if left is None or right is None:
        return False
    return left > right if greater else left < right
