"""Pydantic contracts for policy rules, evaluation context, and verdicts."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

RuleType = Literal[
    "file_access",
    "command_execution",
    "network_access",
    "resource_usage",
    "time_constraints",
    "user_permissions",
]
Severity = Literal["info", "warning", "error", "critical"]
ConditionOperator = Literal[
    "equals",
    "not_equals",
    "matches",
    "not_matches",
    "any_not_matches",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
]
ConditionValue = bool | int | float | str | list[bool | int | float | str]

BLOCKING_SEVERITIES = frozenset({"error", "critical"})


class PolicyCondition(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    field: str = Field(min_length=1)
    operator: ConditionOperator
    value: ConditionValue
    case_sensitive: bool = Field(default=False, alias="caseSensitive")


class PolicyAction(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: Literal["block", "warn", "log", "require_approval"]
    message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PolicyRule(BaseModel):
    """Declarative rule; violated when any of its conditions matches."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    type: RuleType
    severity: Severity
    enabled: bool = True
    conditions: tuple[PolicyCondition, ...] = Field(min_length=1)
    actions: tuple[PolicyAction, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid", frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class RepositoryInfo(_CamelModel):
    owner: str = ""
    name: str = ""
    default_branch: str = "main"
    is_private: bool | None = None


class UserInfo(_CamelModel):
    login: str = ""
    type: str = "User"
    permissions: list[str] = Field(default_factory=list)


class ResourceUsage(_CamelModel):
    memory: float | None = None
    cpu: float | None = None
    timeout: float | None = None


class PolicyContext(_CamelModel):
    """A proposed agent action, as seen by the evaluator."""

    plan_id: str = ""
    step_id: str = ""
    repository: RepositoryInfo = Field(default_factory=RepositoryInfo)
    user: UserInfo = Field(default_factory=UserInfo)
    files: list[str] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)
    network_requests: list[str] = Field(default_factory=list)
    resource_usage: ResourceUsage = Field(default_factory=ResourceUsage)
    environment: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class PolicyViolation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: RuleType
    message: str
    pattern: str
    severity: Literal["warning", "error"]


class PolicyEvaluationResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    allowed: bool
    violations: tuple[PolicyViolation, ...] = ()
    warnings: tuple[PolicyViolation, ...] = ()
    requires_approval: bool = False
