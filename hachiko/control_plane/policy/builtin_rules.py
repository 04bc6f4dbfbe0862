"""Built-in policy rules seeded from policy settings."""

from __future__ import annotations

from typing import Any

from hachiko.control_plane.models.policy_contracts import PolicyRule
from hachiko.shared.settings import PolicySettings


def _rule(
    rule_id: str,
    name: str,
    description: str,
    rule_type: str,
    severity: str,
    conditions: list[dict[str, Any]],
    message: str,
    action: str = "block",
) -> PolicyRule:
    return PolicyRule.model_validate(
        {
            "id": rule_id,
            "name": name,
            "description": description,
            "type": rule_type,
            "severity": severity,
            "enabled": True,
            "conditions": conditions,
            "actions": [{"type": action, "message": message}],
            "metadata": {"builtin": True},
        }
    )


WORKFLOW_GLOB = ".github/workflows/**"


def build_builtin_rules(settings: PolicySettings) -> list[PolicyRule]:
    risky_globs = [
        pattern
        for pattern in settings.risky_globs
        if not (settings.allow_workflow_edits and pattern == WORKFLOW_GLOB)
    ]
    rules = [
        _rule(
            "block_sensitive_files",
            "Block Sensitive Files",
            "Prevent access to sensitive files",
            "file_access",
            "error",
            [{"field": "files", "operator": "matches", "value": list(settings.sensitive_globs)}],
            "Access to sensitive files is not allowed",
        )
    ]

    if risky_globs:
        rules.append(
            _rule(
                "block_risky_paths",
                "Block Risky Paths",
                "Prevent access to risky file patterns",
                "file_access",
                "error",
                [{"field": "files", "operator": "matches", "value": risky_globs}],
                "Access to risky paths is not allowed",
            )
        )

    if settings.allowlist_globs:
        rules.append(
            _rule(
                "enforce_allowlist",
                "Enforce File Allowlist",
                "Only allow access to allowlisted file patterns",
                "file_access",
                "error",
                [
                    {
                        "field": "files",
                        "operator": "any_not_matches",
                        "value": list(settings.allowlist_globs),
                    }
                ],
                "File access outside allowlist is not permitted",
            )
        )

    rules.append(
        _rule(
            "limit_execution_time",
            "Limit Execution Time",
            "Prevent excessive execution time",
            "resource_usage",
            "error",
            [
                {
                    "field": "resource_usage.timeout",
                    "operator": "greater_than",
                    "value": settings.step_timeout_minutes * 60,
                }
            ],
            "Execution timeout exceeded",
        )
    )

    if settings.dangerous_commands:
        rules.append(
            _rule(
                "block_dangerous_commands",
                "Block Dangerous Commands",
                "Prevent execution of dangerous commands",
                "command_execution",
                "critical",
                [
                    {
                        "field": "commands",
                        "operator": "contains",
                        "value": list(settings.dangerous_commands),
                    }
                ],
                "Dangerous command execution is not allowed",
            )
        )

    if settings.network == "none":
        rules.append(
            _rule(
                "block_network_access",
                "Block Network Access",
                "Prevent all network access",
                "network_access",
                "error",
                [{"field": "network_requests", "operator": "not_equals", "value": []}],
                "Network access is not allowed",
            )
        )
    elif settings.network == "restricted":
        rules.append(
            _rule(
                "review_network_access",
                "Review Network Access",
                "Network access in restricted mode needs approval",
                "network_access",
                "warning",
                [{"field": "network_requests", "operator": "not_equals", "value": []}],
                "Network access requires approval",
                action="require_approval",
            )
        )

    rules.append(
        _rule(
            "require_write_permissions",
            "Require Write Permissions",
            "User must have write permissions to the repository",
            "user_permissions",
            "error",
            [{"field": "user.type", "operator": "equals", "value": "Bot"}],
            "Bot users cannot execute migrations",
        )
    )
    return rules
