"""Error kinds raised across the migration engine."""

from __future__ import annotations

import json
import traceback
from typing import Any


class HachikoError(RuntimeError):
    def __init__(
        self,
        message: str,
        reason_code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.details = dict(details or {})


class ConfigurationError(HachikoError):
    """Malformed settings or rule definitions; fatal at startup."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, reason_code="configuration_error", details=details)


class TransportError(HachikoError):
    """Signal collection failed in a way that may succeed on retry."""

    def __init__(
        self,
        message: str,
        reason_code: str = "transport_error",
        retry_after_s: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, reason_code=reason_code, details=details)
        self.retry_after_s = retry_after_s


class SignalTimeoutError(TransportError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, reason_code="signal_timeout", details=details)


class SignalNotFoundError(HachikoError):
    """The platform answered 404; retrying will not change the answer."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, reason_code="signal_not_found", details=details)


class UnparseableStepError(HachikoError):
    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, reason_code="unparseable_step", details=details)


def format_error_for_issue(error: BaseException) -> str:
    """Render an error as markdown suitable for an issue or PR comment."""

    if isinstance(error, HachikoError):
        lines = [f"**{type(error).__name__}**: {error}", ""]
        if error.details:
            lines.append("**Details:**")
            for key, value in error.details.items():
                lines.append(f"- {key}: {json.dumps(value, sort_keys=True, default=str)}")
            lines.append("")
        lines.append(f"**Code**: `{error.reason_code}`")
        return "\n".join(lines)

    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return f"**Error**: {error}\n\n```\n{stack.rstrip()}\n```"


__all__ = [
    "ConfigurationError",
    "HachikoError",
    "SignalNotFoundError",
    "SignalTimeoutError",
    "TransportError",
    "UnparseableStepError",
    "format_error_for_issue",
]
