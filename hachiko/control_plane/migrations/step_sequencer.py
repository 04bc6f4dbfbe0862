"""Decide whether a requested step may be executed against one state snapshot."""

from __future__ import annotations

from dataclasses import dataclass

from hachiko.control_plane.migrations.step_codec import decode_pull_request
from hachiko.control_plane.models.migration_contracts import MigrationState, MigrationStateInfo


@dataclass(frozen=True)
class StepDecision:
    allowed: bool
    reason_code: str
    message: str
    requested_step: int
    current_step: int
    state: MigrationState
    forced: bool = False


def failed_attempts(info: MigrationStateInfo, step_number: int) -> int:
    """Closed, unmerged PRs for ``step_number``: attempts an agent gave up on."""

    count = 0
    for pr in info.closed_prs:
        if pr.is_merged:
            continue
        ref = decode_pull_request(pr)
        if ref is not None and ref.step_number == step_number:
            count += 1
    return count


def validate_step(
    info: MigrationStateInfo,
    requested_step: int,
    *,
    force: bool = False,
    max_attempts: int | None = None,
) -> StepDecision:
    """Return allow/reject for ``requested_step``; rejections are results, not errors.

    With ``max_attempts`` set, a step whose PRs were closed unmerged that many times
    is rejected as ``attempts_exhausted`` unless forced.
    """

    def decide(allowed: bool, reason_code: str, message: str, forced: bool = False) -> StepDecision:
        return StepDecision(
            allowed=allowed,
            reason_code=reason_code,
            message=message,
            requested_step=requested_step,
            current_step=info.current_step,
            state=info.state,
            forced=forced,
        )

    if requested_step < 1:
        return decide(False, "invalid_step", f"step numbers start at 1, got {requested_step}")

    if info.state == "completed":
        return decide(False, "migration_completed", "migration is already completed")

    if info.state == "active":
        if requested_step == info.current_step:
            return decide(True, "allowed", f"continuing in-flight step {info.current_step}")
        return decide(
            False,
            "migration_active",
            f"migration already active on step {info.current_step}",
        )

    if requested_step == info.current_step:
        attempts = failed_attempts(info, requested_step)
        if max_attempts is not None and attempts >= max_attempts:
            if force:
                return decide(
                    True,
                    "forced_execution",
                    f"forced step {requested_step} after {attempts} failed attempts",
                    forced=True,
                )
            return decide(
                False,
                "attempts_exhausted",
                f"step {requested_step} failed {attempts} times (limit {max_attempts})",
            )
        return decide(True, "allowed", f"step {requested_step} is next")
    if force:
        return decide(
            True,
            "forced_execution",
            f"forced step {requested_step} while step {info.current_step} is next",
            forced=True,
        )
    return decide(
        False,
        "invalid_transition",
        f"invalid transition: step {requested_step} requested but step "
        f"{info.current_step} is next",
    )
