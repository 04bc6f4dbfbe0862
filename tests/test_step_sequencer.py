from __future__ import annotations

import pytest

from hachiko.control_plane.migrations.step_sequencer import failed_attempts, validate_step
from hachiko.control_plane.models.migration_contracts import MigrationStateInfo, PullRequestSignal


def _info(state: str, current_step: int) -> MigrationStateInfo:
    return MigrationStateInfo(migration_id="migrate-x", state=state, current_step=current_step)


@pytest.mark.parametrize(
    ("state", "requested", "force", "allowed", "reason_code"),
    [
        ("pending", 4, False, True, "allowed"),
        ("pending", 5, False, False, "invalid_transition"),
        ("pending", 3, False, False, "invalid_transition"),
        ("pending", 5, True, True, "forced_execution"),
        ("paused", 4, False, True, "allowed"),
        ("paused", 6, False, False, "invalid_transition"),
        ("paused", 6, True, True, "forced_execution"),
        ("active", 4, False, True, "allowed"),
        ("active", 5, False, False, "migration_active"),
        ("active", 5, True, False, "migration_active"),
        ("completed", 4, False, False, "migration_completed"),
        ("completed", 4, True, False, "migration_completed"),
        ("pending", 0, True, False, "invalid_step"),
    ],
)
def test_step_decision_matrix(
    state: str, requested: int, force: bool, allowed: bool, reason_code: str
) -> None:
    decision = validate_step(_info(state, 4), requested, force=force)
    assert decision.allowed is allowed
    assert decision.reason_code == reason_code
    assert decision.current_step == 4
    assert decision.requested_step == requested


def test_forced_decision_is_flagged() -> None:
    decision = validate_step(_info("pending", 2), 7, force=True)
    assert decision.forced is True
    assert validate_step(_info("pending", 2), 2, force=True).forced is False


def test_active_rejection_names_in_flight_step() -> None:
    decision = validate_step(_info("active", 3), 4)
    assert decision.message == "migration already active on step 3"
    assert decision.state == "active"


def _with_closed_attempts(state: str, current_step: int, *steps: int) -> MigrationStateInfo:
    closed = [
        PullRequestSignal(
            number=10 + index, branch_name=f"hachiko/migrate-x-step-{step}", is_open=False
        )
        for index, step in enumerate(steps)
    ]
    return MigrationStateInfo(
        migration_id="migrate-x", state=state, current_step=current_step, closed_prs=closed
    )


def test_repeated_failures_exhaust_the_step() -> None:
    info = _with_closed_attempts("paused", 2, 2, 2, 1)
    assert failed_attempts(info, 2) == 2

    rejected = validate_step(info, 2, max_attempts=2)
    assert rejected.allowed is False
    assert rejected.reason_code == "attempts_exhausted"

    forced = validate_step(info, 2, force=True, max_attempts=2)
    assert forced.allowed is True
    assert forced.reason_code == "forced_execution"

    assert validate_step(info, 2, max_attempts=3).reason_code == "allowed"
    assert validate_step(info, 2).reason_code == "allowed"
