"""Infer a migration's lifecycle state from the pull requests observed for it.

Inference is a pure function of a ``SignalSnapshot``: the same snapshot always yields
the same ``MigrationStateInfo``, independent of PR ordering. Rules, first match wins:

1. any open PR -> ``active``;
2. every checkbox of the plan document ticked -> ``completed``;
3. closed PRs only -> ``completed`` when every planned step has merged, ``pending``
   when every closed PR merged (ready for the next dispatch), otherwise ``paused``;
4. no PRs -> ``pending``.

``current_step`` is the highest merged step plus one, whatever the state.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from hachiko.control_plane.migrations.step_codec import decode_pull_request
from hachiko.control_plane.models.migration_contracts import (
    MigrationState,
    MigrationStateInfo,
    PullRequestSignal,
    SignalSnapshot,
)

logger = logging.getLogger(__name__)

_TASK_RE = re.compile(r"^\s*[-*] \[(?P<mark>[ xX])\] (?P<text>.+)$", re.MULTILINE)


@dataclass(frozen=True)
class PlanTaskProgress:
    total_tasks: int
    completed_tasks: int
    tasks: tuple[tuple[bool, str], ...]

    @property
    def all_tasks_complete(self) -> bool:
        return self.total_tasks > 0 and self.completed_tasks == self.total_tasks


def merged_step_numbers(
    prs: tuple[PullRequestSignal, ...], migration_id: str = ""
) -> list[int]:
    steps: set[int] = set()
    for pr in prs:
        if not pr.is_merged:
            continue
        ref = decode_pull_request(pr)
        if ref is None:
            logger.warning(
                "unparseable step reference migration_id=%s pr=%s branch=%s",
                migration_id,
                pr.number,
                pr.branch_name,
            )
            continue
        steps.add(ref.step_number)
    return sorted(steps)


def _warn_unparseable(prs: tuple[PullRequestSignal, ...], migration_id: str) -> None:
    for pr in prs:
        if decode_pull_request(pr) is None:
            logger.warning(
                "unparseable step reference migration_id=%s pr=%s branch=%s",
                migration_id,
                pr.number,
                pr.branch_name,
            )


def _infer_state(
    open_prs: tuple[PullRequestSignal, ...],
    closed_prs: tuple[PullRequestSignal, ...],
    completed_tasks: int,
    total_tasks: int,
    plan_complete: bool = False,
) -> MigrationState:
    if open_prs:
        return "active"
    if plan_complete:
        return "completed"
    if closed_prs:
        if total_tasks > 0 and completed_tasks >= total_tasks:
            return "completed"
        if all(pr.is_merged for pr in closed_prs):
            return "pending"
        return "paused"
    return "pending"


def infer_migration_state(
    snapshot: SignalSnapshot,
    *,
    total_tasks: int = 0,
    plan_progress: PlanTaskProgress | None = None,
) -> MigrationStateInfo:
    """Infer state from one snapshot.

    ``plan_progress`` (checkbox counts of the plan document) takes over
    ``total_tasks``/``completed_tasks`` when given; otherwise merged steps are counted
    against ``total_tasks``.
    """

    open_prs = tuple(sorted(snapshot.open_prs, key=lambda pr: pr.number))
    closed_prs = tuple(sorted(snapshot.closed_prs, key=lambda pr: pr.number))

    _warn_unparseable(open_prs, snapshot.migration_id)
    _warn_unparseable(
        tuple(pr for pr in closed_prs if not pr.is_merged), snapshot.migration_id
    )
    merged_steps = merged_step_numbers(closed_prs, snapshot.migration_id)
    current_step = (merged_steps[-1] if merged_steps else 0) + 1
    if plan_progress is not None:
        total_tasks = plan_progress.total_tasks
        completed_tasks = plan_progress.completed_tasks
        plan_complete = plan_progress.all_tasks_complete
    else:
        total_tasks = max(0, total_tasks)
        completed_tasks = len(merged_steps)
        plan_complete = False
    state = _infer_state(open_prs, closed_prs, completed_tasks, total_tasks, plan_complete)

    logger.info(
        "inferred migration state migration_id=%s state=%s current_step=%s open=%s closed=%s "
        "merged=%s completed_tasks=%s total_tasks=%s",
        snapshot.migration_id,
        state,
        current_step,
        len(open_prs),
        len(closed_prs),
        sum(1 for pr in closed_prs if pr.is_merged),
        completed_tasks,
        total_tasks,
    )
    return MigrationStateInfo(
        migration_id=snapshot.migration_id,
        state=state,
        current_step=current_step,
        open_prs=open_prs,
        closed_prs=closed_prs,
        completed_tasks=completed_tasks,
        total_tasks=total_tasks,
        last_updated=snapshot.observed_at,
    )


def count_plan_tasks(markdown: str) -> PlanTaskProgress:
    """Count ``- [ ]`` / ``- [x]`` checklist items in a plan document body."""

    tasks = tuple(
        (match.group("mark") != " ", match.group("text").strip())
        for match in _TASK_RE.finditer(markdown)
    )
    return PlanTaskProgress(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for done, _ in tasks if done),
        tasks=tasks,
    )


def summarize_migration_state(info: MigrationStateInfo) -> str:
    task_summary = (
        f" • {info.completed_tasks}/{info.total_tasks} tasks complete" if info.total_tasks else ""
    )
    if info.state == "pending":
        if not info.open_prs and not info.closed_prs:
            if info.total_tasks:
                return f"Pending ({info.total_tasks} tasks planned, none started)"
            return "Pending (no PRs opened yet)"
        return f"Pending (ready for step {info.current_step}{task_summary})"
    if info.state == "active":
        count = len(info.open_prs)
        pr_summary = "1 open PR" if count == 1 else f"{count} open PRs"
        return f"Active ({pr_summary}{task_summary})"
    if info.state == "paused":
        count = len(info.closed_prs)
        closed_summary = "1 closed PR" if count == 1 else f"{count} closed PRs"
        return f"Paused ({closed_summary}, no open PRs{task_summary})"
    return f"Completed (all {info.total_tasks} tasks finished)"
