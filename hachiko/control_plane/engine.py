"""Migration engine facade: collect once, infer, sequence, and evaluate policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from hachiko.control_plane.github.github_connector import build_connector_from_env
from hachiko.control_plane.github.signal_collector import SignalCollector
from hachiko.control_plane.migrations.state_inference import (
    count_plan_tasks,
    infer_migration_state,
)
from hachiko.control_plane.migrations.step_sequencer import StepDecision, validate_step
from hachiko.control_plane.models.migration_contracts import MigrationPlan, MigrationStateInfo
from hachiko.control_plane.models.policy_contracts import PolicyContext, PolicyEvaluationResult
from hachiko.control_plane.policy.evaluator import PolicyEvaluator
from hachiko.control_plane.policy.rule_store import PolicyRuleStore, build_rule_store
from hachiko.shared.errors import HachikoError
from hachiko.shared.settings import CollectorSettings, load_hachiko_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepValidation:
    """A sequencing decision together with the snapshot it was made against."""

    decision: StepDecision
    info: MigrationStateInfo


@dataclass
class MultiStateResult:
    states: dict[str, MigrationStateInfo] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


class MigrationEngine:
    def __init__(
        self,
        collector: SignalCollector,
        rule_store: PolicyRuleStore,
        max_attempts_per_step: int | None = None,
    ) -> None:
        self.collector = collector
        self.rule_store = rule_store
        self.max_attempts_per_step = max_attempts_per_step
        self.evaluator = PolicyEvaluator(rule_store)

    def get_migration_state(
        self,
        migration_id: str,
        *,
        total_tasks: int = 0,
        plan_markdown: str | None = None,
    ) -> MigrationStateInfo:
        """Collect once and infer; a plan document's checkboxes override ``total_tasks``."""
        snapshot = self.collector.collect(migration_id)
        progress = count_plan_tasks(plan_markdown) if plan_markdown is not None else None
        return infer_migration_state(snapshot, total_tasks=total_tasks, plan_progress=progress)

    def validate_step_request(
        self,
        migration_id: str,
        requested_step: int,
        force: bool = False,
        *,
        total_tasks: int = 0,
        plan_markdown: str | None = None,
    ) -> StepValidation:
        info = self.get_migration_state(
            migration_id, total_tasks=total_tasks, plan_markdown=plan_markdown
        )
        decision = validate_step(
            info, requested_step, force=force, max_attempts=self.max_attempts_per_step
        )
        log = logger.info if decision.allowed else logger.warning
        log(
            "step request migration_id=%s step=%s allowed=%s reason=%s forced=%s",
            migration_id,
            requested_step,
            decision.allowed,
            decision.reason_code,
            decision.forced,
        )
        return StepValidation(decision=decision, info=info)

    def evaluate_policy(self, context: PolicyContext | dict) -> PolicyEvaluationResult:
        return self.evaluator.evaluate(context)

    def get_multiple_migration_states(self, plans: Iterable[MigrationPlan]) -> MultiStateResult:
        result = MultiStateResult()
        for plan in plans:
            try:
                result.states[plan.migration_id] = self.get_migration_state(
                    plan.migration_id, total_tasks=plan.total_steps
                )
            except HachikoError as exc:
                logger.warning(
                    "migration state unavailable migration_id=%s reason=%s",
                    plan.migration_id,
                    exc.reason_code,
                )
                result.errors[plan.migration_id] = f"{exc.reason_code}: {exc}"
        return result


def build_engine_from_env(
    env: dict[str, str] | None = None, config_path: Path | None = None
) -> MigrationEngine:
    config = load_hachiko_config(config_path, env=env)
    settings = CollectorSettings.from_env(env)
    collector = SignalCollector(
        connector=build_connector_from_env(env, settings=settings),
        settings=settings,
    )
    return MigrationEngine(
        collector=collector,
        rule_store=build_rule_store(config),
        max_attempts_per_step=config.policy.max_attempts_per_step,
    )


__all__ = [
    "MigrationEngine",
    "MultiStateResult",
    "StepValidation",
    "build_engine_from_env",
]
