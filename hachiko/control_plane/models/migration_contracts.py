"""Pydantic contracts for pull-request signals and inferred migration state."""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIGRATION_ID_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

MigrationState = Literal["pending", "active", "paused", "completed"]


class PullRequestSignal(BaseModel):
    """Snapshot of one platform pull request at observation time."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    number: int = Field(ge=1)
    title: str = ""
    branch_name: str = ""
    is_open: bool
    is_merged: bool = False
    labels: tuple[str, ...] = ()

    @classmethod
    def from_github(cls, row: dict[str, Any]) -> "PullRequestSignal":
        head = row.get("head") if isinstance(row.get("head"), dict) else {}
        labels = []
        for label in row.get("labels") or []:
            if isinstance(label, dict):
                name = str(label.get("name", "")).strip()
            else:
                name = str(label).strip()
            if name:
                labels.append(name)
        if "merged" in row and row.get("merged") is not None:
            merged = bool(row.get("merged"))
        else:
            merged = row.get("merged_at") is not None
        return cls(
            number=int(row["number"]),
            title=str(row.get("title") or ""),
            branch_name=str(head.get("ref") or row.get("branch") or ""),
            is_open=str(row.get("state", "")).lower() == "open",
            is_merged=merged,
            labels=tuple(labels),
        )


class StepReference(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    migration_id: str = Field(min_length=1)
    step_number: int = Field(ge=1)
    chunk: str | None = None

    @field_validator("chunk")
    @classmethod
    def _empty_chunk_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value or None


class SignalSnapshot(BaseModel):
    """Everything one collector call observed for a migration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    migration_id: str = Field(min_length=1)
    open_prs: tuple[PullRequestSignal, ...] = ()
    closed_prs: tuple[PullRequestSignal, ...] = ()
    observed_at: str = ""


class MigrationStateInfo(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    migration_id: str
    state: MigrationState
    current_step: int = Field(ge=1)
    open_prs: tuple[PullRequestSignal, ...] = ()
    closed_prs: tuple[PullRequestSignal, ...] = ()
    completed_tasks: int = Field(default=0, ge=0)
    total_tasks: int = Field(default=0, ge=0)
    last_updated: str = ""


class MigrationPlan(BaseModel):
    """Plan metadata handed over by the frontmatter parser."""

    model_config = ConfigDict(extra="allow", frozen=True)

    migration_id: str
    total_steps: int = Field(default=0, ge=0)
    title: str = ""

    @field_validator("migration_id")
    @classmethod
    def _kebab_case(cls, value: str) -> str:
        if not MIGRATION_ID_PATTERN.match(value):
            raise ValueError(f"migration id must be kebab-case: {value!r}")
        return value
