"""Encode and decode the migration step a pull request represents.

Three carriers exist, in order of authority:

1. structured labels, ``hachiko:step:<id>:<n>[:<chunk>]`` (``plan:<id>:step:<n>[:<chunk>]``
   is accepted on decode);
2. branch names, ``[hachiko/]<id>-step-<n>[/<chunk>]`` (plus the legacy
   ``hachi/<id>/<n>[/<chunk>]`` layout);
3. a tracking token in the title, ``hachiko-track:<id>:<n>``.

Branch decoding anchors on the rightmost ``-step-<digits>`` before the chunk, so an
identifier such as ``has-step-in-name`` survives. An identifier that itself ends in
``-step-<digits>`` cannot be told apart from a step suffix; labels are the only
unambiguous carrier.
"""

from __future__ import annotations

import re
from typing import Iterable

from hachiko.control_plane.models.migration_contracts import PullRequestSignal, StepReference
from hachiko.shared.errors import UnparseableStepError

LABEL_PREFIX = "hachiko:step:"
PLAN_LABEL_PREFIX = "hachiko:plan:"
BRANCH_PREFIX = "hachiko/"
BASE_LABELS = ("hachiko", "migration")

_BRANCH_RE = re.compile(r"^(?P<id>[^/]+)-step-(?P<step>\d+)(?:/(?P<chunk>.+))?$")
_LEGACY_BRANCH_RE = re.compile(r"^hachi/(?P<id>[^/]+)/(?:step-)?(?P<step>\d+)(?:/(?P<chunk>.+))?$")
_SPEC_LABEL_RE = re.compile(r"^plan:(?P<id>[^:]+):step:(?P<step>\d+)(?::(?P<chunk>.+))?$")
_TRACK_RE = re.compile(r"hachiko-track:(?P<id>[^:\s\]]+)(?::(?P<step>\d+))?")
_BRACKET_RE = re.compile(r"\[(?P<id>[a-z0-9]+(?:-[a-z0-9]+)*)\]")


def _reference(migration_id: str, step: str, chunk: str | None) -> StepReference | None:
    number = int(step)
    if number < 1 or not migration_id:
        return None
    return StepReference(migration_id=migration_id, step_number=number, chunk=chunk or None)


def encode_step_label(ref: StepReference) -> str:
    chunk = f":{ref.chunk}" if ref.chunk else ""
    return f"{LABEL_PREFIX}{ref.migration_id}:{ref.step_number}{chunk}"


def decode_step_label(label: str) -> StepReference | None:
    value = label.strip()
    if value.startswith(LABEL_PREFIX):
        parts = value[len(LABEL_PREFIX) :].split(":", 2)
        if len(parts) < 2 or not parts[0] or not parts[1].isdigit():
            return None
        return _reference(parts[0], parts[1], parts[2] if len(parts) > 2 else None)

    match = _SPEC_LABEL_RE.match(value)
    if match:
        return _reference(match.group("id"), match.group("step"), match.group("chunk"))
    return None


def encode_step_branch(ref: StepReference, prefix: str = "") -> str:
    chunk = f"/{ref.chunk}" if ref.chunk else ""
    return f"{prefix}{ref.migration_id}-step-{ref.step_number}{chunk}"


def decode_step_branch(branch_name: str) -> StepReference | None:
    value = branch_name.strip()
    if value.startswith("refs/heads/"):
        value = value[len("refs/heads/") :]

    legacy = _LEGACY_BRANCH_RE.match(value)
    if legacy:
        return _reference(legacy.group("id"), legacy.group("step"), legacy.group("chunk"))

    if value.startswith(BRANCH_PREFIX):
        value = value[len(BRANCH_PREFIX) :]
    match = _BRANCH_RE.match(value)
    if not match:
        return None
    return _reference(match.group("id"), match.group("step"), match.group("chunk"))


def decode_title_token(title: str) -> StepReference | None:
    match = _TRACK_RE.search(title)
    if not match or not match.group("step"):
        return None
    return _reference(match.group("id"), match.group("step"), None)


def decode_pull_request(signal: PullRequestSignal) -> StepReference | None:
    """Resolve the step a PR represents; labels win over the branch name."""

    for label in signal.labels:
        ref = decode_step_label(label)
        if ref is not None:
            return ref
    ref = decode_step_branch(signal.branch_name)
    if ref is not None:
        return ref
    return decode_title_token(signal.title)


def require_step_reference(signal: PullRequestSignal) -> StepReference:
    ref = decode_pull_request(signal)
    if ref is None:
        raise UnparseableStepError(
            f"PR #{signal.number} carries no step reference",
            details={"number": signal.number, "branch": signal.branch_name},
        )
    return ref


def extract_tracked_migration_id(title: str) -> str | None:
    match = _TRACK_RE.search(title)
    if match:
        return match.group("id")
    bracket = _BRACKET_RE.search(title)
    if bracket:
        return bracket.group("id")
    return None


def extract_migration_labels(signal: PullRequestSignal) -> list[str]:
    return [
        label
        for label in signal.labels
        if label.startswith("hachiko:") or label.startswith("migration:")
    ]


def is_migration_pr(signal: PullRequestSignal) -> bool:
    return any(
        label.startswith("hachiko") or label.startswith("migration") for label in signal.labels
    )


def belongs_to_migration(signal: PullRequestSignal, migration_id: str) -> bool:
    ref = decode_pull_request(signal)
    if ref is not None and ref.migration_id == migration_id:
        return True
    if f"{PLAN_LABEL_PREFIX}{migration_id}" in signal.labels:
        return True
    tracked = _TRACK_RE.search(signal.title)
    if tracked:
        return tracked.group("id") == migration_id
    # bracket titles count only on PRs carrying a migration label
    return is_migration_pr(signal) and extract_tracked_migration_id(signal.title) == migration_id


def generate_migration_pr_labels(
    migration_id: str,
    step_number: int,
    chunk: str | None = None,
    additional_labels: Iterable[str] = (),
) -> list[str]:
    ref = StepReference(migration_id=migration_id, step_number=step_number, chunk=chunk)
    return [
        *BASE_LABELS,
        f"{PLAN_LABEL_PREFIX}{migration_id}",
        encode_step_label(ref),
        *additional_labels,
    ]
