"""Collect the pull requests tied to a migration, with bounded retries."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from hachiko.control_plane.github.github_connector import GitHubConnector
from hachiko.control_plane.migrations.step_codec import belongs_to_migration
from hachiko.control_plane.models.migration_contracts import PullRequestSignal, SignalSnapshot
from hachiko.shared.errors import ConfigurationError, SignalTimeoutError, TransportError
from hachiko.shared.settings import CollectorSettings

logger = logging.getLogger(__name__)


class SignalCollector:
    def __init__(
        self,
        *,
        connector: GitHubConnector,
        settings: CollectorSettings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.connector = connector
        self.settings = settings
        self._sleep = sleep
        self._clock = clock
        self._now = now or (lambda: datetime.now(timezone.utc))

    def collect(self, migration_id: str, *, timeout_s: float | None = None) -> SignalSnapshot:
        """Return every open and closed PR for ``migration_id`` as one snapshot.

        Raises ``TransportError`` (retryable) once the attempt budget is spent,
        ``SignalTimeoutError`` when the deadline passes, and ``SignalNotFoundError``
        immediately on a 404. An error never degrades into an empty snapshot.
        """

        if not self.settings.repo:
            raise ConfigurationError(
                "No repository configured; set HACHIKO_REPO or GITHUB_REPOSITORY"
            )
        budget = self.settings.timeout_s if timeout_s is None else timeout_s
        deadline = self._clock() + max(0.0, budget)
        open_rows = self._list_with_retry(migration_id, "open", deadline)
        closed_rows = self._list_with_retry(migration_id, "closed", deadline)

        open_prs = _matching_signals(open_rows, migration_id)
        closed_prs = _matching_signals(closed_rows, migration_id)
        logger.info(
            "collected signals migration_id=%s open=%s closed=%s",
            migration_id,
            len(open_prs),
            len(closed_prs),
        )
        return SignalSnapshot(
            migration_id=migration_id,
            open_prs=open_prs,
            closed_prs=closed_prs,
            observed_at=_iso(self._now()),
        )

    def _list_with_retry(
        self, migration_id: str, state: str, deadline: float
    ) -> list[dict[str, Any]]:
        attempts = 0
        while True:
            attempts += 1
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise SignalTimeoutError(
                    "Signal collection deadline exceeded",
                    details={"migration_id": migration_id, "state": state, "attempts": attempts},
                )
            try:
                return self.connector.list_pull_requests(
                    self.settings.repo,
                    timeout_s=remaining,
                    state=state,
                    per_page="100",
                )
            except TransportError as exc:
                if attempts >= self.settings.max_attempts:
                    logger.error(
                        "signal collection failed migration_id=%s state=%s attempts=%s reason=%s",
                        migration_id,
                        state,
                        attempts,
                        exc.reason_code,
                    )
                    raise
                delay = self.settings.backoff_s * 2 ** (attempts - 1)
                if exc.retry_after_s is not None:
                    delay = max(delay, exc.retry_after_s)
                if self._clock() + delay >= deadline:
                    raise SignalTimeoutError(
                        "Signal collection deadline exceeded before retry",
                        details={
                            "migration_id": migration_id,
                            "state": state,
                            "attempts": attempts,
                            "last_reason": exc.reason_code,
                        },
                    ) from exc
                logger.warning(
                    "retrying signal collection migration_id=%s state=%s attempt=%s "
                    "delay_s=%s reason=%s",
                    migration_id,
                    state,
                    attempts,
                    delay,
                    exc.reason_code,
                )
                self._sleep(delay)


def _matching_signals(
    rows: list[dict[str, Any]], migration_id: str
) -> tuple[PullRequestSignal, ...]:
    signals: dict[int, PullRequestSignal] = {}
    for row in rows:
        if not isinstance(row, dict) or not _coerce_number(row.get("number")):
            continue
        signal = PullRequestSignal.from_github(row)
        if belongs_to_migration(signal, migration_id):
            signals[signal.number] = signal
    return tuple(signals[number] for number in sorted(signals))


def _coerce_number(value: Any) -> int | None:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    if parsed <= 0:
        return None
    return parsed


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace(
        "+00:00", "Z"
    )
