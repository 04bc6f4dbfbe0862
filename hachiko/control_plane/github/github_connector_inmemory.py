"""In-memory GitHub connector for deterministic tests and local runs."""

from __future__ import annotations

from typing import Any

from hachiko.shared.errors import SignalNotFoundError, TransportError


class InMemoryGitHubConnector:
    """Serves pull-request rows shaped like the REST `pulls` listing."""

    def __init__(self, known_repos: set[str] | None = None) -> None:
        self.known_repos = set(known_repos or set())
        self.pull_requests: dict[tuple[str, int], dict[str, Any]] = {}
        self.calls: list[dict[str, Any]] = []
        self._transient_failures: dict[str, int] = {}

    def add_pull_request(
        self,
        repo: str,
        *,
        number: int,
        branch: str,
        state: str = "open",
        merged: bool = False,
        title: str = "",
        labels: list[str] | None = None,
    ) -> dict[str, Any]:
        row = {
            "number": number,
            "title": title or f"PR #{number}",
            "state": state,
            "merged": merged,
            "merged_at": "2024-01-01T00:00:00Z" if merged else None,
            "head": {"ref": branch},
            "labels": [{"name": label} for label in labels or []],
        }
        self.known_repos.add(repo)
        self.pull_requests[(repo, number)] = row
        return row

    def set_state(self, repo: str, number: int, *, state: str, merged: bool = False) -> None:
        row = self.pull_requests[(repo, number)]
        row["state"] = state
        row["merged"] = merged
        row["merged_at"] = "2024-01-01T00:00:00Z" if merged else None

    def fail_next(self, repo: str, count: int = 1) -> None:
        self._transient_failures[repo] = self._transient_failures.get(repo, 0) + count

    def list_pull_requests(
        self, repo: str, *, timeout_s: float | None = None, **filters: str
    ) -> list[dict[str, Any]]:
        self.calls.append({"repo": repo, "timeout_s": timeout_s, **filters})
        if repo not in self.known_repos:
            raise SignalNotFoundError(f"Unknown repository: {repo}", details={"repo": repo})

        pending_failures = self._transient_failures.get(repo, 0)
        if pending_failures > 0:
            self._transient_failures[repo] = pending_failures - 1
            raise TransportError("Transient connector failure", reason_code="transient_failure")

        wanted_state = filters.get("state", "open")
        rows = [
            dict(row)
            for (row_repo, _), row in sorted(self.pull_requests.items())
            if row_repo == repo and (wanted_state == "all" or row["state"] == wanted_state)
        ]
        return rows
