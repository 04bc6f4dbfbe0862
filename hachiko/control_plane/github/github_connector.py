"""GitHub connector contract and factory helpers."""

from __future__ import annotations

import os
from typing import Any, Protocol

from hachiko.control_plane.github.github_auth import GitHubAuth, load_github_auth_from_env
from hachiko.shared.settings import CollectorSettings


class GitHubConnector(Protocol):
    """Read-only pull-request access; the engine never writes to the platform."""

    def list_pull_requests(
        self, repo: str, *, timeout_s: float | None = None, **filters: str
    ) -> list[dict[str, Any]]: ...


def build_connector_from_env(
    env: dict[str, str] | None = None,
    settings: CollectorSettings | None = None,
) -> GitHubConnector:
    env_map = os.environ if env is None else env
    connector_type = (env_map.get("HACHIKO_GITHUB_CONNECTOR") or "in_memory").strip().lower()

    if connector_type == "api":
        from hachiko.control_plane.github.github_connector_api import GitHubAPIConnector

        resolved = settings or CollectorSettings.from_env(env_map)
        auth = load_github_auth_from_env(env_map)
        return GitHubAPIConnector(auth=auth, base_url=resolved.base_url)

    from hachiko.control_plane.github.github_connector_inmemory import InMemoryGitHubConnector

    return InMemoryGitHubConnector()


__all__ = [
    "GitHubAuth",
    "GitHubConnector",
    "build_connector_from_env",
]
