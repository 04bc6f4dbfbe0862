"""GitHub REST API connector implementation."""

from __future__ import annotations

from typing import Any

import requests

from hachiko.control_plane.github.github_auth import GitHubAuth
from hachiko.shared.errors import (
    HachikoError,
    SignalNotFoundError,
    SignalTimeoutError,
    TransportError,
)


class GitHubAPIConnector:
    def __init__(
        self,
        auth: GitHubAuth | None = None,
        base_url: str = "https://api.github.com",
        session: requests.Session | None = None,
        timeout_s: float = 15.0,
        max_pages: int = 50,
    ) -> None:
        self.auth = auth or GitHubAuth(read_token=None)
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.max_pages = max(1, int(max_pages))

    def list_pull_requests(
        self, repo: str, *, timeout_s: float | None = None, **filters: str
    ) -> list[dict[str, Any]]:
        params = {key: value for key, value in filters.items() if value != ""}
        per_page = int(params.setdefault("per_page", "100"))
        rows: list[dict[str, Any]] = []
        for page in range(1, self.max_pages + 1):
            params["page"] = str(page)
            payload = self._request(
                "GET",
                f"/repos/{repo}/pulls",
                params=dict(params),
                timeout_s=timeout_s,
            )
            if not isinstance(payload, list):
                break
            rows.extend(row for row in payload if isinstance(row, dict))
            if len(payload) < per_page:
                break
        else:
            raise HachikoError(
                "GitHub pull request listing exceeded page limit",
                reason_code="github_listing_truncated",
                details={"repo": repo, "max_pages": self.max_pages, "per_page": per_page},
            )
        return rows

    def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.auth.read_token:
            headers["Authorization"] = f"Bearer {self.auth.read_token}"

        try:
            response = self.session.request(
                method=method,
                url=f"{self.base_url}{path}",
                headers=headers,
                params=params,
                timeout=timeout_s if timeout_s is not None else self.timeout_s,
            )
        except requests.Timeout as exc:
            raise SignalTimeoutError(
                "GitHub API request timed out", details={"path": path}
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                "GitHub API request failed",
                reason_code="github_connection_error",
                details={"path": path, "error": str(exc)},
            ) from exc

        status = response.status_code
        if status == 404:
            raise SignalNotFoundError("GitHub API returned 404", details={"path": path})
        if status in {429, 403} and _looks_like_rate_limit(response):
            raise TransportError(
                "GitHub API rate limited",
                reason_code="github_rate_limited",
                retry_after_s=_parse_retry_after((response.headers or {}).get("Retry-After")),
                details={"path": path, "status": status},
            )
        if status in {500, 502, 503, 504}:
            raise TransportError(
                "GitHub API 5xx response",
                reason_code=f"github_{status}",
                retry_after_s=_parse_retry_after((response.headers or {}).get("Retry-After")),
                details={"path": path, "status": status},
            )
        if status >= 400:
            raise HachikoError(
                f"GitHub API request rejected with {status}",
                reason_code=f"github_{status}",
                details={"path": path, "status": status},
            )

        if not response.content:
            return []
        return response.json()


def _looks_like_rate_limit(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    try:
        payload = response.json()
    except ValueError:
        return False
    if not isinstance(payload, dict):
        return False
    message = str(payload.get("message", "")).lower()
    return "rate limit" in message


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None
