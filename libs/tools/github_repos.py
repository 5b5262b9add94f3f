from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from libs.core import logging as core_logging
from libs.core.models import RepoSummary

LOGGER = core_logging.get_logger("github")


def fetch_top_repos(
    username: str, limit: int = 5, token: Optional[str] = None
) -> list[RepoSummary]:
    """Return the user's most starred original repositories that carry a description.

    Best effort: not-found, rate limiting, and connection problems all yield an empty list.
    """
    if not isinstance(username, str) or not username.strip():
        return []
    try:
        data = _github_request(
            f"/users/{quote(username.strip())}/repos",
            params={"sort": "pushed", "direction": "desc", "per_page": 100},
            token=token,
        )
    except ValueError as exc:
        LOGGER.warning("github_repos_fetch_failed", username=username, error=str(exc))
        return []
    if not isinstance(data, list):
        return []
    repos: list[RepoSummary] = []
    for repo in data:
        if not isinstance(repo, dict):
            continue
        if repo.get("fork") or not repo.get("description"):
            continue
        repos.append(
            RepoSummary(
                name=str(repo.get("name", "")),
                description=repo.get("description"),
                language=repo.get("language"),
                stars=int(repo.get("stargazers_count") or 0),
                url=str(repo.get("html_url", "")),
            )
        )
    repos.sort(key=lambda repo: repo.stars, reverse=True)
    return repos[: _clamp_limit(limit)]


def serialize_repos(repos: list[RepoSummary]) -> str:
    if not repos:
        return ""
    return json.dumps([repo.model_dump() for repo in repos], ensure_ascii=False)


def _github_request(
    path: str,
    params: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
) -> Any:
    base_url = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
    url = f"{base_url}{path}"
    if params:
        url = f"{url}?{urlencode(params)}"
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": "resume-optimizer",
    }
    resolved_token = token or os.getenv("GITHUB_TOKEN")
    if resolved_token:
        headers["Authorization"] = f"Bearer {resolved_token}"
    request = Request(url, headers=headers, method="GET")
    try:
        with urlopen(request, timeout=15) as response:
            payload = response.read().decode("utf-8")
    except HTTPError as exc:
        detail = exc.read().decode("utf-8") if exc.fp else str(exc)
        raise ValueError(f"GitHub API error {exc.code}: {detail}") from exc
    except (URLError, TimeoutError) as exc:
        raise ValueError(f"GitHub API connection failed: {exc}") from exc
    if not payload:
        return {}
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError(f"GitHub API returned invalid JSON: {exc}") from exc


def _clamp_limit(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return 5
    return max(1, min(parsed, 100))
