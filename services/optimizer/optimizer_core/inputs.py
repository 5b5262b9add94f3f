from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from libs.core import logging as core_logging
from libs.core.models import RepoSummary
from libs.tools import github_repos, pdf_text

from .errors import InputError

LOGGER = core_logging.get_logger("optimizer")

TextExtractor = Callable[[bytes], str]
RepoFetcher = Callable[[str, int], list[RepoSummary]]


@dataclass
class SourceInputs:
    resume_text: str
    repos: list[RepoSummary] = field(default_factory=list)


def gather_inputs(
    resume_bytes: bytes,
    github_username: Optional[str] = None,
    *,
    repo_limit: int = 5,
    extract_text: TextExtractor = pdf_text.extract_text,
    fetch_top_repos: RepoFetcher = github_repos.fetch_top_repos,
) -> SourceInputs:
    """Extract resume text and fetch repositories concurrently.

    A failed repository lookup contributes nothing; an unreadable resume fails the request.
    """
    if not resume_bytes:
        raise InputError("resume_file_missing")
    username = github_username.strip() if isinstance(github_username, str) else ""
    with ThreadPoolExecutor(max_workers=2) as executor:
        text_future = executor.submit(extract_text, resume_bytes)
        repos_future = executor.submit(fetch_top_repos, username, repo_limit) if username else None
        try:
            resume_text = text_future.result()
        except ValueError as exc:
            LOGGER.warning("resume_text_extract_failed", error=str(exc))
            raise InputError("resume_unreadable") from exc
        repos: list[RepoSummary] = []
        if repos_future is not None:
            try:
                repos = list(repos_future.result())
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("github_repos_fetch_failed", username=username, error=str(exc))
                repos = []
    if not resume_text.strip():
        raise InputError("resume_text_missing")
    return SourceInputs(resume_text=resume_text, repos=repos)
