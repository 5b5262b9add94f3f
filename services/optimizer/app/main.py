from __future__ import annotations

import asyncio
import threading
import uuid
from typing import Callable, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from prometheus_client import Counter, Histogram, make_asgi_app
from pydantic import BaseModel

from libs.core import logging as core_logging
from libs.core.models import OptimizationResult, RepoSummary
from libs.tools import github_repos
from optimizer_core import (
    InputError,
    OptimizerConfig,
    OptimizerError,
    ResumeOptimizer,
    create_provider,
    gather_inputs,
)

core_logging.configure_logging("optimizer")
LOGGER = core_logging.get_logger("optimizer")

CONFIG = OptimizerConfig.from_env()
DISCONNECT_POLL_S = 0.5

_USER_MESSAGES = {
    400: "Resume and job description are required, and the resume must be a readable PDF.",
    401: "A valid model API key is required. Provide one and try again.",
    499: "The request was cancelled.",
    502: "The resume could not be optimized right now. Please try again.",
}

optimize_requests_total = Counter(
    "optimize_requests_total", "Resume optimization requests", ["outcome"]
)
optimize_duration_seconds = Histogram(
    "optimize_duration_seconds", "Resume optimization latency in seconds"
)

app = FastAPI(title="Resume Optimizer Service")
app.mount("/metrics", make_asgi_app())


class OptimizeTextRequest(BaseModel):
    resume_text: str
    job_description: str
    github_username: Optional[str] = None
    api_key: Optional[str] = None


class OptimizeResponse(BaseModel):
    success: bool
    data: OptimizationResult


def build_optimizer(api_key: Optional[str] = None) -> ResumeOptimizer:
    config = CONFIG.with_api_key(api_key)
    return ResumeOptimizer(create_provider(config), config)


def _http_error(error: OptimizerError) -> HTTPException:
    message = _USER_MESSAGES.get(error.status_code, _USER_MESSAGES[502])
    return HTTPException(status_code=error.status_code, detail=message)


async def _run_until_disconnect(
    request: Request, work: Callable[[threading.Event], OptimizationResult]
) -> OptimizationResult:
    cancel_event = threading.Event()

    async def _watch() -> None:
        while True:
            if await request.is_disconnected():
                LOGGER.info("client_disconnected")
                cancel_event.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_S)

    watcher = asyncio.create_task(_watch())
    try:
        return await run_in_threadpool(work, cancel_event)
    finally:
        watcher.cancel()


async def _optimize(
    request: Request,
    work: Callable[[threading.Event], OptimizationResult],
) -> OptimizeResponse:
    core_logging.bind_request(str(uuid.uuid4()))
    with optimize_duration_seconds.time():
        try:
            result = await _run_until_disconnect(request, work)
        except OptimizerError as exc:
            optimize_requests_total.labels(outcome=type(exc).__name__).inc()
            LOGGER.warning(
                "optimize_request_failed",
                error_type=type(exc).__name__,
                detail=exc.detail,
                status_code=exc.status_code,
            )
            raise _http_error(exc) from exc
    optimize_requests_total.labels(outcome="success").inc()
    return OptimizeResponse(success=True, data=result)


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.post("/optimize", response_model=OptimizeResponse)
async def optimize_endpoint(
    request: Request,
    resume: Optional[UploadFile] = File(default=None),
    job_description: str = Form(default="", alias="jobDescription"),
    github_username: Optional[str] = Form(default=None, alias="githubUsername"),
    api_key: Optional[str] = Form(default=None, alias="apiKey"),
) -> OptimizeResponse:
    resume_bytes = await resume.read() if resume is not None else b""

    def _work(cancel_event: threading.Event) -> OptimizationResult:
        if not resume_bytes or not job_description.strip():
            raise InputError("resume_or_job_description_missing")
        optimizer = build_optimizer(api_key)
        inputs = gather_inputs(
            resume_bytes, github_username, repo_limit=optimizer.config.repo_limit
        )
        return optimizer.optimize(
            inputs.resume_text,
            job_description,
            inputs.repos,
            cancel_event=cancel_event,
        )

    return await _optimize(request, _work)


@app.post("/optimize/text", response_model=OptimizeResponse)
async def optimize_text_endpoint(
    request: Request, payload: OptimizeTextRequest
) -> OptimizeResponse:
    def _work(cancel_event: threading.Event) -> OptimizationResult:
        if not payload.resume_text.strip() or not payload.job_description.strip():
            raise InputError("resume_or_job_description_missing")
        optimizer = build_optimizer(payload.api_key)
        repos: list[RepoSummary] = []
        if payload.github_username:
            repos = github_repos.fetch_top_repos(
                payload.github_username, optimizer.config.repo_limit
            )
        return optimizer.optimize(
            payload.resume_text,
            payload.job_description,
            repos,
            cancel_event=cancel_event,
        )

    return await _optimize(request, _work)
