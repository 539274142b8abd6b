"""
greenbay - HTTP service.

File: src/greenbay/service.py

Purpose
- Expose the check engine over HTTP: ad-hoc runs of configured suites and
  tests, a long-lived job queue fed by remote clients, and host statistics.

Functional requirements
- Ad-hoc runs execute fresh copies of the selected checks on a private
  two-worker queue under a deadline; configured checks are never mutated.
- Handler failures answer ``{"error": "..."}`` with the status code carried by
  :class:`ServiceError`.
- The job queue retains at most ``cache_size`` completed checks.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Final

import structlog
import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from greenbay import __version__
from greenbay.check.args import ArgumentError
from greenbay.check.catalog import load_builtin_checks
from greenbay.check.registry import UnknownCheckTypeError
from greenbay.config.configuration import Configuration, Selection
from greenbay.config.loader import ConfigLoadError
from greenbay.observability.system_info import (
    DEFAULT_PID,
    ProcessNotFoundError,
    StatsUnavailableError,
    collect_process_tree,
    collect_system_info,
)
from greenbay.reporting.report import ReportReporter
from greenbay.scheduler import CheckQueue, SchedulerError
from greenbay.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from greenbay.check.base import Check
    from greenbay.check.registry import CheckRegistry

logger = structlog.get_logger(__name__)

DEFAULT_HOST: Final[str] = ""
DEFAULT_PORT: Final[int] = 3000
DEFAULT_CACHE_SIZE: Final[int] = 1000
DEFAULT_SERVICE_JOBS: Final[int] = 2
ADHOC_WORKERS: Final[int] = 2
ADHOC_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_WAIT_TIMEOUT_SECONDS: Final[float] = 20.0


class ServiceError(RuntimeError):
    """Handler failure rendered as a JSON error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload if payload is not None else {"error": message}


class JobRequest(BaseModel):
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    suites: list[str] = Field(default_factory=list)
    args: dict[str, Any] = Field(default_factory=dict)


class GreenbayService:
    """Service state: optional configuration, the job queue and its registry."""

    def __init__(
        self,
        conf_path: str | Path | None = None,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        cache_size: int = DEFAULT_CACHE_SIZE,
        jobs: int = DEFAULT_SERVICE_JOBS,
        disable_stats: bool = False,
        registry: CheckRegistry | None = None,
        configuration: Configuration | None = None,
        adhoc_timeout_seconds: float = ADHOC_TIMEOUT_SECONDS,
    ) -> None:
        if configuration is None and conf_path:
            configuration = Configuration.from_file(conf_path, registry=registry)
        self.configuration = configuration
        if registry is None:
            registry = configuration.registry if configuration is not None else None
        self.registry = registry if registry is not None else load_builtin_checks()
        self.host = host
        self.port = port
        self.disable_stats = disable_stats
        self.adhoc_timeout_seconds = adhoc_timeout_seconds
        self.queue = CheckQueue(workers=jobs, max_completed=cache_size)
        self._token = CancellationToken()
        self._open_lock = threading.Lock()
        self.app = build_app(self)

    # lifecycle -----------------------------------------------------------

    def open(self) -> None:
        with self._open_lock:
            if self.queue.started:
                return
            self.queue.start(self._token)
        logger.info("service_queue_opened", workers=self.queue.workers)

    def close(self) -> None:
        self._token.cancel()
        self.queue.close(timeout=5.0)

    def run(self) -> None:
        """Serve until interrupted; blocks."""

        self.open()
        try:
            uvicorn.run(self.app, host=self.host or "0.0.0.0", port=self.port, log_config=None)
        finally:
            self.close()

    # ad-hoc checks -------------------------------------------------------

    def reload(self) -> dict[str, str]:
        configuration = self._require_configuration()
        try:
            configuration.reload()
        except ConfigLoadError as exc:
            raise ServiceError(str(exc), status_code=500) from exc
        return {"status": "config reloaded"}

    def run_suite(self, suite_id: str) -> dict[str, Any]:
        configuration = self._require_configuration()
        return self.run_adhoc(configuration.tests_for_suites(suite_id))

    def run_test(self, test_id: str) -> dict[str, Any]:
        configuration = self._require_configuration()
        return self.run_adhoc(configuration.tests_by_name(test_id))

    def run_adhoc(self, selections: Iterable[Selection]) -> dict[str, Any]:
        configuration = self._require_configuration()
        checks: list[Check] = []
        problems: list[str] = []
        for selection in selections:
            if selection.error is not None:
                problems.append(str(selection.error))
                continue
            if selection.check is not None:
                checks.append(configuration.registry.clone(selection.check))
        if problems:
            raise ServiceError("\n".join(problems), status_code=400)

        token = CancellationToken(timeout_seconds=self.adhoc_timeout_seconds)
        adhoc_queue = CheckQueue(workers=ADHOC_WORKERS, capacity=max(1, len(checks)))
        adhoc_queue.start(token)
        try:
            for check in checks:
                adhoc_queue.submit(check)
            completed = adhoc_queue.wait(timeout=self.adhoc_timeout_seconds)
        finally:
            token.cancel()
            adhoc_queue.close(timeout=1.0)
        if not completed:
            raise ServiceError("check operation timed out", status_code=500)

        reporter = ReportReporter()
        reporter.populate(adhoc_queue.results())
        return {name: output.to_dict() for name, output in reporter.results.items()}

    # remote job queue ----------------------------------------------------

    def submit_job(self, request: JobRequest) -> dict[str, str]:
        self.open()
        try:
            check = self.registry.create(request.type)
            check.hydrate(request.args)
        except UnknownCheckTypeError as exc:
            raise ServiceError(str(exc), status_code=400) from exc
        except (ArgumentError, TypeError) as exc:
            raise ServiceError(
                f"problem resolving {request.name}: {exc}", status_code=400
            ) from exc
        check.set_id(request.name)
        check.set_suites(request.suites)

        if self.queue.get(check.id) is not None:
            raise ServiceError(f"job '{check.id}' already exists", status_code=409)
        try:
            self.queue.submit(check)
        except SchedulerError as exc:
            raise ServiceError(str(exc), status_code=409) from exc
        logger.debug("job_submitted", job_id=check.id, check_type=check.name)
        return {"id": check.id}

    def job_status(self, job_id: str) -> dict[str, Any]:
        check = self.queue.get(job_id)
        if check is None:
            raise ServiceError(f"no job named '{job_id}'", status_code=404)
        return {"id": check.id, "completed": check.completed, "output": check.output().to_dict()}

    def status(self) -> dict[str, Any]:
        return {"stats": self.queue.stats().to_dict(), "workers": self.queue.workers}

    def wait(self, timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS) -> dict[str, Any]:
        if timeout <= 0:
            raise ServiceError("timeout must be > 0", status_code=400)
        completed = self.queue.wait(timeout=timeout)
        return {"completed": completed, "stats": self.queue.stats().to_dict()}

    # stats ---------------------------------------------------------------

    def system_info(self) -> dict[str, Any]:
        try:
            return collect_system_info().to_dict()
        except StatsUnavailableError as exc:
            raise ServiceError(str(exc), status_code=500) from exc

    def process_info(self, raw_pid: str | None = None) -> list[dict[str, Any]]:
        pid = DEFAULT_PID
        if raw_pid is not None:
            try:
                pid = int(raw_pid)
            except ValueError as exc:
                raise ServiceError(
                    f"could not convert '{raw_pid}' to int", status_code=400
                ) from exc
            if pid <= 0:
                pid = DEFAULT_PID
        try:
            processes = collect_process_tree(pid)
        except ProcessNotFoundError as exc:
            raise ServiceError(
                str(exc),
                status_code=400,
                payload={"pid": pid, "error": "pid not identified"},
            ) from exc
        except StatsUnavailableError as exc:
            raise ServiceError(str(exc), status_code=500) from exc
        return [process.to_dict() for process in processes]

    def _require_configuration(self) -> Configuration:
        if self.configuration is None:
            raise ServiceError("service has no check configuration", status_code=404)
        return self.configuration


def build_app(service: GreenbayService) -> FastAPI:
    app = FastAPI(title="greenbay", version=__version__)
    app.include_router(build_router(service))
    register_exception_handlers(app)
    return app


def build_router(service: GreenbayService) -> APIRouter:
    router = APIRouter()

    if not service.disable_stats:
        logger.info("registering_stats_endpoints")

        @router.get("/stats/system_info")
        def system_info() -> dict[str, Any]:
            return service.system_info()

        @router.get("/stats/process_info")
        def root_process_info() -> list[dict[str, Any]]:
            return service.process_info()

        @router.get("/stats/process_info/{pid}")
        def process_info(pid: str) -> list[dict[str, Any]]:
            return service.process_info(pid)

    if service.configuration is not None:

        @router.get("/check/reload")
        def reload_config() -> dict[str, str]:
            return service.reload()

        @router.get("/check/suite/{suite_id}")
        def run_suite(suite_id: str) -> dict[str, Any]:
            return service.run_suite(suite_id)

        @router.get("/check/test/{test_id}")
        def run_test(test_id: str) -> dict[str, Any]:
            return service.run_test(test_id)

    @router.post("/jobs")
    def submit_job(request: JobRequest) -> dict[str, str]:
        return service.submit_job(request)

    @router.get("/jobs/{job_id}")
    def job_status(job_id: str) -> dict[str, Any]:
        return service.job_status(job_id)

    @router.get("/status")
    def status() -> dict[str, Any]:
        return service.status()

    @router.get("/status/wait")
    def wait(timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS) -> dict[str, Any]:
        return service.wait(timeout)

    return router


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(_request: Request, exc: ServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("service_request_failed", error=str(exc), status_code=exc.status_code)
        return JSONResponse(status_code=exc.status_code, content=exc.payload)


__all__ = [
    "ADHOC_TIMEOUT_SECONDS",
    "DEFAULT_CACHE_SIZE",
    "DEFAULT_PORT",
    "DEFAULT_SERVICE_JOBS",
    "DEFAULT_WAIT_TIMEOUT_SECONDS",
    "GreenbayService",
    "JobRequest",
    "ServiceError",
    "build_app",
    "build_router",
    "register_exception_handlers",
]
