"""Remote runner: submit configured checks to a greenbay service and report them."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import httpx
import structlog

from greenbay.app import select_checks
from greenbay.check.base import CheckOutput
from greenbay.config.configuration import Configuration
from greenbay.reporting.output import OutputOptions

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from typing import TextIO

    from greenbay.check.base import Check
    from greenbay.check.registry import CheckRegistry

logger = structlog.get_logger(__name__)

DEFAULT_CLIENT_HOST: Final[str] = "http://localhost"
DEFAULT_CLIENT_PORT: Final[int] = 80
DEFAULT_WAIT_TIMEOUT_SECONDS: Final[float] = 20.0
_REQUEST_TIMEOUT_SECONDS: Final[float] = 30.0


class ClientError(RuntimeError):
    """Submission, waiting or fetching against the remote service failed."""


def remote_job_id(check_id: str) -> str:
    return f"{check_id}-{int(time.time())}-{uuid.uuid4()}"


@dataclass(slots=True)
class GreenbayClient:
    """Runs the selected checks on a remote service instead of locally.

    ``http_client`` may be supplied (for example a FastAPI ``TestClient``);
    otherwise an ``httpx.Client`` bound to ``host:port`` is created and owned.
    """

    configuration: Configuration
    output: OutputOptions
    host: str = DEFAULT_CLIENT_HOST
    port: int = DEFAULT_CLIENT_PORT
    tests: tuple[str, ...] = ()
    suites: tuple[str, ...] = ()
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    http_client: httpx.Client | None = None
    _owns_client: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.wait_timeout <= 0:
            raise ValueError("wait_timeout must be > 0")
        if self.http_client is None:
            self.http_client = httpx.Client(
                base_url=self.base_url,
                timeout=max(_REQUEST_TIMEOUT_SECONDS, self.wait_timeout + 5.0),
            )
            self._owns_client = True

    @classmethod
    def from_paths(
        cls,
        conf_path: str | Path,
        *,
        host: str = DEFAULT_CLIENT_HOST,
        port: int = DEFAULT_CLIENT_PORT,
        output_path: str | Path | None = None,
        report_format: str | None = None,
        quiet: bool = False,
        suites: Sequence[str] = (),
        tests: Sequence[str] = (),
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT_SECONDS,
        registry: CheckRegistry | None = None,
        environ: Mapping[str, str] | None = None,
        http_client: httpx.Client | None = None,
    ) -> GreenbayClient:
        configuration = Configuration.from_file(conf_path, registry=registry, environ=environ)
        output = OutputOptions(
            path=Path(output_path) if output_path else None,
            format=report_format or configuration.options.report_format,
            quiet=quiet,
        )
        return cls(
            configuration=configuration,
            output=output,
            host=host,
            port=port,
            tests=tuple(tests),
            suites=tuple(suites),
            wait_timeout=wait_timeout,
            http_client=http_client,
        )

    @property
    def base_url(self) -> str:
        return f"{self.host.rstrip('/')}:{self.port}"

    def close(self) -> None:
        if self._owns_client and self.http_client is not None:
            self.http_client.close()
            self.http_client = None

    def __enter__(self) -> GreenbayClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def run(self, *, stream: TextIO | None = None) -> list[str]:
        """Submit, wait, fetch and report; returns the remote job ids."""

        started = time.monotonic()
        checks = select_checks(self.configuration, self.tests, self.suites)

        ids: list[str] = []
        problems: list[str] = []
        for check in checks:
            try:
                ids.append(self.submit(check))
            except ClientError as exc:
                problems.append(str(exc))
        if problems:
            raise ClientError("collecting and submitting jobs: " + "\n".join(problems))

        if not self.wait_all():
            raise ClientError(f"timed out waiting for {len(ids)} jobs to complete")

        outputs: list[CheckOutput] = []
        for job_id in ids:
            try:
                outputs.append(self.fetch(job_id))
            except ClientError as exc:
                problems.append(str(exc))

        try:
            self.output.collect_results(outputs, stream=stream)
        finally:
            logger.info(
                "remote_checks_complete",
                total=len(ids),
                runtime_seconds=round(time.monotonic() - started, 3),
            )
        if problems:
            raise ClientError("fetching job results: " + "\n".join(problems))
        return ids

    def submit(self, check: Check) -> str:
        payload = {
            "name": remote_job_id(check.id),
            "type": check.name,
            "suites": check.suites,
            "args": check.to_args(),
        }
        body = self._request("POST", "/jobs", json=payload)
        return str(body["id"])

    def wait_all(self) -> bool:
        body = self._request("GET", "/status/wait", params={"timeout": self.wait_timeout})
        return bool(body.get("completed"))

    def fetch(self, job_id: str) -> CheckOutput:
        body = self._request("GET", f"/jobs/{job_id}")
        output = body.get("output")
        if not isinstance(output, dict):
            raise ClientError(f"job '{job_id}' answered without an output document")
        return CheckOutput.from_dict(output)

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        if self.http_client is None:
            raise ClientError(f"{method} {path}: client is closed")
        try:
            response = self.http_client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ClientError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise ClientError(
                f"{method} {path} answered {response.status_code}: {_error_text(response)}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ClientError(f"{method} {path} answered with invalid JSON") from exc
        if not isinstance(body, dict):
            raise ClientError(f"{method} {path} answered with a non-object document")
        return body


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text


__all__ = [
    "DEFAULT_CLIENT_HOST",
    "DEFAULT_CLIENT_PORT",
    "DEFAULT_WAIT_TIMEOUT_SECONDS",
    "ClientError",
    "GreenbayClient",
    "remote_job_id",
]
