"""Host and process statistics gathered with ``psutil``."""

from __future__ import annotations

import os
import platform
import socket
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import psutil

DEFAULT_PID = 1


class StatsUnavailableError(RuntimeError):
    """``psutil`` could not collect the requested statistics."""


class ProcessNotFoundError(LookupError):
    def __init__(self, pid: int) -> None:
        super().__init__(f"pid {pid} not identified")
        self.pid = pid


@dataclass(frozen=True, slots=True)
class SystemInfo:
    """Point-in-time host snapshot served by the stats endpoint."""

    captured_at: datetime
    hostname: str
    platform: str
    cpu_count: int | None
    cpu_percent: float
    memory: dict[str, int | float]
    swap: dict[str, int | float]
    disk: dict[str, int | float]
    boot_time: datetime
    load_average: tuple[float, ...] = ()
    process_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "captured_at": _isoformat(self.captured_at),
            "hostname": self.hostname,
            "platform": self.platform,
            "cpu_count": self.cpu_count,
            "cpu_percent": self.cpu_percent,
            "memory": dict(self.memory),
            "swap": dict(self.swap),
            "disk": dict(self.disk),
            "boot_time": _isoformat(self.boot_time),
            "load_average": list(self.load_average),
            "process_count": self.process_count,
        }


@dataclass(frozen=True, slots=True)
class ProcessInfo:
    pid: int
    ppid: int | None
    name: str
    status: str
    cpu_percent: float
    rss_bytes: int
    vms_bytes: int
    threads: int
    create_time: datetime | None
    cmdline: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "ppid": self.ppid,
            "name": self.name,
            "cmdline": list(self.cmdline),
            "status": self.status,
            "cpu_percent": self.cpu_percent,
            "rss_bytes": self.rss_bytes,
            "vms_bytes": self.vms_bytes,
            "threads": self.threads,
            "create_time": _isoformat(self.create_time) if self.create_time else None,
        }


def collect_system_info(*, disk_path: Path | str | None = None) -> SystemInfo:
    root = Path(disk_path) if disk_path is not None else Path(os.path.abspath(os.sep))
    try:
        memory = psutil.virtual_memory()
        swap = psutil.swap_memory()
        disk = psutil.disk_usage(str(root))
        cpu_percent = float(psutil.cpu_percent(interval=None))
        boot_time = datetime.fromtimestamp(psutil.boot_time(), tz=UTC)
        process_count = len(psutil.pids())
        load_average = tuple(float(item) for item in psutil.getloadavg())
    except (psutil.Error, OSError) as exc:
        raise StatsUnavailableError(f"problem collecting system info: {exc}") from exc

    return SystemInfo(
        captured_at=datetime.now(tz=UTC),
        hostname=socket.gethostname(),
        platform=platform.platform(),
        cpu_count=psutil.cpu_count(),
        cpu_percent=cpu_percent,
        memory={
            "total": int(memory.total),
            "available": int(memory.available),
            "used": int(memory.used),
            "percent": float(memory.percent),
        },
        swap={
            "total": int(swap.total),
            "used": int(swap.used),
            "free": int(swap.free),
            "percent": float(swap.percent),
        },
        disk={
            "total": int(disk.total),
            "used": int(disk.used),
            "free": int(disk.free),
            "percent": float(disk.percent),
        },
        boot_time=boot_time,
        load_average=load_average,
        process_count=process_count,
    )


def collect_process_tree(pid: int = DEFAULT_PID) -> list[ProcessInfo]:
    """Snapshot ``pid`` followed by all of its descendants."""

    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess as exc:
        raise ProcessNotFoundError(pid) from exc
    except psutil.Error as exc:
        raise StatsUnavailableError(f"problem inspecting pid {pid}: {exc}") from exc

    try:
        processes = [root, *root.children(recursive=True)]
    except psutil.NoSuchProcess as exc:
        raise ProcessNotFoundError(pid) from exc
    except psutil.Error as exc:
        raise StatsUnavailableError(f"problem listing children of pid {pid}: {exc}") from exc

    snapshots: list[ProcessInfo] = []
    for process in processes:
        snapshot = _snapshot(process)
        if snapshot is not None:
            snapshots.append(snapshot)
    if not snapshots:
        raise ProcessNotFoundError(pid)
    return snapshots


def _snapshot(process: psutil.Process) -> ProcessInfo | None:
    try:
        with process.oneshot():
            memory = process.memory_info()
            try:
                cmdline = tuple(process.cmdline())
            except psutil.AccessDenied:
                cmdline = ()
            return ProcessInfo(
                pid=process.pid,
                ppid=process.ppid(),
                name=process.name(),
                status=str(process.status()),
                cpu_percent=float(process.cpu_percent(interval=None)),
                rss_bytes=int(memory.rss),
                vms_bytes=int(memory.vms),
                threads=int(process.num_threads()),
                create_time=datetime.fromtimestamp(process.create_time(), tz=UTC),
                cmdline=cmdline,
            )
    except psutil.NoSuchProcess:
        # exited between listing and inspection
        return None
    except psutil.Error as exc:
        raise StatsUnavailableError(f"problem inspecting pid {process.pid}: {exc}") from exc


def _isoformat(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


__all__ = [
    "DEFAULT_PID",
    "ProcessInfo",
    "ProcessNotFoundError",
    "StatsUnavailableError",
    "SystemInfo",
    "collect_process_tree",
    "collect_system_info",
]
