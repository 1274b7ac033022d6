"""Data models for sandbox interactions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SandboxResources:
    vcpu: int = 2
    memory_gib: int = 4
    disk_gib: int = 8


@dataclass(frozen=True)
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass(frozen=True)
class FileEntry:
    name: str
    is_dir: bool
    size: int
    mod_time: Optional[float]


class ProvisioningStage(str, Enum):
    CREATING = "creating"
    UPLOADING = "uploading"
    INSTALLING = "installing"
    STARTING = "starting"
    HEALTH_CHECKING = "health-checking"
    READY = "ready"


class HealthVerdict(str, Enum):
    READY = "ready"
    FATAL = "fatal"
    AMBIGUOUS = "ambiguous"


@dataclass(frozen=True)
class HealthCheckResult:
    verdict: HealthVerdict
    detail: str = ""


@dataclass(frozen=True)
class SandboxHandle:
    sandbox_id: str
    root_dir: str
    preview_url: str | None
    port: int
    reachable: bool = False
