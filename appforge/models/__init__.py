"""Shared data models for the appforge application."""

from appforge.models.deployment import (
    DeploymentResult,
    DeploymentStatus,
    HostingDeployment,
    HostingProject,
)
from appforge.models.files import FileChange, FileOperation, sanitize_path
from appforge.models.progress import EventKind, ProgressEvent
from appforge.models.sandbox import (
    ExecResult,
    FileEntry,
    HealthCheckResult,
    HealthVerdict,
    ProvisioningStage,
    SandboxHandle,
    SandboxResources,
)
from appforge.models.scm import PushResult, RepoInfo, TreeEntry

__all__ = [
    "DeploymentResult",
    "DeploymentStatus",
    "EventKind",
    "ExecResult",
    "FileChange",
    "FileEntry",
    "FileOperation",
    "HealthCheckResult",
    "HealthVerdict",
    "HostingDeployment",
    "HostingProject",
    "ProgressEvent",
    "ProvisioningStage",
    "PushResult",
    "RepoInfo",
    "SandboxHandle",
    "SandboxResources",
    "TreeEntry",
    "sanitize_path",
]
