"""Data models for hosting deployments."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from appforge.errors import PartialDeploymentError, UpstreamError


class DeploymentStatus(str, Enum):
    READY = "ready"
    # Status polling ran out; the deployment may still finish on its own.
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class HostingProject:
    project_id: str
    name: str
    repo_id: str | int | None = None


@dataclass(frozen=True)
class HostingDeployment:
    deployment_id: str
    url: str
    project_id: str


@dataclass(frozen=True)
class DeploymentResult:
    success: bool
    status: DeploymentStatus
    deployment_url: str | None = None
    github_url: str | None = None
    repo_name: str | None = None
    deployment_id: str | None = None
    error: str | None = None
    files_deployed: int = 0

    @property
    def partial(self) -> bool:
        return not self.success and self.github_url is not None

    def raise_for_status(self) -> None:
        if self.success:
            return
        message = self.error or "Deployment failed"
        if self.github_url is not None:
            raise PartialDeploymentError(message, self.github_url, self.repo_name)
        raise UpstreamError(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "filesDeployed": self.files_deployed,
        }
        optional = {
            "deploymentUrl": self.deployment_url,
            "githubUrl": self.github_url,
            "repoName": self.repo_name,
            "deploymentId": self.deployment_id,
            "error": self.error,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        if self.partial:
            payload["partial"] = True
        return payload
