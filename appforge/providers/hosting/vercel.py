"""Vercel hosting provider backed by the Vercel REST API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from appforge.errors import UpstreamError
from appforge.models.deployment import HostingDeployment, HostingProject
from appforge.providers.hosting.base import HostingProvider

logger = logging.getLogger(__name__)


class VercelProvider(HostingProvider):
    def __init__(
        self,
        token: str | None = None,
        team_id: str | None = None,
        base_url: str = "https://api.vercel.com",
        framework: str = "nextjs",
        timeout_s: float = 30.0,
    ) -> None:
        self._token = token or os.getenv("VERCEL_TOKEN")
        self._team_id = team_id or os.getenv("VERCEL_TEAM_ID")
        self._base_url = base_url.rstrip("/")
        self._framework = framework
        self._timeout_s = timeout_s

    def _ensure_token(self) -> str:
        if not self._token:
            raise ValueError("VERCEL_TOKEN not configured in environment variables")
        return self._token

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        token = self._ensure_token()
        url = f"{self._base_url}{path}"
        if self._team_id:
            url = f"{url}?{urllib.parse.urlencode({'teamId': self._team_id})}"
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(url, data=data, method=method)
        request.add_header("Authorization", f"Bearer {token}")
        request.add_header("User-Agent", "appforge")
        if data is not None:
            request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                raw = response.read()
                return json.loads(raw.decode("utf-8")) if raw else None
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8")
            raise UpstreamError(
                f"Vercel API error {exc.code}: {body}", status=exc.code, body=body
            ) from exc
        except urllib.error.URLError as exc:
            raise UpstreamError(f"Vercel API unreachable: {exc.reason}") from exc

    def create_project(self, name: str, repo: str) -> HostingProject:
        payload = {
            "name": name,
            "framework": self._framework,
            "gitRepository": {"type": "github", "repo": repo},
            "publicSource": True,
            "buildCommand": "npm run build",
            "devCommand": "npm run dev",
            "installCommand": "npm install",
        }
        response = self._request("POST", "/v9/projects", payload)
        if not isinstance(response, dict) or "id" not in response:
            raise UpstreamError("Unexpected response from Vercel API.")
        link = response.get("link") or {}
        logger.info(f"Created Vercel project {response['id']}")
        return HostingProject(
            project_id=response["id"],
            name=response.get("name", name),
            repo_id=link.get("repoId"),
        )

    def create_deployment(
        self, project: HostingProject, repo: str, ref: str = "main"
    ) -> HostingDeployment:
        git_source: dict[str, Any] = {"type": "github", "ref": ref, "repo": repo}
        if project.repo_id is not None:
            git_source["repoId"] = project.repo_id
        payload = {
            "name": project.name,
            "project": project.project_id,
            "gitSource": git_source,
            "target": "production",
        }
        response = self._request("POST", "/v13/deployments", payload)
        if not isinstance(response, dict) or "id" not in response:
            raise UpstreamError("Unexpected response from Vercel API.")
        url = response.get("url", "")
        return HostingDeployment(
            deployment_id=response["id"],
            url=url if url.startswith("http") else f"https://{url}",
            project_id=project.project_id,
        )

    def get_deployment_state(self, deployment_id: str) -> str:
        response = self._request("GET", f"/v13/deployments/{deployment_id}")
        if not isinstance(response, dict):
            raise UpstreamError("Unexpected response from Vercel API.")
        return str(response.get("readyState") or response.get("status") or "UNKNOWN").upper()
