"""GitHub source-hosting provider backed by the GitHub REST API."""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Sequence

from appforge.errors import UpstreamError
from appforge.models.scm import RepoInfo, TreeEntry
from appforge.providers.scm.base import SourceHostProvider

logger = logging.getLogger(__name__)


class GitHubProvider(SourceHostProvider):
    def __init__(
        self,
        token: str | None = None,
        username: str | None = None,
        base_url: str = "https://api.github.com",
        timeout_s: float = 30.0,
    ) -> None:
        self._token = token or os.getenv("GITHUB_PAT") or os.getenv("GITHUB_TOKEN")
        self._username = username or os.getenv("GITHUB_USERNAME")
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    def _ensure_token(self) -> str:
        if not self._token:
            raise ValueError("GitHub token is required (set GITHUB_PAT or GITHUB_TOKEN).")
        return self._token

    def _request(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        token = self._ensure_token()
        url = f"{self._base_url}{path}"
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(url, data=data, method=method)
        request.add_header("Accept", "application/vnd.github+json")
        request.add_header("User-Agent", "appforge")
        request.add_header("Authorization", f"Bearer {token}")
        if data is not None:
            request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_s) as response:
                raw = response.read()
                return json.loads(raw.decode("utf-8")) if raw else None
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8")
            raise UpstreamError(
                f"GitHub API error {exc.code}: {body}", status=exc.code, body=body
            ) from exc
        except urllib.error.URLError as exc:
            raise UpstreamError(f"GitHub API unreachable: {exc.reason}") from exc

    def _expect(self, response: Any, *keys: str) -> dict[str, Any]:
        if not isinstance(response, dict) or any(key not in response for key in keys):
            raise UpstreamError("Unexpected response from GitHub API.")
        return response

    def create_repo(
        self,
        name: str,
        description: str,
        private: bool = False,
        auto_init: bool = True,
    ) -> RepoInfo:
        payload = {
            "name": name,
            "description": description,
            "private": private,
            "auto_init": auto_init,
        }
        response = self._expect(self._request("POST", "/user/repos", payload), "html_url")
        full_name = response.get("full_name")
        if not full_name:
            if not self._username:
                raise UpstreamError("GitHub response lacks full_name and GITHUB_USERNAME is unset.")
            full_name = f"{self._username}/{name}"
        logger.info(f"Created GitHub repository {full_name}")
        return RepoInfo(
            name=response.get("name", name),
            full_name=full_name,
            html_url=response["html_url"],
            clone_url=response.get("clone_url", ""),
            default_branch=response.get("default_branch") or "main",
        )

    def get_branch_head(self, repo: str, branch: str) -> str:
        response = self._expect(
            self._request("GET", f"/repos/{repo}/git/ref/heads/{branch}"), "object"
        )
        sha = response["object"].get("sha") if isinstance(response["object"], dict) else None
        if not sha:
            raise UpstreamError("Failed to get base commit")
        return sha

    def get_commit_tree(self, repo: str, commit_sha: str) -> str:
        response = self._expect(
            self._request("GET", f"/repos/{repo}/git/commits/{commit_sha}"), "tree"
        )
        sha = response["tree"].get("sha") if isinstance(response["tree"], dict) else None
        if not sha:
            raise UpstreamError("Failed to get base tree")
        return sha

    def create_blob(self, repo: str, content: str) -> str:
        response = self._request(
            "POST",
            f"/repos/{repo}/git/blobs",
            {"content": content, "encoding": "utf-8"},
        )
        return self._expect(response, "sha")["sha"]

    def create_tree(self, repo: str, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        response = self._request(
            "POST",
            f"/repos/{repo}/git/trees",
            {"base_tree": base_tree, "tree": [entry.to_payload() for entry in entries]},
        )
        return self._expect(response, "sha")["sha"]

    def create_commit(
        self, repo: str, message: str, tree_sha: str, parents: Sequence[str]
    ) -> str:
        response = self._request(
            "POST",
            f"/repos/{repo}/git/commits",
            {"message": message, "tree": tree_sha, "parents": list(parents)},
        )
        return self._expect(response, "sha")["sha"]

    def update_ref(self, repo: str, branch: str, sha: str, force: bool = False) -> None:
        self._request(
            "PATCH",
            f"/repos/{repo}/git/refs/heads/{branch}",
            {"sha": sha, "force": force},
        )
