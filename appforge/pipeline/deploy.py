"""Publish a session's files to source hosting, then to a hosting platform.

The two phases fail independently. When the repository is pushed but the
hosting deployment fails, the result still carries the repository URL.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Awaitable, Callable, Sequence

from appforge.errors import PollingTimeout, UpstreamError, ValidationError
from appforge.models.deployment import DeploymentResult, DeploymentStatus, HostingDeployment
from appforge.models.files import FileChange
from appforge.models.scm import PushResult, RepoInfo, TreeEntry
from appforge.providers.hosting.base import HostingProvider
from appforge.providers.scm.base import SourceHostProvider
from appforge.sessions.store import SessionStore, validate_session_id

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

MAX_COMMIT_MESSAGE = 500
READY_STATES = frozenset({"READY"})
FAILED_STATES = frozenset({"ERROR", "CANCELED"})


def generate_project_name(prompt: str | None) -> str:
    if not prompt:
        return "project"
    words = re.sub(r"[^a-z0-9\s]", "", prompt.lower()).split()
    words = [word for word in words if len(word) > 3][:3]
    return "-".join(words) if words else "project"


def slugify(name: str, limit: int = 50) -> str:
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug)
    return slug[:limit].strip("-") or "project"


def validate_commit_message(message: str | None) -> str | None:
    if message is not None and len(message) > MAX_COMMIT_MESSAGE:
        raise ValidationError(f"Commit message exceeds {MAX_COMMIT_MESSAGE} characters")
    return message


class DeploymentOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        source_host: SourceHostProvider,
        hosting: HostingProvider,
        *,
        repo_prefix: str = "appforge",
        repo_init_delay_s: float = 2.0,
        poll_interval_s: float = 5.0,
        poll_attempts: int = 60,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._source_host = source_host
        self._hosting = hosting
        self._repo_prefix = repo_prefix
        self._repo_init_delay_s = repo_init_delay_s
        self._poll_interval_s = poll_interval_s
        self._poll_attempts = poll_attempts
        self._sleep = sleep
        self._clock = clock

    def repo_name_for(self, project_name: str) -> str:
        return f"{self._repo_prefix}-{slugify(project_name)}-{int(self._clock() * 1000)}"

    async def deploy(
        self,
        session_id: str,
        commit_message: str | None = None,
        project_name_hint: str | None = None,
    ) -> DeploymentResult:
        validate_session_id(session_id)
        validate_commit_message(commit_message)
        with self._store.deploying(session_id) as files:
            project_name = generate_project_name(project_name_hint)
            logger.info(f"Deploying {len(files)} file(s) for session {session_id}")
            try:
                push = await self.publish_source(files, project_name, commit_message)
            except Exception as exc:
                logger.error(f"Source hosting failed for {session_id}: {exc}")
                return DeploymentResult(
                    success=False, status=DeploymentStatus.FAILED, error=str(exc)
                )

            repo = push.repo
            try:
                deployment, status = await self.publish_hosting(repo)
            except Exception as exc:
                logger.error(f"Hosting deployment failed for {repo.full_name}: {exc}")
                return DeploymentResult(
                    success=False,
                    status=DeploymentStatus.FAILED,
                    github_url=repo.html_url,
                    repo_name=repo.name,
                    error=str(exc),
                    files_deployed=push.files_pushed,
                )

        return DeploymentResult(
            success=True,
            status=status,
            deployment_url=deployment.url,
            github_url=repo.html_url,
            repo_name=repo.name,
            deployment_id=deployment.deployment_id,
            files_deployed=push.files_pushed,
        )

    async def publish_source(
        self,
        files: Sequence[FileChange],
        project_name: str,
        commit_message: str | None = None,
    ) -> PushResult:
        """Create a repository and push ``files`` as a single commit on top of its init commit."""
        host = self._source_host
        repo_name = self.repo_name_for(project_name)
        logger.info(f"Creating repository {repo_name}")
        repo: RepoInfo = await asyncio.to_thread(
            host.create_repo, repo_name, f"Generated project: {project_name}"
        )
        try:
            await self._sleep(self._repo_init_delay_s)
            base_commit = await asyncio.to_thread(
                host.get_branch_head, repo.full_name, repo.default_branch
            )
            base_tree = await asyncio.to_thread(host.get_commit_tree, repo.full_name, base_commit)

            entries: list[TreeEntry] = []
            for item in files:
                if item.is_delete:
                    continue
                sha = await asyncio.to_thread(host.create_blob, repo.full_name, item.content)
                entries.append(TreeEntry(path=item.path, sha=sha))
            logger.info(f"Created {len(entries)} blob(s) in {repo.full_name}")

            tree_sha = await asyncio.to_thread(host.create_tree, repo.full_name, base_tree, entries)
            message = commit_message or f"Initial commit: {project_name}\n\nGenerated by appforge"
            commit_sha = await asyncio.to_thread(
                host.create_commit, repo.full_name, message, tree_sha, [base_commit]
            )
            await asyncio.to_thread(
                host.update_ref, repo.full_name, repo.default_branch, commit_sha, True
            )
        except Exception as exc:
            raise UpstreamError(
                f"{exc} (repository {repo.html_url} was left in place)"
            ) from exc
        logger.info(f"Pushed {len(entries)} file(s) to {repo.html_url}")
        return PushResult(repo=repo, commit_sha=commit_sha, files_pushed=len(entries))

    async def publish_hosting(
        self, repo: RepoInfo
    ) -> tuple[HostingDeployment, DeploymentStatus]:
        project = await asyncio.to_thread(self._hosting.create_project, repo.name, repo.full_name)
        deployment = await asyncio.to_thread(
            self._hosting.create_deployment, project, repo.full_name, repo.default_branch
        )
        logger.info(f"Deployment {deployment.deployment_id} triggered: {deployment.url}")
        try:
            await self.wait_for_deployment(deployment.deployment_id)
        except PollingTimeout:
            logger.warning(
                f"Deployment {deployment.deployment_id} still in progress after "
                f"{self._poll_attempts} checks"
            )
            return deployment, DeploymentStatus.PENDING
        return deployment, DeploymentStatus.READY

    async def wait_for_deployment(self, deployment_id: str) -> str:
        for attempt in range(self._poll_attempts):
            await self._sleep(self._poll_interval_s)
            try:
                state = await asyncio.to_thread(self._hosting.get_deployment_state, deployment_id)
            except UpstreamError as exc:
                logger.warning(f"Deployment status check {attempt + 1} failed: {exc}")
                continue
            logger.debug(f"Deployment state: {state}")
            if state in READY_STATES:
                return state
            if state in FAILED_STATES:
                raise UpstreamError(f"Deployment failed with state: {state}")
        raise PollingTimeout(
            f"Deployment {deployment_id} not ready after {self._poll_attempts} checks",
            attempts=self._poll_attempts,
        )
