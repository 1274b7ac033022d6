"""
Pytest configuration and shared fakes for the appforge test suite.

Every external collaborator (generation service, sandbox, GitHub, Vercel)
is replaced by an in-memory fake implementing the same protocol.
"""
from __future__ import annotations

from typing import Any, Sequence

import httpx
import pytest

from appforge.errors import UpstreamError
from appforge.models.deployment import HostingDeployment, HostingProject
from appforge.models.sandbox import ExecResult, FileEntry, SandboxResources
from appforge.models.scm import RepoInfo, TreeEntry
from appforge.pipeline.provisioner import SandboxProvisioner
from appforge.providers.llm.litellm_client import GenerationResult
from appforge.sessions.broadcaster import ProgressBroadcaster
from appforge.sessions.store import SessionStore

pytest_plugins = ["pytest_asyncio"]


def files_response(*files: tuple[str, str], explanation: str = "") -> str:
    blocks = "\n\n".join(f"FILE: {path}\n```tsx\n{content}\n```" for path, content in files)
    text = f"<explanation>\n{explanation}\n</explanation>\n\n" if explanation else ""
    return f"{text}<files>\n{blocks}\n</files>"


async def no_sleep(seconds: float) -> None:
    return None


class FakeGenerator:
    def __init__(self, *responses: str, error: Exception | None = None) -> None:
        self.responses = list(responses)
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        conversation: Sequence[dict[str, str]],
        system_contract: str,
        *,
        profile: str = "build",
        max_tokens: int | None = None,
        temperature: float | None = None,
        model: str | None = None,
    ) -> GenerationResult:
        self.calls.append(
            {"conversation": list(conversation), "contract": system_contract, "profile": profile}
        )
        if self.error is not None:
            raise self.error
        text = self.responses.pop(0) if self.responses else ""
        return GenerationResult(text=text, model="fake")


class FakeSandboxProvider:
    def __init__(
        self,
        install_exit: int = 0,
        install_output: str = "added 312 packages",
        curl_codes: Sequence[str] = ("200",),
        server_log: str = "",
        fail_create: bool = False,
        fail_write_path: str | None = None,
        fail_delete: bool = False,
    ) -> None:
        self.install_exit = install_exit
        self.install_output = install_output
        self.curl_codes = list(curl_codes)
        self.server_log = server_log
        self.fail_create = fail_create
        self.fail_write_path = fail_write_path
        self.fail_delete = fail_delete
        self.sandboxes: dict[str, dict[str, bytes]] = {}
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.commands: list[list[str]] = []
        self.writes: list[str] = []

    def create_sandbox(
        self,
        name: str,
        resources: SandboxResources,
        image: str | None = None,
        env: dict[str, str] | None = None,
        labels: dict[str, str] | None = None,
    ) -> str:
        if self.fail_create:
            raise RuntimeError("quota exceeded")
        sandbox_id = f"{name}-{len(self.created) + 1}"
        self.sandboxes[sandbox_id] = {}
        self.created.append(sandbox_id)
        return sandbox_id

    def delete_sandbox(self, sandbox_id: str) -> None:
        if self.fail_delete:
            raise RuntimeError("delete refused")
        self.deleted.append(sandbox_id)
        self.sandboxes.pop(sandbox_id, None)

    def list_sandboxes(self) -> Sequence[str]:
        return list(self.sandboxes)

    def get_root_dir(self, sandbox_id: str) -> str:
        return f"/home/sandbox/{sandbox_id}"

    def exec(
        self,
        sandbox_id: str,
        command: Sequence[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_s: int | None = None,
    ) -> ExecResult:
        command = list(command)
        self.commands.append(command)
        if command[:2] == ["npm", "install"]:
            return ExecResult(self.install_exit, self.install_output, "", 10)
        if command[0] == "curl":
            code = self.curl_codes.pop(0) if len(self.curl_codes) > 1 else self.curl_codes[0]
            return ExecResult(0 if code != "000" else 7, code, "", 1)
        if command[:2] == ["cat", "dev-server.log"]:
            return ExecResult(0, self.server_log, "", 1)
        if command[:2] == ["rm", "-f"]:
            self.sandboxes[sandbox_id].pop(command[2], None)
        return ExecResult(0, "", "", 1)

    def read_file(self, sandbox_id: str, path: str) -> bytes:
        try:
            return self.sandboxes[sandbox_id][path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def write_file(
        self,
        sandbox_id: str,
        path: str,
        data: bytes,
        mode: int | None = None,
        append: bool = False,
    ) -> None:
        if path == self.fail_write_path:
            raise OSError(f"disk full writing {path}")
        self.sandboxes[sandbox_id][path] = data
        self.writes.append(path)

    def list_files(self, sandbox_id: str, path: str) -> Sequence[FileEntry]:
        prefix = "" if path in (".", "") else path.rstrip("/") + "/"
        children: dict[str, FileEntry] = {}
        for stored, data in self.sandboxes[sandbox_id].items():
            if not stored.startswith(prefix):
                continue
            rest = stored[len(prefix) :]
            head, _, tail = rest.partition("/")
            if tail:
                children.setdefault(head, FileEntry(head, True, 0, None))
            else:
                children[head] = FileEntry(head, False, len(data), None)
        return list(children.values())

    def mkdirs(self, sandbox_id: str, path: str) -> None:
        return None

    def get_preview_link(self, sandbox_id: str, port: int) -> str | None:
        return f"https://{port}-{sandbox_id}.preview.test"

    def seed(self, sandbox_id: str, files: dict[str, str]) -> None:
        self.sandboxes.setdefault(sandbox_id, {}).update(
            {path: content.encode("utf-8") for path, content in files.items()}
        )


class FakeSourceHost:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.calls: list[str] = []
        self.blobs: list[str] = []
        self.tree: list[TreeEntry] = []
        self.commit: dict[str, Any] = {}
        self.ref_update: tuple[str, str, bool] | None = None

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_on == name:
            raise UpstreamError(f"GitHub API error 500: {name} failed", status=500)

    def create_repo(
        self, name: str, description: str, private: bool = False, auto_init: bool = True
    ) -> RepoInfo:
        self._record("create_repo")
        return RepoInfo(
            name=name,
            full_name=f"octo/{name}",
            html_url=f"https://github.com/octo/{name}",
            clone_url=f"https://github.com/octo/{name}.git",
            default_branch="main",
        )

    def get_branch_head(self, repo: str, branch: str) -> str:
        self._record("get_branch_head")
        return "base-commit"

    def get_commit_tree(self, repo: str, commit_sha: str) -> str:
        self._record("get_commit_tree")
        return "base-tree"

    def create_blob(self, repo: str, content: str) -> str:
        self._record("create_blob")
        self.blobs.append(content)
        return f"blob-{len(self.blobs)}"

    def create_tree(self, repo: str, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        self._record("create_tree")
        self.tree = list(entries)
        return "new-tree"

    def create_commit(
        self, repo: str, message: str, tree_sha: str, parents: Sequence[str]
    ) -> str:
        self._record("create_commit")
        self.commit = {"message": message, "tree": tree_sha, "parents": list(parents)}
        return "new-commit"

    def update_ref(self, repo: str, branch: str, sha: str, force: bool = False) -> None:
        self._record("update_ref")
        self.ref_update = (branch, sha, force)


class FakeHosting:
    def __init__(self, states: Sequence[str] = ("READY",), fail_on: str | None = None) -> None:
        self.states = list(states)
        self.fail_on = fail_on
        self.polls = 0

    def create_project(self, name: str, repo: str) -> HostingProject:
        if self.fail_on == "create_project":
            raise UpstreamError("Vercel API error 400: bad project", status=400)
        return HostingProject(project_id="prj_1", name=name, repo_id=42)

    def create_deployment(
        self, project: HostingProject, repo: str, ref: str = "main"
    ) -> HostingDeployment:
        if self.fail_on == "create_deployment":
            raise UpstreamError("Vercel API error 500: deploy refused", status=500)
        return HostingDeployment(
            deployment_id="dpl_1", url=f"https://{project.name}.vercel.app", project_id="prj_1"
        )

    def get_deployment_state(self, deployment_id: str) -> str:
        self.polls += 1
        return self.states.pop(0) if len(self.states) > 1 else self.states[0]


def alive_transport(status: int = 404) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status))


def make_provisioner(provider: FakeSandboxProvider, **overrides: Any) -> SandboxProvisioner:
    options: dict[str, Any] = {
        "settle_delay_s": 0,
        "health_interval_s": 0,
        "health_attempts": 3,
        "probe_attempts": 2,
        "http_client": httpx.AsyncClient(transport=alive_transport()),
        "sleep": no_sleep,
    }
    options.update(overrides)
    return SandboxProvisioner(provider, **options)


@pytest.fixture
def store() -> SessionStore:
    return SessionStore(grace_s=5.0, max_age_s=3600.0)


@pytest.fixture
def broadcaster(store: SessionStore) -> ProgressBroadcaster:
    return ProgressBroadcaster(store, stream_timeout_s=2.0)


@pytest.fixture
def sandbox() -> FakeSandboxProvider:
    return FakeSandboxProvider()
