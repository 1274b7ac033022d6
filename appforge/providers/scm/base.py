"""Source-hosting provider interface."""

from __future__ import annotations

from typing import Protocol, Sequence

from appforge.models.scm import RepoInfo, TreeEntry


class SourceHostProvider(Protocol):
    def create_repo(
        self,
        name: str,
        description: str,
        private: bool = False,
        auto_init: bool = True,
    ) -> RepoInfo:
        ...

    def get_branch_head(self, repo: str, branch: str) -> str:
        ...

    def get_commit_tree(self, repo: str, commit_sha: str) -> str:
        ...

    def create_blob(self, repo: str, content: str) -> str:
        ...

    def create_tree(self, repo: str, base_tree: str, entries: Sequence[TreeEntry]) -> str:
        ...

    def create_commit(
        self, repo: str, message: str, tree_sha: str, parents: Sequence[str]
    ) -> str:
        ...

    def update_ref(self, repo: str, branch: str, sha: str, force: bool = False) -> None:
        ...
