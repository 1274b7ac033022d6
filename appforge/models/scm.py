"""Data models for source-hosting interactions."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RepoInfo:
    name: str
    full_name: str
    html_url: str
    clone_url: str
    default_branch: str = "main"


@dataclass(frozen=True)
class TreeEntry:
    path: str
    sha: str
    mode: str = "100644"
    type: str = "blob"

    def to_payload(self) -> dict[str, str]:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


@dataclass(frozen=True)
class PushResult:
    repo: RepoInfo
    commit_sha: str
    files_pushed: int
