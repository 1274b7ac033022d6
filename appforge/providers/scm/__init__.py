"""Source-hosting provider implementations and interfaces."""

from appforge.providers.scm.base import SourceHostProvider
from appforge.providers.scm.github import GitHubProvider

__all__ = ["GitHubProvider", "SourceHostProvider"]
