"""Provider package for sandbox, source hosting, hosting and LLM integrations."""

from appforge.providers.hosting import HostingProvider, VercelProvider
from appforge.providers.llm.litellm_client import GenerationResult, LiteLLMClient
from appforge.providers.sandbox import DaytonaProvider, LocalProvider, SandboxProvider
from appforge.providers.scm import GitHubProvider, SourceHostProvider

__all__ = [
    "DaytonaProvider",
    "GenerationResult",
    "GitHubProvider",
    "HostingProvider",
    "LiteLLMClient",
    "LocalProvider",
    "SandboxProvider",
    "SourceHostProvider",
    "VercelProvider",
]
