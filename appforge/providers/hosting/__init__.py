"""Hosting provider implementations and interfaces."""

from appforge.providers.hosting.base import HostingProvider
from appforge.providers.hosting.vercel import VercelProvider

__all__ = ["HostingProvider", "VercelProvider"]
