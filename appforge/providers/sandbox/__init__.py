"""Sandbox provider implementations and interfaces."""

from appforge.providers.sandbox.base import SandboxProvider
from appforge.providers.sandbox.daytona import DaytonaProvider
from appforge.providers.sandbox.local import LocalProvider

__all__ = ["DaytonaProvider", "LocalProvider", "SandboxProvider"]
