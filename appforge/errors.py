"""Error taxonomy shared by the pipeline, providers and API."""

from __future__ import annotations


class AppForgeError(Exception):
    """Base class for every error raised by appforge."""


class ValidationError(AppForgeError):
    """Bad caller input. Never retried, surfaced verbatim."""


class SessionNotFound(ValidationError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"No files found for session {session_id}")
        self.session_id = session_id


class UpstreamError(AppForgeError):
    """A generation, sandbox or publishing provider reported a failure."""

    def __init__(
        self, message: str, status: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ProvisioningError(AppForgeError):
    """The sandbox never became usable. It is torn down before this is raised."""

    def __init__(
        self, message: str, stage: str | None = None, output: str | None = None
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.output = output


class PartialDeploymentError(AppForgeError):
    """Source hosting succeeded but the hosting deployment did not."""

    def __init__(
        self, message: str, github_url: str, repo_name: str | None = None
    ) -> None:
        super().__init__(message)
        self.github_url = github_url
        self.repo_name = repo_name


class PollingTimeout(AppForgeError, TimeoutError):
    """A bounded polling loop ran out of attempts."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts
