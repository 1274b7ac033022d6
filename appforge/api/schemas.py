"""Request bodies accepted by the HTTP API."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from appforge.pipeline.deploy import MAX_COMMIT_MESSAGE

SESSION_ID_REGEX = r"^[A-Za-z0-9_-]{1,64}$"


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BuildRequest(_Body):
    prompt: str = Field(min_length=1)
    session_id: str = Field(alias="sessionId", pattern=SESSION_ID_REGEX)


class ChatTurn(_Body):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(_Body):
    message: str = Field(min_length=1)
    sandbox_id: str = Field(alias="sandboxId", min_length=1)
    conversation_history: List[ChatTurn] = Field(default_factory=list, alias="conversationHistory")
    session_id: Optional[str] = Field(default=None, alias="sessionId", pattern=SESSION_ID_REGEX)


class DeployRequest(_Body):
    session_id: str = Field(alias="sessionId", pattern=SESSION_ID_REGEX)
    commit_message: Optional[str] = Field(
        default=None, alias="commitMessage", max_length=MAX_COMMIT_MESSAGE
    )
    project_prompt: Optional[str] = Field(default=None, alias="projectPrompt")


class DownloadRequest(_Body):
    session_id: str = Field(alias="sessionId", pattern=SESSION_ID_REGEX)
