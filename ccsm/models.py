"""Pydantic models matching the frontend TypeScript types."""
from __future__ import annotations

from typing import Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

MessageRole = Literal["user", "assistant", "system", "tool"]
SkillScope = Literal["user", "project"]
WatcherEventType = Literal["session-added", "session-changed", "session-removed", "project-changed"]


class DataResponse(BaseModel, Generic[T]):
    data: T


# ── Transcript models ──────────────────────────────────────────────

class ContentBlock(BaseModel):
    """One unit of structured content: text, tool_use, tool_result or thinking."""

    model_config = ConfigDict(extra="allow")

    type: str = ""
    text: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    # Tool payloads are opaque: inputs may be any JSON value, results a string,
    # nested blocks or a raw object.
    input: Any = None
    content: Optional[Union[str, list[ContentBlock], dict[str, Any]]] = None
    thinking: Optional[str] = None


class TokenUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cache_creation_input_tokens: Optional[int] = None
    cache_read_input_tokens: Optional[int] = None


# Plain text or an ordered list of blocks, never both.
MessageContent = Union[str, list[ContentBlock]]


class SessionMessage(BaseModel):
    role: MessageRole = "system"
    content: Optional[MessageContent] = None
    toolName: Optional[str] = None
    toolInput: Optional[dict[str, Any]] = None
    toolResult: Any = None
    model: Optional[str] = None
    thinking: Optional[str] = None
    timestamp: Optional[str] = None
    usage: Optional[TokenUsage] = None
    stopReason: Optional[str] = None
    durationMs: Optional[Union[int, float]] = None
    costUsd: Optional[Union[int, float]] = None


# ── Session models ─────────────────────────────────────────────────

class SessionSummary(BaseModel):
    id: str
    projectHash: str
    createdAt: int = 0
    updatedAt: int = 0
    fileSize: int = 0
    messageCount: int = 0
    preview: Optional[str] = None
    model: Optional[str] = None
    cwd: Optional[str] = None


class Session(SessionSummary):
    messages: list[SessionMessage] = Field(default_factory=list)


class BatchDeleteRequest(BaseModel):
    sessionIds: list[str] = Field(default_factory=list)


class BatchDeleteResult(BaseModel):
    deleted: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class DeleteResult(BaseModel):
    deleted: bool = True


# ── Project models ─────────────────────────────────────────────────

class Project(BaseModel):
    hash: str
    projectPath: Optional[str] = None
    hasClaudeMd: bool = False
    claudeMdContent: Optional[str] = None
    sessionCount: int = 0
    lastActive: int = 0
    hasMemory: bool = False
    hasSkills: bool = False


class ClaudeMdFile(BaseModel):
    content: str
    path: str


class MemoryFile(BaseModel):
    name: str
    path: str
    content: str
    updatedAt: int = 0


class SkillFile(BaseModel):
    name: str
    path: str
    content: str
    scope: SkillScope


class GlobalStats(BaseModel):
    totalProjects: int = 0
    totalSessions: int = 0
    projectsWithClaudeMd: int = 0
    totalSizeBytes: int = 0


# ── Live updates ───────────────────────────────────────────────────

class WatcherEvent(BaseModel):
    type: WatcherEventType
    projectHash: str
    sessionId: Optional[str] = None
    timestamp: int
