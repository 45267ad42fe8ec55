"""Chat protocol — canonical data models.

Everything exchanged between the UI, the orchestrator and the tool layer is
defined here and validated through Pydantic v2.  Python attributes are
snake_case; the JSON form (``to_wire()`` / ``model_validate`` on camelCase
input) matches the add-in's wire contract.

Do not add business logic here — only data shapes and their invariants.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import ConfigDict, Field, model_validator

from excel_agent.protocol.workbook import WireModel, WorkbookSchema


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RiskLevel(str, Enum):
    """Mutation severity of a tool; gates what may run while planning."""

    READ = "read"
    WRITE = "write"
    DESTRUCTIVE = "destructive"


class ChatMode(str, Enum):
    PLAN = "plan"
    APPLY = "apply"


class ContextScope(str, Enum):
    """User-controlled boundary of what the model may look at."""

    SELECTION = "selection"
    SHEET = "sheet"
    TABLE = "table"
    WORKBOOK = "workbook"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------


class ToolResult(WireModel):
    """Uniform result returned by every tool executor call."""

    success: bool
    data: Any = None
    error: str | None = None
    artifact_id: str | None = None


class ToolResultEnvelope(WireModel):
    """A tool result addressed to the call that produced it.

    ``tool_name`` and ``args`` are optional echoes of the originating call;
    when present the orchestrator replays the assistant's tool call ahead of
    the result so every provider sees a well-formed exchange.
    """

    call_id: str
    result: ToolResult
    tool_name: str | None = None
    args: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class PlanStep(WireModel):
    id: str
    description: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    expected_effect: str = ""
    risk_level: RiskLevel = RiskLevel.WRITE
    preconditions: list[str] = Field(default_factory=list)
    postconditions: list[str] = Field(default_factory=list)


class ExecutionPlan(WireModel):
    """An ordered, user-reviewable sequence of tool invocations.

    Immutable once extracted: approving a plan starts a new execution pass,
    it never edits the plan in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: int = Field(default_factory=now_ms)
    description: str
    steps: list[PlanStep]
    estimated_tokens: int | None = None
    estimated_cost: float | None = None

    @model_validator(mode="after")
    def _unique_step_ids(self) -> "ExecutionPlan":
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id '{step.id}' in plan '{self.id}'")
            seen.add(step.id)
        return self


class PlanStepResult(WireModel):
    step_id: str
    success: bool
    result: Any = None
    error: str | None = None
    duration: float = 0.0
    artifact_id: str | None = None


class PlanExecutionResult(WireModel):
    plan_id: str
    success: bool
    completed_steps: int
    total_steps: int
    step_results: list[PlanStepResult] = Field(default_factory=list)
    summary: str = ""
    errors: list[str] = Field(default_factory=list)
    duration: float = 0.0


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TokenUsage(WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0


class ToolCallInfo(WireModel):
    call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult | None = None
    status: Literal["pending", "executing", "completed", "failed"] = "pending"


class MessageMetadata(WireModel):
    tool_calls: list[ToolCallInfo] | None = None
    plan: ExecutionPlan | None = None
    step_results: list[PlanStepResult] | None = None
    error: str | None = None
    token_usage: TokenUsage | None = None


class ChatMessage(WireModel):
    id: str
    role: MessageRole
    content: str
    timestamp: int = Field(default_factory=now_ms)
    metadata: MessageMetadata | None = None

    @classmethod
    def create(
        cls,
        role: MessageRole | str,
        content: str,
        metadata: MessageMetadata | None = None,
    ) -> "ChatMessage":
        return cls(id=str(uuid.uuid4()), role=MessageRole(role), content=content, metadata=metadata)


class SelectionContext(WireModel):
    address: str
    sheet_name: str
    values: list[list[Any]] | None = None


# ---------------------------------------------------------------------------
# Response chunks
# ---------------------------------------------------------------------------


class TextChunk(WireModel):
    type: Literal["text"] = "text"
    content: str


class ToolCallChunk(WireModel):
    type: Literal["tool_call"] = "tool_call"
    call_id: str
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResultChunk(WireModel):
    type: Literal["tool_result"] = "tool_result"
    call_id: str
    result: ToolResult


class PlanChunk(WireModel):
    type: Literal["plan"] = "plan"
    plan: ExecutionPlan


class StepProgressChunk(WireModel):
    type: Literal["step_progress"] = "step_progress"
    step_id: str
    status: Literal["started", "completed", "failed"]
    result: PlanStepResult | None = None


class FinalChunk(WireModel):
    type: Literal["final"] = "final"
    message: str
    summary_of_changes: list[str] = Field(default_factory=list)
    token_usage: TokenUsage | None = None


class ErrorChunk(WireModel):
    type: Literal["error"] = "error"
    error: str
    code: str | None = None
    recoverable: bool = False


ChatResponseChunk = Annotated[
    Union[
        TextChunk,
        ToolCallChunk,
        ToolResultChunk,
        PlanChunk,
        StepProgressChunk,
        FinalChunk,
        ErrorChunk,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Requests / results
# ---------------------------------------------------------------------------


class ChatRequest(WireModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    workbook_schema: WorkbookSchema
    selection_context: SelectionContext | None = None
    mode: ChatMode = ChatMode.PLAN
    plan_to_apply: ExecutionPlan | None = None
    context_scope: ContextScope | None = None


class ChatServiceResult(WireModel):
    success: bool
    response: list[ChatResponseChunk] | None = None
    plan: ExecutionPlan | None = None
    error: str | None = None
