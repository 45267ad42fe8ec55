"""Chat protocol data models."""

from excel_agent.protocol.models import (
    ChatMessage,
    ChatMode,
    ChatRequest,
    ChatResponseChunk,
    ChatServiceResult,
    ContextScope,
    ErrorChunk,
    ExecutionPlan,
    FinalChunk,
    MessageMetadata,
    MessageRole,
    PlanChunk,
    PlanExecutionResult,
    PlanStep,
    PlanStepResult,
    RiskLevel,
    SelectionContext,
    StepProgressChunk,
    TextChunk,
    TokenUsage,
    ToolCallChunk,
    ToolCallInfo,
    ToolResult,
    ToolResultChunk,
    ToolResultEnvelope,
)
from excel_agent.protocol.workbook import (
    ChartInfo,
    NamedRangeInfo,
    PivotTableInfo,
    RangeValues,
    SheetSchema,
    TableInfo,
    WorkbookSchema,
)

__all__ = [
    "ChartInfo",
    "ChatMessage",
    "ChatMode",
    "ChatRequest",
    "ChatResponseChunk",
    "ChatServiceResult",
    "ContextScope",
    "ErrorChunk",
    "ExecutionPlan",
    "FinalChunk",
    "MessageMetadata",
    "MessageRole",
    "NamedRangeInfo",
    "PivotTableInfo",
    "PlanChunk",
    "PlanExecutionResult",
    "PlanStep",
    "PlanStepResult",
    "RangeValues",
    "RiskLevel",
    "SelectionContext",
    "SheetSchema",
    "StepProgressChunk",
    "TableInfo",
    "TextChunk",
    "TokenUsage",
    "ToolCallChunk",
    "ToolCallInfo",
    "ToolResult",
    "ToolResultChunk",
    "ToolResultEnvelope",
    "WorkbookSchema",
]
