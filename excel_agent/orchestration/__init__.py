"""Plan/apply chat orchestration and the caller-side conversation runner."""

from excel_agent.orchestration.chat import (
    PLAN_READY_CONTINUATION_MESSAGE,
    PLAN_READY_MESSAGE,
    TASK_COMPLETED_MESSAGE,
    ChatOrchestrator,
)
from excel_agent.orchestration.runner import ConversationRunner, ConversationTurn

__all__ = [
    "PLAN_READY_CONTINUATION_MESSAGE",
    "PLAN_READY_MESSAGE",
    "TASK_COMPLETED_MESSAGE",
    "ChatOrchestrator",
    "ConversationRunner",
    "ConversationTurn",
]
