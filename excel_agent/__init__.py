"""excel-agent — Plan/apply tool-calling core for LLM-driven Excel editing.

A chat turn flows through these layers (bottom to top):
    1. Protocol     — Pydantic wire models shared with the client
    2. Tools        — Fixed tool catalog, argument models, openpyxl executor
    3. Providers    — OpenAI, Anthropic and Google adapters behind one interface
    4. Planning     — System prompt builder and plan extraction
    5. Orchestration — Plan/apply state machine and the caller-side runner
    6. Ledger       — SQLite idempotency ledger for artifact-creating tools
"""

__version__ = "0.1.0"

from excel_agent.protocol.models import ChatRequest, ExecutionPlan

__all__ = [
    "__version__",
    "ChatRequest",
    "ExecutionPlan",
]
