"""Conversation runner — the caller's half of the chat protocol.

The orchestrator only ever emits chunks.  The runner walks them in order,
executes ``tool_call`` chunks through a :class:`ToolExecutor`, consults the
idempotency ledger for artifact-creating tools, and feeds results back until
the model stops asking for tools.

Usage::

    async with LedgerStore(settings.ledger.db_path) as ledger:
        runner = ConversationRunner(orchestrator, executor, ledger)
        turn = await runner.send(request)
        if turn.plan:
            result = await runner.apply_plan(turn.plan, request)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from excel_agent.config import Settings, get_settings
from excel_agent.ledger.fingerprint import fingerprint_schema
from excel_agent.ledger.models import ArtifactInspector, LedgerActionType, LedgerQuery
from excel_agent.ledger.naming import normalize_args
from excel_agent.ledger.store import LedgerStore
from excel_agent.logging import get_logger
from excel_agent.orchestration.chat import ChatOrchestrator
from excel_agent.protocol.models import (
    ChatMode,
    ChatRequest,
    ChatServiceResult,
    ErrorChunk,
    ExecutionPlan,
    FinalChunk,
    PlanChunk,
    PlanExecutionResult,
    PlanStepResult,
    TextChunk,
    ToolCallChunk,
    ToolResult,
    ToolResultEnvelope,
)
from excel_agent.tools.executor import ToolExecutor

log = get_logger(__name__)


@dataclass
class ConversationTurn:
    """Everything one user message produced, across all continuations."""

    success: bool = True
    text: list[str] = field(default_factory=list)
    plan: ExecutionPlan | None = None
    finals: list[FinalChunk] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    tool_results: list[ToolResultEnvelope] = field(default_factory=list)
    continuations: int = 0

    @property
    def message(self) -> str:
        """The text to show the user: the last final message, else the text."""
        if self.finals:
            return self.finals[-1].message
        return "".join(self.text)


class ConversationRunner:
    """Executes tool calls for an orchestrator and loops until it settles.

    Args:
        orchestrator: The chat orchestrator.
        executor:     Runs workbook tools.
        ledger:       Open idempotency ledger; None disables deduplication.
        inspector:    Live artifact view used to verify ledger hits.  Defaults
                      to ``executor.workbook`` when the executor has one.
        settings:     Continuation limit.
    """

    def __init__(
        self,
        orchestrator: ChatOrchestrator,
        executor: ToolExecutor,
        ledger: LedgerStore | None = None,
        inspector: ArtifactInspector | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._executor = executor
        self._ledger = ledger
        self._inspector = inspector or getattr(executor, "workbook", None)
        self._settings = settings or get_settings()
        if ledger is not None and self._inspector is None:
            raise ValueError("A ledger needs an artifact inspector to verify entries")

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def execute_tool_call(self, tool_name: str, args: dict[str, Any]) -> ToolResult:
        """Execute one tool call, short-circuiting verified ledger hits."""
        action = LedgerActionType.for_tool(tool_name)
        normalized = normalize_args(args)
        stale_entry_id: str | None = None
        try:
            if action is not None and self._ledger is not None:
                fingerprint = fingerprint_schema(await self._executor.get_schema())
                found = await self._ledger.find_entry(
                    LedgerQuery(
                        workbook_fingerprint=fingerprint.computed,
                        action_type=action,
                        normalized_args=normalized,
                    ),
                    inspector=self._inspector,
                )
                if found.exists and found.verified and found.entry is not None:
                    log.info(
                        "tool_call_deduplicated",
                        tool=tool_name,
                        artifact_id=found.entry.artifact_id,
                    )
                    return ToolResult(
                        success=True,
                        data={"alreadyExists": True, "artifactId": found.entry.artifact_id},
                        artifact_id=found.entry.artifact_id,
                    )
                if found.needs_recreation and found.entry is not None:
                    stale_entry_id = found.entry.id

            result = await self._executor.execute(tool_name, args)

            if (
                result.success
                and result.artifact_id
                and action is not None
                and self._ledger is not None
            ):
                # The fingerprint changes when the tool adds a sheet.
                fingerprint = fingerprint_schema(await self._executor.get_schema())
                await self._ledger.record_entry(
                    workbook_fingerprint=fingerprint.computed,
                    action_type=action,
                    normalized_args=normalized,
                    artifact_id=result.artifact_id,
                    artifact_name=result.artifact_id,
                    metadata={"toolName": tool_name, "requestedName": args.get("name")},
                )
                if stale_entry_id is not None:
                    await self._ledger.delete_entry(stale_entry_id)
                    log.info("ledger_entry_replaced", tool=tool_name, stale_entry=stale_entry_id)
            return result
        except Exception as exc:
            log.warning("tool_call_failed", tool=tool_name, error=str(exc))
            return ToolResult(success=False, error=str(exc))

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def send(self, request: ChatRequest) -> ConversationTurn:
        """Run one user turn, continuing after tool calls up to the configured limit."""
        turn = ConversationTurn()
        result = await self._orchestrator.process_chat(request)
        max_continuations = self._settings.orchestrator.max_continuations

        while True:
            envelopes = await self._consume(result, turn)
            if not result.success or not envelopes:
                break
            if turn.continuations >= max_continuations:
                log.warning("continuation_limit_reached", limit=max_continuations)
                break
            turn.continuations += 1
            request = request.model_copy(
                update={"workbook_schema": await self._executor.get_schema()}
            )
            result = await self._orchestrator.continue_with_tool_results(request, envelopes)

        return turn

    async def _consume(
        self, result: ChatServiceResult, turn: ConversationTurn
    ) -> list[ToolResultEnvelope]:
        if not result.success:
            turn.success = False
            turn.errors.append(result.error or "Unknown error")
            return []

        envelopes: list[ToolResultEnvelope] = []
        for chunk in result.response or []:
            if isinstance(chunk, TextChunk):
                turn.text.append(chunk.content)
            elif isinstance(chunk, PlanChunk):
                turn.plan = chunk.plan
            elif isinstance(chunk, FinalChunk):
                turn.finals.append(chunk)
            elif isinstance(chunk, ErrorChunk):
                turn.errors.append(chunk.error)
            elif isinstance(chunk, ToolCallChunk):
                tool_result = await self.execute_tool_call(chunk.tool_name, chunk.args)
                envelope = ToolResultEnvelope(
                    call_id=chunk.call_id,
                    result=tool_result,
                    tool_name=chunk.tool_name,
                    args=chunk.args,
                )
                envelopes.append(envelope)
                turn.tool_results.append(envelope)
        if result.plan is not None:
            turn.plan = result.plan
        return envelopes

    async def apply_plan(self, plan: ExecutionPlan, request: ChatRequest) -> PlanExecutionResult:
        """Execute an approved plan step by step, stopping at the first failure.

        Steps that already ran stay applied; there is no rollback.
        """
        started = time.perf_counter()
        apply_request = request.model_copy(
            update={"mode": ChatMode.APPLY, "plan_to_apply": plan}
        )
        result = await self._orchestrator.process_chat(apply_request)
        if not result.success:
            return PlanExecutionResult(
                plan_id=plan.id,
                success=False,
                completed_steps=0,
                total_steps=len(plan.steps),
                summary=result.error or "Plan execution failed",
                errors=[result.error or "Plan execution failed"],
                duration=(time.perf_counter() - started) * 1000,
            )

        steps_by_call = {f"{plan.id}_{step.id}": step for step in plan.steps}
        step_results: list[PlanStepResult] = []
        changes: list[str] = []
        errors: list[str] = []

        for chunk in result.response or []:
            if not isinstance(chunk, ToolCallChunk):
                continue
            step = steps_by_call.get(chunk.call_id)
            step_started = time.perf_counter()
            tool_result = await self.execute_tool_call(chunk.tool_name, chunk.args)
            step_results.append(
                PlanStepResult(
                    step_id=step.id if step else chunk.call_id,
                    success=tool_result.success,
                    result=tool_result.data,
                    error=tool_result.error,
                    duration=(time.perf_counter() - step_started) * 1000,
                    artifact_id=tool_result.artifact_id,
                )
            )
            description = step.description if step else chunk.tool_name
            if not tool_result.success:
                errors.append(f"Step failed: {description} - {tool_result.error}")
                log.warning("plan_step_failed", plan_id=plan.id, step=description)
                break
            changes.append(description)

        success = not errors
        if success:
            summary = "Plan executed successfully!\n\nChanges made:\n" + "\n".join(
                f"• {c}" for c in changes
            )
        else:
            summary = errors[0]

        log.info(
            "plan_applied",
            plan_id=plan.id,
            success=success,
            completed=len(changes),
            total=len(plan.steps),
        )
        return PlanExecutionResult(
            plan_id=plan.id,
            success=success,
            completed_steps=len(changes),
            total_steps=len(plan.steps),
            step_results=step_results,
            summary=summary,
            errors=errors,
            duration=(time.perf_counter() - started) * 1000,
        )
