"""Chat orchestrator — one model turn per call, no workbook access.

The orchestrator turns a :class:`ChatRequest` into an ordered list of
response chunks.  It never executes tools: ``tool_call`` chunks go back to
the caller, which runs them and returns the results through
:meth:`ChatOrchestrator.continue_with_tool_results`.

Modes:
    plan   The model may only read.  A recovered plan is returned for review;
           write and destructive tool calls are dropped.
    apply  With ``plan_to_apply`` the plan's steps are emitted as tool calls
           without calling the model.  Without one, the model's tool calls
           are passed through unfiltered.

Every failure is folded into ``ChatServiceResult(success=False)``.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable, Sequence
from typing import Any

from excel_agent.config import Settings, get_settings
from excel_agent.logging import bind_chat_context, clear_chat_context, get_logger
from excel_agent.planning.extractor import extract_plan
from excel_agent.prompts import build_system_prompt
from excel_agent.protocol.models import (
    ChatMode,
    ChatRequest,
    ChatServiceResult,
    ErrorChunk,
    ExecutionPlan,
    FinalChunk,
    MessageRole,
    PlanChunk,
    StepProgressChunk,
    TextChunk,
    TokenUsage,
    ToolCallChunk,
    ToolResultEnvelope,
)
from excel_agent.providers.base import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    FinishReason,
    LLMProvider,
    ProviderMessage,
    ProviderToolCall,
    Usage,
)
from excel_agent.providers.catalog import ModelCatalog, ModelInfo
from excel_agent.providers.registry import create_provider_adapter
from excel_agent.providers.schema import tool_definitions_to_provider_tools
from excel_agent.tools.catalog import is_read_only

log = get_logger(__name__)

AdapterFactory = Callable[[ModelInfo, Settings], "LLMProvider | None"]

PLAN_READY_MESSAGE = "Plan generated successfully. Review and approve to apply."
PLAN_READY_CONTINUATION_MESSAGE = "Plan generated successfully."
TASK_COMPLETED_MESSAGE = "Task completed."


class ChatOrchestrator:
    """Drives plan and apply turns against the model selected per request.

    Args:
        catalog:         Source of enabled models.
        adapter_factory: Builds an adapter for a model, or returns None.
        settings:        Temperature and cost settings.
    """

    def __init__(
        self,
        catalog: ModelCatalog,
        adapter_factory: AdapterFactory = create_provider_adapter,
        settings: Settings | None = None,
    ) -> None:
        self._catalog = catalog
        self._adapter_factory = adapter_factory
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_chat(self, request: ChatRequest) -> ChatServiceResult:
        model = self._catalog.get_model_by_id(request.model_id)
        if model is None:
            return ChatServiceResult(
                success=False, error=f"Model not found or not enabled: {request.model_id}"
            )
        adapter = self._adapter_factory(model, self._settings)
        if adapter is None:
            return ChatServiceResult(
                success=False,
                error=(
                    f"Failed to create provider adapter for {model.provider.value}. "
                    "Check API key configuration."
                ),
            )

        bind_chat_context(
            request_id=str(uuid.uuid4()),
            plan_id=request.plan_to_apply.id if request.plan_to_apply else None,
            workbook=request.workbook_schema.name,
        )
        try:
            if request.mode is ChatMode.PLAN:
                return await self._process_plan_mode(adapter, request)
            if request.plan_to_apply is not None:
                return self._emit_plan_steps(request.plan_to_apply)
            return await self._process_apply_mode(adapter, request)
        except Exception as exc:
            log.exception("chat_processing_failed", model_id=model.id, error=str(exc))
            return ChatServiceResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            await adapter.close()
            clear_chat_context()

    async def continue_with_tool_results(
        self,
        request: ChatRequest,
        tool_results: Sequence[ToolResultEnvelope],
    ) -> ChatServiceResult:
        model = self._catalog.get_model_by_id(request.model_id)
        if model is None:
            return ChatServiceResult(success=False, error=f"Model not found: {request.model_id}")
        adapter = self._adapter_factory(model, self._settings)
        if adapter is None:
            return ChatServiceResult(
                success=False,
                error=f"Failed to create provider adapter for {model.provider.value}",
            )

        bind_chat_context(request_id=str(uuid.uuid4()), workbook=request.workbook_schema.name)
        try:
            messages = self._base_messages(request, request.mode)
            messages.extend(self._tool_result_messages(tool_results))
            response = await self._complete(adapter, messages)

            chunks: list[Any] = []
            if response.content and request.mode is ChatMode.PLAN:
                plan = extract_plan(response.content)
                if plan is not None:
                    return self._plan_result(plan, response.usage, PLAN_READY_CONTINUATION_MESSAGE)

            if response.content:
                chunks.append(TextChunk(content=response.content))
            chunks.extend(
                self._tool_call_chunks(
                    response.tool_calls, read_only=request.mode is ChatMode.PLAN
                )
            )
            if response.finish_reason is FinishReason.STOP and not response.tool_calls:
                chunks.append(
                    FinalChunk(
                        message=response.content or TASK_COMPLETED_MESSAGE,
                        summary_of_changes=[],
                        token_usage=self._token_usage(response.usage),
                    )
                )
            return ChatServiceResult(success=True, response=chunks)
        except Exception as exc:
            log.exception("chat_processing_failed", model_id=model.id, error=str(exc))
            return ChatServiceResult(success=False, error=str(exc) or type(exc).__name__)
        finally:
            await adapter.close()
            clear_chat_context()

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def _process_plan_mode(
        self, adapter: LLMProvider, request: ChatRequest
    ) -> ChatServiceResult:
        response = await self._complete(adapter, self._base_messages(request, ChatMode.PLAN))

        if response.content:
            plan = extract_plan(response.content)
            if plan is not None:
                return self._plan_result(plan, response.usage, PLAN_READY_MESSAGE)

        chunks: list[Any] = []
        if response.tool_calls:
            chunks.extend(self._tool_call_chunks(response.tool_calls, read_only=True))
        if not chunks and response.content:
            chunks.append(TextChunk(content=response.content))
        return ChatServiceResult(success=True, response=chunks)

    async def _process_apply_mode(
        self, adapter: LLMProvider, request: ChatRequest
    ) -> ChatServiceResult:
        response = await self._complete(adapter, self._base_messages(request, ChatMode.APPLY))

        chunks: list[Any] = []
        if response.content:
            chunks.append(TextChunk(content=response.content))
        chunks.extend(self._tool_call_chunks(response.tool_calls, read_only=False))
        return ChatServiceResult(success=True, response=chunks)

    def _emit_plan_steps(self, plan: ExecutionPlan) -> ChatServiceResult:
        chunks: list[Any] = []
        for step in plan.steps:
            chunks.append(StepProgressChunk(step_id=step.id, status="started"))
            chunks.append(
                ToolCallChunk(
                    call_id=f"{plan.id}_{step.id}",
                    tool_name=step.tool_name,
                    args=dict(step.args),
                )
            )
        log.info("plan_steps_emitted", plan_id=plan.id, steps=len(plan.steps))
        return ChatServiceResult(success=True, response=chunks)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _complete(
        self, adapter: LLMProvider, messages: list[ProviderMessage]
    ) -> ChatCompletionResponse:
        response = await adapter.chat(
            ChatCompletionRequest(
                messages=messages,
                tools=tool_definitions_to_provider_tools(),
                temperature=self._settings.providers.temperature,
            )
        )
        log.debug(
            "model_responded",
            finish_reason=response.finish_reason.value,
            tool_calls=len(response.tool_calls),
            has_content=bool(response.content),
        )
        return response

    def _base_messages(self, request: ChatRequest, mode: ChatMode) -> list[ProviderMessage]:
        system = build_system_prompt(
            mode,
            request.workbook_schema,
            request.selection_context,
            request.context_scope,
        )
        messages = [ProviderMessage(role="system", content=system)]
        messages.extend(
            ProviderMessage(role=m.role.value, content=m.content)
            for m in request.messages
            if m.role in (MessageRole.USER, MessageRole.ASSISTANT)
        )
        return messages

    def _tool_result_messages(
        self, tool_results: Sequence[ToolResultEnvelope]
    ) -> list[ProviderMessage]:
        messages: list[ProviderMessage] = []

        # Replay the assistant's calls so every provider sees a complete exchange.
        calls = [
            ProviderToolCall(id=tr.call_id, name=tr.tool_name, arguments=json.dumps(tr.args or {}))
            for tr in tool_results
            if tr.tool_name
        ]
        if calls:
            messages.append(ProviderMessage(role="assistant", content="", tool_calls=calls))

        for tr in tool_results:
            messages.append(
                ProviderMessage(
                    role="tool",
                    content=json.dumps(tr.result.to_wire(), default=str),
                    tool_call_id=tr.call_id,
                    name=tr.tool_name,
                )
            )
        return messages

    def _tool_call_chunks(
        self, tool_calls: Sequence[ProviderToolCall], read_only: bool
    ) -> list[ToolCallChunk | ErrorChunk]:
        chunks: list[ToolCallChunk | ErrorChunk] = []
        for call in tool_calls:
            if read_only and not is_read_only(call.name):
                log.warning("dropped_non_read_tool_call", tool=call.name, call_id=call.id)
                continue
            try:
                args = call.parsed_arguments()
            except ValueError as exc:
                chunks.append(
                    ErrorChunk(
                        error=f"Failed to parse tool call arguments for {call.name}: {exc}",
                        code="invalid_tool_arguments",
                        recoverable=True,
                    )
                )
                continue
            chunks.append(ToolCallChunk(call_id=call.id, tool_name=call.name, args=args))
        return chunks

    def _plan_result(
        self, plan: ExecutionPlan, usage: Usage | None, message: str
    ) -> ChatServiceResult:
        log.info("plan_generated", plan_id=plan.id, steps=len(plan.steps))
        chunks = [
            PlanChunk(plan=plan),
            FinalChunk(
                message=message,
                summary_of_changes=[s.description for s in plan.steps],
                token_usage=self._token_usage(usage),
            ),
        ]
        return ChatServiceResult(success=True, response=chunks, plan=plan)

    def _token_usage(self, usage: Usage | None) -> TokenUsage | None:
        if usage is None:
            return None
        return TokenUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            estimated_cost=self.estimate_cost(usage.total_tokens),
        )

    def estimate_cost(self, total_tokens: int) -> float:
        return total_tokens / 1000 * self._settings.orchestrator.cost_per_1k_tokens
