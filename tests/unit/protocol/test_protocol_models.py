"""Unit tests — protocol wire models."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from excel_agent.protocol.models import (
    ChatRequest,
    ChatResponseChunk,
    ErrorChunk,
    ExecutionPlan,
    PlanStep,
    RiskLevel,
    TextChunk,
    ToolCallChunk,
    ToolResult,
)
from excel_agent.protocol.workbook import WorkbookSchema


@pytest.mark.unit
class TestWireFormat:
    def test_to_wire_uses_camel_case_and_drops_none(self) -> None:
        result = ToolResult(success=True, data={"a": 1}, artifact_id="Sheet2")
        assert result.to_wire() == {"success": True, "data": {"a": 1}, "artifactId": "Sheet2"}

    def test_accepts_camel_case_input(self) -> None:
        step = PlanStep.model_validate(
            {
                "id": "step_1",
                "description": "Add a sheet",
                "toolName": "createSheet",
                "args": {"name": "Summary"},
                "riskLevel": "write",
            }
        )
        assert step.tool_name == "createSheet"
        assert step.risk_level is RiskLevel.WRITE

    def test_request_round_trips_workbook_schema(self, sample_schema: WorkbookSchema) -> None:
        payload = {
            "modelId": "gpt-4o",
            "workbookSchema": sample_schema.to_wire(),
            "mode": "apply",
        }
        request = ChatRequest.model_validate(payload)
        assert request.workbook_schema.sheet_names() == ["Sales", "Notes"]
        assert request.workbook_schema.sheets[0].tables[0].header_row[0] == "Region"


@pytest.mark.unit
class TestExecutionPlan:
    def _step(self, step_id: str) -> PlanStep:
        return PlanStep(id=step_id, description="d", tool_name="createSheet")

    def test_duplicate_step_ids_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate step id"):
            ExecutionPlan(id="p1", description="x", steps=[self._step("a"), self._step("a")])

    def test_plan_is_frozen(self) -> None:
        plan = ExecutionPlan(id="p1", description="x", steps=[self._step("a")])
        with pytest.raises(ValidationError):
            plan.description = "changed"  # type: ignore[misc]

    def test_created_at_defaults_to_now(self) -> None:
        plan = ExecutionPlan(id="p1", description="x", steps=[])
        assert plan.created_at > 0


@pytest.mark.unit
class TestChunks:
    def test_discriminated_union(self) -> None:
        adapter = TypeAdapter(list[ChatResponseChunk])
        chunks = adapter.validate_python(
            [
                {"type": "text", "content": "hi"},
                {"type": "tool_call", "callId": "c1", "toolName": "getWorkbookSchema", "args": {}},
                {"type": "error", "error": "bad", "recoverable": True},
            ]
        )
        assert isinstance(chunks[0], TextChunk)
        assert isinstance(chunks[1], ToolCallChunk)
        assert isinstance(chunks[2], ErrorChunk)
        assert chunks[2].recoverable is True

    def test_tool_call_chunk_wire_form(self) -> None:
        chunk = ToolCallChunk(call_id="c1", tool_name="writeRange", args={"sheetName": "S"})
        assert chunk.to_wire() == {
            "type": "tool_call",
            "callId": "c1",
            "toolName": "writeRange",
            "args": {"sheetName": "S"},
        }
