"""Plan extraction from free-form model output.

Models wrap the requested ``{"plan": {...}}`` object in prose, Markdown
fences, or both.  Extraction tries a fixed cascade of independent strategies
and accepts the first payload that carries a non-empty ``plan.steps`` list.

Each strategy is a pure function ``(text) -> dict | None``.  Extraction never
raises: text without a plan is an ordinary answer, not an error.
"""

from __future__ import annotations

import json
import re
import time
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from excel_agent.exceptions import PlanExtractionError
from excel_agent.logging import get_logger
from excel_agent.protocol.models import ExecutionPlan, RiskLevel
from excel_agent.tools.catalog import get_tool_definition

log = get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)(?:```|$)")
_TRAILING_OBJECT = re.compile(r"(\{[\s\S]*\})\s*$")
_PLAN_OPENING = re.compile(r'\{\s*"plan"')


# ---------------------------------------------------------------------------
# Strategies (tried in order, each is a pure function)
# ---------------------------------------------------------------------------


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


def parse_whole_text(text: str) -> dict[str, Any] | None:
    """The entire response is the JSON object."""
    return _loads_object(text.strip())


def parse_fenced_block(text: str) -> dict[str, Any] | None:
    """First Markdown code block; the closing fence may be missing."""
    match = _FENCED_BLOCK.search(text)
    if match is None:
        return None
    block = match.group(1).strip()
    parsed = _loads_object(block)
    if parsed is not None:
        return parsed
    # Prose inside the fence ahead of the object.
    trailing = _TRAILING_OBJECT.search(block)
    return _loads_object(trailing.group(1)) if trailing else None


def parse_balanced_plan_object(text: str) -> dict[str, Any] | None:
    """Brace-balanced object starting at the first ``{"plan"``."""
    match = _PLAN_OPENING.search(text)
    if match is None:
        return None

    start = match.start()
    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return _loads_object(text[start : pos + 1])
    return None


STRATEGIES: tuple[Callable[[str], dict[str, Any] | None], ...] = (
    parse_whole_text,
    parse_fenced_block,
    parse_balanced_plan_object,
)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------


def _has_steps(payload: dict[str, Any]) -> bool:
    plan = payload.get("plan")
    return isinstance(plan, dict) and isinstance(plan.get("steps"), list) and bool(plan["steps"])


def _risk_level(value: Any) -> RiskLevel:
    try:
        return RiskLevel(value)
    except ValueError:
        return RiskLevel.WRITE


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _normalize_steps(raw_steps: list[Any]) -> list[dict[str, Any]]:
    steps: list[dict[str, Any]] = []
    seen: set[str] = set()
    for i, raw in enumerate(raw_steps):
        if not isinstance(raw, dict):
            continue

        step_id = str(raw.get("id") or f"step_{i + 1}")
        if step_id in seen:
            step_id = f"step_{i + 1}"
            suffix = 2
            while step_id in seen:
                step_id = f"step_{i + 1}_{suffix}"
                suffix += 1
        seen.add(step_id)

        tool_name = str(raw.get("toolName") or raw.get("tool_name") or "")
        if get_tool_definition(tool_name) is None:
            log.warning("unknown_tool_in_plan", step_id=step_id, tool=tool_name)

        args = raw.get("args")
        steps.append(
            {
                "id": step_id,
                "description": str(raw.get("description") or "Unnamed step"),
                "tool_name": tool_name,
                "args": args if isinstance(args, dict) else {},
                "expected_effect": str(raw.get("expectedEffect") or raw.get("expected_effect") or ""),
                "risk_level": _risk_level(raw.get("riskLevel") or raw.get("risk_level")),
                "preconditions": _string_list(raw.get("preconditions")),
                "postconditions": _string_list(raw.get("postconditions")),
            }
        )
    return steps


def normalize_plan(plan: dict[str, Any], now: int | None = None) -> ExecutionPlan:
    """Fill defaults on a raw ``plan`` object. Raises ``ValidationError``."""
    return ExecutionPlan(
        id=str(plan.get("id") or f"plan_{uuid.uuid4()}"),
        created_at=now if now is not None else int(time.time() * 1000),
        description=str(plan.get("description") or "Generated plan"),
        steps=_normalize_steps(plan["steps"]),
        estimated_tokens=plan.get("estimatedTokens", plan.get("estimated_tokens")),
        estimated_cost=plan.get("estimatedCost", plan.get("estimated_cost")),
    )


def _plan_from_payload(strategy: str, payload: dict[str, Any], now: int | None) -> ExecutionPlan:
    if not _has_steps(payload):
        raise PlanExtractionError(strategy, "no non-empty plan.steps list")
    try:
        plan = normalize_plan(payload["plan"], now=now)
    except ValidationError as exc:
        raise PlanExtractionError(strategy, str(exc)) from exc
    if not plan.steps:
        raise PlanExtractionError(strategy, "no step is an object")
    return plan


def extract_plan(text: str | None, now: int | None = None) -> ExecutionPlan | None:
    """Return the first plan any strategy recovers from *text*, else None."""
    if not text:
        return None

    for strategy in STRATEGIES:
        payload = strategy(text)
        if payload is None:
            continue
        try:
            plan = _plan_from_payload(strategy.__name__, payload, now)
        except PlanExtractionError as exc:
            log.debug("plan_strategy_rejected", strategy=exc.strategy, reason=exc.context["reason"])
            continue
        log.debug("plan_extracted", strategy=strategy.__name__, steps=len(plan.steps))
        return plan

    return None
