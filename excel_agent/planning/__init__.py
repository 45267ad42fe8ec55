"""Plan extraction from model output."""

from excel_agent.planning.extractor import STRATEGIES, extract_plan, normalize_plan

__all__ = ["STRATEGIES", "extract_plan", "normalize_plan"]
