"""AI Agents package."""

from src.agents.ai_agents import AssistantAgent, PlanningAgent, extract_json
from src.agents.prompts import FinancialContext, SalaryInfo, build_financial_context

__all__ = [
    "AssistantAgent",
    "FinancialContext",
    "PlanningAgent",
    "SalaryInfo",
    "build_financial_context",
    "extract_json",
]
