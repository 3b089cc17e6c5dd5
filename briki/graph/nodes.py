"""
Graph nodes for the reply workflow.
Each node is thin and delegates business logic to services.
"""

from typing import Any, Mapping, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from briki.database.supabase import DatabaseError, SupabasePlanCatalog
from briki.models.domain import Plan, ReplyState
from briki.services.llm_service import LLMService
from briki.services.memory_service import MemoryService
from briki.services.recommendation_service import get_recommended_plans
from briki.utils.logger import get_logger
from briki.utils.prompts import load_prompts

logger = get_logger(__name__)
PROMPTS = load_prompts()


def format_plans_for_prompt(plans: Sequence[Plan]) -> str:
    """One line per plan with the fields the LLM may mention."""
    lines = []
    for plan in plans:
        features = ", ".join(plan.features[:3]) or "sin detalle"
        price = plan.price or "precio a consultar"
        rating = f" | calificación {plan.rating}" if plan.rating else ""
        lines.append(f"- {plan.name} ({plan.provider}): {price}{rating} | {features}")
    return "\n".join(lines)


class ReplyNodes:
    """
    Container for the reply graph node functions.
    """

    def __init__(
        self,
        memory_service: MemoryService,
        plan_catalog: SupabasePlanCatalog,
        llm_service: LLMService,
        max_plans: int = 4,
    ):
        """
        Initialize graph nodes with required services.

        Args:
            memory_service: Context extraction and memory merge
            plan_catalog: Source of plans per category
            llm_service: LLM that writes the reply
            max_plans: Plans recommended per turn
        """
        self.memory_service = memory_service
        self.plan_catalog = plan_catalog
        self.llm_service = llm_service
        self.max_plans = max_plans

    def extract_context_node(self, state: ReplyState) -> dict:
        """
        Updates memory from the message and detects the category.
        Drops the conversation history when the session asked for a reset.
        """
        logger.info("node_started", node="extract_context", reset_context=state.get("reset_context", False))

        message = state["message"]
        memory = self.memory_service.extract_context_from_message(message, state.get("memory") or {})
        category = self.memory_service.detect_category(message, memory)
        if category:
            memory["lastViewedCategory"] = category

        update: dict[str, Any] = {"memory": memory, "category": category, "plans": []}
        if state.get("reset_context"):
            update["conversation_history"] = []
        return update

    async def recommend_plans_node(self, state: ReplyState) -> dict:
        """
        Ranks the catalog plans of the detected category.
        A catalog failure yields no plans instead of failing the turn.
        """
        category = state["category"]
        logger.info("node_started", node="recommend_plans", category=category)

        try:
            catalog = await self.plan_catalog.fetch_plans_by_category(category)
        except DatabaseError as e:
            logger.warning("catalog_unavailable", category=category, error=str(e))
            return {"plans": []}

        plans = get_recommended_plans(
            catalog, state["message"], category=category, max_plans=self.max_plans
        )
        return {"plans": plans}

    async def compose_reply_node(self, state: ReplyState) -> dict:
        """
        Writes the assistant prose with the LLM (async).
        LLM errors propagate so the session can show them.
        """
        logger.info("node_started", node="compose_reply", plans=len(state.get("plans") or []))

        reply = await self.llm_service.generate_reply_text(self.build_prompt(state))
        return {"reply": reply}

    def build_prompt(self, state: ReplyState) -> list[BaseMessage]:
        prompts = PROMPTS["reply_generation"]
        memory = state.get("memory") or {}
        plans = state.get("plans") or []

        context: list[BaseMessage] = [SystemMessage(content=prompts["system_prompt"])]

        known = self.memory_service.format_memory(memory)
        if known:
            context.append(SystemMessage(content=prompts["memory_template"].format(memory=known)))

        document = memory.get("recentDocument")
        if isinstance(document, Mapping) and document.get("summary"):
            context.append(
                SystemMessage(
                    content=prompts["document_template"].format(
                        file_name=document.get("fileName", ""), summary=document["summary"]
                    )
                )
            )

        if plans:
            context.append(
                SystemMessage(content=prompts["plans_template"].format(plans=format_plans_for_prompt(plans)))
            )
        elif state.get("category"):
            context.append(SystemMessage(content=PROMPTS["conversation_responses"]["no_plans_hint"]))

        for entry in state.get("conversation_history") or []:
            if entry.get("role") == "user":
                context.append(HumanMessage(content=entry.get("content", "")))
            elif entry.get("content"):
                context.append(AIMessage(content=entry["content"]))

        context.append(HumanMessage(content=state["message"]))
        return context
