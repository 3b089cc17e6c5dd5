"""
Graph builder for the reply workflow.
Assembles nodes, edges and services into an executable graph and wraps it
as the session's reply generator.
"""

from typing import Any

from langgraph.graph import StateGraph, END
from supabase import create_client

from briki import config
from briki.database.supabase import SupabasePlanCatalog
from briki.models.domain import ReplyState
from briki.models.schemas import ReplyRequest
from briki.services.llm_service import LLMService, create_llm
from briki.services.memory_service import MemoryService
from briki.graph.nodes import ReplyNodes
from briki.graph.edges import route_after_context
from briki.utils.logger import get_logger

logger = get_logger(__name__)

# One-shot keys the session adds to the request memory for a single turn.
TRANSIENT_MEMORY_KEYS = ("recentDocument",)


def build_reply_graph(nodes: ReplyNodes):
    """
    Builds and compiles the reply workflow:
    extract_context -> [recommend_plans] -> compose_reply.

    Args:
        nodes: Node container with its services

    Returns:
        Compiled graph ready for execution
    """
    logger.info("graph_workflow_building")
    workflow = StateGraph(ReplyState)

    workflow.add_node("extract_context", nodes.extract_context_node)
    workflow.add_node("recommend_plans", nodes.recommend_plans_node)
    workflow.add_node("compose_reply", nodes.compose_reply_node)

    workflow.set_entry_point("extract_context")

    workflow.add_conditional_edges(
        "extract_context",
        route_after_context,
        {"recommend_plans": "recommend_plans", "compose_reply": "compose_reply"},
    )
    workflow.add_edge("recommend_plans", "compose_reply")
    workflow.add_edge("compose_reply", END)

    logger.info("graph_compiling")
    return workflow.compile()


class GraphReplyGenerator:
    """
    Reply generator backed by the compiled graph.
    Returns the chat endpoint payload: {message, suggestedPlans, memory}.
    """

    def __init__(self, graph):
        self.graph = graph

    async def generate_reply(self, request: ReplyRequest) -> dict[str, Any]:
        initial_state: ReplyState = {
            "message": request.message,
            "conversation_history": [] if request.reset_context else [
                entry.model_dump() for entry in request.conversation_history
            ],
            "memory": dict(request.memory),
            "reset_context": request.reset_context,
        }

        final_state = await self.graph.ainvoke(initial_state)

        memory = {
            key: value
            for key, value in (final_state.get("memory") or {}).items()
            if key not in TRANSIENT_MEMORY_KEYS
        }
        plans = final_state.get("plans") or []

        logger.info(
            "reply_generated",
            category=final_state.get("category"),
            plans=len(plans),
        )
        return {
            "message": final_state.get("reply", ""),
            "suggestedPlans": [plan.to_payload() for plan in plans],
            "memory": memory,
        }


def build_reply_generator() -> GraphReplyGenerator:
    """
    Wires the production reply generator from settings.

    Raises:
        ValueError: If the LLM or Supabase credentials are missing
    """
    logger.info("graph_components_initializing")

    settings = config.get_settings()
    reply_key_name = "openai_api_key" if "gpt" in config.REPLY_MODEL else "google_api_key"
    config.check_env_vars(require=(reply_key_name, "supabase_url", "supabase_service_key"))

    supabase = create_client(settings.supabase_url, settings.supabase_service_key)

    reply_llm_service = LLMService(
        model=create_llm(config.REPLY_MODEL, getattr(settings, reply_key_name), temperature=0.3),
        max_retries=config.LLM_MAX_RETRIES,
        timeout=config.LLM_TIMEOUT,
        rate_limit=config.LLM_RATE_LIMIT,
    )

    nodes = ReplyNodes(
        memory_service=MemoryService(),
        plan_catalog=SupabasePlanCatalog(supabase),
        llm_service=reply_llm_service,
        max_plans=config.MAX_RECOMMENDED_PLANS,
    )
    return GraphReplyGenerator(build_reply_graph(nodes))
