"""
Graph edge conditions for routing between nodes.
"""

from briki.models.domain import ReplyState
from briki.utils.logger import get_logger

logger = get_logger(__name__)


def route_after_context(state: ReplyState) -> str:
    """
    Skips plan recommendation when no insurance category was detected.

    Args:
        state: Current reply state

    Returns:
        "recommend_plans" or "compose_reply"
    """
    category = state.get("category")
    if not category:
        logger.info("no_category_detected", action="composing_without_plans")
        return "compose_reply"
    return "recommend_plans"
