"""
Graph package for the LangGraph reply workflow.
"""

from briki.graph.builder import GraphReplyGenerator, build_reply_generator, build_reply_graph
from briki.graph.nodes import ReplyNodes, format_plans_for_prompt
from briki.graph.edges import route_after_context

__all__ = [
    "GraphReplyGenerator",
    "build_reply_generator",
    "build_reply_graph",
    "ReplyNodes",
    "format_plans_for_prompt",
    "route_after_context",
]
