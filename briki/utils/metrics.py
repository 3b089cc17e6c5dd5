"""
In-process analytics for the assistant.
Counts product events (recommendations shown, uploads, resets) and
times reply generation so latency shows up in the structured logs.
"""

import time
from typing import Any

from briki.utils.logger import get_logger

logger = get_logger(__name__)


class EventTracker:
    """
    Collects analytics events and timings for one chat session.
    """

    def __init__(self):
        self.metrics = {
            "events": {},
            "timings": {},
            "plans_recommended": 0,
            "start_time": time.time(),
        }

    def track(self, event: str, value: int | None = None, **properties: Any) -> None:
        """
        Record an analytics event.

        Args:
            event: Event name (e.g. "ai_recommended_plans")
            value: Optional numeric value attached to the event
            **properties: Extra context logged with the event
        """
        self.metrics["events"][event] = self.metrics["events"].get(event, 0) + 1
        if event == "ai_recommended_plans" and value:
            self.metrics["plans_recommended"] += value

        logger.info("analytics_event", name=event, value=value, **properties)

    def event_count(self, event: str) -> int:
        """Number of times an event was tracked."""
        return self.metrics["events"].get(event, 0)

    def start_timer(self, name: str) -> None:
        """
        Start timing an operation.

        Args:
            name: Operation name (e.g. "reply_generation")
        """
        self.metrics["timings"].setdefault(name, []).append(
            {"start": time.time(), "end": None}
        )

    def end_timer(self, name: str) -> float:
        """
        Stop timing an operation and return elapsed seconds.

        Raises:
            ValueError: If no timer is running for this operation
        """
        timings = self.metrics["timings"].get(name)
        if not timings or timings[-1]["end"] is not None:
            raise ValueError(f"No active timing for '{name}'")

        timings[-1]["end"] = time.time()
        elapsed = timings[-1]["end"] - timings[-1]["start"]

        logger.info("operation_timed", operation=name, elapsed=elapsed)
        return elapsed

    def finalize(self) -> dict[str, Any]:
        """
        Summarize collected metrics and log them.

        Returns:
            Dictionary with all collected metrics plus per-operation totals
        """
        timing_summary = {}
        for name, timings in self.metrics["timings"].items():
            finished = [t["end"] - t["start"] for t in timings if t["end"] is not None]
            timing_summary[name] = {
                "total_time": sum(finished),
                "call_count": len(timings),
            }

        self.metrics["timing_summary"] = timing_summary
        self.metrics["total_time"] = time.time() - self.metrics["start_time"]

        logger.info(
            "session_metrics",
            total_time=self.metrics["total_time"],
            events=self.metrics["events"],
            plans_recommended=self.metrics["plans_recommended"],
            timing_summary=timing_summary,
        )
        return self.metrics
