"""
Comparison selection store.
Holds the plans a user picked for side-by-side comparison and enforces the
capacity and category-lock rules. Every mutation is persisted through the
storage port; a failed write is logged and the in-memory change stands.
"""

from typing import Any

from pydantic import ValidationError

from briki.database.local_storage import StorageBackend, StorageError
from briki.models.domain import Plan, PlanId
from briki.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 2
DEFAULT_MAX_PLANS = 8
DEFAULT_MAX_PLANS_PER_CATEGORY = 4
MIN_PLANS_FOR_COMPARISON = 2


class CompareStore:
    """
    Ordered selection of plans for comparison.

    Invariants: at most `max_plans` plans, at most `max_plans_per_category`
    per category, and every selected plan shares the category of the first
    one until the selection is emptied again.
    """

    def __init__(
        self,
        storage: StorageBackend,
        storage_key: str = "briki-compare-plans",
        max_plans: int = DEFAULT_MAX_PLANS,
        max_plans_per_category: int = DEFAULT_MAX_PLANS_PER_CATEGORY,
    ):
        """
        Initialize compare store.

        Args:
            storage: Persistence port
            storage_key: Key the selection is saved under
            max_plans: Overall capacity
            max_plans_per_category: Capacity per category
        """
        self.storage = storage
        self.storage_key = storage_key
        self.max_plans = max_plans
        self.max_plans_per_category = max_plans_per_category
        self._selected: list[Plan] = []

    # --- Queries ---

    @property
    def selected_plans(self) -> list[Plan]:
        """Selected plans in selection order (a copy)."""
        return list(self._selected)

    @property
    def locked_category(self) -> str | None:
        """Category every new plan must match, or None when empty."""
        return self._selected[0].category if self._selected else None

    def is_plan_selected(self, plan_id: PlanId) -> bool:
        return any(plan.id == plan_id for plan in self._selected)

    def can_add_more_plans(self) -> bool:
        return len(self._selected) < self.max_plans

    def get_selected_plans_by_category(self, category: str) -> list[Plan]:
        return [plan for plan in self._selected if plan.category == category]

    def can_add_plan_to_category(self, category: str) -> bool:
        """True if a not-yet-selected plan of this category would be accepted."""
        if not self.can_add_more_plans():
            return False
        if self.locked_category is not None and self.locked_category != category:
            return False
        return len(self.get_selected_plans_by_category(category)) < self.max_plans_per_category

    def get_selected_categories(self) -> list[str]:
        """Distinct categories, in order of first appearance."""
        categories: list[str] = []
        for plan in self._selected:
            if plan.category not in categories:
                categories.append(plan.category)
        return categories

    def get_comparison_ready(self) -> bool:
        return len(self._selected) >= MIN_PLANS_FOR_COMPARISON

    # --- Mutations ---

    def add_plan(self, plan: Plan) -> bool:
        """
        Append a plan to the selection.

        Returns:
            False (and no change) if the store is full, the plan's category
            differs from the locked one, its category is full, or it is
            already selected; True otherwise
        """
        if not self.can_add_more_plans():
            logger.warning("compare_add_rejected", reason="max_plans", plan_id=plan.id)
            return False

        if self.locked_category is not None and plan.category != self.locked_category:
            logger.warning(
                "compare_add_rejected",
                reason="category_lock",
                plan_id=plan.id,
                locked_category=self.locked_category,
                category=plan.category,
            )
            return False

        if len(self.get_selected_plans_by_category(plan.category)) >= self.max_plans_per_category:
            logger.warning(
                "compare_add_rejected",
                reason="max_plans_per_category",
                plan_id=plan.id,
                category=plan.category,
            )
            return False

        if self.is_plan_selected(plan.id):
            logger.warning("compare_add_rejected", reason="already_selected", plan_id=plan.id)
            return False

        self._selected.append(plan)
        self.save()
        return True

    def remove_plan(self, plan_id: PlanId) -> None:
        """Remove a plan by id; unknown ids are ignored."""
        remaining = [plan for plan in self._selected if plan.id != plan_id]
        if len(remaining) != len(self._selected):
            self._selected = remaining
            self.save()

    def clear_plans(self) -> None:
        self._selected = []
        self.save()

    def clear_category(self, category: str) -> None:
        self._selected = [plan for plan in self._selected if plan.category != category]
        self.save()

    # --- Persistence ---

    def save(self) -> None:
        """Persist the selection; failures are logged, never raised."""
        payload = {
            "version": SCHEMA_VERSION,
            "state": {"selectedPlans": [plan.to_payload() for plan in self._selected]},
        }
        try:
            self.storage.set(self.storage_key, payload)
        except StorageError as e:
            logger.error("compare_save_failed", error=str(e))

    def load(self) -> None:
        """
        Restore the persisted selection.

        Every restored plan is re-checked against the add rules, so the
        invariants hold afterwards. A current-version payload with an invalid
        plan is discarded; older payloads (version 0/1, or the bare
        {"selectedPlans": [...]} shape) are migrated by dropping invalid plans.
        Anything else is discarded.
        """
        try:
            raw = self.storage.get(self.storage_key)
        except StorageError as e:
            logger.error("compare_load_failed", error=str(e))
            raw = None

        self._selected = []
        if raw is None:
            return

        version, raw_plans = self._unwrap(raw)
        if raw_plans is None:
            logger.warning("compare_state_discarded", reason="unrecognized_shape")
            self._discard()
            return

        if version == SCHEMA_VERSION:
            try:
                plans = [Plan.model_validate(item) for item in raw_plans]
            except ValidationError as e:
                logger.warning("compare_state_discarded", reason="invalid_plans", error=str(e))
                self._discard()
                return
            dropped = self._replay(plans)
            if dropped:
                logger.warning("compare_state_repaired", kept=len(self._selected), dropped=dropped)
                self.save()
            return

        self._migrate(version, raw_plans)

    @staticmethod
    def _unwrap(raw: Any) -> tuple[int, list | None]:
        if not isinstance(raw, dict):
            return 0, None
        version = raw.get("version", 0)
        state = raw.get("state", raw)
        plans = state.get("selectedPlans") if isinstance(state, dict) else None
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            return version if isinstance(version, int) else 0, None
        return version, plans if isinstance(plans, list) else None

    def _migrate(self, version: int, raw_plans: list) -> None:
        plans = []
        for item in raw_plans:
            try:
                plans.append(Plan.model_validate(item))
            except ValidationError:
                continue
        dropped = len(raw_plans) - len(plans) + self._replay(plans)

        logger.info(
            "compare_state_migrated",
            from_version=version,
            to_version=SCHEMA_VERSION,
            kept=len(self._selected),
            dropped=dropped,
        )
        self.save()

    def _replay(self, plans: list[Plan]) -> int:
        """Append the plans the add rules accept, in order; returns how many were dropped."""
        dropped = 0
        for plan in plans:
            if self._accepts(plan):
                self._selected.append(plan)
            else:
                dropped += 1
        return dropped

    def _accepts(self, plan: Plan) -> bool:
        return self.can_add_plan_to_category(plan.category) and not self.is_plan_selected(plan.id)

    def _discard(self) -> None:
        try:
            self.storage.remove(self.storage_key)
        except StorageError as e:
            logger.error("compare_discard_failed", error=str(e))
