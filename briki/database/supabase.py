"""
Supabase integration for the plan catalog and document summaries.
The catalog fails fast; the document history degrades to empty results
because it only feeds a non-critical panel.
"""

import asyncio
from supabase import Client
from pydantic import ValidationError

from briki.models.domain import INSURANCE_CATEGORIES, Plan
from briki.models.schemas import DocumentSummary, parse_plans
from briki.utils.logger import get_logger

logger = get_logger(__name__)

PLANS_TABLE = "insurance_plans"
DOCUMENT_SUMMARIES_TABLE = "document_summaries"


class DatabaseError(Exception):
    """Raised when database operations fail."""


class SupabasePlanCatalog:
    """
    Read-only access to the insurance plan catalog.
    """

    def __init__(self, client: Client, table: str = PLANS_TABLE):
        """
        Initialize plan catalog.

        Args:
            client: Supabase client instance
            table: Table holding one row per plan
        """
        self.client = client
        self.table = table

    def fetch_plans_by_category_sync(self, category: str) -> list[Plan]:
        """
        Fetch every plan of a category.

        Args:
            category: One of travel, auto, pet, health

        Returns:
            Parsed plans; rows that fail validation are skipped

        Raises:
            ValueError: If the category is not a known one
            DatabaseError: If the query fails
        """
        if category not in INSURANCE_CATEGORIES:
            raise ValueError(f"Unknown insurance category: {category}")

        try:
            logger.info("catalog_query_started", category=category)
            response = (
                self.client.table(self.table).select("*").eq("category", category).execute()
            )
        except Exception as e:
            logger.error("catalog_query_failed", exc_info=True, category=category, error=str(e))
            raise DatabaseError(f"Failed to fetch {category} plans: {e}") from e

        plans = parse_plans(response.data or [])
        if not plans:
            logger.warning("catalog_empty", category=category)
        else:
            logger.info("catalog_query_completed", category=category, count=len(plans))
        return plans

    async def fetch_plans_by_category(self, category: str) -> list[Plan]:
        """Async wrapper; the supabase client call runs in a worker thread."""
        return await asyncio.to_thread(self.fetch_plans_by_category_sync, category)


class DocumentSummaryRepository:
    """
    Persistence for uploaded policy document summaries.
    """

    def __init__(self, client: Client, table: str = DOCUMENT_SUMMARIES_TABLE):
        self.client = client
        self.table = table

    def save_summary(self, summary: DocumentSummary, user_id: str | None = None) -> DocumentSummary:
        """
        Insert a document summary.

        Args:
            summary: Summary to store
            user_id: Owner, if the user is signed in

        Returns:
            Stored row (with id and created_at)

        Raises:
            DatabaseError: If the insert fails
        """
        row = summary.model_dump(mode="json", exclude_none=True, exclude={"id", "created_at"})
        row["user_id"] = user_id

        try:
            response = self.client.table(self.table).insert(row).execute()
        except Exception as e:
            logger.error("summary_save_failed", exc_info=True, error=str(e))
            raise DatabaseError(f"Failed to save document summary: {e}") from e

        if not response.data:
            raise DatabaseError("Failed to save document summary: empty response")

        logger.info("summary_saved", filename=summary.filename)
        return DocumentSummary.model_validate(response.data[0])

    def list_summaries(self, user_id: str, limit: int = 10) -> list[DocumentSummary]:
        """
        Most recent summaries for a user. Failures return an empty list.
        """
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("summary_list_failed", exc_info=True, error=str(e))
            return []

        summaries = []
        for row in response.data or []:
            try:
                summaries.append(DocumentSummary.model_validate(row))
            except ValidationError as e:
                logger.warning("summary_row_skipped", error=str(e))
        return summaries

    def delete_summary(self, summary_id: str) -> bool:
        """
        Delete a summary by id. Failures return False.
        """
        try:
            self.client.table(self.table).delete().eq("id", summary_id).execute()
        except Exception as e:
            logger.error("summary_delete_failed", exc_info=True, summary_id=summary_id, error=str(e))
            return False

        logger.info("summary_deleted", summary_id=summary_id)
        return True
