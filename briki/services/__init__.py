"""
Services package exports for business logic layer.
"""

from briki.services.llm_service import LLMService, create_llm, LLMError, LLMTimeoutError
from briki.services.memory_service import MemoryService
from briki.services.recommendation_service import (
    calculate_relevance_score,
    compare_by_feature_count,
    compare_by_price,
    compare_by_rating,
    extract_numeric_price,
    generate_comparison_summary,
    get_plan_price,
    get_plan_rating,
    get_recommended_plans,
    get_unique_plans_by_provider,
)
from briki.services.document_service import (
    DocumentClassifier,
    compose_document_reply,
    extract_coverage_bullets,
)
from briki.services.compare_store import CompareStore
from briki.services.pdf_service import (
    DocumentUploadError,
    PDFParsingError,
    PDFSummaryUploader,
)
from briki.services.chat_session import (
    ChatSession,
    DocumentUploader,
    ReplyGenerator,
    ResetContextToken,
    TurnState,
    UploadState,
)

__all__ = [
    "LLMService",
    "create_llm",
    "LLMError",
    "LLMTimeoutError",
    "MemoryService",
    "calculate_relevance_score",
    "compare_by_feature_count",
    "compare_by_price",
    "compare_by_rating",
    "extract_numeric_price",
    "generate_comparison_summary",
    "get_plan_price",
    "get_plan_rating",
    "get_recommended_plans",
    "get_unique_plans_by_provider",
    "DocumentClassifier",
    "compose_document_reply",
    "extract_coverage_bullets",
    "CompareStore",
    "DocumentUploadError",
    "PDFParsingError",
    "PDFSummaryUploader",
    "ChatSession",
    "DocumentUploader",
    "ReplyGenerator",
    "ResetContextToken",
    "TurnState",
    "UploadState",
]
