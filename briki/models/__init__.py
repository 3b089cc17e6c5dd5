"""
Models package exports for domain entities and boundary schemas.
"""

from briki.models.domain import (
    INSURANCE_CATEGORIES,
    ComparisonSummary,
    DocumentUploadResult,
    Memory,
    Message,
    Plan,
    PriceRange,
    ReplyState,
    UploadFile,
)
from briki.models.schemas import (
    DocumentSummary,
    ParseFailure,
    ParseSuccess,
    ReplyRequest,
    ReplyResponse,
    parse_plans,
    parse_reply_response,
    parse_upload_response,
)

__all__ = [
    "INSURANCE_CATEGORIES",
    "ComparisonSummary",
    "DocumentUploadResult",
    "Memory",
    "Message",
    "Plan",
    "PriceRange",
    "ReplyState",
    "UploadFile",
    "DocumentSummary",
    "ParseFailure",
    "ParseSuccess",
    "ReplyRequest",
    "ReplyResponse",
    "parse_plans",
    "parse_reply_response",
    "parse_upload_response",
]
