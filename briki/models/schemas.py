"""
Boundary schemas for the external collaborators.
Raw payloads from the reply generator and the upload endpoint are checked
here and turned into a tagged parse result; nothing past these functions
touches an unchecked field.
"""

from datetime import datetime
from typing import Any, Generic, Literal, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from briki.models.domain import DocumentUploadResult, Memory, Plan
from briki.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ParseSuccess(BaseModel, Generic[T]):
    """Payload passed validation."""

    ok: Literal[True] = True
    value: T


class ParseFailure(BaseModel):
    """Payload rejected; `reason` is user-presentable raw error text."""

    ok: Literal[False] = False
    reason: str


class HistoryEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ReplyRequest(BaseModel):
    """
    Request sent to the reply generator for one turn.
    Serialized with camelCase keys to match the chat endpoint.
    """

    message: str
    conversation_history: list[HistoryEntry] = Field(
        default_factory=list, alias="conversationHistory"
    )
    memory: Memory = Field(default_factory=dict)
    reset_context: bool = Field(default=False, alias="resetContext")

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ReplyResponse(BaseModel):
    """Validated reply: prose, new plans (possibly empty) and optional memory."""

    message: str
    suggested_plans: list[Plan] = Field(default_factory=list, alias="suggestedPlans")
    memory: Optional[Memory] = None

    model_config = ConfigDict(populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "suggestedPlans": [plan.to_payload() for plan in self.suggested_plans],
            "memory": self.memory,
        }


class DocumentSummary(BaseModel):
    """Row of the document_summaries table shown in the history panel."""

    id: Optional[str] = None
    user_id: Optional[str] = None
    filename: str
    insurance_type: Literal["auto", "health", "travel", "pet", "other"] = "other"
    insurer_name: Optional[str] = None
    coverage_summary: Any = None
    exclusions: Any = None
    deductibles: Optional[str] = None
    validity_period: Optional[str] = None
    raw_text: Optional[str] = None
    file_size: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")


def parse_plans(raw_plans: Any) -> list[Plan]:
    """
    Leniently parse a list of plan payloads.
    Malformed entries are skipped so one bad record never drops the batch.
    """
    if not isinstance(raw_plans, list):
        return []

    plans = []
    for index, raw in enumerate(raw_plans):
        if isinstance(raw, Plan):
            plans.append(raw)
            continue
        try:
            plans.append(Plan.model_validate(raw))
        except ValidationError as e:
            logger.warning("plan_payload_skipped", index=index, error=str(e))
    return plans


def parse_reply_response(raw: Any) -> ParseSuccess[ReplyResponse] | ParseFailure:
    """
    Validate a reply generator payload.

    Missing suggestedPlans / memory are tolerated. A non-object payload or a
    missing/non-string message is a failure.

    Args:
        raw: Whatever the reply generator returned

    Returns:
        ParseSuccess with a ReplyResponse, or ParseFailure with the reason
    """
    if isinstance(raw, ReplyResponse):
        return ParseSuccess[ReplyResponse](value=raw)

    if not isinstance(raw, Mapping):
        return ParseFailure(reason=f"Respuesta inválida del asistente: {type(raw).__name__}")

    message = raw.get("message")
    if not isinstance(message, str):
        return ParseFailure(reason="Respuesta del asistente sin mensaje")

    memory = raw.get("memory")
    if memory is not None and not isinstance(memory, Mapping):
        logger.warning("reply_memory_ignored", memory_type=type(memory).__name__)
        memory = None

    response = ReplyResponse(
        message=message,
        suggested_plans=parse_plans(raw.get("suggestedPlans")),
        memory=dict(memory) if memory is not None else None,
    )
    return ParseSuccess[ReplyResponse](value=response)


def parse_upload_response(raw: Any) -> ParseSuccess[DocumentUploadResult] | ParseFailure:
    """
    Validate a document upload payload.

    `summary` and `fileName` are required even when the transport succeeded.

    Args:
        raw: Whatever the upload endpoint returned

    Returns:
        ParseSuccess with a DocumentUploadResult, or ParseFailure
    """
    if isinstance(raw, DocumentUploadResult):
        return ParseSuccess[DocumentUploadResult](value=raw)

    if not isinstance(raw, Mapping) or not raw.get("summary") or not raw.get("fileName"):
        return ParseFailure(reason="Respuesta del servidor incompleta")

    try:
        result = DocumentUploadResult.model_validate(
            {
                "summary": raw["summary"],
                "fileName": raw["fileName"],
                "fileSize": raw.get("fileSize") or 0,
                "summaryId": raw.get("summaryId"),
            }
        )
    except ValidationError as e:
        return ParseFailure(reason=f"Respuesta del servidor inválida: {e.error_count()} errores")

    return ParseSuccess[DocumentUploadResult](value=result)
