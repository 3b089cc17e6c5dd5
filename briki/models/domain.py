"""
Domain models for the insurance assistant.
Plan and Message are the entities the chat session, the recommendation
engine and the compare store exchange.
"""

import itertools
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import TypedDict

InsuranceCategory = Literal["travel", "auto", "pet", "health"]
INSURANCE_CATEGORIES: tuple[str, ...] = ("travel", "auto", "pet", "health")

MessageRole = Literal["user", "assistant"]
MessageType = Literal["text", "plans", "document"]
DocumentType = Literal["health", "auto", "travel", "pet", "general"]

PlanId = str | int

# Accumulated facts about the user: pet, travel, vehicle, health, location,
# lastViewedCategory, lastUploadedDocument, recentDocument.
Memory = dict[str, Any]

_message_sequence = itertools.count()


def new_message_id(prefix: str = "msg") -> str:
    """Unique id that also sorts in creation order."""
    return f"{prefix}-{time.time_ns()}-{next(_message_sequence)}"


class Plan(BaseModel):
    """
    A normalized insurance offering.

    Accepts the camelCase keys used by the catalog and the reply generator
    (basePrice, externalLink, isExternal). Unknown keys are preserved.
    """

    id: PlanId
    name: str = ""
    provider: str = ""
    category: InsuranceCategory
    price: Optional[str] = None
    base_price: Optional[float] = Field(default=None, alias="basePrice")
    features: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    rating: Optional[str] = None
    country: Optional[str] = None
    external_link: Optional[str] = Field(default=None, alias="externalLink")
    is_external: bool = Field(default=False, alias="isExternal")
    description: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    @field_validator("price", "rating", mode="before")
    @classmethod
    def _numbers_to_display_string(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("features", "benefits", mode="before")
    @classmethod
    def _as_string_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"expected a list of strings, got {type(value).__name__}")
        return [str(item) for item in value if item is not None]

    @model_validator(mode="before")
    @classmethod
    def _coalesce_features_and_benefits(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        features, benefits = data.get("features"), data.get("benefits")
        if not features and benefits:
            return {**data, "features": benefits}
        if not benefits and features:
            return {**data, "benefits": features}
        return data

    def to_payload(self) -> dict[str, Any]:
        """Wire/persistence form using the camelCase aliases."""
        return self.model_dump(by_alias=True, mode="json")


class Message(BaseModel):
    """
    One conversational turn artifact.

    `plans` is set exactly when `type == "plans"`. `retry` is an in-process
    coroutine factory for failed uploads and is never persisted.
    """

    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    type: MessageType = "text"
    plans: Optional[list[Plan]] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    retry: Optional[Callable[[], Awaitable[Any]]] = Field(
        default=None, exclude=True, repr=False
    )

    @model_validator(mode="after")
    def _plans_iff_plans_type(self) -> "Message":
        if self.type == "plans" and self.plans is None:
            raise ValueError("plans message requires a plans list")
        if self.type != "plans" and self.plans is not None:
            raise ValueError(f"{self.type} message must not carry plans")
        return self

    def to_history_entry(self) -> dict[str, str]:
        """The {role, content} pair sent to the reply generator."""
        return {"role": self.role, "content": self.content}


class UploadFile(BaseModel):
    """A single document picked by the user for upload."""

    file_name: str
    content: bytes
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.content)


class DocumentUploadResult(BaseModel):
    """Validated upload endpoint payload plus the type the session assigned."""

    summary: str
    file_name: str = Field(alias="fileName")
    file_size: int = Field(default=0, alias="fileSize")
    summary_id: Optional[str] = Field(default=None, alias="summaryId")
    document_type: DocumentType = Field(default="general", alias="documentType")
    upload_time: datetime = Field(default_factory=datetime.now, alias="uploadTime")

    model_config = ConfigDict(populate_by_name=True)


class PriceRange(BaseModel):
    min: float = 0
    max: float = 0


class ComparisonSummary(BaseModel):
    """Extremes and averages across a list of plans."""

    cheapest: Optional[Plan] = None
    most_features: Optional[Plan] = None
    highest_rated: Optional[Plan] = None
    price_range: PriceRange = Field(default_factory=PriceRange)
    average_features: int = 0


class ReplyState(TypedDict, total=False):
    """
    State of the reply workflow graph for one turn.

    Attributes:
        message: Latest user message.
        conversation_history: Prior {role, content} pairs (empty after a reset).
        memory: User memory, updated by context extraction.
        reset_context: Whether the session asked to drop prior context.
        category: Insurance category detected for this turn.
        plans: Plans recommended for this turn.
        reply: Assistant prose.
    """

    message: str
    conversation_history: list[dict[str, str]]
    memory: Memory
    reset_context: bool
    category: Optional[str]
    plans: list[Plan]
    reply: str
