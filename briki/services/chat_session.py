"""
Conversation session for the insurance assistant.

Owns the message list, the user memory, the set of plans already shown and
the uploaded-document history for one chat. Sending a message and
uploading a document are small state machines that always end back in
IDLE; failures of the reply generator or the upload endpoint become
assistant messages instead of exceptions.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError

from briki.database.local_storage import StorageBackend, StorageError
from briki.models.domain import (
    DocumentUploadResult,
    Memory,
    Message,
    PlanId,
    UploadFile,
    new_message_id,
)
from briki.models.schemas import (
    DocumentSummary,
    ParseFailure,
    ReplyRequest,
    ReplyResponse,
    parse_reply_response,
    parse_upload_response,
)
from briki.services.document_service import (
    DocumentClassifier,
    compose_document_reply,
    extract_coverage_bullets,
    suggested_follow_ups,
)
from briki.services.memory_service import MemoryService
from briki.utils.logger import get_logger, set_session_id
from briki.utils.metrics import EventTracker
from briki.utils.prompts import load_prompts

logger = get_logger(__name__)
PROMPTS = load_prompts()

SESSION_SCHEMA_VERSION = 1


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


class UploadState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"


class ReplyGenerator(Protocol):
    """Produces the assistant reply for one turn."""

    async def generate_reply(self, request: ReplyRequest) -> Any: ...


class DocumentUploader(Protocol):
    """Uploads a document and returns {summary, fileName, fileSize, summaryId?}."""

    async def upload(self, file: UploadFile) -> Any: ...


class ResetContextToken:
    """
    Single-use signal asking the reply generator to drop its own state.
    `consume()` reads and clears it in one step.
    """

    def __init__(self, armed: bool = False):
        self._armed = armed

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self) -> None:
        self._armed = True

    def consume(self) -> bool:
        armed, self._armed = self._armed, False
        return armed


class ChatSession:
    """
    One chat between a user and the assistant.

    Collaborators are injected: the reply generator, the document uploader
    and the storage backend used by load()/save().
    """

    def __init__(
        self,
        reply_generator: ReplyGenerator,
        document_uploader: DocumentUploader,
        storage: StorageBackend,
        storage_key: str = "briki_chat_history",
        event_tracker: EventTracker | None = None,
        document_classifier: DocumentClassifier | None = None,
        memory_service: MemoryService | None = None,
        session_id: str | None = None,
    ):
        """
        Initialize chat session.

        Args:
            reply_generator: Port that produces assistant replies
            document_uploader: Port that uploads and summarizes documents
            storage: Persistence port for the session state
            storage_key: Key the session is saved under
            event_tracker: Analytics sink (a fresh one by default)
            document_classifier: Classifier for uploaded summaries
            memory_service: Memory merge helper
            session_id: Id stamped on log records (random by default)
        """
        self.reply_generator = reply_generator
        self.document_uploader = document_uploader
        self.storage = storage
        self.storage_key = storage_key
        self.event_tracker = event_tracker or EventTracker()
        self.document_classifier = document_classifier or DocumentClassifier()
        self.memory_service = memory_service or MemoryService()
        self.session_id = session_id or uuid.uuid4().hex

        self.messages: list[Message] = []
        self.memory: Memory = {}
        self.shown_plan_ids: set[PlanId] = set()
        self.document_history: list[DocumentUploadResult] = []
        self.pending_file: UploadFile | None = None
        self.input = ""

        self.turn_state = TurnState.IDLE
        self.upload_state = UploadState.IDLE
        self._reset_token = ResetContextToken()

    @property
    def is_typing(self) -> bool:
        return self.turn_state is TurnState.SENDING

    @property
    def is_uploading_document(self) -> bool:
        return self.upload_state is UploadState.UPLOADING

    @property
    def reset_pending(self) -> bool:
        """True until the next send carries resetContext."""
        return self._reset_token.armed

    # --- Message list ---

    def add_message(self, message: Message) -> None:
        self.messages.append(message)

    def _update_message(self, message_id: str, **updates: Any) -> Message | None:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                self.messages[index] = message.model_copy(update=updates)
                return self.messages[index]
        logger.warning("message_update_missed", message_id=message_id)
        return None

    def _append_error(self, error: str) -> None:
        content = PROMPTS["conversation_responses"]["error_template"].format(error=error)
        self.add_message(Message(role="assistant", content=content, metadata={"error": True}))

    # --- Turn ---

    async def send_message(self, text: str, document_context: dict[str, Any] | None = None) -> None:
        """
        Send one user message and fold the reply into the session.

        No-op when the text is blank or a send is already in flight.

        Args:
            text: User message
            document_context: One-shot context sent as memory["recentDocument"]
                for this turn only
        """
        text = (text or "").strip()
        if not text:
            return
        if self.is_typing:
            logger.info("send_ignored", reason="already_sending")
            return

        set_session_id(self.session_id)
        history = [message.to_history_entry() for message in self.messages]

        self.add_message(Message(role="user", content=text))
        self.input = ""
        self.turn_state = TurnState.SENDING

        memory = self.memory
        if document_context is not None:
            memory = self.memory_service.merge_memory(self.memory, {"recentDocument": document_context})

        request = ReplyRequest(
            message=text,
            conversation_history=history,
            memory=memory,
            reset_context=self._reset_token.consume(),
        )

        logger.info(
            "reply_requested",
            history_length=len(history),
            reset_context=request.reset_context,
            has_document_context=document_context is not None,
        )
        self.event_tracker.start_timer("reply_generation")
        try:
            raw = await self.reply_generator.generate_reply(request)
            parsed = parse_reply_response(raw)
            if isinstance(parsed, ParseFailure):
                logger.error("reply_rejected", reason=parsed.reason)
                self._append_error(parsed.reason)
            else:
                self._apply_reply(parsed.value)
        except Exception as e:
            logger.error("reply_failed", exc_info=True, error=str(e))
            self._append_error(str(e) or type(e).__name__)
        finally:
            self.event_tracker.end_timer("reply_generation")
            self.turn_state = TurnState.IDLE
            self.save()

    def _apply_reply(self, reply: ReplyResponse) -> None:
        if reply.memory is not None:
            self.memory = dict(reply.memory)

        new_plans = []
        for plan in reply.suggested_plans:
            if plan.id in self.shown_plan_ids:
                continue
            self.shown_plan_ids.add(plan.id)
            new_plans.append(plan)

        self.add_message(Message(role="assistant", content=reply.message))

        if new_plans:
            self.add_message(Message(role="assistant", type="plans", plans=new_plans))
            self.event_tracker.track(
                "ai_recommended_plans", value=len(new_plans), category="Assistant"
            )

        logger.info(
            "reply_applied",
            plans_received=len(reply.suggested_plans),
            plans_shown=len(new_plans),
            memory_replaced=reply.memory is not None,
        )

    # --- Uploads ---

    async def handle_document_upload(
        self, file: UploadFile, retry_of: str | None = None
    ) -> DocumentUploadResult | None:
        """
        Upload a document and show its analysis in the chat.

        A placeholder document message is shown while uploading and then
        updated in place to the analysis or to an error carrying a retry.

        Args:
            file: Document to upload
            retry_of: Id of the failed placeholder being retried; it is
                reused instead of appending a new message

        Returns:
            The upload result, or None if the upload failed or another
            upload is in progress
        """
        if self.is_uploading_document:
            logger.info("upload_ignored", reason="already_uploading", file_name=file.file_name)
            return None

        set_session_id(self.session_id)
        self.upload_state = UploadState.UPLOADING

        loading = {
            "content": PROMPTS["conversation_responses"]["document_loading"],
            "metadata": {"status": "loading", "fileName": file.file_name, "fileSize": file.size},
            "retry": None,
        }
        placeholder_id = retry_of
        if placeholder_id is None or self._update_message(placeholder_id, **loading) is None:
            placeholder = Message(
                id=new_message_id("loading-doc"),
                role="assistant",
                type="document",
                content=loading["content"],
                metadata=loading["metadata"],
            )
            self.add_message(placeholder)
            placeholder_id = placeholder.id

        logger.info("upload_started", file_name=file.file_name, file_size=file.size)
        try:
            raw = await self.document_uploader.upload(file)
            parsed = parse_upload_response(raw)
            if isinstance(parsed, ParseFailure):
                self._fail_upload(placeholder_id, file, parsed.reason)
                return None
            return self._complete_upload(placeholder_id, parsed.value)
        except Exception as e:
            logger.error("upload_failed", exc_info=True, file_name=file.file_name, error=str(e))
            self._fail_upload(placeholder_id, file, str(e) or type(e).__name__)
            return None
        finally:
            self.upload_state = UploadState.IDLE
            self.save()

    def _complete_upload(self, placeholder_id: str, result: DocumentUploadResult) -> DocumentUploadResult:
        document_type = self.document_classifier.classify(result.summary)
        result = result.model_copy(update={"document_type": document_type})
        bullets = extract_coverage_bullets(result.summary)

        self._update_message(
            placeholder_id,
            content=compose_document_reply(result, bullets),
            metadata={
                "status": "success",
                "fileName": result.file_name,
                "fileSize": result.file_size,
                "summaryId": result.summary_id,
                "documentType": document_type,
                "summary": result.summary,
                "suggestedFollowUps": suggested_follow_ups(document_type),
            },
            retry=None,
        )

        self.document_history.append(result)
        self.memory = self.memory_service.merge_memory(
            self.memory,
            {
                "lastUploadedDocument": {
                    "fileName": result.file_name,
                    "fileSize": result.file_size,
                    "documentType": document_type,
                    "uploadTime": result.upload_time.isoformat(),
                }
            },
        )

        self.event_tracker.track(
            "document_upload", file_name=result.file_name, document_type=document_type
        )
        logger.info("upload_completed", file_name=result.file_name, document_type=document_type)
        return result

    def _fail_upload(self, placeholder_id: str, file: UploadFile, error: str) -> None:
        async def retry() -> DocumentUploadResult | None:
            return await self.handle_document_upload(file, retry_of=placeholder_id)

        self._update_message(
            placeholder_id,
            content=PROMPTS["conversation_responses"]["document_error_template"].format(
                file_name=file.file_name, error=error
            ),
            metadata={
                "status": "error",
                "fileName": file.file_name,
                "fileSize": file.size,
                "error": error,
                "retryable": True,
            },
            retry=retry,
        )

    async def send_message_with_document(
        self, text: str | None = None, file: UploadFile | None = None
    ) -> None:
        """
        Send the current input and/or pending document.

        The document is uploaded first; its summary then travels with the
        text turn as one-shot document context.

        Args:
            text: Message text (defaults to the session input)
            file: Document (defaults to the pending file)
        """
        text_to_send = text if text is not None else self.input
        file_to_upload = file if file is not None else self.pending_file

        if not (text_to_send or "").strip() and file_to_upload is None:
            return
        if self.is_typing or self.is_uploading_document:
            logger.info("send_ignored", reason="busy")
            return

        if text is None:
            self.input = ""
        self.pending_file = None

        document_context = None
        if file_to_upload is not None:
            result = await self.handle_document_upload(file_to_upload)
            if result is not None:
                document_context = {
                    "fileName": result.file_name,
                    "documentType": result.document_type,
                    "summary": result.summary,
                }

        if (text_to_send or "").strip():
            await self.send_message(text_to_send, document_context)

    def show_document_summary(self, summary: DocumentSummary) -> Message:
        """Append a previously stored document summary to the chat."""

        def as_bullets(value: Any) -> str:
            if not value:
                return "• No especificadas"
            if isinstance(value, list):
                return "\n".join(f"• {item}" for item in value)
            return f"• {value}"

        content = PROMPTS["document_summary_view"].format(
            insurance_type=summary.insurance_type,
            insurer_name=summary.insurer_name or "No especificada",
            coverage=as_bullets(summary.coverage_summary),
            exclusions=as_bullets(summary.exclusions),
            deductibles=summary.deductibles or "No especificados",
            validity_period=summary.validity_period or "No especificada",
            file_name=summary.filename,
        ).strip()

        message = Message(
            id=new_message_id("doc-summary"),
            role="assistant",
            type="document",
            content=content,
            metadata={
                "status": "success",
                "summaryId": summary.id,
                "fileName": summary.filename,
                "fileSize": summary.file_size,
            },
        )
        self.add_message(message)
        self.save()
        return message

    # --- Reset & persistence ---

    def reset_chat(self) -> None:
        """
        Start over: clears messages, memory, shown plans, document history
        and pending input, and makes the next send carry resetContext.
        """
        set_session_id(self.session_id)
        self.messages = []
        self.input = ""
        self.memory = {}
        self.shown_plan_ids = set()
        self.document_history = []
        self.pending_file = None
        self._reset_token.arm()

        self.event_tracker.track("chat_reset", category="Assistant")
        self.save()

    def save(self) -> None:
        """Persist the session; failures are logged, never raised."""
        payload = {
            "version": SESSION_SCHEMA_VERSION,
            "savedAt": datetime.now().isoformat(),
            "messages": [message.model_dump(mode="json", by_alias=True) for message in self.messages],
            "memory": self.memory,
            "shownPlanIds": list(self.shown_plan_ids),
            "documentHistory": [
                document.model_dump(mode="json", by_alias=True) for document in self.document_history
            ],
            "resetContext": self._reset_token.armed,
        }
        try:
            self.storage.set(self.storage_key, payload)
        except StorageError as e:
            logger.error("session_save_failed", error=str(e))

    def load(self) -> None:
        """
        Restore the persisted session.

        Unknown versions and payloads that fail validation are discarded.
        A document placeholder left loading by an interrupted upload is
        turned into an error (its file is gone, so it cannot be retried).
        """
        set_session_id(self.session_id)
        try:
            raw = self.storage.get(self.storage_key)
        except StorageError as e:
            logger.error("session_load_failed", error=str(e))
            return

        if raw is None:
            return

        if not isinstance(raw, dict) or raw.get("version") != SESSION_SCHEMA_VERSION:
            logger.warning("session_discarded", reason="unsupported_version")
            self._discard()
            return

        try:
            messages = [Message.model_validate(item) for item in raw.get("messages") or []]
            history = [
                DocumentUploadResult.model_validate(item)
                for item in raw.get("documentHistory") or []
            ]
        except ValidationError as e:
            logger.warning("session_discarded", reason="invalid_payload", error=str(e))
            self._discard()
            return

        memory = raw.get("memory")
        self.messages = [self._settle_interrupted_upload(message) for message in messages]
        self.memory = dict(memory) if isinstance(memory, dict) else {}
        self.shown_plan_ids = set(raw.get("shownPlanIds") or [])
        self.document_history = history
        self._reset_token = ResetContextToken(armed=bool(raw.get("resetContext")))

        logger.info("session_loaded", messages=len(self.messages), shown_plans=len(self.shown_plan_ids))

    @staticmethod
    def _settle_interrupted_upload(message: Message) -> Message:
        if message.type != "document" or message.metadata.get("status") != "loading":
            return message
        file_name = message.metadata.get("fileName", "")
        error = "carga interrumpida"
        return message.model_copy(
            update={
                "content": PROMPTS["conversation_responses"]["document_error_template"].format(
                    file_name=file_name, error=error
                ),
                "metadata": {**message.metadata, "status": "error", "error": error, "retryable": False},
            }
        )

    def _discard(self) -> None:
        try:
            self.storage.remove(self.storage_key)
        except StorageError as e:
            logger.error("session_discard_failed", error=str(e))
