"""
Unit tests for ChatSession.
Tests the send and upload flows, plan de-duplication, the reset signal,
error handling and persistence.
"""

import asyncio

import pytest

from briki.models.domain import Message
from briki.models.schemas import DocumentSummary
from briki.services.chat_session import ChatSession, TurnState, UploadState


def sent_request(reply_generator, call: int = -1):
    """ReplyRequest passed to the generator on a given call."""
    return reply_generator.generate_reply.await_args_list[call].args[0]


class TestSendMessage:
    """Tests for the text turn."""

    @pytest.mark.asyncio
    async def test_appends_user_and_assistant_messages(self, chat_session, reply_generator):
        # Act
        await chat_session.send_message("Necesito un seguro de viaje")

        # Assert
        assert [m.role for m in chat_session.messages] == ["user", "assistant"]
        assert chat_session.messages[0].content == "Necesito un seguro de viaje"
        assert chat_session.messages[1].content == "¡Claro! ¿A dónde viajas?"
        assert chat_session.turn_state is TurnState.IDLE
        reply_generator.generate_reply.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, chat_session, reply_generator):
        await chat_session.send_message("Hola")
        await chat_session.send_message("Quiero viajar a Europa")

        request = sent_request(reply_generator)
        assert request.message == "Quiero viajar a Europa"
        assert [entry.model_dump() for entry in request.conversation_history] == [
            {"role": "user", "content": "Hola"},
            {"role": "assistant", "content": "¡Claro! ¿A dónde viajas?"},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", None])
    async def test_blank_message_is_ignored(self, chat_session, reply_generator, text):
        await chat_session.send_message(text)

        assert chat_session.messages == []
        reply_generator.generate_reply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clears_input(self, chat_session):
        chat_session.input = "Hola"

        await chat_session.send_message("Hola")

        assert chat_session.input == ""

    @pytest.mark.asyncio
    async def test_concurrent_send_is_ignored(self, chat_session, reply_generator):
        """A second send while one is in flight should be a no-op."""
        release = asyncio.Event()

        async def slow_reply(request):
            await release.wait()
            return {"message": "Listo"}

        reply_generator.generate_reply.side_effect = slow_reply

        first = asyncio.create_task(chat_session.send_message("Primero"))
        await asyncio.sleep(0)
        assert chat_session.is_typing

        await chat_session.send_message("Segundo")
        release.set()
        await first

        assert reply_generator.generate_reply.await_count == 1
        assert [m.content for m in chat_session.messages] == ["Primero", "Listo"]
        assert not chat_session.is_typing


class TestSuggestedPlans:
    """Tests for plan messages and de-duplication."""

    @pytest.mark.asyncio
    async def test_plans_message_follows_text(self, chat_session, reply_generator, travel_plans, event_tracker):
        reply_generator.generate_reply.return_value = {
            "message": "Estas son mis recomendaciones",
            "suggestedPlans": [plan.to_payload() for plan in travel_plans[:2]],
        }

        await chat_session.send_message("Seguro de viaje")

        text, plans = chat_session.messages[1], chat_session.messages[2]
        assert text.type == "text"
        assert plans.type == "plans"
        assert [plan.id for plan in plans.plans] == ["t-basic", "t-premium"]
        assert chat_session.shown_plan_ids == {"t-basic", "t-premium"}
        assert event_tracker.metrics["plans_recommended"] == 2

    @pytest.mark.asyncio
    async def test_plans_are_shown_once_per_session(self, chat_session, reply_generator, travel_plans):
        """Plans already shown should not be shown again."""
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [plan.to_payload() for plan in travel_plans[:2]],
        }
        await chat_session.send_message("Seguro de viaje")

        reply_generator.generate_reply.return_value = {
            "message": "Más opciones",
            "suggestedPlans": [plan.to_payload() for plan in travel_plans[1:3]],
        }
        await chat_session.send_message("¿Algo más?")

        plan_messages = [m for m in chat_session.messages if m.type == "plans"]
        assert [[p.id for p in m.plans] for m in plan_messages] == [
            ["t-basic", "t-premium"],
            ["t-plus"],
        ]

    @pytest.mark.asyncio
    async def test_no_plans_message_when_all_were_shown(self, chat_session, reply_generator, travel_plans):
        payload = {"message": "Opciones", "suggestedPlans": [travel_plans[0].to_payload()]}
        reply_generator.generate_reply.return_value = payload

        await chat_session.send_message("Uno")
        await chat_session.send_message("Dos")

        assert [m.type for m in chat_session.messages] == ["text", "text", "plans", "text", "text"]

    @pytest.mark.asyncio
    async def test_duplicate_plans_in_one_reply(self, chat_session, reply_generator, travel_plans):
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [travel_plans[0].to_payload(), travel_plans[0].to_payload()],
        }

        await chat_session.send_message("Viaje")

        assert len(chat_session.messages[-1].plans) == 1

    @pytest.mark.asyncio
    async def test_malformed_plans_are_skipped(self, chat_session, reply_generator, travel_plans):
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [{"name": "sin id"}, travel_plans[0].to_payload()],
        }

        await chat_session.send_message("Viaje")

        assert [p.id for p in chat_session.messages[-1].plans] == ["t-basic"]


class TestMemory:
    """Tests for memory handling."""

    @pytest.mark.asyncio
    async def test_reply_memory_replaces_session_memory(self, chat_session, reply_generator):
        chat_session.memory = {"pet": {"type": "dog"}}
        reply_generator.generate_reply.return_value = {
            "message": "Ok",
            "memory": {"travel": {"destination": "Europa"}},
        }

        await chat_session.send_message("Viajo a Europa")

        assert sent_request(reply_generator).memory == {"pet": {"type": "dog"}}
        assert chat_session.memory == {"travel": {"destination": "Europa"}}

    @pytest.mark.asyncio
    async def test_memory_kept_when_reply_has_none(self, chat_session):
        chat_session.memory = {"pet": {"type": "dog"}}

        await chat_session.send_message("Hola")

        assert chat_session.memory == {"pet": {"type": "dog"}}


class TestErrors:
    """Tests for reply generator failures."""

    @pytest.mark.asyncio
    async def test_generator_exception_becomes_message(self, chat_session, reply_generator):
        reply_generator.generate_reply.side_effect = RuntimeError("servicio no disponible")

        await chat_session.send_message("Hola")

        error = chat_session.messages[-1]
        assert error.role == "assistant"
        assert error.content.startswith("Lo siento, hubo un error al procesar tu solicitud.")
        assert "servicio no disponible" in error.content
        assert error.metadata["error"] is True
        assert chat_session.turn_state is TurnState.IDLE

    @pytest.mark.asyncio
    async def test_reply_without_message_is_an_error(self, chat_session, reply_generator):
        reply_generator.generate_reply.return_value = {"suggestedPlans": []}

        await chat_session.send_message("Hola")

        assert "Respuesta del asistente sin mensaje" in chat_session.messages[-1].content

    @pytest.mark.asyncio
    async def test_session_recovers_after_error(self, chat_session, reply_generator):
        reply_generator.generate_reply.side_effect = [RuntimeError("boom"), {"message": "Ahora sí"}]

        await chat_session.send_message("Uno")
        await chat_session.send_message("Dos")

        assert chat_session.messages[-1].content == "Ahora sí"


class TestReset:
    """Tests for reset_chat and the one-shot reset signal."""

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self, chat_session, reply_generator, travel_plans, pdf_file):
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [travel_plans[0].to_payload()],
            "memory": {"travel": {}},
        }
        await chat_session.send_message("Viaje")
        await chat_session.handle_document_upload(pdf_file)
        chat_session.input = "borrador"
        chat_session.pending_file = pdf_file

        chat_session.reset_chat()

        assert chat_session.messages == []
        assert chat_session.memory == {}
        assert chat_session.shown_plan_ids == set()
        assert chat_session.document_history == []
        assert chat_session.input == ""
        assert chat_session.pending_file is None
        assert chat_session.reset_pending

    @pytest.mark.asyncio
    async def test_reset_signal_sent_exactly_once(self, chat_session, reply_generator):
        await chat_session.send_message("Antes")
        chat_session.reset_chat()

        await chat_session.send_message("Después")
        await chat_session.send_message("Otra vez")

        flags = [call.args[0].reset_context for call in reply_generator.generate_reply.await_args_list]
        assert flags == [False, True, False]

    @pytest.mark.asyncio
    async def test_reset_signal_consumed_even_if_send_fails(self, chat_session, reply_generator):
        chat_session.reset_chat()
        reply_generator.generate_reply.side_effect = [RuntimeError("boom"), {"message": "Ok"}]

        await chat_session.send_message("Uno")
        await chat_session.send_message("Dos")

        assert sent_request(reply_generator, 0).reset_context is True
        assert sent_request(reply_generator, 1).reset_context is False

    @pytest.mark.asyncio
    async def test_shown_plans_can_reappear_after_reset(self, chat_session, reply_generator, travel_plans):
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [travel_plans[0].to_payload()],
        }
        await chat_session.send_message("Viaje")
        chat_session.reset_chat()

        await chat_session.send_message("Viaje")

        assert chat_session.messages[-1].type == "plans"

    def test_reset_signal_survives_reload(self, chat_session, reply_generator, document_uploader, storage):
        chat_session.reset_chat()

        restored = ChatSession(reply_generator, document_uploader, storage)
        restored.load()

        assert restored.reset_pending


class TestDocumentUpload:
    """Tests for the upload flow."""

    @pytest.mark.asyncio
    async def test_successful_upload_updates_placeholder(self, chat_session, pdf_file, event_tracker):
        result = await chat_session.handle_document_upload(pdf_file)

        assert len(chat_session.messages) == 1
        message = chat_session.messages[0]
        assert message.type == "document"
        assert message.id.startswith("loading-doc-")
        assert message.metadata["status"] == "success"
        assert message.metadata["documentType"] == "health"
        assert message.metadata["summaryId"] == "sum-1"
        assert "• Hospitalización" in message.content
        assert "• Consulta médica general" in message.content
        assert "Cirugía estética" not in message.content
        assert result.document_type == "health"
        assert chat_session.upload_state is UploadState.IDLE
        assert event_tracker.event_count("document_upload") == 1

    @pytest.mark.asyncio
    async def test_upload_updates_history_and_memory(self, chat_session, pdf_file):
        await chat_session.handle_document_upload(pdf_file)

        assert [doc.file_name for doc in chat_session.document_history] == ["poliza.pdf"]
        assert chat_session.memory["lastUploadedDocument"]["fileName"] == "poliza.pdf"
        assert chat_session.memory["lastUploadedDocument"]["documentType"] == "health"

    @pytest.mark.asyncio
    async def test_summary_without_coverage_heading(self, chat_session, document_uploader, pdf_file):
        document_uploader.upload.return_value = {
            "summary": "Documento de condiciones generales.",
            "fileName": "condiciones.pdf",
            "fileSize": 10,
        }

        await chat_session.handle_document_upload(pdf_file)

        message = chat_session.messages[0]
        assert message.metadata["documentType"] == "general"
        assert "Revisa el documento completo" in message.content

    @pytest.mark.asyncio
    async def test_failed_upload_offers_retry(self, chat_session, document_uploader, pdf_file):
        document_uploader.upload.side_effect = RuntimeError("Error de conexión")

        result = await chat_session.handle_document_upload(pdf_file)

        assert result is None
        assert len(chat_session.messages) == 1
        message = chat_session.messages[0]
        assert message.metadata["status"] == "error"
        assert "Error de conexión" in message.content
        assert "poliza.pdf" in message.content
        assert message.retry is not None
        assert chat_session.upload_state is UploadState.IDLE

    @pytest.mark.asyncio
    async def test_retry_reuses_placeholder(self, chat_session, document_uploader, pdf_file):
        """Retrying should update the same message instead of appending one."""
        document_uploader.upload.side_effect = RuntimeError("Error de conexión")
        await chat_session.handle_document_upload(pdf_file)
        failed = chat_session.messages[0]

        document_uploader.upload.side_effect = None
        await failed.retry()

        assert len(chat_session.messages) == 1
        retried = chat_session.messages[0]
        assert retried.id == failed.id
        assert retried.metadata["status"] == "success"
        assert retried.retry is None
        assert document_uploader.upload.await_count == 2

    @pytest.mark.asyncio
    async def test_incomplete_upload_response(self, chat_session, document_uploader, pdf_file):
        document_uploader.upload.return_value = {"summary": "", "fileName": "poliza.pdf"}

        await chat_session.handle_document_upload(pdf_file)

        message = chat_session.messages[0]
        assert message.metadata["status"] == "error"
        assert "Respuesta del servidor incompleta" in message.content
        assert chat_session.document_history == []

    @pytest.mark.asyncio
    async def test_send_with_document_passes_context_once(
        self, chat_session, reply_generator, document_uploader, pdf_file
    ):
        chat_session.input = "¿Qué cubre mi póliza?"
        chat_session.pending_file = pdf_file

        await chat_session.send_message_with_document()

        document_uploader.upload.assert_awaited_once_with(pdf_file)
        request = sent_request(reply_generator)
        assert request.message == "¿Qué cubre mi póliza?"
        assert request.memory["recentDocument"]["fileName"] == "poliza.pdf"
        assert request.memory["recentDocument"]["documentType"] == "health"
        assert "recentDocument" not in chat_session.memory
        assert [m.type for m in chat_session.messages] == ["document", "text", "text"]
        assert chat_session.pending_file is None
        assert chat_session.input == ""

        await chat_session.send_message("¿Y las exclusiones?")
        assert "recentDocument" not in sent_request(reply_generator).memory

    @pytest.mark.asyncio
    async def test_send_with_document_only(self, chat_session, reply_generator, pdf_file):
        await chat_session.send_message_with_document(file=pdf_file)

        reply_generator.generate_reply.assert_not_awaited()
        assert [m.type for m in chat_session.messages] == ["document"]

    @pytest.mark.asyncio
    async def test_send_with_failed_document_still_sends_text(
        self, chat_session, reply_generator, document_uploader, pdf_file
    ):
        document_uploader.upload.side_effect = RuntimeError("boom")

        await chat_session.send_message_with_document("Hola", pdf_file)

        assert "recentDocument" not in sent_request(reply_generator).memory

    @pytest.mark.asyncio
    async def test_send_with_nothing_is_noop(self, chat_session, reply_generator, document_uploader):
        await chat_session.send_message_with_document()

        reply_generator.generate_reply.assert_not_awaited()
        document_uploader.upload.assert_not_awaited()


class TestPersistence:
    """Tests for save/load."""

    @pytest.mark.asyncio
    async def test_round_trip(self, chat_session, reply_generator, document_uploader, storage, travel_plans, pdf_file):
        reply_generator.generate_reply.return_value = {
            "message": "Opciones",
            "suggestedPlans": [travel_plans[0].to_payload()],
            "memory": {"travel": {"destination": "Europa"}},
        }
        await chat_session.send_message("Viaje")
        await chat_session.handle_document_upload(pdf_file)

        restored = ChatSession(reply_generator, document_uploader, storage)
        restored.load()

        assert [m.id for m in restored.messages] == [m.id for m in chat_session.messages]
        assert restored.messages[2].plans[0].id == "t-basic"
        assert restored.shown_plan_ids == {"t-basic"}
        assert restored.memory["travel"] == {"destination": "Europa"}
        assert restored.document_history[0].document_type == "health"
        assert not restored.reset_pending

    @pytest.mark.asyncio
    async def test_retry_is_not_persisted(self, chat_session, document_uploader, reply_generator, storage, pdf_file):
        document_uploader.upload.side_effect = RuntimeError("boom")
        await chat_session.handle_document_upload(pdf_file)

        restored = ChatSession(reply_generator, document_uploader, storage)
        restored.load()

        assert restored.messages[0].metadata["status"] == "error"
        assert restored.messages[0].retry is None

    def test_interrupted_upload_becomes_error(self, reply_generator, document_uploader, storage):
        placeholder = Message(
            role="assistant",
            type="document",
            content="📄 Procesando documento...",
            metadata={"status": "loading", "fileName": "poliza.pdf"},
        )
        storage.set(
            "briki_chat_history",
            {"version": 1, "messages": [placeholder.model_dump(mode="json")]},
        )

        session = ChatSession(reply_generator, document_uploader, storage)
        session.load()

        assert session.messages[0].metadata["status"] == "error"
        assert session.messages[0].metadata["retryable"] is False

    def test_unknown_version_is_discarded(self, reply_generator, document_uploader, storage):
        storage.set("briki_chat_history", {"version": 99, "messages": []})

        session = ChatSession(reply_generator, document_uploader, storage)
        session.load()

        assert session.messages == []
        assert storage.get("briki_chat_history") is None

    def test_invalid_messages_are_discarded(self, reply_generator, document_uploader, storage):
        storage.set(
            "briki_chat_history",
            {"version": 1, "messages": [{"role": "assistant", "type": "plans"}]},
        )

        session = ChatSession(reply_generator, document_uploader, storage)
        session.load()

        assert session.messages == []
        assert storage.get("briki_chat_history") is None


class TestDocumentHistoryView:
    """Tests for showing a stored summary in the chat."""

    def test_show_document_summary(self, chat_session, storage):
        summary = DocumentSummary(
            id="sum-1",
            filename="soat.pdf",
            insurance_type="auto",
            insurer_name="Sura",
            coverage_summary=["Gastos médicos", "Incapacidad"],
        )

        message = chat_session.show_document_summary(summary)

        assert chat_session.messages == [message]
        assert message.type == "document"
        assert message.metadata["summaryId"] == "sum-1"
        assert "**Aseguradora:** Sura" in message.content
        assert "• Gastos médicos\n• Incapacidad" in message.content
        assert "• No especificadas" in message.content
        assert "soat.pdf" in message.content
        assert storage.get("briki_chat_history")["messages"][0]["id"] == message.id
