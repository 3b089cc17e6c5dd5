"""
Unit tests for domain models and boundary schemas.
"""

import pytest
from pydantic import ValidationError

from briki.models.domain import Message, Plan
from briki.models.schemas import (
    ParseFailure,
    ParseSuccess,
    ReplyRequest,
    parse_plans,
    parse_reply_response,
    parse_upload_response,
)


class TestPlan:
    """Tests for Plan normalization."""

    def test_camel_case_aliases(self):
        plan = Plan.model_validate(
            {"id": 7, "category": "pet", "basePrice": 25000, "externalLink": "https://x", "isExternal": True}
        )

        assert plan.base_price == 25000
        assert plan.is_external is True
        assert plan.to_payload()["basePrice"] == 25000

    def test_numbers_become_display_strings(self):
        plan = Plan.model_validate({"id": "p", "category": "auto", "price": 120000, "rating": 4.5})

        assert plan.price == "120000"
        assert plan.rating == "4.5"

    def test_benefits_fill_missing_features(self):
        plan = Plan.model_validate({"id": "p", "category": "auto", "benefits": ["Grúa"], "features": None})

        assert plan.features == ["Grúa"]

    def test_unknown_keys_are_preserved(self):
        plan = Plan.model_validate({"id": "p", "category": "auto", "coverageAmount": 1000})

        assert plan.to_payload()["coverageAmount"] == 1000

    def test_single_string_feature_is_not_split(self):
        plan = Plan.model_validate({"id": "p", "category": "auto", "features": "Grúa 24h"})

        assert plan.features == ["Grúa 24h"]

    def test_unknown_category_is_rejected(self):
        with pytest.raises(ValidationError):
            Plan.model_validate({"id": "p", "category": "boats"})


class TestMessage:
    """Tests for Message invariants."""

    def test_plans_type_requires_plans(self):
        with pytest.raises(ValidationError):
            Message(role="assistant", type="plans")

    def test_text_type_rejects_plans(self):
        with pytest.raises(ValidationError):
            Message(role="assistant", type="text", plans=[])

    def test_ids_are_unique(self):
        assert Message(role="user").id != Message(role="user").id


class TestParseReplyResponse:
    """Tests for reply payload validation."""

    def test_valid_payload(self):
        result = parse_reply_response(
            {"message": "Hola", "suggestedPlans": [{"id": 1, "category": "travel"}], "memory": {"a": 1}}
        )

        assert isinstance(result, ParseSuccess)
        assert result.value.message == "Hola"
        assert result.value.suggested_plans[0].id == 1
        assert result.value.memory == {"a": 1}

    def test_missing_optional_fields(self):
        result = parse_reply_response({"message": "Hola"})

        assert result.ok is True
        assert result.value.suggested_plans == []
        assert result.value.memory is None

    @pytest.mark.parametrize("raw", [None, "texto", ["message"]])
    def test_non_object_payload(self, raw):
        result = parse_reply_response(raw)

        assert isinstance(result, ParseFailure)
        assert result.reason.startswith("Respuesta inválida del asistente")

    def test_non_string_message(self):
        result = parse_reply_response({"message": 42})

        assert result == ParseFailure(reason="Respuesta del asistente sin mensaje")

    def test_non_object_memory_is_ignored(self):
        result = parse_reply_response({"message": "Hola", "memory": "nada"})

        assert result.ok is True
        assert result.value.memory is None

    def test_parse_plans_skips_invalid_entries(self):
        plans = parse_plans([{"id": 1, "category": "pet"}, {"category": "pet"}, "plan"])

        assert [plan.id for plan in plans] == [1]

    @pytest.mark.parametrize("bad_value", [5, True, {"a": 1}])
    def test_plan_with_non_list_features_is_skipped(self, bad_value):
        result = parse_reply_response(
            {
                "message": "hola",
                "suggestedPlans": [
                    {"id": "ok", "category": "travel", "features": ["Asistencia"]},
                    {"id": "bad", "category": "travel", "features": bad_value},
                ],
            }
        )

        assert result.ok is True
        assert [plan.id for plan in result.value.suggested_plans] == ["ok"]

    def test_parse_plans_non_list(self):
        assert parse_plans({"id": 1}) == []


class TestParseUploadResponse:
    """Tests for upload payload validation."""

    def test_valid_payload(self):
        result = parse_upload_response({"summary": "Resumen", "fileName": "a.pdf", "fileSize": 12})

        assert result.ok is True
        assert result.value.file_name == "a.pdf"
        assert result.value.file_size == 12
        assert result.value.document_type == "general"

    @pytest.mark.parametrize(
        "raw",
        [None, {}, {"summary": "Resumen"}, {"fileName": "a.pdf"}, {"summary": "", "fileName": "a.pdf"}],
    )
    def test_incomplete_payload(self, raw):
        assert parse_upload_response(raw) == ParseFailure(reason="Respuesta del servidor incompleta")


class TestReplyRequest:
    def test_payload_uses_camel_case(self):
        request = ReplyRequest(
            message="Hola",
            conversation_history=[{"role": "user", "content": "Antes"}],
            reset_context=True,
        )

        assert request.to_payload() == {
            "message": "Hola",
            "conversationHistory": [{"role": "user", "content": "Antes"}],
            "memory": {},
            "resetContext": True,
        }
