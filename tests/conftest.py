"""
Shared test fixtures and configuration.
"""

import pytest
from unittest.mock import AsyncMock, Mock

from briki.database.local_storage import InMemoryStorage
from briki.models.domain import Plan, UploadFile
from briki.services.chat_session import ChatSession
from briki.utils.metrics import EventTracker


def make_plan(**overrides) -> Plan:
    """Plan with sensible defaults; override any field."""
    data = {
        "id": "plan-1",
        "name": "Plan",
        "provider": "Aseguradora",
        "category": "travel",
        "price": "$50.000",
        "features": ["Asistencia médica"],
        "rating": "4.0",
    }
    data.update(overrides)
    return Plan.model_validate(data)


@pytest.fixture
def plan_factory():
    """Factory for one-off plans."""
    return make_plan


@pytest.fixture
def travel_plans() -> list[Plan]:
    """Travel catalog with two plans from the same provider."""
    return [
        make_plan(
            id="t-basic",
            name="Viaje Básico",
            provider="Assist Card",
            price="$45.000 COP",
            features=["Asistencia médica", "Equipaje"],
            rating="4.2",
        ),
        make_plan(
            id="t-premium",
            name="Viaje Premium",
            provider="Sura",
            price="$180.000 COP",
            features=["Asistencia médica", "Equipaje", "Cancelación", "Deportes extremos"],
            rating="4.8",
        ),
        make_plan(
            id="t-plus",
            name="Viaje Plus",
            provider="Assist Card",
            price="$80.000 COP",
            features=["Asistencia médica", "Equipaje", "Cancelación"],
            rating="4.5",
        ),
        make_plan(
            id="t-online",
            name="Viaje Online",
            provider="Allianz",
            price="Cotización en línea",
            features=[],
            benefits=["Telemedicina"],
            rating=None,
        ),
    ]


@pytest.fixture
def auto_plan() -> Plan:
    return make_plan(
        id="a-total",
        name="Auto Total",
        provider="Bolívar",
        category="auto",
        price="$1.250.000 COP/año",
        features=["Pérdida total", "Responsabilidad civil"],
        rating="4.1",
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def reply_generator():
    """Mock reply generator returning a plain reply with no plans."""
    generator = Mock()
    generator.generate_reply = AsyncMock(
        return_value={"message": "¡Claro! ¿A dónde viajas?", "suggestedPlans": []}
    )
    return generator


@pytest.fixture
def document_uploader():
    """Mock uploader returning a health policy summary."""
    uploader = Mock()
    uploader.upload = AsyncMock(
        return_value={
            "summary": (
                "Póliza de salud de Sura.\n"
                "Coberturas principales:\n"
                "• Hospitalización\n"
                "• Consulta médica general\n"
                "\n"
                "Exclusiones importantes:\n"
                "• Cirugía estética"
            ),
            "fileName": "poliza.pdf",
            "fileSize": 2048,
            "summaryId": "sum-1",
        }
    )
    return uploader


@pytest.fixture
def pdf_file() -> UploadFile:
    return UploadFile(file_name="poliza.pdf", content=b"%PDF-1.4 fake", content_type="application/pdf")


@pytest.fixture
def event_tracker() -> EventTracker:
    return EventTracker()


@pytest.fixture
def chat_session(reply_generator, document_uploader, storage, event_tracker) -> ChatSession:
    return ChatSession(
        reply_generator=reply_generator,
        document_uploader=document_uploader,
        storage=storage,
        event_tracker=event_tracker,
        session_id="test-session",
    )


@pytest.fixture
def mock_supabase():
    """Mock Supabase client with chainable table queries."""
    client = Mock()

    table_mock = Mock()
    for method in ("select", "eq", "insert", "delete", "order", "limit"):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute = Mock(return_value=Mock(data=[]))

    client.table = Mock(return_value=table_mock)
    return client
