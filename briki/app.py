"""
Console entry point for the Briki insurance assistant.
Runs one chat session against the LangGraph reply workflow, with PDF
uploads and the comparison selection available as slash commands.
"""

import asyncio
from pathlib import Path

from supabase import create_client

from briki import config
from briki.database.local_storage import JsonFileStorage
from briki.database.supabase import DocumentSummaryRepository
from briki.graph.builder import build_reply_generator
from briki.models.domain import Message, UploadFile
from briki.services.chat_session import ChatSession
from briki.services.compare_store import CompareStore
from briki.services.llm_service import LLMService, create_llm
from briki.services.pdf_service import PDFSummaryUploader
from briki.services.recommendation_service import generate_comparison_summary
from briki.utils.logger import configure_logging, get_logger
from briki.utils.prompts import load_prompts

logger = get_logger(__name__)
PROMPTS = load_prompts()

HELP_TEXT = """Comandos:
  /subir <ruta.pdf> [mensaje]   Analiza una póliza en PDF
  /comparar <n>                 Agrega el plan n de la última lista a la comparación
  /comparacion                  Muestra la comparación actual
  /limpiar-comparacion          Vacía la comparación
  /reiniciar                    Empieza una conversación nueva
  salir                         Termina"""


def build_session() -> tuple[ChatSession, CompareStore]:
    """
    Wires the chat session and compare store from settings.

    Raises:
        ValueError: If required credentials are missing
    """
    settings = config.get_settings()
    config.check_env_vars(require=("google_api_key", "supabase_url", "supabase_service_key"))

    supabase = create_client(settings.supabase_url, settings.supabase_service_key)
    storage = JsonFileStorage(config.STORAGE_DIR)

    summary_llm_service = LLMService(
        model=create_llm(config.SUMMARY_MODEL, settings.google_api_key),
        max_retries=config.LLM_MAX_RETRIES,
        timeout=config.LLM_TIMEOUT,
        rate_limit=config.LLM_RATE_LIMIT,
    )
    uploader = PDFSummaryUploader(
        llm_service=summary_llm_service,
        summary_repository=DocumentSummaryRepository(supabase),
        max_size_bytes=config.MAX_UPLOAD_SIZE_BYTES,
    )

    session = ChatSession(
        reply_generator=build_reply_generator(),
        document_uploader=uploader,
        storage=storage,
        storage_key=config.CHAT_STORAGE_KEY,
    )
    compare_store = CompareStore(
        storage,
        storage_key=config.COMPARE_STORAGE_KEY,
        max_plans=config.COMPARE_MAX_PLANS,
        max_plans_per_category=config.COMPARE_MAX_PLANS_PER_CATEGORY,
    )
    session.load()
    compare_store.load()
    return session, compare_store


def read_upload(path: str) -> UploadFile:
    file_path = Path(path).expanduser()
    content_type = "application/pdf" if file_path.suffix.lower() == ".pdf" else "application/octet-stream"
    return UploadFile(file_name=file_path.name, content=file_path.read_bytes(), content_type=content_type)


def render(message: Message) -> None:
    if message.type == "plans":
        print("\nPlanes sugeridos:")
        for index, plan in enumerate(message.plans or [], start=1):
            price = plan.price or "precio a consultar"
            print(f"  {index}. {plan.name} - {plan.provider} ({price})")
        return
    print(f"\nBriki:\n{message.content}")
    for follow_up in message.metadata.get("suggestedFollowUps", []):
        print(f"  > {follow_up}")


def last_plans(session: ChatSession) -> list:
    for message in reversed(session.messages):
        if message.type == "plans":
            return message.plans or []
    return []


def print_comparison(compare_store: CompareStore) -> None:
    plans = compare_store.selected_plans
    if not plans:
        print("\nNo hay planes en la comparación.")
        return
    for plan in plans:
        print(f"  - {plan.name} ({plan.provider}): {plan.price or '-'} | {len(plan.features)} coberturas")
    if not compare_store.get_comparison_ready():
        print("Agrega al menos un plan más para comparar.")
        return
    summary = generate_comparison_summary(plans)
    print(f"Más económico: {summary.cheapest.name}")
    print(f"Más coberturas: {summary.most_features.name}")
    print(f"Mejor calificado: {summary.highest_rated.name}")
    print(f"Rango de precios: {summary.price_range.min:,.0f} - {summary.price_range.max:,.0f}")
    print(f"Promedio de coberturas: {summary.average_features}")


async def run_chatbot() -> None:
    """Async main loop for console chat interaction."""
    configure_logging(level=config.get_settings().log_level, use_structured=False)

    try:
        session, compare_store = build_session()
    except ValueError as e:
        logger.error("configuration_error", error=str(e))
        print(f"\nError de configuración: {e}")
        return

    logger.info("conversation_started", session_id=session.session_id)

    print("\n" + "=" * 60)
    print("Briki - Asistente de seguros. Escribe /ayuda para ver los comandos")
    print("=" * 60)

    if not session.messages:
        print(f"\nBriki:\n{PROMPTS['conversation_responses']['greeting']}")
    for message in session.messages:
        render(message)

    while True:
        try:
            text = input("\nTú: ").strip()
            if text.lower() in ["salir", "exit", "quit"]:
                break

            shown = len(session.messages)

            if text == "/ayuda":
                print(HELP_TEXT)
                continue
            elif text == "/reiniciar":
                session.reset_chat()
                print("\n" + PROMPTS["conversation_responses"]["reset_notice"])
                continue
            elif text.startswith("/subir "):
                path, _, message = text[len("/subir "):].strip().partition(" ")
                try:
                    session.pending_file = read_upload(path)
                except OSError as e:
                    print(f"\nNo pude leer el archivo: {e}")
                    continue
                await session.send_message_with_document(message or None)
            elif text.startswith("/comparar "):
                plans = last_plans(session)
                index = text[len("/comparar "):].strip()
                if not index.isdigit() or not 1 <= int(index) <= len(plans):
                    print("\nNúmero de plan inválido.")
                    continue
                added = compare_store.add_plan(plans[int(index) - 1])
                print("\nPlan agregado a la comparación." if added else "\nNo se pudo agregar el plan.")
                continue
            elif text == "/comparacion":
                print_comparison(compare_store)
                continue
            elif text == "/limpiar-comparacion":
                compare_store.clear_plans()
                continue
            else:
                await session.send_message(text)

            # Retry failed uploads once on request.
            for message in session.messages[shown:]:
                render(message)
                if message.retry is not None and input("¿Reintentar? (s/n): ").strip().lower() == "s":
                    await message.retry()
                    render(next(m for m in session.messages if m.id == message.id))

        except KeyboardInterrupt:
            logger.info("conversation_interrupted_by_user")
            break
        except EOFError:
            break

    session.event_tracker.finalize()
    logger.info("conversation_ended", session_id=session.session_id)
    print("\n¡Hasta pronto!")


def main() -> None:
    asyncio.run(run_chatbot())


if __name__ == "__main__":
    main()
