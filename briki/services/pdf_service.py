"""
PDF service for summarizing uploaded insurance policies.
Extracts the text layer with PyMuPDF, asks the LLM for a structured policy
analysis and stores it in the document history.
"""

import asyncio
from typing import Any, Literal, Optional

import fitz  # PyMuPDF
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from briki.database.supabase import DatabaseError, DocumentSummaryRepository
from briki.models.domain import UploadFile
from briki.models.schemas import DocumentSummary
from briki.services.llm_service import LLMError, LLMService, LLMTimeoutError
from briki.utils.logger import get_logger
from briki.utils.prompts import load_prompts

logger = get_logger(__name__)
PROMPTS = load_prompts()

PDF_CONTENT_TYPE = "application/pdf"
# Keeps the prompt well inside the context window of the summary model.
MAX_DOCUMENT_CHARS = 60_000


class PolicyAnalysis(BaseModel):
    """
    Structured output schema for policy summarization.
    """

    summary: str = Field(
        description=(
            "Resumen en español para el usuario, con una sección "
            "'Coberturas principales' en viñetas (•)"
        )
    )
    insurance_type: Literal["auto", "health", "travel", "pet", "other"] = Field(
        default="other", description="Tipo de seguro de la póliza"
    )
    insurer_name: Optional[str] = Field(default=None, description="Aseguradora, si aparece")
    coverage_summary: list[str] = Field(default_factory=list, description="Coberturas principales")
    exclusions: list[str] = Field(default_factory=list, description="Exclusiones importantes")
    deductibles: Optional[str] = Field(default=None, description="Deducibles, si aparecen")
    validity_period: Optional[str] = Field(default=None, description="Vigencia, si aparece")


class DocumentUploadError(Exception):
    """Raised when an upload is rejected; the message is shown to the user."""


class PDFParsingError(DocumentUploadError):
    """Raised when the PDF text cannot be extracted."""


class PDFSummaryUploader:
    """
    Document uploader backed by PyMuPDF and an LLM.
    Returns the same payload the upload endpoint would:
    {summary, fileName, fileSize, summaryId}.
    """

    def __init__(
        self,
        llm_service: LLMService,
        summary_repository: DocumentSummaryRepository | None = None,
        max_size_bytes: int = 10 * 1024 * 1024,
        user_id: str | None = None,
    ):
        """
        Initialize PDF uploader.

        Args:
            llm_service: LLM service for the summary model
            summary_repository: Where summaries are stored (skipped if None)
            max_size_bytes: Largest accepted file
            user_id: Owner recorded with stored summaries
        """
        self.llm_service = llm_service
        self.summary_repository = summary_repository
        self.max_size_bytes = max_size_bytes
        self.user_id = user_id

    def validate(self, file: UploadFile) -> None:
        """
        Raises:
            DocumentUploadError: If the file is not a non-empty PDF within the size limit
        """
        if file.content_type != PDF_CONTENT_TYPE:
            raise DocumentUploadError("Solo se permiten archivos PDF")
        if file.size > self.max_size_bytes:
            max_mb = self.max_size_bytes // (1024 * 1024)
            raise DocumentUploadError(f"El archivo no debe superar {max_mb}MB")
        if file.size == 0:
            raise DocumentUploadError("El archivo PDF está vacío")

    def extract_text(self, file: UploadFile) -> str:
        """
        Extracts the text layer of every page.

        Raises:
            PDFParsingError: If the PDF is invalid or has no text
        """
        try:
            with fitz.open(stream=file.content, filetype="pdf") as doc:
                pages = [page.get_text() for page in doc]
        except Exception as e:
            logger.error("pdf_open_failed", exc_info=True, file_name=file.file_name)
            raise PDFParsingError("El archivo PDF parece estar dañado o no es válido") from e

        text = "\n".join(pages).strip()
        if not text:
            raise PDFParsingError(
                "No se pudo extraer texto del PDF. El documento podría ser una imagen escaneada"
            )

        logger.info("pdf_text_extracted", file_name=file.file_name, pages=len(pages), chars=len(text))
        return text

    async def summarize(self, text: str) -> PolicyAnalysis:
        """
        Raises:
            DocumentUploadError: If the LLM call fails or returns an invalid analysis
        """
        prompts = PROMPTS["document_summarization"]
        messages = [
            SystemMessage(content=prompts["system_prompt"]),
            HumanMessage(
                content=prompts["prompt_template"].format(document_text=text[:MAX_DOCUMENT_CHARS])
            ),
        ]

        try:
            return await self.llm_service.generate_structured(messages, PolicyAnalysis)
        except LLMTimeoutError as e:
            raise DocumentUploadError(
                "El procesamiento tardó demasiado. Por favor, intenta con un archivo más pequeño"
            ) from e
        except LLMError as e:
            logger.error("policy_analysis_failed", error=str(e))
            raise DocumentUploadError("Error al procesar el documento") from e

    async def upload(self, file: UploadFile) -> dict[str, Any]:
        """
        Validate, extract, summarize and store one PDF.

        Args:
            file: Uploaded file

        Returns:
            {summary, fileName, fileSize, summaryId}

        Raises:
            DocumentUploadError: If any step fails (message is user-facing)
        """
        self.validate(file)
        text = await asyncio.to_thread(self.extract_text, file)
        analysis = await self.summarize(text)

        summary_id = None
        if self.summary_repository is not None:
            record = DocumentSummary(
                filename=file.file_name,
                insurance_type=analysis.insurance_type,
                insurer_name=analysis.insurer_name,
                coverage_summary=analysis.coverage_summary,
                exclusions=analysis.exclusions,
                deductibles=analysis.deductibles,
                validity_period=analysis.validity_period,
                raw_text=text,
                file_size=file.size,
            )
            try:
                stored = await asyncio.to_thread(
                    self.summary_repository.save_summary, record, self.user_id
                )
                summary_id = stored.id
            except DatabaseError as e:
                # The summary is still useful in the chat without a history entry.
                logger.warning("summary_not_stored", file_name=file.file_name, error=str(e))

        logger.info("document_summarized", file_name=file.file_name, insurance_type=analysis.insurance_type)
        return {
            "summary": analysis.summary,
            "fileName": file.file_name,
            "fileSize": file.size,
            "summaryId": summary_id,
        }
