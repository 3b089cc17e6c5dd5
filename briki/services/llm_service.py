"""
Chat model access for the assistant.
Two calls are needed: free text for the reply prose and a validated
pydantic analysis for uploaded policies. Both share one retry, timeout and
concurrency policy.
"""

import time
import asyncio
from typing import Any, Callable, Type, TypeVar
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI
from langchain_google_genai import ChatGoogleGenerativeAI

from briki.utils.logger import get_logger

logger = get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class LLMTimeoutError(Exception):
    """Raised when LLM call exceeds timeout threshold."""


class LLMError(Exception):
    """Base exception for LLM-related errors."""


def create_llm(model_name: str, api_key: str, temperature: float = 0) -> BaseChatModel:
    """
    Build the chat model for a model name ("gpt-*" or "gemini-*").

    Raises:
        ValueError: If model provider is not supported
    """
    if "gemini" in model_name:
        return ChatGoogleGenerativeAI(google_api_key=api_key, model=model_name, temperature=temperature)
    if "gpt" in model_name:
        return ChatOpenAI(api_key=api_key, model=model_name, temperature=temperature)
    raise ValueError(f"Unsupported model: {model_name}. Model name must contain 'gpt' or 'gemini'")


def message_text(response: BaseMessage) -> str:
    """
    Plain text of a model response.
    Gemini may answer with a list of content parts instead of a string.
    """
    content = response.content
    if isinstance(content, list):
        content = "".join(
            part if isinstance(part, str) else str(part.get("text", ""))
            for part in content
            if isinstance(part, (str, dict))
        )
    return str(content or "").strip()


class LLMService:
    """
    Rate-limited, retried access to one chat model.
    Share one instance per model so the semaphore bounds all its callers.
    """

    def __init__(
        self,
        model: BaseChatModel,
        max_retries: int = 3,
        timeout: int = 30,
        rate_limit: int = 3,
    ):
        self.model = model
        self.max_retries = max_retries
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(rate_limit)

    @property
    def model_name(self) -> str:
        return getattr(self.model, "model_name", None) or getattr(self.model, "model", "unknown")

    async def generate_reply_text(
        self, messages: list[BaseMessage], timeout: int | None = None
    ) -> str:
        """
        Assistant prose for a chat prompt.

        Raises:
            LLMTimeoutError: If the last attempt timed out
            LLMError: If every attempt failed or came back empty
        """
        def parse(response: BaseMessage) -> str:
            text = message_text(response)
            if not text:
                raise LLMError("Model returned an empty reply")
            return text

        return await self._call(messages, "reply_text", parse, timeout)

    async def generate_structured(
        self,
        messages: list[BaseMessage],
        schema: Type[SchemaT],
        timeout: int | None = None,
    ) -> SchemaT:
        """
        Ask for output shaped like `schema` (bound as a tool) and validate it.

        A missing tool call or arguments that fail validation count as a
        failed attempt and are retried.

        Args:
            messages: Prompt messages
            schema: Pydantic model the answer must satisfy
            timeout: Override default timeout (seconds)

        Returns:
            Validated `schema` instance

        Raises:
            LLMTimeoutError: If the last attempt timed out
            LLMError: If no valid structured answer came back
        """
        def parse(response: BaseMessage) -> SchemaT:
            tool_calls = getattr(response, "tool_calls", None)
            if not tool_calls:
                raise LLMError(f"Model did not return structured output for {schema.__name__}")
            try:
                return schema.model_validate(tool_calls[0]["args"])
            except ValidationError as e:
                raise LLMError(f"Invalid {schema.__name__} output: {e}") from e

        return await self._call(messages, schema.__name__, parse, timeout, tools=[schema])

    async def _call(
        self,
        messages: list[BaseMessage],
        operation: str,
        parse: Callable[[BaseMessage], Any],
        timeout: int | None,
        **invoke_kwargs: Any,
    ) -> Any:
        timeout = timeout or self.timeout
        start_time = time.time()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((LLMError, LLMTimeoutError)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                logger.info(
                    "llm_call_started",
                    operation=operation,
                    attempt=attempt_number,
                    model=self.model_name,
                )
                try:
                    async with self.semaphore:
                        response = await asyncio.wait_for(
                            self.model.ainvoke(messages, **invoke_kwargs), timeout=timeout
                        )
                except asyncio.TimeoutError as e:
                    logger.error("llm_call_timeout", operation=operation, timeout=timeout, attempt=attempt_number)
                    raise LLMTimeoutError(f"{operation} call exceeded timeout of {timeout}s") from e
                except Exception as e:
                    logger.error(
                        "llm_call_failed", exc_info=True, operation=operation, attempt=attempt_number, error=str(e)
                    )
                    raise LLMError(f"{operation} call failed: {e}") from e

                try:
                    result = parse(response)
                except LLMError as e:
                    logger.warning("llm_output_rejected", operation=operation, attempt=attempt_number, error=str(e))
                    raise

                usage = getattr(response, "usage_metadata", None) or {}
                logger.info(
                    "llm_call_completed",
                    operation=operation,
                    elapsed=time.time() - start_time,
                    input_tokens=usage.get("input_tokens", 0),
                    output_tokens=usage.get("output_tokens", 0),
                )
                return result
