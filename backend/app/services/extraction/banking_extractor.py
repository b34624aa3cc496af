"""Banking metadata extraction from uploaded statements.

The extractor is an oracle: its output is only a proposal that the
uploader confirms or corrects before the document is numbered. Numbering
needs nothing from it except a non-blank account holder name, and it is
always called before any case lock is taken.

pypdf pulls the text of the first pages, then an OpenAI chat completion in
JSON mode turns it into a BankingExtraction.
"""

import asyncio
import io
import json
from functools import lru_cache

import structlog
from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import ValidationError as PydanticValidationError
from pypdf import PdfReader
from pypdf.errors import PdfReadError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import get_settings
from app.models.document import BankingExtraction
from app.services.exceptions import ExternalServiceError
from app.services.extraction.prompts import (
    BANKING_EXTRACTION_SYSTEM_PROMPT,
    BANKING_EXTRACTION_USER_PROMPT,
)

logger = structlog.get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

SERVICE_NAME = "Banking extraction"
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 8.0

_TRANSIENT_ERRORS = (
    APIConnectionError,
    APITimeoutError,
    InternalServerError,
    RateLimitError,
    TimeoutError,
)


def extract_pdf_text(content: bytes, max_pages: int, max_chars: int) -> str:
    """Text of the first ``max_pages`` pages, capped at ``max_chars``.

    Raises:
        ExternalServiceError: If the PDF cannot be parsed.
    """
    try:
        reader = PdfReader(io.BytesIO(content))
        pages = reader.pages[:max_pages]
        text = "\n".join(page.extract_text() or "" for page in pages)
    except PdfReadError as e:
        raise ExternalServiceError(
            SERVICE_NAME, f"unreadable PDF: {e}", is_retryable=False
        ) from e
    return text.strip()[:max_chars]


class BankingExtractor:
    """Proposes banking metadata for a statement PDF."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model_name = model or settings.openai_extraction_model
        self.timeout = timeout or settings.extraction_timeout
        self.max_pages = settings.extraction_max_pages
        self.max_chars = settings.extraction_max_chars
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazily created OpenAI client.

        Raises:
            ExternalServiceError: If the API key is not configured.
        """
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceError(
                    SERVICE_NAME, "OpenAI API key not configured", is_retryable=False
                )
            self._client = AsyncOpenAI(api_key=self.api_key)
            logger.info("banking_extractor_client_initialized", model=self.model_name)
        return self._client

    async def extract(self, content: bytes) -> BankingExtraction:
        """Extract a banking metadata proposal from statement bytes.

        Raises:
            ExternalServiceError: On unreadable PDFs, missing configuration,
                model failures or unparseable model output.
        """
        text = extract_pdf_text(content, self.max_pages, self.max_chars)
        if not text:
            raise ExternalServiceError(
                SERVICE_NAME, "no text layer found in PDF", is_retryable=False
            )

        try:
            raw = await self._complete(text)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("banking_extraction_failed_after_retries", error=str(cause))
            raise ExternalServiceError(SERVICE_NAME, str(cause)) from cause

        extraction = self._parse(raw)
        logger.info(
            "banking_extraction_complete",
            has_holder=bool(extraction.account_holder_name),
            has_institution=bool(extraction.financial_institution),
            confidence=extraction.confidence,
        )
        return extraction

    async def _complete(self, text: str) -> str:
        client = self.client
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(MAX_RETRIES),
            wait=wait_exponential(multiplier=INITIAL_RETRY_DELAY, max=MAX_RETRY_DELAY),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        ):
            with attempt:
                response = await asyncio.wait_for(
                    client.chat.completions.create(
                        model=self.model_name,
                        messages=[
                            {"role": "system", "content": BANKING_EXTRACTION_SYSTEM_PROMPT},
                            {
                                "role": "user",
                                "content": BANKING_EXTRACTION_USER_PROMPT.format(text=text),
                            },
                        ],
                        response_format={"type": "json_object"},
                        temperature=0.0,
                    ),
                    timeout=self.timeout,
                )
        return response.choices[0].message.content or ""

    @staticmethod
    def _parse(raw: str) -> BankingExtraction:
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("expected a JSON object")
            return BankingExtraction.model_validate(data)
        except (ValueError, PydanticValidationError) as e:
            logger.warning("banking_extraction_parse_failed", error=str(e), response_length=len(raw))
            raise ExternalServiceError(
                SERVICE_NAME, "model returned an unparseable response", is_retryable=False
            ) from e


@lru_cache(maxsize=1)
def get_banking_extractor() -> BankingExtractor:
    """Get singleton banking extractor instance."""
    return BankingExtractor()
