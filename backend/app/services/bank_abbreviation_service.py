"""Bank abbreviations for banking document display names.

Abbreviations are looked up in ``bank_abbreviations`` so every document
from one institution carries the same short code. Unknown institutions get
an abbreviation from the model, or initials when the model is unavailable,
and the result is stored for next time.

Called before the case lock is taken: the abbreviation only depends on the
institution name, never on numbering state.
"""

import asyncio

import structlog
from openai import AsyncOpenAI
from supabase import Client

from app.core.config import get_settings
from app.engines.numbering.display_names import UNKNOWN_BANK, fallback_bank_abbreviation
from app.services.document_service import is_unique_violation
from app.services.extraction.prompts import (
    BANK_ABBREVIATION_SYSTEM_PROMPT,
    BANK_ABBREVIATION_USER_PROMPT,
)

logger = structlog.get_logger(__name__)

BANK_ABBREVIATIONS_TABLE = "bank_abbreviations"
MAX_ABBREVIATION_LENGTH = 6
GENERATION_TIMEOUT = 10.0


class BankAbbreviationService:
    """Get or create the abbreviation for a financial institution."""

    def __init__(self, db: Client | None, openai_client: AsyncOpenAI | None = None):
        self.db = db
        self._openai_client = openai_client

    @property
    def openai_client(self) -> AsyncOpenAI | None:
        if self._openai_client is None:
            settings = get_settings()
            if settings.is_openai_configured:
                self._openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        return self._openai_client

    async def get_or_create(self, institution: str | None) -> str:
        if not institution or not institution.strip():
            return UNKNOWN_BANK

        name = institution.strip()
        stored = self._lookup(name)
        if stored:
            return stored

        abbreviation = await self._generate(name) or fallback_bank_abbreviation(name)
        self._store(name, abbreviation)
        return abbreviation

    def _lookup(self, name: str) -> str | None:
        if self.db is None:
            return None
        result = (
            self.db.table(BANK_ABBREVIATIONS_TABLE)
            .select("abbreviation")
            .eq("full_name", name)
            .execute()
        )
        return result.data[0]["abbreviation"] if result.data else None

    def _store(self, name: str, abbreviation: str) -> None:
        if self.db is None:
            return
        try:
            self.db.table(BANK_ABBREVIATIONS_TABLE).insert(
                {"full_name": name, "abbreviation": abbreviation}
            ).execute()
        except Exception as e:
            # Another request stored it first
            if not is_unique_violation(e):
                raise
            logger.debug("bank_abbreviation_already_stored", institution=name)
        else:
            logger.info("bank_abbreviation_stored", institution=name, abbreviation=abbreviation)

    async def _generate(self, name: str) -> str | None:
        client = self.openai_client
        if client is None:
            return None
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=get_settings().openai_extraction_model,
                    messages=[
                        {"role": "system", "content": BANK_ABBREVIATION_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": BANK_ABBREVIATION_USER_PROMPT.format(institution=name),
                        },
                    ],
                    max_tokens=10,
                    temperature=0.1,
                ),
                timeout=GENERATION_TIMEOUT,
            )
        except Exception as e:
            logger.warning("bank_abbreviation_generation_failed", institution=name, error=str(e))
            return None

        abbreviation = (response.choices[0].message.content or "").strip().upper()
        if not abbreviation or len(abbreviation) > MAX_ABBREVIATION_LENGTH or " " in abbreviation:
            logger.warning(
                "bank_abbreviation_invalid",
                institution=name,
                abbreviation=abbreviation[:20],
            )
            return None
        return abbreviation
