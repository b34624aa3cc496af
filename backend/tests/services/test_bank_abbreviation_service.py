"""Tests for bank abbreviation lookup and generation."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.services.bank_abbreviation_service import (
    BANK_ABBREVIATIONS_TABLE,
    BankAbbreviationService,
)


def _completion(content: str | None) -> MagicMock:
    message = MagicMock(content=content)
    return MagicMock(choices=[MagicMock(message=message)])


def _db(stored: list[dict[str, Any]] | None = None) -> MagicMock:
    db = MagicMock()
    table = db.table.return_value
    table.select.return_value.eq.return_value.execute.return_value = MagicMock(data=stored or [])
    return db


def _openai(content: str | None = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion(content), side_effect=error
    )
    return client


@pytest.fixture(autouse=True)
def settings() -> Any:
    mock_settings = MagicMock()
    mock_settings.is_openai_configured = False
    mock_settings.openai_extraction_model = "gpt-4o-mini"
    with patch("app.services.bank_abbreviation_service.get_settings", return_value=mock_settings):
        yield mock_settings


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_blank_institution(self) -> None:
        db = _db()

        assert await BankAbbreviationService(db).get_or_create("   ") == "UNKNOWN"
        db.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_stored_abbreviation_wins(self) -> None:
        db = _db([{"abbreviation": "CBA"}])
        openai_client = _openai("XYZ")

        result = await BankAbbreviationService(db, openai_client).get_or_create(
            " Commonwealth Bank of Australia "
        )

        assert result == "CBA"
        db.table.return_value.select.return_value.eq.assert_called_once_with(
            "full_name", "Commonwealth Bank of Australia"
        )
        openai_client.chat.completions.create.assert_not_called()
        db.table.return_value.insert.assert_not_called()

    @pytest.mark.asyncio
    async def test_generated_abbreviation_is_stored(self) -> None:
        db = _db()

        result = await BankAbbreviationService(db, _openai(" anz \n")).get_or_create(
            "Australia and New Zealand Banking Group"
        )

        assert result == "ANZ"
        db.table.assert_called_with(BANK_ABBREVIATIONS_TABLE)
        db.table.return_value.insert.assert_called_once_with(
            {"full_name": "Australia and New Zealand Banking Group", "abbreviation": "ANZ"}
        )

    @pytest.mark.asyncio
    async def test_without_openai_falls_back_to_initials(self) -> None:
        result = await BankAbbreviationService(_db()).get_or_create("Bendigo and Adelaide Bank")

        assert result == "BAA"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "TOO LONG", "ABCDEFGHIJ", None])
    async def test_invalid_generation_falls_back(self, content: str | None) -> None:
        result = await BankAbbreviationService(_db(), _openai(content)).get_or_create(
            "Bendigo and Adelaide Bank"
        )

        assert result == "BAA"

    @pytest.mark.asyncio
    async def test_generation_error_falls_back(self) -> None:
        service = BankAbbreviationService(_db(), _openai(error=RuntimeError("quota")))

        assert await service.get_or_create("Bendigo and Adelaide Bank") == "BAA"

    @pytest.mark.asyncio
    async def test_concurrent_store_is_ignored(self) -> None:
        db = _db()
        db.table.return_value.insert.return_value.execute.side_effect = Exception(
            "duplicate key value violates unique constraint"
        )

        assert await BankAbbreviationService(db).get_or_create("Bendigo and Adelaide Bank") == "BAA"

    @pytest.mark.asyncio
    async def test_other_store_errors_propagate(self) -> None:
        db = _db()
        db.table.return_value.insert.return_value.execute.side_effect = RuntimeError("down")

        with pytest.raises(RuntimeError):
            await BankAbbreviationService(db).get_or_create("Bendigo and Adelaide Bank")

    @pytest.mark.asyncio
    async def test_without_database(self) -> None:
        assert await BankAbbreviationService(None).get_or_create("Bendigo and Adelaide Bank") == "BAA"
