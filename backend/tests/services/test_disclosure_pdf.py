"""Tests for the disclosure list PDF renderer."""

from datetime import UTC, datetime

import pytest

from app.models.disclosure import DisclosureListing, DisclosureRow, DisclosureRowKind
from app.services.export import DisclosurePDFRenderer, disclosure_filename
from app.services.extraction import extract_pdf_text

AS_OF = datetime(2024, 3, 15, 10, 30, tzinfo=UTC)


@pytest.fixture
def renderer() -> DisclosurePDFRenderer:
    return DisclosurePDFRenderer(new_marker="*", rule_reference="rule 216(2)(a)")


def _listing(rows: list[DisclosureRow], baseline: datetime | None = None) -> DisclosureListing:
    return DisclosureListing(
        case_id=10,
        as_of=AS_OF,
        baseline_generated_at=baseline,
        rows=rows,
        document_count=sum(1 for r in rows if r.kind is DisclosureRowKind.DOCUMENT),
    )


def _rows() -> list[DisclosureRow]:
    return [
        DisclosureRow(kind=DisclosureRowKind.CATEGORY, item="A", description="REAL PROPERTY"),
        DisclosureRow(
            kind=DisclosureRowKind.DOCUMENT,
            item="A1",
            description="Title deed for 12 Example Street",
            dated="01.02.2024",
            date_disclosed="01.03.2024",
            is_new=True,
        ),
    ]


class TestDisclosurePDFRenderer:
    def test_is_a_pdf(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing(_rows()), "Doe & Doe")

        assert pdf.startswith(b"%PDF-1.4")
        assert pdf.rstrip().endswith(b"%%EOF")

    def test_title_and_rows(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing(_rows(), baseline=AS_OF), "Doe & Doe")

        assert b"List of Disclosure Documents - Doe & Doe" in pdf
        assert b"REAL PROPERTY" in pdf
        assert b"Title deed for 12 Example Street" in pdf
        assert b"Items marked * have been added since the previous list" in pdf

    def test_parentheses_are_escaped(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing([]), "Doe (Wife)")

        assert b"Doe \\(Wife\\)" in pdf
        assert b"rule 216\\(2\\)\\(a\\)" in pdf

    def test_empty_listing(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing([]), "Doe & Doe")

        assert b"No documents have been disclosed." in pdf
        assert b"This is the first list of documents disclosed in this matter." in pdf

    def test_footer_has_date_and_page_numbers(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing(_rows()), "Doe & Doe")

        assert b"As at 15.03.2024    Page 1 of 1" in pdf

    def test_long_listing_paginates(self, renderer: DisclosurePDFRenderer) -> None:
        rows = [
            DisclosureRow(kind=DisclosureRowKind.DOCUMENT, item=f"A{i}", description=f"Doc {i}")
            for i in range(1, 121)
        ]

        pdf = renderer.render(_listing(rows), "Doe & Doe")

        assert b"Page 1 of 3" in pdf
        assert b"Page 3 of 3" in pdf

    def test_text_is_extractable(self, renderer: DisclosurePDFRenderer) -> None:
        pdf = renderer.render(_listing(_rows()), "Doe & Doe")

        text = extract_pdf_text(pdf, max_pages=1, max_chars=10_000)

        assert "Disclosure" in text


class TestDisclosureFilename:
    def test_format(self) -> None:
        assert (
            disclosure_filename("FC 1", datetime(2024, 3, 1, 9, 30, 5))
            == "disclosure-FC-1-2024-03-01-093005.pdf"
        )

    def test_unsafe_characters(self) -> None:
        assert disclosure_filename("FC/2024#7", AS_OF).startswith("disclosure-FC-2024-7-")

    def test_blank_case_number(self) -> None:
        assert disclosure_filename("///", AS_OF).startswith("disclosure-case-")
