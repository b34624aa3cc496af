"""Disclosure list PDF renderer.

Renders a DisclosureListing as the court-style "List of Disclosure
Documents": a landscape A4 table with NEW / Item / Description / Dated /
Date disclosed to OP columns, the category and account holder headers in
bold and the new-item marker beside documents added since the last report.

Writes the PDF structure directly with the standard Courier fonts, so
columns line up without font metrics.
"""

import re
import textwrap
from dataclasses import dataclass
from datetime import datetime

import structlog

from app.core.config import get_settings
from app.engines.disclosure import format_date
from app.models.disclosure import DisclosureListing, DisclosureRow, DisclosureRowKind

logger = structlog.get_logger(__name__)

# =============================================================================
# Layout
# =============================================================================

PAGE_WIDTH = 842  # A4 landscape, points
PAGE_HEIGHT = 595
MARGIN = 36
FONT_SIZE = 9
TITLE_FONT_SIZE = 12
LINE_HEIGHT = 11

# Column widths in characters
NEW_WIDTH = 5
ITEM_WIDTH = 10
DESCRIPTION_WIDTH = 70
DATED_WIDTH = 25
DISCLOSED_WIDTH = 20

COLUMN_HEADER = ("NEW", "Item", "Description", "Dated", "Date disclosed to OP")

BOLD_KINDS = {
    DisclosureRowKind.CATEGORY,
    DisclosureRowKind.ACCOUNT_HOLDER,
    DisclosureRowKind.INSTITUTION,
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def disclosure_filename(case_number: str, generated_at: datetime) -> str:
    """Report filename, e.g. ``disclosure-FC-123-2024-03-01-093000.pdf``."""
    safe_number = _UNSAFE_FILENAME_CHARS.sub("-", case_number).strip("-") or "case"
    return f"disclosure-{safe_number}-{generated_at.strftime('%Y-%m-%d-%H%M%S')}.pdf"


def _escape(text: str) -> str:
    # Courier only covers latin-1
    text = text.encode("latin-1", "replace").decode("latin-1")
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _columns(new: str, item: str, description: str, dated: str, disclosed: str) -> str:
    return (
        f"{new[:NEW_WIDTH - 1]:<{NEW_WIDTH}}"
        f"{item[:ITEM_WIDTH - 1]:<{ITEM_WIDTH}}"
        f"{description:<{DESCRIPTION_WIDTH}}"
        f"{dated[:DATED_WIDTH - 1]:<{DATED_WIDTH}}"
        f"{disclosed[:DISCLOSED_WIDTH]}"
    ).rstrip()


@dataclass(frozen=True)
class _Line:
    text: str
    bold: bool = False
    size: int = FONT_SIZE


class DisclosurePDFRenderer:
    """Renders disclosure listings to PDF bytes."""

    def __init__(
        self,
        new_marker: str | None = None,
        rule_reference: str | None = None,
    ) -> None:
        settings = get_settings()
        self.new_marker = new_marker if new_marker is not None else settings.disclosure_new_marker
        self.rule_reference = rule_reference or settings.disclosure_rule_reference
        self._lines_per_page = (PAGE_HEIGHT - 2 * MARGIN) // LINE_HEIGHT - 2

    def render(self, listing: DisclosureListing, party_name: str) -> bytes:
        """Render the listing.

        Args:
            listing: Rows in report order.
            party_name: Name shown in the title, usually the case title.

        Returns:
            PDF file bytes.
        """
        logger.info(
            "disclosure_pdf_render_started",
            case_id=listing.case_id,
            row_count=len(listing.rows),
        )

        preamble = [
            _Line(f"List of Disclosure Documents - {party_name}", bold=True, size=TITLE_FONT_SIZE),
            _Line(""),
            _Line(f"Documents disclosed pursuant to {self.rule_reference}."),
            _Line(
                f"Items marked {self.new_marker} have been added since the previous list"
                if listing.baseline_generated_at is not None
                else "This is the first list of documents disclosed in this matter."
            ),
            _Line(""),
        ]

        body: list[_Line] = []
        for row in listing.rows:
            body.extend(self._row_lines(row))
        if not body:
            body.append(_Line("No documents have been disclosed."))

        pages = self._paginate(preamble, body)
        pdf = self._build_pdf(pages, footer=f"As at {format_date(listing.as_of)}")

        logger.info(
            "disclosure_pdf_render_completed",
            case_id=listing.case_id,
            page_count=len(pages),
            size_bytes=len(pdf),
        )
        return pdf

    def _row_lines(self, row: DisclosureRow) -> list[_Line]:
        if row.kind in BOLD_KINDS:
            if row.kind is DisclosureRowKind.CATEGORY:
                body = [_Line("")]
            else:
                body = []
            wrapped = textwrap.wrap(row.description, DESCRIPTION_WIDTH - 1) or [""]
            body.append(_Line(_columns("", row.item, wrapped[0], "", ""), bold=True))
            body.extend(_Line(_columns("", "", extra, "", ""), bold=True) for extra in wrapped[1:])
            return body

        wrapped = textwrap.wrap(row.description, DESCRIPTION_WIDTH - 1) or [""]
        lines = [
            _Line(
                _columns(
                    self.new_marker if row.is_new else "",
                    row.item,
                    wrapped[0],
                    row.dated or "",
                    row.date_disclosed or "",
                )
            )
        ]
        lines.extend(_Line(_columns("", "", extra, "", "")) for extra in wrapped[1:])
        return lines

    def _paginate(self, preamble: list[_Line], body: list[_Line]) -> list[list[_Line]]:
        header = [
            _Line(_columns(*COLUMN_HEADER), bold=True),
            _Line("-" * (NEW_WIDTH + ITEM_WIDTH + DESCRIPTION_WIDTH + DATED_WIDTH + DISCLOSED_WIDTH)),
        ]

        pages: list[list[_Line]] = []
        current = preamble + header
        for line in body:
            if len(current) >= self._lines_per_page:
                pages.append(current)
                current = list(header)
            current.append(line)
        pages.append(current)
        return pages

    def _page_stream(self, lines: list[_Line], footer: str) -> str:
        ops: list[str] = []
        y = PAGE_HEIGHT - MARGIN
        for line in lines:
            y -= LINE_HEIGHT if line.size == FONT_SIZE else line.size + 4
            if not line.text:
                continue
            font = "/F2" if line.bold else "/F1"
            ops.append(f"BT {font} {line.size} Tf {MARGIN} {y} Td ({_escape(line.text)}) Tj ET")
        ops.append(f"BT /F1 8 Tf {MARGIN} {MARGIN - 12} Td ({_escape(footer)}) Tj ET")
        return "\n".join(ops)

    def _build_pdf(self, pages: list[list[_Line]], footer: str) -> bytes:
        """Assemble the PDF objects, xref table and trailer.

        Object layout: 1 catalog, 2 page tree, 3 Courier, 4 Courier-Bold,
        then a page object and its content stream per page.
        """
        page_count = len(pages)
        objects: list[bytes] = []

        def add_object(number: int, body: str) -> None:
            objects.append(f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1"))

        page_refs = " ".join(f"{5 + 2 * i} 0 R" for i in range(page_count))
        add_object(1, "<< /Type /Catalog /Pages 2 0 R >>")
        add_object(2, f"<< /Type /Pages /Kids [{page_refs}] /Count {page_count} >>")
        add_object(3, "<< /Type /Font /Subtype /Type1 /BaseFont /Courier >>")
        add_object(4, "<< /Type /Font /Subtype /Type1 /BaseFont /Courier-Bold >>")

        for index, lines in enumerate(pages):
            page_obj = 5 + 2 * index
            content_obj = page_obj + 1
            add_object(
                page_obj,
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
                f"/Contents {content_obj} 0 R "
                f"/Resources << /Font << /F1 3 0 R /F2 4 0 R >> >> >>",
            )
            stream = self._page_stream(
                lines, f"{footer}    Page {index + 1} of {page_count}"
            ).encode("latin-1")
            add_object(
                content_obj,
                f"<< /Length {len(stream)} >>\nstream\n{stream.decode('latin-1')}\nendstream",
            )

        header = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n"
        xref = [f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n"]
        offset = len(header)
        for obj in objects:
            xref.append(f"{offset:010d} 00000 n \n")
            offset += len(obj)

        trailer = (
            f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
            f"startxref\n{offset}\n%%EOF"
        )
        return header + b"".join(objects) + "".join(xref).encode("latin-1") + trailer.encode("latin-1")
