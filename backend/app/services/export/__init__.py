"""Export services package.

- DisclosurePDFRenderer: disclosure list PDF
"""

from app.services.export.disclosure_pdf import DisclosurePDFRenderer, disclosure_filename

__all__ = [
    "DisclosurePDFRenderer",
    "disclosure_filename",
]
