"""Disclosure Engine: ordered, flagged disclosure listings."""

from app.engines.disclosure.snapshot_builder import (
    build_disclosure,
    format_date,
    format_dated,
)

__all__ = [
    "build_disclosure",
    "format_date",
    "format_dated",
]
