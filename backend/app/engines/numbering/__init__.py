"""Numbering Engine: account groups and hierarchical document numbers."""

from app.engines.numbering.account_groups import (
    GROUP_PREFIX,
    KnownGroup,
    find_group,
    next_group_number,
    normalize_holder_name,
    parse_group_number,
    resolve_group,
)
from app.engines.numbering.display_names import (
    display_name_for,
    fallback_bank_abbreviation,
    last_four,
)
from app.engines.numbering.document_numbers import (
    CATEGORY_PREFIXES,
    category_order,
    category_prefix,
    document_number_sort_key,
    next_document_number,
    next_standard_number,
    parse_sequence,
)

__all__ = [
    "CATEGORY_PREFIXES",
    "GROUP_PREFIX",
    "KnownGroup",
    "category_order",
    "category_prefix",
    "display_name_for",
    "document_number_sort_key",
    "fallback_bank_abbreviation",
    "find_group",
    "last_four",
    "next_document_number",
    "next_group_number",
    "next_standard_number",
    "normalize_holder_name",
    "parse_group_number",
    "parse_sequence",
    "resolve_group",
]
