"""Feed query engine: filter compilation, cursors and page execution.

``services.feed.executor`` is imported directly by callers; it depends on
``services.custom_feeds``, which itself imports the filter compiler from here.
"""

from .cursor import SortKey, decode_cursor, encode_cursor
from .filters import (
    MATCH_ALL,
    CompiledPredicate,
    FilterLimits,
    compile_filter,
    filter_fingerprint,
    predicate_to_document,
)

__all__ = [
    "MATCH_ALL",
    "CompiledPredicate",
    "FilterLimits",
    "SortKey",
    "compile_filter",
    "decode_cursor",
    "encode_cursor",
    "filter_fingerprint",
    "predicate_to_document",
]
