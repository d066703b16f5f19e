"""Feed filter compiler.

A feed filter is persisted and transported as a small JSON document::

    {"type": "predicate", "field": "tag", "operator": "in", "value": ["jazz"]}
    {"type": "combinator", "op": "AND", "children": [<filter>, ...]}

``compile_filter`` validates a document once and turns it into an immutable
predicate tree of backend-agnostic comparisons. The tree has the same shape as
the input; only leaves are normalized (sets sorted and de-duplicated,
timestamps converted to UTC). Compilation is pure: the same document and
limits always produce an equal tree, and nothing is returned unless the whole
document is valid.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from core.errors import FilterCompileError
from models import PostType
from models.common import ensure_utc
from services.hashtags import normalize_tag

MAX_AUTHOR_ID_LENGTH = 36
_DATETIME_ADAPTER = TypeAdapter(datetime)


class FilterField(str, Enum):
    AUTHOR = "author"
    POST_TYPE = "postType"
    TAG = "tag"
    DATE_RANGE = "dateRange"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    IN = "in"
    EXCLUDES = "excludes"
    BEFORE = "before"
    AFTER = "after"


class Combinator(str, Enum):
    AND = "AND"
    OR = "OR"


ALLOWED_OPERATORS: dict[FilterField, frozenset[FilterOperator]] = {
    FilterField.AUTHOR: frozenset(
        {FilterOperator.EQUALS, FilterOperator.IN, FilterOperator.EXCLUDES}
    ),
    FilterField.POST_TYPE: frozenset(
        {FilterOperator.EQUALS, FilterOperator.IN, FilterOperator.EXCLUDES}
    ),
    FilterField.TAG: frozenset({FilterOperator.IN, FilterOperator.EXCLUDES}),
    FilterField.DATE_RANGE: frozenset({FilterOperator.BEFORE, FilterOperator.AFTER}),
}

_PREDICATE_KEYS = frozenset({"type", "field", "operator", "value"})
_COMBINATOR_KEYS = frozenset({"type", "op", "children"})


@dataclass(frozen=True, slots=True)
class FilterLimits:
    max_depth: int
    max_nodes: int
    max_set_values: int

    @classmethod
    def from_settings(cls) -> "FilterLimits":
        return cls(
            max_depth=settings.filter_max_depth,
            max_nodes=settings.filter_max_nodes,
            max_set_values=settings.filter_max_set_values,
        )


@dataclass(frozen=True, slots=True)
class Comparison:
    field: FilterField
    operator: FilterOperator
    value: str | tuple[str, ...] | datetime


@dataclass(frozen=True, slots=True)
class BooleanGroup:
    op: Combinator
    children: tuple["CompiledPredicate", ...]


@dataclass(frozen=True, slots=True)
class MatchAll:
    """Identity filter used by the default timeline."""


CompiledPredicate = Union[Comparison, BooleanGroup, MatchAll]
MATCH_ALL = MatchAll()


class _Compiler:
    def __init__(self, limits: FilterLimits) -> None:
        self.limits = limits
        self.node_count = 0

    def compile_node(self, node: Any, *, depth: int, path: str) -> CompiledPredicate:
        if depth > self.limits.max_depth:
            raise FilterCompileError(
                f"Filter is nested deeper than {self.limits.max_depth} levels",
                path=path,
            )
        self.node_count += 1
        if self.node_count > self.limits.max_nodes:
            raise FilterCompileError(
                f"Filter has more than {self.limits.max_nodes} nodes",
                path=path,
            )
        if not isinstance(node, Mapping):
            raise FilterCompileError("Filter node must be an object", path=path)

        node_type = node.get("type")
        if node_type == "predicate":
            return self._compile_predicate(node, path=path)
        if node_type == "combinator":
            return self._compile_combinator(node, depth=depth, path=path)
        raise FilterCompileError(
            "Filter node type must be 'predicate' or 'combinator'",
            path=f"{path}.type",
        )

    def _compile_combinator(
        self,
        node: Mapping[str, Any],
        *,
        depth: int,
        path: str,
    ) -> BooleanGroup:
        _reject_unknown_keys(node, _COMBINATOR_KEYS, path=path)
        try:
            op = Combinator(node.get("op"))
        except ValueError:
            raise FilterCompileError(
                "Combinator op must be 'AND' or 'OR'", path=f"{path}.op"
            ) from None

        children = node.get("children")
        if not isinstance(children, list) or not children:
            raise FilterCompileError(
                "Combinator children must be a non-empty list",
                path=f"{path}.children",
            )
        if len(children) > self.limits.max_nodes:
            raise FilterCompileError(
                f"Filter has more than {self.limits.max_nodes} nodes",
                path=f"{path}.children",
            )
        compiled_children = tuple(
            self.compile_node(child, depth=depth + 1, path=f"{path}.children[{index}]")
            for index, child in enumerate(children)
        )
        return BooleanGroup(op=op, children=compiled_children)

    def _compile_predicate(self, node: Mapping[str, Any], *, path: str) -> Comparison:
        _reject_unknown_keys(node, _PREDICATE_KEYS, path=path)
        try:
            field = FilterField(node.get("field"))
        except ValueError:
            raise FilterCompileError(
                f"Unknown filter field {node.get('field')!r}", path=f"{path}.field"
            ) from None
        try:
            operator = FilterOperator(node.get("operator"))
        except ValueError:
            raise FilterCompileError(
                f"Unknown filter operator {node.get('operator')!r}",
                path=f"{path}.operator",
            ) from None
        if operator not in ALLOWED_OPERATORS[field]:
            raise FilterCompileError(
                f"Operator '{operator.value}' is not supported for field '{field.value}'",
                path=f"{path}.operator",
            )

        if "value" not in node:
            raise FilterCompileError("Predicate value is required", path=f"{path}.value")
        value_path = f"{path}.value"
        raw_value = node["value"]

        if field is FilterField.DATE_RANGE:
            return Comparison(field, operator, _parse_timestamp(raw_value, path=value_path))

        if operator is FilterOperator.EQUALS:
            return Comparison(
                field, operator, self._normalize_scalar(field, raw_value, path=value_path)
            )

        if not isinstance(raw_value, list) or not raw_value:
            raise FilterCompileError(
                f"Operator '{operator.value}' expects a non-empty list", path=value_path
            )
        if len(raw_value) > self.limits.max_set_values:
            raise FilterCompileError(
                f"Value list exceeds {self.limits.max_set_values} entries",
                path=value_path,
            )
        normalized = {
            self._normalize_scalar(field, item, path=f"{value_path}[{index}]")
            for index, item in enumerate(raw_value)
        }
        return Comparison(field, operator, tuple(sorted(normalized)))

    def _normalize_scalar(self, field: FilterField, value: Any, *, path: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise FilterCompileError("Expected a non-empty string", path=path)

        if field is FilterField.AUTHOR:
            author_id = value.strip()
            if len(author_id) > MAX_AUTHOR_ID_LENGTH:
                raise FilterCompileError("Author id is too long", path=path)
            return author_id
        if field is FilterField.POST_TYPE:
            try:
                return PostType(value.strip().lower()).value
            except ValueError:
                raise FilterCompileError(f"Unknown post type {value!r}", path=path) from None
        tag = normalize_tag(value)
        if tag is None:
            raise FilterCompileError(f"Invalid tag {value!r}", path=path)
        return tag


def _reject_unknown_keys(node: Mapping[str, Any], allowed: frozenset[str], *, path: str) -> None:
    unknown = sorted(str(key) for key in node.keys() if key not in allowed)
    if unknown:
        raise FilterCompileError(
            f"Unexpected filter keys: {', '.join(unknown)}", path=path
        )


def _parse_timestamp(value: Any, *, path: str) -> datetime:
    if not isinstance(value, str):
        raise FilterCompileError("Expected an ISO-8601 timestamp string", path=path)
    try:
        parsed = _DATETIME_ADAPTER.validate_python(value)
    except PydanticValidationError:
        raise FilterCompileError(f"Invalid timestamp {value!r}", path=path) from None
    try:
        return ensure_utc(parsed)
    except OverflowError:
        raise FilterCompileError(f"Timestamp out of range {value!r}", path=path) from None


def compile_filter(
    document: Mapping[str, Any] | None,
    *,
    limits: FilterLimits | None = None,
) -> CompiledPredicate:
    """Validate a filter document and compile it into a predicate tree.

    ``None`` compiles to the identity filter. Raises ``FilterCompileError`` on
    any structural, semantic or size violation.
    """
    if document is None:
        return MATCH_ALL
    compiler = _Compiler(limits or FilterLimits.from_settings())
    return compiler.compile_node(document, depth=1, path="$")


def predicate_to_document(predicate: CompiledPredicate) -> dict[str, Any] | None:
    """Render a compiled predicate back to its normalized JSON document."""
    if isinstance(predicate, MatchAll):
        return None
    if isinstance(predicate, BooleanGroup):
        return {
            "type": "combinator",
            "op": predicate.op.value,
            "children": [predicate_to_document(child) for child in predicate.children],
        }
    value: Any = predicate.value
    if isinstance(value, datetime):
        value = value.isoformat()
    elif isinstance(value, tuple):
        value = list(value)
    return {
        "type": "predicate",
        "field": predicate.field.value,
        "operator": predicate.operator.value,
        "value": value,
    }


def filter_fingerprint(predicate: CompiledPredicate) -> str:
    """Stable short hash of a compiled predicate, usable as a cache or cursor key."""
    document = predicate_to_document(predicate)
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]


__all__ = [
    "ALLOWED_OPERATORS",
    "BooleanGroup",
    "Combinator",
    "Comparison",
    "CompiledPredicate",
    "FilterField",
    "FilterLimits",
    "FilterOperator",
    "MATCH_ALL",
    "MatchAll",
    "compile_filter",
    "filter_fingerprint",
    "predicate_to_document",
]
