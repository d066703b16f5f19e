"""Translate compiled feed predicates into SQLAlchemy clauses over ``posts``."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import and_, exists, or_, select, true
from sqlalchemy.sql import ColumnElement

from models import Post, PostTag

from .cursor import SortKey
from .filters import (
    BooleanGroup,
    Combinator,
    Comparison,
    CompiledPredicate,
    FilterField,
    FilterOperator,
    MatchAll,
)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _tag_exists(tags: tuple[str, ...]) -> ColumnElement[bool]:
    return exists(
        select(1).where(
            _eq(PostTag.post_id, Post.id),
            cast(Any, PostTag.tag).in_(tags),
        )
    )


def _set_clause(column: Any, operator: FilterOperator, value: Any) -> ColumnElement[bool]:
    if operator is FilterOperator.EQUALS:
        return _eq(column, value)
    if operator is FilterOperator.IN:
        return cast(ColumnElement[bool], column.in_(value))
    return cast(ColumnElement[bool], column.not_in(value))


def _comparison_clause(comparison: Comparison) -> ColumnElement[bool]:
    field = comparison.field
    operator = comparison.operator
    value = comparison.value

    if field is FilterField.AUTHOR:
        return _set_clause(cast(Any, Post.author_id), operator, value)
    if field is FilterField.POST_TYPE:
        return _set_clause(cast(Any, Post.post_type), operator, value)
    if field is FilterField.TAG:
        tags = cast(tuple[str, ...], value)
        if operator is FilterOperator.IN:
            return _tag_exists(tags)
        return ~_tag_exists(tags)

    created_at = cast(Any, Post.created_at)
    if operator is FilterOperator.BEFORE:
        return cast(ColumnElement[bool], created_at < value)
    return cast(ColumnElement[bool], created_at > value)


def build_filter_clause(predicate: CompiledPredicate) -> ColumnElement[bool]:
    """Return a boolean clause equivalent to ``predicate`` for rows of ``posts``."""
    if isinstance(predicate, MatchAll):
        return true()
    if isinstance(predicate, BooleanGroup):
        clauses = [build_filter_clause(child) for child in predicate.children]
        if predicate.op is Combinator.AND:
            return and_(*clauses)
        return or_(*clauses)
    return _comparison_clause(predicate)


def build_keyset_clause(
    created_at_column: Any,
    id_column: Any,
    key: SortKey,
) -> ColumnElement[bool]:
    """Rows strictly after ``key`` in (created_at DESC, id DESC) order."""
    return or_(
        created_at_column < key.created_at,
        and_(_eq(created_at_column, key.created_at), id_column < key.id),
    )


__all__ = ["build_filter_clause", "build_keyset_clause"]
