"""Shared pagination query parameters."""

from typing import Annotated

from fastapi import Query

MAX_CURSOR_PARAM_LENGTH = 1024

# Upper bounds are clamped by the services, not rejected here.
LimitParam = Annotated[int | None, Query(ge=1)]
CursorParam = Annotated[str | None, Query(max_length=MAX_CURSOR_PARAM_LENGTH)]
