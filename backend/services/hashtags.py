"""Hashtag parsing shared by post creation and tag filters."""

from __future__ import annotations

import re

MAX_TAG_LENGTH = 64
MAX_TAGS_PER_POST = 30
_HASHTAG_PATTERN = re.compile(rf"#(\w{{1,{MAX_TAG_LENGTH}}})")
_TAG_PATTERN = re.compile(rf"^\w{{1,{MAX_TAG_LENGTH}}}$")


def normalize_tag(raw_tag: str) -> str | None:
    """Return the canonical lower-case tag, or None when the value is not a tag."""
    candidate = raw_tag.strip().removeprefix("#").lower()
    if not _TAG_PATTERN.fullmatch(candidate):
        return None
    return candidate


def extract_hashtags(content: str | None) -> list[str]:
    if not content:
        return []
    tags = {match.lower() for match in _HASHTAG_PATTERN.findall(content)}
    return sorted(tags)[:MAX_TAGS_PER_POST]
