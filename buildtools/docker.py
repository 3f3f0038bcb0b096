"""Image tags, .dockerignore handling and Dockerfile stage discovery."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_INVALID_TAG_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")
_LEADING = re.compile(r"([.-]*)([a-zA-Z0-9.\-_]*)")
_STAGE = re.compile(r"FROM .* AS (.*)", re.IGNORECASE)
_MAX_TAG_LENGTH = 128
_DEFAULT_IGNORE = ("k8s",)


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def tag(registry: str, image: str, tag: str) -> str:
    """The full image reference, with the tag made valid for Docker."""
    slug = slugify_tag(tag)
    if slug != tag:
        logger.debug(
            "<yellow>Warning: tag was changed from '%s' to '%s' due to Dockers rules.</yellow>\n",
            tag,
            slug,
        )
    return f"{registry}/{image}:{slug}"


def slugify_tag(tag: str) -> str:
    """Drop invalid characters and leading dots or dashes, and cut to 128 characters."""
    cleaned = _INVALID_TAG_CHARS.sub("", tag)
    match = _LEADING.fullmatch(cleaned)
    result = match.group(2) if match else ""
    return result[:_MAX_TAG_LENGTH]


def parse_dockerignore(directory: str | os.PathLike[str], dockerfile: str) -> list[str]:
    """Patterns to leave out of the build context; the Dockerfile itself is never ignored."""
    result = list(_DEFAULT_IGNORE)
    path = Path(directory) / ".dockerignore"
    if not path.exists():
        return result
    content = path.read_text(encoding="utf-8")
    result.extend(line for line in _lines(content) if line and line != dockerfile)
    return result


def find_stages(content: str) -> list[str]:
    """Names of the named stages in a Dockerfile, in order."""
    stages = []
    for line in _lines(content):
        match = _STAGE.fullmatch(line)
        if match:
            stages.append(match.group(1))
    return stages