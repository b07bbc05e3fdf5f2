"""Shared validation helpers for Swarm MCP tools."""

from __future__ import annotations

import re
from typing import Any, Optional

# Swarm references are 32-byte hashes, hex encoded, optionally 0x-prefixed.
REFERENCE_REGEX = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
BATCH_ID_REGEX = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
TAG_ID_REGEX = re.compile(r"^\s*[+-]?\d+")


def is_swarm_reference(reference: Optional[str]) -> bool:
    """Basic format validation for content addresses."""
    if not reference or not isinstance(reference, str):
        return False
    return bool(REFERENCE_REGEX.fullmatch(reference.strip()))


def normalize_reference(reference: str) -> str:
    value = reference.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return value.lower()


def is_batch_id(batch_id: Optional[str]) -> bool:
    if not batch_id or not isinstance(batch_id, str):
        return False
    return bool(BATCH_ID_REGEX.fullmatch(batch_id.strip()))


def parse_tag_id(value: Any) -> Optional[int]:
    """Parse a tag uid from its leading decimal digits, as upload responses print it."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    match = TAG_ID_REGEX.match(value)
    if match is None:
        return None
    return int(match.group(0))


def is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > 0
