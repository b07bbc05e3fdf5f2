"""
Postage batch arithmetic and presentation.

Bee reports raw batch fields (depth, bucket depth, utilization, TTL). This
module derives the figures callers care about: usage ratio, effective and
remaining capacity, and the depth/amount needed to buy or extend storage.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

CHUNK_SIZE = 4096
MIN_DEPTH = 17
BLOCK_TIME_SECONDS = 5

# Effective (usable) batch size in GB per depth, unencrypted, no redundancy.
EFFECTIVE_SIZE_BREAKPOINTS: List[Tuple[int, float]] = [
    (17, 0.00004089),
    (18, 0.00609),
    (19, 0.10249),
    (20, 0.62891),
    (21, 2.38),
    (22, 7.07),
    (23, 18.24),
    (24, 43.04),
    (25, 96.5),
    (26, 208.52),
    (27, 435.98),
    (28, 908.81),
    (29, 1870.0),
    (30, 3810.0),
    (31, 7730.0),
    (32, 15610.0),
    (33, 31430.0),
    (34, 63150.0),
]

DURATION_UNITS: Dict[str, float] = {
    "ms": 0.001,
    "milli": 0.001,
    "millis": 0.001,
    "millisecond": 0.001,
    "milliseconds": 0.001,
    "s": 1,
    "sec": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3_600,
    "hour": 3_600,
    "hours": 3_600,
    "d": 86_400,
    "day": 86_400,
    "days": 86_400,
    "w": 604_800,
    "week": 604_800,
    "weeks": 604_800,
    "month": 2_592_000,
    "months": 2_592_000,
    "y": 31_536_000,
    "year": 31_536_000,
    "years": 31_536_000,
}

_NUMBER_PREFIX = re.compile(r"^-?[0-9.]+")

_REPRESENT_UNITS: List[Tuple[str, int]] = [
    ("year", 31_536_000),
    ("week", 604_800),
    ("day", 86_400),
    ("hour", 3_600),
    ("minute", 60),
]

_SIZE_UNITS: List[Tuple[str, int]] = [
    ("TB", 1000**4),
    ("GB", 1000**3),
    ("MB", 1000**2),
    ("kB", 1000),
]


def parse_duration(value: str) -> float:
    """
    Parse a duration such as ``"1d"``, ``"2 weeks"`` or ``"1month"`` into seconds.

    Raises:
        ValueError: when the number or the unit cannot be parsed.
    """
    if not isinstance(value, str):
        raise ValueError("Duration must be a string")
    text = value.strip()
    match = _NUMBER_PREFIX.match(text)
    if match is None:
        raise ValueError(f"Duration has no number: {value!r}")
    try:
        number = float(match.group(0))
    except ValueError as exc:
        raise ValueError(f"Duration has no number: {value!r}") from exc
    unit = text[match.end():].strip().lower()
    multiplier = DURATION_UNITS.get(unit)
    if multiplier is None:
        raise ValueError(f"Unknown unit: {unit!r}")
    return number * multiplier


def megabytes_to_bytes(size_mb: float) -> int:
    return int(math.ceil(float(size_mb) * 1000 * 1000))


def theoretical_bytes(depth: int) -> int:
    return (2**depth) * CHUNK_SIZE


def effective_bytes(depth: int) -> int:
    if depth < MIN_DEPTH:
        return 0
    for breakpoint_depth, size_gb in EFFECTIVE_SIZE_BREAKPOINTS:
        if breakpoint_depth == depth:
            return int(math.ceil(size_gb * 1000**3))
    return int(math.ceil(theoretical_bytes(depth) * 0.9))


def depth_for_size(size_bytes: int) -> int:
    """Smallest depth whose effective capacity holds ``size_bytes``."""
    for depth, size_gb in EFFECTIVE_SIZE_BREAKPOINTS:
        if size_bytes <= size_gb * 1000**3:
            return depth
    return EFFECTIVE_SIZE_BREAKPOINTS[-1][0] + 1


def amount_for_duration(duration_seconds: float, price_per_block: int, block_time: int = BLOCK_TIME_SECONDS) -> int:
    """Per-chunk amount (PLUR) that keeps a batch alive for ``duration_seconds``."""
    blocks = math.ceil(duration_seconds / block_time)
    return blocks * int(price_per_block) + 1


def usage_ratio(utilization: int, depth: int, bucket_depth: int) -> float:
    capacity = 2 ** max(depth - bucket_depth, 0)
    if capacity <= 0:
        return 0.0
    return utilization / capacity


def format_size(size_bytes: int) -> str:
    for label, factor in _SIZE_UNITS:
        if size_bytes >= factor:
            return f"{size_bytes / factor:.2f} {label}"
    return f"{size_bytes} B"


def represent_duration(seconds: float) -> str:
    for label, factor in _REPRESENT_UNITS:
        if seconds >= factor:
            count = round(seconds / factor, 1)
            value = f"{count:g}"
            return f"{value} {label}" + ("" if count == 1 else "s")
    count = int(seconds)
    return f"{count} second" + ("" if count == 1 else "s")


def end_date_text(seconds: float, *, now: Optional[datetime] = None) -> str:
    start = now or datetime.now(timezone.utc)
    return (start + timedelta(seconds=seconds)).strftime("%a %b %d %Y")


def curate_batch(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a raw ``/stamps`` entry into the curated batch description."""
    depth = int(raw.get("depth") or 0)
    bucket_depth = int(raw.get("bucketDepth") or 0)
    utilization = int(raw.get("utilization") or 0)
    usage = usage_ratio(utilization, depth, bucket_depth)
    size = effective_bytes(depth)
    remaining = max(int(math.ceil(size * (1 - usage))), 0)
    return {
        "batchID": str(raw.get("batchID") or ""),
        "usable": bool(raw.get("usable")),
        "label": raw.get("label") or "",
        "depth": depth,
        "amount": str(raw.get("amount") or "0"),
        "bucketDepth": bucket_depth,
        "blockNumber": int(raw.get("blockNumber") or 0),
        "immutableFlag": bool(raw.get("immutableFlag")),
        "duration": {"seconds": int(raw.get("batchTTL") or 0)},
        "usage": usage,
        "usageText": f"{round(usage * 100)}%",
        "size": {"bytes": size},
        "remainingSize": {"bytes": remaining},
        "theoreticalSize": {"bytes": theoretical_bytes(depth)},
    }


def batch_summary(batch: Dict[str, Any], *, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Human readable view of a curated batch."""
    ttl_seconds = batch["duration"]["seconds"]
    return {
        "stampID": batch["batchID"],
        "usage": batch["usageText"],
        "capacity": (
            f"{format_size(batch['remainingSize']['bytes'])} remaining out of "
            f"{format_size(batch['size']['bytes'])}"
        ),
        "ttl": f"{represent_duration(ttl_seconds)} ({end_date_text(ttl_seconds, now=now)})",
        "immutable": batch["immutableFlag"],
    }
