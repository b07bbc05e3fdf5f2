"""Postage stamp (batch) tools. None of these are available on gateways."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from swarm_mcp.bee_api import BeeApiError, default_client
from swarm_mcp.bee_api.stamps import batch_summary, megabytes_to_bytes, parse_duration
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import (
    GATEWAY_STAMP_ERROR_MESSAGE,
    invalid_params,
    missing_parameter,
)
from swarm_mcp.tools.common import run_with_timeout, upstream_error
from swarm_mcp.tools.validators import is_batch_id, is_positive_number

logger = logging.getLogger(__name__)

POSTAGE_CREATE_TIMEOUT_MESSAGE = (
    "Purchase of postage batch is in progress, it may take a few minutes. "
    "Please list you batches after a few minutes to find it."
)
POSTAGE_EXTEND_TIMEOUT_MESSAGE = (
    "Extension of postage batch is in progress, it may take a few minutes. "
    "Please check the batch after a few minutes to see the new size and duration."
)


def _parse_duration_seconds(duration: str) -> float:
    try:
        seconds = parse_duration(duration)
    except ValueError:
        raise invalid_params("Invalid parameter: duration")
    if seconds <= 0:
        raise invalid_params("Invalid parameter: duration")
    return seconds


async def list_postage_stamps(
    least_used: Optional[bool] = None,
    limit: Optional[int] = None,
    min_usage: Optional[float] = None,
    max_usage: Optional[float] = None,
    *,
    client=default_client,
) -> Dict[str, Any]:
    """
    List usable postage batches, optionally filtered by usage percentage.
    """
    try:
        batches = await client.get_postage_batches()
    except BeeApiError as exc:
        raise upstream_error(
            exc,
            "Retrieval of postage batches failed.",
            not_found_message=GATEWAY_STAMP_ERROR_MESSAGE,
        )
    except Exception:
        logger.exception("Unexpected error listing postage batches")
        raise invalid_params("Retrieval of postage batches failed.")

    selected: List[Dict[str, Any]] = []
    for batch in batches:
        if not batch.get("usable"):
            continue
        usage_percentage = batch["usage"] * 100
        if min_usage is not None and usage_percentage < min_usage:
            continue
        if max_usage is not None and usage_percentage > max_usage:
            continue
        selected.append(batch)

    if least_used:
        selected.sort(key=lambda batch: batch["usage"])

    if limit is not None and 0 <= limit < len(selected):
        selected = selected[:limit]

    return {
        "raw": selected,
        "summary": [batch_summary(batch) for batch in selected],
    }


async def get_postage_stamp(
    postage_batch_id: Optional[str] = None,
    *,
    client=default_client,
) -> Dict[str, Any]:
    if not postage_batch_id:
        raise missing_parameter("postageBatchId")
    if not is_batch_id(postage_batch_id):
        raise invalid_params("Invalid parameter: postageBatchId")

    try:
        batch = await client.get_postage_batch(postage_batch_id)
    except BeeApiError as exc:
        raise upstream_error(
            exc,
            "Retrieval of postage batch failed.",
            not_found_message=GATEWAY_STAMP_ERROR_MESSAGE,
        )
    except Exception:
        logger.exception("Unexpected error fetching postage batch %s", postage_batch_id)
        raise invalid_params("Retrieval of postage batch failed.")

    return {"raw": batch, "summary": batch_summary(batch)}


async def create_postage_stamp(
    size: Optional[float] = None,
    duration: Optional[str] = None,
    label: Optional[str] = None,
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> str:
    """
    Buy a postage batch for ``size`` megabytes kept alive for ``duration``.

    The purchase waits for on-chain confirmation; when that takes longer than
    the call timeout the caller is told to look for the batch later.
    """
    if not size:
        raise missing_parameter("size")
    if not duration:
        raise missing_parameter("duration")
    if not is_positive_number(size):
        raise invalid_params("Invalid parameter: size")

    seconds = _parse_duration_seconds(duration)

    try:
        batch_id, timed_out = await run_with_timeout(
            client.buy_storage(megabytes_to_bytes(size), seconds, label=label),
            config.call_timeout,
        )
    except BeeApiError as exc:
        raise upstream_error(
            exc,
            "Unable to buy storage.",
            not_found_message=GATEWAY_STAMP_ERROR_MESSAGE,
        )
    except Exception:
        logger.exception("Unexpected error buying storage")
        raise invalid_params("Unable to buy storage.")

    if timed_out:
        logger.info("Postage batch purchase still pending", extra={"tool": "create_postage_stamp"})
        return POSTAGE_CREATE_TIMEOUT_MESSAGE

    return f"Postage batch ID: {batch_id}"


async def extend_postage_stamp(
    postage_batch_id: Optional[str] = None,
    size: Optional[float] = None,
    duration: Optional[str] = None,
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Any:
    """
    Extend a batch's size (in megabytes) and/or its duration relative to now.
    """
    if not postage_batch_id:
        raise missing_parameter("postageBatchId")
    if not is_batch_id(postage_batch_id):
        raise invalid_params("Invalid parameter: postageBatchId")
    if not size and not duration:
        raise invalid_params("You need at least one parameter from duration and size.")

    if size:
        if not is_positive_number(size):
            raise invalid_params("Invalid parameter: size")
        size_bytes = megabytes_to_bytes(size)
    else:
        size_bytes = 1
    seconds = _parse_duration_seconds(duration) if duration else 0.0

    try:
        batch_id, timed_out = await run_with_timeout(
            client.extend_storage(postage_batch_id, size_bytes, seconds),
            config.call_timeout,
        )
    except BeeApiError as exc:
        raise upstream_error(
            exc,
            "Extend failed.",
            not_found_message=GATEWAY_STAMP_ERROR_MESSAGE,
        )
    except Exception:
        logger.exception("Unexpected error extending postage batch %s", postage_batch_id)
        raise invalid_params("Extend failed.")

    if timed_out:
        return POSTAGE_EXTEND_TIMEOUT_MESSAGE

    return {"postageBatchId": batch_id}
