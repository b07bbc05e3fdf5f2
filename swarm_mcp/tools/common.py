"""Helpers shared by several tools: batch selection, timeouts, upstream errors."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, Set, Tuple

from swarm_mcp.bee_api import BadRequestError, BeeApiError, NotFoundError, default_client
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import ErrorCode, McpError, invalid_params, invalid_request
from swarm_mcp.tools.validators import is_batch_id

logger = logging.getLogger(__name__)

STDIO_TRANSPORT = "stdio"

# Operations that lost the race keep running; hold a reference until they finish.
_PENDING: Set["asyncio.Future[Any]"] = set()


async def run_with_timeout(operation: Awaitable[Any], timeout: float) -> Tuple[Any, bool]:
    """
    Race ``operation`` against ``timeout`` seconds.

    Returns ``(result, timed_out)``. On timeout the operation is not cancelled;
    it keeps running in the background and its outcome is only logged.
    """
    future = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({future}, timeout=timeout)
    if future in done:
        return future.result(), False

    _PENDING.add(future)
    future.add_done_callback(_finish_pending)
    return None, True


def _finish_pending(future: "asyncio.Future[Any]") -> None:
    _PENDING.discard(future)
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Background operation failed after timeout", extra={"error": str(exc)})


def upstream_error(
    exc: BeeApiError,
    fallback_message: str,
    *,
    not_found_message: Optional[str] = None,
) -> McpError:
    """Translate a Bee failure into the caller-facing error category."""
    if isinstance(exc, BadRequestError):
        return invalid_request(exc.message)
    if not_found_message is not None and isinstance(exc, NotFoundError):
        return McpError(ErrorCode.METHOD_NOT_FOUND, not_found_message)
    return invalid_params(fallback_message)


async def resolve_upload_batch_id(
    postage_batch_id: Optional[str],
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> str:
    """
    Pick the postage batch used for an upload.

    An explicit id wins. Otherwise, when auto assignment is enabled, the usable
    batch with the most remaining capacity is chosen; gateways, which expose no
    batch listing, get the all-zero batch id.
    """
    if postage_batch_id:
        if not is_batch_id(postage_batch_id):
            raise invalid_params("Invalid parameter: postageBatchId")
        return postage_batch_id

    if not config.auto_assign_stamp:
        raise invalid_request(
            "No postageBatchId was provided. Please repeat the prompt and also specify the usable postage batch id."
        )

    try:
        batches = await client.get_postage_batches()
    except NotFoundError:
        return config.gateway_batch_id
    except BeeApiError:
        raise invalid_params("Retrieval of postage batches failed.")
    except Exception:
        logger.exception("Unexpected error listing postage batches")
        raise invalid_params("Retrieval of postage batches failed.")

    selected: Optional[str] = None
    max_remaining = 0
    for batch in batches:
        if not batch.get("usable"):
            continue
        remaining = batch["remainingSize"]["bytes"]
        if remaining > max_remaining:
            max_remaining = remaining
            selected = batch["batchID"]

    if not selected:
        raise invalid_request("There is no usable postage batch with capacity.")
    return selected


async def determine_if_gateway(client=default_client, config: SwarmConfig = default_config) -> bool:
    """A node that times out or answers 404 on ``/node`` is treated as a gateway."""
    try:
        _, timed_out = await run_with_timeout(client.get_node_info(), config.node_check_timeout)
    except NotFoundError:
        return True
    except BeeApiError as exc:
        logger.warning("Node info check failed", extra={"error": str(exc)})
        return False
    return timed_out
