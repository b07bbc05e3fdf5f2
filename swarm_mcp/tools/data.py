"""Raw data tools: upload text as bytes and download it back."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from swarm_mcp.bee_api import BeeApiError, NotFoundError, default_client
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import internal_error, invalid_params, missing_parameter
from swarm_mcp.tools.common import resolve_upload_batch_id, upstream_error
from swarm_mcp.tools.validators import is_swarm_reference, normalize_reference

logger = logging.getLogger(__name__)


async def upload_data(
    data: Optional[str] = None,
    redundancy_level: Optional[int] = None,
    postage_batch_id: Optional[str] = None,
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Dict[str, Any]:
    """
    Upload a text payload to Swarm as raw bytes.
    """
    if not data:
        raise missing_parameter("data")

    batch_id = await resolve_upload_batch_id(postage_batch_id, client=client, config=config)

    try:
        reference = await client.upload_data(
            batch_id, data.encode("utf-8"), redundancy_level=redundancy_level or None
        )
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to upload data.")
    except Exception:
        logger.exception("Unexpected error uploading data")
        raise invalid_params("Unable to upload data.")

    return {
        "reference": reference,
        "url": f"{config.endpoint}/bytes/{reference}",
        "message": "Data successfully uploaded to Swarm",
    }


async def download_data(
    reference: Optional[str] = None,
    *,
    client=default_client,
) -> Dict[str, Any]:
    """Download immutable data by content address and decode it as UTF-8 text."""
    if not reference:
        raise missing_parameter("reference")
    if not is_swarm_reference(reference):
        raise invalid_params("Invalid Swarm content address hash value for reference.")

    try:
        data = await client.download_data(normalize_reference(reference))
    except NotFoundError:
        raise invalid_params(f"No data found for reference {reference}.")
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to download data.")
    except Exception:
        logger.exception("Unexpected error downloading %s", reference)
        raise internal_error("Unexpected error while downloading data.")

    return {"textData": data.decode("utf-8", errors="replace")}
