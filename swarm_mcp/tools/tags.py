"""Upload progress tracking through Bee tags."""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

from swarm_mcp.bee_api import BeeApiError, NotFoundError, default_client
from swarm_mcp.errors import internal_error, invalid_params, missing_parameter
from swarm_mcp.tools.validators import parse_tag_id

logger = logging.getLogger(__name__)


async def query_upload_progress(
    tag_id: Optional[str] = None,
    *,
    client=default_client,
) -> Dict[str, Any]:
    """
    Report how much of a deferred upload has been processed.

    Processed chunks are the synced plus the seen ones, relative to the split
    count. A finished tag is deleted; failing to delete it is not an error.
    """
    if tag_id is None or tag_id == "":
        raise missing_parameter("tagId")

    uid = parse_tag_id(tag_id)
    if uid is None:
        raise invalid_params("Invalid tagId format. Expected a numeric string.")

    try:
        tag = await client.retrieve_tag(uid)
    except NotFoundError:
        raise invalid_params(f"Tag with ID {tag_id} does not exist or has been deleted")
    except BeeApiError as exc:
        raise internal_error(f"Failed to retrieve upload progress: {exc.message}")
    except Exception as exc:
        logger.exception("Unexpected error retrieving tag %s", uid)
        raise internal_error(f"Failed to retrieve upload progress: {exc}")

    processed = int(tag.get("synced") or 0) + int(tag.get("seen") or 0)
    total = int(tag.get("split") or 0)
    percentage = math.floor(processed / total * 100 + 0.5) if total > 0 else 0
    complete = percentage == 100

    if complete:
        try:
            await client.delete_tag(uid)
        except BeeApiError as exc:
            logger.warning("Could not delete finished tag %s", uid, extra={"error": str(exc)})

    return {
        "processedPercentage": percentage,
        "message": "Upload completed successfully." if complete else f"Upload progress: {percentage}% processed",
        "startedAt": tag.get("startedAt") or "",
        "tagAddress": tag.get("address") or "",
    }
