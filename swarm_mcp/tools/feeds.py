"""Feed tools: write the next update of a topic and read the latest one."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from swarm_mcp.bee_api import BeeApiError, NotFoundError, default_client
from swarm_mcp.bee_api.feeds import make_topic, normalize_owner, owner_address
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import internal_error, invalid_params, missing_parameter
from swarm_mcp.tools.common import resolve_upload_batch_id, upstream_error

logger = logging.getLogger(__name__)

FEED_KEY_MISSING_MESSAGE = "Feed private key not configured. Set BEE_FEED_PK environment variable."


def _feed_owner(config: SwarmConfig) -> str:
    if not config.feed_private_key:
        raise invalid_params(FEED_KEY_MISSING_MESSAGE)
    try:
        return owner_address(config.feed_private_key)
    except ValueError:
        raise internal_error("Invalid feed private key.")


async def update_feed(
    data: Optional[str] = None,
    memory_topic: Optional[str] = None,
    postage_batch_id: Optional[str] = None,
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Dict[str, Any]:
    """
    Publish ``data`` as the next update of the feed for ``memory_topic``.

    The topic is used verbatim when it is 64 hex characters (optionally
    ``0x``-prefixed); any other label is SHA-256 hashed into a topic.
    """
    if not data:
        raise missing_parameter("data")
    if not memory_topic:
        raise missing_parameter("memoryTopic")

    owner = _feed_owner(config)
    batch_id = await resolve_upload_batch_id(postage_batch_id, client=client, config=config)
    topic = make_topic(memory_topic)

    try:
        reference = await client.update_feed(
            batch_id, topic, config.feed_private_key, data.encode("utf-8")
        )
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to update feed.")
    except ValueError as exc:
        raise invalid_params(str(exc))
    except Exception:
        logger.exception("Unexpected error updating feed %s", topic)
        raise invalid_params("Unable to update feed.")

    return {
        "reference": reference,
        "topicString": memory_topic,
        "topic": topic,
        "feedUrl": f"{config.endpoint}/feeds/{owner}/{topic}",
        "message": "Data successfully uploaded to Swarm and linked to feed",
    }


async def read_feed(
    memory_topic: Optional[str] = None,
    owner: Optional[str] = None,
    *,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Dict[str, Any]:
    """Return the payload of the latest update of a feed as text."""
    if not memory_topic:
        raise missing_parameter("memoryTopic")

    if owner:
        try:
            feed_owner = normalize_owner(owner)
        except ValueError:
            raise invalid_params("Owner must be a valid Ethereum address")
    else:
        feed_owner = _feed_owner(config)

    topic = make_topic(memory_topic)
    logger.info("Reading feed", extra={"tool": "read_feed"})

    try:
        payload = await client.read_feed(feed_owner, topic)
    except NotFoundError:
        raise invalid_params(f"No updates found for feed topic {memory_topic}.")
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to read feed.")
    except Exception:
        logger.exception("Unexpected error reading feed %s", topic)
        raise internal_error("Unexpected error while reading feed.")

    return {"textData": payload.decode("utf-8", errors="replace")}
