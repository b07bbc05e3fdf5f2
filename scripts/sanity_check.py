"""Minimal sanity checks for the Swarm MCP tools against a live Bee endpoint."""

from __future__ import annotations

import asyncio
import os
import sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from swarm_mcp.bee_api import default_client  # noqa: E402
from swarm_mcp.errors import McpError  # noqa: E402
from swarm_mcp.tools import download_data, list_postage_stamps, upload_data  # noqa: E402
from swarm_mcp.tools.common import determine_if_gateway  # noqa: E402

# Reference to download; override via env.
SAMPLE_REFERENCE = os.getenv("SWARM_SAMPLE_REFERENCE")
# Opt-in to an upload round trip (spends postage).
RUN_UPLOAD = os.getenv("RUN_UPLOAD_SANITY", "false").lower() in {"1", "true", "yes"}


async def main() -> None:
    is_gateway = await determine_if_gateway()
    print("Endpoint type:", "gateway" if is_gateway else "full node")

    if not is_gateway:
        try:
            print("Postage stamps (limit 3):", await list_postage_stamps(least_used=True, limit=3))
        except McpError as exc:
            print("Postage stamps failed:", exc.code, exc.message)

    reference = SAMPLE_REFERENCE
    if RUN_UPLOAD:
        uploaded = await upload_data("swarm mcp sanity check")
        print("Upload:", uploaded)
        reference = uploaded["reference"]

    if reference:
        print("Download:", await download_data(reference))

    await default_client.aclose()


if __name__ == "__main__":
    asyncio.run(main())
