"""
Thin HTTP client for the Bee node API.

Each method wraps one Bee endpoint (or a short sequence of them) and maps HTTP
failures to internal exceptions that the tool layer turns into MCP errors.
"""

from __future__ import annotations

import asyncio
import io
import logging
import mimetypes
import tarfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from swarm_mcp.bee_api import stamps
from swarm_mcp.bee_api.feeds import FeedWriter, make_topic, normalize_owner
from swarm_mcp.bee_api.manifest import ManifestNode, decode_node, load_recursively
from swarm_mcp.config import SwarmConfig, default_config

logger = logging.getLogger(__name__)

INDEX_DOCUMENT = "index.html"


class BeeApiError(Exception):
    """Base exception for Bee API errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[int] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class BadRequestError(BeeApiError):
    """Raised when the node rejects the request payload (HTTP 400)."""


class NotFoundError(BeeApiError):
    """Raised when the endpoint or resource does not exist (HTTP 404)."""


class UnauthorizedError(BeeApiError):
    """Raised when the node refuses access (HTTP 401/403)."""


class NodeUnreachableError(BeeApiError):
    """Raised when the node cannot be reached."""


def _upload_headers(
    batch_id: str,
    *,
    redundancy_level: Optional[int] = None,
    deferred: Optional[bool] = None,
    tag: Optional[int] = None,
    content_type: Optional[str] = None,
) -> Dict[str, str]:
    headers = {"swarm-postage-batch-id": batch_id}
    if redundancy_level:
        headers["swarm-redundancy-level"] = str(int(redundancy_level))
    if deferred is not None:
        headers["swarm-deferred-upload"] = "true" if deferred else "false"
    if tag is not None:
        headers["swarm-tag"] = str(tag)
    if content_type:
        headers["content-type"] = content_type
    return headers


def _build_tar(directory: Path) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for path in sorted(directory.rglob("*")):
            if path.is_file():
                archive.add(str(path), arcname=path.relative_to(directory).as_posix())
    return buffer.getvalue()


class BeeApiClient:
    """Async client for the Bee endpoints used by the MCP tools."""

    def __init__(
        self,
        config: SwarmConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.endpoint, timeout=self.config.timeout
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _map_error(self, status_code: int, message: Optional[str], code: Optional[int] = None) -> BeeApiError:
        text = message or "Bee API error."
        if status_code == 400:
            return BadRequestError(text, code=code, status_code=status_code)
        if status_code == 404:
            return NotFoundError(message or "Resource not found.", code=code, status_code=status_code)
        if status_code in {401, 403}:
            return UnauthorizedError(
                message or "Unauthorized.", code=code, status_code=status_code
            )
        return BeeApiError(text, code=code, status_code=status_code)

    def _process_response(self, response: httpx.Response, *, expect_json: bool) -> Any:
        if response.status_code >= 400:
            message: Optional[str] = None
            code: Optional[int] = None
            try:
                data = response.json()
            except ValueError:
                data = None
            if isinstance(data, dict):
                raw_message = data.get("message")
                if isinstance(raw_message, str):
                    message = raw_message
                raw_code = data.get("code")
                if isinstance(raw_code, int):
                    code = raw_code
            raise self._map_error(response.status_code, message, code)

        if not expect_json:
            return response.content

        try:
            return response.json()
        except ValueError as exc:
            raise BeeApiError(
                "Unexpected response from node.", status_code=response.status_code
            ) from exc

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, path, params=params, headers=headers, content=content)
        except httpx.RequestError as exc:
            logger.warning("Bee node unreachable for %s %s", method, path)
            raise NodeUnreachableError("Node unreachable") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None,
        expect_json: bool = True,
    ) -> Any:
        response = await self._send(method, path, params=params, headers=headers, content=content)
        return self._process_response(response, expect_json=expect_json)

    # Node

    async def get_node_info(self) -> Dict[str, Any]:
        """Retrieve node mode and feature flags. Gateways answer 404."""
        return await self._request("GET", "/node")

    async def get_chain_state(self) -> Dict[str, Any]:
        return await self._request("GET", "/chainstate")

    # Bytes and files

    async def upload_data(
        self,
        batch_id: str,
        data: bytes,
        *,
        redundancy_level: Optional[int] = None,
        deferred: Optional[bool] = None,
        tag: Optional[int] = None,
    ) -> str:
        """Upload raw bytes and return the Swarm reference."""
        headers = _upload_headers(
            batch_id,
            redundancy_level=redundancy_level,
            deferred=deferred,
            tag=tag,
            content_type="application/octet-stream",
        )
        payload = await self._request("POST", "/bytes", headers=headers, content=data)
        return str(payload["reference"])

    async def download_data(self, reference: str) -> bytes:
        return await self._request("GET", f"/bytes/{reference}", expect_json=False)

    async def upload_file(
        self,
        batch_id: str,
        data: bytes,
        name: Optional[str] = None,
        *,
        content_type: Optional[str] = None,
        redundancy_level: Optional[int] = None,
        deferred: Optional[bool] = None,
        tag: Optional[int] = None,
    ) -> str:
        """Upload a single file wrapped in a manifest and return its reference."""
        if content_type is None and name:
            content_type = mimetypes.guess_type(name)[0]
        headers = _upload_headers(
            batch_id,
            redundancy_level=redundancy_level,
            deferred=deferred,
            tag=tag,
            content_type=content_type or "application/octet-stream",
        )
        params = {"name": name} if name else None
        payload = await self._request("POST", "/bzz", params=params, headers=headers, content=data)
        return str(payload["reference"])

    async def upload_collection(
        self,
        batch_id: str,
        tar_data: bytes,
        *,
        index_document: Optional[str] = None,
        redundancy_level: Optional[int] = None,
        deferred: Optional[bool] = None,
        tag: Optional[int] = None,
    ) -> str:
        """Upload a tar archive as a collection manifest."""
        headers = _upload_headers(
            batch_id,
            redundancy_level=redundancy_level,
            deferred=deferred,
            tag=tag,
            content_type="application/x-tar",
        )
        headers["swarm-collection"] = "true"
        if index_document:
            headers["swarm-index-document"] = index_document
        payload = await self._request("POST", "/bzz", headers=headers, content=tar_data)
        return str(payload["reference"])

    async def upload_files_from_directory(
        self,
        batch_id: str,
        directory: str | Path,
        *,
        redundancy_level: Optional[int] = None,
        deferred: Optional[bool] = None,
        tag: Optional[int] = None,
    ) -> str:
        root = Path(directory)
        tar_data = await asyncio.to_thread(_build_tar, root)
        index_document = INDEX_DOCUMENT if (root / INDEX_DOCUMENT).is_file() else None
        return await self.upload_collection(
            batch_id,
            tar_data,
            index_document=index_document,
            redundancy_level=redundancy_level,
            deferred=deferred,
            tag=tag,
        )

    # Tags

    async def create_tag(self) -> Dict[str, Any]:
        return await self._request("POST", "/tags")

    async def retrieve_tag(self, uid: int) -> Dict[str, Any]:
        return await self._request("GET", f"/tags/{uid}")

    async def delete_tag(self, uid: int) -> None:
        await self._request("DELETE", f"/tags/{uid}", expect_json=False)

    # Postage batches

    async def get_postage_batches(self) -> List[Dict[str, Any]]:
        """List the node's postage batches, curated with derived usage and sizes."""
        payload = await self._request("GET", "/stamps")
        raw_batches = payload.get("stamps") if isinstance(payload, dict) else None
        return [stamps.curate_batch(batch) for batch in raw_batches or []]

    async def get_postage_batch(self, batch_id: str) -> Dict[str, Any]:
        payload = await self._request("GET", f"/stamps/{batch_id}")
        return stamps.curate_batch(payload)

    async def create_postage_batch(
        self, amount: int, depth: int, *, label: Optional[str] = None
    ) -> str:
        params = {"label": label} if label else None
        payload = await self._request("POST", f"/stamps/{amount}/{depth}", params=params)
        return str(payload["batchID"])

    async def top_up_batch(self, batch_id: str, amount: int) -> str:
        payload = await self._request("PATCH", f"/stamps/topup/{batch_id}/{amount}")
        return str(payload.get("batchID") or batch_id)

    async def dilute_batch(self, batch_id: str, depth: int) -> str:
        payload = await self._request("PATCH", f"/stamps/dilute/{batch_id}/{depth}")
        return str(payload.get("batchID") or batch_id)

    async def _current_price(self) -> int:
        chain_state = await self.get_chain_state()
        return int(chain_state.get("currentPrice") or 0)

    async def buy_storage(
        self, size_bytes: int, duration_seconds: float, *, label: Optional[str] = None
    ) -> str:
        """Buy a batch large enough for ``size_bytes`` that lives for ``duration_seconds``."""
        price = await self._current_price()
        amount = stamps.amount_for_duration(duration_seconds, price)
        depth = stamps.depth_for_size(size_bytes)
        return await self.create_postage_batch(amount, depth, label=label)

    async def extend_storage(self, batch_id: str, size_bytes: int, duration_seconds: float) -> str:
        """
        Grow a batch to hold ``size_bytes`` and live ``duration_seconds`` longer.

        Diluting halves the remaining TTL per added depth, so the top up also
        covers the multiplier before the dilution happens.
        """
        batch = await self.get_postage_batch(batch_id)
        price = await self._current_price()

        depth = stamps.depth_for_size(size_bytes)
        delta = depth - batch["depth"]
        multiplier = 2**delta if delta > 0 else 1

        additional = stamps.amount_for_duration(duration_seconds, price) if duration_seconds > 0 else 0
        current = stamps.amount_for_duration(batch["duration"]["seconds"], price)
        top_up = (current + additional) * multiplier - current

        if top_up > 0:
            await self.top_up_batch(batch_id, top_up)
        if delta > 0:
            await self.dilute_batch(batch_id, depth)
        return batch_id

    # Feeds

    async def fetch_feed_index(self, owner: str, topic: str) -> int:
        """Return the next free feed index (0 for a feed with no updates)."""
        response = await self._send(
            "GET",
            f"/feeds/{owner}/{topic}",
            headers={"swarm-only-root-chunk": "true"},
        )
        if response.status_code == 404:
            return 0
        self._process_response(response, expect_json=False)
        next_index = response.headers.get("swarm-feed-index-next")
        if not next_index:
            return 0
        return int(next_index, 16)

    async def upload_single_owner_chunk(
        self, batch_id: str, owner: str, identifier: str, signature: str, data: bytes
    ) -> str:
        headers = _upload_headers(batch_id, content_type="application/octet-stream")
        payload = await self._request(
            "POST",
            f"/soc/{owner}/{identifier}",
            params={"sig": signature},
            headers=headers,
            content=data,
        )
        return str(payload["reference"])

    async def update_feed(self, batch_id: str, topic: str, private_key: str, payload: bytes) -> str:
        """Sign ``payload`` as the next update of the feed and upload it."""
        writer = FeedWriter(topic, private_key)
        index = await self.fetch_feed_index(writer.owner, writer.topic.hex())
        chunk = writer.make_update(index, payload)
        return await self.upload_single_owner_chunk(
            batch_id,
            writer.owner,
            chunk.identifier.hex(),
            chunk.signature.hex(),
            chunk.data,
        )

    async def read_feed(self, owner: str, topic: str) -> bytes:
        """Download the payload of the latest feed update."""
        return await self._request(
            "GET",
            f"/feeds/{normalize_owner(owner)}/{make_topic(topic)}",
            expect_json=False,
        )

    # Manifests

    async def load_manifest(self, reference: str) -> ManifestNode:
        """
        Load a manifest and all of its forks.

        Raises:
            ManifestFormatError: if ``reference`` does not point at a manifest.
        """
        root = decode_node(await self.download_data(reference), bytes.fromhex(reference[-64:]))
        return await load_recursively(root, self.download_data)


default_client = BeeApiClient()
