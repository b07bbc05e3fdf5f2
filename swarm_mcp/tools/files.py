"""File and folder tools backed by Swarm manifests."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional

from swarm_mcp.bee_api import BeeApiError, NotFoundError, default_client
from swarm_mcp.bee_api.manifest import ManifestEntry, collect_entries
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import (
    GATEWAY_TAG_ERROR_MESSAGE,
    internal_error,
    invalid_params,
    invalid_request,
    missing_parameter,
)
from swarm_mcp.tools.common import STDIO_TRANSPORT, resolve_upload_batch_id, upstream_error
from swarm_mcp.tools.validators import normalize_reference

logger = logging.getLogger(__name__)

DEFERRED_MESSAGE = "{kind} upload started in deferred mode. Use query_upload_progress to track progress."
NOT_A_MANIFEST_MESSAGE = "try download_data tool instead since the given reference is not a manifest"


def _threshold_bytes(config: SwarmConfig) -> int:
    return int(config.deferred_upload_size_threshold_mb * 1024 * 1024)


async def _create_tag(client) -> Optional[int]:
    """Create an upload tag; ``None`` when the node has no tag support."""
    try:
        tag = await client.create_tag()
    except NotFoundError:
        logger.info(GATEWAY_TAG_ERROR_MESSAGE)
        return None
    except BeeApiError as exc:
        logger.warning("Tag creation failed", extra={"error": str(exc)})
        return None
    return int(tag["uid"])


def _upload_result(reference: str, message: str, tag_id: Optional[int], config: SwarmConfig) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "reference": reference,
        "url": f"{config.endpoint}/bzz/{reference}",
        "message": message,
    }
    if tag_id is not None:
        result["tagId"] = str(tag_id)
    return result


async def upload_file(
    data: Optional[str] = None,
    is_path: Optional[bool] = None,
    redundancy_level: Optional[int] = None,
    postage_batch_id: Optional[str] = None,
    *,
    transport: str = STDIO_TRANSPORT,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Dict[str, Any]:
    """
    Upload one file from base64 content or, over stdio, from a local path.

    Files above the deferred threshold are uploaded in deferred mode with a new
    tag so callers can follow progress with ``query_upload_progress``.
    """
    if not data:
        raise missing_parameter("data")
    if is_path and transport != STDIO_TRANSPORT:
        raise invalid_params("File path uploads are only supported in stdio mode")

    batch_id = await resolve_upload_batch_id(postage_batch_id, client=client, config=config)

    name: Optional[str] = None
    if is_path:
        try:
            content = await asyncio.to_thread(Path(data).read_bytes)
        except OSError:
            raise invalid_params(f"Unable to read file at path: {data}")
        name = Path(data).name
    else:
        try:
            content = base64.b64decode(data)
        except (binascii.Error, ValueError):
            raise invalid_params("Invalid base64 file content.")

    deferred = len(content) > _threshold_bytes(config)
    message = "File successfully uploaded to Swarm"
    tag_id: Optional[int] = None
    if deferred:
        tag_id = await _create_tag(client)
        if tag_id is not None:
            message = DEFERRED_MESSAGE.format(kind="File")

    try:
        reference = await client.upload_file(
            batch_id,
            content,
            name,
            redundancy_level=redundancy_level or None,
            deferred=deferred,
            tag=tag_id,
        )
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to upload file.")
    except Exception:
        logger.exception("Unexpected error uploading file")
        raise invalid_params("Unable to upload file.")

    return _upload_result(reference, message, tag_id, config)


async def upload_folder(
    folder_path: Optional[str] = None,
    redundancy_level: Optional[int] = None,
    postage_batch_id: Optional[str] = None,
    *,
    transport: str = STDIO_TRANSPORT,
    client=default_client,
    config: SwarmConfig = default_config,
) -> Dict[str, Any]:
    """
    Upload a local folder as a collection (stdio only).

    Folder uploads are always attempted in deferred mode; without tag support
    the upload falls back to a direct one.
    """
    if not folder_path:
        raise missing_parameter("folderPath")
    if transport != STDIO_TRANSPORT:
        raise invalid_params("Folder path uploads are only supported in stdio mode")

    folder = Path(folder_path)
    if not await asyncio.to_thread(folder.is_dir):
        raise invalid_params(f"Path is not a directory: {folder_path}")

    batch_id = await resolve_upload_batch_id(postage_batch_id, client=client, config=config)

    message = "Folder successfully uploaded to Swarm"
    tag_id = await _create_tag(client)
    deferred = tag_id is not None
    if deferred:
        message = DEFERRED_MESSAGE.format(kind="Folder")

    try:
        reference = await client.upload_files_from_directory(
            batch_id,
            folder,
            redundancy_level=redundancy_level or None,
            deferred=deferred,
            tag=tag_id,
        )
    except BeeApiError as exc:
        raise upstream_error(exc, "Unable to upload folder.")
    except Exception:
        logger.exception("Unexpected error uploading folder %s", folder_path)
        raise invalid_params("Unable to upload folder.")

    return _upload_result(reference, message, tag_id, config)


def _destination_for(root: Path, entry: ManifestEntry, single: bool) -> Path:
    relative = PurePosixPath(entry.path)
    if single:
        return root / relative.name
    target = (root / Path(*relative.parts)).resolve()
    if root.resolve() not in target.parents:
        raise invalid_request(f"Manifest entry escapes the destination folder: {entry.path}")
    return target


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


async def download_files(
    reference: Optional[str] = None,
    file_path: Optional[str] = None,
    *,
    transport: str = STDIO_TRANSPORT,
    client=default_client,
) -> Dict[str, Any]:
    """
    List the files of a manifest, or save them below ``file_path`` (stdio only).
    """
    if not reference:
        raise missing_parameter("reference")
    if file_path and transport != STDIO_TRANSPORT:
        raise invalid_params("Saving to file path is only supported in stdio mode")

    logger.info("Downloading manifest %s", reference, extra={"tool": "download_files"})

    try:
        node = await client.load_manifest(normalize_reference(reference))
    except (BeeApiError, ValueError):
        raise invalid_request(NOT_A_MANIFEST_MESSAGE)

    entries = collect_entries(node)

    if not file_path:
        return {
            "reference": reference,
            "type": "manifest",
            "files": [entry.to_dict() for entry in entries],
            "message": (
                "This is a manifest with multiple files. Provide a filePath to download all files "
                "or download individual files using their specific references."
            ),
        }

    destination = Path(file_path)
    single = len(entries) == 1
    for entry in entries:
        target = _destination_for(destination, entry, single)
        try:
            data = await client.download_data(entry.target_address)
        except BeeApiError as exc:
            raise upstream_error(exc, f"Unable to download {entry.path}.")
        try:
            await asyncio.to_thread(_write_file, target, data)
        except OSError:
            logger.exception("Failed to write %s", target)
            raise internal_error(f"Unable to write file: {target}")

    if not entries:
        await asyncio.to_thread(destination.mkdir, parents=True, exist_ok=True)

    return {
        "reference": reference,
        "manifestNodeCount": len(entries),
        "savedTo": str(destination),
        "message": f"Manifest content ({len(entries)} files) successfully downloaded to {destination}",
    }
