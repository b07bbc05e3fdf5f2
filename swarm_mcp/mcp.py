"""
JSON-RPC surface for MCP tooling.

This maps tool names to their implementations together with the input and
output schemas advertised to clients, and dispatches JSON-RPC messages for all
transports (HTTP, SSE and stdio).
"""

from __future__ import annotations

import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from swarm_mcp import __version__
from swarm_mcp.bee_api import default_client
from swarm_mcp.config import SwarmConfig, default_config
from swarm_mcp.errors import ErrorCode, McpError, internal_error
from swarm_mcp.metrics import default_metrics
from swarm_mcp.tools import (
    create_postage_stamp,
    download_data,
    download_files,
    extend_postage_stamp,
    get_postage_stamp,
    list_postage_stamps,
    query_upload_progress,
    read_feed,
    update_feed,
    upload_data,
    upload_file,
    upload_folder,
)
from swarm_mcp.tools.common import determine_if_gateway

logger = logging.getLogger(__name__)

MCP_SERVER_NAME = "swarm-mcp-server"
MCP_SERVER_VERSION = __version__

REDUNDANCY_LEVEL_SCHEMA = {
    "type": "number",
    "description": (
        "redundancy level for fault tolerance "
        "(higher values provide better fault tolerance but increase storage overhead) "
        "0 - none, 1 - medium, 2 - strong, 3 - insane, 4 - paranoid"
    ),
    "default": 0,
}
UPLOAD_BATCH_ID_SCHEMA = {
    "type": "string",
    "description": "The id of the batch which will be used to perform the upload.",
}
SIZE_MB_SCHEMA = {
    "type": "number",
    "description": (
        "The storage size in MB (Megabytes). "
        "These other size units convert like this to MB: 1 byte = 0.000001 MB, 1  KB = 0.001 MB, 1GB= 1000MB"
    ),
}
DURATION_SCHEMA = {
    "type": "string",
    "description": (
        "Duration for which the data should be stored. "
        "Time to live of the postage stamp, e.g. 1d - 1 day, 1w - 1 week, 1month - 1 month "
    ),
}
UPLOAD_OPTIONS_HINT = (
    "redundancyLevel: redundancy level for fault tolerance. Optional, value is 0 if not requested. "
    "postageBatchId: The postage stamp batch ID which will be used to perform the upload, if it is provided."
)


def _bytes_schema(description: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "description": description,
        "properties": {"bytes": {"type": "number", "description": f"{description} in bytes."}},
    }


POSTAGE_BATCH_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "batchID": {"type": "string", "description": "The ID of the batch."},
        "usable": {"type": "boolean", "description": "Tells if the batch is usable."},
        "label": {"type": "string", "description": "The label of the batch."},
        "depth": {
            "type": "number",
            "description": "The depth of the batch, depth determines how much data can be stored by a batch.",
        },
        "amount": {
            "type": "string",
            "description": "The quantity of xBZZ in PLUR that is assigned per chunk in the batch.",
        },
        "bucketDepth": {"type": "number", "description": "How the address space is partitioned into buckets."},
        "blockNumber": {"type": "number", "description": "The block number."},
        "immutableFlag": {"type": "boolean", "description": "Flag telling if the batch is immutable."},
        "duration": {
            "type": "object",
            "description": "Estimated time until the batch expires.",
            "properties": {"seconds": {"type": "number"}},
        },
        "usage": {"type": "number", "description": "Usage from 0 (unused) to 1 (full)."},
        "usageText": {"type": "string", "description": "Human readable usage, like 50%."},
        "size": _bytes_schema("Effective size"),
        "remainingSize": _bytes_schema("Estimated remaining size"),
        "theoreticalSize": _bytes_schema("Theoretical size"),
    },
}
POSTAGE_BATCH_SUMMARY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "stampID": {"type": "string", "description": "The ID of the stamp."},
        "usage": {"type": "string", "description": "The percentage of storage used."},
        "capacity": {"type": "string", "description": "The storage remaining from the total."},
        "ttl": {"type": "string", "description": "Time remaining until stamp batch expires."},
        "immutable": {"type": "boolean", "description": "Flag telling if the batch is immutable."},
    },
}


def _upload_output_schema(kind: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "reference": {"type": "string", "description": f"Swarm reference hash for uploaded {kind}."},
            "url": {"type": "string", "description": f"The URL to access the uploaded {kind}."},
            "message": {"type": "string", "description": f"Upload {kind} response message."},
            "tagId": {"type": "string", "description": "The tag ID for deferred uploads."},
        },
        "required": ["reference", "url"],
    }


ToolCallable = Callable[..., Awaitable[Any]]


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]
    callable: ToolCallable
    output_schema: Optional[Dict[str, Any]] = None
    node_only: bool = False

    def describe(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }
        if self.output_schema is not None:
            entry["outputSchema"] = self.output_schema
        return entry


TOOL_REGISTRY: Dict[str, ToolDefinition] = {
    "upload_data": ToolDefinition(
        name="upload_data",
        description="Upload text data to Swarm. Optional options (ignore if they are not requested): "
        + UPLOAD_OPTIONS_HINT,
        input_schema={
            "type": "object",
            "properties": {
                "data": {"type": "string", "description": "arbitrary string to upload"},
                "redundancyLevel": REDUNDANCY_LEVEL_SCHEMA,
                "postageBatchId": UPLOAD_BATCH_ID_SCHEMA,
            },
            "required": ["data"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "reference": {"type": "string", "description": "Swarm reference hash for uploaded data."},
                "url": {"type": "string", "description": "URL to access uploaded data."},
                "message": {"type": "string", "description": "Upload response message."},
            },
            "required": ["reference", "url"],
        },
        callable=upload_data,
    ),
    "update_feed": ToolDefinition(
        name="update_feed",
        description="Update the feed of a given topic with new data. Optional options (ignore if they are not "
        "requested): postageBatchId: The postage stamp batch ID which will be used to perform the upload, "
        "if it is provided.",
        input_schema={
            "type": "object",
            "properties": {
                "data": {"type": "string", "description": "arbitrary string to upload"},
                "memoryTopic": {
                    "type": "string",
                    "description": (
                        "If provided, uploads the data to a feed with this topic. "
                        "It is the label of the memory that can be used later to retrieve the data instead of "
                        "its content hash. If not a hex string, it will be hashed to create a feed topic"
                    ),
                },
                "postageBatchId": UPLOAD_BATCH_ID_SCHEMA,
            },
            "required": ["data", "memoryTopic"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "reference": {"type": "string", "description": "Swarm reference hash for feed update."},
                "topicString": {"type": "string", "description": "The topic string."},
                "topic": {"type": "string", "description": "The topic."},
                "feedUrl": {"type": "string", "description": "The feed URL."},
                "message": {"type": "string", "description": "Update feed response message."},
            },
            "required": ["reference", "topic", "feedUrl"],
        },
        callable=update_feed,
    ),
    "download_data": ToolDefinition(
        name="download_data",
        description="Downloads immutable data from a Swarm content address hash.",
        input_schema={
            "type": "object",
            "properties": {"reference": {"type": "string", "description": "Swarm reference hash."}},
            "required": ["reference"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "textData": {"type": "string", "description": "The downloaded data for the given reference."}
            },
            "required": ["textData"],
        },
        callable=download_data,
    ),
    "read_feed": ToolDefinition(
        name="read_feed",
        description="Retrieve the latest data from the feed of a given topic.",
        input_schema={
            "type": "object",
            "properties": {
                "memoryTopic": {"type": "string", "description": "Feed topic."},
                "owner": {
                    "type": "string",
                    "description": "when accessing external memory or feed, ethereum address of the owner must be set",
                },
            },
            "required": ["memoryTopic"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "textData": {"type": "string", "description": "The downloaded data for the given topic."}
            },
            "required": ["textData"],
        },
        callable=read_feed,
    ),
    "upload_file": ToolDefinition(
        name="upload_file",
        description="Upload a file to Swarm. Optional options (ignore if they are not requested): "
        "isPath: whether the data parameter is a path. " + UPLOAD_OPTIONS_HINT,
        input_schema={
            "type": "object",
            "properties": {
                "data": {"type": "string", "description": "base64 encoded file content or file path"},
                "isPath": {
                    "type": "boolean",
                    "description": "whether the data parameter is a file path",
                    "default": False,
                },
                "redundancyLevel": REDUNDANCY_LEVEL_SCHEMA,
                "postageBatchId": UPLOAD_BATCH_ID_SCHEMA,
            },
            "required": ["data"],
        },
        output_schema=_upload_output_schema("file"),
        callable=upload_file,
    ),
    "upload_folder": ToolDefinition(
        name="upload_folder",
        description="Upload a folder to Swarm. Optional options (ignore if they are not requested): "
        "folderPath: path to the folder to upload. " + UPLOAD_OPTIONS_HINT,
        input_schema={
            "type": "object",
            "properties": {
                "folderPath": {"type": "string", "description": "path to the folder to upload"},
                "redundancyLevel": REDUNDANCY_LEVEL_SCHEMA,
                "postageBatchId": UPLOAD_BATCH_ID_SCHEMA,
            },
            "required": ["folderPath"],
        },
        output_schema=_upload_output_schema("folder"),
        callable=upload_folder,
    ),
    "download_files": ToolDefinition(
        name="download_files",
        description="Download folder, files from a Swarm reference and save to file path or return file list "
        "of the reference prioritizes this tool over download_data if there is no assumption about the data type",
        input_schema={
            "type": "object",
            "properties": {
                "reference": {"type": "string", "description": "Swarm reference hash"},
                "filePath": {
                    "type": "string",
                    "description": (
                        "Optional file path to save the downloaded content (only available in stdio mode). "
                        "if not provided list of files in the manifest will be returned"
                    ),
                },
            },
            "required": ["reference"],
        },
        callable=download_files,
    ),
    "list_postage_stamps": ToolDefinition(
        name="list_postage_stamps",
        description="List the available postage stamps. Optional options (ignore if they are not requested): "
        "leastUsed, limit, minUsage(%), maxUsage(%).",
        input_schema={
            "type": "object",
            "properties": {
                "leastUsed": {
                    "type": "boolean",
                    "description": (
                        "A boolean value that tells if stamps are sorted so least used comes first. "
                        "true - means that stamps should be sorted "
                        "false - means that stamps should not be sorted"
                    ),
                    "default": False,
                },
                "limit": {"type": "number", "description": "Limit is the maximum number of returned stamps."},
                "minUsage": {
                    "type": "number",
                    "description": "Only list stamps with at least this usage percentage",
                },
                "maxUsage": {
                    "type": "number",
                    "description": "Only list stamps with at most this usage percentage.",
                },
            },
        },
        output_schema={
            "type": "object",
            "properties": {
                "raw": {"type": "array", "items": POSTAGE_BATCH_SCHEMA},
                "summary": {"type": "array", "items": POSTAGE_BATCH_SUMMARY_SCHEMA},
            },
            "required": ["summary"],
        },
        callable=list_postage_stamps,
        node_only=True,
    ),
    "get_postage_stamp": ToolDefinition(
        name="get_postage_stamp",
        description="Get a specific postage stamp based on postageBatchId.",
        input_schema={
            "type": "object",
            "properties": {
                "postageBatchId": {"type": "string", "description": "The id of the stamp which is requested."}
            },
            "required": ["postageBatchId"],
        },
        output_schema={
            "type": "object",
            "properties": {"raw": POSTAGE_BATCH_SCHEMA, "summary": POSTAGE_BATCH_SUMMARY_SCHEMA},
            "required": ["summary"],
        },
        callable=get_postage_stamp,
        node_only=True,
    ),
    "create_postage_stamp": ToolDefinition(
        name="create_postage_stamp",
        description="Buy postage stamp based on size in megabytes and duration.",
        input_schema={
            "type": "object",
            "properties": {
                "size": SIZE_MB_SCHEMA,
                "duration": DURATION_SCHEMA,
                "label": {
                    "type": "string",
                    "description": (
                        "Sets label for the postage batch (omit if the user didn't ask for one). "
                        "Do not set a label with specific capacity values because they can get misleading."
                    ),
                },
            },
            "required": ["size", "duration"],
        },
        callable=create_postage_stamp,
        node_only=True,
    ),
    "extend_postage_stamp": ToolDefinition(
        name="extend_postage_stamp",
        description="Increase the duration (relative to current duration) or size (in megabytes) of a postage stamp.",
        input_schema={
            "type": "object",
            "properties": {
                "postageBatchId": {
                    "type": "string",
                    "description": "The id of the batch for which extend is performed.",
                },
                "size": SIZE_MB_SCHEMA,
                "duration": DURATION_SCHEMA,
            },
            "required": ["postageBatchId"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "postageBatchId": {
                    "type": "string",
                    "description": "The id of the postage batch for which the top up occurred.",
                }
            },
            "required": ["postageBatchId"],
        },
        callable=extend_postage_stamp,
        node_only=True,
    ),
    "query_upload_progress": ToolDefinition(
        name="query_upload_progress",
        description="Query upload progress for a specific upload session identified with the returned Tag ID",
        input_schema={
            "type": "object",
            "properties": {
                "tagId": {
                    "type": "string",
                    "description": "Tag ID returned by upload_file and upload_folder tools to track upload progress",
                }
            },
            "required": ["tagId"],
        },
        output_schema={
            "type": "object",
            "properties": {
                "processedPercentage": {"type": "number", "description": "The deferred upload processed percentage."},
                "message": {"type": "string", "description": "Query upload response message."},
                "startedAt": {"type": "string", "description": "When it started."},
                "tagAddress": {"type": "string", "description": "The address of the tag."},
            },
            "required": ["processedPercentage", "tagAddress"],
        },
        callable=query_upload_progress,
        node_only=True,
    ),
}

NODE_ONLY_TOOLS = frozenset(name for name, tool in TOOL_REGISTRY.items() if tool.node_only)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def list_tools(*, is_gateway: bool = False) -> List[Dict[str, Any]]:
    """Return the tool catalog; gateways do not get the node-only tools."""
    return [
        tool.describe()
        for tool in TOOL_REGISTRY.values()
        if not (is_gateway and tool.node_only)
    ]


async def call_tool(
    tool_name: str,
    params: Optional[Dict[str, Any]] = None,
    *,
    transport: str = "http",
    client=default_client,
    config: SwarmConfig = default_config,
) -> Any:
    """
    Dispatch to a tool by name.

    Arguments arrive in camelCase and are matched to the tool's keyword
    parameters; unknown arguments are ignored.
    """
    tool = TOOL_REGISTRY.get(tool_name)
    if tool is None:
        raise McpError(ErrorCode.METHOD_NOT_FOUND, f"Unknown tool: {tool_name}")

    signature = inspect.signature(tool.callable)
    context = {"transport": transport, "client": client, "config": config}
    kwargs: Dict[str, Any] = {
        name: value for name, value in context.items() if name in signature.parameters
    }
    for key, value in (params or {}).items():
        name = _to_snake(key)
        if name in signature.parameters and name not in context:
            kwargs[name] = value

    try:
        bound = signature.bind(**kwargs)
    except TypeError:
        raise McpError(ErrorCode.INVALID_PARAMS, "Invalid parameters.")

    try:
        return await tool.callable(*bound.args, **bound.kwargs)
    except McpError:
        raise
    except Exception:
        logger.exception("Unexpected error while calling tool %s", tool_name, extra={"tool": tool_name})
        raise internal_error("Unexpected error while calling tool.")


def jsonrpc_success_payload(rpc_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": rpc_id, "result": result}


def jsonrpc_error_payload(rpc_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": rpc_id, "error": error}


def wrap_tool_result(result: Any) -> Dict[str, Any]:
    """
    Shape tool outputs into MCP-friendly content array.
    """
    # Plain string results are returned directly as text.
    if isinstance(result, str):
        return {"content": [{"type": "text", "text": result}]}

    try:
        text_repr = json.dumps(result, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        text_repr = str(result)
    return {
        "content": [{"type": "text", "text": text_repr}],
        "structuredContent": result,
    }


def _log_tool_result(tool_name: str, error: Optional[McpError], request_id: Optional[str]) -> None:
    if error is not None:
        logger.warning(
            "tool=%s outcome=error error=%s request_id=%s",
            tool_name,
            error.message,
            request_id,
            extra={"tool": tool_name, "request_id": request_id, "error": error.code},
        )
        default_metrics.record_tool(tool_name, success=False)
    else:
        logger.info(
            "tool=%s outcome=success request_id=%s",
            tool_name,
            request_id,
            extra={"tool": tool_name, "request_id": request_id},
        )
        default_metrics.record_tool(tool_name, success=True)


class McpDispatcher:
    """
    Handle JSON-RPC messages for one transport.

    The gateway check runs once, on the first catalog request, and its result
    is reused for the lifetime of the dispatcher.
    """

    def __init__(
        self,
        transport: str,
        *,
        client=default_client,
        config: SwarmConfig = default_config,
    ) -> None:
        self.transport = transport
        self.client = client
        self.config = config
        self._is_gateway: Optional[bool] = None

    async def is_gateway(self) -> bool:
        if self._is_gateway is None:
            self._is_gateway = await determine_if_gateway(self.client, self.config)
            logger.info(
                "Bee endpoint detected as %s",
                "gateway" if self._is_gateway else "full node",
                extra={"transport": self.transport},
            )
        return self._is_gateway

    async def handle(self, body: Any, *, request_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Process one decoded JSON-RPC message.

        Returns the response payload, or ``None`` for notifications.
        """
        if not isinstance(body, dict):
            return jsonrpc_error_payload(None, ErrorCode.INVALID_REQUEST, "Invalid request")

        method = body.get("method")
        rpc_id = body.get("id")
        is_notification = "id" not in body

        raw_params = body.get("params")
        if raw_params is None:
            params: Dict[str, Any] = {}
        elif isinstance(raw_params, dict):
            params = raw_params
        else:
            return jsonrpc_error_payload(rpc_id, ErrorCode.INVALID_PARAMS, "Invalid params")

        if not method or not isinstance(method, str):
            return jsonrpc_error_payload(rpc_id, ErrorCode.INVALID_REQUEST, "Invalid request")

        if method.startswith("notifications/") or method == "initialized":
            logger.debug("mcp notification %s received", method, extra={"request_id": request_id})
            return None

        try:
            result = await self._dispatch(method, params, request_id=request_id)
        except McpError as exc:
            if is_notification:
                return None
            return jsonrpc_error_payload(rpc_id, exc.code, exc.message, exc.data)

        if is_notification:
            return None
        return jsonrpc_success_payload(rpc_id, result)

    async def _dispatch(self, method: str, params: Dict[str, Any], *, request_id: Optional[str]) -> Any:
        if method == "initialize":
            protocol_version = params.get("protocolVersion")
            if not isinstance(protocol_version, str) or not protocol_version:
                raise McpError(ErrorCode.INVALID_PARAMS, "Invalid params")
            logger.debug(
                "mcp initialize requested protocol=%s",
                protocol_version,
                extra={"request_id": request_id, "transport": self.transport},
            )
            return {
                "protocolVersion": protocol_version,
                "serverInfo": {"name": MCP_SERVER_NAME, "version": MCP_SERVER_VERSION},
                "capabilities": {"tools": {"listChanged": False}},
            }

        if method == "ping":
            return {}

        if method in ("list_tools", "tools/list"):
            return {"tools": list_tools(is_gateway=await self.is_gateway())}

        if method in ("call_tool", "tools/call"):
            tool_name = params.get("name") or params.get("tool")
            tool_params = params.get("arguments")
            if tool_params is None:
                tool_params = params.get("params") or {}
            if not isinstance(tool_name, str) or not tool_name.strip():
                raise McpError(ErrorCode.INVALID_PARAMS, "Invalid params")
            if not isinstance(tool_params, dict):
                raise McpError(ErrorCode.INVALID_PARAMS, "Invalid params")

            try:
                result = await call_tool(
                    tool_name,
                    tool_params,
                    transport=self.transport,
                    client=self.client,
                    config=self.config,
                )
            except McpError as exc:
                _log_tool_result(tool_name, exc, request_id)
                raise
            _log_tool_result(tool_name, None, request_id)
            return wrap_tool_result(result)

        raise McpError(ErrorCode.METHOD_NOT_FOUND, "Method not found")
