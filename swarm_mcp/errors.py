"""MCP error categories surfaced to callers as JSON-RPC errors."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


GATEWAY_STAMP_ERROR_MESSAGE = (
    "Endpoint not found. If using Swarm Gateway, postage stamp management endpoints are not available."
)
GATEWAY_TAG_ERROR_MESSAGE = "If using Swarm Gateway, tag endpoints are not available."


class McpError(Exception):
    """Tool or protocol failure carrying a JSON-RPC error code."""

    def __init__(self, code: int, message: str, *, data: Optional[Any] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


def missing_parameter(name: str) -> McpError:
    return McpError(ErrorCode.INVALID_PARAMS, f"Missing required parameter: {name}")


def invalid_params(message: str) -> McpError:
    return McpError(ErrorCode.INVALID_PARAMS, message)


def invalid_request(message: str) -> McpError:
    return McpError(ErrorCode.INVALID_REQUEST, message)


def gateway_not_supported(message: str = GATEWAY_STAMP_ERROR_MESSAGE) -> McpError:
    return McpError(ErrorCode.METHOD_NOT_FOUND, message)


def internal_error(message: str) -> McpError:
    return McpError(ErrorCode.INTERNAL_ERROR, message)
