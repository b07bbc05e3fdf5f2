"""HTTP client wrappers for the Bee node API."""

from .client import (
    BadRequestError,
    BeeApiClient,
    BeeApiError,
    NodeUnreachableError,
    NotFoundError,
    UnauthorizedError,
    default_client,
)

__all__ = [
    "BeeApiClient",
    "BeeApiError",
    "BadRequestError",
    "NotFoundError",
    "UnauthorizedError",
    "NodeUnreachableError",
    "default_client",
]
