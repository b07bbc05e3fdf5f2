"""
Read-only manifest decoding.

Manifests are compacted tries stored as chunks. Decoding a node yields its
target address and its forks; following the forks yields every file entry in
the collection. Writing manifests is left to the Bee node.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from eth_hash.auto import keccak

OBFUSCATION_KEY_SIZE = 32
VERSION_HASH_SIZE = 31
FORK_BITMAP_SIZE = 32
FORK_PREFIX_MAX_SIZE = 30
NULL_ADDRESS = bytes(32)

TYPE_VALUE = 2
TYPE_EDGE = 4
TYPE_WITH_PATH_SEPARATOR = 8
TYPE_WITH_METADATA = 16

VERSION_02_HASH = keccak(b"mantaray:0.2")[:VERSION_HASH_SIZE]


class ManifestFormatError(ValueError):
    """Raised when chunk data is not a manifest node."""


@dataclass
class ManifestNode:
    self_address: bytes
    target_address: bytes = NULL_ADDRESS
    path: bytes = b""
    metadata: Optional[Dict[str, Any]] = None
    forks: Dict[int, "ManifestNode"] = field(default_factory=dict)

    @property
    def has_target(self) -> bool:
        return any(self.target_address)


@dataclass(slots=True)
class ManifestEntry:
    path: str
    target_address: str
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path or "/", "targetAddress": self.target_address, "metadata": self.metadata}


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def read(self, size: int) -> bytes:
        end = self._offset + size
        if size < 0 or end > len(self._data):
            raise ManifestFormatError("Unexpected end of manifest data")
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk


def _xor(data: bytes, key: bytes) -> bytes:
    if not any(key):
        return data
    return bytes(byte ^ key[i % len(key)] for i, byte in enumerate(data))


def decode_node(data: bytes, self_address: bytes = NULL_ADDRESS) -> ManifestNode:
    """Decode one serialized manifest node (forks are not loaded)."""
    if len(data) < OBFUSCATION_KEY_SIZE + VERSION_HASH_SIZE + 1:
        raise ManifestFormatError("Data too short for a manifest node")
    key = data[:OBFUSCATION_KEY_SIZE]
    reader = _Reader(_xor(data[OBFUSCATION_KEY_SIZE:], key))

    if reader.read(VERSION_HASH_SIZE) != VERSION_02_HASH:
        raise ManifestFormatError("Unsupported manifest version")

    address_size = reader.read(1)[0]
    target = NULL_ADDRESS if address_size == 0 else reader.read(address_size)
    node = ManifestNode(self_address=self_address, target_address=target)

    bitmap = reader.read(FORK_BITMAP_SIZE)
    for index in range(256):
        if bitmap[index // 8] & (1 << (index % 8)):
            node.forks[index] = _decode_fork(reader, address_size)
    return node


def _decode_fork(reader: _Reader, address_size: int) -> ManifestNode:
    fork_type = reader.read(1)[0]
    prefix_length = reader.read(1)[0]
    if prefix_length == 0 or prefix_length > FORK_PREFIX_MAX_SIZE:
        raise ManifestFormatError("Invalid fork prefix length")
    prefix = reader.read(prefix_length)
    reader.read(FORK_PREFIX_MAX_SIZE - prefix_length)
    child_address = reader.read(address_size)

    metadata = None
    if fork_type & TYPE_WITH_METADATA:
        metadata_length = int.from_bytes(reader.read(2), "big")
        raw_metadata = reader.read(metadata_length)
        try:
            metadata = json.loads(raw_metadata.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise ManifestFormatError("Invalid fork metadata") from exc
    return ManifestNode(self_address=child_address, path=prefix, metadata=metadata)


async def load_recursively(node: ManifestNode, fetch: Callable[[str], Awaitable[bytes]]) -> ManifestNode:
    """Replace every fork stub with its decoded node, depth first."""
    for fork in node.forks.values():
        loaded = decode_node(await fetch(fork.self_address.hex()), fork.self_address)
        fork.target_address = loaded.target_address
        fork.forks = loaded.forks
        await load_recursively(fork, fetch)
    return node


def collect_entries(node: ManifestNode, prefix: bytes = b"") -> List[ManifestEntry]:
    entries: List[ManifestEntry] = []
    for index in sorted(node.forks):
        fork = node.forks[index]
        full_path = prefix + fork.path
        if fork.has_target:
            entries.append(
                ManifestEntry(
                    path=full_path.decode("utf-8", errors="replace"),
                    target_address=fork.target_address.hex(),
                    metadata=fork.metadata,
                )
            )
        entries.extend(collect_entries(fork, full_path))
    return entries
