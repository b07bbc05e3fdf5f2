import json

import pytest

from swarm_mcp.bee_api.manifest import (
    TYPE_EDGE,
    TYPE_VALUE,
    TYPE_WITH_METADATA,
    VERSION_02_HASH,
    ManifestEntry,
    ManifestFormatError,
    collect_entries,
    decode_node,
    load_recursively,
)

FILE_A = bytes.fromhex("11" * 32)
FILE_B = bytes.fromhex("22" * 32)
NODE_A = bytes.fromhex("aa" * 32)
NODE_DOCS = bytes.fromhex("dd" * 32)
NODE_B = bytes.fromhex("bb" * 32)


def _serialize(target: bytes, forks=(), key: bytes = bytes(32)):
    """Serialize a manifest node, obfuscating everything after ``key`` with it."""
    bitmap = bytearray(32)
    body = b""
    for fork_type, prefix, child, metadata in sorted(forks, key=lambda fork: fork[1][0]):
        bitmap[prefix[0] // 8] |= 1 << (prefix[0] % 8)
        body += bytes([fork_type, len(prefix)]) + prefix.ljust(30, b"\x00") + child
        if metadata is not None:
            raw = json.dumps(metadata).encode("utf-8")
            body += len(raw).to_bytes(2, "big") + raw
    plain = VERSION_02_HASH + bytes([32]) + target + bytes(bitmap) + body
    return key + bytes(byte ^ key[i % len(key)] for i, byte in enumerate(plain))


METADATA = {"Content-Type": "text/plain", "Filename": "a.txt"}

ROOT = _serialize(
    bytes(32),
    [
        (TYPE_VALUE | TYPE_WITH_METADATA, b"a.txt", NODE_A, METADATA),
        (TYPE_EDGE, b"docs/", NODE_DOCS, None),
    ],
)
CHUNKS = {
    NODE_A.hex(): _serialize(FILE_A),
    NODE_DOCS.hex(): _serialize(bytes(32), [(TYPE_VALUE, b"b.md", NODE_B, None)]),
    NODE_B.hex(): _serialize(FILE_B),
}


async def _fetch(reference):
    return CHUNKS[reference]


def test_decode_root_node():
    node = decode_node(ROOT)
    assert not node.has_target
    assert sorted(node.forks) == [ord("a"), ord("d")]
    assert node.forks[ord("a")].path == b"a.txt"
    assert node.forks[ord("a")].metadata == METADATA
    assert node.forks[ord("d")].self_address == NODE_DOCS


@pytest.mark.asyncio
async def test_load_and_collect_entries():
    root = await load_recursively(decode_node(ROOT), _fetch)
    entries = collect_entries(root)
    assert [entry.path for entry in entries] == ["a.txt", "docs/b.md"]
    assert entries[0].target_address == FILE_A.hex()
    assert entries[0].metadata == METADATA
    assert entries[1].target_address == FILE_B.hex()


def test_decode_rejects_non_manifest():
    with pytest.raises(ManifestFormatError):
        decode_node(b"short")
    with pytest.raises(ManifestFormatError):
        decode_node(bytes(32) + b"\x01" * 31 + bytes([32]) + bytes(64))


def test_decode_rejects_truncated_fork():
    with pytest.raises(ManifestFormatError):
        decode_node(ROOT[:-10])


def test_entry_to_dict_defaults_path():
    assert ManifestEntry(path="", target_address="ab").to_dict() == {
        "path": "/",
        "targetAddress": "ab",
        "metadata": None,
    }


def test_decode_obfuscated_node():
    key = bytes(range(1, 33))
    data = _serialize(
        FILE_A,
        [(TYPE_VALUE | TYPE_WITH_METADATA, b"a.txt", NODE_A, METADATA)],
        key=key,
    )
    # the version hash must not be readable without removing the key
    assert data[32:63] != VERSION_02_HASH

    node = decode_node(data)
    assert node.target_address == FILE_A
    assert node.forks[ord("a")].path == b"a.txt"
    assert node.forks[ord("a")].self_address == NODE_A
    assert node.forks[ord("a")].metadata == METADATA
