"""
Feed helpers: topic derivation, owner addresses and signed feed updates.

A feed update is a single-owner chunk whose identifier is
``keccak256(topic || index)`` and whose payload wraps the update content in a
content-addressed chunk. Only payloads that fit one chunk are supported.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_hash.auto import keccak

CHUNK_PAYLOAD_SIZE = 4096
SEGMENT_SIZE = 32
SPAN_SIZE = 8

TOPIC_HEX_REGEX = re.compile(r"^[0-9a-fA-F]{64}$")
OWNER_HEX_REGEX = re.compile(r"^[0-9a-fA-F]{40}$")


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def make_topic(memory_topic: str) -> str:
    """Return the 32-byte feed topic as hex; non-hex labels are SHA-256 hashed."""
    candidate = strip_hex_prefix(memory_topic)
    if TOPIC_HEX_REGEX.fullmatch(candidate):
        return candidate.lower()
    return hashlib.sha256(memory_topic.encode("utf-8")).hexdigest()


def normalize_owner(owner: str) -> str:
    """Return a 40-char hex owner address or raise ValueError."""
    candidate = strip_hex_prefix(owner.strip())
    if not OWNER_HEX_REGEX.fullmatch(candidate):
        raise ValueError("Owner must be a valid Ethereum address")
    return candidate.lower()


def _private_key_bytes(private_key: str) -> bytes:
    try:
        key = bytes.fromhex(strip_hex_prefix(private_key.strip()))
    except (AttributeError, ValueError) as exc:
        raise ValueError("Invalid feed private key") from exc
    if len(key) != 32:
        raise ValueError("Invalid feed private key")
    return key


def owner_address(private_key: str) -> str:
    """Ethereum address (lowercase hex, no prefix) for a hex private key."""
    account = Account.from_key(_private_key_bytes(private_key))
    return account.address[2:].lower()


def span(length: int) -> bytes:
    return length.to_bytes(SPAN_SIZE, "little")


def bmt_root(payload: bytes) -> bytes:
    """Binary merkle tree root over a zero-padded chunk payload."""
    padded = payload.ljust(CHUNK_PAYLOAD_SIZE, b"\x00")
    level = [padded[i:i + SEGMENT_SIZE] for i in range(0, CHUNK_PAYLOAD_SIZE, SEGMENT_SIZE)]
    while len(level) > 1:
        level = [keccak(level[i] + level[i + 1]) for i in range(0, len(level), 2)]
    return level[0]


def content_address(payload: bytes) -> bytes:
    return keccak(span(len(payload)) + bmt_root(payload))


def feed_identifier(topic: bytes, index: int) -> bytes:
    return keccak(topic + index.to_bytes(8, "big"))


@dataclass(slots=True)
class SingleOwnerChunk:
    identifier: bytes
    signature: bytes
    data: bytes
    address: bytes

    @property
    def reference(self) -> str:
        return self.address.hex()


class FeedWriter:
    """Signs sequential feed updates for one topic with one private key."""

    def __init__(self, topic: str, private_key: str) -> None:
        self.topic = bytes.fromhex(make_topic(topic))
        self._key = _private_key_bytes(private_key)
        self.owner = Account.from_key(self._key).address[2:].lower()

    def make_update(self, index: int, payload: bytes) -> SingleOwnerChunk:
        if len(payload) > CHUNK_PAYLOAD_SIZE:
            raise ValueError(f"Feed payload exceeds a single chunk ({CHUNK_PAYLOAD_SIZE} bytes).")
        identifier = feed_identifier(self.topic, index)
        cac_address = content_address(payload)
        digest = keccak(identifier + cac_address)
        signed = Account.sign_message(encode_defunct(primitive=digest), private_key=self._key)
        return SingleOwnerChunk(
            identifier=identifier,
            signature=bytes(signed.signature),
            data=span(len(payload)) + payload,
            address=keccak(identifier + bytes.fromhex(self.owner)),
        )
