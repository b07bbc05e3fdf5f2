import hashlib

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_hash.auto import keccak

from swarm_mcp.bee_api.feeds import (
    FeedWriter,
    content_address,
    feed_identifier,
    make_topic,
    normalize_owner,
    owner_address,
    span,
)

PRIVATE_KEY = "00" * 31 + "01"
OWNER = "7e5f4552091a69125d5dfcb7b8c2659029395bdf"


def test_owner_address_from_key():
    assert owner_address(PRIVATE_KEY) == OWNER
    assert owner_address("0x" + PRIVATE_KEY) == OWNER


def test_owner_address_rejects_bad_key():
    with pytest.raises(ValueError):
        owner_address("not-a-key")
    with pytest.raises(ValueError):
        owner_address("01")


def test_make_topic():
    assert make_topic("a" * 64) == "a" * 64
    assert make_topic("0x" + "AB" * 32) == "ab" * 32
    assert make_topic("memories") == hashlib.sha256(b"memories").hexdigest()


def test_normalize_owner():
    assert normalize_owner("0x" + OWNER.upper()) == OWNER
    with pytest.raises(ValueError):
        normalize_owner("0x1234")


def test_feed_identifier_uses_big_endian_index():
    topic = bytes.fromhex(make_topic("memories"))
    assert feed_identifier(topic, 1) == keccak(topic + b"\x00" * 7 + b"\x01")
    assert feed_identifier(topic, 0) != feed_identifier(topic, 1)


def test_make_update_signs_chunk():
    writer = FeedWriter("memories", PRIVATE_KEY)
    assert writer.owner == OWNER

    payload = b"hello swarm"
    chunk = writer.make_update(3, payload)

    assert chunk.identifier == feed_identifier(writer.topic, 3)
    assert chunk.data == span(len(payload)) + payload
    assert chunk.data[:8] == len(payload).to_bytes(8, "little")
    assert len(chunk.signature) == 65
    assert chunk.address == keccak(chunk.identifier + bytes.fromhex(OWNER))
    assert chunk.reference == chunk.address.hex()

    digest = keccak(chunk.identifier + content_address(payload))
    signer = Account.recover_message(encode_defunct(primitive=digest), signature=chunk.signature)
    assert signer.lower() == "0x" + OWNER


def test_make_update_rejects_oversized_payload():
    writer = FeedWriter("memories", PRIVATE_KEY)
    with pytest.raises(ValueError):
        writer.make_update(0, b"x" * 4097)


def test_content_address_depends_on_length():
    # zero padding alone must not collide: the span is part of the address
    assert content_address(b"") != content_address(b"\x00")
