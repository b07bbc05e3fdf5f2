import hashlib

import pytest

from swarm_mcp.bee_api import NotFoundError
from swarm_mcp.config import SwarmConfig
from swarm_mcp.errors import McpError
from swarm_mcp.tools.feeds import FEED_KEY_MISSING_MESSAGE, read_feed, update_feed

BATCH_ID = "ab" * 32
REFERENCE = "cd" * 32
PRIVATE_KEY = "00" * 31 + "01"
OWNER = "7e5f4552091a69125d5dfcb7b8c2659029395bdf"
CONFIG = SwarmConfig(bee_api_url="http://bee.test", feed_private_key=PRIVATE_KEY, auto_assign_stamp=False)
NO_KEY_CONFIG = SwarmConfig(bee_api_url="http://bee.test", feed_private_key=None, auto_assign_stamp=False)


class StubClient:
    def __init__(self, error=None):
        self.error = error
        self.updates = []
        self.reads = []

    async def update_feed(self, batch_id, topic, private_key, payload):
        if self.error:
            raise self.error
        self.updates.append((batch_id, topic, private_key, payload))
        return REFERENCE

    async def read_feed(self, owner, topic):
        if self.error:
            raise self.error
        self.reads.append((owner, topic))
        return b"remember this"


@pytest.mark.asyncio
async def test_update_feed_happy_path():
    client = StubClient()
    topic = hashlib.sha256(b"notes").hexdigest()
    result = await update_feed("remember this", "notes", BATCH_ID, client=client, config=CONFIG)
    assert result == {
        "reference": REFERENCE,
        "topicString": "notes",
        "topic": topic,
        "feedUrl": f"http://bee.test/feeds/{OWNER}/{topic}",
        "message": "Data successfully uploaded to Swarm and linked to feed",
    }
    assert client.updates == [(BATCH_ID, topic, PRIVATE_KEY, b"remember this")]


@pytest.mark.asyncio
async def test_update_feed_hex_topic_used_verbatim():
    client = StubClient()
    result = await update_feed("x", "0x" + "AA" * 32, BATCH_ID, client=client, config=CONFIG)
    assert result["topic"] == "aa" * 32


@pytest.mark.asyncio
async def test_update_feed_missing_parameters():
    with pytest.raises(McpError) as excinfo:
        await update_feed("x", None, BATCH_ID, client=StubClient(), config=CONFIG)
    assert excinfo.value.message == "Missing required parameter: memoryTopic"

    with pytest.raises(McpError) as excinfo:
        await update_feed(None, "notes", BATCH_ID, client=StubClient(), config=CONFIG)
    assert excinfo.value.message == "Missing required parameter: data"


@pytest.mark.asyncio
async def test_update_feed_requires_key():
    with pytest.raises(McpError) as excinfo:
        await update_feed("x", "notes", BATCH_ID, client=StubClient(), config=NO_KEY_CONFIG)
    assert excinfo.value.code == -32602
    assert excinfo.value.message == FEED_KEY_MISSING_MESSAGE


@pytest.mark.asyncio
async def test_update_feed_oversized_payload():
    client = StubClient(error=ValueError("Feed payload exceeds a single chunk (4096 bytes)."))
    with pytest.raises(McpError) as excinfo:
        await update_feed("x" * 5000, "notes", BATCH_ID, client=client, config=CONFIG)
    assert excinfo.value.code == -32602
    assert "exceeds a single chunk" in excinfo.value.message


@pytest.mark.asyncio
async def test_read_feed_with_explicit_owner():
    client = StubClient()
    result = await read_feed("notes", "0x" + OWNER.upper(), client=client, config=NO_KEY_CONFIG)
    assert result == {"textData": "remember this"}
    assert client.reads == [(OWNER, hashlib.sha256(b"notes").hexdigest())]


@pytest.mark.asyncio
async def test_read_feed_defaults_to_own_feed():
    client = StubClient()
    await read_feed("notes", client=client, config=CONFIG)
    assert client.reads[0][0] == OWNER


@pytest.mark.asyncio
async def test_read_feed_errors():
    with pytest.raises(McpError) as excinfo:
        await read_feed("notes", "0x1234", client=StubClient(), config=CONFIG)
    assert excinfo.value.message == "Owner must be a valid Ethereum address"

    with pytest.raises(McpError) as excinfo:
        await read_feed("notes", client=StubClient(), config=NO_KEY_CONFIG)
    assert excinfo.value.message == FEED_KEY_MISSING_MESSAGE

    with pytest.raises(McpError) as excinfo:
        await read_feed("notes", OWNER, client=StubClient(error=NotFoundError("missing")), config=CONFIG)
    assert excinfo.value.code == -32602
    assert "No updates found" in excinfo.value.message
