import pytest

from swarm_mcp.bee_api import BadRequestError, BeeApiError, NotFoundError
from swarm_mcp.config import SwarmConfig
from swarm_mcp.errors import McpError
from swarm_mcp.tools.data import download_data, upload_data

BATCH_ID = "ab" * 32
REFERENCE = "cd" * 32
CONFIG = SwarmConfig(bee_api_url="http://bee.test/", auto_assign_stamp=False)


class StubClient:
    def __init__(self, error=None, payload=b"hello swarm"):
        self.error = error
        self.payload = payload
        self.uploads = []
        self.downloads = []

    async def upload_data(self, batch_id, data, *, redundancy_level=None):
        if self.error:
            raise self.error
        self.uploads.append((batch_id, data, redundancy_level))
        return REFERENCE

    async def download_data(self, reference):
        if self.error:
            raise self.error
        self.downloads.append(reference)
        return self.payload


@pytest.mark.asyncio
async def test_upload_data_happy_path():
    client = StubClient()
    result = await upload_data("hello", 2, BATCH_ID, client=client, config=CONFIG)
    assert result == {
        "reference": REFERENCE,
        "url": f"http://bee.test/bytes/{REFERENCE}",
        "message": "Data successfully uploaded to Swarm",
    }
    assert client.uploads == [(BATCH_ID, b"hello", 2)]


@pytest.mark.asyncio
async def test_upload_data_requires_data():
    with pytest.raises(McpError) as excinfo:
        await upload_data(None, postage_batch_id=BATCH_ID, client=StubClient(), config=CONFIG)
    assert excinfo.value.code == -32602
    assert excinfo.value.message == "Missing required parameter: data"


@pytest.mark.asyncio
async def test_upload_data_upstream_errors():
    with pytest.raises(McpError) as excinfo:
        await upload_data("x", None, BATCH_ID, client=StubClient(error=BadRequestError("batch not usable")), config=CONFIG)
    assert excinfo.value.code == -32600
    assert excinfo.value.message == "batch not usable"

    with pytest.raises(McpError) as excinfo:
        await upload_data("x", None, BATCH_ID, client=StubClient(error=BeeApiError("boom")), config=CONFIG)
    assert excinfo.value.code == -32602
    assert excinfo.value.message == "Unable to upload data."


@pytest.mark.asyncio
async def test_download_data_happy_path():
    client = StubClient()
    result = await download_data("0x" + REFERENCE.upper(), client=client)
    assert result == {"textData": "hello swarm"}
    assert client.downloads == [REFERENCE]


@pytest.mark.asyncio
async def test_download_data_invalid_reference():
    with pytest.raises(McpError) as excinfo:
        await download_data("not-a-hash", client=StubClient())
    assert excinfo.value.code == -32602
    assert excinfo.value.message == "Invalid Swarm content address hash value for reference."


@pytest.mark.asyncio
async def test_download_data_not_found():
    with pytest.raises(McpError) as excinfo:
        await download_data(REFERENCE, client=StubClient(error=NotFoundError("missing")))
    assert excinfo.value.code == -32602
