import pytest

from swarm_mcp.bee_api import BeeApiError, NotFoundError
from swarm_mcp.errors import McpError
from swarm_mcp.tools.tags import query_upload_progress


class StubClient:
    def __init__(self, tag=None, error=None, delete_error=None):
        self.tag = tag or {}
        self.error = error
        self.delete_error = delete_error
        self.retrieved = []
        self.deleted = []

    async def retrieve_tag(self, uid):
        self.retrieved.append(uid)
        if self.error:
            raise self.error
        return self.tag

    async def delete_tag(self, uid):
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(uid)


@pytest.mark.asyncio
async def test_progress_in_flight():
    client = StubClient({"split": 10, "seen": 2, "synced": 3, "startedAt": "2024-01-01T00:00:00Z", "address": "ab"})
    result = await query_upload_progress("7", client=client)
    assert result == {
        "processedPercentage": 50,
        "message": "Upload progress: 50% processed",
        "startedAt": "2024-01-01T00:00:00Z",
        "tagAddress": "ab",
    }
    assert client.retrieved == [7]
    assert client.deleted == []


@pytest.mark.asyncio
async def test_progress_rounds_half_up():
    client = StubClient({"split": 8, "synced": 1})
    result = await query_upload_progress("7", client=client)
    assert result["processedPercentage"] == 13


@pytest.mark.asyncio
async def test_completed_tag_is_deleted():
    client = StubClient({"split": 4, "synced": 4, "startedAt": "now"})
    result = await query_upload_progress("9", client=client)
    assert result["processedPercentage"] == 100
    assert result["message"] == "Upload completed successfully."
    assert result["tagAddress"] == ""
    assert client.deleted == [9]


@pytest.mark.asyncio
async def test_failed_cleanup_is_not_an_error():
    client = StubClient({"split": 1, "synced": 1}, delete_error=BeeApiError("nope"))
    result = await query_upload_progress("3", client=client)
    assert result["processedPercentage"] == 100


@pytest.mark.asyncio
async def test_zero_split_reports_zero():
    result = await query_upload_progress("3", client=StubClient({"split": 0}))
    assert result["processedPercentage"] == 0


@pytest.mark.asyncio
async def test_tag_errors():
    with pytest.raises(McpError) as excinfo:
        await query_upload_progress(None, client=StubClient())
    assert excinfo.value.message == "Missing required parameter: tagId"

    with pytest.raises(McpError) as excinfo:
        await query_upload_progress("abc", client=StubClient())
    assert excinfo.value.code == -32602

    with pytest.raises(McpError) as excinfo:
        await query_upload_progress("7", client=StubClient(error=NotFoundError("gone")))
    assert excinfo.value.message == "Tag with ID 7 does not exist or has been deleted"

    with pytest.raises(McpError) as excinfo:
        await query_upload_progress("7", client=StubClient(error=BeeApiError("down")))
    assert excinfo.value.code == -32603
