"""Tests for the MCP server's conversion wrapper."""

import pytest

from block_to_page_mcp import server
from block_to_page_mcp.config import ConversionSettings
from block_to_page_mcp.models import ConversionResult, NetworkError, RelocationError


class StubClient:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def turn_block_into_page(self, block_id, settings):
        self.calls.append((block_id, settings))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.mark.asyncio
async def test_success_reported():
    client = StubClient(ConversionResult(status="converted", page_name="P", moved_block_ids=["c1"]))
    settings = ConversionSettings(redirect_to_page=True)

    result = await server.run_conversion(client, "b1", settings)

    assert result["success"] is True
    assert result["page_name"] == "P"
    assert client.calls == [("b1", settings)]


@pytest.mark.asyncio
async def test_skip_reported_as_unsuccessful():
    client = StubClient(ConversionResult(status="skipped", reason="block has no children"))
    result = await server.run_conversion(client, "b1", ConversionSettings())
    assert result["success"] is False
    assert result["reason"] == "block has no children"


@pytest.mark.asyncio
async def test_relocation_failure_reported():
    client = StubClient(RelocationError("c2", "c1", moved=["c1"]))

    result = await server.run_conversion(client, "b1", ConversionSettings())

    assert result["success"] is False
    assert result["error"] == "RelocationError"
    assert result["message"].startswith("move block error")
    assert result["details"]["block_id"] == "c2"
    assert result["details"]["moved"] == ["c1"]


@pytest.mark.asyncio
async def test_transport_failure_reported():
    result = await server.run_conversion(StubClient(NetworkError("down")), "b1", ConversionSettings())
    assert result == {"success": False, "error": "NetworkError", "message": "down", "details": {}}


def test_client_required():
    with pytest.raises(RuntimeError):
        server.get_client()
