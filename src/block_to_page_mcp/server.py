"""Logseq block-to-page MCP server implementation using FastMCP."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastmcp import FastMCP

from .client import LogseqClient
from .config import ConversionSettings, ServerConfig, setup_logging
from .models import LogseqError

logger = logging.getLogger(__name__)

# Global client instance
_client: LogseqClient | None = None
_settings: ConversionSettings | None = None


def get_client() -> LogseqClient:
    """Get the global Logseq client instance."""
    if _client is None:
        raise RuntimeError("Logseq client not initialized. Server not started properly.")
    return _client


def get_settings() -> ConversionSettings:
    return _settings or ConversionSettings()


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client, _settings

    logger.info("Starting Logseq block-to-page MCP server")

    config = ServerConfig()  # type: ignore[call-arg]
    setup_logging(config.log_level)
    api_config = config.get_api_config()

    _client = LogseqClient(api_config)
    _settings = config.get_conversion_settings()
    logger.info(f"Logseq client initialized with base URL: {api_config.base_url}")

    yield

    logger.info("Shutting down Logseq block-to-page MCP server")
    if _client:
        await _client.close()
        _client = None
    _settings = None


# Initialize FastMCP server
mcp = FastMCP(
    "Logseq Block-to-Page MCP Server",
    version="0.1.0",
    instructions="MCP server that turns a Logseq block into a page with its children and properties",
    lifespan=lifespan,
)


async def run_conversion(client: LogseqClient, block_id: str, settings: ConversionSettings) -> dict[str, Any]:
    """Run one conversion and report the outcome as a plain dict.

    Conversion errors are reported, not raised, so the caller always gets a
    message back. Writes made before the failure stay in place.
    """
    try:
        result = await client.turn_block_into_page(block_id, settings)
    except LogseqError as e:
        logger.error(f"Conversion of {block_id} failed: {e}")
        return {"success": False, **e.to_dict()}
    return {"success": result.status == "converted", **result.model_dump()}


# Tool: Turn block into page
@mcp.tool(
    name="logseq_turn_block_into_page",
    description="Turn a Logseq block into a page named after its first line, moving its children (and optionally its properties) onto the page",
)
async def turn_block_into_page(block_id: str) -> dict:
    """Turn a block into a page.

    Args:
        block_id: UUID of the block to convert

    Returns:
        Conversion outcome with the page name and moved block UUIDs
    """
    return await run_conversion(get_client(), block_id, get_settings())


# Tool: Preview block properties
@mcp.tool(
    name="logseq_preview_block_properties",
    description="Show the properties a conversion would move from a block to its page, without changing anything",
)
async def preview_block_properties(block_id: str) -> dict:
    """Preview the properties that would be carried to the page.

    Args:
        block_id: UUID of the block to inspect

    Returns:
        The extracted properties and their serialized text
    """
    client = get_client()
    try:
        return {"success": True, **await client.preview_block_properties(block_id, get_settings().missing_property_policy)}
    except LogseqError as e:
        return {"success": False, **e.to_dict()}


def main() -> None:
    """Run the MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
