"""Logseq API client implementation."""

from typing import Any

from ..config import ConversionSettings
from ..models import ConversionResult, NodeNotFoundError
from .api_client_convert import turn_block_into_page_impl
from .api_client_core import LogseqClientCore
from .property_helper import extract_properties, serialize_properties, without_hidden_properties


class LogseqClient(LogseqClientCore):
    """Logseq client with the block-to-page conversion on top of the core calls."""

    async def turn_block_into_page(
        self, block_id: str, settings: ConversionSettings | None = None
    ) -> ConversionResult:
        """Turn ``block_id`` into a page. See turn_block_into_page_impl."""
        return await turn_block_into_page_impl(self, block_id, settings)

    async def preview_block_properties(self, block_id: str, missing: str = "skip") -> dict[str, Any]:
        """Properties that a conversion would carry over from ``block_id`` (read-only)."""
        block = await self.get_block(block_id)
        if block is None:
            raise NodeNotFoundError(block_id)
        properties = without_hidden_properties(extract_properties(block.content, block.properties, missing))
        return {
            "block_id": block_id,
            "properties": properties,
            "text": serialize_properties(properties),
        }
