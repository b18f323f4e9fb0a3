"""Logseq API client - Core block and page operations."""

import asyncio
import json
import sys
from datetime import datetime
from typing import Any

import httpx

from ..models import (
    APIConfiguration,
    AuthenticationError,
    LogseqBlock,
    LogseqPage,
    NetworkError,
    NodeNotFoundError,
    RateLimitError,
    TimeoutError,
)


def log_event(message: str, component: str = "CLIENT") -> None:
    """Log an event to stderr with timestamp and consistent formatting."""
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] [{component}] {message}", file=sys.stderr, flush=True)


class _ClientLogger:
    """Lightweight logger that delegates to log_event.

    FastMCP swallows the stdlib logging module on the stdio transport, so
    client-side logging goes straight to stderr instead.
    """

    def __init__(self, component: str = "CLIENT") -> None:
        self._component = component

    def _msg(self, msg: object) -> str:
        try:
            return str(msg)
        except Exception:
            return repr(msg)

    def info(self, msg: object, *args: object, **kwargs: object) -> None:
        log_event(self._msg(msg), self._component)

    def warning(self, msg: object, *args: object, **kwargs: object) -> None:
        log_event(f"WARNING: {self._msg(msg)}", self._component)

    def error(self, msg: object, *args: object, **kwargs: object) -> None:
        log_event(f"ERROR: {self._msg(msg)}", self._component)

    def debug(self, msg: object, *args: object, **kwargs: object) -> None:
        log_event(f"DEBUG: {self._msg(msg)}", self._component)


class LogseqClientCore:
    """Core Logseq API client - Editor and App calls over the HTTP API server.

    Every call is a POST to ``/api`` with ``{"method": ..., "args": [...]}``.
    Reads retry with exponential backoff; writes are sent exactly once so a
    half-applied mutation is never repeated behind the caller's back.
    """

    def __init__(self, config: APIConfiguration, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the Logseq API client."""
        self.config = config
        self.base_url = config.base_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._logger = _ClientLogger()

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.config.api_token.get_secret_value()}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "LogseqClientCore":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> Any:
        """Handle API response and errors."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid API token or unauthorized access")

        if response.status_code == 404:
            raise NodeNotFoundError(node_id=response.request.url.path, message="Resource not found")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(retry_after=int(retry_after) if retry_after else None)

        if response.status_code >= 500:
            raise NetworkError(f"Server error: {response.status_code}")

        if response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("error", "API request failed")
            except (json.JSONDecodeError, KeyError, AttributeError):
                message = f"API error: {response.status_code}"
            raise NetworkError(message)

        if not response.content:
            return None

        try:
            data = response.json()
        except json.JSONDecodeError as err:
            raise NetworkError("Invalid response format from API") from err

        # The API server reports failed method calls as {"error": "..."} with 200
        if isinstance(data, dict) and len(data) == 1 and "error" in data:
            raise NetworkError(str(data["error"]))
        return data

    async def _send(self, method: str, args: list[Any]) -> Any:
        if self.config.request_delay:
            await asyncio.sleep(self.config.request_delay)
        self._logger.debug(f"{method} {args!r}")
        try:
            response = await self.client.post("/api", json={"method": method, "args": args})
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as err:
            raise NetworkError(f"{method} failed: {err}") from err
        return await self._handle_response(response)

    async def _write(self, method: str, *args: Any) -> Any:
        """Send a mutating call once; failures propagate unchanged."""
        try:
            return await self._send(method, list(args))
        except httpx.TimeoutException as err:
            raise TimeoutError(method) from err

    async def _read(self, method: str, *args: Any, max_retries: int = 10) -> Any:
        """Send a read-only call with exponential backoff retry."""
        retry_count = 0
        base_delay = 1.0

        while retry_count < max_retries:
            try:
                return await self._send(method, list(args))

            except RateLimitError as e:
                retry_count += 1
                retry_after = e.retry_after or (base_delay * (2 ** retry_count))
                self._logger.warning(
                    f"Rate limited on {method}. Retry after {retry_after}s. "
                    f"Attempt {retry_count}/{max_retries}"
                )
                if retry_count < max_retries:
                    await asyncio.sleep(retry_after)
                else:
                    raise

            except NetworkError as e:
                retry_count += 1
                self._logger.warning(f"Network error on {method}: {e}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise

            except httpx.TimeoutException as err:
                retry_count += 1
                self._logger.warning(f"Timeout error: {err}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise TimeoutError(method) from err

        raise NetworkError(f"{method} failed after maximum retries")

    # Node store

    async def get_block(self, block_id: str, include_children: bool = False, max_retries: int = 10) -> LogseqBlock | None:
        """Fetch a block, optionally with its nested children. None when absent."""
        data = await self._read(
            "logseq.Editor.getBlock", block_id, {"includeChildren": include_children}, max_retries=max_retries
        )
        return LogseqBlock.model_validate(data) if data else None

    async def update_block(self, block_id: str, content: str) -> None:
        await self._write("logseq.Editor.updateBlock", block_id, content)

    async def remove_block_property(self, block_id: str, key: str) -> None:
        await self._write("logseq.Editor.removeBlockProperty", block_id, key)

    async def move_block(self, block_id: str, target_id: str, children: bool = False, before: bool = False) -> None:
        """Move ``block_id`` next to (or, with children=True, under) ``target_id``."""
        await self._write("logseq.Editor.moveBlock", block_id, target_id, {"children": children, "before": before})

    async def insert_block(
        self, target: str, content: str = "", is_page_block: bool = False, before: bool = False
    ) -> LogseqBlock | None:
        """Insert a block next to a block uuid, or into a page when ``target`` is a page name."""
        data = await self._write(
            "logseq.Editor.insertBlock", target, content, {"isPageBlock": is_page_block, "before": before}
        )
        return LogseqBlock.model_validate(data) if data else None

    async def append_block_in_page(self, page_name: str, content: str = "") -> LogseqBlock | None:
        data = await self._write("logseq.Editor.appendBlockInPage", page_name, content)
        return LogseqBlock.model_validate(data) if data else None

    async def remove_block(self, block_id: str) -> None:
        await self._write("logseq.Editor.removeBlock", block_id)

    async def exit_editing_mode(self) -> None:
        await self._write("logseq.Editor.exitEditingMode")

    # Page directory

    async def get_page(self, name_or_id: str | int, max_retries: int = 10) -> LogseqPage | None:
        data = await self._read("logseq.Editor.getPage", name_or_id, max_retries=max_retries)
        return LogseqPage.model_validate(data) if data else None

    async def create_page(
        self,
        page_name: str,
        properties: dict[str, Any] | None = None,
        create_first_block: bool = True,
        redirect: bool = False,
    ) -> LogseqPage | None:
        data = await self._write(
            "logseq.Editor.createPage",
            page_name,
            properties or {},
            {"createFirstBlock": create_first_block, "redirect": redirect},
        )
        return LogseqPage.model_validate(data) if data else None

    async def delete_page(self, page_name: str) -> None:
        await self._write("logseq.Editor.deletePage", page_name)

    async def get_page_blocks_tree(self, page_name: str, max_retries: int = 10) -> list[LogseqBlock]:
        """Top-level blocks of a page, in order. Empty when the page has none."""
        data = await self._read("logseq.Editor.getPageBlocksTree", page_name, max_retries=max_retries)
        return [LogseqBlock.model_validate(block) for block in data or []]

    # Reference resolution

    async def resolve_page_name(self, ref_id: str | int) -> str | None:
        """Resolve a block reference entry (page entity id) to the page's display name."""
        page = await self.get_page(ref_id)
        return page.display_name if page else None

    # Navigation

    async def push_state(self, route: str, params: dict[str, Any] | None = None) -> None:
        await self._write("logseq.App.pushState", route, params or {})
