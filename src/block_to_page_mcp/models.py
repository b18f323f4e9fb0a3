"""Data models and errors for the Logseq block-to-page server."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator


class APIConfiguration(BaseModel):
    """Connection settings for the Logseq HTTP API server."""

    base_url: str = "http://127.0.0.1:12315"
    api_token: SecretStr
    timeout: float = 30.0
    # Seconds slept before each API call (rate limit protection)
    request_delay: float = 0.0


class LogseqBlock(BaseModel):
    """A Logseq block as returned by logseq.Editor.getBlock."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    uuid: str
    content: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    children: list["LogseqBlock"] = Field(default_factory=list)
    pre_block: bool | None = Field(default=False, validation_alias=AliasChoices("preBlock?", "pre_block"))
    refs: list[dict[str, Any]] = Field(default_factory=list)
    page: dict[str, Any] | None = None

    @field_validator("properties", mode="before")
    @classmethod
    def _null_properties(cls, value: Any) -> Any:
        return value or {}

    @field_validator("children", mode="before")
    @classmethod
    def _normalize_children(cls, value: Any) -> Any:
        """Accept both nested blocks and ["uuid", id] pairs.

        Without includeChildren the API returns children as uuid pairs; they
        are kept as content-less stubs so ordering is never lost.
        """
        if not value:
            return []
        normalized = []
        for child in value:
            if isinstance(child, (list, tuple)) and len(child) == 2 and child[0] == "uuid":
                normalized.append({"uuid": child[1]})
            else:
                normalized.append(child)
        return normalized

    @property
    def ref_count(self) -> int:
        """Number of references held by this block (property keys included)."""
        return len(self.refs)

    @property
    def child_ids(self) -> list[str]:
        return [child.uuid for child in self.children]

    @property
    def first_line(self) -> str:
        return self.content.split("\n")[0].strip()


LogseqBlock.model_rebuild()


class LogseqPage(BaseModel):
    """A Logseq page as returned by logseq.Editor.getPage."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: int | None = None
    uuid: str | None = None
    name: str
    original_name: str | None = Field(
        default=None, validation_alias=AliasChoices("originalName", "original_name")
    )
    properties: dict[str, Any] | None = None

    @property
    def display_name(self) -> str:
        return self.original_name or self.name


class ConversionResult(BaseModel):
    """Outcome of a single block-to-page conversion."""

    status: str  # converted | skipped
    page_name: str | None = None
    moved_block_ids: list[str] = Field(default_factory=list)
    page_properties: dict[str, Any] = Field(default_factory=dict)
    anchor_removed: bool = False
    reason: str | None = None


# Errors


class LogseqError(Exception):
    """Base error for the Logseq client and the conversion engine."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, "details": self.details}


class AuthenticationError(LogseqError):
    """API token rejected by the Logseq HTTP server."""


class NetworkError(LogseqError):
    """Transport or server-side failure."""


class RateLimitError(LogseqError):
    """The server asked us to slow down."""

    def __init__(self, retry_after: int | None = None):
        super().__init__("Rate limit exceeded", {"retry_after": retry_after})
        self.retry_after = retry_after


class TimeoutError(LogseqError):  # noqa: A001
    """An operation kept timing out after all retries."""

    def __init__(self, operation: str):
        super().__init__(f"Operation timed out: {operation}", {"operation": operation})
        self.operation = operation


class NodeNotFoundError(LogseqError):
    """Block or page does not exist."""

    def __init__(self, node_id: str, message: str = "Block not found"):
        super().__init__(f"{message}: {node_id}", {"node_id": node_id})
        self.node_id = node_id


class RelocationError(LogseqError):
    """A child block could not be moved; relocation stopped at that child."""

    operation = "move block error"

    def __init__(self, block_id: str, anchor_id: str, moved: list[str] | None = None):
        super().__init__(
            f"{self.operation}: {block_id} (after {anchor_id})",
            {"operation": self.operation, "block_id": block_id, "anchor_id": anchor_id, "moved": list(moved or [])},
        )
        self.block_id = block_id
        self.anchor_id = anchor_id
        self.moved = list(moved or [])


class ConsistencyTimeoutError(LogseqError):
    """The reference count never dropped as expected after property removal."""

    def __init__(self, block_id: str, baseline: int, expected_drop: int, observed: int | None, attempts: int):
        super().__init__(
            f"Reference count of {block_id} did not drop from {baseline} by {expected_drop} "
            f"(last seen {observed}) after {attempts} attempts",
            {
                "block_id": block_id,
                "baseline": baseline,
                "expected_drop": expected_drop,
                "observed": observed,
                "attempts": attempts,
            },
        )
        self.block_id = block_id
        self.baseline = baseline
        self.expected_drop = expected_drop
        self.observed = observed
        self.attempts = attempts


class MalformedPropertyError(LogseqError, ValueError):
    """A property key or value cannot be written in the key:: value line format."""

    def __init__(self, key: str, reason: str = "value contains a line break"):
        super().__init__(f"Malformed property {key!r}: {reason}", {"key": key})
        self.key = key
