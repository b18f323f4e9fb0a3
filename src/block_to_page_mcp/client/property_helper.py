"""Block property helpers: scan, extract, merge and serialize.

Logseq keeps a block's properties twice: as ``key:: value`` lines inside the
raw block content, and as a resolved mapping on the block entity where keys
are normalized (``fix_issue`` -> ``fixissue``) and values are type-coerced
(page references become lists, numbers become numbers, ...).

Moving properties from a block to its page needs both views. The text gives
the original key spelling and order; the resolved mapping gives the
canonical values. The helpers below combine the two.

Property block rules (mirroring how Logseq itself reads a block):
- A property line is ``<indent><word chars>:: <value>``.
- The property block starts at the first property line.
- It ends at the first line that is not a property line. A blank line
  counts as an interruption, and property-looking lines after the
  interruption are plain content.

All helpers here are pure: no network, no logging, inputs never mutated.
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

from ..models import MalformedPropertyError

JsonDict = Dict[str, Any]

PROPERTY_LINE_RE = re.compile(r"\s*(\w+)::\s+(.*?)\s*", re.ASCII)
_KEY_RE = re.compile(r"\w+", re.ASCII)
_NON_LETTERS_RE = re.compile(r"[^a-z]")

MISSING_POLICIES = ("skip", "keep", "raw")

# Logseq bookkeeping keys; they belong to the block, never to a page
HIDDEN_PROPERTY_KEYS = frozenset({"collapsed", "id"})


def is_property_line(line: str) -> bool:
    return PROPERTY_LINE_RE.fullmatch(line) is not None


def first_property_line(lines: List[str]) -> int:
    """Index of the first property line, or ``len(lines)`` when there is none."""
    for index, line in enumerate(lines):
        if is_property_line(line):
            return index
    return len(lines)


def last_property_line(lines: List[str], first: Optional[int] = None) -> int:
    """Index of the last line in the unbroken property run starting at ``first``.

    Returns ``len(lines) - 1`` when the run reaches the end. When ``first``
    is ``len(lines)`` the result is ``len(lines) - 1``, an empty range.
    """
    if first is None:
        first = first_property_line(lines)
    for index in range(first, len(lines)):
        if not is_property_line(lines[index]):
            return index - 1
    return len(lines) - 1


def property_line_range(lines: List[str]) -> Tuple[int, int]:
    """Closed ``(first, last)`` range of property lines; empty when first > last."""
    first = first_property_line(lines)
    return first, last_property_line(lines, first)


def normalize_property_key(key: str) -> str:
    """Normalize a key the way Logseq stores it: lowercase, letters only.

    >>> normalize_property_key("Fix_Issue2")
    'fixissue'
    """
    return _NON_LETTERS_RE.sub("", key.lower())


def scan_property_lines(content: str) -> List[Tuple[str, str]]:
    """Return ``(raw_key, raw_value)`` pairs from the property block of ``content``."""
    lines = content.split("\n")
    first, last = property_line_range(lines)
    pairs: List[Tuple[str, str]] = []
    for line in lines[first:last + 1]:
        match = PROPERTY_LINE_RE.fullmatch(line)
        if match:
            pairs.append((match.group(1), match.group(2)))
    return pairs


def extract_properties(
    content: str,
    resolved: Optional[Mapping[str, Any]],
    missing: str = "skip",
) -> JsonDict:
    """Map each raw property key in ``content`` to its resolved value.

    Keys keep their original spelling and text order. Values come from
    ``resolved`` (looked up by normalized key) rather than from the text.

    ``missing`` decides what happens to a key that has no resolved value:
    ``skip`` drops it, ``keep`` emits ``None`` and ``raw`` falls back to the
    text value.
    """
    if missing not in MISSING_POLICIES:
        raise ValueError(f"missing must be one of {MISSING_POLICIES}, got {missing!r}")

    resolved = resolved or {}
    result: JsonDict = {}
    for raw_key, raw_value in scan_property_lines(content):
        normalized = normalize_property_key(raw_key)
        if normalized in resolved:
            result[raw_key] = copy.deepcopy(resolved[normalized])
        elif missing == "keep":
            result[raw_key] = None
        elif missing == "raw":
            result[raw_key] = raw_value
    return result


def without_hidden_properties(properties: Mapping[str, Any]) -> JsonDict:
    """Drop Logseq's bookkeeping keys (``collapsed``, ``id``) from ``properties``."""
    return {
        key: value
        for key, value in properties.items()
        if normalize_property_key(key) not in HIDDEN_PROPERTY_KEYS
    }


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _combine(existing: Any, incoming: Any) -> Any:
    if _is_sequence(incoming):
        if _is_sequence(existing):
            return [*existing, *copy.deepcopy(list(incoming))]
        return copy.deepcopy(list(incoming))
    if isinstance(incoming, Mapping):
        if isinstance(existing, Mapping):
            return merge_properties(existing, incoming)
        return copy.deepcopy(dict(incoming))
    return incoming


def merge_properties(target: Optional[Mapping[str, Any]], *sources: Optional[Mapping[str, Any]]) -> JsonDict:
    """Fold ``sources`` into ``target`` left to right and return a new dict.

    Per key, with ``existing`` from the running result and ``incoming`` from
    the source being folded:

    - list + list: concatenated (existing first); list over anything else
      replaces it.
    - mapping + mapping: merged recursively; mapping over anything else
      replaces it.
    - anything else: incoming replaces existing.

    Keys only in the running result are left alone. ``None`` sources are
    skipped. Neither ``target`` nor the sources are mutated, and the result
    shares no nested containers with them.
    """
    result: JsonDict = copy.deepcopy(dict(target or {}))
    for source in sources:
        if source is None:
            continue
        for key, incoming in source.items():
            result[key] = _combine(result.get(key), incoming)
    return result


def format_property_value(value: Any) -> str:
    """Render a resolved value in Logseq's property text syntax."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return ", ".join(format_property_value(item) for item in items)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


def serialize_properties(properties: Mapping[str, Any]) -> str:
    """Render ``properties`` as ``key:: value`` lines in mapping order.

    Raises MalformedPropertyError for a key that is not a plain word or for
    a value whose text would span more than one line.
    """
    lines: List[str] = []
    for key, value in properties.items():
        if not _KEY_RE.fullmatch(key):
            raise MalformedPropertyError(key, "key must consist of word characters only")
        text = format_property_value(value)
        if "\n" in text or "\r" in text:
            raise MalformedPropertyError(key)
        lines.append(f"{key}:: {text}")
    return "\n".join(lines)
