"""Logseq API client - Turn a block into a page."""

import re
from typing import Any

from ..config import ConversionSettings
from ..models import ConversionResult, LogseqBlock, NetworkError, NodeNotFoundError
from .api_client_core import LogseqClientCore, _ClientLogger
from .block_relocation import relocate_blocks, wait_for_ref_count_drop
from .property_helper import (
    extract_properties,
    merge_properties,
    scan_property_lines,
    serialize_properties,
    without_hidden_properties,
)

PAGE_REF_RE = re.compile(r"^\[\[(.*)\]\]$")


def page_name_from_first_line(first_line: str) -> str:
    """``[[Foo]]`` -> ``Foo``; anything else is used as-is."""
    match = PAGE_REF_RE.match(first_line)
    return match.group(1) if match else first_line


async def ensure_page(client: LogseqClientCore, page_name: str, create_first_block: bool = True) -> None:
    """Create ``page_name`` if missing.

    An existing page without any block cannot receive blocks through the
    API, so it is deleted and created again.
    """
    logger = _ClientLogger("CONVERT")
    page = await client.get_page(page_name)
    if page is None:
        logger.info(f"creating page {page_name!r}")
        await client.create_page(page_name, {}, create_first_block=create_first_block, redirect=False)
        return

    logger.debug(f"page {page_name!r} already exists")
    if not await client.get_page_blocks_tree(page_name):
        logger.info(f"page {page_name!r} is empty; recreating it")
        await client.delete_page(page_name)
        await client.create_page(page_name, {}, create_first_block=create_first_block, redirect=False)


async def collect_page_tags(client: LogseqClientCore, block: LogseqBlock, page_name: str) -> list[str]:
    """Page names referenced by ``block``, deduplicated, in reference order.

    The target page itself and the pages backing the block's own property
    keys are left out.
    """
    excluded = {page_name.lower()}
    excluded.update(key.lower() for key in block.properties)
    excluded.update(key.lower() for key, _ in scan_property_lines(block.content))
    tags: list[str] = []
    for ref in block.refs:
        ref_id = ref.get("id")
        if ref_id is None:
            continue
        name = await client.resolve_page_name(ref_id)
        if name and name.lower() not in excluded and name not in tags:
            tags.append(name)
    return tags


def _dedupe_tags(properties: dict[str, Any]) -> dict[str, Any]:
    tags = properties.get("tags")
    if isinstance(tags, list):
        seen: list[Any] = []
        for tag in tags:
            if tag not in seen:
                seen.append(tag)
        properties = {**properties, "tags": seen}
    return properties


async def move_properties_to_page(
    client: LogseqClientCore,
    src: LogseqBlock,
    page_name: str,
    first_block: LogseqBlock | None,
    settings: ConversionSettings,
) -> tuple[LogseqBlock, dict[str, Any]]:
    """Merge the block's properties into the page properties block.

    Returns the refreshed source block (properties removed) and the merged
    page properties that were written.
    """
    logger = _ClientLogger("CONVERT")

    # Raw keys come from the text (the resolved mapping only has normalized keys)
    block_props = without_hidden_properties(
        extract_properties(src.content, src.properties, settings.missing_property_policy)
    )
    # Fail on unwritable block properties before touching the page
    serialize_properties(block_props)

    if first_block is not None and first_block.pre_block:
        page_block = first_block
    else:
        page_block = await client.insert_block(
            first_block.uuid if first_block else page_name, "", is_page_block=True, before=True
        )
    if page_block is None:
        logger.warning(f"no page properties block on {page_name!r}; leaving block properties in place")
        return src, {}

    page_props = extract_properties(page_block.content, page_block.properties, settings.missing_property_policy)

    sources: list[dict[str, Any]] = [page_props, block_props]
    if settings.create_page_tags:
        tags = await collect_page_tags(client, src, page_name)
        if tags:
            sources.append({"tags": tags})
    merged = _dedupe_tags(merge_properties({}, *sources))

    await client.update_block(page_block.uuid, serialize_properties(merged))
    logger.info(f"wrote {len(merged)} page properties to {page_name!r}")

    if not block_props:
        return src, merged

    baseline = src.ref_count
    for key in block_props:
        await client.remove_block_property(src.uuid, key)

    refreshed = await wait_for_ref_count_drop(
        src.uuid,
        baseline,
        len(block_props),
        client.get_block,
        poll_interval=settings.consistency_poll_interval,
        max_attempts=settings.consistency_max_attempts,
        timeout=settings.consistency_timeout,
    )
    return refreshed, merged


async def turn_block_into_page_impl(
    client: LogseqClientCore,
    block_id: str,
    settings: ConversionSettings | None = None,
) -> ConversionResult:
    """Turn a block into a page named after its first line (implementation).

    The children of the block become the top-level blocks of the page, in
    order, and the block itself becomes a ``[[page]]`` reference. Steps run
    strictly one after another; a failure part-way leaves earlier writes in
    place.
    """
    settings = settings or ConversionSettings()
    logger = _ClientLogger("CONVERT")

    src = await client.get_block(block_id, include_children=True)
    if src is None:
        raise NodeNotFoundError(block_id)
    if not src.children and not settings.allow_without_children:
        logger.info(f"block {block_id} has no children; nothing to convert")
        return ConversionResult(status="skipped", reason="block has no children")

    first_line = src.first_line
    page_name = page_name_from_first_line(first_line).strip()
    if not page_name:
        return ConversionResult(status="skipped", reason="block has no title line")

    await ensure_page(client, page_name, settings.create_first_block)

    page_properties: dict[str, Any] = {}
    if settings.move_block_properties_to_page:
        blocks = await client.get_page_blocks_tree(page_name)
        src, page_properties = await move_properties_to_page(
            client, src, page_name, blocks[0] if blocks else None, settings
        )

    new_content = ""
    if not PAGE_REF_RE.match(first_line):
        new_content = src.content.replace(first_line, f"[[{first_line}]]", 1)

    blocks = await client.get_page_blocks_tree(page_name)
    anchor = blocks[-1] if blocks else await client.append_block_in_page(page_name, "")
    if anchor is None:
        raise NetworkError(f"could not find or create an anchor block on page {page_name!r}")

    moved = await relocate_blocks(src.child_ids, anchor.uuid, client.move_block)

    anchor_removed = False
    if anchor.content == "":
        await client.remove_block(anchor.uuid)
        anchor_removed = True

    if new_content:
        await client.update_block(src.uuid, new_content)
    await client.exit_editing_mode()

    if src.properties.get("collapsed"):
        await client.remove_block_property(src.uuid, "collapsed")

    if settings.redirect_to_page:
        await client.push_state("page", {"name": page_name})

    logger.info(f"turned block {block_id} into page {page_name!r} ({len(moved)} blocks moved)")
    return ConversionResult(
        status="converted",
        page_name=page_name,
        moved_block_ids=moved,
        page_properties=page_properties,
        anchor_removed=anchor_removed,
    )
