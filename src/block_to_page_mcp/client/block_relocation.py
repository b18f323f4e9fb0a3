"""
Order-preserving block relocation and reference-count consistency polling.

relocate_blocks
  Moves an ordered list of blocks so they end up as consecutive siblings
  right after an anchor block, in their original order. Each block is
  dropped immediately after the previous one (a moving cursor), so no
  reorder pass is needed. The first failing move stops the sequence:
  later blocks are never attempted and earlier moves are not undone.

wait_for_ref_count_drop
  Property removal updates Logseq's reference index asynchronously. After
  removing K properties we re-fetch the block on a fixed interval until
  its reference count has dropped by K (clamped at the baseline), and
  give up with ConsistencyTimeoutError after a bounded number of attempts
  or a wall-clock timeout.

Both functions take the store operations as callables (move_block,
get_block), so they can run against the HTTP client or any fake.
"""
import asyncio
import time
from typing import Awaitable, Callable, List, Optional

from ..models import ConsistencyTimeoutError, LogseqBlock, NodeNotFoundError, RelocationError
from .api_client_core import _ClientLogger

MoveBlock = Callable[..., Awaitable[None]]
GetBlock = Callable[..., Awaitable[Optional[LogseqBlock]]]


async def relocate_blocks(
    block_ids: List[str],
    anchor_id: str,
    move_block: MoveBlock,
    log_debug_msg: Optional[Callable[[str], None]] = None,
) -> List[str]:
    """Move ``block_ids`` to follow ``anchor_id`` as siblings, keeping their order.

    Returns the ids moved (all of them). Raises RelocationError naming the
    block whose move failed; ``error.moved`` lists the blocks already moved.
    """
    logger = _ClientLogger("RELOCATE")

    def log(msg: str) -> None:
        logger.debug(msg)
        if log_debug_msg:
            log_debug_msg(msg)

    moved: List[str] = []
    cursor = anchor_id
    for block_id in block_ids:
        try:
            log(f">>> MOVING {block_id} after {cursor}")
            await move_block(block_id, cursor, children=False, before=False)
        except Exception as e:
            logger.error(f"moveBlock error for {block_id}: {type(e).__name__}: {e}")
            raise RelocationError(block_id, cursor, moved) from e
        moved.append(block_id)
        cursor = block_id

    log(f"relocation complete - moved {len(moved)} blocks after {anchor_id}")
    return moved


async def wait_for_ref_count_drop(
    block_id: str,
    baseline: int,
    removed_keys: int,
    get_block: GetBlock,
    poll_interval: float = 0.1,
    max_attempts: int = 50,
    timeout: float = 10.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> LogseqBlock:
    """Poll ``get_block`` until the block's ref count is <= baseline - expected drop.

    The expected drop is ``removed_keys`` clamped to ``baseline``. Returns the
    first snapshot that satisfies it (fetched with children).
    """
    logger = _ClientLogger("CONSISTENCY")
    expected_drop = max(0, min(removed_keys, baseline))
    target = baseline - expected_drop
    deadline = clock() + timeout

    observed: Optional[int] = None
    attempts = 0
    while attempts < max_attempts:
        attempts += 1
        snapshot = await get_block(block_id, include_children=True)
        if snapshot is None:
            raise NodeNotFoundError(block_id, "Block disappeared while waiting for reference update")

        observed = snapshot.ref_count
        logger.debug(f"poll {attempts}/{max_attempts}: {block_id} refs={observed} target<={target}")
        if observed <= target:
            return snapshot

        if attempts >= max_attempts or clock() + poll_interval > deadline:
            break
        await sleep(poll_interval)

    logger.warning(f"reference count of {block_id} stuck at {observed} (baseline {baseline}, expected drop {expected_drop})")
    raise ConsistencyTimeoutError(block_id, baseline, expected_drop, observed, attempts)
