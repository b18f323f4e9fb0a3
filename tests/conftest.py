"""In-memory Logseq stand-in for exercising the conversion engine."""

from typing import Any

import pytest

from block_to_page_mcp.client.property_helper import is_property_line, normalize_property_key, PROPERTY_LINE_RE
from block_to_page_mcp.models import LogseqBlock, LogseqPage, NetworkError


class FakeLogseq:
    """Mimics the LogseqClientCore surface over plain dicts.

    Blocks live in ``self.blocks``; pages keep their ordered top-level block
    ids. Reference removal after ``remove_block_property`` becomes visible
    only after ``ref_lag`` further ``get_block`` calls for that block.
    """

    def __init__(self, ref_lag: int = 0):
        self.blocks: dict[str, dict[str, Any]] = {}
        self.pages: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.fail_moves: set[str] = set()
        self.ref_lag = ref_lag
        self._pending_ref_drops: dict[str, list[list[Any]]] = {}
        self._next_block = 0
        self._next_page = 100

    # setup helpers

    def add_page(self, name: str, blocks: int = 0) -> str:
        self._next_page += 1
        self.pages[name.lower()] = {"id": self._next_page, "name": name.lower(), "originalName": name, "blocks": []}
        for _ in range(blocks):
            self.add_block("", page=name)
        return name

    def add_block(
        self,
        content: str,
        page: str | None = None,
        parent: str | None = None,
        properties: dict[str, Any] | None = None,
        refs: list[str] | None = None,
        pre_block: bool = False,
    ) -> str:
        self._next_block += 1
        uuid = f"b{self._next_block}"
        self.blocks[uuid] = {
            "uuid": uuid,
            "content": content,
            "properties": dict(properties or {}),
            "children": [],
            "preBlock?": pre_block,
            "refs": [{"id": self.page_id(name)} for name in refs or []],
            "container": None,
        }
        if parent is not None:
            self._place(uuid, ("block", parent), len(self.blocks[parent]["children"]))
        elif page is not None:
            self._place(uuid, ("page", page.lower()), len(self.pages[page.lower()]["blocks"]))
        return uuid

    def page_id(self, name: str) -> int:
        if name.lower() not in self.pages:
            self.add_page(name)
        return self.pages[name.lower()]["id"]

    def siblings(self, container: tuple[str, str]) -> list[str]:
        kind, key = container
        return self.pages[key]["blocks"] if kind == "page" else self.blocks[key]["children"]

    def page_block_ids(self, name: str) -> list[str]:
        return list(self.pages[name.lower()]["blocks"])

    def _place(self, uuid: str, container: tuple[str, str], index: int) -> None:
        self.siblings(container).insert(index, uuid)
        self.blocks[uuid]["container"] = container

    def _detach(self, uuid: str) -> None:
        container = self.blocks[uuid]["container"]
        if container is not None:
            self.siblings(container).remove(uuid)
        self.blocks[uuid]["container"] = None

    def _entity(self, uuid: str, include_children: bool) -> dict[str, Any]:
        raw = self.blocks[uuid]
        data = {k: v for k, v in raw.items() if k != "container"}
        data["properties"] = dict(raw["properties"])
        data["refs"] = list(raw["refs"])
        if include_children:
            data["children"] = [self._entity(child, True) for child in raw["children"]]
        else:
            data["children"] = [["uuid", child] for child in raw["children"]]
        return data

    # Node store

    async def get_block(self, block_id: str, include_children: bool = False) -> LogseqBlock | None:
        self.calls.append(("get_block", block_id))
        if block_id not in self.blocks:
            return None
        pending = self._pending_ref_drops.get(block_id, [])
        for drop in pending:
            drop[0] -= 1
        for drop in [d for d in pending if d[0] < 0]:
            pending.remove(drop)
            if drop[1] in self.blocks[block_id]["refs"]:
                self.blocks[block_id]["refs"].remove(drop[1])
        return LogseqBlock.model_validate(self._entity(block_id, include_children))

    async def update_block(self, block_id: str, content: str) -> None:
        self.calls.append(("update_block", block_id, content))
        block = self.blocks[block_id]
        block["content"] = content
        properties = {}
        lines = content.split("\n")
        for line in lines:
            if not is_property_line(line):
                if properties:
                    break
                continue
            key, value = PROPERTY_LINE_RE.fullmatch(line).groups()
            properties[normalize_property_key(key)] = value
        if properties:
            block["properties"] = properties

    async def remove_block_property(self, block_id: str, key: str) -> None:
        self.calls.append(("remove_block_property", block_id, key))
        block = self.blocks[block_id]
        normalized = normalize_property_key(key)
        block["properties"].pop(normalized, None)
        block["content"] = "\n".join(
            line
            for line in block["content"].split("\n")
            if not (is_property_line(line) and normalize_property_key(PROPERTY_LINE_RE.fullmatch(line).group(1)) == normalized)
        )
        # The key's page is named by its raw spelling when the block refs it
        for name in (key.lower(), normalized):
            page = self.pages.get(name)
            ref = {"id": page["id"]} if page else None
            if ref in block["refs"]:
                self._pending_ref_drops.setdefault(block_id, []).append([self.ref_lag, ref])
                break

    async def move_block(self, block_id: str, target_id: str, children: bool = False, before: bool = False) -> None:
        self.calls.append(("move_block", block_id, target_id))
        if block_id in self.fail_moves:
            raise NetworkError(f"cannot move {block_id}")
        self._detach(block_id)
        if children:
            self._place(block_id, ("block", target_id), len(self.blocks[target_id]["children"]))
            return
        container = self.blocks[target_id]["container"]
        index = self.siblings(container).index(target_id)
        self._place(block_id, container, index if before else index + 1)

    async def insert_block(self, target: str, content: str = "", is_page_block: bool = False, before: bool = False) -> LogseqBlock | None:
        self.calls.append(("insert_block", target, content))
        uuid = self.add_block(content, pre_block=is_page_block)
        if target in self.blocks:
            container = self.blocks[target]["container"]
            index = self.siblings(container).index(target)
            self._place(uuid, container, index if before else index + 1)
        else:
            container = ("page", target.lower())
            self._place(uuid, container, 0 if before else len(self.siblings(container)))
        return await self.get_block(uuid)

    async def append_block_in_page(self, page_name: str, content: str = "") -> LogseqBlock | None:
        self.calls.append(("append_block_in_page", page_name, content))
        uuid = self.add_block(content, page=page_name)
        return await self.get_block(uuid)

    async def remove_block(self, block_id: str) -> None:
        self.calls.append(("remove_block", block_id))
        self._detach(block_id)
        del self.blocks[block_id]

    async def exit_editing_mode(self) -> None:
        self.calls.append(("exit_editing_mode",))

    # Page directory

    async def get_page(self, name_or_id: str | int) -> LogseqPage | None:
        for page in self.pages.values():
            if page["id"] == name_or_id or page["name"] == str(name_or_id).lower():
                return LogseqPage.model_validate(page)
        return None

    async def create_page(self, page_name: str, properties=None, create_first_block: bool = True, redirect: bool = False) -> LogseqPage | None:
        self.calls.append(("create_page", page_name))
        self.add_page(page_name, blocks=1 if create_first_block else 0)
        return await self.get_page(page_name)

    async def delete_page(self, page_name: str) -> None:
        self.calls.append(("delete_page", page_name))
        del self.pages[page_name.lower()]

    async def get_page_blocks_tree(self, page_name: str) -> list[LogseqBlock]:
        page = self.pages.get(page_name.lower())
        if page is None:
            return []
        return [LogseqBlock.model_validate(self._entity(uuid, True)) for uuid in page["blocks"]]

    async def resolve_page_name(self, ref_id: str | int) -> str | None:
        page = await self.get_page(ref_id)
        return page.display_name if page else None

    async def push_state(self, route: str, params: dict[str, Any] | None = None) -> None:
        self.calls.append(("push_state", route, params))


@pytest.fixture
def store() -> FakeLogseq:
    return FakeLogseq()
