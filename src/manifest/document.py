"""Format-preserving manifest document built on tomlkit.

``tomlkit`` keeps comments, whitespace, key order and string styles, so an
unmodified document serialises back to its original bytes and an edit only
changes the lines it touches.

Trailing newline: a manifest that does not end with a newline gains one the
first time an entry or table is appended to it. Dropping the last table of a
manifest also drops the blank lines in front of it, so the file ends with a
single newline. No other byte outside an edited region changes.
"""
from __future__ import annotations

import logging
from typing import Any, Iterator, Optional, Sequence, Tuple

import tomlkit
from tomlkit.exceptions import TOMLKitError
from tomlkit.items import InlineTable, Item, String, Table

from common.errors import DocumentParseError
from common.fs import read_text
from common.logging_utils import extra_context, is_debug_enabled

logger = logging.getLogger(__name__)

TablePath = Tuple[str, ...]


def unwrap(value: Any) -> Any:
    """Plain Python value for a tomlkit item."""
    if hasattr(value, "unwrap"):
        return value.unwrap()
    return value


def _is_super_table(table: Any) -> bool:
    attr = getattr(table, "is_super_table", None)
    if callable(attr):
        return bool(attr())
    return bool(attr)


def _is_table(value: Any) -> bool:
    return isinstance(value, (Table, InlineTable, dict))


def _styled(old: Any, value: Any) -> Any:
    """Build the new item for ``value``, keeping a string's quoting style."""
    if isinstance(old, String) and isinstance(value, str) and not isinstance(value, String):
        literal = old.as_string().startswith("'") and "'" not in value
        return tomlkit.string(value, literal=literal)
    return value


class ManifestDocument:
    """One manifest file: the original text plus its editable tomlkit tree."""

    def __init__(self, text: str, path: Optional[str] = None):
        self.path = path
        self.original_text = text
        self._doc = self._parse(text)

    def _parse(self, text: str) -> tomlkit.TOMLDocument:
        try:
            return tomlkit.parse(text)
        except TOMLKitError as exc:
            raise DocumentParseError(f"failed to parse {self.path or 'manifest'}: {exc}") from exc

    @classmethod
    def load(cls, path: str) -> "ManifestDocument":
        try:
            text = read_text(path)
        except OSError as exc:
            raise DocumentParseError(f"failed to read {path}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise DocumentParseError(f"{path} is not valid UTF-8: {exc}") from exc
        return cls(text, path)

    @classmethod
    def parse(cls, text: str, path: Optional[str] = None) -> "ManifestDocument":
        return cls(text, path)

    @property
    def data(self) -> tomlkit.TOMLDocument:
        return self._doc

    def to_string(self) -> str:
        return self._doc.as_string()

    @property
    def is_modified(self) -> bool:
        return self.to_string() != self.original_text

    def __repr__(self) -> str:
        return f"ManifestDocument({self.path!r})"

    # Navigation

    def get_table(self, path: Sequence[str]) -> Optional[Any]:
        """Table (or inline table) at a dotted path, or None if any level is missing."""
        node: Any = self._doc
        for key in path:
            if not _is_table(node) or key not in node:
                return None
            node = node[key]
        return node if _is_table(node) else None

    def get_value(self, path: Sequence[str], key: str) -> Any:
        table = self.get_table(path)
        if table is None or key not in table:
            return None
        return table[key]

    def get_entry(self, path: Sequence[str], name: str) -> Any:
        return self.get_value(path, name)

    def iter_entries(self, path: Sequence[str]) -> Iterator[Tuple[str, Any]]:
        table = self.get_table(path)
        if table is None:
            return
        for key in list(table.keys()):
            yield key, table[key]

    # Primitives

    def _ensure_final_newline(self) -> None:
        text = self._doc.as_string()
        if text and not text.endswith("\n"):
            self._doc = self._parse(text + "\n")

    def ensure_table(self, path: Sequence[str]) -> Any:
        """Return the table at ``path``, creating missing levels at the end of the document.

        Intermediate levels that do not exist yet are created as super tables
        so only the innermost header is written.
        """
        existing = self.get_table(path)
        if existing is not None:
            return existing
        self._ensure_final_newline()
        node: Any = self._doc
        for depth, key in enumerate(path):
            if key in node:
                node = node[key]
                if not _is_table(node):
                    raise DocumentParseError(
                        f"`{'.'.join(path[:depth + 1])}` is not a table in {self.path or 'manifest'}"
                    )
                continue
            innermost = depth == len(path) - 1
            table = tomlkit.table() if innermost else tomlkit.table(is_super_table=True)
            node[key] = table
            node = node[key]
            if is_debug_enabled(logger):
                logger.debug(
                    "Created table",
                    extra=extra_context(
                        event="table_created",
                        component="document",
                        action="ensure_table",
                        target=".".join(path[:depth + 1]),
                    ),
                )
        return node

    def insert_entry(self, path: Sequence[str], name: str, value: Any) -> bool:
        """Add or replace ``name`` in the table at ``path``; False when nothing changed."""
        table = self.get_table(path)
        if table is not None and name in table:
            return self.replace_scalar(path, name, value)
        self._ensure_final_newline()
        table = self.ensure_table(path)
        table[name] = value
        return True

    def remove_entry(self, path: Sequence[str], name: str) -> bool:
        """Delete ``name`` from the table at ``path``.

        Tables emptied by the removal are dropped, walking up through super
        tables (``target.'cfg(..)'``) as they empty too.
        """
        table = self.get_table(path)
        if table is None or name not in table:
            return False
        before = self._doc.as_string()
        del table[name]
        dropped = False
        for depth in range(len(path), 0, -1):
            current = self.get_table(path[:depth])
            if current is None or len(current) > 0:
                break
            if depth < len(path) and not _is_super_table(current):
                break
            parent = self.get_table(path[:depth - 1]) if depth > 1 else self._doc
            del parent[path[depth - 1]]
            dropped = True
        if dropped:
            self._drop_trailing_separator(before)
        return True

    def _drop_trailing_separator(self, before: str) -> None:
        """Collapse the blank line left in front of a table dropped from the end.

        ``ensure_table`` separates a new table from the preceding content with
        a blank line that tomlkit attributes to that content, so it survives
        the table's deletion.
        """
        after = self._doc.as_string()
        if not before.startswith(after) or not after.strip():
            return
        newline = "\r\n" if "\r\n" in after else "\n"
        trimmed = after.rstrip("\r\n") + newline
        if trimmed != after:
            self._doc = self._parse(trimmed)

    def replace_scalar(self, path: Sequence[str], key: str, value: Any) -> bool:
        """Replace the value under ``key`` in place, keeping comments and string style."""
        table = self.get_table(path)
        if table is None:
            return self.insert_entry(path, key, value)
        if key not in table:
            table[key] = value
            return True
        old = table[key]
        if unwrap(old) == unwrap(value) and type(unwrap(old)) is type(unwrap(value)):
            return False
        table[key] = _styled(old, value)
        return True

    def set_inline_key(self, path: Sequence[str], name: str, key: str, value: Any) -> bool:
        """Set ``key`` inside the table-like entry ``name`` (inline, dotted or sub-table)."""
        entry = self.get_entry(path, name)
        if not _is_table(entry):
            raise DocumentParseError(f"`{name}` is not a table entry in {self.path or 'manifest'}")
        if key in entry:
            old = entry[key]
            if unwrap(old) == unwrap(value) and type(unwrap(old)) is type(unwrap(value)):
                return False
            entry[key] = _styled(old, value)
        else:
            entry[key] = value
        return True

    def remove_inline_key(self, path: Sequence[str], name: str, key: str) -> bool:
        entry = self.get_entry(path, name)
        if not _is_table(entry) or key not in entry:
            return False
        del entry[key]
        return True


def _render(value: Any) -> str:
    if isinstance(value, Item):
        return value.as_string()
    return tomlkit.item(value).as_string()


def new_inline_table(items: Sequence[Tuple[str, Any]]) -> InlineTable:
    """Inline table holding ``items`` in order, padded as ``{ key = value }``.

    Built from text so it carries the same spacing as inline tables parsed
    from existing manifests.
    """
    if not items:
        return tomlkit.inline_table()
    body = ", ".join(f"{tomlkit.key(key).as_string()} = {_render(value)}" for key, value in items)
    return tomlkit.parse(f"entry = {{ {body} }}\n")["entry"]


def new_array(values: Sequence[Any]) -> Item:
    array = tomlkit.array()
    for value in values:
        array.append(value)
    return array
