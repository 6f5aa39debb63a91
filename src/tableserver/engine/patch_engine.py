"""Patch engine — applies path-addressed overwrites to JSON documents.

The path ``"items.2.name"`` is walked key by key:

- a single-key path whose value is a list replaces that list wholesale
  (inventories, wall sets and stroke lists are always sent whole);
- a numeric key against a list grows the list with ``{}`` fillers until the
  index exists, then descends into it;
- any other key descends into a dict, replacing a missing or scalar child
  with ``{}`` first.

Applying the same patch twice yields the same document: every operation is
a plain overwrite.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable

from tableserver.models.patch import Document, Patch
from tableserver.util.errors import ValidationError


def split_path(path: str) -> list[str]:
    """Split a patch path into its keys."""
    return path.split(".")


def apply_patch(doc: Document, patch: Patch) -> None:
    """Apply ``patch`` to ``doc`` in place.

    Raises:
        ValidationError: If the path addresses a list with a non-numeric or
            negative key. Callers must not mix key kinds against a list.
    """
    keys = split_path(patch.path)
    value = copy.deepcopy(patch.value)

    if len(keys) == 1 and isinstance(value, list):
        doc[keys[0]] = value
        return

    current: Any = doc
    for key in keys[:-1]:
        current = _descend(current, key, patch.path)

    _assign(current, keys[-1], value, patch.path)


def apply_patches(doc: Document, patches: Iterable[Patch]) -> None:
    """Apply a sequence of patches in order."""
    for patch in patches:
        apply_patch(doc, patch)


def _descend(node: Any, key: str, path: str) -> Any:
    if isinstance(node, list):
        index = _list_index(key, path)
        _grow(node, index)
        if not isinstance(node[index], (dict, list)):
            node[index] = {}
        return node[index]

    child = node.get(key)
    if not isinstance(child, (dict, list)):
        child = {}
        node[key] = child
    return child


def _assign(node: Any, key: str, value: Any, path: str) -> None:
    if isinstance(node, list):
        index = _list_index(key, path)
        _grow(node, index)
        node[index] = value
    else:
        node[key] = value


def _list_index(key: str, path: str) -> int:
    if not (key.isascii() and key.isdigit()):
        raise ValidationError(f"Key {key!r} in path {path!r} does not index an array")
    return int(key)


def _grow(items: list[Any], index: int) -> None:
    while len(items) <= index:
        items.append({})
