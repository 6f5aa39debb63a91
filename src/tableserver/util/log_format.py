"""Compact rendering of JSON values for log lines.

Patches routinely carry base64 data URLs (portraits) and long stroke point
lists; logging them verbatim floods the output. ``truncate_for_log`` walks
the value tree and shortens strings and containers.
"""

from __future__ import annotations

from typing import Any, Optional

DEFAULT_MAX_STRING = 80
DEFAULT_MAX_ITEMS = 10
DEFAULT_MAX_DEPTH = 6

_max_string = DEFAULT_MAX_STRING


def set_max_string(length: int) -> None:
    """Change the default string cut-off (``log_truncate_length`` in the config)."""
    global _max_string
    _max_string = max(1, length)


def truncate_for_log(
    value: Any,
    max_string: Optional[int] = None,
    max_items: int = DEFAULT_MAX_ITEMS,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Any:
    """Return a shortened copy of a JSON value.

    Strings longer than ``max_string`` keep their head plus a length marker,
    lists and dicts keep their first ``max_items`` entries plus a count of
    the rest, and anything nested deeper than ``max_depth`` collapses to
    ``"…"``.
    """
    if max_string is None:
        max_string = _max_string
    return _walk(value, max_string, max_items, max_depth)


def _walk(value: Any, max_string: int, max_items: int, depth: int) -> Any:
    if isinstance(value, str):
        if len(value) <= max_string:
            return value
        return f"{value[:max_string]}…(+{len(value) - max_string} chars)"

    if isinstance(value, (bool, int, float)) or value is None:
        return value

    if depth <= 0:
        return "…"

    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for i, (key, item) in enumerate(value.items()):
            if i >= max_items:
                out["…"] = f"+{len(value) - max_items} keys"
                break
            out[str(key)] = _walk(item, max_string, max_items, depth - 1)
        return out

    if isinstance(value, (list, tuple)):
        items = [_walk(item, max_string, max_items, depth - 1) for item in value[:max_items]]
        if len(value) > max_items:
            items.append(f"…(+{len(value) - max_items} items)")
        return items

    return _walk(str(value), max_string, max_items, depth)
