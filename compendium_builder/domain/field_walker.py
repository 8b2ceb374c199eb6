"""Shared utility for walking dotted field paths with list and dict notation.

Supports paths like:
  - 'content'                            → simple key
  - 'system.description.value'           → nested keys
  - 'pages[].text.content'               → iterate list, access key
  - 'system.items{}.uuid'                → iterate dict values, access key
  - 'system.items{}.items{}.uuid'        → nested dict iteration
"""

from typing import Any, Callable


def walk_field_paths(data: dict[str, Any], path: str) -> list[str]:
    """Walk a dotted field path and collect all leaf string values.

    Args:
        data: Root dict to walk.
        path: Dotted path with [] for list iteration and {} for dict values.

    Returns:
        List of string values found at the leaf positions.
    """
    results: list[str] = []
    _collect(data, path.split('.'), 0, results)
    return results


def apply_to_field_paths(
    data: dict[str, Any],
    path: str,
    resolver: Callable[[str], str],
) -> None:
    """Walk a dotted field path and apply resolver to leaf string values in place.

    Args:
        data: Root dict to walk (mutated in place).
        path: Dotted path with [] for list iteration and {} for dict values.
        resolver: Function that transforms a string value.
    """
    _apply(data, path.split('.'), 0, resolver)


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Return the value at a plain dotted path, or default when any segment is missing."""
    node = data
    for key in path.split('.'):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """Set a plain dotted path, creating intermediate dicts as needed."""
    *parents, leaf = path.split('.')
    node = data
    for key in parents:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[leaf] = value


def delete_path(data: Any, path: str) -> bool:
    """Delete a plain dotted path. Returns True when something was removed."""
    *parents, leaf = path.split('.')
    node = data
    for key in parents:
        if not isinstance(node, dict):
            return False
        node = node.get(key)
    if isinstance(node, dict) and leaf in node:
        del node[leaf]
        return True
    return False


def _children(node: Any, key: str) -> tuple[str, Any]:
    """Split an iterating segment into its marker and the collection it names."""
    if key.endswith('[]'):
        items = node.get(key[:-2]) if isinstance(node, dict) else None
        return '[]', items if isinstance(items, list) else None
    if key.endswith('{}'):
        items = node.get(key[:-2]) if isinstance(node, dict) else None
        return '{}', items if isinstance(items, dict) else None
    return '', None


def _collect(node: Any, parts: list[str], idx: int, results: list[str]) -> None:
    if node is None or idx >= len(parts):
        return
    key = parts[idx]
    marker, items = _children(node, key)

    if marker:
        if items is None:
            return
        values = items if marker == '[]' else list(items.values())
        if idx == len(parts) - 1:
            results.extend(item for item in values if isinstance(item, str))
        else:
            for item in values:
                _collect(item, parts, idx + 1, results)
    elif idx == len(parts) - 1:
        if isinstance(node, dict) and key in node and isinstance(node[key], str):
            results.append(node[key])
    else:
        if isinstance(node, dict):
            _collect(node.get(key), parts, idx + 1, results)


def _apply(node: Any, parts: list[str], idx: int, resolver: Callable[[str], str]) -> None:
    if node is None or idx >= len(parts):
        return
    key = parts[idx]
    marker, items = _children(node, key)

    if marker:
        if items is None:
            return
        slots = range(len(items)) if marker == '[]' else list(items.keys())
        if idx == len(parts) - 1:
            for slot in slots:
                if isinstance(items[slot], str):
                    items[slot] = resolver(items[slot])
        else:
            for slot in slots:
                _apply(items[slot], parts, idx + 1, resolver)
    elif idx == len(parts) - 1:
        if isinstance(node, dict) and key in node and isinstance(node[key], str):
            node[key] = resolver(node[key])
    else:
        if isinstance(node, dict):
            _apply(node.get(key), parts, idx + 1, resolver)
