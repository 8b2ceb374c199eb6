"""JSON output for source files and compiled packs.

Source files are pretty-printed with a fixed key order so that unchanged
content always produces the same bytes; compiled packs are newline-delimited
JSON, one document per line, ordered by ``_id``.
"""

import json
import os
from typing import Any

from compendium_builder.domain.constants import ID_KEY_RE


def order_keys(data: Any) -> Any:
    """Recursively order object keys: named keys alphabetically, then opaque id keys."""
    if isinstance(data, dict):
        named = sorted(k for k in data if not ID_KEY_RE.match(k))
        ids = [k for k in data if ID_KEY_RE.match(k)]
        return {k: order_keys(data[k]) for k in named + ids}
    if isinstance(data, list):
        return [order_keys(item) for item in data]
    return data


def format_source_document(document: dict[str, Any]) -> str:
    """Source form: ordered keys, 4-space indent, trailing newline."""
    return json.dumps(order_keys(document), indent=4, ensure_ascii=False) + '\n'


def serialize_compiled(document: dict[str, Any]) -> str:
    """One compiled pack line (without the newline)."""
    return json.dumps(document, sort_keys=True, ensure_ascii=False, separators=(',', ':'))


class PackWriter:
    """Writes source files, compiled packs and folder files."""

    def write_source(self, path: str, document: dict[str, Any]) -> None:
        """Write one document in source form, creating parent folders."""
        os.makedirs(os.path.dirname(path), exist_ok=True)
        self._write_text(path, format_source_document(document))

    def write_folders(self, pack_dir: str, folders: list[dict[str, Any]]) -> str | None:
        """Write ``_folders.json`` into a source pack directory. Returns the path, or None if no folders."""
        if not folders:
            return None
        os.makedirs(pack_dir, exist_ok=True)
        path = os.path.join(pack_dir, '_folders.json')
        ordered = sorted(folders, key=lambda f: f.get('_id', ''))
        self._write_text(path, json.dumps(order_keys(ordered), indent=4, ensure_ascii=False) + '\n')
        return path

    def write_compiled_pack(self, path: str, documents: list[dict[str, Any]]) -> None:
        """Replace a compiled pack file with the given documents, ordered by ``_id``."""
        os.makedirs(os.path.dirname(path), exist_ok=True)
        if os.path.exists(path):
            os.remove(path)
        lines = [serialize_compiled(doc) for doc in sorted(documents, key=lambda d: d['_id'])]
        self._write_text(path, ''.join(f'{line}\n' for line in lines))

    def write_compiled_folders(self, path: str, folders: list[dict[str, Any]]) -> None:
        if os.path.exists(path):
            os.remove(path)
        if not folders:
            return
        ordered = sorted(folders, key=lambda f: f.get('_id', ''))
        self._write_text(path, json.dumps(ordered, sort_keys=True, ensure_ascii=False) + '\n')

    def write_json_pack(self, path: str, documents: list[dict[str, Any]]) -> None:
        """Write a compiled pack as a single JSON array (``build --json``)."""
        os.makedirs(os.path.dirname(path), exist_ok=True)
        ordered = sorted(documents, key=lambda d: d['_id'])
        self._write_text(path, json.dumps(ordered, indent=4, sort_keys=True, ensure_ascii=False) + '\n')

    def _write_text(self, path: str, text: str) -> None:
        with open(path, 'w', encoding='utf-8', newline='\n') as f:
            f.write(text)
