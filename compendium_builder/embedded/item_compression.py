"""Deflation and inflation of embedded items.

An actor's embedded spell or action is usually a verbatim copy of an item in
one of the item packs. In source form such a copy is stored as a small
record pointing at the canonical item, plus the few fields allowed to differ::

    {"_id": "...", "baseItem": "Compendium.pf2e.spells-srd.fireball", "sort": 200000,
     "type": "spell", "location": "<spellcasting entry id>"}

Inflation reverses this at build time. Which fields may differ, and how, is
declared per item type in ``ITEM_EXEMPTIONS``.
"""

import copy
import json
import logging
import os
import re
import threading
from typing import Any

from compendium_builder.cleanup.document_sanitizer import DocumentSanitizer
from compendium_builder.domain.constants import (
    CANONICAL_ONLY_KEYS,
    EMBEDDED_ORIGIN_FIELD,
    ITEM_EXEMPTIONS,
    PHYSICAL_ITEM_TYPES,
)
from compendium_builder.domain.enums import ExemptionKind
from compendium_builder.domain.errors import BrokenLink, StructuralError
from compendium_builder.domain.field_walker import delete_path, get_path, set_path
from compendium_builder.domain.slugify import slugify
from compendium_builder.project_config import ProjectConfig
from compendium_builder.source_reader import PackSourceReader

logger = logging.getLogger(__name__)

_MISSING = object()


def is_deflated(item: dict[str, Any]) -> bool:
    return isinstance(item, dict) and 'baseItem' in item


class CanonicalItemCache:
    """Read-through cache of canonical items from the source tree.

    Entries are keyed by ``(pack name, slug)`` and never evicted. Callers get
    deep copies, so cached items are never mutated.
    """

    def __init__(self, config: ProjectConfig, reader: PackSourceReader | None = None) -> None:
        self._config = config
        self._reader = reader or PackSourceReader()
        self._lock = threading.Lock()
        self._paths: dict[str, dict[str, str]] = {}
        self._items: dict[tuple[str, str], dict[str, Any] | None] = {}

    def get(self, pack: str, slug: str) -> dict[str, Any] | None:
        """Return a copy of the canonical item, or None if the pack has no such item."""
        key = (pack, slug)
        with self._lock:
            if key not in self._items:
                self._items[key] = self._load(pack, slug)
            item = self._items[key]
        return copy.deepcopy(item) if item is not None else None

    def get_by_name(self, pack: str, name: str) -> dict[str, Any] | None:
        return self.get(pack, slugify(name))

    def _load(self, pack: str, slug: str) -> dict[str, Any] | None:
        if pack not in self._paths:
            self._paths[pack] = self._index_pack(pack)
        path = self._paths[pack].get(slug)
        if path is None:
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                item = json.load(f)
        except json.JSONDecodeError as e:
            raise StructuralError(f"Failed to parse canonical item {path}: {e}")
        for key in CANONICAL_ONLY_KEYS:
            item.pop(key, None)
        logger.debug("Cached canonical item %s/%s", pack, slug)
        return item

    def _index_pack(self, pack: str) -> dict[str, str]:
        metadata = self._config.metadata_by_name(pack)
        if metadata is None or metadata.type != 'Item':
            return {}
        pack_dir = self._config.pack_source_dir(metadata)
        paths: dict[str, str] = {}
        for root, dirs, files in os.walk(pack_dir):
            dirs.sort()
            for file in sorted(files):
                if file.endswith('.json') and not file.startswith('_'):
                    paths.setdefault(file[:-len('.json')], os.path.join(root, file))
        return paths


class ItemInflater:
    """Expands deflated records back into full embedded items."""

    def __init__(self, cache: CanonicalItemCache, system_id: str) -> None:
        self._cache = cache
        self._system_id = system_id
        self._base_item_re = re.compile(rf'^Compendium\.{re.escape(system_id)}\.(?P<pack>[^.]+)\.(?P<slug>[^.]+)$')

    def inflate(self, item: dict[str, Any], source: str = '') -> dict[str, Any]:
        """Return the full item for a deflated record; other items pass through.

        Raises:
            StructuralError: If ``baseItem`` is malformed.
            BrokenLink: If the canonical item does not exist.
        """
        if not is_deflated(item):
            return item

        match = self._base_item_re.match(str(item['baseItem']))
        if not match:
            raise StructuralError(f"Malformed baseItem on '{source}': {item['baseItem']}")
        pack, slug = match['pack'], match['slug']
        canonical = self._cache.get(pack, slug)
        if canonical is None:
            raise BrokenLink(source, pack, slug, 'canonical item not found')

        result = canonical
        result['_id'] = item['_id']
        if 'sort' in item:
            result['sort'] = item['sort']
        for path, kind in ITEM_EXEMPTIONS.get(item.get('type'), {}).items():
            if kind is ExemptionKind.POSITIONAL:
                key = _record_key(path)
                if key in item:
                    set_path(result, path, item[key])
            elif kind is ExemptionKind.DELTA:
                value = get_path(item, path, _MISSING)
                if value is not _MISSING:
                    set_path(result, path, copy.deepcopy(value))
        set_path(result, EMBEDDED_ORIGIN_FIELD, f"Compendium.{self._system_id}.{pack}.Item.{canonical['name']}")
        return result


class ItemDeflater:
    """Replaces embedded items that match their canonical item with a record.

    Args:
        cache: Canonical item cache shared with the inflater.
        sanitizer: Sanitizer used to bring the embedded copy into top-level form.
        system_id: System id scoping origin references.
    """

    def __init__(self, cache: CanonicalItemCache, sanitizer: DocumentSanitizer, system_id: str) -> None:
        self._cache = cache
        self._sanitizer = sanitizer
        self._system_id = system_id
        self._inflater = ItemInflater(cache, system_id)
        self._origin_re = re.compile(rf'^Compendium\.{re.escape(system_id)}\.(?P<pack>[^.]+)\.Item\.(?P<name>.+)$')

    def deflate(self, item: dict[str, Any]) -> dict[str, Any]:
        """Return a deflated record for the item, or the item itself when it cannot be deflated."""
        item_type = item.get('type')
        exemptions = ITEM_EXEMPTIONS.get(item_type)
        if exemptions is None or item_type in PHYSICAL_ITEM_TYPES or is_deflated(item):
            return item

        origin = get_path(item, EMBEDDED_ORIGIN_FIELD)
        match = self._origin_re.match(origin) if isinstance(origin, str) else None
        if not match:
            return item
        pack, name = match['pack'], match['name']
        canonical = self._cache.get_by_name(pack, name)
        if canonical is None:
            logger.debug("No canonical item for %s in %s", name, pack)
            return item

        if not self._matches_canonical(item, canonical, exemptions):
            return item

        record = self._build_record(item, canonical, pack, exemptions)
        inflated = self._inflater.inflate(record, source=item.get('name', ''))
        if _strip_transient(inflated, exemptions) != _strip_transient(item, exemptions):
            logger.debug("Keeping '%s' inflated: record does not reproduce the item", item.get('name'))
            return item
        return record

    # ── Private Methods ──────────────────────────────────────────────────

    def _matches_canonical(
        self,
        item: dict[str, Any],
        canonical: dict[str, Any],
        exemptions: dict[str, ExemptionKind],
    ) -> bool:
        clone = copy.deepcopy(item)
        clone['_id'] = canonical.get('_id')
        clone.pop('_stats', None)
        clone.pop('sort', None)
        for path, kind in exemptions.items():
            if kind is ExemptionKind.TRANSIENT:
                delete_path(clone, path)
        clone = self._sanitizer.sanitize(clone, embedded=False)

        expected = copy.deepcopy(canonical)
        for path, kind in exemptions.items():
            if kind is ExemptionKind.DELTA:
                value = get_path(canonical, path, _MISSING)
                if value is _MISSING:
                    delete_path(clone, path)
                else:
                    set_path(clone, path, copy.deepcopy(value))
            elif kind in (ExemptionKind.POSITIONAL, ExemptionKind.TRANSIENT):
                delete_path(clone, path)
                delete_path(expected, path)

        if item.get('type') == 'spell':
            _apply_focus_quirk(clone, canonical)

        return _serialize(clone) == _serialize(expected)

    def _build_record(
        self,
        item: dict[str, Any],
        canonical: dict[str, Any],
        pack: str,
        exemptions: dict[str, ExemptionKind],
    ) -> dict[str, Any]:
        record: dict[str, Any] = {
            '_id': item['_id'],
            'baseItem': f"Compendium.{self._system_id}.{pack}.{slugify(canonical['name'])}",
            'type': item['type'],
        }
        if 'sort' in item:
            record['sort'] = item['sort']
        for path, kind in exemptions.items():
            value = get_path(item, path, _MISSING)
            if value is _MISSING:
                continue
            if kind is ExemptionKind.POSITIONAL:
                record[_record_key(path)] = value
            elif kind is ExemptionKind.DELTA and value != get_path(canonical, path, _MISSING):
                set_path(record, path, copy.deepcopy(value))
        return record


def _apply_focus_quirk(clone: dict[str, Any], canonical: dict[str, Any]) -> None:
    """Spell focus components: absent on the canonical spell means absent; otherwise defaults to False."""
    if get_path(canonical, 'system.components.focus', _MISSING) is _MISSING:
        delete_path(clone, 'system.components.focus')
    elif isinstance(get_path(clone, 'system.components'), dict):
        clone['system']['components'].setdefault('focus', False)


def _strip_transient(item: dict[str, Any], exemptions: dict[str, ExemptionKind]) -> dict[str, Any]:
    stripped = copy.deepcopy(item)
    for path, kind in exemptions.items():
        if kind is ExemptionKind.TRANSIENT:
            delete_path(stripped, path)
    return stripped


def _record_key(path: str) -> str:
    return path.rsplit('.', 1)[-1]


def _serialize(document: dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True, ensure_ascii=False)
