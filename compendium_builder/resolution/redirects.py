"""UUID redirect table for renamed or merged documents.

The table (``build/uuid-redirects.json``) maps a stale reference to its
replacement in name form::

    {"Compendium.pf2e.equipment-srd.Item.Old Name": "Compendium.pf2e.equipment-srd.Item.New Name"}

At build time stale references in source are rewritten to the replacement,
and the table is shipped beside the compiled packs with targets resolved to ids.
"""

import json
import logging
import os
import re

from compendium_builder.domain.constants import STRUCTURED_UUID_TEMPLATE, SYSTEM_PLACEHOLDER
from compendium_builder.domain.errors import StructuralError
from compendium_builder.resolution.link_index import LinkIndex

logger = logging.getLogger(__name__)

REDIRECTS_FILENAME = 'uuid-redirects.json'


class RedirectTable:
    """Stale reference → replacement reference, both in name form."""

    def __init__(self, entries: dict[str, str], system_id: str) -> None:
        self.entries = dict(entries)
        self._uuid_re = re.compile(STRUCTURED_UUID_TEMPLATE.replace(SYSTEM_PLACEHOLDER, re.escape(system_id)))
        self._system_id = system_id

    @classmethod
    def load(cls, path: str, system_id: str) -> 'RedirectTable':
        """Load a redirect table; a missing file yields an empty table."""
        if not os.path.isfile(path):
            return cls({}, system_id)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise StructuralError(f"Failed to parse redirect table {path}: {e}")
        if not isinstance(raw, dict) or not all(isinstance(v, str) for v in raw.values()):
            raise StructuralError(f"Redirect table {path} must map strings to strings")
        logger.debug("Loaded %d uuid redirects from %s", len(raw), path)
        return cls(raw, system_id)

    def __len__(self) -> int:
        return len(self.entries)

    def rewrite(self, uuid: str) -> str:
        """Return the replacement for a stale reference, or the reference unchanged."""
        return self.entries.get(uuid, uuid)

    def resolve(self, link_index: LinkIndex) -> dict[str, str]:
        """Resolve every replacement to its id form.

        Raises:
            StructuralError: If a replacement is not a compendium reference of this system.
            BrokenLink: If a replacement names an unknown document.
        """
        resolved: dict[str, str] = {}
        for stale, target in sorted(self.entries.items()):
            match = self._uuid_re.match(target)
            if not match:
                raise StructuralError(f"Redirect target for {stale} is not a compendium reference: {target}")
            doc_id = link_index.resolve_to_id(match['pack'], match['token'], source=REDIRECTS_FILENAME)
            resolved[stale] = f"Compendium.{self._system_id}.{match['pack']}.{match['doc_type']}.{doc_id}"
        return resolved


def write_resolved_redirects(resolved: dict[str, str], out_dir: str) -> str | None:
    """Write a resolved table next to the compiled packs. Returns the path, or None if empty."""
    if not resolved:
        return None
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, REDIRECTS_FILENAME)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(resolved, f, indent=2, ensure_ascii=False, sort_keys=True)
        f.write('\n')
    return path
