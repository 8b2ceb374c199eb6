"""Bidirectional name/id index over every pack of a project.

Links in source form name their target (``@UUID[Compendium.pf2e.spells-srd.Item.Fireball]``);
compiled links carry the target's id. The index answers both directions for
every pack, so it must be fully populated before the first resolution.
"""

import logging
import os
import threading

from compendium_builder.domain.errors import BrokenLink, IntegrityError
from compendium_builder.project_config import ProjectConfig
from compendium_builder.source_reader import PackSourceReader

logger = logging.getLogger(__name__)


class LinkIndex:
    """Maps pack name → {document id ↔ document name}.

    Population and resolution are separate phases: call ``register`` for every
    document of every pack, then ``mark_populated``. Resolution before that raises
    ``RuntimeError``. Registration stays open afterwards for documents first
    seen while processing (e.g. newly created entries found during extraction).
    """

    def __init__(self) -> None:
        self._id_to_name: dict[str, dict[str, str]] = {}
        self._name_to_id: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()
        self._populated = False

    # ── Population ───────────────────────────────────────────────────────

    def register_pack(self, pack: str) -> None:
        """Declare a pack so links into it fail on the token, not the pack."""
        with self._lock:
            self._id_to_name.setdefault(pack, {})
            self._name_to_id.setdefault(pack, {})

    def register(self, pack: str, doc_id: str, name: str) -> None:
        """Record that ``doc_id`` in ``pack`` is named ``name``.

        Re-registering the same pair is a no-op. A new name for a known id
        replaces the old one.

        Raises:
            IntegrityError: If another document in the pack already holds the name.
        """
        with self._lock:
            ids = self._id_to_name.setdefault(pack, {})
            names = self._name_to_id.setdefault(pack, {})

            holder = names.get(name)
            if holder is not None and holder != doc_id:
                raise IntegrityError(
                    f"Name '{name}' in pack '{pack}' is used by both {holder} and {doc_id}"
                )

            previous = ids.get(doc_id)
            if previous is not None and previous != name:
                names.pop(previous, None)
            ids[doc_id] = name
            names[name] = doc_id

    def register_missing(self, pack: str, doc_id: str, name: str) -> bool:
        """Register only if neither the id nor the name is known yet.

        Returns True when the entry was added.
        """
        with self._lock:
            ids = self._id_to_name.setdefault(pack, {})
            names = self._name_to_id.setdefault(pack, {})
            if doc_id in ids or name in names:
                return False
            ids[doc_id] = name
            names[name] = doc_id
            return True

    def mark_populated(self) -> None:
        """End the population phase and allow resolution."""
        self._populated = True
        logger.debug(
            "Link index populated: %d packs, %d documents",
            len(self._id_to_name), sum(len(ids) for ids in self._id_to_name.values()),
        )

    @property
    def populated(self) -> bool:
        return self._populated

    # ── Lookups ──────────────────────────────────────────────────────────

    def has_pack(self, pack: str) -> bool:
        return pack in self._id_to_name

    def pack_names(self) -> list[str]:
        return sorted(self._id_to_name)

    def name_for(self, pack: str, doc_id: str) -> str | None:
        return self._id_to_name.get(pack, {}).get(doc_id)

    def id_for(self, pack: str, name: str) -> str | None:
        return self._name_to_id.get(pack, {}).get(name)

    def resolve_to_id(self, pack: str, name: str, source: str = '') -> str:
        """Resolve a document name to its id.

        Raises:
            BrokenLink: If the pack or the name is unknown.
        """
        self._require_populated()
        if not self.has_pack(pack):
            raise BrokenLink(source, pack, name, 'unknown pack')
        doc_id = self.id_for(pack, name)
        if doc_id is None:
            raise BrokenLink(source, pack, name)
        return doc_id

    def resolve_to_name(self, pack: str, doc_id: str, source: str = '') -> str:
        """Resolve a document id to its name.

        Raises:
            BrokenLink: If the pack or the id is unknown.
        """
        self._require_populated()
        if not self.has_pack(pack):
            raise BrokenLink(source, pack, doc_id, 'unknown pack')
        name = self.name_for(pack, doc_id)
        if name is None:
            raise BrokenLink(source, pack, doc_id)
        return name

    # ── Loaders ──────────────────────────────────────────────────────────

    def load_source_tree(self, config: ProjectConfig, reader: PackSourceReader | None = None) -> int:
        """Register documents from the source tree that are not known yet.

        Used by extraction after the datastore has been loaded: source entries
        whose id or name the datastore already claims are stale and skipped.

        Returns:
            Number of documents added.
        """
        reader = reader or PackSourceReader()
        added = 0
        for pack in config.packs:
            self.register_pack(pack.name)
            pack_dir = config.pack_source_dir(pack)
            if not os.path.isdir(pack_dir):
                continue
            for source in reader.read_sources(pack_dir):
                doc_id, name = source.document.get('_id'), source.document.get('name')
                if isinstance(doc_id, str) and isinstance(name, str):
                    if self.register_missing(pack.name, doc_id, name):
                        added += 1
        return added

    def load_datastore(
        self,
        config: ProjectConfig,
        datastore_dir: str,
        reader: PackSourceReader | None = None,
    ) -> int:
        """Register every document of every compiled pack in a datastore.

        Returns:
            Number of documents registered.
        """
        reader = reader or PackSourceReader()
        count = 0
        for pack in config.packs:
            pack_path = os.path.join(datastore_dir, pack.dirname)
            if not os.path.isfile(pack_path):
                continue
            self.register_pack(pack.name)
            for document in reader.read_compiled(pack_path):
                doc_id, name = document.get('_id'), document.get('name')
                if isinstance(doc_id, str) and isinstance(name, str):
                    self.register(pack.name, doc_id, name)
                    count += 1
        return count

    # ── Private Methods ──────────────────────────────────────────────────

    def _require_populated(self) -> None:
        if not self._populated:
            raise RuntimeError("Link index queried before population finished")
