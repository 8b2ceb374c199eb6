"""Pack compilation: source tree → runtime pack files.

Every pack directory under the source root is loaded and validated first,
which also populates the link index. Only then are documents finalized and
their links resolved to ids, and only once every pack has been finalized is
anything written.
"""

import copy
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from compendium_builder.document_kinds import classify, is_actor_source, is_item_source, is_physical_item
from compendium_builder.domain.constants import (
    APPROVED_IMAGE_EXTENSIONS,
    FEAT_CATEGORIES,
    GRANT_ITEM_TYPES,
    INLINE_IMAGE_PREFIX,
    SIZES,
)
from compendium_builder.domain.enums import DocumentKind
from compendium_builder.domain.errors import IntegrityError, PolicyError, StructuralError
from compendium_builder.domain.field_walker import get_path, walk_field_paths
from compendium_builder.domain.models import BuildOptions, BuildResult, PackMetadata
from compendium_builder.domain.slugify import slugify
from compendium_builder.embedded.item_compression import CanonicalItemCache, ItemInflater
from compendium_builder.output.json_writer import PackWriter
from compendium_builder.project_config import ProjectConfig
from compendium_builder.resolution.link_index import LinkIndex
from compendium_builder.resolution.link_resolver import LinkResolver
from compendium_builder.resolution.redirects import RedirectTable, write_resolved_redirects
from compendium_builder.source_reader import PackSourceReader, SourceFile, compiled_folders_path

logger = logging.getLogger(__name__)


class CompendiumPack:
    """One pack loaded from source form and validated.

    Constructing a pack registers all of its documents in the link index and
    inflates deflated embedded items; ``finalize_all`` then produces the
    compiled documents.

    Args:
        pack_dir: Source directory of the pack.
        documents: Parsed document sources.
        folders: Folder records from ``_folders.json``.
        config: Project configuration.
        link_index: Shared link index (population phase).
        inflater: Inflater for deflated embedded items.
    """

    def __init__(
        self,
        pack_dir: str,
        documents: list[dict[str, Any]],
        folders: list[dict[str, Any]],
        config: ProjectConfig,
        link_index: LinkIndex,
        inflater: ItemInflater,
    ) -> None:
        metadata = config.metadata_for(os.path.basename(pack_dir))
        if metadata is None:
            raise IntegrityError(f"Compendium at {pack_dir} has no metadata in the project manifest")

        self.metadata: PackMetadata = metadata
        self.folders = folders
        self._folder_ids = {folder['_id'] for folder in folders}
        self._config = config
        self._system_id = config.system_id

        self._check_folders()
        self._check_unique_ids(documents)

        link_index.register_pack(metadata.name)
        for doc in documents:
            link_index.register(metadata.name, doc['_id'], doc['name'])

        self.documents: list[dict[str, Any]] = []
        for doc in documents:
            doc = copy.deepcopy(doc)
            if is_actor_source(doc):
                doc['items'] = [inflater.inflate(item, source=doc['name']) for item in doc['items']]
            self._validate(doc)
            self.documents.append(doc)

    @classmethod
    def load_json(
        cls,
        pack_dir: str,
        config: ProjectConfig,
        link_index: LinkIndex,
        inflater: ItemInflater,
        reader: PackSourceReader | None = None,
    ) -> 'CompendiumPack':
        """Load a pack directory: one JSON file per document, subfolders allowed.

        Raises:
            StructuralError: For unparseable files or documents without name or id.
            IntegrityError: If a filename does not match its document's name, or
                two documents map to the same filename.
        """
        reader = reader or PackSourceReader()
        sources = reader.read_sources(pack_dir)

        filenames: dict[str, str] = {}
        for source in sources:
            _check_source_file(source)
            previous = filenames.get(source.filename)
            if previous is not None:
                raise IntegrityError(
                    f"Duplicate filename {source.filename} in {pack_dir}: {previous} and {source.path}"
                )
            filenames[source.filename] = source.path

        documents = [source.document for source in sources]
        folders = reader.read_folders(pack_dir)
        logger.debug("Loaded %d documents from %s", len(documents), pack_dir)
        return cls(pack_dir, documents, folders, config, link_index, inflater)

    @property
    def kind(self) -> DocumentKind:
        return self.metadata.kind

    def finalize_all(self, resolver: LinkResolver) -> list[dict[str, Any]]:
        """Compiled form of every document, ordered by ``_id``."""
        return [self._finalize(doc, resolver) for doc in sorted(self.documents, key=lambda d: d['_id'])]

    # ── Validation ───────────────────────────────────────────────────────

    def _check_folders(self) -> None:
        for folder in self.folders:
            parent = folder.get('folder')
            if parent is not None and parent not in self._folder_ids:
                raise IntegrityError(
                    f"Folder '{folder.get('name')}' in {self.metadata.name} has unknown parent {parent}"
                )

    def _check_unique_ids(self, documents: list[dict[str, Any]]) -> None:
        seen: dict[str, str] = {}
        for doc in documents:
            other = seen.get(doc['_id'])
            if other is not None:
                raise IntegrityError(
                    f"The ID \"{doc['_id']}\" of '{doc['name']}' collides with '{other}' "
                    f"in pack {self.metadata.name}"
                )
            seen[doc['_id']] = doc['name']

    def _validate(self, doc: dict[str, Any]) -> None:
        name = doc['name']
        folder = doc.get('folder')
        if folder is not None and folder not in self._folder_ids:
            raise IntegrityError(f"'{name}' in {self.metadata.name} references unknown folder {folder}")

        for img in self._image_paths(doc):
            self._assert_image(img, name)

        if self.kind is DocumentKind.MACRO and doc.get('type') == 'script' and doc.get('ownership') is None:
            doc['ownership'] = {'default': 1}

        if is_actor_source(doc) and doc['type'] in ('npc', 'hazard'):
            self._assert_linked_weapons(doc)

    def _image_paths(self, doc: dict[str, Any]) -> list[str]:
        paths = walk_field_paths(doc, 'img')
        if is_actor_source(doc):
            paths.extend(walk_field_paths(doc, 'items[].img'))
        elif is_item_source(doc) and doc['type'] in GRANT_ITEM_TYPES:
            paths.extend(walk_field_paths(doc, 'system.items{}.img'))
        return paths

    def _assert_image(self, img: str, name: str) -> None:
        if img.startswith(INLINE_IMAGE_PREFIX):
            raise PolicyError(f"'{name}' in {self.metadata.name} has base64-encoded image data")
        if img == '':
            return
        if img not in self._config.core_icons:
            prefix = f"systems/{self._system_id}/"
            relative = img[len(prefix):] if img.startswith(prefix) else img
            if not os.path.isfile(os.path.join(self._config.assets_dir, relative)):
                raise IntegrityError(f"'{name}' in {self.metadata.name} has an image that does not exist: {img}")
        if not img.endswith(APPROVED_IMAGE_EXTENSIONS):
            raise PolicyError(f"'{name}' in {self.metadata.name} has an image of an unapproved format: {img}")

    def _assert_linked_weapons(self, actor: dict[str, Any]) -> None:
        weapons = {item.get('_id') for item in actor['items'] if item.get('type') == 'weapon'}
        for item in actor['items']:
            if item.get('type') != 'melee':
                continue
            linked = get_path(item, f'flags.{self._system_id}.linkedWeapon')
            if linked and linked not in weapons:
                raise IntegrityError(
                    f"'{item.get('name')}' on '{actor['name']}' is linked to a missing weapon {linked}"
                )

    # ── Finalization ─────────────────────────────────────────────────────

    def _finalize(self, source: dict[str, Any], resolver: LinkResolver) -> dict[str, Any]:
        doc = copy.deepcopy(source)
        if doc.get('flags') is None:
            doc['flags'] = {}
        migration = {'version': self._config.schema_version, 'previous': None}

        if is_actor_source(doc):
            doc['effects'] = []
            doc['flags']['core'] = {'sourceId': self._source_id(doc)}
            if doc['type'] in ('npc', 'vehicle'):
                size = get_path(doc, 'system.traits.size.value')
                if size not in SIZES:
                    raise IntegrityError(f"Actor size on '{doc['name']}' must be one of {', '.join(SIZES)}, not {size!r}")
            doc['system']['_migration'] = dict(migration)
            for item in doc['items']:
                item['effects'] = []
                if isinstance(item.get('system'), dict):
                    item['system']['_migration'] = dict(migration)
        elif is_item_source(doc):
            doc['effects'] = []
            doc['flags']['core'] = {'sourceId': self._source_id(doc)}
            doc['system']['slug'] = slugify(doc['name'])
            doc['system']['_migration'] = dict(migration)
            if is_physical_item(doc):
                doc['system']['equipped'] = {'carryType': 'worn'}
            elif doc['type'] == 'feat':
                category = get_path(doc, 'system.category')
                if category not in FEAT_CATEGORIES:
                    raise IntegrityError(f"Unrecognized feat category on '{doc['name']}': {category!r}")

        return resolver.to_ids(doc, classify(doc, self.metadata.type))

    def _source_id(self, doc: dict[str, Any]) -> str:
        return f"Compendium.{self._system_id}.{self.metadata.name}.{self.metadata.type}.{doc['_id']}"


def _check_source_file(source: SourceFile) -> None:
    document = source.document
    name = document.get('name')
    if not isinstance(name, str) or not name:
        raise StructuralError(f"Document in {source.path} has no name")
    if not isinstance(document.get('_id'), str) or not document['_id']:
        raise StructuralError(f"Document '{name}' in {source.path} has no _id")
    expected = f"{slugify(name)}.json"
    if source.filename != expected:
        raise IntegrityError(f"Filename {source.path} does not match the name '{name}' (expected {expected})")


def build_packs(config: ProjectConfig, options: BuildOptions) -> BuildResult:
    """Compile every pack of the project.

    Args:
        config: Project configuration.
        options: Build options.

    Returns:
        BuildResult with per-pack document counts.

    Raises:
        PackError: On any fatal problem; in that case nothing is written.
    """
    start_time = time.time()
    reader = PackSourceReader()
    writer = PackWriter()

    pack_dirs = reader.list_pack_dirs(config.source_dir)
    if not pack_dirs:
        raise StructuralError(f"No pack data found in {config.source_dir}")

    link_index = LinkIndex()
    for metadata in config.packs:
        link_index.register_pack(metadata.name)
    inflater = ItemInflater(CanonicalItemCache(config, reader), config.system_id)

    packs = [
        CompendiumPack.load_json(os.path.join(config.source_dir, dirname), config, link_index, inflater, reader)
        for dirname in pack_dirs
    ]
    link_index.mark_populated()

    redirects = RedirectTable.load(config.redirects_path, config.system_id)
    resolved_redirects = redirects.resolve(link_index)
    resolver = LinkResolver(link_index, config.system_id, redirects)

    with ThreadPoolExecutor(max_workers=options.workers) as executor:
        futures = [executor.submit(pack.finalize_all, resolver) for pack in packs]
        compiled = [future.result() for future in futures]

    counts: dict[str, int] = {}
    for pack, documents in zip(packs, compiled):
        dirname = pack.metadata.dirname
        if options.as_json:
            writer.write_json_pack(os.path.join(config.json_dir, f"{pack.metadata.name}.json"), documents)
        else:
            writer.write_compiled_pack(os.path.join(config.out_dir, dirname), documents)
            writer.write_compiled_folders(compiled_folders_path(config.out_dir, dirname), pack.folders)
        counts[pack.metadata.name] = len(documents)
        logger.info("Built %s with %d documents", dirname, len(documents))

    write_resolved_redirects(resolved_redirects, config.out_dir)

    logger.info("Build finished in %.2fs", time.time() - start_time)
    return BuildResult(
        packs_built=len(packs),
        documents_written=sum(counts.values()),
        output_dir=config.json_dir if options.as_json else config.out_dir,
        counts=counts,
    )
