"""Pack extraction: runtime datastore → source tree.

Each selected pack is written to a temporary directory first; the pack
directories in the source tree are replaced only after every pack has been
extracted without error.
"""

import logging
import os
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from compendium_builder.cleanup.document_sanitizer import DocumentSanitizer
from compendium_builder.document_kinds import is_actor_source
from compendium_builder.domain.errors import IntegrityError, StructuralError
from compendium_builder.domain.models import ExtractOptions, ExtractResult, PackMetadata
from compendium_builder.domain.slugify import slugify
from compendium_builder.embedded.item_compression import CanonicalItemCache, ItemDeflater
from compendium_builder.output.json_writer import PackWriter
from compendium_builder.project_config import ProjectConfig, load_host_config
from compendium_builder.resolution.link_index import LinkIndex
from compendium_builder.resolution.link_resolver import LinkResolver
from compendium_builder.sorting.item_sorter import ItemSorter
from compendium_builder.source_reader import PackSourceReader

logger = logging.getLogger(__name__)

MAX_FOLDER_DEPTH = 3


@dataclass
class _Pipeline:
    """Per-run collaborators shared by every pack worker."""
    link_index: LinkIndex
    sanitizer: DocumentSanitizer
    resolver: LinkResolver
    sorter: ItemSorter
    deflater: ItemDeflater | None


class PackExtractor:
    """Extracts compiled packs into the source tree.

    Args:
        config: Project configuration.
        options: Extraction options.
    """

    def __init__(self, config: ProjectConfig, options: ExtractOptions) -> None:
        self._config = config
        self._options = options
        self._reader = PackSourceReader()
        self._writer = PackWriter()

    def run(self) -> ExtractResult:
        """Extract the selected packs.

        Raises:
            PackError: On any fatal problem; the source tree is then left untouched.
        """
        start_time = time.time()
        datastore = self.datastore_dir()
        selected = self._select_packs(datastore)
        pipeline = self._build_pipeline(datastore)

        temp_root = self._config.temp_dir
        if os.path.exists(temp_root):
            shutil.rmtree(temp_root)
        os.makedirs(temp_root)

        try:
            with ThreadPoolExecutor(max_workers=self._options.workers) as executor:
                futures = [executor.submit(self._extract_pack, pack, datastore, pipeline) for pack in selected]
                counts = {pack.name: future.result() for pack, future in zip(selected, futures)}

            for pack in selected:
                target = self._config.pack_source_dir(pack)
                if os.path.exists(target):
                    shutil.rmtree(target)
                os.makedirs(os.path.dirname(target), exist_ok=True)
                shutil.move(os.path.join(temp_root, pack.dirname), target)
        finally:
            if os.path.exists(temp_root):
                shutil.rmtree(temp_root)

        logger.info("Extraction finished in %.2fs", time.time() - start_time)
        return ExtractResult(
            packs_extracted=len(selected),
            documents_extracted=sum(counts.values()),
            source_dir=self._config.source_dir,
            counts=counts,
        )

    def datastore_dir(self) -> str:
        """Compiled packs to read: the host installation's, else the build output."""
        host = load_host_config(self._options.host_config)
        path = host.packs_dir(self._config.system_id) if host else self._config.out_dir
        if not os.path.isdir(path):
            raise StructuralError(f"No datastore found at {path}: run a build first or check the host config")
        logger.info("Reading packs from %s", path)
        return path

    # ── Setup ────────────────────────────────────────────────────────────

    def _select_packs(self, datastore: str) -> list[PackMetadata]:
        requested = self._options.pack.lower()
        if requested == 'all':
            packs = [p for p in self._config.packs if os.path.isfile(os.path.join(datastore, p.dirname))]
            if not packs:
                raise StructuralError(f"No compiled packs found in {datastore}")
            return packs

        pack = self._config.metadata_for(requested) or self._config.metadata_by_name(requested)
        if pack is None:
            raise StructuralError(f"Unknown pack '{self._options.pack}'")
        if not os.path.isfile(os.path.join(datastore, pack.dirname)):
            raise StructuralError(f"Pack '{pack.name}' has no compiled file in {datastore}")
        return [pack]

    def _build_pipeline(self, datastore: str) -> _Pipeline:
        link_index = LinkIndex()
        for pack in self._config.packs:
            link_index.register_pack(pack.name)
        link_index.load_datastore(self._config, datastore, self._reader)
        link_index.load_source_tree(self._config, self._reader)
        link_index.mark_populated()

        system_id = self._config.system_id
        sanitizer = DocumentSanitizer(system_id, log_warnings=self._options.log_warnings)
        deflater = None
        if self._options.deflate_items:
            deflater = ItemDeflater(CanonicalItemCache(self._config, self._reader), sanitizer, system_id)
        return _Pipeline(
            link_index=link_index,
            sanitizer=sanitizer,
            resolver=LinkResolver(link_index, system_id),
            sorter=ItemSorter(log_warnings=self._options.log_warnings),
            deflater=deflater,
        )

    # ── Per Pack ─────────────────────────────────────────────────────────

    def _extract_pack(self, pack: PackMetadata, datastore: str, pipeline: _Pipeline) -> int:
        documents = self._reader.read_compiled(os.path.join(datastore, pack.dirname))
        folders = self._reader.read_compiled_folders(datastore, pack.dirname)
        temp_dir = os.path.join(self._config.temp_dir, pack.dirname)
        os.makedirs(temp_dir, exist_ok=True)

        folder_paths = folder_paths_for(folders, pack.name)
        self._writer.write_folders(temp_dir, [
            {key: value for key, value in folder.items() if key != '_stats'} for folder in folders
        ])

        existing_ids = self._existing_ids(pack)
        written: dict[str, str] = {}
        for doc in documents:
            source = self._to_source(doc, pack, pipeline)
            folder = source.get('folder')
            if folder is not None and folder not in folder_paths:
                del source['folder']
                folder = None

            slug = slugify(source['name'])
            if not slug:
                raise StructuralError(f"Cannot derive a filename for '{source['name']}' in {pack.name}")
            filename = f'{slug}.json'
            relative = os.path.join(folder_paths.get(folder, ''), filename)

            # Filenames are unique across the whole pack, subfolders included
            if filename in written:
                raise IntegrityError(
                    f"Name collision in {pack.name}: '{source['name']}' and '{written[filename]}' "
                    f"both map to {filename}"
                )
            existing = existing_ids.get(filename)
            if existing is not None and existing != source['_id']:
                raise IntegrityError(
                    f"{filename} in {pack.name} belongs to {existing}, not {source['_id']}: "
                    f"rename or remove the existing file"
                )

            written[filename] = source['name']
            self._writer.write_source(os.path.join(temp_dir, relative), source)

        logger.info("Extracted %d documents from %s", len(written), pack.dirname)
        return len(written)

    def _to_source(self, doc: dict[str, Any], pack: PackMetadata, pipeline: _Pipeline) -> dict[str, Any]:
        if isinstance(doc.get('_id'), str) and isinstance(doc.get('name'), str):
            pipeline.link_index.register(pack.name, doc['_id'], doc['name'])
        else:
            raise StructuralError(f"Document in {pack.dirname} is missing _id or name: {str(doc)[:80]}")

        source = pipeline.sanitizer.sanitize(doc)
        source = pipeline.resolver.to_names(source, pack.kind)

        if is_actor_source(source):
            if source['type'] == 'npc' and not self._options.disable_presort:
                source['items'] = pipeline.sorter.sort(source)
            if pipeline.deflater is not None:
                source['items'] = [pipeline.deflater.deflate(item) for item in source['items']]
        return source

    def _existing_ids(self, pack: PackMetadata) -> dict[str, str]:
        """Filename → ``_id`` of the files currently in the pack's source directory."""
        pack_dir = self._config.pack_source_dir(pack)
        if not os.path.isdir(pack_dir):
            return {}
        return {
            source.filename: source.document.get('_id')
            for source in self._reader.read_sources(pack_dir)
        }


def folder_paths_for(folders: list[dict[str, Any]], pack_name: str) -> dict[str, str]:
    """Map folder ids to relative directory paths built from slugged folder names.

    Raises:
        IntegrityError: If a folder has an unknown parent or nesting exceeds MAX_FOLDER_DEPTH.
    """
    by_id = {folder['_id']: folder for folder in folders}
    paths: dict[str, str] = {}
    for folder_id, folder in by_id.items():
        parts = [slugify(folder['name'])]
        parent = folder.get('folder')
        while parent is not None:
            parent_folder = by_id.get(parent)
            if parent_folder is None:
                raise IntegrityError(f"Folder '{folder['name']}' in {pack_name} has unknown parent {parent}")
            parts.insert(0, slugify(parent_folder['name']))
            if len(parts) > MAX_FOLDER_DEPTH:
                raise IntegrityError(
                    f"Folder '{folder['name']}' in {pack_name} is nested more than {MAX_FOLDER_DEPTH} levels deep"
                )
            parent = parent_folder.get('folder')
        paths[folder_id] = os.path.join(*parts)
    return paths
