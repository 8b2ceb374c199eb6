"""Project manifest and host configuration loading."""

import json
import logging
import os
from dataclasses import dataclass, field

from compendium_builder.domain.constants import DEFAULT_SCHEMA_VERSION
from compendium_builder.domain.errors import StructuralError
from compendium_builder.domain.models import PackMetadata

logger = logging.getLogger(__name__)

DEFAULT_BUILD_PATHS = {
    'sourceDir': 'packs/data',
    'outDir': 'dist/packs',
    'assetsDir': 'static',
    'coreIcons': 'build/core-icons.json',
    'redirects': 'build/uuid-redirects.json',
    'jsonDir': 'json-assets/packs',
    'tempDir': 'packs-temp',
}

PACK_DOCUMENT_TYPES = {'Actor', 'Item', 'JournalEntry', 'Macro', 'RollTable'}


@dataclass
class ProjectConfig:
    """Paths and pack metadata of a content project."""

    root: str
    system_id: str
    packs: list[PackMetadata]
    source_dir: str
    out_dir: str
    assets_dir: str
    json_dir: str
    temp_dir: str
    redirects_path: str
    schema_version: float = DEFAULT_SCHEMA_VERSION
    core_icons: frozenset[str] = field(default_factory=frozenset)

    def metadata_for(self, dirname: str) -> PackMetadata | None:
        """Find pack metadata by the pack's directory (or compiled file) name."""
        for pack in self.packs:
            if pack.dirname == dirname:
                return pack
        return None

    def metadata_by_name(self, name: str) -> PackMetadata | None:
        for pack in self.packs:
            if pack.name == name:
                return pack
        return None

    def pack_source_dir(self, pack: PackMetadata) -> str:
        return os.path.join(self.source_dir, pack.dirname)


@dataclass
class HostConfig:
    """Location of a local host installation holding a live datastore."""

    data_path: str
    system_name: str | None = None

    def packs_dir(self, default_system: str) -> str:
        return os.path.join(self.data_path, 'Data', 'systems', self.system_name or default_system, 'packs')


def load_project_config(manifest_path: str) -> ProjectConfig:
    """Load the project manifest (``system.json``).

    Args:
        manifest_path: Path to the manifest file.

    Returns:
        ProjectConfig with all paths made absolute against the manifest's directory.

    Raises:
        StructuralError: If the manifest is missing, unparseable or incomplete.
    """
    manifest = _read_json(manifest_path, 'project manifest')
    root = os.path.dirname(os.path.abspath(manifest_path))

    system_id = manifest.get('id')
    if not isinstance(system_id, str) or not system_id:
        raise StructuralError(f"Project manifest {manifest_path} has no system id")

    raw_packs = manifest.get('packs')
    if not isinstance(raw_packs, list):
        raise StructuralError(f"Project manifest {manifest_path} has no packs list")

    packs = []
    for raw in raw_packs:
        if not isinstance(raw, dict) or not all(isinstance(raw.get(k), str) for k in ('name', 'path', 'type')):
            raise StructuralError(f"Malformed pack entry in {manifest_path}: {raw!r}")
        if raw['type'] not in PACK_DOCUMENT_TYPES:
            raise StructuralError(f"Pack '{raw['name']}' has unsupported document type '{raw['type']}'")
        packs.append(PackMetadata(system=system_id, name=raw['name'], path=raw['path'], type=raw['type']))

    build = {**DEFAULT_BUILD_PATHS, **(manifest.get('build') or {})}
    paths = {key: os.path.join(root, value) for key, value in build.items()}

    config = ProjectConfig(
        root=root,
        system_id=system_id,
        packs=packs,
        source_dir=paths['sourceDir'],
        out_dir=paths['outDir'],
        assets_dir=paths['assetsDir'],
        json_dir=paths['jsonDir'],
        temp_dir=paths['tempDir'],
        redirects_path=paths['redirects'],
        schema_version=manifest.get('schemaVersion', DEFAULT_SCHEMA_VERSION),
        core_icons=_load_core_icons(paths['coreIcons']),
    )
    logger.debug("Loaded project '%s' with %d packs from %s", system_id, len(packs), manifest_path)
    return config


def load_host_config(config_path: str | None) -> HostConfig | None:
    """Load the optional host config (``dataPath``, ``systemName``).

    Returns None when no path is given or the file does not exist.
    """
    if not config_path or not os.path.isfile(config_path):
        return None
    raw = _read_json(config_path, 'host config')
    data_path = raw.get('dataPath')
    if not isinstance(data_path, str) or not data_path:
        raise StructuralError(f"Host config {config_path} has no dataPath")
    return HostConfig(data_path=data_path, system_name=raw.get('systemName'))


def _load_core_icons(path: str) -> frozenset[str]:
    if not os.path.isfile(path):
        return frozenset()
    icons = _read_json(path, 'core icon list')
    if not isinstance(icons, list):
        raise StructuralError(f"Core icon list {path} must be a JSON array")
    return frozenset(icon for icon in icons if isinstance(icon, str))


def _read_json(path: str, label: str):
    if not os.path.isfile(path):
        raise StructuralError(f"{label.capitalize()} not found: {path}")
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise StructuralError(f"Failed to parse {label} {path}: {e}")
