"""Readers for pack sources (one JSON file per document) and compiled packs."""
import json
import os
from dataclasses import dataclass
from typing import Any, List

from compendium_builder.domain.errors import StructuralError

FOLDERS_FILENAME = '_folders.json'


@dataclass
class SourceFile:
    """A parsed source document and where it came from."""
    path: str
    filename: str
    document: dict[str, Any]


def compiled_folders_path(directory: str, dirname: str) -> str:
    """Folders file that sits beside a compiled pack: ``spells.db`` -> ``spells_folders.json``."""
    stem = os.path.splitext(dirname)[0]
    return os.path.join(directory, f"{stem}{FOLDERS_FILENAME}")


class PackSourceReader:
    """Reads pack directories and compiled pack files."""

    def list_pack_dirs(self, source_dir: str) -> List[str]:
        """Names of the pack directories under the source root, sorted."""
        if not os.path.isdir(source_dir):
            return []
        return sorted(
            entry for entry in os.listdir(source_dir)
            if os.path.isdir(os.path.join(source_dir, entry)) and not entry.startswith('.')
        )

    def read_sources(self, pack_dir: str) -> List[SourceFile]:
        """Read every document file in a pack directory, subfolders included."""
        paths = []
        for root, dirs, files in os.walk(pack_dir):
            dirs.sort()
            for file in files:
                if file.endswith('.json') and file != FOLDERS_FILENAME:
                    paths.append(os.path.join(root, file))

        sources = []
        for path in sorted(paths):
            document = self._read_json_file(path)
            if not isinstance(document, dict):
                raise StructuralError(f"Document file {path} does not contain a JSON object")
            sources.append(SourceFile(path=path, filename=os.path.basename(path), document=document))
        return sources

    def read_folders(self, pack_dir: str) -> List[dict[str, Any]]:
        """Read ``_folders.json`` of a pack directory, or an empty list."""
        return self._read_folder_list(os.path.join(pack_dir, FOLDERS_FILENAME))

    def read_compiled(self, pack_path: str) -> List[dict[str, Any]]:
        """Read a compiled pack: newline-delimited JSON, one document per line."""
        documents = []
        try:
            with open(pack_path, 'r', encoding='utf-8') as f:
                for line_no, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        document = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise StructuralError(f"Failed to parse {pack_path} line {line_no}: {e}")
                    if not isinstance(document, dict):
                        raise StructuralError(f"{pack_path} line {line_no} is not a JSON object")
                    documents.append(document)
        except OSError as e:
            raise StructuralError(f"Failed to read compiled pack {pack_path}: {e}")
        return documents

    def read_compiled_folders(self, directory: str, dirname: str) -> List[dict[str, Any]]:
        return self._read_folder_list(compiled_folders_path(directory, dirname))

    # ── Private Methods ──────────────────────────────────────────────────

    def _read_folder_list(self, path: str) -> List[dict[str, Any]]:
        if not os.path.isfile(path):
            return []
        folders = self._read_json_file(path)
        if not isinstance(folders, list):
            raise StructuralError(f"Folders file {path} must be a JSON array")
        for folder in folders:
            if not isinstance(folder, dict) or not {'_id', 'folder', 'name'} <= folder.keys():
                raise StructuralError(f"Folder data in {path} is missing _id, name or folder")
        return folders

    def _read_json_file(self, path: str) -> Any:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise StructuralError(f"Failed to parse {path}: {e}")
        except OSError as e:
            raise StructuralError(f"Failed to read {path}: {e}")
