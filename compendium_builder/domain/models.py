"""Shared data models used across build and extraction modules."""

import os
from dataclasses import dataclass, field

from compendium_builder.domain.enums import DocumentKind


@dataclass
class PackMetadata:
    """A pack declared in the project manifest."""

    system: str
    name: str
    path: str
    type: str

    @property
    def dirname(self) -> str:
        """Directory name of the pack in source form, and file name when compiled."""
        return os.path.basename(self.path)

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.from_pack_type(self.type)


@dataclass
class BuildOptions:
    """Options controlling a build run."""

    as_json: bool = False
    workers: int | None = None


@dataclass
class BuildResult:
    """Result summary of a build run."""

    packs_built: int
    documents_written: int
    output_dir: str
    counts: dict[str, int] = field(default_factory=dict)


@dataclass
class ExtractOptions:
    """Options controlling an extraction run."""

    pack: str = 'all'
    host_config: str | None = None
    disable_presort: bool = False
    log_warnings: bool = True
    deflate_items: bool = True
    workers: int | None = None


@dataclass
class ExtractResult:
    """Result summary of an extraction run."""

    packs_extracted: int
    documents_extracted: int
    source_dir: str
    counts: dict[str, int] = field(default_factory=dict)
