"""Document kind detection for pack sources."""

from typing import Any

from compendium_builder.domain.constants import ACTOR_TYPES, PHYSICAL_ITEM_TYPES
from compendium_builder.domain.enums import DocumentKind


def is_actor_source(source: Any) -> bool:
    return (
        isinstance(source, dict)
        and isinstance(source.get('system'), dict)
        and isinstance(source.get('items'), list)
        and source.get('type') in ACTOR_TYPES
    )


def is_item_source(source: Any) -> bool:
    return (
        isinstance(source, dict)
        and isinstance(source.get('system'), dict)
        and isinstance(source.get('type'), str)
        and 'items' not in source
        and 'pages' not in source
        and 'text' not in source
    )


def is_physical_item(source: Any) -> bool:
    return is_item_source(source) and source.get('type') in PHYSICAL_ITEM_TYPES


def classify(source: dict[str, Any], pack_type: str | None = None) -> DocumentKind:
    """Classify a document source.

    The pack's declared document type wins; without one the shape of the
    source decides.

    Args:
        source: Document source dict.
        pack_type: Document type of the containing pack, if known.

    Returns:
        The document's kind. Unrecognised shapes are ``DocumentKind.OTHER``.
    """
    if pack_type:
        kind = DocumentKind.from_pack_type(pack_type)
        if kind is not DocumentKind.OTHER:
            return kind

    if is_actor_source(source):
        return DocumentKind.ACTOR
    if is_item_source(source):
        return DocumentKind.ITEM
    if 'pages' in source or isinstance(source.get('content'), str):
        return DocumentKind.JOURNAL_ENTRY
    if 'command' in source:
        return DocumentKind.MACRO
    if isinstance(source.get('results'), list):
        return DocumentKind.ROLL_TABLE
    return DocumentKind.OTHER
