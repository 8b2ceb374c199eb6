"""Link resolution between name form (source) and id form (compiled).

Walks only the link-bearing fields configured per document kind in
``domain.constants``; everything else in a document passes through untouched.
"""

import copy
import re
from typing import Any, Callable

from compendium_builder.domain.constants import (
    EMBEDDED_ORIGIN_FIELD,
    JOURNAL_PAGE_MARKER,
    LEGACY_LINK_PREFIX_TEMPLATE,
    RULE_UUID_FIELDS,
    STRUCTURED_UUID_TEMPLATE,
    SYSTEM_PLACEHOLDER,
    TEXT_LINK_FIELDS,
    UUID_FIELDS,
    UUID_LINK_TEMPLATE,
    WORLD_LINK_RE,
    WORLD_UUID_PREFIX,
)
from compendium_builder.domain.enums import DocumentKind
from compendium_builder.domain.errors import PolicyError
from compendium_builder.domain.field_walker import apply_to_field_paths
from compendium_builder.resolution.link_index import LinkIndex
from compendium_builder.resolution.redirects import RedirectTable

Converter = Callable[[str], str]


def _system_pattern(template: str, system_id: str) -> re.Pattern:
    return re.compile(template.replace(SYSTEM_PLACEHOLDER, re.escape(system_id)))


class LinkResolver:
    """Rewrites compendium links in either direction using a populated LinkIndex.

    Args:
        link_index: Populated index of every pack in the project.
        system_id: System id that scopes compendium links (``Compendium.<system_id>.``).
        redirects: Optional redirect table applied before resolving to ids.
    """

    def __init__(
        self,
        link_index: LinkIndex,
        system_id: str,
        redirects: RedirectTable | None = None,
    ) -> None:
        self._index = link_index
        self._system_id = system_id
        self._redirects = redirects
        self._uuid_link_re = _system_pattern(UUID_LINK_TEMPLATE, system_id)
        self._legacy_prefix_re = _system_pattern(LEGACY_LINK_PREFIX_TEMPLATE, system_id)
        self._structured_re = _system_pattern(STRUCTURED_UUID_TEMPLATE, system_id)

    # ── Public API ───────────────────────────────────────────────────────

    def to_names(self, document: dict[str, Any], kind: DocumentKind) -> dict[str, Any]:
        """Return a copy of the document with every link token as a document name."""
        return self._convert(document, kind, to_ids=False)

    def to_ids(self, document: dict[str, Any], kind: DocumentKind) -> dict[str, Any]:
        """Return a copy of the document with every link token as a document id."""
        return self._convert(document, kind, to_ids=True)

    def convert_text(self, text: str, to_ids: bool, source: str = '') -> str:
        """Rewrite every compendium link in a rich-text string.

        Raises:
            PolicyError: If the text links to a world document.
            BrokenLink: If a link token does not resolve.
        """
        self.check_world_links(text, source)
        text = self._legacy_prefix_re.sub('@UUID[Compendium.', text)
        return self._uuid_link_re.sub(
            lambda m: self._rewrite_text_link(m, to_ids, source), text
        )

    def convert_uuid(self, value: str, to_ids: bool, source: str = '') -> str:
        """Rewrite a structured reference (``Compendium.<system>.<pack>.<Type>.<token>``).

        References of other systems or into journal pages pass through unchanged.

        Raises:
            PolicyError: For references to world items.
            BrokenLink: If the token does not resolve.
        """
        if value.startswith(WORLD_UUID_PREFIX):
            raise PolicyError(f"{source} has a reference to a world item: {value}")
        if to_ids and self._redirects is not None:
            value = self._redirects.rewrite(value)

        match = self._structured_re.match(value)
        if not match or JOURNAL_PAGE_MARKER in match['token']:
            return value

        pack, doc_type, token = match['pack'], match['doc_type'], match['token']
        target = self._resolve(pack, token, to_ids, source)
        return f"Compendium.{self._system_id}.{pack}.{doc_type}.{target}"

    def check_world_links(self, text: str, source: str = '') -> None:
        """Raise PolicyError if the text links to a world document."""
        match = WORLD_LINK_RE.search(text)
        if match:
            raise PolicyError(f"{source} has a link to a world document: {match.group(0)}")

    # ── Document Walk ────────────────────────────────────────────────────

    def _convert(self, document: dict[str, Any], kind: DocumentKind, to_ids: bool) -> dict[str, Any]:
        result = copy.deepcopy(document)
        source = str(document.get('name', document.get('_id', '?')))
        text_fn: Converter = lambda text: self.convert_text(text, to_ids, source)
        uuid_fn: Converter = lambda value: self.convert_uuid(value, to_ids, source)

        self._walk(result, kind, text_fn, uuid_fn)
        if kind is DocumentKind.ACTOR and isinstance(result.get('items'), list):
            for item in result['items']:
                if isinstance(item, dict):
                    self._walk(item, DocumentKind.ITEM, text_fn, uuid_fn)
                    apply_to_field_paths(item, EMBEDDED_ORIGIN_FIELD, uuid_fn)
        return result

    def _walk(self, node: dict[str, Any], kind: DocumentKind, text_fn: Converter, uuid_fn: Converter) -> None:
        for path in TEXT_LINK_FIELDS[kind]:
            apply_to_field_paths(node, path, text_fn)
        for path in UUID_FIELDS[kind]:
            apply_to_field_paths(node, path, uuid_fn)
        if kind is not DocumentKind.ITEM:
            return

        system = node.get('system')
        if not isinstance(system, dict):
            return
        for rule in system.get('rules') or []:
            if isinstance(rule, dict):
                for path in RULE_UUID_FIELDS.get(rule.get('key'), []):
                    apply_to_field_paths(rule, path, uuid_fn)

        # Items nested inside items (scroll spells, attached subitems)
        nested = [system.get('spell')] + list(system.get('subitems') or [])
        for child in nested:
            if isinstance(child, dict):
                self._walk(child, DocumentKind.ITEM, text_fn, uuid_fn)

    # ── Token Rewriting ──────────────────────────────────────────────────

    def _rewrite_text_link(self, match: re.Match, to_ids: bool, source: str) -> str:
        pack, doc_type, token, label = match['pack'], match['doc_type'], match['token'], match['label']
        if JOURNAL_PAGE_MARKER in token:
            return match.group(0)

        if to_ids and self._redirects is not None:
            stale = f"Compendium.{self._system_id}.{pack}.{doc_type}.{token}"
            redirected = self._structured_re.match(self._redirects.rewrite(stale))
            if redirected:
                pack, doc_type, token = redirected['pack'], redirected['doc_type'], redirected['token']

        target = self._resolve(pack, token, to_ids, source)
        link = f"@UUID[Compendium.{self._system_id}.{pack}.{doc_type}.{target}]"

        if to_ids:
            return f"{link}{{{label if label is not None else token}}}"
        if label is None or label.lower() == target.lower():
            return link
        return f"{link}{{{label}}}"

    def _resolve(self, pack: str, token: str, to_ids: bool, source: str) -> str:
        if to_ids:
            return self._index.resolve_to_id(pack, token, source=source)
        return self._index.resolve_to_name(pack, token, source=source)
