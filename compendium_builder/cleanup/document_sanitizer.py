"""Document sanitization: strips runtime state and default values from sources.

Source files in the repository hold only what a human author would write.
Host-runtime state (ownership grants, sort positions, statistics, migration
markers) and fields holding their default value are removed here, and
description markup is normalized.
"""

import copy
import logging
from typing import Any

from compendium_builder.cleanup.description_cleaner import clean_description
from compendium_builder.document_kinds import is_actor_source, is_item_source, is_physical_item
from compendium_builder.domain.constants import (
    ELIDE_ALWAYS,
    ELIDE_IF_EQUAL,
    ELIDE_IF_FALSY,
    EMBEDDED_FLAG_SCOPES,
    EMBEDDED_ORIGIN_FIELD,
    FEAT_ICON_TEMPLATE,
    FEATURE_CATEGORIES,
    HOSTED_ASSET_RE,
    LEGACY_FEAT_ICON_TEMPLATE,
    NPC_SYSTEM_KEYS,
    PHYSICAL_ELIDE_ALWAYS,
    PHYSICAL_ELIDE_IF_FALSY,
    SPELL_SLOT_COUNT,
    SYSTEM_PLACEHOLDER,
)
from compendium_builder.domain.errors import StructuralError
from compendium_builder.domain.field_walker import delete_path, get_path, set_path
from compendium_builder.domain.slugify import slugify

logger = logging.getLogger(__name__)

_MISSING = object()


class DocumentSanitizer:
    """Produces the canonical source form of a document.

    Args:
        system_id: System id; its flag scope survives on embedded documents.
        log_warnings: Emit warnings for content that needs author attention.
    """

    def __init__(self, system_id: str, log_warnings: bool = True) -> None:
        self._system_id = system_id
        self._log_warnings = log_warnings
        self._kept_flag_scopes = set(EMBEDDED_FLAG_SCOPES) | {system_id}
        self._legacy_feat_icon = LEGACY_FEAT_ICON_TEMPLATE.replace(SYSTEM_PLACEHOLDER, system_id)
        self._feat_icon = FEAT_ICON_TEMPLATE.replace(SYSTEM_PLACEHOLDER, system_id)

    def sanitize(self, document: dict[str, Any], embedded: bool = False) -> dict[str, Any]:
        """Return a sanitized deep copy of a document.

        Args:
            document: Document source. Not mutated.
            embedded: True for documents nested in another document. Embedded
                documents keep their ``core`` and system flag scopes.

        Returns:
            The sanitized copy.

        Raises:
            StructuralError: If the document is not an object with a string name.
        """
        if not isinstance(document, dict) or not isinstance(document.get('name'), str):
            raise StructuralError(f"Cannot sanitize a document without a name: {str(document)[:80]}")
        source = copy.deepcopy(document)
        self._sanitize_in_place(source, embedded, parent_type=None)
        return source

    # ── Document Level ───────────────────────────────────────────────────

    def _sanitize_in_place(self, source: dict[str, Any], embedded: bool, parent_type: str | None) -> None:
        self._filter_flags(source, embedded)
        if embedded:
            self._migrate_origin(source)
        else:
            self._strip_runtime_state(source)

        self._prune_tree(source, parent_type)
        self._clean_descriptions(source)

        if is_actor_source(source):
            for i, item in enumerate(source['items']):
                if isinstance(item, dict) and isinstance(item.get('name'), str):
                    source['items'][i] = self._sanitize_embedded(item, source.get('type'))
        elif is_item_source(source):
            system = source['system']
            if source.get('type') == 'consumable' and isinstance(system.get('spell'), dict):
                system['spell'] = self._sanitize_embedded(system['spell'], None)
            if is_physical_item(source) and isinstance(system.get('subitems'), list):
                system['subitems'] = [
                    self._sanitize_embedded(sub, None) if isinstance(sub, dict) else sub
                    for sub in system['subitems']
                ]

    def _sanitize_embedded(self, source: dict[str, Any], parent_type: str | None) -> dict[str, Any]:
        self._sanitize_in_place(source, embedded=True, parent_type=parent_type)
        return source

    def _filter_flags(self, source: dict[str, Any], embedded: bool) -> None:
        flags = source.get('flags')
        if not isinstance(flags, dict):
            return
        for scope in list(flags):
            if not embedded or scope not in self._kept_flag_scopes:
                del flags[scope]

    def _migrate_origin(self, source: dict[str, Any]) -> None:
        """Move a legacy ``flags.core.sourceId`` into ``_stats.compendiumSource``."""
        core = get_path(source, 'flags.core')
        if not isinstance(core, dict) or 'sourceId' not in core:
            return
        origin = core.pop('sourceId')
        if origin and not get_path(source, EMBEDDED_ORIGIN_FIELD):
            set_path(source, EMBEDDED_ORIGIN_FIELD, origin)
        if not core:
            del source['flags']['core']

    def _strip_runtime_state(self, source: dict[str, Any]) -> None:
        ownership = source.get('ownership')
        default = ownership.get('default') if isinstance(ownership, dict) else None
        source['ownership'] = {'default': default if default is not None else 0}
        source.pop('sort', None)
        source.pop('_stats', None)

        if not is_item_source(source):
            return

        system = source['system']
        slug = system.get('slug')
        expected = slugify(source['name'])
        if slug and slug != expected and self._log_warnings:
            logger.warning(
                "Name change detected on '%s' (slug '%s', expected '%s'): create a slug migration",
                source['name'], slug, expected,
            )
        system.pop('slug', None)
        source['flags'] = {}

        if is_physical_item(source):
            system.pop('equipped', None)
        if source['type'] == 'spell' or (source['type'] == 'feat' and not system.get('location')):
            system.pop('location', None)

    def _clean_descriptions(self, source: dict[str, Any]) -> None:
        if is_item_source(source):
            path = 'system.description.value'
        elif is_actor_source(source):
            path = 'system.details.publicNotes'
        else:
            path = 'content'
        text = get_path(source, path)
        if isinstance(text, str):
            set_path(source, path, clean_description(text))

    # ── Tree Pruning ─────────────────────────────────────────────────────

    def _prune_tree(self, node: Any, parent_type: str | None, is_page: bool = False) -> None:
        if isinstance(node, list):
            for child in node:
                self._prune_tree(child, parent_type, is_page)
            return
        if not isinstance(node, dict):
            return

        if '_id' in node:
            self._prune_document(node, parent_type, is_page)
        if is_actor_source(node):
            parent_type = node.get('type')
        for key, value in list(node.items()):
            if isinstance(value, (dict, list)):
                self._prune_tree(value, parent_type, is_page=key == 'pages')

    def _prune_document(self, doc: dict[str, Any], parent_type: str | None, is_page: bool = False) -> None:
        if 'folder' in doc and doc['folder'] is None:
            del doc['folder']

        if '_stats' in doc:
            origin = get_path(doc, EMBEDDED_ORIGIN_FIELD)
            if origin:
                doc['_stats'] = {'compendiumSource': origin}
            else:
                del doc['_stats']

        img = doc.get('img')
        if isinstance(img, str):
            doc['img'] = HOSTED_ASSET_RE.sub(lambda m: f"systems/{m['system']}/", img)

        flags = doc.get('flags')
        if isinstance(flags, dict):
            system_flags = flags.get(self._system_id)
            if isinstance(system_flags, dict) and not system_flags:
                del flags[self._system_id]
            if not flags:
                del doc['flags']

        # Journal pages carry a system dict and a type but are never items
        if not is_page and (is_actor_source(doc) or is_item_source(doc)):
            if isinstance(doc.get('name'), str):
                doc['name'] = doc['name'].strip()
            doc.pop('ownership', None)
            doc.pop('effects', None)
            doc['system'].pop('_migration', None)
            if is_actor_source(doc):
                self._prune_actor(doc)
            else:
                self._prune_item(doc, parent_type)
        elif doc.get('type') != 'script':
            doc.pop('ownership', None)

    def _prune_actor(self, actor: dict[str, Any]) -> None:
        system = actor['system']

        token = actor.get('prototypeToken')
        if isinstance(token, dict):
            if token.get('name') == actor['name']:
                del actor['prototypeToken']
            else:
                reduced: dict[str, Any] = {'name': token.get('name')}
                texture = get_path(token, 'texture.src')
                if isinstance(texture, str) and 'iconics' in texture:
                    reduced['texture'] = {'src': texture}
                actor['prototypeToken'] = reduced

        _delete_if_blank(system, 'details.publication.authors')

        if actor['type'] == 'character':
            delete_path(system, 'details.biography.visibility')
        elif actor['type'] == 'npc':
            _delete_if_blank(system, 'attributes.speed.details')
            for key in list(system):
                if key not in NPC_SYSTEM_KEYS:
                    del system[key]
            delete_path(system, 'perception.vision')

    def _prune_item(self, item: dict[str, Any], parent_type: str | None) -> None:
        system = item['system']
        item_type = item['type']

        description = system.get('description')
        if isinstance(description, dict):
            normalized = {'gm': description.get('gm') or '', 'value': description.get('value') or ''}
            if not normalized['gm'].strip():
                del normalized['gm']
            system['description'] = normalized

        if get_path(system, 'traits.otherTags') == []:
            delete_path(system, 'traits.otherTags')
        _delete_if_blank(system, 'publication.authors')

        if is_physical_item(item):
            for path in PHYSICAL_ELIDE_ALWAYS:
                delete_path(item, path)
            for path in PHYSICAL_ELIDE_IF_FALSY:
                _delete_if_falsy(item, path)
            if item_type == 'consumable' and not system.get('spell'):
                system.pop('spell', None)
            if system.get('subitems') == []:
                del system['subitems']

        if item_type == 'melee' and isinstance(system.get('damageRolls'), dict):
            for roll in system['damageRolls'].values():
                if isinstance(roll, dict) and 'category' in roll and not roll['category']:
                    del roll['category']
        elif item_type == 'feat':
            category = get_path(system, 'category')
            if category not in FEATURE_CATEGORIES and item.get('img') == self._legacy_feat_icon:
                item['img'] = self._feat_icon
        elif item_type == 'spellcastingEntry':
            self._prune_spellcasting_entry(system, parent_type)

        for path in ELIDE_ALWAYS.get(item_type, []):
            delete_path(item, path)
        for path in ELIDE_IF_FALSY.get(item_type, []):
            _delete_if_falsy(item, path)
        for path, default in ELIDE_IF_EQUAL.get(item_type, {}).items():
            if get_path(item, path, _MISSING) == default:
                delete_path(item, path)

        for rule in system.get('rules') or []:
            if isinstance(rule, dict):
                _prune_rule_element(rule)

    def _prune_spellcasting_entry(self, system: dict[str, Any], parent_type: str | None) -> None:
        if parent_type == 'npc':
            system.pop('ability', None)

        slots = system.get('slots')
        if not isinstance(slots, dict):
            return
        for slot in slots.values():
            for prepared in get_path(slot, 'prepared') or []:
                if isinstance(prepared, dict) and 'expended' in prepared and not prepared['expended']:
                    del prepared['expended']

        template = {f'slot{i}': {'prepared': [], 'value': 0, 'max': 0} for i in range(SPELL_SLOT_COUNT)}
        diff = _diff_object(template, slots)
        if diff:
            system['slots'] = diff
        else:
            del system['slots']


# ── Helpers ──────────────────────────────────────────────────────────────

def _prune_rule_element(rule: dict[str, Any]) -> None:
    key = rule.get('key')
    if key == 'Aura':
        rule.pop('appearance', None)
    elif key == 'RollOption' and rule.get('toggleable') and 'value' in rule and not rule['value']:
        del rule['value']


def _delete_if_falsy(data: dict[str, Any], path: str) -> None:
    value = get_path(data, path, _MISSING)
    if value is not _MISSING and not value:
        delete_path(data, path)


def _delete_if_blank(data: dict[str, Any], path: str) -> None:
    value = get_path(data, path, _MISSING)
    if value is None or (isinstance(value, str) and not value.strip()):
        delete_path(data, path)


def _diff_object(original: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    """Keys of ``other`` whose values differ from ``original``, recursing into dicts."""
    diff: dict[str, Any] = {}
    for key, value in other.items():
        if key not in original:
            diff[key] = value
            continue
        base = original[key]
        if isinstance(base, dict) and isinstance(value, dict):
            inner = _diff_object(base, value)
            if inner:
                diff[key] = inner
        elif base != value:
            diff[key] = value
    return diff
