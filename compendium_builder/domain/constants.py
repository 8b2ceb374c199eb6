"""Shared constants, regex patterns, and field path configurations.

Centralizes the link syntax, the link-bearing field paths per document kind,
item type tables, sort override tables and default-elision tables shared by
the sanitizer, resolver, sorter and compression modules.
"""

import re

from compendium_builder.domain.enums import ActionCategory, DocumentKind, ExemptionKind, OverridePosition

# ── Link Patterns ────────────────────────────────────────────────────────

LINKABLE_DOC_TYPES = ('Actor', 'JournalEntry', 'Item', 'Macro', 'RollTable')

# Text link templates; SYSTEM_PLACEHOLDER is replaced with the escaped system id.
# Groups: pack, doc_type, token, label (text of a trailing {label}, if any)
SYSTEM_PLACEHOLDER = '<system>'
UUID_LINK_TEMPLATE = (
    r'@UUID\[Compendium\.<system>\.(?P<pack>[^.\]]+)\.'
    r'(?P<doc_type>Actor|JournalEntry|Item|Macro|RollTable)\.(?P<token>[^\]]+)\]'
    r'(?:\{(?P<label>[^}]*)\})?'
)
# Opening of a legacy link, rewritten to the @UUID form before resolution
LEGACY_LINK_PREFIX_TEMPLATE = r'@Compendium\[(?=<system>\.)'

# Structured reference held in a plain string field
STRUCTURED_UUID_TEMPLATE = (
    r'^Compendium\.<system>\.(?P<pack>[^.]+)\.'
    r'(?P<doc_type>Actor|JournalEntry|Item|Macro|RollTable)\.(?P<token>.+)$'
)

# Links into world documents can never ship in a pack
WORLD_LINK_RE = re.compile(
    r'@(?:Item|JournalEntry|Actor)\[[^\]]+\]'
    r'|@Compendium\[world\.[^\]]{16}\]'
    r'|@UUID\[(?:Item|JournalEntry|Actor)'
)
WORLD_UUID_PREFIX = 'Item.'

JOURNAL_PAGE_MARKER = 'JournalEntryPage'

# ── Identifiers ──────────────────────────────────────────────────────────

DOCUMENT_ID_RE = re.compile(r'^[A-Za-z0-9]{16}$')

# Object keys that are themselves opaque identifiers sort after named keys
ID_KEY_RE = re.compile(r'^(?=[A-Za-z]*\d)[A-Za-z0-9]{16}$|^[a-z0-9]{20,}$')

# ── Link-Bearing Field Paths ─────────────────────────────────────────────
#
# Text fields hold rich text with embedded @UUID links. UUID fields hold a
# single structured reference. Paths use the field walker notation:
# "a.b" nested keys, "a[]" list items, "a{}" dict values.

TEXT_LINK_FIELDS: dict[DocumentKind, list[str]] = {
    DocumentKind.ACTOR: [
        'system.details.publicNotes',
        'system.details.privateNotes',
        'system.details.biography.appearance',
        'system.details.biography.backstory',
        'system.details.description',
        'system.details.disable',
        'system.details.reset',
        'system.details.routine',
    ],
    DocumentKind.ITEM: [
        'system.description.value',
        'system.description.gm',
    ],
    DocumentKind.JOURNAL_ENTRY: [
        'content',
        'pages[].text.content',
    ],
    DocumentKind.MACRO: [
        'command',
    ],
    DocumentKind.ROLL_TABLE: [
        'description',
        'results[].text',
        'results[].description',
    ],
    DocumentKind.OTHER: [],
}

UUID_FIELDS: dict[DocumentKind, list[str]] = {
    DocumentKind.ACTOR: [],
    DocumentKind.ITEM: [
        'system.selfEffect.uuid',
        'system.items{}.uuid',
        'system.items{}.items{}.uuid',
    ],
    DocumentKind.JOURNAL_ENTRY: [],
    DocumentKind.MACRO: [],
    DocumentKind.ROLL_TABLE: [
        'results[].documentUuid',
    ],
    DocumentKind.OTHER: [],
}

# Origin reference of an embedded item, relative to the item
EMBEDDED_ORIGIN_FIELD = '_stats.compendiumSource'

# Rule element fields holding structured references, keyed by rule key
RULE_UUID_FIELDS: dict[str, list[str]] = {
    'GrantItem': ['uuid'],
    'ChoiceSet': ['choices[].value'],
    'Aura': ['effects[].uuid'],
    'EphemeralEffect': ['uuid'],
}

# Grant entries whose images are validated at build time
GRANT_ITEM_TYPES = frozenset({'ancestry', 'background', 'class', 'kit'})

# ── Item Types ───────────────────────────────────────────────────────────

PHYSICAL_ITEM_TYPES = frozenset({
    'armor', 'backpack', 'book', 'consumable', 'equipment', 'shield', 'treasure', 'weapon',
})

ACTOR_TYPES = frozenset({
    'army', 'character', 'familiar', 'hazard', 'loot', 'npc', 'party', 'vehicle',
})

SIZES = ('tiny', 'sm', 'med', 'lg', 'huge', 'grg')

FEAT_CATEGORIES = frozenset({
    'ancestry', 'ancestryfeature', 'bonus', 'calling', 'class', 'classfeature',
    'curse', 'deityboon', 'general', 'pfsboon', 'skill',
})

FEATURE_CATEGORIES = frozenset({'ancestryfeature', 'classfeature', 'curse', 'deityboon', 'pfsboon'})

# ── Images ───────────────────────────────────────────────────────────────

APPROVED_IMAGE_EXTENSIONS = ('.svg', '.webp')
INLINE_IMAGE_PREFIX = 'data:image'
HOSTED_ASSET_RE = re.compile(r'^https://assets\.forge-vtt\.com/bazaar/systems/(?P<system>[^/]+)/assets/')
LEGACY_FEAT_ICON_TEMPLATE = 'systems/<system>/icons/default-icons/feat.svg'
FEAT_ICON_TEMPLATE = 'systems/<system>/icons/default-icons/feats.webp'

# ── NPC Data ─────────────────────────────────────────────────────────────

NPC_SYSTEM_KEYS = frozenset({
    'abilities', 'attributes', 'details', 'initiative', 'perception', 'resources',
    'saves', 'skills', 'spellcasting', 'traits',
})

SPELL_SLOT_COUNT = 12

# ── Sorting ──────────────────────────────────────────────────────────────

SORT_STEP = 100000

ITEM_TYPE_ORDER = (
    'spellcastingEntry', 'spell', 'weapon', 'shield', 'armor', 'equipment', 'consumable',
    'treasure', 'backpack', 'condition', 'effect', 'melee', 'action', 'lore',
)

SPELLCASTING_ENTRY_NAME_RE = re.compile(r'(?:Innate|Prepared|Ritual|Spontaneous) Spells')

SortOverride = tuple[re.Pattern, OverridePosition]

SPELLCASTING_OVERRIDES: list[SortOverride] = [
    (re.compile(r'Prepared Spells'), OverridePosition.TOP),
    (re.compile(r'Spontaneous Spells'), OverridePosition.TOP),
    (re.compile(r'Innate Spells'), OverridePosition.TOP),
]

ACTION_OVERRIDES: dict[ActionCategory, list[SortOverride]] = {
    ActionCategory.INTERACTION: [
        (re.compile(r'Greater Darkvision'), OverridePosition.TOP),
        (re.compile(r'Tremorsense'), OverridePosition.TOP),
        (re.compile(r'Scent'), OverridePosition.TOP),
        (re.compile(r'Telepathy'), OverridePosition.TOP),
        (re.compile(r'At-Will Spells'), OverridePosition.BOTTOM),
        (re.compile(r'Constant Spells'), OverridePosition.BOTTOM),
    ],
    ActionCategory.DEFENSIVE: [
        (re.compile(r'All-Around Vision'), OverridePosition.TOP),
        (
            re.compile(
                r'(\+|\-)\d+ (Status|Circumstance) (Bonus )?(to|on) ((All|Fortitude|Reflex|Will) )?Saves',
                re.I,
            ),
            OverridePosition.TOP,
        ),
        (re.compile(r'Fast Healing'), OverridePosition.TOP),
        (re.compile(r'Negative Healing'), OverridePosition.TOP),
        (re.compile(r'Regeneration'), OverridePosition.TOP),
        (re.compile(r'Swarm Mind'), OverridePosition.TOP),
    ],
    ActionCategory.OFFENSIVE: [
        (re.compile(r'^Grab'), OverridePosition.BOTTOM),
        (re.compile(r'Improved Grab'), OverridePosition.BOTTOM),
        (re.compile(r'^Knockdown'), OverridePosition.BOTTOM),
        (re.compile(r'Improved Knockdown'), OverridePosition.BOTTOM),
        (re.compile(r'^Push'), OverridePosition.BOTTOM),
        (re.compile(r'Improved Push'), OverridePosition.BOTTOM),
    ],
    ActionCategory.OTHER: [],
}

# ── Default Elision ──────────────────────────────────────────────────────
#
# Item fields removed from source form when they hold their default value.
# ELIDE_IF_FALSY drops the field when it is falsy, ELIDE_IF_EQUAL when it
# equals the given value. Paths are relative to the item.

ELIDE_IF_FALSY: dict[str, list[str]] = {
    'action': ['system.deathNote'],
    'armor': ['system.specific'],
    'effect': ['system.badge'],
    'feat': ['system.onlyLevel1'],
    'shield': ['system.specific'],
    'weapon': ['system.specific', 'system.damage.persistent'],
}

ELIDE_IF_EQUAL: dict[str, dict[str, object]] = {
    'feat': {'system.maxTakable': 1},
    'spellcastingEntry': {'system.showSlotlessLevels.value': True},
}

# Fields removed unconditionally from source form
ELIDE_ALWAYS: dict[str, list[str]] = {
    'effect': ['system.context', 'system.unidentified'],
    'weapon': ['system.property1', 'system.damage.value'],
}

# Physical items of every type
PHYSICAL_ELIDE_ALWAYS = ['system.identification']
PHYSICAL_ELIDE_IF_FALSY = ['system.stackGroup']

# ── Embedded Item Compression ────────────────────────────────────────────
#
# Item types that may be stored as a reference to a canonical item, and how
# their fields are treated when compared. Types not listed are never deflated.

ITEM_EXEMPTIONS: dict[str, dict[str, ExemptionKind]] = {
    'action': {
        'system.description': ExemptionKind.DELTA,
        'system.slug': ExemptionKind.TRANSIENT,
    },
    'spell': {
        'system.location': ExemptionKind.POSITIONAL,
        'system.slug': ExemptionKind.TRANSIENT,
    },
}

# Keys a canonical item has only as a top-level document
CANONICAL_ONLY_KEYS = ('folder', 'ownership', 'sort', '_stats')

# ── Build Metadata ───────────────────────────────────────────────────────

# Flag scopes kept on embedded documents besides the system's own scope
EMBEDDED_FLAG_SCOPES = ('core',)

DEFAULT_SCHEMA_VERSION = 0.9
