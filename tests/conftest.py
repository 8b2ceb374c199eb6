"""Shared test fixtures."""

import copy
import json
import os

import pytest

from compendium_builder.domain.slugify import slugify
from compendium_builder.project_config import ProjectConfig, load_project_config

SYSTEM_ID = 'pf2e'


# ── Sample Documents (source form) ───────────────────────────────────────

FIREBALL_SYSTEM = {
    'description': {'value': '<p>A roaring blast of fire.</p>'},
    'level': {'value': 3},
    'traits': {'value': ['fire']},
}

SPELL_FIREBALL = {
    '_id': 'spellFireball001',
    'name': 'Fireball',
    'type': 'spell',
    'img': 'systems/pf2e/icons/spell.webp',
    'system': FIREBALL_SYSTEM,
}

SPELL_SHIELD = {
    '_id': 'spellShield00001',
    'name': 'Shield',
    'type': 'spell',
    'img': 'systems/pf2e/icons/spell.webp',
    'system': {
        'description': {'value': '<p>A shield of force. See also @UUID[Compendium.pf2e.spells-srd.Item.Fireball]</p>'},
        'level': {'value': 1},
        'traits': {'value': ['force']},
    },
}

GRAB_SYSTEM = {
    'category': 'offensive',
    'description': {'value': '<p>Grab the target.</p>'},
}

ACTION_GRAB = {
    '_id': 'actionGrab000001',
    'name': 'Grab',
    'type': 'action',
    'img': 'systems/pf2e/icons/action.webp',
    'system': GRAB_SYSTEM,
}

NPC_GOBLIN = {
    '_id': 'npcGoblinWarr001',
    'name': 'Goblin Warrior',
    'type': 'npc',
    'img': 'systems/pf2e/icons/npc.webp',
    'system': {
        'details': {'publicNotes': '<p>Casts @UUID[Compendium.pf2e.spells-srd.Item.Fireball]</p>'},
        'traits': {'size': {'value': 'sm'}, 'value': ['goblin']},
    },
    'items': [
        {
            '_id': 'embEntryInnate01',
            'name': 'Innate Spells',
            'type': 'spellcastingEntry',
            'img': 'systems/pf2e/icons/spell.webp',
            'sort': 100000,
            'system': {'prepared': {'value': 'innate'}},
        },
        {
            '_id': 'embSpellFire0001',
            'name': 'Fireball',
            'type': 'spell',
            'img': 'systems/pf2e/icons/spell.webp',
            'sort': 200000,
            'system': {**FIREBALL_SYSTEM, 'location': {'value': 'embEntryInnate01'}},
            '_stats': {'compendiumSource': 'Compendium.pf2e.spells-srd.Item.Fireball'},
        },
        {
            '_id': 'embActionGrab001',
            'name': 'Grab',
            'type': 'action',
            'img': 'systems/pf2e/icons/action.webp',
            'sort': 300000,
            'system': GRAB_SYSTEM,
            '_stats': {'compendiumSource': 'Compendium.pf2e.actions.Item.Grab'},
        },
    ],
}

JOURNAL_GUIDE = {
    '_id': 'journalGuide0001',
    'name': 'Guide',
    'content': '<p>See @UUID[Compendium.pf2e.spells-srd.Item.Shield]{the shield spell}.</p>',
}

MANIFEST = {
    'id': SYSTEM_ID,
    'schemaVersion': 0.9,
    'packs': [
        {'name': 'spells-srd', 'path': 'packs/spells.db', 'type': 'Item'},
        {'name': 'actions', 'path': 'packs/actions.db', 'type': 'Item'},
        {'name': 'bestiary', 'path': 'packs/bestiary.db', 'type': 'Actor'},
        {'name': 'journals', 'path': 'packs/journals.db', 'type': 'JournalEntry'},
    ],
}

ICONS = ('spell.webp', 'action.webp', 'npc.webp')


def write_json(path, data) -> None:
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=4, ensure_ascii=False)


def read_lines(path) -> list[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        return [json.loads(line) for line in f if line.strip()]


class Project:
    """A throwaway content project on disk."""

    def __init__(self, root) -> None:
        self.root = root
        self.manifest_path = str(root / 'system.json')
        write_json(self.manifest_path, MANIFEST)
        for icon in ICONS:
            icon_path = root / 'static' / 'icons' / icon
            icon_path.parent.mkdir(parents=True, exist_ok=True)
            icon_path.write_bytes(b'RIFF')
        for pack in MANIFEST['packs']:
            (root / 'packs' / 'data' / os.path.basename(pack['path'])).mkdir(parents=True, exist_ok=True)

    @property
    def config(self) -> ProjectConfig:
        return load_project_config(self.manifest_path)

    def source_dir(self, dirname: str):
        return self.root / 'packs' / 'data' / dirname

    def out_path(self, dirname: str):
        return self.root / 'dist' / 'packs' / dirname

    def write_source(self, dirname: str, document: dict, subdir: str = '', filename: str | None = None) -> str:
        """Write a source document as ``<slug>.json`` (or the given filename)."""
        path = self.source_dir(dirname) / subdir / (filename or f"{slugify(document['name'])}.json")
        write_json(path, document)
        return str(path)

    def write_compiled(self, dirname: str, documents: list[dict]) -> str:
        path = self.out_path(dirname)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(''.join(json.dumps(doc) + '\n' for doc in documents), encoding='utf-8')
        return str(path)

    def read_source(self, dirname: str, filename: str) -> dict:
        with open(self.source_dir(dirname) / filename, 'r', encoding='utf-8') as f:
            return json.load(f)

    def populate(self) -> None:
        """Write the standard sample documents into their packs."""
        self.write_source('spells.db', copy.deepcopy(SPELL_FIREBALL))
        self.write_source('spells.db', copy.deepcopy(SPELL_SHIELD))
        self.write_source('actions.db', copy.deepcopy(ACTION_GRAB))
        self.write_source('bestiary.db', copy.deepcopy(NPC_GOBLIN))
        self.write_source('journals.db', copy.deepcopy(JOURNAL_GUIDE))


# ── Fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture
def project(tmp_path):
    """An empty project: manifest, assets and empty pack directories."""
    return Project(tmp_path)


@pytest.fixture
def populated_project(project):
    """A project holding the standard sample documents."""
    project.populate()
    return project


@pytest.fixture
def fireball():
    return copy.deepcopy(SPELL_FIREBALL)


@pytest.fixture
def goblin():
    return copy.deepcopy(NPC_GOBLIN)
