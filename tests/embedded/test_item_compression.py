"""Tests for embedded item deflation and inflation."""

import copy
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from compendium_builder.cleanup.document_sanitizer import DocumentSanitizer
from compendium_builder.domain.errors import BrokenLink, StructuralError
from compendium_builder.embedded.item_compression import (
    CanonicalItemCache,
    ItemDeflater,
    ItemInflater,
    is_deflated,
)

FIREBALL_RECORD = {
    '_id': 'embSpellFire0001',
    'baseItem': 'Compendium.pf2e.spells-srd.fireball',
    'type': 'spell',
    'sort': 200000,
    'location': {'value': 'embEntryInnate01'},
}

GRAB_RECORD = {
    '_id': 'embActionGrab001',
    'baseItem': 'Compendium.pf2e.actions.grab',
    'type': 'action',
    'sort': 300000,
}


@pytest.fixture
def cache(populated_project):
    return CanonicalItemCache(populated_project.config)


@pytest.fixture
def inflater(cache):
    return ItemInflater(cache, 'pf2e')


@pytest.fixture
def deflater(cache):
    return ItemDeflater(cache, DocumentSanitizer('pf2e'), 'pf2e')


class TestCanonicalItemCache:
    """Tests for canonical item lookup."""

    def test_get_by_slug(self, cache):
        assert cache.get('spells-srd', 'fireball')['_id'] == 'spellFireball001'

    def test_get_by_name(self, cache):
        assert cache.get_by_name('actions', 'Grab')['name'] == 'Grab'

    def test_returns_copies(self, cache):
        cache.get('spells-srd', 'fireball')['name'] = 'Changed'
        assert cache.get('spells-srd', 'fireball')['name'] == 'Fireball'

    def test_unknown_slug(self, cache):
        assert cache.get('spells-srd', 'meteor') is None

    def test_only_item_packs(self, cache):
        assert cache.get('bestiary', 'goblin-warrior') is None
        assert cache.get('no-such-pack', 'fireball') is None

    def test_concurrent_get_loads_once(self, cache, monkeypatch):
        loads = []
        load = cache._load

        def counting_load(pack, slug):
            loads.append((pack, slug))
            return load(pack, slug)

        monkeypatch.setattr(cache, '_load', counting_load)
        start = threading.Barrier(8)

        def fetch(_):
            start.wait()
            return cache.get('spells-srd', 'fireball')

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(fetch, range(8)))

        assert loads == [('spells-srd', 'fireball')]
        assert all(result == results[0] for result in results)
        assert len({id(result) for result in results}) == 8

    def test_top_level_keys_stripped(self, populated_project):
        from tests.conftest import SPELL_FIREBALL
        populated_project.write_source('spells.db', dict(
            SPELL_FIREBALL, folder='folderArcane0001', sort=5, ownership={'default': 0},
        ))
        item = CanonicalItemCache(populated_project.config).get('spells-srd', 'fireball')
        assert not {'folder', 'sort', 'ownership', '_stats'} & item.keys()


class TestItemInflater:
    """Tests for ItemInflater."""

    def test_inflate_spell(self, inflater, goblin):
        assert inflater.inflate(copy.deepcopy(FIREBALL_RECORD), 'Goblin Warrior') == goblin['items'][1]

    def test_inflate_action(self, inflater, goblin):
        assert inflater.inflate(copy.deepcopy(GRAB_RECORD)) == goblin['items'][2]

    def test_inflate_applies_delta(self, inflater):
        record = dict(GRAB_RECORD, system={'description': {'value': '<p>Grab harder.</p>'}})
        result = inflater.inflate(record)
        assert result['system']['description'] == {'value': '<p>Grab harder.</p>'}
        assert result['system']['category'] == 'offensive'

    def test_full_items_pass_through(self, inflater, goblin):
        entry = goblin['items'][0]
        assert inflater.inflate(entry) is entry

    def test_malformed_base_item(self, inflater):
        with pytest.raises(StructuralError, match='Malformed baseItem'):
            inflater.inflate(dict(GRAB_RECORD, baseItem='actions.grab'), 'Goblin Warrior')

    def test_missing_canonical_item(self, inflater):
        with pytest.raises(BrokenLink) as excinfo:
            inflater.inflate(dict(GRAB_RECORD, baseItem='Compendium.pf2e.actions.shove'), 'Goblin Warrior')
        assert excinfo.value.source == 'Goblin Warrior'
        assert excinfo.value.pack == 'actions'
        assert excinfo.value.token == 'shove'


class TestItemDeflater:
    """Tests for ItemDeflater."""

    def test_deflate_spell(self, deflater, goblin):
        assert is_deflated(deflater.deflate(goblin['items'][1]))
        assert deflater.deflate(goblin['items'][1]) == FIREBALL_RECORD

    def test_deflate_action(self, deflater, goblin):
        assert deflater.deflate(goblin['items'][2]) == GRAB_RECORD

    def test_slug_ignored(self, deflater, goblin):
        spell = goblin['items'][1]
        spell['system']['slug'] = 'fireball'
        assert deflater.deflate(spell) == FIREBALL_RECORD

    def test_action_description_delta(self, deflater, inflater, goblin):
        grab = goblin['items'][2]
        grab['system'] = dict(grab['system'], description={'value': '<p>Grab harder.</p>'})
        record = deflater.deflate(grab)
        assert record == dict(GRAB_RECORD, system={'description': {'value': '<p>Grab harder.</p>'}})
        assert inflater.inflate(record) == grab

    def test_modified_spell_kept(self, deflater, goblin):
        spell = goblin['items'][1]
        spell['system']['level'] = {'value': 5}
        assert deflater.deflate(spell) is spell

    def test_renamed_copy_kept(self, deflater, goblin):
        spell = goblin['items'][1]
        spell['name'] = 'Fireball (Innate)'
        assert deflater.deflate(spell) is spell

    def test_item_without_origin_kept(self, deflater, goblin):
        spell = goblin['items'][1]
        del spell['_stats']
        assert deflater.deflate(spell) is spell

    def test_unknown_origin_kept(self, deflater, goblin):
        spell = goblin['items'][1]
        spell['_stats']['compendiumSource'] = 'Compendium.pf2e.spells-srd.Item.Meteor'
        assert deflater.deflate(spell) is spell

    def test_other_types_kept(self, deflater, goblin):
        entry = goblin['items'][0]
        assert deflater.deflate(entry) is entry
        weapon = {
            '_id': 'embWeaponDagger1', 'name': 'Dagger', 'type': 'weapon', 'system': {},
            '_stats': {'compendiumSource': 'Compendium.pf2e.spells-srd.Item.Fireball'},
        }
        assert deflater.deflate(weapon) is weapon

    def test_focus_component_default(self, populated_project, goblin):
        from tests.conftest import SPELL_FIREBALL
        canonical = copy.deepcopy(SPELL_FIREBALL)
        canonical['system']['components'] = {'somatic': True, 'focus': False}
        populated_project.write_source('spells.db', canonical)
        cache = CanonicalItemCache(populated_project.config)
        deflater = ItemDeflater(cache, DocumentSanitizer('pf2e'), 'pf2e')

        spell = goblin['items'][1]
        spell['system']['components'] = {'somatic': True}
        assert deflater.deflate(spell) is spell

        spell['system']['components'] = {'somatic': True, 'focus': False}
        assert deflater.deflate(spell) == FIREBALL_RECORD
