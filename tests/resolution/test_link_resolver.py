"""Tests for LinkResolver."""

import pytest

from compendium_builder.domain.enums import DocumentKind
from compendium_builder.domain.errors import BrokenLink, PolicyError
from compendium_builder.resolution.link_index import LinkIndex
from compendium_builder.resolution.link_resolver import LinkResolver
from compendium_builder.resolution.redirects import RedirectTable

NAME_LINK = '@UUID[Compendium.pf2e.spells-srd.Item.Fireball]'
ID_LINK = '@UUID[Compendium.pf2e.spells-srd.Item.spellFireball001]'


@pytest.fixture
def index():
    index = LinkIndex()
    index.register('spells-srd', 'spellFireball001', 'Fireball')
    index.register('spells-srd', 'spellShield00001', 'Shield')
    index.register('actions', 'actionGrab000001', 'Grab')
    index.register_pack('journals')
    index.mark_populated()
    return index


@pytest.fixture
def resolver(index):
    return LinkResolver(index, 'pf2e')


class TestConvertText:
    """Tests for rich-text link rewriting."""

    def test_name_to_id_adds_label(self, resolver):
        text = f'<p>See {NAME_LINK}</p>'
        assert resolver.convert_text(text, to_ids=True) == f'<p>See {ID_LINK}{{Fireball}}</p>'

    def test_name_to_id_keeps_label(self, resolver):
        text = f'{NAME_LINK}{{a ball of fire}}'
        assert resolver.convert_text(text, to_ids=True) == f'{ID_LINK}{{a ball of fire}}'

    def test_id_to_name_drops_redundant_label(self, resolver):
        assert resolver.convert_text(f'{ID_LINK}{{Fireball}}', to_ids=False) == NAME_LINK

    def test_id_to_name_label_match_ignores_case(self, resolver):
        assert resolver.convert_text(f'{ID_LINK}{{fireball}}', to_ids=False) == NAME_LINK

    def test_id_to_name_keeps_custom_label(self, resolver):
        text = f'{ID_LINK}{{a ball of fire}}'
        assert resolver.convert_text(text, to_ids=False) == f'{NAME_LINK}{{a ball of fire}}'

    def test_multiple_links(self, resolver):
        text = f'{NAME_LINK} and @UUID[Compendium.pf2e.actions.Item.Grab]'
        result = resolver.convert_text(text, to_ids=True)
        assert result == (
            f'{ID_LINK}{{Fireball}} and '
            '@UUID[Compendium.pf2e.actions.Item.actionGrab000001]{Grab}'
        )

    def test_legacy_link_rewritten(self, resolver):
        text = '@Compendium[pf2e.spells-srd.Item.spellFireball001]{Fireball}'
        assert resolver.convert_text(text, to_ids=False) == NAME_LINK

    def test_legacy_link_of_other_system_untouched(self, resolver):
        text = '@Compendium[dnd5e.spells.Item.Fireball]'
        assert resolver.convert_text(text, to_ids=True) == text

    def test_other_system_untouched(self, resolver):
        text = '@UUID[Compendium.dnd5e.spells.Item.Fireball]'
        assert resolver.convert_text(text, to_ids=True) == text

    def test_journal_page_link_untouched(self, resolver):
        text = '@UUID[Compendium.pf2e.journals.JournalEntry.abc.JournalEntryPage.def]{Page}'
        assert resolver.convert_text(text, to_ids=True) == text

    def test_broken_link(self, resolver):
        with pytest.raises(BrokenLink) as excinfo:
            resolver.convert_text('@UUID[Compendium.pf2e.spells-srd.Item.Fire Ball]', True, 'Shield')
        assert excinfo.value.source == 'Shield'
        assert excinfo.value.pack == 'spells-srd'
        assert excinfo.value.token == 'Fire Ball'

    def test_broken_link_when_extracting(self, resolver):
        with pytest.raises(BrokenLink):
            resolver.convert_text('@UUID[Compendium.pf2e.spells-srd.Item.missingId000001]', False)

    @pytest.mark.parametrize('text', [
        '@Item[abcdefghijklmnop]',
        '@JournalEntry[Guide]',
        '@UUID[Item.abcdefghijklmnop]',
        '@Compendium[world.abcdefghijklmnop]',
    ])
    def test_world_links_rejected(self, resolver, text):
        with pytest.raises(PolicyError, match='world document'):
            resolver.convert_text(f'<p>{text}</p>', to_ids=True, source='Shield')


class TestConvertUuid:
    """Tests for structured reference rewriting."""

    def test_name_to_id(self, resolver):
        value = 'Compendium.pf2e.spells-srd.Item.Fireball'
        assert resolver.convert_uuid(value, to_ids=True) == 'Compendium.pf2e.spells-srd.Item.spellFireball001'

    def test_id_to_name(self, resolver):
        value = 'Compendium.pf2e.actions.Item.actionGrab000001'
        assert resolver.convert_uuid(value, to_ids=False) == 'Compendium.pf2e.actions.Item.Grab'

    def test_world_item_rejected(self, resolver):
        with pytest.raises(PolicyError, match='world item'):
            resolver.convert_uuid('Item.abcdefghijklmnop', to_ids=True)

    def test_unrelated_value_untouched(self, resolver):
        assert resolver.convert_uuid('{item|flags.pf2e.rulesSelections.x}', True) == '{item|flags.pf2e.rulesSelections.x}'

    def test_redirect_applied_when_building(self, index):
        redirects = RedirectTable({
            'Compendium.pf2e.spells-srd.Item.Fire Ball': 'Compendium.pf2e.spells-srd.Item.Fireball',
        }, 'pf2e')
        resolver = LinkResolver(index, 'pf2e', redirects)
        assert resolver.convert_uuid('Compendium.pf2e.spells-srd.Item.Fire Ball', True) == \
            'Compendium.pf2e.spells-srd.Item.spellFireball001'
        text = resolver.convert_text('@UUID[Compendium.pf2e.spells-srd.Item.Fire Ball]', True)
        assert text == f'{ID_LINK}{{Fireball}}'


class TestDocumentConversion:
    """Tests for walking whole documents."""

    def test_item_description_and_rules(self, resolver):
        document = {
            'name': 'Shield',
            'type': 'spell',
            'system': {
                'description': {'value': f'<p>{NAME_LINK}</p>'},
                'rules': [
                    {'key': 'GrantItem', 'uuid': 'Compendium.pf2e.actions.Item.Grab'},
                    {'key': 'ChoiceSet', 'choices': [{'value': 'Compendium.pf2e.spells-srd.Item.Shield'}]},
                    {'key': 'FlatModifier', 'uuid': 'Compendium.pf2e.actions.Item.Unknown'},
                ],
            },
        }
        result = resolver.to_ids(document, DocumentKind.ITEM)
        assert result['system']['description']['value'] == f'<p>{ID_LINK}{{Fireball}}</p>'
        assert result['system']['rules'][0]['uuid'] == 'Compendium.pf2e.actions.Item.actionGrab000001'
        assert result['system']['rules'][1]['choices'][0]['value'] == 'Compendium.pf2e.spells-srd.Item.spellShield00001'
        assert result['system']['rules'][2]['uuid'] == 'Compendium.pf2e.actions.Item.Unknown'
        assert document['system']['description']['value'] == f'<p>{NAME_LINK}</p>'

    def test_actor_items_and_origin(self, resolver, goblin):
        result = resolver.to_ids(goblin, DocumentKind.ACTOR)
        assert result['system']['details']['publicNotes'] == f'<p>Casts {ID_LINK}{{Fireball}}</p>'
        spell = result['items'][1]
        assert spell['_stats']['compendiumSource'] == 'Compendium.pf2e.spells-srd.Item.spellFireball001'
        back = resolver.to_names(result, DocumentKind.ACTOR)
        assert back == goblin

    def test_nested_spell_of_consumable(self, resolver):
        scroll = {
            'name': 'Scroll of Fireball',
            'type': 'consumable',
            'system': {'spell': {'name': 'Fireball', 'system': {'description': {'value': NAME_LINK}}}},
        }
        result = resolver.to_ids(scroll, DocumentKind.ITEM)
        assert result['system']['spell']['system']['description']['value'] == f'{ID_LINK}{{Fireball}}'

    def test_journal_pages(self, resolver):
        journal = {
            'name': 'Guide',
            'pages': [{'name': 'One', 'text': {'content': NAME_LINK}}],
        }
        result = resolver.to_ids(journal, DocumentKind.JOURNAL_ENTRY)
        assert result['pages'][0]['text']['content'] == f'{ID_LINK}{{Fireball}}'

    def test_roll_table_results(self, resolver):
        table = {
            'name': 'Random Spell',
            'results': [{'text': 'Fireball', 'documentUuid': 'Compendium.pf2e.spells-srd.Item.Fireball'}],
        }
        result = resolver.to_ids(table, DocumentKind.ROLL_TABLE)
        assert result['results'][0]['documentUuid'] == 'Compendium.pf2e.spells-srd.Item.spellFireball001'
        assert result['results'][0]['text'] == 'Fireball'

    def test_unlisted_fields_untouched(self, resolver):
        document = {'name': 'Shield', 'system': {'notes': NAME_LINK}}
        assert resolver.to_ids(document, DocumentKind.ITEM) == document
