"""Tests for the uuid redirect table."""

import json

import pytest

from compendium_builder.domain.errors import BrokenLink, StructuralError
from compendium_builder.resolution.link_index import LinkIndex
from compendium_builder.resolution.redirects import RedirectTable, write_resolved_redirects

STALE = 'Compendium.pf2e.spells-srd.Item.Fire Ball'
TARGET = 'Compendium.pf2e.spells-srd.Item.Fireball'


class TestRedirectTable:
    """Tests for loading, rewriting and resolving redirects."""

    def setup_method(self):
        self.index = LinkIndex()
        self.index.register('spells-srd', 'spellFireball001', 'Fireball')
        self.index.mark_populated()

    def test_missing_file_is_empty(self, tmp_path):
        table = RedirectTable.load(str(tmp_path / 'uuid-redirects.json'), 'pf2e')
        assert len(table) == 0
        assert table.rewrite(TARGET) == TARGET

    def test_load_and_rewrite(self, tmp_path):
        path = tmp_path / 'uuid-redirects.json'
        path.write_text(json.dumps({STALE: TARGET}), encoding='utf-8')
        table = RedirectTable.load(str(path), 'pf2e')
        assert len(table) == 1
        assert table.rewrite(STALE) == TARGET

    def test_load_rejects_non_string_targets(self, tmp_path):
        path = tmp_path / 'uuid-redirects.json'
        path.write_text(json.dumps({STALE: 3}), encoding='utf-8')
        with pytest.raises(StructuralError, match='must map strings'):
            RedirectTable.load(str(path), 'pf2e')

    def test_resolve_to_ids(self):
        table = RedirectTable({STALE: TARGET}, 'pf2e')
        assert table.resolve(self.index) == {STALE: 'Compendium.pf2e.spells-srd.Item.spellFireball001'}

    def test_resolve_unknown_target(self):
        table = RedirectTable({STALE: 'Compendium.pf2e.spells-srd.Item.Meteor'}, 'pf2e')
        with pytest.raises(BrokenLink) as excinfo:
            table.resolve(self.index)
        assert excinfo.value.source == 'uuid-redirects.json'
        assert excinfo.value.token == 'Meteor'

    def test_resolve_rejects_foreign_target(self):
        table = RedirectTable({STALE: 'Compendium.dnd5e.spells.Item.Fireball'}, 'pf2e')
        with pytest.raises(StructuralError, match='not a compendium reference'):
            table.resolve(self.index)

    def test_write_resolved(self, tmp_path):
        path = write_resolved_redirects({STALE: 'Compendium.pf2e.spells-srd.Item.spellFireball001'}, str(tmp_path))
        with open(path, 'r', encoding='utf-8') as f:
            assert json.load(f) == {STALE: 'Compendium.pf2e.spells-srd.Item.spellFireball001'}

    def test_write_empty_table_skipped(self, tmp_path):
        assert write_resolved_redirects({}, str(tmp_path / 'out')) is None
        assert not (tmp_path / 'out').exists()
