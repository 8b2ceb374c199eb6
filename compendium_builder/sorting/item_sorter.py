"""Deterministic ordering of an actor's embedded items.

Items are grouped by type in a fixed priority, ordered within each group by
type-specific rules, and assigned ``sort`` values in steps of ``SORT_STEP``.
"""

import logging
from typing import Any

from compendium_builder.domain.constants import (
    ACTION_OVERRIDES,
    ITEM_TYPE_ORDER,
    SORT_STEP,
    SPELLCASTING_ENTRY_NAME_RE,
    SPELLCASTING_OVERRIDES,
    SortOverride,
)
from compendium_builder.domain.enums import ActionCategory, OverridePosition
from compendium_builder.domain.field_walker import get_path

logger = logging.getLogger(__name__)

Item = dict[str, Any]


class ItemSorter:
    """Sorts the embedded items of an actor.

    Args:
        log_warnings: Emit warnings for items missing data the order depends on.
    """

    def __init__(self, log_warnings: bool = True) -> None:
        self._log_warnings = log_warnings

    def sort(self, actor: dict[str, Any]) -> list[Item]:
        """Return the actor's items in display order with ``sort`` values assigned.

        The actor's own item list is left in its original order; the returned
        items are the same objects with ``sort`` updated.
        """
        items = [item for item in actor.get('items') or [] if isinstance(item, dict)]
        actor_name = actor.get('name', '?')

        groups: dict[str, list[Item]] = {item_type: [] for item_type in ITEM_TYPE_ORDER}
        unhandled: list[Item] = []
        for item in items:
            bucket = groups.get(item.get('type'))
            if bucket is None:
                self._warn("Item type '%s' is currently unhandled (%s on %s)", item.get('type'), item.get('name'), actor_name)
                unhandled.append(item)
            else:
                bucket.append(item)

        ordered: list[Item] = []
        for item_type in ITEM_TYPE_ORDER:
            ordered.extend(self._sort_group(item_type, groups[item_type], actor_name))
        ordered.extend(unhandled)

        for position, item in enumerate(ordered):
            item['sort'] = SORT_STEP * (position + 1)
        return ordered

    # ── Group Ordering ───────────────────────────────────────────────────

    def _sort_group(self, item_type: str, items: list[Item], actor_name: str) -> list[Item]:
        if item_type == 'spellcastingEntry':
            return apply_overrides(items, SPELLCASTING_OVERRIDES)
        if item_type == 'spell':
            return self._sort_spells(items)
        if item_type == 'melee':
            return self._sort_melee(items, actor_name)
        if item_type == 'action':
            return self._sort_actions(items, actor_name)
        if item_type == 'lore':
            return sorted(items, key=_name)
        return list(items)

    def _sort_spells(self, items: list[Item]) -> list[Item]:
        leveled = [i for i in items if isinstance(get_path(i, 'system.level.value'), (int, float))]
        unleveled = [i for i in items if not isinstance(get_path(i, 'system.level.value'), (int, float))]
        leveled.sort(key=lambda i: (-get_path(i, 'system.level.value'), _name(i)))
        return leveled + sorted(unleveled, key=_name)

    def _sort_melee(self, items: list[Item], actor_name: str) -> list[Item]:
        typed, untyped = [], []
        for item in items:
            weapon_type = get_path(item, 'system.weaponType.value')
            if isinstance(weapon_type, str) and weapon_type:
                typed.append(item)
            else:
                self._warn("Melee item '%s' has no weaponType defined! (%s)", item.get('name'), actor_name)
                untyped.append(item)
        typed.sort(key=lambda i: get_path(i, 'system.weaponType.value'))
        return typed + untyped

    def _sort_actions(self, items: list[Item], actor_name: str) -> list[Item]:
        categories: dict[ActionCategory, list[Item]] = {category: [] for category in ActionCategory}
        for item in sorted(items, key=_name):
            if SPELLCASTING_ENTRY_NAME_RE.search(item.get('name', '')):
                self._warn("Action '%s' on %s is named like a spellcasting entry", item.get('name'), actor_name)
            raw = get_path(item, 'system.category')
            if not raw:
                self._warn("Action '%s' on %s has no category defined", item.get('name'), actor_name)
            categories[_action_category(raw)].append(item)

        ordered: list[Item] = []
        for category in ActionCategory:
            ordered.extend(apply_overrides(categories[category], ACTION_OVERRIDES[category]))
        return ordered

    def _warn(self, message: str, *args: Any) -> None:
        if self._log_warnings:
            logger.warning(message, *args)


def apply_overrides(items: list[Item], overrides: list[SortOverride]) -> list[Item]:
    """Pin items whose name matches an override to the top or bottom.

    Each override pins the first unpinned item whose name contains a match.
    Pinned items follow the order of the override table; the rest keep
    their relative order between them.
    """
    top: list[Item] = []
    bottom: list[Item] = []
    pinned: set[int] = set()
    for pattern, position in overrides:
        match = next(
            (item for item in items if id(item) not in pinned and pattern.search(item.get('name', ''))),
            None,
        )
        if match is None:
            continue
        pinned.add(id(match))
        (top if position is OverridePosition.TOP else bottom).append(match)
    middle = [item for item in items if id(item) not in pinned]
    return top + middle + bottom


def _action_category(raw: Any) -> ActionCategory:
    for category in ActionCategory:
        if category.value == raw:
            return category
    return ActionCategory.OTHER


def _name(item: Item) -> str:
    return item.get('name', '')
