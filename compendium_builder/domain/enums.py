"""Domain enums for the compendium builder."""
from enum import Enum


class DocumentKind(Enum):
    """Closed set of top-level document kinds."""
    ACTOR = "Actor"
    ITEM = "Item"
    JOURNAL_ENTRY = "JournalEntry"
    MACRO = "Macro"
    ROLL_TABLE = "RollTable"
    OTHER = "Other"

    @classmethod
    def from_pack_type(cls, pack_type: str) -> 'DocumentKind':
        for kind in cls:
            if kind.value == pack_type:
                return kind
        return cls.OTHER


class ActionCategory(Enum):
    """NPC action groups, in display order."""
    INTERACTION = "interaction"
    DEFENSIVE = "defensive"
    OFFENSIVE = "offensive"
    OTHER = "other"


class OverridePosition(Enum):
    """Where a sort override pins matching items."""
    TOP = "top"
    BOTTOM = "bottom"


class ExemptionKind(Enum):
    """How a field is treated when comparing an embedded item to its canonical copy."""
    DELTA = "delta"            # may differ; stored in the deflated record
    POSITIONAL = "positional"  # always carried in the record, never compared
    TRANSIENT = "transient"    # stripped before comparison, never stored
