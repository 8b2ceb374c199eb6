"""Deterministic slugs for document names.

Slugs name source files (``<slug>.json``) and deflated item references, so
the function must be stable across runs and platforms.
"""

import re
import unicodedata

_DASHES_AND_SPACE_RE = re.compile(r'[-\s]+')
_JOIN_CONTROLS = {'\u200c', '\u200d'}


def slugify(text: str) -> str:
    """Convert a display name into a lowercase, dash separated slug.

    Args:
        text: Display name, e.g. ``"Bastard Sword"`` or ``"Jaws (Agile)"``.

    Returns:
        Slug such as ``"bastard-sword"`` or ``"jaws-agile"``.
    """
    if text == '-':
        return text

    split = _split_lower_upper(text).lower().replace("'", '').replace('\u2019', '')
    spaced = ''.join(ch if _is_word_char(ch) else ' ' for ch in split).strip()
    return _DASHES_AND_SPACE_RE.sub('-', spaced)


def _is_word_char(ch: str) -> bool:
    if ch in _JOIN_CONTROLS:
        return True
    category = unicodedata.category(ch)
    return category[0] in ('L', 'M') or category == 'Nd'


def _split_lower_upper(text: str) -> str:
    """Insert a dash between a lowercase letter and a following capital (``fooBar`` -> ``foo-Bar``)."""
    out: list[str] = []
    for i, ch in enumerate(text):
        out.append(ch)
        if (
            ch.islower()
            and i + 2 < len(text)
            and text[i + 1].isupper()
            and _is_word_char(text[i + 2])
        ):
            out.append('-')
    return ''.join(out)
