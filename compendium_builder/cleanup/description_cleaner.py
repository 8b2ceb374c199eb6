"""HTML clean-up for rich-text descriptions.

A fixed pipeline of string rewrites that normalizes markup pasted in from
external sources. Applying it twice gives the same result as applying it once.
"""

import re

_BLOCK_WRAPPED_RE = re.compile(r'^<p>.*</(?:p|ol|ul|table)>$', re.S)
_PASTE_SPAN_RES = [
    re.compile(r'<span id="ctl00_MainContent_DetailedOutput">(.*?)</span>', re.S),
    re.compile(r'<span class="fontstyle0">(.*?)</span>', re.S),
]

_REWRITES: list[tuple[re.Pattern, str]] = [
    (re.compile(r'<([hb]r)\s*/?>'), r'<\1 />'),
    (re.compile(r'</p> ?<p>'), '</p>\n<p>'),
    (re.compile(r'<p>[ \r\n]+'), '<p>'),
    (re.compile(r'[ \r\n]+</p>'), '</p>'),
    (re.compile(r'<(?:b|strong)>\s*([^<]*?)\s*</(?:b|strong)>'), r'<strong>\1</strong>'),
    (re.compile(r'(</strong>)(\w)'), r'\1 \2'),
    (re.compile(r'\bpf2-icon\b'), 'action-glyph'),
    (re.compile(r'<p>\s*</p>'), ''),
    (re.compile(r'<div>\s*</div>'), ''),
    (re.compile(r'&nbsp;'), ' '),
    (re.compile('\u2011'), '-'),
    (re.compile(' *\u2014 *'), '\u2014'),
    (re.compile(r' {2,}'), ' '),
]

_LEADING_RULE_RE = re.compile(r'^<hr />')
_MAX_PASSES = 5


def clean_description(description: str) -> str:
    """Normalize description markup.

    Args:
        description: Raw HTML description.

    Returns:
        Cleaned HTML; an empty or whitespace-only input becomes ``""``.
    """
    text = description.strip()
    for _ in range(_MAX_PASSES):
        cleaned = _clean_once(text)
        if cleaned == text:
            break
        text = cleaned
    return text


def _clean_once(text: str) -> str:
    if not text:
        return text
    if not _BLOCK_WRAPPED_RE.match(text):
        text = f'<p>{text}</p>'

    for pattern in _PASTE_SPAN_RES:
        text = pattern.sub(r'\1', text)
    for pattern, replacement in _REWRITES:
        text = pattern.sub(replacement, text)

    text = text.strip()
    text = _LEADING_RULE_RE.sub('', text)
    return text.strip()
