"""
Minimal HTML to Markdown conversion for email bodies.

Only inline emphasis, line breaks and paragraphs are mapped; every other
tag is stripped and its text kept.
"""

import re

from services.encoding import decode_html_entities

_FLAGS = re.IGNORECASE | re.DOTALL

# Elements whose text content is never part of the readable message
_INVISIBLE = re.compile(r'<(style|script)\b[^>]*>.*?</\1\s*>', _FLAGS)
_COMMENT = re.compile(r'<!--.*?-->', re.DOTALL)

_RULES = (
    (re.compile(r'<b(?:\s[^>]*)?>(.*?)</b\s*>', _FLAGS), r'**\1**'),
    (re.compile(r'<strong(?:\s[^>]*)?>(.*?)</strong\s*>', _FLAGS), r'**\1**'),
    (re.compile(r'<i(?:\s[^>]*)?>(.*?)</i\s*>', _FLAGS), r'*\1*'),
    (re.compile(r'<em(?:\s[^>]*)?>(.*?)</em\s*>', _FLAGS), r'*\1*'),
    (re.compile(r'<br\s*/?>', _FLAGS), '\n'),
    (re.compile(r'<p(?:\s[^>]*)?>', _FLAGS), '\n'),
    (re.compile(r'</p\s*>', _FLAGS), '\n'),
    (re.compile(r'<[^>]+>'), ''),
)

# Quoted-printable non-breaking space left behind by undecoded parts
_QP_NBSP = '=C2=A0'
_BLANK_RUNS = re.compile(r'\n[ \t\xa0]*\n(?:[ \t\xa0]*\n)*')


def convert_html_to_markdown(html: str) -> str:
    """
    Convert basic HTML formatting to Markdown.

    Args:
        html: HTML fragment or document

    Returns:
        str: Markdown text, trimmed, with blank line runs collapsed to one

    Example:
        >>> convert_html_to_markdown('<p>Hello <b>World</b></p>')
        'Hello **World**'
    """
    if not html:
        return ''

    text = _COMMENT.sub('', html)
    text = _INVISIBLE.sub('', text)
    for pattern, replacement in _RULES:
        text = pattern.sub(replacement, text)

    text = decode_html_entities(text)
    text = text.replace(_QP_NBSP, ' ')
    text = _BLANK_RUNS.sub('\n\n', text)
    return text.strip()
