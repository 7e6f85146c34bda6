"""
Role title cleanup.

Turns noisy page titles like "Acme — Senior Software Engineer – Req#8932, CA"
into "Senior Software Engineer".
"""

import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)

US_STATE_CODES = (
    'AL|AK|AZ|AR|CA|CO|CT|DE|DC|FL|GA|HI|ID|IL|IN|IA|KS|KY|LA|ME|MD|MA|MI|MN|MS|MO|'
    'MT|NE|NV|NH|NJ|NM|NY|NC|ND|OH|OK|OR|PA|RI|SC|SD|TN|TX|UT|VT|VA|WA|WV|WI|WY'
)

TAG_PATTERN = re.compile(r'<[^>]*>')
EMOJI_PATTERN = re.compile(
    '['
    '\U0001F000-\U0001FAFF'
    '\u2600-\u27BF'
    '\u2B00-\u2BFF'
    '\uFE0E\uFE0F'
    '\u200D'
    ']+'
)
LOCATION_SUFFIX = re.compile(
    rf'\s*[-–—,]\s*(?:[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*,?\s+)?(?:{US_STATE_CODES})$'
)
REQ_ID_SUFFIX = re.compile(
    r'\s*[-–—]?\s*(?:\b(?:JR|Req|R|ID|Job)[\s#:-]*\d+|\b\d{5,})\s*$',
    re.IGNORECASE
)

# &amp; goes last so "&amp;lt;" decodes to "&lt;" rather than "<"
HTML_ENTITIES = [
    ('&lt;', '<'),
    ('&gt;', '>'),
    ('&quot;', '"'),
    ('&#39;', "'"),
    ('&apos;', "'"),
    ('&nbsp;', ' '),
    ('&amp;', '&'),
]


def strip_tags(text: str) -> str:
    return TAG_PATTERN.sub(' ', text)


def decode_html(text: str) -> str:
    for entity, char in HTML_ENTITIES:
        text = text.replace(entity, char)
    return text


def strip_emojis(text: str) -> str:
    return EMOJI_PATTERN.sub('', text)


def collapse_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text).strip()


def _strip_company(role: str, company: str) -> str:
    c = re.escape(company.strip())
    prefix = re.compile(rf'^\s*{c}\s*[-–—:|]+\s*', re.IGNORECASE)
    suffix = re.compile(rf'\s*(?:[-–—:|@]+|\bat\b)\s*{c}\s*$', re.IGNORECASE)

    for pattern in (prefix, suffix):
        stripped = pattern.sub('', role)
        if stripped.strip():
            role = stripped
    return role


def _strip_trailing_noise(role: str) -> str:
    """Drop location and requisition-ID suffixes until nothing changes."""
    while True:
        before = role
        for pattern in (LOCATION_SUFFIX, REQ_ID_SUFFIX):
            stripped = pattern.sub('', role).rstrip(' -–—,')
            if stripped:
                role = stripped
        if role == before:
            return role


def clean_role(title: Optional[str], company: Optional[str] = None) -> str:
    """
    Normalize a role title.

    Args:
        title: Raw role text (may contain tags, entities, emoji)
        company: Known company name, removed when it prefixes or suffixes the role

    Returns:
        Cleaned role text ('' for empty input)
    """
    if not title:
        return ''

    role = collapse_whitespace(strip_emojis(decode_html(strip_tags(title))))
    if company and company.strip():
        role = _strip_company(role, company)
    role = _strip_trailing_noise(role)

    return collapse_whitespace(role)
