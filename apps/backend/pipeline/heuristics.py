"""
Page signal extractors.

Pure functions over a parsed page: meta tags, H1, <title>, href scan,
plain-text preview, and the "useful signal" test the fetch tiers rely on.
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from bs4 import BeautifulSoup

from .jsonld import JSONLDExtractor, find_jsonld_scripts

logger = logging.getLogger(__name__)

GENERIC_TITLES = [
    'job details', 'job detail', 'careers', 'career portal',
    'choose your sign in option', 'sign in', 'signin', 'login', 'log in',
    'home', 'open positions', 'all jobs', 'search results', 'job search',
    'apply now', 'opportunities', 'join our team',
]


def parse_html(html: Optional[str]) -> BeautifulSoup:
    return BeautifulSoup(html or '', 'html.parser')


def _squash(text: str) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def get_meta(soup: BeautifulSoup, key: str) -> str:
    """Content of <meta property=key> (or name=key)."""
    for attr in ('property', 'name'):
        tag = soup.find('meta', attrs={attr: re.compile(rf'^{re.escape(key)}$', re.I)})
        if tag and tag.get('content'):
            return _squash(tag['content'])
    return ''


def get_title(soup: BeautifulSoup) -> str:
    tag = soup.find('title')
    return _squash(tag.get_text()) if tag else ''


def get_h1(soup: BeautifulSoup) -> str:
    tag = soup.find('h1')
    return _squash(tag.get_text(' ')) if tag else ''


def has_jsonld(soup: BeautifulSoup) -> bool:
    return bool(find_jsonld_scripts(soup))


def is_generic_title(text: Optional[str]) -> bool:
    """True for boilerplate page titles like 'Job details' or 'Sign in'."""
    t = (text or '').strip().lower()
    if len(t) <= 2:
        return True
    return any(phrase in t for phrase in GENERIC_TITLES)


def has_useful_signal(html: Optional[str]) -> bool:
    """A JSON-LD block, or a non-boilerplate H1 / og:title / <title>."""
    if not html:
        return False
    soup = parse_html(html)
    if has_jsonld(soup):
        return True
    for candidate in (get_h1(soup), get_meta(soup, 'og:title'), get_title(soup)):
        if candidate and not is_generic_title(candidate):
            return True
    return False


def find_first_link(html: Optional[str], predicate: Callable[[str], bool]) -> str:
    """First absolute http(s) href in document order accepted by `predicate`."""
    if not html:
        return ''
    soup = parse_html(html)
    for tag in soup.find_all(href=True):
        href = (tag.get('href') or '').strip()
        if not re.match(r'^https?://', href, re.I):
            continue
        if predicate(href):
            return href
    return ''


def text_preview(html: Optional[str], limit: int = 1200) -> str:
    """Visible text without scripts/styles, whitespace collapsed, cut at `limit`."""
    if not html:
        return ''
    soup = parse_html(html)
    for tag in soup(['script', 'style', 'noscript']):
        tag.decompose()
    return _squash(soup.get_text(' '))[:limit]


@dataclass
class PageSignals:
    """Every hint the decision algorithm reads from one page."""
    h1: str = ''
    og_title: str = ''
    og_site_name: str = ''
    title: str = ''
    jsonld_company: str = ''
    jsonld_role: str = ''

    @classmethod
    def from_html(cls, html: Optional[str]) -> "PageSignals":
        if not html:
            return cls()
        soup = parse_html(html)
        company, role = JSONLDExtractor().extract(soup)
        return cls(
            h1=get_h1(soup),
            og_title=get_meta(soup, 'og:title'),
            og_site_name=get_meta(soup, 'og:site_name'),
            title=get_title(soup),
            jsonld_company=company,
            jsonld_role=role,
        )
