"""
JSON-LD extractor.

Finds a Schema.org JobPosting in a page's ld+json blocks and returns its
hiring organization and title.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

MAX_DEPTH = 12


def _is_ld_json(script_type: Optional[str]) -> bool:
    return bool(script_type) and 'ld+json' in script_type.lower()


def find_jsonld_scripts(soup: BeautifulSoup):
    return soup.find_all('script', type=_is_ld_json)


def is_job_posting(node: Dict) -> bool:
    """`@type` may be a single string or a list of strings."""
    item_type = node.get('@type')
    if isinstance(item_type, str):
        return 'jobposting' in item_type.lower()
    if isinstance(item_type, list):
        return any(isinstance(t, str) and 'jobposting' in t.lower() for t in item_type)
    return False


def find_job_posting(node: Any, depth: int = 0) -> Optional[Dict]:
    """
    Depth-first search for the first JobPosting node.

    Looks through lists, `@graph` and every nested object, giving up below
    MAX_DEPTH levels.
    """
    if depth > MAX_DEPTH or node is None:
        return None

    if isinstance(node, list):
        for item in node:
            found = find_job_posting(item, depth + 1)
            if found is not None:
                return found
        return None

    if isinstance(node, dict):
        if is_job_posting(node):
            return node
        if '@graph' in node:
            found = find_job_posting(node['@graph'], depth + 1)
            if found is not None:
                return found
        for key, value in node.items():
            if key == '@graph' or not isinstance(value, (dict, list)):
                continue
            found = find_job_posting(value, depth + 1)
            if found is not None:
                return found

    return None


def _organization_name(org: Any) -> str:
    if isinstance(org, dict):
        return str(org.get('name') or org.get('legalName') or '').strip()
    if isinstance(org, str):
        return org.strip()
    if isinstance(org, list) and org:
        return _organization_name(org[0])
    return ''


class JSONLDExtractor:
    """Extracts (company, role) from JSON-LD structured data."""

    def extract(self, soup: BeautifulSoup) -> Tuple[str, str]:
        """
        Returns:
            (company, role); empty strings when no JobPosting is found
        """
        for script in find_jsonld_scripts(soup):
            raw = script.string or script.get_text() or ''
            if not raw.strip():
                continue
            try:
                data = json.loads(raw.strip())
            except (json.JSONDecodeError, ValueError) as e:
                logger.debug(f"Failed to parse JSON-LD: {e}")
                continue

            posting = find_job_posting(data)
            if posting is None:
                continue

            company = _organization_name(posting.get('hiringOrganization'))
            title = posting.get('title')
            role = str(title).strip() if isinstance(title, (str, int, float)) else ''
            return company, role

        return '', ''
