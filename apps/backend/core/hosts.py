"""
Host/provider classification.
Reads regex patterns from core/hosts.yaml (or HOSTS_CONFIG_PATH) and labels
hostnames as ATS endpoints or aggregators.
"""
import re
import yaml
import logging
from pathlib import Path
from typing import Dict, List, Optional, Pattern
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_HOSTS_PATH = Path(__file__).parent / 'hosts.yaml'

# Cache for loaded config, keyed by path
_config_cache: Dict[str, Dict] = {}


def host_from_url(url: str) -> str:
    """Lowercased hostname without a leading 'www.'; '' when unparsable."""
    try:
        host = (urlparse(url).hostname or '').lower()
    except ValueError:
        return ''
    return host[4:] if host.startswith('www.') else host


def nice_case(slug: str) -> str:
    """Convert an ATS slug like 'acme-corp' into 'Acme Corp'."""
    text = re.sub(r'[-_]+', ' ', slug)
    text = re.sub(r'\s+', ' ', text).strip()
    return re.sub(r'\b\w', lambda m: m.group(0).upper(), text)


def load_host_config(path: Optional[str] = None) -> Dict:
    """Load host classification data from YAML."""
    config_path = Path(path) if path else DEFAULT_HOSTS_PATH
    key = str(config_path)

    if key in _config_cache:
        return _config_cache[key]

    if not config_path.exists():
        logger.warning(f"[hosts] Host config file not found: {config_path}. Using empty lists.")
        _config_cache[key] = {}
        return _config_cache[key]

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    logger.info(f"[hosts] Loaded host config from {config_path}")

    _config_cache[key] = data
    return data


class HostClassifier:
    """Labels hosts as ATS or aggregator and infers company slugs from ATS URLs."""

    def __init__(self, ats_patterns: List[str], aggregator_patterns: List[str],
                 company_slug_patterns: Optional[List[str]] = None):
        self.ats_patterns: List[Pattern] = [re.compile(p, re.I) for p in ats_patterns]
        self.aggregator_patterns: List[Pattern] = [re.compile(p, re.I) for p in aggregator_patterns]
        self.company_slug_patterns: List[Pattern] = [
            re.compile(p, re.I) for p in (company_slug_patterns or [])
        ]

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "HostClassifier":
        data = load_host_config(path)
        return cls(
            ats_patterns=data.get('ats') or [],
            aggregator_patterns=data.get('aggregators') or [],
            company_slug_patterns=data.get('company_slugs') or [],
        )

    def is_ats_host(self, host: str) -> bool:
        return bool(host) and any(p.search(host) for p in self.ats_patterns)

    def is_aggregator_host(self, host: str) -> bool:
        return bool(host) and any(p.search(host) for p in self.aggregator_patterns)

    def guess_company_from_url(self, url: str) -> str:
        """
        Infer the company from the tenant slug in a known ATS URL.

        Examples:
            https://jobs.lever.co/acme/foo -> "Acme"
            https://boards.greenhouse.io/mega-corp/jobs/12345 -> "Mega Corp"
        """
        lowered = (url or '').lower()
        for pattern in self.company_slug_patterns:
            match = pattern.search(lowered)
            if match and match.group(1):
                return nice_case(match.group(1))
        return ''
