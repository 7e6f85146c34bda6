"""
Canonical URLs: tracking parameters stripped so the same posting always maps
to the same string.
"""
import logging
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

logger = logging.getLogger(__name__)

TRACKING_PARAMS = frozenset([
    'gh_src', 'src', 'source', 'vq_campaign', 'vq_source',
    '__jvst', '__jvsd', 'codes', 'gh_jid',
])
TRACKING_PREFIXES = ('utm_',)


def is_tracking_param(name: str) -> bool:
    return name in TRACKING_PARAMS or name.startswith(TRACKING_PREFIXES)


def canonicalize(url: str) -> str:
    """
    Remove tracking query parameters from a URL.

    The query is only re-serialized when something was removed, so canonical
    input comes back byte-identical. Unparsable input is returned unchanged.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url.strip())
        if not parts.scheme or not parts.netloc:
            return url
        # Accessing .port validates the netloc
        parts.port
    except ValueError:
        logger.debug(f"[canonical] Unparsable URL left as-is: {url[:200]}")
        return url

    if not parts.query:
        return urlunsplit(parts)

    params = parse_qsl(parts.query, keep_blank_values=True)
    kept = [(k, v) for k, v in params if not is_tracking_param(k)]
    if len(kept) == len(params):
        return urlunsplit(parts)

    return urlunsplit(parts._replace(query=urlencode(kept)))
