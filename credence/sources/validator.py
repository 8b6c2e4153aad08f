"""
Source validation, normalization, deduplication and reliability tiers.

Pure functions over Source values. Nothing here raises on bad input:
malformed URLs are classified invalid (or low reliability) and filtered
by the caller.
"""

import logging
from operator import attrgetter
from typing import Callable, Dict, Iterable, List, Optional, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from credence.core.models import Source


T = TypeVar("T")

logger = logging.getLogger(__name__)


_ALLOWED_SCHEMES = ("http", "https")

# Exact-match tracking parameters. Any utm_* parameter is stripped too.
_TRACKING_PARAMS = frozenset({"fbclid", "gclid", "ref", "source"})

HIGH_RELIABILITY_DOMAINS = frozenset({
    "reuters.com", "ap.org", "bbc.com", "npr.org", "pbs.org",
    "wsj.com", "ft.com", "bloomberg.com", "economist.com",
    "nature.com", "science.org", "nejm.org", "arxiv.org",
})

MEDIUM_RELIABILITY_DOMAINS = frozenset({
    "cnn.com", "nytimes.com", "washingtonpost.com", "theguardian.com",
    "usatoday.com", "cbsnews.com", "abcnews.go.com", "nbcnews.com",
    "forbes.com", "marketwatch.com", "coindesk.com", "cointelegraph.com",
})

HIGH   = "high"
MEDIUM = "medium"
LOW    = "low"


def _is_tracking_param(name: str) -> bool:
    return name.startswith("utm_") or name in _TRACKING_PARAMS


def _parse_http_url(url: str):
    """urlsplit result for an http(s) URL with a host, else None."""
    if not isinstance(url, str) or not url.strip():
        return None
    try:
        parts = urlsplit(url.strip())
        # .port raises ValueError on a malformed port
        parts.port
    except ValueError:
        return None
    if parts.scheme.lower() not in _ALLOWED_SCHEMES or not parts.hostname:
        return None
    return parts


def validate(source: Source) -> bool:
    """True iff title and url are non-empty and url is http(s)."""
    if not source.title or not source.url:
        return False
    return _parse_http_url(source.url) is not None


def filter_valid(sources: Iterable[Source]) -> List[Source]:
    kept = []
    for source in sources:
        if validate(source):
            kept.append(source)
        else:
            logger.debug("Dropping invalid source %r", source)
    return kept


def normalize(url: str) -> str:
    """
    Strip tracking query parameters. Unparsable input comes back unchanged.
    Scheme and host are lowercased so they compare equal.
    """
    parts = _parse_http_url(url)
    if parts is None:
        return url
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k)
    ]
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        urlencode(query),
        parts.fragment,
    ))


def deduplicate(items: Iterable[T], url_of: Callable[[T], str] = attrgetter("url")) -> List[T]:
    """
    Keep the first item for each normalized URL, in input order.

    url_of reads the URL from an item (Source.url by default). Kept items
    are returned unchanged.
    """
    seen = set()
    result: List[T] = []
    for item in items:
        key = normalize(url_of(item))
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def extract_domain(url: str) -> Optional[str]:
    """Registrable host with a leading www. removed, or None."""
    parts = _parse_http_url(url)
    if parts is None:
        return None
    host = parts.hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def tier_of(url: str) -> str:
    domain = extract_domain(url)
    if domain in HIGH_RELIABILITY_DOMAINS:
        return HIGH
    if domain in MEDIUM_RELIABILITY_DOMAINS:
        return MEDIUM
    return LOW


def classify(sources: Iterable[Source]) -> Dict[str, List[Source]]:
    """Partition sources into high / medium / low reliability, order kept."""
    result: Dict[str, List[Source]] = {HIGH: [], MEDIUM: [], LOW: []}
    for source in sources:
        result[tier_of(source.url)].append(source)
    return result


def disjoint(first: Iterable[Source], second: Iterable[Source]) -> bool:
    """True if no normalized URL appears in both collections."""
    left = {normalize(s.url) for s in first}
    return not any(normalize(s.url) in left for s in second)
