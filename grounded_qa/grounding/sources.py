"""
Source URL normalization and deduplication.

Normalization policy (stable and idempotent):
- scheme forced to https
- host lower-cased, leading "www." removed, default port dropped
- trailing slash removed from non-root paths
- query parameters sorted, fragment dropped
Strings that do not parse as absolute URLs normalize to themselves.
"""

from typing import List, Sequence, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from grounded_qa.gateway.schemas import Source

S = TypeVar("S", bound=Source)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """Canonical form of ``url`` used as the deduplication key."""
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except (ValueError, AttributeError):
        return url

    if not parts.scheme or not parts.hostname:
        return url

    host = parts.hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    if ":" in host:
        host = f"[{host}]"
    # 443 is dropped too because the output scheme is always https
    if port is not None and port not in (_DEFAULT_PORTS.get(parts.scheme.lower()), 443):
        host = f"{host}:{port}"

    path = parts.path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))

    return urlunsplit(("https", host, path, query, ""))


def deduplicate_sources(sources: Sequence[S]) -> List[S]:
    """Keep the first source for each normalized URI, preserving order.

    Sources without a URI (some uploaded-document chunks) are keyed by title.
    """
    seen = set()
    unique: List[S] = []
    for source in sources:
        key = normalize_url(source.uri) if source.uri else f"title:{source.title}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(source)
    return unique
