"""
Trusted-domain classification for evidence sources.

A source is trusted when its hostname equals an allow-listed domain or is a
subdomain of one (ends with "." + domain). Plain suffix matches without the
dot boundary, such as evil-mevzuat.gov.tr, do not count.
"""

from typing import Iterable, List, Optional, Sequence
from urllib.parse import urlsplit

from grounded_qa.config import get, get_env
from grounded_qa.gateway.schemas import Source

DEFAULT_ALLOWED_DOMAINS = [
    "mevzuat.gov.tr",
    "resmigazete.gov.tr",
    "anayasa.gov.tr",
    "yargitay.gov.tr",
    "danistay.gov.tr",
    "barobirlik.org.tr",
]


def get_allowed_domains() -> List[str]:
    """Allow-list from ALLOWED_SOURCE_DOMAINS, else [trust] allowed_domains."""
    raw = get_env("ALLOWED_SOURCE_DOMAINS")
    if raw:
        domains = [d.strip().lower() for d in raw.split(",") if d.strip()]
        if domains:
            return domains
    return [d.lower() for d in get("trust", "allowed_domains", fallback=DEFAULT_ALLOWED_DOMAINS)]


def _hostname(uri: str) -> Optional[str]:
    try:
        host = urlsplit(uri.strip()).hostname
    except (ValueError, AttributeError):
        return None
    return host.rstrip(".") if host else None


def is_allowed_domain(uri: str, allowed_domains: Optional[Iterable[str]] = None) -> bool:
    """True iff the URI's hostname is, or is a subdomain of, an allow-listed domain.

    Malformed URIs are never trusted.
    """
    host = _hostname(uri)
    if not host:
        return False

    domains = DEFAULT_ALLOWED_DOMAINS if allowed_domains is None else allowed_domains
    for domain in domains:
        domain = domain.strip().lower()
        if not domain:
            continue
        if host == domain or host.endswith("." + domain):
            return True
    return False


def classify_sources(
    sources: Sequence[Source],
    allowed_domains: Optional[Iterable[str]] = None,
) -> List[Source]:
    """Return copies of ``sources`` with ``is_trusted`` set."""
    domains = list(DEFAULT_ALLOWED_DOMAINS if allowed_domains is None else allowed_domains)
    return [
        s.model_copy(update={"is_trusted": is_allowed_domain(s.uri, domains)})
        for s in sources
    ]
