"""Domain normalization: the identity key for companies."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from icp_screener.errors import InvalidInput

_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_domain(website: str) -> str:
    """Lowercase hostname with no scheme, ``www.`` prefix, port or path.

    ``"https://www.Acme.com/pricing"`` -> ``"acme.com"``.
    Raises InvalidInput when no hostname can be resolved.
    """
    value = (website or "").strip()
    if not value:
        raise InvalidInput("Website is empty")
    if not _SCHEME.match(value):
        value = f"https://{value}"

    try:
        host = urlsplit(value).hostname or ""
    except ValueError:
        # Malformed netloc (e.g. bad IPv6 brackets): strip by hand
        host = _SCHEME.sub("", value).split("/")[0].split(":")[0].lower()

    host = re.sub(r"^www\.", "", host.lower()).strip(".")
    if not host:
        raise InvalidInput(f"Could not resolve a domain from {website!r}")
    return host


def company_name_from_domain(domain: str) -> str:
    """Fallback display name: capitalized first hostname label."""
    label = domain.split(".")[0]
    return label[:1].upper() + label[1:]
