"""Domain normalization — canonical comparison key for website domains.

"https://www.Example.com:443/path?x=1" → "example.com"

Strips scheme, credentials, leading "www." labels, port, path, query,
fragment and the trailing root dot, then lowercases and IDNA-encodes.
Raises ValueError for anything that does not look like a registrable
hostname; callers catch it and fall back to the raw string.

normalize_domain(normalize_domain(x).domain).domain == normalize_domain(x).domain
"""

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")
_TLD_RE = re.compile(r"^(?:[a-z]{2,63}|xn--[a-z0-9-]{1,59})$")


@dataclass(frozen=True)
class NormalizedDomain:
    domain: str
    original: str


def normalize_domain(value: str) -> NormalizedDomain:
    """Canonicalize a raw domain, URL or email address to a comparable key."""
    if not isinstance(value, str):
        raise ValueError(f"domain must be a string, got {type(value).__name__}")

    original = value
    raw = value.strip().lower()
    if not raw:
        raise ValueError("empty domain")

    if "://" not in raw:
        raw = "//" + raw
    try:
        host = urlsplit(raw).hostname
    except ValueError as e:
        raise ValueError(f"unparseable domain {original!r}: {e}") from e
    if not host:
        raise ValueError(f"no hostname in {original!r}")

    host = host.rstrip(".")
    while host.startswith("www.") and "." in host[4:]:
        host = host[4:]

    try:
        host = host.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise ValueError(f"invalid internationalized domain {original!r}") from e

    labels = host.split(".")
    if len(labels) < 2:
        raise ValueError(f"domain {original!r} has no top-level domain")
    if not all(_LABEL_RE.match(label) for label in labels):
        raise ValueError(f"domain {original!r} contains an invalid label")
    if not _TLD_RE.match(labels[-1]):
        raise ValueError(f"domain {original!r} has an invalid top-level domain")

    return NormalizedDomain(domain=host, original=original)


def normalize_or_raw(value: str) -> str:
    """Normalized domain, or the trimmed lowercased input when normalization fails."""
    try:
        return normalize_domain(value).domain
    except ValueError:
        return str(value or "").strip().lower()
