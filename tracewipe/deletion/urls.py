"""
URL helpers used to find history entries that belong to a visited page.

Two URLs are *equivalent* when they share a hostname up to a ``www.``
prefix, share a scheme class (http and https are interchangeable, other
schemes must be identical), and have the same path (trailing slashes
ignored) and the same query string. The *subtree* relation relaxes the
path test to "equal or a descendant of".
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional
from urllib.parse import urlsplit

HTTP_LIKE_SCHEMES = frozenset({"http", "https"})


class ParsedUrl(NamedTuple):
    scheme: str
    hostname: str
    path: str
    query: str


def parse_url(url: str) -> Optional[ParsedUrl]:
    if not isinstance(url, str) or not url:
        return None
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname or ""
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return ParsedUrl(scheme=parts.scheme.lower(), hostname=hostname, path=parts.path, query=parts.query)


def extract_hostname(url: str) -> Optional[str]:
    parsed = parse_url(url)
    if parsed is None or not parsed.hostname:
        return None
    return parsed.hostname


def expand_hostnames(hostname: str) -> List[str]:
    """Return ``hostname`` plus its www/non-www counterpart."""
    if hostname.startswith("www."):
        return [hostname, hostname[4:]]
    return [hostname, f"www.{hostname}"]


def normalize_pathname(path: str) -> str:
    if not path or path == "/":
        return "/"
    return path.rstrip("/") or "/"


def _compatible_origin(source: ParsedUrl, candidate: ParsedUrl) -> bool:
    if candidate.hostname not in expand_hostnames(source.hostname):
        return False
    if source.scheme in HTTP_LIKE_SCHEMES:
        return candidate.scheme in HTTP_LIKE_SCHEMES
    return candidate.scheme == source.scheme


def is_same_or_descendant_path(base_path: str, candidate_path: str) -> bool:
    base = normalize_pathname(base_path)
    candidate = normalize_pathname(candidate_path)
    if base == "/" or candidate == base:
        return True
    return candidate.startswith(base + "/")


def are_equivalent_history_urls(source_url: str, candidate_url: str) -> bool:
    source = parse_url(source_url)
    candidate = parse_url(candidate_url)
    if source is None or candidate is None:
        return False
    if not _compatible_origin(source, candidate):
        return False
    if normalize_pathname(candidate.path) != normalize_pathname(source.path):
        return False
    return candidate.query == source.query


def is_history_url_in_subtree(source_url: str, candidate_url: str) -> bool:
    source = parse_url(source_url)
    candidate = parse_url(candidate_url)
    if source is None or candidate is None:
        return False
    if not _compatible_origin(source, candidate):
        return False
    return is_same_or_descendant_path(source.path, candidate.path)
