import hashlib
import re
from typing import Callable, Iterable, List, Optional, TypeVar, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..schemas.evidence import EvidenceHit

T = TypeVar("T")

TITLE_KEY_PREFIX = "title:"

# Query params that only identify the click, never the page.
TRACKING_PARAM_REGEX = re.compile(
    r"^(utm_[a-z0-9_]*|gclid|fbclid|msclkid|mc_cid|mc_eid|_ga|_gid|ref|igshid|yclid)$",
    re.IGNORECASE,
)
_WWW_REGEX = re.compile(r"^(www\.)+")
_WHITESPACE_REGEX = re.compile(r"\s+")
_SCHEME_REGEX = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_title(title: Optional[str]) -> str:
    if not title:
        return ""
    return _WHITESPACE_REGEX.sub(" ", title.strip().lower())


def canonical_url(url: Optional[str]) -> Optional[str]:
    """
    Canonical https form of a URL, or None if it has no usable host.
    Strips www., tracking params, fragment and trailing slashes.
    """
    if not url or not url.strip():
        return None
    raw = url.strip()
    if raw.lower().startswith(TITLE_KEY_PREFIX):
        return None
    if not _SCHEME_REGEX.match(raw):
        raw = f"https://{raw.lstrip('/')}"

    try:
        parts = urlsplit(raw)
        host = parts.hostname
        port = parts.port
    except ValueError:
        return None

    host = _WWW_REGEX.sub("", (host or "").lower())
    # Usable-host check runs on the www-stripped host.
    if not host or " " in host or "." not in host and host != "localhost":
        return None

    netloc = host
    if port and port not in (80, 443):
        netloc = f"{host}:{port}"

    params = [
        (name, value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
        if not TRACKING_PARAM_REGEX.match(name)
    ]
    query = urlencode(params)
    path = parts.path.rstrip("/")

    return urlunsplit(("https", netloc, path, query, ""))


def extract_domain(url: Optional[str]) -> str:
    """Hostname without www., or empty string if the URL cannot be parsed."""
    canonical = canonical_url(url)
    if not canonical:
        return ""
    return (urlsplit(canonical).hostname or "").lower()


def canonicalize(value: Union[EvidenceHit, str, None]) -> str:
    """
    Stable dedup key for a hit (or a URL / previously computed key).
    URL first, then "title:<normalized title>", else "" (the item is dropped).
    Idempotent: canonicalize(canonicalize(x)) == canonicalize(x).
    """
    if value is None:
        return ""
    if isinstance(value, str):
        if value.lower().startswith(TITLE_KEY_PREFIX):
            rest = normalize_title(value[len(TITLE_KEY_PREFIX):])
            return f"{TITLE_KEY_PREFIX}{rest}" if rest else ""
        url, title = value, None
    else:
        url, title = value.url, value.title

    canonical = canonical_url(url)
    if canonical:
        return canonical

    normalized = normalize_title(title)
    if normalized:
        return f"{TITLE_KEY_PREFIX}{normalized}"
    return ""


def fingerprint(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def dedupe(items: Iterable[T], key: Callable[[T], str] = canonicalize) -> List[T]:
    """
    Keeps the first item per non-empty key in one left-to-right pass.
    Items with an empty key are dropped; survivors keep their relative order.
    """
    seen = set()
    kept = []
    for item in items:
        item_key = key(item)
        if not item_key or item_key in seen:
            continue
        seen.add(item_key)
        kept.append(item)
    return kept
