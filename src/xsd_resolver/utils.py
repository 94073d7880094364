"""
Small helpers shared by the resolver, the catalog, and the collection store.
"""

import hashlib
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional
from urllib.parse import quote, unquote

# Characters left readable in record lines; whitespace and '%' are always escaped.
_RECORD_SAFE = "/:@!$&'()*+,;=-._~?#[]"

# Same idea for collection names, minus the path separator.
_COLLECTION_SAFE = "!$&'()*+,;=:@-._~"

_DIGEST_RE = re.compile(r"^[a-f0-9]{32}$")


def md5_hex(data: bytes) -> str:
    """Content digest used for document identifiers and cache keys."""
    return hashlib.md5(data).hexdigest()


def is_digest(name: str) -> bool:
    return bool(_DIGEST_RE.match(name))


def escape(*tokens: str) -> str:
    """Percent-escape each token and join them with single spaces."""
    return " ".join(quote(token or "", safe=_RECORD_SAFE) for token in tokens)


def unescape(line: str) -> list[str]:
    """
    Inverse of escape().

    Splits on single spaces so that empty tokens keep their position.
    """
    return [unquote(token) for token in line.rstrip("\r\n").split(" ")]


def collection_name_ok(name: str) -> bool:
    """
    Check that a collection name can serve as a single, URL-safe path component.
    """
    if not name or name in (".", ".."):
        return False
    if "/" in name:
        return False
    return quote(name, safe=_COLLECTION_SAFE) == name


def now_utc() -> datetime:
    """Current time in UTC, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_iso(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds")


def from_iso(text: str) -> datetime:
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a Last-Modified header; None when missing or malformed."""
    if not value:
        return None
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.replace(microsecond=0)
