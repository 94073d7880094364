"""HTTP client and schema fetch utilities."""

from datetime import datetime
from typing import Container, NamedTuple, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from xsd_resolver.errors import FetchError, LocationError
from xsd_resolver.utils import parse_http_date

USER_AGENT = "xsd-resolver/1.0 (XML Schema Resolver)"
SUPPORTED_SCHEMES = ("http", "https")
MAX_REDIRECTS = 5


class FetchedSchema(NamedTuple):
    location: str  # where the body was finally found
    body: Optional[bytes]  # None when a redirect led to an already known location
    last_modified: Optional[datetime]


def make_client(
    proxy: Optional[str] = None,
    timeout: float = 30.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build the client used for schema requests.

    Redirects are followed by fetch_schema() itself so the catalog can record
    where each location ended up.
    """
    return httpx.Client(
        timeout=timeout,
        follow_redirects=False,
        proxy=proxy,
        transport=transport,
        headers={"User-Agent": USER_AGENT},
    )


def fetch_schema(
    client: httpx.Client,
    location: str,
    max_redirects: int = MAX_REDIRECTS,
    known: Container[str] = (),
) -> FetchedSchema:
    """GET a schema, following at most *max_redirects* redirects by hand.

    A redirect to a location in *known* stops there without fetching it again.
    """
    current = location
    for _ in range(max_redirects + 1):
        scheme = urlsplit(current).scheme
        if scheme not in SUPPORTED_SCHEMES:
            raise LocationError(f"{scheme or 'A missing scheme'} is not a supported protocol - {current} not retrieved.")
        try:
            response = client.get(current)
            if httpx.codes.is_redirect(response.status_code):
                target = response.headers.get("location")
                if not target:
                    raise FetchError(f"Redirect without Location fetching {current}")
                current = urljoin(current, target)
                if current in known:
                    return FetchedSchema(location=current, body=None, last_modified=None)
                continue
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(f"HTTP error {e.response.status_code} fetching {current}") from e
        except httpx.TimeoutException as e:
            raise FetchError(f"Timeout fetching {current}") from e
        except httpx.HTTPError as e:
            raise FetchError(f"Error fetching {current}: {str(e)}") from e
        return FetchedSchema(
            location=current,
            body=response.content,
            last_modified=parse_http_date(response.headers.get("last-modified")),
        )
    raise LocationError(f"{location} can't be retrieved, there were too many redirects.")
