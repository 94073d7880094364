"""Catalog of schemas fetched for one resolution.

Feed it a ``{location: namespace}`` mapping and it retrieves every location
it has not seen before, recording a :class:`~xsd_resolver.models.SchemaRecord`
for each. The catalog does not look inside schemas for further locations;
the resolver does that and hands discoveries back through :meth:`merge`,
even while it is walking :meth:`worklist`.
"""

from __future__ import annotations

import logging
from typing import Iterator, Mapping, Optional

import httpx

from xsd_resolver.cache import SchemaCache
from xsd_resolver.errors import TooManySchemasError
from xsd_resolver.fetch import MAX_REDIRECTS, fetch_schema
from xsd_resolver.models import RetrievalStatus, SchemaRecord, location_key
from xsd_resolver.utils import md5_hex, now_utc

logger = logging.getLogger(__name__)


class SchemaCatalog:
    """Append-only list of schema records with a processed-location set.

    Records are kept in discovery order, which makes the list a FIFO queue:
    :meth:`worklist` walks it by index, so records appended by a
    :meth:`merge` call made mid-walk are reached in turn. No location is
    fetched twice; a redirect also marks its final location as processed.
    Growing past *ceiling* records raises TooManySchemasError, which bounds
    cyclic or adversarial import graphs.

    Bodies of successful retrievals are held in memory, keyed by digest,
    until the collection store writes them into the shared cache.
    """

    def __init__(
        self,
        namespace_locations: Mapping[str, Optional[str]],
        cache: SchemaCache,
        client: httpx.Client,
        max_redirects: int = MAX_REDIRECTS,
        ceiling: Optional[int] = None,
    ):
        self.cache = cache
        self.client = client
        self.max_redirects = max_redirects
        self.ceiling = ceiling
        self._records: list[SchemaRecord] = []
        self._processed: set[str] = set()
        self._bodies: dict[str, bytes] = {}
        self.merge(namespace_locations)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def bodies(self) -> dict[str, bytes]:
        return dict(self._bodies)

    def body(self, digest: str) -> bytes:
        return self._bodies[digest]

    def merge(self, namespace_locations: Mapping[str, Optional[str]]) -> None:
        """Fetch every location not already processed and record the outcome."""
        for location, namespace in namespace_locations.items():
            if location in self._processed:
                continue
            self._processed.add(location)
            for record in self._retrieve(location, namespace):
                self._records.append(record)
                self._processed.add(record.location)
            if self.ceiling is not None and len(self._records) > self.ceiling:
                raise TooManySchemasError(f"Too many schemas ({len(self._records)}) encountered")

    def worklist(self) -> Iterator[SchemaRecord]:
        """Yield records in append order, including ones merged during iteration."""
        index = 0
        while index < len(self._records):
            yield self._records[index]
            index += 1

    def schemas(self) -> list[SchemaRecord]:
        """Snapshot of all records sorted by location."""
        return sorted(self._records, key=location_key)

    def _record_at(self, location: str) -> Optional[SchemaRecord]:
        for record in self._records:
            if record.location == location:
                return record
        return None

    def _retrieve(self, location: str, namespace: Optional[str]) -> list[SchemaRecord]:
        try:
            fetched = fetch_schema(
                self.client, location, self.max_redirects, known=self._processed - {location}
            )
        except Exception as e:
            logger.warning("Failed retrieving %s: %s", location, e)
            return [SchemaRecord(
                location=location,
                namespace=namespace,
                retrieval_status=RetrievalStatus.FAILURE,
                error_message=str(e),
            )]

        if fetched.body is None:
            # A redirect onto a location that already failed resolves nothing
            target = self._record_at(fetched.location)
            if target is not None and target.retrieval_status is RetrievalStatus.FAILURE:
                message = f"Redirected to {fetched.location}, which could not be retrieved: {target.error_message}"
                logger.warning("Failed retrieving %s: %s", location, message)
                return [SchemaRecord(
                    location=location,
                    namespace=namespace,
                    retrieval_status=RetrievalStatus.FAILURE,
                    error_message=message,
                )]

        records = []
        if fetched.body is not None:
            digest = md5_hex(fetched.body)
            self._bodies[digest] = fetched.body
            records.append(SchemaRecord(
                location=fetched.location,
                namespace=namespace,
                retrieval_status=RetrievalStatus.SUCCESS,
                digest=digest,
                local_path=self.cache.path_for(digest),
                last_modified=fetched.last_modified or now_utc(),
            ))
            logger.debug("Retrieved %s (%s)", fetched.location, digest)

        if fetched.location != location:
            records.append(SchemaRecord(
                location=location,
                namespace=namespace,
                retrieval_status=RetrievalStatus.REDIRECT,
                redirected_location=fetched.location,
            ))
            logger.debug("%s redirected to %s", location, fetched.location)
        return records
