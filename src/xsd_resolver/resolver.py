"""Recursive schema resolution for one XML instance document."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import httpx

from xsd_resolver.cache import SchemaCache
from xsd_resolver.catalog import SchemaCatalog
from xsd_resolver.config import Settings
from xsd_resolver.errors import (
    BadXmlVersionError,
    EmptyDocumentError,
    ResolverError,
    TooManySchemasError,
    UnparseableDocumentError,
)
from xsd_resolver.fetch import make_client
from xsd_resolver.models import ResolutionRecord, RetrievalStatus, SchemaRecord
from xsd_resolver.parsers import XSI_NS, extract_namespaces, extract_schema_namespaces
from xsd_resolver.utils import md5_hex, now_utc

logger = logging.getLogger(__name__)

# Namespaces tooling knows without downloading anything; never reported as unresolved.
IGNORED_NAMESPACES = frozenset({
    "http://www.w3.org/2001/XMLSchema-hasFacetAndProperty",
    XSI_NS,
})


def unresolved_namespaces(used: Iterable[str], schemas: Iterable[SchemaRecord]) -> list[str]:
    """Used namespaces not covered by a retrieved (or redirected) schema."""
    resolved = {
        s.namespace for s in schemas
        if s.retrieval_status in (RetrievalStatus.SUCCESS, RetrievalStatus.REDIRECT)
    }
    remaining = set(used) - resolved - IGNORED_NAMESPACES
    return sorted(remaining, key=str.lower)


class SchemaResolver:
    """
    Resolves every schema an instance document transitively depends on.

    The instance is scanned for xsi:schemaLocation pairs, which seed a
    SchemaCatalog. Each schema the catalog retrieves is scanned in turn for
    imports and includes, which are merged back into the catalog, until no
    new locations turn up or the schema ceiling is exceeded.

    process() may be called once. It performs no disk writes; saving the
    record (and the schema bodies it carries) is CollectionStore.save's job.
    """

    def __init__(
        self,
        document: bytes,
        document_uri: str,
        settings: Settings,
        client: Optional[httpx.Client] = None,
    ):
        if not document:
            raise EmptyDocumentError(f"XML document {document_uri} was empty")
        self.settings = settings
        self.document = document
        self.document_uri = document_uri
        self.document_digest = md5_hex(document)
        self.cache = SchemaCache(settings.schemas_dir, settings.lock_timeout)
        self.used_namespaces: set[str] = set()
        self.record: Optional[ResolutionRecord] = None
        self._client = client

    @property
    def processed(self) -> bool:
        return self.record is not None

    def process(self) -> ResolutionRecord:
        if self.processed:
            raise ResolverError(f"The process method may not be called twice on the document {self.document_digest}.")

        resolved_at = now_utc()
        instance = extract_namespaces(self.document, self.document_uri)
        if instance.version != "1.0":
            raise BadXmlVersionError(
                f"This service only supports XML Version 1.0. This document is XML Version {instance.version}"
            )
        self.used_namespaces = instance.used_namespaces
        for warning in instance.warnings:
            logger.debug("%s: %s", self.document_uri, warning)

        client = self._client or make_client(self.settings.proxy_url, self.settings.fetch_timeout)
        try:
            catalog = self._build_catalog(instance.namespace_locations, client)
        finally:
            if self._client is None:
                client.close()

        schemas = catalog.schemas()
        record = ResolutionRecord(
            document_digest=self.document_digest,
            document_uri=self.document_uri,
            size=len(self.document),
            resolved_at=resolved_at,
            schemas=schemas,
            unresolved_namespaces=unresolved_namespaces(self.used_namespaces, schemas),
            errors=instance.errors,
        )
        record.attach_bodies(catalog.bodies)
        self.record = record
        log_outcome(record)
        return record

    def _build_catalog(self, seed: dict[str, str], client: httpx.Client) -> SchemaCatalog:
        try:
            catalog = SchemaCatalog(
                seed, self.cache, client, self.settings.max_redirects, self.settings.schema_ceiling
            )
            for schema in catalog.worklist():
                if not schema.succeeded:
                    continue
                try:
                    document = extract_schema_namespaces(
                        catalog.body(schema.digest), schema.location, self.used_namespaces
                    )
                except UnparseableDocumentError as e:
                    logger.warning("Schema %s could not be parsed: %s", schema.location, e)
                    continue
                catalog.merge(document.namespace_locations)
        except TooManySchemasError as e:
            raise TooManySchemasError(f"{e} for {self.document_uri}.") from e
        return catalog


def log_outcome(record: ResolutionRecord) -> None:
    uri = record.document_uri
    for s in record.schemas_with(RetrievalStatus.REDIRECT):
        logger.info("%s redirected when processing document %s.", s.location, uri)
    for s in record.schemas_with(RetrievalStatus.SUCCESS):
        logger.info("Retrieved %s for document %s.", s.location, uri)
    for s in record.schemas_with(RetrievalStatus.FAILURE):
        logger.error("Failed retrieving %s for document %s.", s.location, uri)
    for namespace in record.unresolved_namespaces:
        logger.warning("Unresolved namespace %s for document %s.", namespace, uri)


def resolve(
    document: bytes,
    document_uri: str,
    settings: Settings,
    client: Optional[httpx.Client] = None,
) -> ResolutionRecord:
    """Resolve *document* and return its ResolutionRecord (nothing is saved)."""
    return SchemaResolver(document, document_uri, settings, client).process()
