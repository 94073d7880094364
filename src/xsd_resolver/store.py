"""On-disk storage for resolution records, grouped into collections.

Layout under the data root::

    schemas/<digest>                          shared schema cache (see cache.py)
    collections/<collection>/<document-md5>   one record file per document

Collections that go untouched for longer than ``collection_ttl`` are removed
whenever collections are listed. The schema cache is never aged out.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import BinaryIO, Iterator, Optional

from lxml import etree

from xsd_resolver.cache import SchemaCache
from xsd_resolver.config import Settings, ensure_data_dirs
from xsd_resolver.errors import (
    BadCollectionIdError,
    ConfigurationError,
    ResolverError,
    UnknownCollectionError,
)
from xsd_resolver.locks import read_lock, write_lock
from xsd_resolver.models import ResolutionRecord, RetrievalStatus, unique_successes
from xsd_resolver.tarwriter import TarWriter
from xsd_resolver.utils import collection_name_ok, is_digest, to_iso

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.xml"


class CollectionStore:
    """Collections of saved resolutions plus the schema cache they share."""

    def __init__(self, settings: Settings):
        self.settings = settings
        ensure_data_dirs(settings)
        self.cache = SchemaCache(settings.schemas_dir, settings.lock_timeout)

    @property
    def collections_dir(self) -> Path:
        return self.settings.collections_dir

    # --- Collections ---

    def collections(self) -> list[str]:
        """Sorted collection names, after evicting stale collections."""
        self.age_out()
        return sorted(path.name for path in self.collections_dir.iterdir() if path.is_dir())

    def age_out(self) -> list[str]:
        """Delete collections whose directory is older than the TTL; returns their names."""
        cutoff = time.time() - self.settings.collection_ttl
        evicted = []
        for path in self.collections_dir.iterdir():
            if not path.is_dir() or not collection_name_ok(path.name):
                continue
            if path.stat().st_mtime < cutoff:
                shutil.rmtree(path, ignore_errors=True)
                evicted.append(path.name)
                logger.info("Evicted stale collection %s", path.name)
        return evicted

    def collection_path(self, name: str) -> Path:
        if not collection_name_ok(name):
            raise BadCollectionIdError(
                f"Bad collection name '{name}' - it has to be a simple string with no spaces or special characters"
            )
        return self.collections_dir / name

    def exists(self, name: str) -> bool:
        return collection_name_ok(name) and (self.collections_dir / name).is_dir()

    def create(self, name: str) -> bool:
        """Create a collection if needed; True if it was newly created."""
        path = self.collection_path(name)
        if path.is_dir():
            return False
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Created collection %s", name)
        return True

    def _require(self, name: str) -> Path:
        path = self.collection_path(name)
        if not path.is_dir():
            raise UnknownCollectionError(f"Collection {name} doesn't exist: create it first")
        return path

    # --- Records ---

    def save(self, record: ResolutionRecord, name: str) -> Path:
        """
        Store a resolution in a collection.

        Schema bodies go into the shared cache first (skipping any already
        there), then the record file is written, replacing any earlier record
        for the same document bytes.
        """
        path = self.collection_path(name)
        if not path.is_dir():
            if not self.settings.auto_create_collections:
                raise UnknownCollectionError(
                    f"The collection identifier '{name}' hasn't been created yet. Create it first"
                )
            self.create(name)

        for schema in record.schemas_with(RetrievalStatus.SUCCESS):
            body = record.body_for(schema.digest)
            if body is not None:
                self.cache.store(schema.digest, body, schema.last_modified)
            elif not self.cache.path_for(schema.digest).exists():
                raise ResolverError(f"No body available for schema {schema.location} ({schema.digest})")

        record_file = path / record.document_digest
        with write_lock(record_file, self.settings.lock_timeout) as fd:
            fd.write(record.dumps().encode("utf-8"))
        logger.info("Saved resolution of %s to collection %s", record.document_uri, name)
        return record_file

    def document_ids(self, name: str) -> list[str]:
        """Document digests stored in a collection, sorted."""
        self.age_out()
        path = self._require(name)
        ids = [p.name for p in path.iterdir() if p.is_file() and is_digest(p.name)]
        return sorted(ids, key=str.lower)

    def load(self, name: str, document_id: str) -> ResolutionRecord:
        record_file = self._require(name) / document_id
        if not record_file.is_file():
            raise ConfigurationError(f"Can't find the data file {document_id} for the collection {name}")
        with read_lock(record_file, self.settings.lock_timeout) as fd:
            text = fd.read().decode("utf-8")
        try:
            return ResolutionRecord.loads(text, self.settings.schemas_dir)
        except ValueError as e:
            raise ConfigurationError(f"Can't read the data file {document_id} for the collection {name}: {e}") from e

    def resolutions(self, name: str) -> list[ResolutionRecord]:
        return [self.load(name, document_id) for document_id in self.document_ids(name)]

    # --- Export ---

    def manifest(self, name: str, resolutions: Optional[list[ResolutionRecord]] = None) -> bytes:
        """UTF-8 XML listing every resolution in the collection and its schemas."""
        if resolutions is None:
            resolutions = self.resolutions(name)

        root = etree.Element("resolutions", collection=name)
        for res in resolutions:
            node = etree.SubElement(
                root, "resolution",
                name=res.document_uri, id=res.document_digest, time=to_iso(res.resolved_at),
            )
            for s in res.schemas_with(RetrievalStatus.SUCCESS):
                etree.SubElement(
                    node, "schema",
                    status="success", location=s.location, namespace=s.namespace or "",
                    digest=s.digest, last_modified=to_iso(s.last_modified),
                )
            for s in res.schemas_with(RetrievalStatus.FAILURE):
                etree.SubElement(
                    node, "schema",
                    status="failure", location=s.location, namespace=s.namespace or "",
                    message=s.error_message or "",
                )
            for s in res.schemas_with(RetrievalStatus.REDIRECT):
                etree.SubElement(
                    node, "schema",
                    status="redirect", location=s.location, namespace=s.namespace or "",
                    actual=s.redirected_location,
                )
            for namespace in res.unresolved_namespaces:
                etree.SubElement(node, "schema", status="unresolved", namespace=namespace)
            if res.errors:
                errors = etree.SubElement(node, "errors")
                for message in res.errors:
                    etree.SubElement(errors, "error").text = message

        return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)

    @contextlib.contextmanager
    def tar(self, name: str) -> Iterator[BinaryIO]:
        """
        Build the collection's archive and yield it as an open binary file.

        Entries: ``<name>/manifest.xml`` followed by ``<name>/<location>`` for
        every distinct successfully retrieved schema, sorted by location.
        The archive is deleted when the context exits.
        """
        resolutions = self.resolutions(name)
        with tempfile.TemporaryDirectory(prefix="xsd-resolver-") as workdir:
            manifest_path = Path(workdir) / MANIFEST_NAME
            manifest_path.write_bytes(self.manifest(name, resolutions))
            manifest_path.chmod(0o644)

            tar_path = Path(workdir) / f"{name}.tar"
            with TarWriter(open(tar_path, "wb"), self.settings.tar_ownership) as writer:
                writer.write(manifest_path, f"{name}/{MANIFEST_NAME}")
                for schema in unique_successes(resolutions):
                    if not schema.local_path.is_file():
                        raise ConfigurationError(
                            f"Cached schema {schema.digest} for {schema.location} is missing from {self.cache.directory}"
                        )
                    writer.write(schema.local_path, f"{name}/{schema.location}")

            with open(tar_path, "rb") as archive:
                yield archive

    def export_tar(self, name: str, destination: Path) -> Path:
        """Write the collection's archive to *destination*."""
        destination = Path(destination)
        with self.tar(name) as archive, open(destination, "wb") as out:
            shutil.copyfileobj(archive, out)
        logger.info("Exported collection %s to %s", name, destination)
        return destination
