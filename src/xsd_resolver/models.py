"""
Data models for schema resolution.
"""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from xsd_resolver.utils import escape, from_iso, to_iso, unescape


class RetrievalStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    REDIRECT = "redirect"


def location_key(record: "SchemaRecord") -> str:
    """Sort key for reporting schemas in a stable order."""
    return record.location.lower()


# --- Schema Records ---

class SchemaRecord(BaseModel):
    """Outcome of retrieving one schema location."""
    location: str = Field(description="Schema location URL as requested (or as finally retrieved)")
    namespace: Optional[str] = Field(default=None, description="Namespace the location was declared for")
    retrieval_status: RetrievalStatus
    digest: Optional[str] = Field(default=None, description="MD5 of the retrieved body")
    local_path: Optional[Path] = Field(default=None, description="Cache file holding the body")
    last_modified: Optional[datetime] = Field(default=None, description="Last-Modified, or fetch time")
    error_message: Optional[str] = Field(default=None, description="Why the retrieval failed")
    redirected_location: Optional[str] = Field(default=None, description="Where a redirect finally led")

    @model_validator(mode="after")
    def _check_status_fields(self) -> "SchemaRecord":
        success = self.retrieval_status is RetrievalStatus.SUCCESS
        if success != (self.digest is not None and self.local_path is not None):
            raise ValueError(f"{self.location}: digest and local_path are set only for successful retrievals")
        redirect = self.retrieval_status is RetrievalStatus.REDIRECT
        if redirect != (self.redirected_location is not None):
            raise ValueError(f"{self.location}: redirected_location is set only for redirects")
        return self

    @property
    def succeeded(self) -> bool:
        return self.retrieval_status is RetrievalStatus.SUCCESS


# --- Resolution Records ---

class ResolutionRecord(BaseModel):
    """
    Everything learned about one instance document.

    Built either by a fresh resolution (SchemaResolver.process) or by reading a
    stored record back with loads(). Both paths produce the same type; a record
    read back simply carries no schema bodies.
    """
    model_config = ConfigDict(frozen=True)

    document_digest: str = Field(description="MD5 of the raw document bytes")
    document_uri: str = Field(description="Identifier the document was submitted under")
    size: Optional[int] = Field(default=None, description="Document length in bytes")
    resolved_at: datetime
    schemas: list[SchemaRecord] = Field(default_factory=list)
    unresolved_namespaces: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list, description="Parse errors in the instance document")

    # digest -> body, held between resolution and save()
    _bodies: dict[str, bytes] = PrivateAttr(default_factory=dict)

    def body_for(self, digest: str) -> Optional[bytes]:
        return self._bodies.get(digest)

    def attach_bodies(self, bodies: dict[str, bytes]) -> None:
        self._bodies.update(bodies)

    def schemas_with(self, status: RetrievalStatus) -> list[SchemaRecord]:
        return [s for s in self.schemas if s.retrieval_status is status]

    @property
    def broken_links(self) -> list[str]:
        return [s.location for s in self.schemas_with(RetrievalStatus.FAILURE)]

    @property
    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in RetrievalStatus}
        for s in self.schemas:
            counts[s.retrieval_status.value] += 1
        return counts

    @property
    def outcome(self) -> str:
        """'success', 'failure' or 'mixed'; a document with no schemas is a success."""
        failures = len(self.schemas_with(RetrievalStatus.FAILURE))
        successes = len(self.schemas) - failures
        if successes and failures:
            return "mixed"
        if failures:
            return "failure"
        return "success"

    def dumps(self) -> str:
        """Serialize to the line-oriented record format."""
        lines = [
            escape("FILE_NAME", self.document_uri),
            escape("DATE_TIME", to_iso(self.resolved_at)),
            escape("DIGEST", self.document_digest),
            escape("LENGTH", str(self.size if self.size is not None else 0)),
        ]
        for s in self.schemas_with(RetrievalStatus.SUCCESS):
            lines.append(escape("SCHEMA", s.digest, to_iso(s.last_modified), s.location, s.namespace))
        for s in self.schemas_with(RetrievalStatus.FAILURE):
            lines.append(escape("BROKEN_SCHEMA", s.location, s.namespace, s.error_message))
        for s in self.schemas_with(RetrievalStatus.REDIRECT):
            lines.append(escape("REDIRECTED_SCHEMA", s.location, s.namespace, s.redirected_location))
        for message in self.errors:
            lines.append(escape("ERROR", message))
        lines.append(escape("UNRESOLVED_NAMESPACES", *self.unresolved_namespaces))
        return "\n".join(lines) + "\n"

    @classmethod
    def loads(cls, text: str, schemas_dir: Path) -> "ResolutionRecord":
        """Rebuild a record from dumps() output; schema paths point into *schemas_dir*."""
        fields: dict = {"errors": [], "unresolved_namespaces": []}
        schemas: list[SchemaRecord] = []

        for line in text.splitlines():
            if not line.strip():
                continue
            tag, *data = unescape(line)
            if tag == "FILE_NAME":
                fields["document_uri"] = data[0]
            elif tag == "DATE_TIME":
                fields["resolved_at"] = from_iso(data[0])
            elif tag == "DIGEST":
                fields["document_digest"] = data[0]
            elif tag == "LENGTH":
                fields["size"] = int(data[0])
            elif tag == "ERROR":
                fields["errors"].append(data[0])
            elif tag == "UNRESOLVED_NAMESPACES":
                fields["unresolved_namespaces"] = [ns for ns in data if ns]
            elif tag == "SCHEMA":
                digest, mtime, location, namespace = data[:4]
                schemas.append(SchemaRecord(
                    location=location,
                    namespace=namespace or None,
                    retrieval_status=RetrievalStatus.SUCCESS,
                    digest=digest,
                    local_path=schemas_dir / digest,
                    last_modified=from_iso(mtime),
                ))
            elif tag == "BROKEN_SCHEMA":
                location, namespace, message = data[:3]
                schemas.append(SchemaRecord(
                    location=location,
                    namespace=namespace or None,
                    retrieval_status=RetrievalStatus.FAILURE,
                    error_message=message,
                ))
            elif tag == "REDIRECTED_SCHEMA":
                location, namespace, final = data[:3]
                schemas.append(SchemaRecord(
                    location=location,
                    namespace=namespace or None,
                    retrieval_status=RetrievalStatus.REDIRECT,
                    redirected_location=final,
                ))

        fields["schemas"] = sorted(schemas, key=location_key)
        return cls(**fields)


def unique_successes(records: Iterable[ResolutionRecord]) -> list[SchemaRecord]:
    """Successful schemas across several resolutions, first seen per location, sorted."""
    seen: dict[str, SchemaRecord] = {}
    for record in records:
        for schema in record.schemas_with(RetrievalStatus.SUCCESS):
            seen.setdefault(schema.location, schema)
    return sorted(seen.values(), key=location_key)
