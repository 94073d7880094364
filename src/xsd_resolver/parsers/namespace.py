"""Namespace and schema-location extraction using an lxml parser target."""

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit

from lxml import etree

from xsd_resolver.errors import UnparseableDocumentError

XSD_NS = "http://www.w3.org/2001/XMLSchema"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"

_CHUNK_SIZE = 64 * 1024
_XML_DECL_RE = re.compile(r"""^\s*<\?xml\s+version\s*=\s*(["'])(.*?)\1""")


def split_qname(name: str) -> tuple[Optional[str], str]:
    """Split a Clark-notation name '{uri}local' into (uri, local)."""
    if name.startswith("{"):
        uri, local = name[1:].split("}", 1)
        return uri or None, local
    return None, name


def declared_version(data: bytes) -> str:
    """XML version from the declaration, '1.0' when there is none."""
    head = data[:256]
    if head.startswith((b"\xff\xfe", b"\xfe\xff")):
        text = head.decode("utf-16", errors="ignore")
    else:
        text = head.decode("latin-1").lstrip("\xef\xbb\xbf")
    match = _XML_DECL_RE.match(text)
    return match.group(2) if match else "1.0"


class InstanceDocument:
    """
    Parser target that records the namespaces an XML document actually uses.

    Every element and attribute namespace is added to used_namespaces (which
    may be shared with, and extended for, other documents).
    xsi:schemaLocation pairs are collected as location -> namespace
    candidates; namespace_locations only reports candidates whose namespace
    turned out to be used.
    """

    def __init__(self, used_namespaces: Optional[set[str]] = None):
        self.used_namespaces: set[str] = used_namespaces if used_namespaces is not None else set()
        self.seen_namespaces: set[str] = set()
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.version = "1.0"
        self._locations: dict[str, Optional[str]] = {}

    # --- lxml target interface ---

    def start(self, tag, attrib, nsmap=None):
        uri, local = split_qname(tag)
        self._use(uri)
        for name, value in attrib.items():
            attr_uri, attr_local = split_qname(name)
            self._use(attr_uri)
            if attr_uri == XSI_NS and attr_local == "schemaLocation":
                self._add_schema_location_pairs(value)
        self.element(uri, local, attrib)

    def end(self, tag):
        pass

    def data(self, data):
        pass

    def close(self):
        return self

    # --- hooks and results ---

    def element(self, uri: Optional[str], local: str, attrib) -> None:
        """Called for every element after namespaces are recorded."""

    @property
    def namespace_locations(self) -> dict[str, str]:
        return {
            location: namespace
            for location, namespace in self._locations.items()
            if namespace in self.used_namespaces
        }

    @property
    def informative(self) -> bool:
        """True if parsing produced any namespace or location information."""
        return bool(self.seen_namespaces or self._locations)

    def _use(self, uri: Optional[str]) -> None:
        if uri:
            self.used_namespaces.add(uri)
            self.seen_namespaces.add(uri)

    def _add_schema_location_pairs(self, value: str) -> None:
        tokens = value.split()
        for namespace, location in zip(tokens[0::2], tokens[1::2]):
            self._locations[location] = namespace


class SchemaDocument(InstanceDocument):
    """
    Parser target for XSD documents.

    Adds xs:import (namespace, schemaLocation) pairs, marking the imported
    namespace as used, and xs:include locations, which belong to the
    including schema's targetNamespace. Relative locations are resolved
    against the schema's own location.
    """

    def __init__(self, schema_location: str, used_namespaces: Optional[set[str]] = None):
        if not urlsplit(schema_location).scheme:
            raise ValueError(f"Schema location {schema_location} must be an absolute URI: it wasn't.")
        super().__init__(used_namespaces)
        self.schema_location = schema_location
        self.target_namespace: Optional[str] = None

    def absolutize(self, location: str) -> str:
        if urlsplit(location).scheme:
            return location
        return urljoin(self.schema_location, location)

    def element(self, uri, local, attrib):
        if uri != XSD_NS:
            return
        if local == "schema":
            self.target_namespace = attrib.get("targetNamespace") or attrib.get(f"{{{XSD_NS}}}targetNamespace")
        elif local == "import":
            namespace = attrib.get("namespace")
            location = attrib.get("schemaLocation")
            if namespace and location:
                self._use(namespace)
                self._locations[self.absolutize(location)] = namespace
        elif local == "include":
            location = attrib.get("schemaLocation")
            if location:
                self._locations[self.absolutize(location)] = self.target_namespace


def _new_parser(target=None) -> etree.XMLParser:
    return etree.XMLParser(
        target=target,
        recover=True,
        load_dtd=False,
        no_network=True,
        resolve_entities=False,
        huge_tree=True,
    )


def _feed(parser: etree.XMLParser, data: bytes):
    for offset in range(0, len(data), _CHUNK_SIZE):
        parser.feed(data[offset:offset + _CHUNK_SIZE])
    return parser.close()


def diagnose(data: bytes) -> tuple[list[str], list[str]]:
    """
    Errors and warnings for *data* as "Line L, Col C: message" strings.

    Parser targets leave the error log empty, so this runs a separate
    recovering pass that builds (and discards) a tree.
    """
    parser = _new_parser()
    fatal = None
    try:
        root = _feed(parser, data)
        entries = list(parser.error_log)
    except etree.XMLSyntaxError as e:
        root = None
        fatal = str(e)
        entries = list(e.error_log) or list(parser.error_log)

    errors: list[str] = []
    warnings: list[str] = []
    for entry in entries:
        message = f"Line {entry.line}, Col {entry.column}: {entry.message.strip()}"
        if entry.level_name == "WARNING":
            warnings.append(message)
        else:
            errors.append(message)
    if not errors and (fatal or root is None):
        errors.append(fatal or "No root element found")
    return errors, warnings


def _parse(document: InstanceDocument, data: bytes, label: str) -> InstanceDocument:
    document.version = declared_version(data)
    document.errors, document.warnings = diagnose(data)
    try:
        _feed(_new_parser(document), data)
    except etree.XMLSyntaxError:
        # reported by diagnose(); keep whatever the target saw before the failure
        pass

    if document.errors and not document.informative:
        raise UnparseableDocumentError(
            f"The XML document {label} had too many errors: " + "; ".join(document.errors),
            document.errors,
        )
    return document


def extract_namespaces(data: bytes, label: str = "document") -> InstanceDocument:
    """Single streaming pass over an instance document."""
    return _parse(InstanceDocument(), data, label)


def extract_schema_namespaces(data: bytes, schema_location: str, used_namespaces: set[str]) -> SchemaDocument:
    """Streaming pass over a schema; *used_namespaces* is extended in place."""
    return _parse(SchemaDocument(schema_location, used_namespaces), data, schema_location)
