"""Parsers for XML instance documents and XML Schema documents."""

from xsd_resolver.parsers.namespace import (
    XSD_NS,
    XSI_NS,
    InstanceDocument,
    SchemaDocument,
    declared_version,
    diagnose,
    extract_namespaces,
    extract_schema_namespaces,
    split_qname,
)

__all__ = [
    # Namespaces
    "XSD_NS",
    "XSI_NS",
    "split_qname",
    # Parser targets
    "InstanceDocument",
    "SchemaDocument",
    "declared_version",
    "diagnose",
    # Extraction
    "extract_namespaces",
    "extract_schema_namespaces",
]
