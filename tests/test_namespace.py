"""
Tests for namespace and schema-location extraction.

Run with: pytest tests/test_namespace.py -v
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from xsd_resolver.errors import UnparseableDocumentError
from xsd_resolver.parsers import (
    XSI_NS,
    declared_version,
    diagnose,
    extract_namespaces,
    extract_schema_namespaces,
    split_qname,
)

INSTANCE = b"""<?xml version="1.0" encoding="UTF-8"?>
<a:root xmlns:a="http://ns/a" xmlns:b="http://ns/b"
        xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
        xsi:schemaLocation="http://ns/a http://example.org/a.xsd
                            http://ns/unused http://example.org/unused.xsd">
  <a:child b:flag="yes">text</a:child>
</a:root>
"""

SCHEMA = b"""<?xml version="1.0"?>
<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema" targetNamespace="http://ns/a">
  <xs:import namespace="http://ns/c" schemaLocation="c/c.xsd"/>
  <xs:import namespace="http://ns/d"/>
  <xs:include schemaLocation="common.xsd"/>
  <xs:include schemaLocation="http://other.org/shared.xsd"/>
</xs:schema>
"""


# --- Helpers ---


def test_split_qname():
    assert split_qname("{http://ns/a}root") == ("http://ns/a", "root")
    assert split_qname("root") == (None, "root")
    assert split_qname("{}root") == (None, "root")


@pytest.mark.parametrize(
    "data,version",
    [
        (b'<?xml version="1.0"?><r/>', "1.0"),
        (b"<?xml version='1.1' encoding='UTF-8'?><r/>", "1.1"),
        (b"\xef\xbb\xbf<?xml version=\"1.1\"?><r/>", "1.1"),
        ('<?xml version="1.1"?><r/>'.encode("utf-16"), "1.1"),
        (b"<r/>", "1.0"),
    ],
)
def test_declared_version(data, version):
    assert declared_version(data) == version


# --- Instance documents ---


def test_instance_namespaces_and_locations():
    """Only schema locations for namespaces the document uses are reported."""
    doc = extract_namespaces(INSTANCE)
    assert doc.used_namespaces == {"http://ns/a", "http://ns/b", XSI_NS}
    assert doc.namespace_locations == {"http://example.org/a.xsd": "http://ns/a"}
    assert doc.errors == []
    assert doc.version == "1.0"


def test_instance_without_namespaces():
    doc = extract_namespaces(b"<root><child/></root>")
    assert doc.used_namespaces == set()
    assert doc.namespace_locations == {}


def test_odd_schema_location_token_is_ignored():
    data = (
        b'<a:r xmlns:a="http://ns/a" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        b'xsi:schemaLocation="http://ns/a http://example.org/a.xsd http://ns/dangling"/>'
    )
    doc = extract_namespaces(data)
    assert doc.namespace_locations == {"http://example.org/a.xsd": "http://ns/a"}


def test_recoverable_errors_are_recorded():
    """A malformed but informative document yields its namespaces plus errors."""
    doc = extract_namespaces(b'<a:root xmlns:a="http://ns/a"><a:child></a:root>')
    assert "http://ns/a" in doc.used_namespaces
    assert doc.errors
    assert all(message.startswith("Line ") for message in doc.errors)


def test_unparseable_document_raises():
    with pytest.raises(UnparseableDocumentError) as excinfo:
        extract_namespaces(b"this is not xml at all", "junk.txt")
    assert "junk.txt" in str(excinfo.value)
    assert excinfo.value.errors
    assert excinfo.value.status_code == 415


def test_large_document_is_streamed():
    children = b"".join(b'<a:item n="%d"/>' % i for i in range(20000))
    data = b'<a:root xmlns:a="http://ns/a">' + children + b"</a:root>"
    assert len(data) > 64 * 1024
    doc = extract_namespaces(data)
    assert doc.used_namespaces == {"http://ns/a"}
    assert doc.errors == []


# --- Schema documents ---


def test_schema_imports_and_includes():
    used = {"http://ns/a"}
    doc = extract_schema_namespaces(SCHEMA, "http://example.org/schemas/a.xsd", used)

    assert doc.target_namespace == "http://ns/a"
    assert doc.namespace_locations == {
        "http://example.org/schemas/c/c.xsd": "http://ns/c",
        "http://example.org/schemas/common.xsd": "http://ns/a",
        "http://other.org/shared.xsd": "http://ns/a",
    }
    # Imports mark their namespace as used; the shared set is extended in place
    assert "http://ns/c" in used
    assert "http://ns/d" not in used


def test_include_without_target_namespace_is_dropped():
    schema = b"""<xs:schema xmlns:xs="http://www.w3.org/2001/XMLSchema">
      <xs:include schemaLocation="common.xsd"/>
    </xs:schema>"""
    doc = extract_schema_namespaces(schema, "http://example.org/a.xsd", set())
    assert doc.namespace_locations == {}


def test_schema_location_must_be_absolute():
    with pytest.raises(ValueError):
        extract_schema_namespaces(SCHEMA, "a.xsd", set())


# --- Diagnostics ---


def test_well_formed_document_has_no_diagnostics():
    assert diagnose(INSTANCE) == ([], [])


def test_diagnostics_for_mismatched_tags():
    errors, _ = diagnose(b'<a:root xmlns:a="http://ns/a"><a:open></a:root>')
    assert errors
    assert any("mismatch" in message for message in errors)


def test_diagnostics_for_text_without_markup():
    errors, _ = diagnose(b"garbage, not markup")
    assert errors


def test_errors_are_kept_on_the_document():
    doc = extract_namespaces(b'<a:root xmlns:a="http://ns/a"><a:open></a:root>', "broken.xml")
    assert doc.errors == diagnose(b'<a:root xmlns:a="http://ns/a"><a:open></a:root>')[0]
