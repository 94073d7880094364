"""
Tests for the MCP tools, using a collection store rooted in a temp directory.

Run with: pytest tests/test_main.py -v
"""

import asyncio
import threading
import sys
import tarfile
from pathlib import Path

import pytest
from mcp.shared.exceptions import McpError

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from xsd_resolver import main
from xsd_resolver.resolver import resolve
from xsd_resolver.store import CollectionStore
from xsd_resolver.utils import md5_hex

DOC = (
    '<a:root xmlns:a="http://ns/a" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xsi:schemaLocation="http://ns/a http://example.org/a.xsd"/>'
)


# --- Fixtures ---


@pytest.fixture
def store(settings, client, server, monkeypatch):
    """Point the tools at a temp store and the mock schema server."""
    server.add("http://example.org/a.xsd", "<schema/>")
    store = CollectionStore(settings)
    monkeypatch.setattr(main, "_store", store)
    monkeypatch.setattr(main, "resolve", lambda doc, uri, s: resolve(doc, uri, s, client))
    return store


def run(coro):
    return asyncio.run(coro)


# --- Tests ---


def test_create_and_list_collections(store):
    assert "Created" in run(main.create_collection("alpha"))
    assert "already exists" in run(main.create_collection("alpha"))
    listing = run(main.list_collections())
    assert "- `alpha`" in listing


def test_list_collections_when_empty(store):
    assert run(main.list_collections()).startswith("No collections yet")


def test_bad_collection_name_is_invalid_params(store):
    with pytest.raises(McpError) as excinfo:
        run(main.create_collection("no spaces allowed"))
    assert excinfo.value.error.code == -32602
    assert excinfo.value.error.message.startswith("400 Bad Request")


def test_resolve_document(store):
    run(main.create_collection("alpha"))
    summary = run(main.resolve_document("alpha", "doc.xml", DOC))
    assert summary.startswith("# doc.xml")
    assert "Outcome: success" in summary
    assert "http://example.org/a.xsd" in summary
    assert len(store.resolutions("alpha")) == 1


def test_resolve_into_unknown_collection(store):
    with pytest.raises(McpError) as excinfo:
        run(main.resolve_document("missing", "doc.xml", DOC))
    assert excinfo.value.error.code == -32602
    assert excinfo.value.error.message.startswith("404 Not Found")


def test_resolve_unparseable_document(store):
    run(main.create_collection("alpha"))
    with pytest.raises(McpError) as excinfo:
        run(main.resolve_document("alpha", "junk.xml", "not xml"))
    assert excinfo.value.error.message.startswith("415 Unsupported Media Type")


def test_get_manifest(store):
    run(main.create_collection("alpha"))
    run(main.resolve_document("alpha", "doc.xml", DOC))
    manifest = run(main.get_manifest("alpha"))
    assert manifest.startswith("<?xml")
    assert 'collection="alpha"' in manifest


def test_export_collection(store, tmp_path):
    run(main.create_collection("alpha"))
    run(main.resolve_document("alpha", "doc.xml", DOC))
    destination = tmp_path / "alpha.tar"
    message = run(main.export_collection("alpha", str(destination)))
    assert str(destination) in message
    with tarfile.open(destination) as tar:
        assert tar.getnames() == ["alpha/manifest.xml", "alpha/http://example.org/a.xsd"]


def test_unexpected_errors_are_internal(store, monkeypatch):
    def boom(name):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "create", boom)
    with pytest.raises(McpError) as excinfo:
        run(main.create_collection("alpha"))
    assert excinfo.value.error.code == -32603


def test_document_id_is_digest_of_utf8_text(store):
    run(main.create_collection("alpha"))
    doc = '<?xml version="1.0" encoding="ISO-8859-1"?>' + DOC.replace("<a:root ", "<a:root title=\"café\" ")
    summary = run(main.resolve_document("alpha", "doc.xml", doc))
    digest = md5_hex(doc.encode("utf-8"))
    assert f"`{digest}`" in summary
    assert store.document_ids("alpha") == [digest]


def test_store_work_runs_off_the_event_loop(store, monkeypatch):
    loop_thread = threading.get_ident()
    threads = {}

    def recording(name):
        original = getattr(store, name)

        def wrapper(*args, **kwargs):
            threads[name] = threading.get_ident()
            return original(*args, **kwargs)

        monkeypatch.setattr(store, name, wrapper)

    for name in ("create", "collections", "save", "manifest"):
        recording(name)

    run(main.create_collection("alpha"))
    run(main.list_collections())
    run(main.resolve_document("alpha", "doc.xml", DOC))
    run(main.get_manifest("alpha"))

    assert set(threads) == {"create", "collections", "save", "manifest"}
    assert loop_thread not in threads.values()
