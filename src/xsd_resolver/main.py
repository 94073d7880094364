#!/usr/bin/env python3
"""
xsd-resolver: The XML Schema Resolver MCP Server

Resolves every XML Schema an instance document depends on (following
xsi:schemaLocation, xs:import and xs:include over HTTP), keeps the results in
named collections, and exports a collection as a tar archive of schemas plus
an XML manifest.

Environment variables:
    DATA_ROOT: Directory for the schema cache and collections (default: ~/.cache/xsd-resolver)
    RESOLVER_PROXY: Optional HTTP proxy, "host" or "host:port"
    LOG_LEVEL: Logging level (default: INFO)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP
from mcp.shared.exceptions import McpError
from mcp.types import ErrorData

from xsd_resolver.config import Settings, load_settings
from xsd_resolver.errors import ClientError, HttpError
from xsd_resolver.logging_config import setup_logging
from xsd_resolver.models import ResolutionRecord, RetrievalStatus
from xsd_resolver.resolver import resolve
from xsd_resolver.store import CollectionStore

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "xsd-resolver",
    instructions="""XML Schema Resolver MCP Server - Fetch and bundle the schemas an XML document needs.

Tools:
- create_collection(collection_id) → Create a named collection to hold resolutions
- list_collections() → List existing collections (stale ones are evicted)
- resolve_document(collection_id, filename, xml_text) → Resolve a document's schemas and save the result
- get_manifest(collection_id) → XML manifest of every resolution in a collection
- export_collection(collection_id, destination) → Write the collection's tar archive to a file""",
)

_store: Optional[CollectionStore] = None


# --- Helper Functions ---


def _get_settings() -> Settings:
    return _get_store().settings


def _get_store() -> CollectionStore:
    """Create the collection store on first use."""
    global _store
    if _store is None:
        _store = CollectionStore(load_settings())
    return _store


def _mcp_error(e: Exception) -> McpError:
    """Map a resolver exception onto a JSON-RPC error. Call from an except block."""
    if isinstance(e, ClientError):
        return McpError(ErrorData(code=-32602, message=e.client_message()))
    if isinstance(e, HttpError):
        logger.error("%s", e.client_message())
        return McpError(ErrorData(code=-32603, message=e.client_message()))
    logger.exception("Unexpected error")
    return McpError(ErrorData(code=-32603, message=f"Internal error: {str(e)}"))


def format_resolution(record: ResolutionRecord, collection_id: str) -> str:
    """Markdown summary of one resolution."""
    lines = [
        f"# {record.document_uri}",
        "",
        f"- Collection: `{collection_id}`",
        f"- Document id: `{record.document_digest}`",
        f"- Outcome: {record.outcome}",
        "- Schemas: " + ", ".join(f"{n} {status}" for status, n in record.status_counts.items()),
    ]

    successes = record.schemas_with(RetrievalStatus.SUCCESS)
    if successes:
        lines.append("")
        lines.append("## Retrieved")
        for s in successes:
            lines.append(f"- {s.location} ({s.namespace or 'no namespace'})")

    redirects = record.schemas_with(RetrievalStatus.REDIRECT)
    if redirects:
        lines.append("")
        lines.append("## Redirected")
        for s in redirects:
            lines.append(f"- {s.location} → {s.redirected_location}")

    failures = record.schemas_with(RetrievalStatus.FAILURE)
    if failures:
        lines.append("")
        lines.append("## Failed")
        for s in failures:
            lines.append(f"- {s.location}: {s.error_message}")

    if record.unresolved_namespaces:
        lines.append("")
        lines.append("## Unresolved namespaces")
        for namespace in record.unresolved_namespaces:
            lines.append(f"- {namespace}")

    if record.errors:
        lines.append("")
        lines.append("## Parse errors")
        for message in record.errors:
            lines.append(f"- {message}")

    lines.append("\nHint: Use `get_manifest(collection_id)` or `export_collection(collection_id, destination)` to get the results.")

    return "\n".join(lines)


# --- Tools ---


@mcp.tool()
async def create_collection(collection_id: str) -> str:
    """
    Create a collection to hold document resolutions.

    Args:
        collection_id: Simple URL-safe name (no spaces, slashes or special characters)

    Returns:
        Confirmation message.
    """
    try:
        created = await asyncio.to_thread(_get_store().create, collection_id)
    except Exception as e:
        raise _mcp_error(e)

    if created:
        return f"Created collection `{collection_id}`."
    return f"Collection `{collection_id}` already exists."


@mcp.tool()
async def list_collections() -> str:
    """
    List existing collections. Collections untouched for too long are removed first.

    Returns:
        Markdown formatted list of collection names.
    """
    try:
        names = await asyncio.to_thread(_get_store().collections)
    except Exception as e:
        raise _mcp_error(e)

    if not names:
        return "No collections yet.\n\nHint: Use `create_collection(collection_id)` to make one."

    lines = ["# Collections", ""]
    for name in names:
        lines.append(f"- `{name}`")

    lines.append("\nHint: Use `resolve_document(collection_id, filename, xml_text)` to add a document to a collection.")

    return "\n".join(lines)


@mcp.tool()
async def resolve_document(collection_id: str, filename: str, xml_text: str) -> str:
    """
    Resolve all schemas an XML document depends on and save the result to a collection.

    Args:
        collection_id: Name of an existing collection
        filename: Name to record the document under
        xml_text: The XML document itself

    The text is encoded as UTF-8 before parsing, so an encoding named in the
    XML declaration is not honoured. The document id is the MD5 of those
    UTF-8 bytes, not of whatever bytes the caller originally read.

    Returns:
        Markdown summary of retrieved, redirected and failed schemas.
    """
    store = _get_store()
    try:
        record = await asyncio.to_thread(resolve, xml_text.encode("utf-8"), filename, store.settings)
        await asyncio.to_thread(store.save, record, collection_id)
    except Exception as e:
        raise _mcp_error(e)

    return format_resolution(record, collection_id)


@mcp.tool()
async def get_manifest(collection_id: str) -> str:
    """
    Get the XML manifest describing every resolution in a collection.

    Args:
        collection_id: Name of an existing collection

    Returns:
        The manifest as an XML document.
    """
    try:
        manifest = await asyncio.to_thread(_get_store().manifest, collection_id)
    except Exception as e:
        raise _mcp_error(e)

    return manifest.decode("utf-8")


@mcp.tool()
async def export_collection(collection_id: str, destination: str) -> str:
    """
    Write a collection's tar archive (manifest plus every retrieved schema) to a file.

    Args:
        collection_id: Name of an existing collection
        destination: Path of the .tar file to write

    Returns:
        Where the archive was written.
    """
    try:
        path = await asyncio.to_thread(_get_store().export_tar, collection_id, Path(destination).expanduser())
    except Exception as e:
        raise _mcp_error(e)

    return f"Wrote `{collection_id}` to {path} ({path.stat().st_size} bytes)."


def main() -> None:
    setup_logging(_get_settings().log_level)
    mcp.run()


if __name__ == "__main__":
    main()
