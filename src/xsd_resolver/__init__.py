"""Resolve, cache and bundle the XML Schemas an XML instance document depends on."""

__version__ = "0.1.0"
