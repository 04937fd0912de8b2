"""Wayback Machine (Internet Archive) integration.

Sub-modules:
- ``client``        rate-limited, retrying HTTP client and URL builders
- ``availability``  availability lookups with CDX fallback and www variants
- ``cdx``           snapshot listings, counts and site-wide URL discovery
- ``timeline``      digest-based content change timelines
- ``snapshots``     archived page retrieval and metadata extraction
- ``diff``          snapshot comparison and SEO change analysis
- ``research``      link extraction and domain research
"""
