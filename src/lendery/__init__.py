# ABOUTME: Lendery - a library lending service with catalog metadata enrichment.
# ABOUTME: Packages the lending state machine, enrichment pipeline, HTTP API, and CLI.

__version__ = "0.1.0"
