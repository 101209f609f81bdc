"""JobMatch - job listing ingestion, deduplication and profile matching."""

__version__ = "0.1.0"
