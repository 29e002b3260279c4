"""Ingestion of fetched feeds into the store."""

from .pipeline import IngestResult, ingest

__all__ = ["IngestResult", "ingest"]
