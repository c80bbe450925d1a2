"""Persistent and shared stores used by the generation pipeline."""

from .metadata import MetadataRecord, MetadataStore, merge
from .stats_table import StatsTable

__all__ = ["MetadataRecord", "MetadataStore", "StatsTable", "merge"]
