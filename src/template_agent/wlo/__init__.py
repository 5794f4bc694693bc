"""WLO (WirLernenOnline / edu-sharing) search, metadata and vocabularies."""

from template_agent.wlo.metadata import extract_metadata
from template_agent.wlo.search_client import WLOSearchClient, WLOSearchConfig
from template_agent.wlo.vocabularies import DEFAULT_FILTER_TYPES, FilterType

__all__ = [
    "DEFAULT_FILTER_TYPES",
    "FilterType",
    "WLOSearchClient",
    "WLOSearchConfig",
    "extract_metadata",
]
